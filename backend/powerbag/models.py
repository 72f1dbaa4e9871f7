import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    String,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Float,
    Table,
    Text,
    Boolean,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from .database import Base

PREVIEW = "preview"
PUBLISHED = "published"

ADMIN_ROLE = "admin"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def empty_bags() -> dict:
    return {"first_column": [], "second_column": [], "third_column": []}


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False, default="")
    roles = Column(JSON, default=list)
    totp_secret = Column(String)
    created_at = Column(DateTime, default=_utcnow)

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in (self.roles or [])


class Asset(Base):
    """Media blob metadata; ``asset_type`` discriminates the variant."""

    __tablename__ = "assets"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    asset_type = Column(String, nullable=False)
    filename = Column(String, nullable=False)
    original_name = Column(String, nullable=False)
    mime_type = Column(String, nullable=False)
    size = Column(Integer, nullable=False, default=0)
    url = Column(String, nullable=False)
    format = Column(String, nullable=False)
    # audio and video only
    duration = Column(Float)
    uploaded_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    locations = relationship(
        "AssetLocation",
        back_populates="asset",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"polymorphic_on": asset_type}

    @property
    def location(self) -> list[str]:
        return sorted(loc.location_key for loc in self.locations)


class ImageAsset(Asset):
    alt_text = Column(String(200))

    __mapper_args__ = {"polymorphic_identity": "image"}


class AudioAsset(Asset):
    meta = Column("metadata", JSON, default=dict)

    __mapper_args__ = {"polymorphic_identity": "audio"}


class VideoAsset(Asset):
    subtitles = Column(JSON, default=list)

    __mapper_args__ = {"polymorphic_identity": "video"}



class AssetLocation(Base):
    __tablename__ = "asset_locations"
    asset_id = Column(
        UUID(as_uuid=True), ForeignKey("assets.id", ondelete="CASCADE"), primary_key=True
    )
    location_key = Column(String, primary_key=True)
    storyline_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    created_at = Column(DateTime, default=_utcnow)

    asset = relationship("Asset", back_populates="locations")


storyline_collections = Table(
    "storyline_collections",
    Base.metadata,
    Column(
        "storyline_id",
        UUID(as_uuid=True),
        ForeignKey("storylines.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "collection_id",
        UUID(as_uuid=True),
        ForeignKey("collections.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Collection(Base):
    __tablename__ = "collections"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, default="")
    status = Column(String, nullable=False, default=PREVIEW)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    # no FK: a published copy must survive (and report) the loss of its preview
    preview_version_id = Column(UUID(as_uuid=True), index=True)
    published_date = Column(DateTime)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    storylines = relationship(
        "Storyline", secondary=storyline_collections, back_populates="collections"
    )


class Storyline(Base):
    __tablename__ = "storylines"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default=PREVIEW)
    preview_version_id = Column(UUID(as_uuid=True), index=True)
    bags = Column(JSON, default=empty_bags)
    stories = Column(JSON, default=list)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    collections = relationship(
        "Collection", secondary=storyline_collections, back_populates="storylines"
    )

    @property
    def collection_ids(self) -> list[uuid.UUID]:
        return [collection.id for collection in self.collections]


class Info(Base):
    __tablename__ = "info"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    en = Column(Text, default="")
    nl = Column(Text, default="")
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class Setting(Base):
    __tablename__ = "settings"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    key = Column(String, unique=True, nullable=False)
    value = Column(JSON)
    value_type = Column(String, nullable=False)
    description = Column(String)
    category = Column(String, default="general")
    is_public = Column(Boolean, default=False)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(UUID(as_uuid=True))
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, default=_utcnow)
