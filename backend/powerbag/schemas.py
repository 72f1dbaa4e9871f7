"""Pydantic schemas for the Powerbag API and services."""

from datetime import datetime
from typing import Optional, Any, Literal, List
from pydantic import BaseModel, EmailStr, ConfigDict, Field, field_validator
from uuid import UUID


Status = Literal["preview", "published"]
AssetType = Literal["image", "audio", "video"]


class UserCreate(BaseModel):
    email: EmailStr
    name: str = ""
    roles: List[str] = Field(default_factory=list)


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    name: str
    roles: List[str] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class SendCodeRequest(BaseModel):
    email: EmailStr
    magic_link: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    code: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class EmailExistsOut(BaseModel):
    exists: bool


class EmbeddedAsset(BaseModel):
    """Immutable display snapshot of an asset, embedded in published content."""

    asset_id: UUID
    original_name: Optional[str] = None
    url: Optional[str] = None
    format: Optional[str] = None


class Bag(BaseModel):
    id: str
    image_asset: Optional[UUID] = None
    embedded_image_asset: Optional[EmbeddedAsset] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    image_frame_urls: Optional[List[str]] = None


class Bags(BaseModel):
    first_column: List[Bag] = Field(default_factory=list)
    second_column: List[Bag] = Field(default_factory=list)
    third_column: List[Bag] = Field(default_factory=list)


class StoryEvent(BaseModel):
    start: float
    stop: float
    action: str
    bags: List[str] = Field(default_factory=list)
    video_asset: Optional[UUID] = None
    embedded_video_asset: Optional[EmbeddedAsset] = None


class Story(BaseModel):
    id: str
    audio_asset: Optional[UUID] = None
    embedded_audio_asset: Optional[EmbeddedAsset] = None
    audio_src: Optional[str] = None
    selected_bags: List[str] = Field(default_factory=list)
    events: List[StoryEvent] = Field(default_factory=list)


class StorylineCreate(BaseModel):
    title: str
    collection_id: UUID
    bags: Optional[Bags] = None
    stories: Optional[List[Story]] = None

    @field_validator("title")
    @classmethod
    def _title_present(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        return value


class StorylineUpdate(BaseModel):
    title: Optional[str] = None
    bags: Optional[Bags] = None
    stories: Optional[List[Story]] = None
    collections: Optional[List[UUID]] = None


class StorylineUpsert(BaseModel):
    title: str
    collection_id: Optional[UUID] = None
    bags: Optional[Bags] = None
    stories: Optional[List[Story]] = None


class StorylineOut(BaseModel):
    id: UUID
    title: str
    status: Status
    collections: List[UUID] = Field(default_factory=list)
    preview_version_id: Optional[UUID] = None
    bags: Bags
    stories: List[Story]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ItemError(BaseModel):
    item: str
    error: str


class StorylineBatchOut(BaseModel):
    storylines: List[StorylineOut]
    errors: List[ItemError] = Field(default_factory=list)


class DeletedCount(BaseModel):
    deleted_count: int
    errors: List[ItemError] = Field(default_factory=list)


class MembershipOut(BaseModel):
    collection_id: UUID
    storyline_id: UUID
    message: str


class CollectionCreate(BaseModel):
    name: str
    description: Optional[str] = ""

    @field_validator("name")
    @classmethod
    def _name_present(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Collection name is required")
        return value


class CollectionUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class CollectionOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = ""
    status: Status
    created_by: Optional[UUID] = None
    preview_version_id: Optional[UUID] = None
    published_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    storylines: Optional[List[StorylineOut]] = None
    model_config = ConfigDict(from_attributes=True)


class DuplicateRequest(BaseModel):
    include_storylines: bool = True


class DuplicateOut(BaseModel):
    collection: CollectionOut
    storylines: List[StorylineOut] = Field(default_factory=list)


class PublishOut(BaseModel):
    collection: CollectionOut
    storylines: List[StorylineOut] = Field(default_factory=list)


class PublishAllOut(BaseModel):
    published: List[PublishOut] = Field(default_factory=list)
    errors: List[ItemError] = Field(default_factory=list)


class PublishStatusOut(BaseModel):
    collection_id: UUID
    published_collection_id: Optional[UUID] = None
    last_published: Optional[datetime] = None
    needs_publishing: bool


class CollectionDiff(BaseModel):
    name_changed: bool = False
    description_changed: bool = False
    changed: bool = False


class StorylineDiff(BaseModel):
    state: Literal["new", "modified", "removed", "unchanged"]
    title: str
    preview_id: Optional[UUID] = None
    published_id: Optional[UUID] = None
    changes: List[str] = Field(default_factory=list)


class DiffSummary(BaseModel):
    new: int = 0
    modified: int = 0
    removed: int = 0
    unchanged: int = 0


class VersionComparison(BaseModel):
    collection_id: UUID
    published_collection_id: Optional[UUID] = None
    collection: CollectionDiff
    storylines: List[StorylineDiff] = Field(default_factory=list)
    summary: DiffSummary
    needs_publishing: bool


class Subtitle(BaseModel):
    language: str
    url: str


class AudioMetadata(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    artist: Optional[str] = Field(default=None, max_length=100)
    album: Optional[str] = Field(default=None, max_length=200)
    genre: Optional[str] = Field(default=None, max_length=50)
    year: Optional[int] = Field(default=None, ge=1900)


class AssetOut(BaseModel):
    id: UUID
    asset_type: AssetType
    filename: str
    original_name: str
    mime_type: str
    size: int
    url: str
    format: str
    uploaded_by: UUID
    location: List[str] = Field(default_factory=list)
    duration: Optional[float] = None
    alt_text: Optional[str] = None
    subtitles: Optional[List[Subtitle]] = None
    metadata: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UploadResult(BaseModel):
    status: Literal["created", "skipped"]
    message: str
    asset: AssetOut


class BatchUploadOut(BaseModel):
    message: str
    uploaded: List[AssetOut] = Field(default_factory=list)
    skipped: List[AssetOut] = Field(default_factory=list)
    errors: List[ItemError] = Field(default_factory=list)


class AssetRename(BaseModel):
    filename: str


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


class AssetPage(BaseModel):
    data: List[AssetOut]
    pagination: Pagination


class InfoIn(BaseModel):
    en: str
    nl: str


class InfoOut(BaseModel):
    id: UUID
    en: str
    nl: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


SettingType = Literal["string", "number", "boolean", "object", "array", "objectId"]


class SettingUpdate(BaseModel):
    key: str
    value: Any
    type: SettingType
    description: Optional[str] = None
    category: Optional[str] = None
    is_public: Optional[bool] = None


class SettingOut(BaseModel):
    key: str
    value: Any
    value_type: str
    description: Optional[str] = None
    category: Optional[str] = None
    is_public: bool = False
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class SettingValueOut(BaseModel):
    key: str
    value: Any
