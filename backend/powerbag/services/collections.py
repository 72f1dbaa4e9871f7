"""Collection versioning engine."""

# purpose: collection CRUD, cascading publish, duplication and version comparison
# status: active
# depends_on: powerbag.services.storylines, powerbag.services.comparison

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from .. import audit, models, store
from ..errors import Conflict, NotFound, PowerbagError, ValidationError
from ..schemas import CollectionCreate, CollectionOut, CollectionUpdate
from . import storylines as storyline_engine
from .comparison import classify_storyline, diff_collection, unique_name

_logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _name_taken(db: Session, name: str, exclude_id: UUID | None = None) -> bool:
    existing = store.find_one(db, models.Collection, {"name": name, "status": models.PREVIEW})
    return existing is not None and existing.id != exclude_id


def get_collection(db: Session, collection_id: UUID, status: str | None = None) -> models.Collection:
    filters: dict[str, Any] = {"id": collection_id}
    if status:
        filters["status"] = status
    collection = store.find_one(db, models.Collection, filters)
    if collection is None:
        raise NotFound("Collection not found")
    return collection


def find_published_twin(db: Session, preview_id: UUID) -> models.Collection | None:
    return store.find_one(
        db,
        models.Collection,
        {"preview_version_id": preview_id, "status": models.PUBLISHED},
    )


def list_collections(db: Session, status: str = models.PREVIEW) -> list[models.Collection]:
    return store.find(
        db,
        models.Collection,
        {"status": status},
        order_by=models.Collection.created_at.desc(),
    )


def create_collection(
    db: Session, payload: CollectionCreate, owner_id: UUID | None = None
) -> models.Collection:
    if _name_taken(db, payload.name):
        raise Conflict("A collection with this name already exists")
    collection = models.Collection(
        name=payload.name,
        description=payload.description or "",
        status=models.PREVIEW,
        created_by=owner_id,
    )
    db.add(collection)
    db.commit()
    db.refresh(collection)
    _logger.info("Created collection %s (%s)", collection.id, collection.name)
    return collection


def update_collection(
    db: Session, collection_id: UUID, payload: CollectionUpdate
) -> models.Collection:
    collection = get_collection(db, collection_id, models.PREVIEW)
    if payload.name is not None:
        name = payload.name.strip()
        if not name:
            raise ValidationError("Collection name is required")
        if _name_taken(db, name, exclude_id=collection.id):
            raise Conflict("A collection with this name already exists")
        collection.name = name
    if payload.description is not None:
        collection.description = payload.description
    db.commit()
    db.refresh(collection)
    return collection


def publish(
    db: Session, collection_id: UUID, user_id: UUID | None = None
) -> tuple[models.Collection, list[models.Storyline]]:
    """Copy a preview collection and all of its preview storylines into published twins.

    Each twin is found by ``preview_version_id`` and overwritten in place, so
    publishing again is safe after a partial failure.
    """

    preview = get_collection(db, collection_id, models.PREVIEW)
    published_at = _now()
    twin = find_published_twin(db, preview.id)
    if twin is None:
        twin = models.Collection(
            status=models.PUBLISHED,
            preview_version_id=preview.id,
            created_by=preview.created_by,
        )
        db.add(twin)
    twin.name = preview.name
    twin.description = preview.description
    twin.published_date = published_at
    db.commit()
    db.refresh(twin)

    previews = storyline_engine.find_preview_by_collection(db, preview.id)
    published = [storyline_engine.publish_into(db, storyline, twin) for storyline in previews]
    detached = storyline_engine.detach_published(db, twin, [s.id for s in previews])

    preview.published_date = published_at
    db.commit()
    db.refresh(twin)
    audit.log_action(
        db,
        user_id,
        "collection.publish",
        "collection",
        preview.id,
        {
            "published_collection_id": str(twin.id),
            "storylines": len(published),
            "detached": detached,
        },
    )
    _logger.info(
        "Published collection %s as %s with %d storylines", preview.id, twin.id, len(published)
    )
    return twin, published


def publish_all(db: Session, user_id: UUID | None = None) -> tuple[list[tuple], list[dict[str, str]]]:
    published = []
    errors: list[dict[str, str]] = []
    for collection in list_collections(db, models.PREVIEW):
        collection_id = collection.id
        try:
            published.append(publish(db, collection_id, user_id))
        except PowerbagError as exc:
            db.rollback()
            _logger.warning("Publishing collection %s failed: %s", collection_id, exc)
            errors.append({"item": str(collection_id), "error": str(exc)})
    return published, errors


def duplicate(
    db: Session,
    collection_id: UUID,
    include_storylines: bool = True,
    user_id: UUID | None = None,
) -> tuple[models.Collection, list[models.Storyline]]:
    source = get_collection(db, collection_id, models.PREVIEW)
    names = [c.name for c in list_collections(db, models.PREVIEW)]
    copy = models.Collection(
        name=unique_name(source.name, names),
        description=source.description,
        status=models.PREVIEW,
        created_by=user_id or source.created_by,
    )
    db.add(copy)
    db.commit()
    db.refresh(copy)

    copies: list[models.Storyline] = []
    if include_storylines:
        for storyline in storyline_engine.find_preview_by_collection(db, source.id):
            copies.append(storyline_engine.clone_into(db, storyline, copy))
    audit.log_action(
        db,
        user_id,
        "collection.duplicate",
        "collection",
        copy.id,
        {"source_id": str(source.id), "storylines": len(copies)},
    )
    return copy, copies


def compare_versions(db: Session, collection_id: UUID) -> dict[str, Any]:
    """Diff a preview collection and its storylines against the published twin."""

    preview = get_collection(db, collection_id, models.PREVIEW)
    twin = find_published_twin(db, preview.id)
    previews = storyline_engine.find_preview_by_collection(db, preview.id)
    published_by_preview: dict[UUID, models.Storyline] = {}
    if twin is not None:
        for storyline in twin.storylines:
            if storyline.status == models.PUBLISHED and storyline.preview_version_id:
                published_by_preview[storyline.preview_version_id] = storyline

    summary = {"new": 0, "modified": 0, "removed": 0, "unchanged": 0}
    entries: list[dict[str, Any]] = []
    for storyline in previews:
        counterpart = published_by_preview.pop(storyline.id, None)
        state, changes = classify_storyline(storyline, counterpart)
        summary[state] += 1
        entries.append(
            {
                "state": state,
                "title": storyline.title,
                "preview_id": storyline.id,
                "published_id": counterpart.id if counterpart else None,
                "changes": changes,
            }
        )
    for preview_id, orphan in published_by_preview.items():
        summary["removed"] += 1
        entries.append(
            {
                "state": "removed",
                "title": orphan.title,
                "preview_id": preview_id,
                "published_id": orphan.id,
                "changes": [],
            }
        )

    collection_diff = diff_collection(preview, twin)
    needs_publishing = (
        collection_diff["changed"]
        or summary["new"] > 0
        or summary["modified"] > 0
        or summary["removed"] > 0
    )
    return {
        "collection_id": preview.id,
        "published_collection_id": twin.id if twin else None,
        "collection": collection_diff,
        "storylines": entries,
        "summary": summary,
        "needs_publishing": needs_publishing,
    }


def publish_status(db: Session, collection_id: UUID) -> dict[str, Any]:
    comparison = compare_versions(db, collection_id)
    preview = get_collection(db, collection_id, models.PREVIEW)
    return {
        "collection_id": preview.id,
        "published_collection_id": comparison["published_collection_id"],
        "last_published": preview.published_date,
        "needs_publishing": comparison["needs_publishing"],
    }


def delete_collection(db: Session, collection_id: UUID, user_id: UUID | None = None) -> None:
    """Delete a collection, unlink it from storylines and refresh their locations.

    Location keys embed collection ids, so every storyline that named the
    collection is resynced under its new key. Published storylines left without
    any collection are deleted.
    """

    collection = get_collection(db, collection_id)
    status = collection.status
    affected = store.pull_collection(db, collection_id)
    db.delete(collection)
    db.commit()

    for storyline_id in affected:
        storyline = db.get(models.Storyline, storyline_id)
        if storyline is None:
            continue
        if storyline.status == models.PUBLISHED and not storyline.collections:
            db.delete(storyline)
            db.commit()
    storyline_engine.resync_locations(db, affected)
    audit.log_action(
        db,
        user_id,
        "collection.delete",
        "collection",
        collection_id,
        {"status": status, "storylines": len(affected)},
    )
    _logger.info("Deleted collection %s, %d storylines unlinked", collection_id, len(affected))


def serialize_collection(
    collection: models.Collection, include_storylines: bool = False
) -> CollectionOut:
    storylines = None
    if include_storylines:
        storylines = [
            storyline_engine.serialize_storyline(storyline)
            for storyline in sorted(
                collection.storylines, key=lambda s: s.created_at or datetime.min
            )
        ]
    return CollectionOut(
        id=collection.id,
        name=collection.name,
        description=collection.description,
        status=collection.status,
        created_by=collection.created_by,
        preview_version_id=collection.preview_version_id,
        published_date=collection.published_date,
        created_at=collection.created_at,
        updated_at=collection.updated_at,
        storylines=storylines,
    )
