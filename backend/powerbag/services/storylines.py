"""Storyline versioning engine.

A storyline lives as one editable ``preview`` record, optionally paired with a
``published`` twin that points back at it through ``preview_version_id``.
Preview storylines reference live assets by id, and every successful preview
save is followed by a location sync: all ``asset_locations`` rows owned by the
storyline are retracted, then the current location key is added to exactly the
assets the content references. Published twins embed asset snapshots instead
and never write locations.
"""

# purpose: storyline CRUD, publish-copy and asset location synchronization
# status: active
# depends_on: powerbag.store, powerbag.services.assets

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, store
from ..errors import Conflict, NotFound, ValidationError
from ..schemas import (
    Bags,
    StorylineCreate,
    StorylineOut,
    StorylineUpdate,
    StorylineUpsert,
)
from . import assets as asset_registry
from .comparison import BAG_COLUMNS, deep_copy_content

_logger = logging.getLogger(__name__)


def location_key(storyline: models.Storyline) -> str:
    """``"<sorted collection ids joined by ','>:<storyline id>"``."""

    collection_ids = ",".join(sorted(str(cid) for cid in storyline.collection_ids))
    return f"{collection_ids}:{storyline.id}"


def _as_uuid(value: Any) -> UUID | None:
    if value is None:
        return None
    try:
        return value if isinstance(value, UUID) else UUID(str(value))
    except ValueError:
        return None


def referenced_asset_ids(bags: dict[str, Any] | None, stories: Sequence[dict] | None) -> set[UUID]:
    """Every live asset id referenced from bag images, story audio and event video."""

    found: set[UUID] = set()
    for column in BAG_COLUMNS:
        for bag in (bags or {}).get(column) or []:
            found.add(_as_uuid(bag.get("image_asset")))
    for story in stories or []:
        found.add(_as_uuid(story.get("audio_asset")))
        for event in story.get("events") or []:
            found.add(_as_uuid(event.get("video_asset")))
    found.discard(None)
    return found


def sync_locations(db: Session, storyline: models.Storyline) -> None:
    """Retract every location this storyline owns, then add its current key.

    Retraction is by storyline id rather than by key, so keys left stale by a
    change of the collection set are cleared too.
    """

    if storyline.status != models.PREVIEW:
        return
    key = location_key(storyline)
    asset_ids = referenced_asset_ids(storyline.bags, storyline.stories)
    storyline_id = storyline.id
    store.pull(db, storyline_id=storyline_id)
    store.add_to_set(db, asset_ids, key, storyline_id)


def _after_save(db: Session, storyline: models.Storyline) -> None:
    """Post-save hook; a failure is logged and never undoes the save."""

    if storyline.status != models.PREVIEW:
        return
    storyline_id = storyline.id
    try:
        sync_locations(db, storyline)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        _logger.exception("Asset location sync failed for storyline %s", storyline_id)


def _after_delete(db: Session, storyline_id: UUID) -> None:
    try:
        store.pull(db, storyline_id=storyline_id)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        _logger.exception("Asset location retraction failed for storyline %s", storyline_id)


def _persist(db: Session, storyline: models.Storyline) -> models.Storyline:
    db.add(storyline)
    db.commit()
    db.refresh(storyline)
    _after_save(db, storyline)
    return storyline


def _dump_bags(bags: Bags | None) -> dict[str, Any]:
    return (bags or Bags()).model_dump(mode="json")


def _dump_stories(stories) -> list[dict[str, Any]]:
    return [story.model_dump(mode="json") for story in stories or []]


def _preview_collection(db: Session, collection_id: UUID) -> models.Collection:
    collection = store.find_one(
        db, models.Collection, {"id": collection_id, "status": models.PREVIEW}
    )
    if collection is None:
        raise NotFound("Preview collection not found")
    return collection


def _title_taken(
    db: Session,
    title: str,
    collection_ids: Iterable[UUID],
    *,
    exclude_id: UUID | None = None,
) -> bool:
    collection_ids = set(collection_ids)
    if not collection_ids:
        return False
    for other in store.find(db, models.Storyline, {"title": title, "status": models.PREVIEW}):
        if other.id == exclude_id:
            continue
        if collection_ids & set(other.collection_ids):
            return True
    return False


def get_storyline(db: Session, storyline_id: UUID, status: str | None = None) -> models.Storyline:
    filters: dict[str, Any] = {"id": storyline_id}
    if status:
        filters["status"] = status
    storyline = store.find_one(db, models.Storyline, filters)
    if storyline is None:
        raise NotFound("Storyline not found")
    return storyline


def get_by_title(
    db: Session,
    title: str,
    status: str = models.PREVIEW,
    collection_id: UUID | None = None,
) -> models.Storyline:
    for storyline in store.find(db, models.Storyline, {"title": title, "status": status}):
        if collection_id is None or collection_id in storyline.collection_ids:
            return storyline
    raise NotFound("Storyline not found")


def list_storylines(
    db: Session,
    *,
    status: str = models.PREVIEW,
    titles: Sequence[str] | None = None,
    collection_id: UUID | None = None,
) -> list[models.Storyline]:
    filters: dict[str, Any] = {"status": status}
    if titles:
        filters["title"] = list(titles)
    storylines = store.find(db, models.Storyline, filters, order_by=models.Storyline.created_at)
    if collection_id is not None:
        storylines = [s for s in storylines if collection_id in s.collection_ids]
    return storylines


def find_preview_by_collection(db: Session, collection_id: UUID) -> list[models.Storyline]:
    return list_storylines(db, status=models.PREVIEW, collection_id=collection_id)


def find_published_by_preview_id(db: Session, preview_id: UUID) -> models.Storyline | None:
    return store.find_one(
        db,
        models.Storyline,
        {"preview_version_id": preview_id, "status": models.PUBLISHED},
    )


def create_storyline(db: Session, payload: StorylineCreate) -> models.Storyline:
    """Create a preview storyline under one collection; titles are unique per collection."""

    collection = _preview_collection(db, payload.collection_id)
    if _title_taken(db, payload.title, [collection.id]):
        raise Conflict("A storyline with this title already exists in this collection")
    storyline = models.Storyline(
        title=payload.title,
        status=models.PREVIEW,
        bags=_dump_bags(payload.bags),
        stories=_dump_stories(payload.stories),
    )
    storyline.collections.append(collection)
    _persist(db, storyline)
    _logger.info("Created storyline %s in collection %s", storyline.id, collection.id)
    return storyline


def update_storyline(db: Session, storyline_id: UUID, payload: StorylineUpdate) -> models.Storyline:
    """Overlay the provided fields onto a preview storyline."""

    storyline = store.find_one(
        db, models.Storyline, {"id": storyline_id, "status": models.PREVIEW}
    )
    if storyline is None:
        raise NotFound("Preview storyline not found")

    collections = None
    if payload.collections is not None:
        collections = [_preview_collection(db, cid) for cid in dict.fromkeys(payload.collections)]
    target_collection_ids = (
        [c.id for c in collections] if collections is not None else storyline.collection_ids
    )
    title = payload.title.strip() if payload.title is not None else storyline.title
    if not title:
        raise ValidationError("Title is required")
    if (payload.title is not None or collections is not None) and _title_taken(
        db, title, target_collection_ids, exclude_id=storyline.id
    ):
        raise Conflict("A storyline with this title already exists in this collection")

    storyline.title = title
    if payload.bags is not None:
        storyline.bags = _dump_bags(payload.bags)
    if payload.stories is not None:
        storyline.stories = _dump_stories(payload.stories)
    if collections is not None:
        storyline.collections = collections
    return _persist(db, storyline)


def upsert_by_title(db: Session, items: Sequence[StorylineUpsert]) -> tuple[list[models.Storyline], list[dict[str, str]]]:
    """Create-or-update each preview storyline by title, collecting per-item errors."""

    saved: list[models.Storyline] = []
    errors: list[dict[str, str]] = []
    for item in items:
        try:
            try:
                existing = get_by_title(db, item.title, models.PREVIEW, item.collection_id)
            except NotFound:
                existing = None
            if existing is not None:
                saved.append(
                    update_storyline(
                        db,
                        existing.id,
                        StorylineUpdate(bags=item.bags, stories=item.stories),
                    )
                )
            elif item.collection_id is None:
                raise ValidationError("collection_id is required to create a storyline")
            else:
                saved.append(
                    create_storyline(
                        db,
                        StorylineCreate(
                            title=item.title,
                            collection_id=item.collection_id,
                            bags=item.bags,
                            stories=item.stories,
                        ),
                    )
                )
        except (NotFound, Conflict, ValidationError) as exc:
            errors.append({"item": item.title, "error": str(exc)})
    return saved, errors


def delete_storyline(db: Session, storyline_id: UUID) -> None:
    storyline = db.get(models.Storyline, storyline_id)
    if storyline is None:
        raise NotFound("Storyline not found")
    db.delete(storyline)
    db.commit()
    _after_delete(db, storyline_id)
    _logger.info("Deleted storyline %s", storyline_id)


def delete_all(db: Session, status: str | None = None) -> int:
    filters = {"status": status} if status else None
    storylines = store.find(db, models.Storyline, filters)
    ids = [storyline.id for storyline in storylines]
    for storyline in storylines:
        db.delete(storyline)
    db.commit()
    for storyline_id in ids:
        _after_delete(db, storyline_id)
    return len(ids)


def add_to_collection(db: Session, collection_id: UUID, storyline_id: UUID) -> models.Storyline:
    collection = _preview_collection(db, collection_id)
    storyline = store.find_one(
        db, models.Storyline, {"id": storyline_id, "status": models.PREVIEW}
    )
    if storyline is None:
        raise NotFound("Preview storyline not found")
    if collection.id in storyline.collection_ids:
        raise Conflict("Storyline is already in this collection")
    if _title_taken(db, storyline.title, [collection.id], exclude_id=storyline.id):
        raise Conflict("A storyline with this title already exists in this collection")
    storyline.collections.append(collection)
    return _persist(db, storyline)


def remove_from_collection(db: Session, collection_id: UUID, storyline_id: UUID) -> models.Storyline:
    collection = _preview_collection(db, collection_id)
    storyline = get_storyline(db, storyline_id, models.PREVIEW)
    if collection in storyline.collections:
        storyline.collections.remove(collection)
    return _persist(db, storyline)


def resync_locations(db: Session, storyline_ids: Iterable[UUID]) -> None:
    for storyline_id in storyline_ids:
        storyline = db.get(models.Storyline, storyline_id)
        if storyline is not None:
            _after_save(db, storyline)


def migrate_legacy_references(db: Session, storyline_id: UUID) -> int:
    """Make every bag image reference show up in its asset's location set.

    Additive only; bags without an ``image_asset`` are left alone.
    """

    storyline = get_storyline(db, storyline_id, models.PREVIEW)
    key = location_key(storyline)
    asset_ids = {
        _as_uuid(bag.get("image_asset"))
        for column in BAG_COLUMNS
        for bag in (storyline.bags or {}).get(column) or []
    }
    asset_ids.discard(None)
    added = store.add_to_set(db, asset_ids, key, storyline.id)
    db.commit()
    return added


def migrate_all_legacy_references(db: Session) -> dict[str, int]:
    processed = 0
    added = 0
    for storyline in store.find(db, models.Storyline, {"status": models.PREVIEW}):
        added += migrate_legacy_references(db, storyline.id)
        processed += 1
    return {"processed": processed, "added": added}


def _embed_assets(db: Session, bags: dict[str, Any], stories: list[dict[str, Any]]):
    """Replace live asset references with snapshots of the referenced assets."""

    image_ids = [
        bag["image_asset"]
        for column in BAG_COLUMNS
        for bag in bags.get(column) or []
        if bag.get("image_asset")
    ]
    audio_ids = [story["audio_asset"] for story in stories if story.get("audio_asset")]
    video_ids = [
        event["video_asset"]
        for story in stories
        for event in story.get("events") or []
        if event.get("video_asset")
    ]
    images = asset_registry.resolve_snapshots(db, image_ids, "image")
    audio = asset_registry.resolve_snapshots(db, audio_ids, "audio")
    video = asset_registry.resolve_snapshots(db, video_ids, "video")

    def embed(node: dict[str, Any], ref_field: str, embedded_field: str, snapshots):
        node = dict(node)
        ref = node.pop(ref_field, None)
        if ref:
            # unresolved references keep only their id
            node[embedded_field] = snapshots.get(str(ref)) or {"asset_id": str(ref)}
        return node

    embedded_bags = {
        column: [
            embed(bag, "image_asset", "embedded_image_asset", images)
            for bag in bags.get(column) or []
        ]
        for column in BAG_COLUMNS
    }
    embedded_stories = []
    for story in stories:
        story = embed(story, "audio_asset", "embedded_audio_asset", audio)
        story["events"] = [
            embed(event, "video_asset", "embedded_video_asset", video)
            for event in story.get("events") or []
        ]
        embedded_stories.append(story)
    return embedded_bags, embedded_stories


def publish_into(
    db: Session,
    preview: models.Storyline,
    published_collection: models.Collection,
) -> models.Storyline:
    """Create or overwrite the published twin of ``preview``."""

    bags, stories = _embed_assets(db, preview.bags or {}, list(preview.stories or []))
    twin = find_published_by_preview_id(db, preview.id)
    if twin is None:
        twin = models.Storyline(status=models.PUBLISHED, preview_version_id=preview.id)
    twin.title = preview.title
    twin.bags = bags
    twin.stories = stories
    twin.collections = [published_collection]
    db.add(twin)
    db.commit()
    db.refresh(twin)
    return twin


def clone_into(
    db: Session, source: models.Storyline, collection: models.Collection
) -> models.Storyline:
    """Copy a preview storyline into ``collection``, asset references included."""

    bags, stories = deep_copy_content(source.bags, source.stories)
    clone = models.Storyline(
        title=source.title,
        status=models.PREVIEW,
        bags=bags,
        stories=stories,
    )
    clone.collections.append(collection)
    return _persist(db, clone)


def detach_published(
    db: Session, published_collection: models.Collection, keep_preview_ids: Iterable[UUID]
) -> int:
    """Drop published storylines whose preview is no longer in the collection.

    A published storyline left without any collection is deleted.
    """

    keep = set(keep_preview_ids)
    detached = 0
    for storyline in list(published_collection.storylines):
        if storyline.status != models.PUBLISHED or storyline.preview_version_id in keep:
            continue
        storyline.collections.remove(published_collection)
        if not storyline.collections:
            db.delete(storyline)
        detached += 1
    db.commit()
    return detached


def serialize_storyline(storyline: models.Storyline) -> StorylineOut:
    return StorylineOut(
        id=storyline.id,
        title=storyline.title,
        status=storyline.status,
        collections=storyline.collection_ids,
        preview_version_id=storyline.preview_version_id,
        bags=storyline.bags or {},
        stories=storyline.stories or [],
        created_at=storyline.created_at,
        updated_at=storyline.updated_at,
    )
