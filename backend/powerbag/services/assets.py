"""Asset registry: upload, dedup, deletion and location tracking for media blobs."""

# purpose: own the lifecycle of image, audio and video assets referenced by storylines
# status: active
# depends_on: powerbag.storage, powerbag.store

from __future__ import annotations

import logging
import os
import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Iterable, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, store
from ..errors import Conflict, Forbidden, NotFound, StorageFailure, ValidationError
from ..schemas import AssetOut
from ..storage import BlobStore, remove_temp_file

_logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES: dict[str, tuple[str, ...]] = {
    "image": (
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/svg+xml",
    ),
    "video": (
        "video/mp4",
        "video/avi",
        "video/quicktime",
        "video/x-ms-wmv",
        "video/x-flv",
        "video/webm",
    ),
    "audio": ("audio/mpeg", "audio/wav", "audio/flac", "audio/aac", "audio/ogg"),
}

_ASSET_MODELS: dict[str, type[models.Asset]] = {
    "image": models.ImageAsset,
    "audio": models.AudioAsset,
    "video": models.VideoAsset,
}

_PLACEHOLDER_DURATION = 120.0


@dataclass
class SpooledUpload:
    """An uploaded file already written to local temporary storage."""

    path: str
    original_name: str
    mime_type: str
    size: int


def asset_model(asset_type: str) -> type[models.Asset]:
    try:
        return _ASSET_MODELS[asset_type]
    except KeyError:
        raise ValidationError("Invalid asset type. Must be image, video, or audio") from None


def sanitize_filename(name: str) -> str:
    """Transliterate to ASCII and collapse separators, keeping the extension."""

    stem, extension = os.path.splitext(os.path.basename(name or ""))
    ascii_stem = unicodedata.normalize("NFKD", stem).encode("ascii", "ignore").decode("ascii")
    ascii_stem = re.sub(r"[^A-Za-z0-9._-]+", "-", ascii_stem)
    ascii_stem = re.sub(r"[-_.\s]{2,}", "-", ascii_stem).strip("-_. ")
    extension = re.sub(r"[^A-Za-z0-9.]", "", extension).lower()
    return f"{ascii_stem or 'file'}{extension}"


def detect_format(asset_type: str, mime_type: str, filename: str) -> str:
    if asset_type == "image":
        subtype = mime_type.split("/", 1)[-1]
        return "svg" if subtype.startswith("svg") else subtype
    return os.path.splitext(filename)[1].lstrip(".").lower()


def probe_duration(path: str) -> float:
    # TODO: replace with an ffprobe call once ffmpeg ships in the runtime image
    return _PLACEHOLDER_DURATION


def find_duplicate(
    db: Session,
    *,
    original_name: str,
    size: int,
    mime_type: str,
    uploaded_by: UUID,
) -> models.Asset | None:
    return store.find_one(
        db,
        models.Asset,
        {
            "original_name": original_name,
            "size": size,
            "mime_type": mime_type,
            "uploaded_by": uploaded_by,
        },
    )


def upload_asset(
    db: Session,
    blob_store: BlobStore,
    *,
    asset_type: str,
    upload: SpooledUpload,
    uploaded_by: UUID,
    alt_text: str | None = None,
    subtitles: Sequence[dict[str, str]] | None = None,
    metadata: dict[str, Any] | None = None,
) -> tuple[str, models.Asset]:
    """Store a spooled upload and record it; returns ``("created"|"skipped", asset)``.

    The spooled file is removed on every exit path.
    """

    try:
        model = asset_model(asset_type)
        if upload.mime_type not in ALLOWED_MIME_TYPES[asset_type]:
            raise ValidationError(
                f"Invalid file type for {asset_type} upload. Allowed types: "
                + ", ".join(ALLOWED_MIME_TYPES[asset_type])
            )
        original_name = sanitize_filename(upload.original_name)
        existing = find_duplicate(
            db,
            original_name=original_name,
            size=upload.size,
            mime_type=upload.mime_type,
            uploaded_by=uploaded_by,
        )
        if existing is not None:
            _logger.info("Skipping duplicate upload of %s for %s", original_name, uploaded_by)
            return "skipped", existing

        key = blob_store.generate_key(str(uploaded_by), asset_type, upload.original_name)
        url = blob_store.put(
            key,
            upload.path,
            upload.mime_type,
            {
                "originalName": original_name,
                "uploadedBy": str(uploaded_by),
                "assetType": asset_type,
            },
        )
        fields: dict[str, Any] = {
            "filename": key,
            "original_name": original_name,
            "mime_type": upload.mime_type,
            "size": upload.size,
            "url": url,
            "uploaded_by": uploaded_by,
            "format": detect_format(asset_type, upload.mime_type, upload.original_name),
        }
        if asset_type == "image":
            fields["alt_text"] = alt_text
        elif asset_type == "video":
            fields["duration"] = probe_duration(upload.path)
            fields["subtitles"] = list(subtitles or [])
        else:
            fields["duration"] = probe_duration(upload.path)
            fields["meta"] = dict(metadata or {})
        asset = model(**fields)
        db.add(asset)
        db.commit()
        db.refresh(asset)
        _logger.info("Uploaded %s asset %s (%s)", asset_type, asset.id, key)
        return "created", asset
    finally:
        remove_temp_file(upload.path)


def upload_many(
    db: Session,
    blob_store: BlobStore,
    *,
    asset_type: str,
    uploads: Sequence[SpooledUpload],
    uploaded_by: UUID,
    **extra: Any,
) -> dict[str, list]:
    """Upload each file in turn, collecting per-item failures."""

    result: dict[str, list] = {"uploaded": [], "skipped": [], "errors": []}
    try:
        for upload in uploads:
            try:
                status, asset = upload_asset(
                    db,
                    blob_store,
                    asset_type=asset_type,
                    upload=upload,
                    uploaded_by=uploaded_by,
                    **extra,
                )
            except (ValidationError, StorageFailure) as exc:
                db.rollback()
                _logger.warning("Upload of %s failed: %s", upload.original_name, exc)
                result["errors"].append({"item": upload.original_name, "error": str(exc)})
                continue
            result["uploaded" if status == "created" else "skipped"].append(asset)
    finally:
        # an unexpected error aborts the batch; spooled files must not outlive it
        for upload in uploads:
            remove_temp_file(upload.path)
    return result


def get_asset(db: Session, asset_id: UUID) -> models.Asset:
    asset = db.get(models.Asset, asset_id)
    if asset is None:
        raise NotFound("Asset not found")
    return asset


def list_assets(
    db: Session,
    *,
    asset_type: str,
    page: int = 1,
    limit: int = 10,
    uploaded_by: UUID | None = None,
) -> tuple[list[models.Asset], dict[str, int]]:
    model = asset_model(asset_type)
    filters: dict[str, Any] = {}
    if uploaded_by is not None:
        filters["uploaded_by"] = uploaded_by
    return store.paginate(
        db,
        model,
        filters,
        page=page,
        limit=limit,
        order_by=model.created_at.desc(),
    )


def _assert_can_modify(asset: models.Asset, user: models.User) -> None:
    if user.is_admin or asset.uploaded_by == user.id:
        return
    raise Forbidden("You can only modify your own assets")


def delete_asset(db: Session, blob_store: BlobStore, asset_id: UUID, user: models.User) -> None:
    """Remove the blob, then the record."""

    asset = get_asset(db, asset_id)
    _assert_can_modify(asset, user)
    blob_store.delete(asset.filename)
    db.delete(asset)
    db.commit()
    _logger.info("Deleted asset %s", asset_id)


def delete_all_assets(db: Session, blob_store: BlobStore, owner_id: UUID) -> dict[str, Any]:
    assets = store.find(db, models.Asset, {"uploaded_by": owner_id})
    deleted = 0
    errors: list[dict[str, str]] = []
    for asset in assets:
        asset_id = asset.id
        try:
            blob_store.delete(asset.filename)
            db.delete(asset)
            db.commit()
        except StorageFailure as exc:
            db.rollback()
            errors.append({"item": str(asset_id), "error": str(exc)})
            continue
        deleted += 1
    if errors:
        _logger.warning("Bulk delete for %s left %d assets behind", owner_id, len(errors))
    return {"deleted_count": deleted, "errors": errors}


def rename_asset(db: Session, asset_id: UUID, filename: str, user: models.User) -> models.Asset:
    """Update the display filename; unique per owner."""

    asset = get_asset(db, asset_id)
    _assert_can_modify(asset, user)
    if not filename or not filename.strip():
        raise ValidationError("filename is required")
    new_name = sanitize_filename(filename)
    clash = store.find_one(
        db,
        models.Asset,
        {"original_name": new_name, "uploaded_by": asset.uploaded_by},
    )
    if clash is not None and clash.id != asset.id:
        raise Conflict("An asset with this filename already exists")
    asset.original_name = new_name
    db.commit()
    db.refresh(asset)
    return asset


def add_location(db: Session, asset_id: UUID, location_key: str, storyline_id: UUID) -> None:
    store.add_to_set(db, [asset_id], location_key, storyline_id)


def remove_location(db: Session, asset_id: UUID, location_key: str) -> None:
    store.pull(db, asset_id=asset_id, location_key=location_key)


def embedded_snapshot(asset: models.Asset) -> dict[str, str]:
    return {
        "asset_id": str(asset.id),
        "original_name": asset.original_name,
        "url": asset.url,
        "format": asset.format,
    }


def resolve_snapshots(
    db: Session, asset_ids: Iterable[UUID], asset_type: str
) -> dict[str, dict[str, str]]:
    """Snapshots for the ids that exist and have the expected variant."""

    model = asset_model(asset_type)
    ids = {UUID(str(asset_id)) for asset_id in asset_ids}
    if not ids:
        return {}
    return {str(asset.id): embedded_snapshot(asset) for asset in store.find(db, model, {"id": ids})}


def serialize_asset(asset: models.Asset) -> AssetOut:
    return AssetOut(
        id=asset.id,
        asset_type=asset.asset_type,
        filename=asset.filename,
        original_name=asset.original_name,
        mime_type=asset.mime_type,
        size=asset.size,
        url=asset.url,
        format=asset.format,
        uploaded_by=asset.uploaded_by,
        location=asset.location,
        duration=asset.duration,
        alt_text=getattr(asset, "alt_text", None),
        subtitles=getattr(asset, "subtitles", None),
        metadata=getattr(asset, "meta", None),
        created_at=asset.created_at,
        updated_at=asset.updated_at,
    )
