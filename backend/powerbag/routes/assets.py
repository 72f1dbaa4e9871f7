import json
import os
import shutil
import tempfile
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import TypeAdapter, ValidationError as SchemaError
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..errors import ValidationError
from ..services import assets as asset_registry
from ..storage import BlobStore, get_blob_store, remove_temp_file
from .. import models, schemas

router = APIRouter(prefix="/api/assets", tags=["assets"])

_subtitles_adapter = TypeAdapter(List[schemas.Subtitle])


def _tmp_dir() -> str:
    tmp_dir = os.getenv("UPLOAD_TMP_DIR") or os.path.join(
        os.getenv("UPLOAD_DIR", "uploaded_files"), "tmp"
    )
    os.makedirs(tmp_dir, exist_ok=True)
    return tmp_dir


def _spool(upload: UploadFile) -> asset_registry.SpooledUpload:
    """Write an incoming file to the temp directory, enforcing MAX_UPLOAD_BYTES."""

    max_bytes = int(os.getenv("MAX_UPLOAD_BYTES", str(100 * 1024 * 1024)))
    extension = os.path.splitext(upload.filename or "")[1]
    with tempfile.NamedTemporaryFile(dir=_tmp_dir(), suffix=extension, delete=False) as out:
        try:
            shutil.copyfileobj(upload.file, out)
        except OSError:
            out.close()
            remove_temp_file(out.name)
            raise
        size = out.tell()
    if size > max_bytes:
        remove_temp_file(out.name)
        raise HTTPException(status_code=413, detail="File too large")
    return asset_registry.SpooledUpload(
        path=out.name,
        original_name=upload.filename or "file",
        mime_type=upload.content_type or "application/octet-stream",
        size=size,
    )


def _variant_fields(
    asset_type: str,
    alt_text: Optional[str],
    subtitles: Optional[str],
    metadata: Optional[str],
) -> dict:
    fields: dict = {}
    try:
        if asset_type == "image" and alt_text:
            if len(alt_text) > 200:
                raise ValidationError("alt_text must be at most 200 characters")
            fields["alt_text"] = alt_text
        if asset_type == "video" and subtitles:
            fields["subtitles"] = [
                s.model_dump() for s in _subtitles_adapter.validate_json(subtitles)
            ]
        if asset_type == "audio" and metadata:
            fields["metadata"] = schemas.AudioMetadata.model_validate(
                json.loads(metadata)
            ).model_dump(exclude_none=True)
    except (SchemaError, json.JSONDecodeError) as exc:
        raise ValidationError(f"Invalid {asset_type} metadata: {exc}") from exc
    return fields


def _check_type(asset_type: str) -> str:
    asset_registry.asset_model(asset_type)
    return asset_type


@router.post("/{asset_type}/upload", response_model=schemas.UploadResult)
async def upload_asset(
    asset_type: str,
    file: UploadFile = File(...),
    alt_text: Optional[str] = Form(None),
    subtitles: Optional[str] = Form(None),
    metadata: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    user: models.User = Depends(get_current_user),
):
    _check_type(asset_type)
    extra = _variant_fields(asset_type, alt_text, subtitles, metadata)
    spooled = _spool(file)
    status, asset = asset_registry.upload_asset(
        db,
        blob_store,
        asset_type=asset_type,
        upload=spooled,
        uploaded_by=user.id,
        **extra,
    )
    message = (
        "File uploaded successfully"
        if status == "created"
        else "File already exists, skipped upload"
    )
    return schemas.UploadResult(
        status=status, message=message, asset=asset_registry.serialize_asset(asset)
    )


@router.post("/{asset_type}/upload-multiple", response_model=schemas.BatchUploadOut)
async def upload_multiple(
    asset_type: str,
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    user: models.User = Depends(get_current_user),
):
    _check_type(asset_type)
    spooled = []
    try:
        for upload in files:
            spooled.append(_spool(upload))
    except HTTPException:
        for item in spooled:
            remove_temp_file(item.path)
        raise
    result = asset_registry.upload_many(
        db, blob_store, asset_type=asset_type, uploads=spooled, uploaded_by=user.id
    )
    return schemas.BatchUploadOut(
        message=f"Processed {len(files)} files",
        uploaded=[asset_registry.serialize_asset(a) for a in result["uploaded"]],
        skipped=[asset_registry.serialize_asset(a) for a in result["skipped"]],
        errors=result["errors"],
    )


@router.get("/{asset_type}", response_model=schemas.AssetPage)
async def list_assets(
    asset_type: str,
    page: int = 1,
    limit: int = 10,
    mine: bool = False,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    rows, pagination = asset_registry.list_assets(
        db,
        asset_type=_check_type(asset_type),
        page=page,
        limit=limit,
        uploaded_by=user.id if mine else None,
    )
    return schemas.AssetPage(
        data=[asset_registry.serialize_asset(a) for a in rows],
        pagination=pagination,
    )


@router.get("/item/{asset_id}", response_model=schemas.AssetOut)
async def get_asset(
    asset_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return asset_registry.serialize_asset(asset_registry.get_asset(db, asset_id))


@router.patch("/item/{asset_id}", response_model=schemas.AssetOut)
async def rename_asset(
    asset_id: UUID,
    data: schemas.AssetRename,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    asset = asset_registry.rename_asset(db, asset_id, data.filename, user)
    return asset_registry.serialize_asset(asset)


@router.delete("/item/{asset_id}", status_code=204)
async def delete_asset(
    asset_id: UUID,
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    user: models.User = Depends(get_current_user),
):
    asset_registry.delete_asset(db, blob_store, asset_id, user)
    return


@router.delete("/", response_model=schemas.DeletedCount)
async def delete_all_assets(
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    user: models.User = Depends(get_current_user),
):
    return asset_registry.delete_all_assets(db, blob_store, user.id)
