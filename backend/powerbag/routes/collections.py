from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from ..services import collections as collection_engine
from ..services import storylines as storyline_engine
from .. import models, schemas

router = APIRouter(prefix="/api/collections", tags=["collections"])


def _publish_out(collection, storylines) -> schemas.PublishOut:
    return schemas.PublishOut(
        collection=collection_engine.serialize_collection(collection),
        storylines=[storyline_engine.serialize_storyline(s) for s in storylines],
    )


@router.get("/", response_model=list[schemas.CollectionOut])
async def list_collections(
    status: schemas.Status = "published",
    include_storylines: bool = False,
    db: Session = Depends(get_db),
    user: Optional[models.User] = Depends(get_optional_user),
):
    # anonymous callers only ever see published content
    if user is None:
        status = models.PUBLISHED
    return [
        collection_engine.serialize_collection(c, include_storylines)
        for c in collection_engine.list_collections(db, status)
    ]


@router.post("/publish-all", response_model=schemas.PublishAllOut)
async def publish_all(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    published, errors = collection_engine.publish_all(db, user.id)
    return schemas.PublishAllOut(
        published=[_publish_out(c, s) for c, s in published],
        errors=errors,
    )


@router.get("/{collection_id}", response_model=schemas.CollectionOut)
async def get_collection(
    collection_id: UUID,
    include_storylines: bool = True,
    db: Session = Depends(get_db),
    user: Optional[models.User] = Depends(get_optional_user),
):
    status = None if user is not None else models.PUBLISHED
    collection = collection_engine.get_collection(db, collection_id, status)
    return collection_engine.serialize_collection(collection, include_storylines)


@router.post("/", response_model=schemas.CollectionOut)
async def create_collection(
    data: schemas.CollectionCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    collection = collection_engine.create_collection(db, data, user.id)
    return collection_engine.serialize_collection(collection)


@router.put("/{collection_id}", response_model=schemas.CollectionOut)
async def update_collection(
    collection_id: UUID,
    data: schemas.CollectionUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    collection = collection_engine.update_collection(db, collection_id, data)
    return collection_engine.serialize_collection(collection)


@router.delete("/{collection_id}", status_code=204)
async def delete_collection(
    collection_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    collection_engine.delete_collection(db, collection_id, user.id)
    return


@router.post("/{collection_id}/publish", response_model=schemas.PublishOut)
async def publish_collection(
    collection_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    collection, storylines = collection_engine.publish(db, collection_id, user.id)
    return _publish_out(collection, storylines)


@router.get("/{collection_id}/publish-status", response_model=schemas.PublishStatusOut)
async def publish_status(
    collection_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return collection_engine.publish_status(db, collection_id)


@router.get("/{collection_id}/compare", response_model=schemas.VersionComparison)
async def compare_versions(
    collection_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return collection_engine.compare_versions(db, collection_id)


@router.post("/{collection_id}/duplicate", response_model=schemas.DuplicateOut)
async def duplicate_collection(
    collection_id: UUID,
    data: schemas.DuplicateRequest = schemas.DuplicateRequest(),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    collection, storylines = collection_engine.duplicate(
        db, collection_id, data.include_storylines, user.id
    )
    return schemas.DuplicateOut(
        collection=collection_engine.serialize_collection(collection),
        storylines=[storyline_engine.serialize_storyline(s) for s in storylines],
    )


@router.post("/{collection_id}/storylines/{storyline_id}", response_model=schemas.MembershipOut)
async def add_storyline(
    collection_id: UUID,
    storyline_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    storyline_engine.add_to_collection(db, collection_id, storyline_id)
    return schemas.MembershipOut(
        collection_id=collection_id,
        storyline_id=storyline_id,
        message="Storyline added to collection",
    )


@router.delete("/{collection_id}/storylines/{storyline_id}", response_model=schemas.MembershipOut)
async def remove_storyline(
    collection_id: UUID,
    storyline_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    storyline_engine.remove_from_collection(db, collection_id, storyline_id)
    return schemas.MembershipOut(
        collection_id=collection_id,
        storyline_id=storyline_id,
        message="Storyline removed from collection",
    )
