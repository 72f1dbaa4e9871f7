from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user, get_optional_user
from ..services import storylines as storyline_engine
from .. import models, schemas

router = APIRouter(prefix="/api/storylines", tags=["storylines"])


@router.get("/", response_model=list[schemas.StorylineOut])
async def list_storylines(
    status: schemas.Status = "published",
    titles: Optional[List[str]] = Query(None),
    collection_id: Optional[UUID] = None,
    db: Session = Depends(get_db),
    user: Optional[models.User] = Depends(get_optional_user),
):
    if user is None:
        status = models.PUBLISHED
    storylines = storyline_engine.list_storylines(
        db, status=status, titles=titles, collection_id=collection_id
    )
    return [storyline_engine.serialize_storyline(s) for s in storylines]


@router.get("/by-title/{title}", response_model=schemas.StorylineOut)
async def get_storyline_by_title(
    title: str,
    status: schemas.Status = "preview",
    collection_id: Optional[UUID] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    storyline = storyline_engine.get_by_title(db, title, status, collection_id)
    return storyline_engine.serialize_storyline(storyline)


@router.get("/{storyline_id}", response_model=schemas.StorylineOut)
async def get_storyline(
    storyline_id: UUID,
    db: Session = Depends(get_db),
    user: Optional[models.User] = Depends(get_optional_user),
):
    status = None if user is not None else models.PUBLISHED
    storyline = storyline_engine.get_storyline(db, storyline_id, status)
    return storyline_engine.serialize_storyline(storyline)


@router.post("/", response_model=schemas.StorylineOut)
async def create_storyline(
    data: schemas.StorylineCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    storyline = storyline_engine.create_storyline(db, data)
    return storyline_engine.serialize_storyline(storyline)


@router.put("/", response_model=schemas.StorylineBatchOut)
async def upsert_storylines(
    items: List[schemas.StorylineUpsert],
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    saved, errors = storyline_engine.upsert_by_title(db, items)
    return schemas.StorylineBatchOut(
        storylines=[storyline_engine.serialize_storyline(s) for s in saved],
        errors=errors,
    )


@router.put("/{storyline_id}", response_model=schemas.StorylineOut)
async def update_storyline(
    storyline_id: UUID,
    data: schemas.StorylineUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    storyline = storyline_engine.update_storyline(db, storyline_id, data)
    return storyline_engine.serialize_storyline(storyline)


@router.delete("/", response_model=schemas.DeletedCount)
async def delete_all_storylines(
    status: Optional[schemas.Status] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return schemas.DeletedCount(deleted_count=storyline_engine.delete_all(db, status))


@router.delete("/{storyline_id}", status_code=204)
async def delete_storyline(
    storyline_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    storyline_engine.delete_storyline(db, storyline_id)
    return


@router.post("/{storyline_id}/migrate-references")
async def migrate_references(
    storyline_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    added = storyline_engine.migrate_legacy_references(db, storyline_id)
    return {"storyline_id": storyline_id, "added": added}
