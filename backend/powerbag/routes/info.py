from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas

router = APIRouter(prefix="/api/info", tags=["info"])


def _current(db: Session) -> models.Info | None:
    return db.query(models.Info).order_by(models.Info.created_at).first()


@router.get("/", response_model=schemas.InfoOut)
async def get_info(db: Session = Depends(get_db)):
    info = _current(db)
    if not info:
        raise HTTPException(status_code=404, detail="Info not found")
    return info


@router.post("/", response_model=schemas.InfoOut)
async def create_info(
    data: schemas.InfoIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    if not data.en.strip() or not data.nl.strip():
        raise HTTPException(status_code=400, detail="Both en and nl content are required")
    if _current(db):
        raise HTTPException(status_code=409, detail="Info already exists, update it instead")
    info = models.Info(en=data.en, nl=data.nl)
    db.add(info)
    db.commit()
    db.refresh(info)
    return info


@router.put("/", response_model=schemas.InfoOut)
async def update_info(
    data: schemas.InfoIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    info = _current(db)
    if not info:
        raise HTTPException(status_code=404, detail="Info not found")
    info.en = data.en
    info.nl = data.nl
    db.commit()
    db.refresh(info)
    return info
