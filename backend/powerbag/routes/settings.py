from typing import Any, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..services import settings as site_settings
from .. import models, schemas

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("/public", response_model=dict[str, Any])
async def public_settings(db: Session = Depends(get_db)):
    return site_settings.public_settings(db)


@router.get("/", response_model=list[schemas.SettingOut])
async def list_settings(
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return site_settings.list_settings(db, category)


@router.get("/{key}", response_model=schemas.SettingValueOut)
async def get_setting(
    key: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    setting = site_settings.get_setting(db, key)
    return schemas.SettingValueOut(key=setting.key, value=setting.value)


@router.put("/", response_model=schemas.SettingOut)
async def set_setting(
    data: schemas.SettingUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return site_settings.set_setting(db, data)


@router.delete("/{key}", status_code=204)
async def delete_setting(
    key: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    site_settings.delete_setting(db, key)
    return
