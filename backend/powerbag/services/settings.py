"""Key/value site settings."""

# purpose: typed site settings with public/private visibility
# status: active

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, store
from ..errors import NotFound, ValidationError
from ..schemas import SettingUpdate

_logger = logging.getLogger(__name__)

WEBSITE_COLLECTION = "websiteCollection"

_PYTHON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "boolean": (bool,),
    "object": (dict,),
    "array": (list,),
    "objectId": (str,),
}


def _check_value(key: str, value: Any, value_type: str, db: Session) -> Any:
    if value is None:
        return None
    expected = _PYTHON_TYPES[value_type]
    # bool is an int subclass
    if value_type == "number" and isinstance(value, bool):
        raise ValidationError(f"Setting {key} expects a number")
    if not isinstance(value, expected):
        raise ValidationError(f"Setting {key} expects a value of type {value_type}")
    if value_type == "objectId":
        try:
            value = str(UUID(value))
        except ValueError:
            raise ValidationError(f"Setting {key} expects an id") from None
    if key == WEBSITE_COLLECTION and db.get(models.Collection, UUID(str(value))) is None:
        raise ValidationError("websiteCollection must reference an existing collection")
    return value


def get_setting(db: Session, key: str) -> models.Setting:
    setting = store.find_one(db, models.Setting, {"key": key})
    if setting is None:
        raise NotFound(f"Setting {key} not found")
    return setting


def list_settings(db: Session, category: str | None = None) -> list[models.Setting]:
    filters = {"category": category} if category else None
    return store.find(db, models.Setting, filters, order_by=models.Setting.key)


def public_settings(db: Session) -> dict[str, Any]:
    return {s.key: s.value for s in store.find(db, models.Setting, {"is_public": True})}


def set_setting(db: Session, payload: SettingUpdate) -> models.Setting:
    """Upsert a setting; omitted description, category and visibility are kept."""

    key = payload.key.strip()
    if not key:
        raise ValidationError("Setting key is required")
    value = _check_value(key, payload.value, payload.type, db)
    setting = store.find_one(db, models.Setting, {"key": key})
    if setting is None:
        setting = models.Setting(key=key, category="general", is_public=False)
        db.add(setting)
    setting.value = value
    setting.value_type = payload.type
    if payload.description is not None:
        setting.description = payload.description
    if payload.category is not None:
        setting.category = payload.category
    if payload.is_public is not None:
        setting.is_public = payload.is_public
    db.commit()
    db.refresh(setting)
    return setting


def delete_setting(db: Session, key: str) -> None:
    setting = get_setting(db, key)
    db.delete(setting)
    db.commit()


def initialize_default_settings(db: Session) -> None:
    """Point ``websiteCollection`` at the oldest published collection when unset."""

    existing = store.find_one(db, models.Setting, {"key": WEBSITE_COLLECTION})
    if existing is not None and existing.value:
        return
    published = store.find(
        db,
        models.Collection,
        {"status": models.PUBLISHED},
        order_by=models.Collection.created_at,
        limit=1,
    )
    if not published:
        return
    set_setting(
        db,
        SettingUpdate(
            key=WEBSITE_COLLECTION,
            value=str(published[0].id),
            type="objectId",
            description="Collection shown on the public website",
            category="website",
            is_public=True,
        ),
    )
    _logger.info("Defaulted %s to %s", WEBSITE_COLLECTION, published[0].id)
