"""Persistence helpers shared by the content engines."""

# purpose: keep filtered reads and set-style array updates in one place
# status: active

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping, TypeVar
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy import select
from sqlalchemy.orm import Session

from . import models

T = TypeVar("T")


def _filtered(model: type[T], filters: Mapping[str, Any] | None):
    stmt = select(model)
    for field, value in (filters or {}).items():
        column = getattr(model, field)
        if isinstance(value, (list, tuple, set, frozenset)):
            stmt = stmt.where(column.in_(list(value)))
        elif value is None:
            stmt = stmt.where(column.is_(None))
        else:
            stmt = stmt.where(column == value)
    return stmt


def find(
    db: Session,
    model: type[T],
    filters: Mapping[str, Any] | None = None,
    *,
    order_by=None,
    skip: int = 0,
    limit: int | None = None,
) -> list[T]:
    """Return rows matching equality (or membership, for sequences) filters."""

    stmt = _filtered(model, filters)
    if order_by is not None:
        stmt = stmt.order_by(order_by)
    if skip:
        stmt = stmt.offset(skip)
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(db.scalars(stmt).all())


def find_one(db: Session, model: type[T], filters: Mapping[str, Any]) -> T | None:
    return db.scalars(_filtered(model, filters).limit(1)).first()


def count(db: Session, model: type[T], filters: Mapping[str, Any] | None = None) -> int:
    stmt = select(sa.func.count()).select_from(_filtered(model, filters).subquery())
    return db.scalar(stmt) or 0


def paginate(
    db: Session,
    model: type[T],
    filters: Mapping[str, Any] | None = None,
    *,
    page: int = 1,
    limit: int = 10,
    order_by=None,
) -> tuple[list[T], dict[str, int]]:
    page = max(page, 1)
    limit = max(limit, 1)
    rows = find(db, model, filters, order_by=order_by, skip=(page - 1) * limit, limit=limit)
    total = count(db, model, filters)
    return rows, {
        "current_page": page,
        "total_pages": math.ceil(total / limit),
        "total_items": total,
        "items_per_page": limit,
    }


def add_to_set(
    db: Session,
    asset_ids: Iterable[UUID],
    location_key: str,
    storyline_id: UUID,
) -> int:
    """Add ``location_key`` to the location set of each existing asset; returns rows added."""

    wanted = set(asset_ids)
    if not wanted:
        return 0
    existing_assets = set(
        db.scalars(select(models.Asset.id).where(models.Asset.id.in_(wanted))).all()
    )
    already = set(
        db.scalars(
            select(models.AssetLocation.asset_id).where(
                models.AssetLocation.asset_id.in_(existing_assets),
                models.AssetLocation.location_key == location_key,
            )
        ).all()
    )
    added = 0
    for asset_id in existing_assets - already:
        db.add(
            models.AssetLocation(
                asset_id=asset_id,
                location_key=location_key,
                storyline_id=storyline_id,
            )
        )
        added += 1
    db.flush()
    db.expire_all()
    return added


def pull(
    db: Session,
    *,
    location_key: str | None = None,
    storyline_id: UUID | None = None,
    asset_id: UUID | None = None,
) -> int:
    """Remove matching entries from every asset's location set; returns rows removed."""

    if location_key is None and storyline_id is None and asset_id is None:
        raise ValueError("pull requires at least one filter")
    stmt = sa.delete(models.AssetLocation)
    if location_key is not None:
        stmt = stmt.where(models.AssetLocation.location_key == location_key)
    if storyline_id is not None:
        stmt = stmt.where(models.AssetLocation.storyline_id == storyline_id)
    if asset_id is not None:
        stmt = stmt.where(models.AssetLocation.asset_id == asset_id)
    db.flush()
    result = db.execute(stmt.execution_options(synchronize_session=False))
    db.expire_all()
    return result.rowcount or 0


def pull_collection(db: Session, collection_id: UUID) -> list[UUID]:
    """Remove ``collection_id`` from every storyline's collections; returns the storylines touched."""

    table = models.storyline_collections
    storyline_ids = list(
        db.scalars(
            select(table.c.storyline_id).where(table.c.collection_id == collection_id)
        ).all()
    )
    if storyline_ids:
        db.flush()
        db.execute(sa.delete(table).where(table.c.collection_id == collection_id))
        db.expire_all()
    return storyline_ids
