"""CLI utilities for repairing asset location back-references."""

# purpose: let administrators rebuild asset locations from storyline content
# status: active
# depends_on: powerbag.database, powerbag.services.storylines

from __future__ import annotations

from typing import Optional
from uuid import UUID

import typer

from ..database import SessionLocal
from ..errors import NotFound
from ..services import storylines as storyline_engine
from .. import models, store

app = typer.Typer(help="Asset location maintenance commands")


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid UUID: {value}") from exc


@app.command("migrate-legacy-references")
def migrate_legacy_references(
    storyline_id: Optional[str] = typer.Option(
        None, "--storyline-id", help="Only repair this preview storyline"
    ),
) -> None:
    """Add missing locations for bag images referenced by preview storylines."""

    session = SessionLocal()
    try:
        if storyline_id:
            try:
                added = storyline_engine.migrate_legacy_references(
                    session, _parse_uuid(storyline_id)
                )
            except NotFound as exc:
                typer.echo(str(exc), err=True)
                raise typer.Exit(code=1) from exc
            typer.echo(f"Added {added} locations for storyline {storyline_id}")
            return
        result = storyline_engine.migrate_all_legacy_references(session)
        typer.echo(
            f"Processed {result['processed']} storylines, added {result['added']} locations"
        )
    finally:
        session.close()


@app.command("resync-locations")
def resync_locations() -> None:
    """Rerun the full location sync for every preview storyline."""

    session = SessionLocal()
    try:
        ids = [s.id for s in store.find(session, models.Storyline, {"status": models.PREVIEW})]
        storyline_engine.resync_locations(session, ids)
        typer.echo(f"Resynced {len(ids)} storylines")
    finally:
        session.close()


if __name__ == "__main__":  # pragma: no cover
    app()
