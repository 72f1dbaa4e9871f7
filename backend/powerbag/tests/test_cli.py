import uuid

from typer.testing import CliRunner

from powerbag import models, store
from powerbag.cli.migrate_locations import app
from powerbag.schemas import CollectionCreate, StorylineCreate
from powerbag.services import collections as collection_engine
from powerbag.services import storylines as storyline_engine
from .conftest import TestingSessionLocal, create_user

runner = CliRunner()


def _storyline_with_lost_location(session):
    owner = create_user(session)
    asset = models.ImageAsset(
        filename=f"assets/image/{owner.id}/1.png",
        original_name="cli.png",
        mime_type="image/png",
        size=1,
        url="http://cdn.example/cli.png",
        format="png",
        uploaded_by=owner.id,
    )
    session.add(asset)
    session.commit()
    spring = collection_engine.create_collection(session, CollectionCreate(name="CLI"))
    storyline = storyline_engine.create_storyline(
        session,
        StorylineCreate(
            title="Intro",
            collection_id=spring.id,
            bags={"first_column": [{"id": "b1", "image_asset": str(asset.id)}]},
        ),
    )
    store.pull(session, storyline_id=storyline.id)
    session.commit()
    return storyline.id, asset.id, storyline_engine.location_key(storyline)


def _locations(asset_id):
    session = TestingSessionLocal()
    try:
        return session.get(models.Asset, asset_id).location
    finally:
        session.close()


def test_migrate_legacy_references_single_storyline():
    session = TestingSessionLocal()
    try:
        storyline_id, asset_id, key = _storyline_with_lost_location(session)
    finally:
        session.close()

    result = runner.invoke(app, ["migrate-legacy-references", "--storyline-id", str(storyline_id)])
    assert result.exit_code == 0, result.output
    assert "Added 1 locations" in result.output
    assert _locations(asset_id) == [key]


def test_migrate_legacy_references_all():
    session = TestingSessionLocal()
    try:
        _, asset_id, key = _storyline_with_lost_location(session)
    finally:
        session.close()

    result = runner.invoke(app, ["migrate-legacy-references"])
    assert result.exit_code == 0, result.output
    assert "Processed 1 storylines, added 1 locations" in result.output
    assert _locations(asset_id) == [key]


def test_migrate_unknown_storyline_fails():
    result = runner.invoke(app, ["migrate-legacy-references", "--storyline-id", str(uuid.uuid4())])
    assert result.exit_code == 1


def test_resync_locations():
    session = TestingSessionLocal()
    try:
        _, asset_id, key = _storyline_with_lost_location(session)
    finally:
        session.close()

    result = runner.invoke(app, ["resync-locations"])
    assert result.exit_code == 0, result.output
    assert "Resynced 1 storylines" in result.output
    assert _locations(asset_id) == [key]
