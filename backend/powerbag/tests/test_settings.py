import uuid

import pytest

from powerbag import models
from powerbag.errors import NotFound, ValidationError
from powerbag.schemas import CollectionCreate, SettingUpdate
from powerbag.services import collections as collection_engine
from powerbag.services import settings as site_settings
from powerbag.tests.conftest import ensure_auth_headers


def test_set_setting_upserts_and_preserves_fields(db):
    created = site_settings.set_setting(
        db,
        SettingUpdate(
            key="siteTitle",
            value="Powerbag",
            type="string",
            description="Title",
            category="website",
            is_public=True,
        ),
    )
    assert created.category == "website"
    updated = site_settings.set_setting(
        db, SettingUpdate(key="siteTitle", value="Powerbag NL", type="string")
    )
    assert updated.id == created.id
    assert updated.value == "Powerbag NL"
    assert updated.description == "Title"
    assert updated.category == "website"
    assert updated.is_public is True


def test_set_setting_defaults_to_private_general(db):
    setting = site_settings.set_setting(db, SettingUpdate(key="maxItems", value=5, type="number"))
    assert setting.category == "general"
    assert setting.is_public is False
    assert site_settings.public_settings(db) == {}


def test_type_mismatch_is_rejected(db):
    with pytest.raises(ValidationError):
        site_settings.set_setting(db, SettingUpdate(key="maxItems", value="five", type="number"))
    with pytest.raises(ValidationError):
        site_settings.set_setting(db, SettingUpdate(key="flag", value=1, type="boolean"))


def test_website_collection_must_exist(db):
    with pytest.raises(ValidationError):
        site_settings.set_setting(
            db,
            SettingUpdate(key="websiteCollection", value=str(uuid.uuid4()), type="objectId"),
        )
    spring = collection_engine.create_collection(db, CollectionCreate(name="Spring"))
    setting = site_settings.set_setting(
        db, SettingUpdate(key="websiteCollection", value=str(spring.id), type="objectId")
    )
    assert setting.value == str(spring.id)


def test_initialize_default_settings_picks_oldest_published(db):
    site_settings.initialize_default_settings(db)
    with pytest.raises(NotFound):
        site_settings.get_setting(db, "websiteCollection")

    spring = collection_engine.create_collection(db, CollectionCreate(name="Spring"))
    summer = collection_engine.create_collection(db, CollectionCreate(name="Summer"))
    first, _ = collection_engine.publish(db, spring.id)
    collection_engine.publish(db, summer.id)

    site_settings.initialize_default_settings(db)
    setting = site_settings.get_setting(db, "websiteCollection")
    assert setting.value == str(first.id)
    assert site_settings.public_settings(db) == {"websiteCollection": str(first.id)}


def test_settings_api(client):
    headers, _ = ensure_auth_headers()
    resp = client.put(
        "/api/settings/",
        json={"key": "theme", "value": "dark", "type": "string", "is_public": True},
        headers=headers,
    )
    assert resp.status_code == 200
    assert client.get("/api/settings/public").json() == {"theme": "dark"}
    assert client.get("/api/settings/theme", headers=headers).json() == {"key": "theme", "value": "dark"}
    assert client.get("/api/settings/missing", headers=headers).status_code == 404
    assert client.get("/api/settings/").status_code == 401
    assert client.delete("/api/settings/theme", headers=headers).status_code == 204
