import json
import os
import uuid

import pytest

from powerbag import models
from powerbag.errors import Conflict, Forbidden, NotFound, StorageFailure, ValidationError
from powerbag.services import assets as asset_registry
from powerbag.storage import BlobStore
from powerbag.tests.conftest import create_user, ensure_auth_headers


def _spool(tmp_path, name="Zoë Photo.PNG", data=b"\x89PNG fake", mime="image/png"):
    path = tmp_path / f"{uuid.uuid4().hex}.upload"
    path.write_bytes(data)
    return asset_registry.SpooledUpload(
        path=str(path), original_name=name, mime_type=mime, size=len(data)
    )


class FailingBlobStore(BlobStore):
    def put(self, key, source_path, content_type, metadata=None):
        raise StorageFailure("Failed to upload file to storage")

    def delete(self, key):
        raise StorageFailure("Failed to delete file from storage")


def test_sanitize_filename():
    assert asset_registry.sanitize_filename("Zoë  Photo__final.PNG") == "Zoe-Photo-final.png"
    assert asset_registry.sanitize_filename("../../etc/passwd") == "passwd"
    assert asset_registry.sanitize_filename("日本.jpg") == "file.jpg"
    assert asset_registry.sanitize_filename("") == "file"


def test_generate_key_layout():
    key = BlobStore.generate_key("owner-1", "image", "Photo.JPG")
    prefix, asset_type, owner, leaf = key.split("/")
    assert (prefix, asset_type, owner) == ("assets", "image", "owner-1")
    assert leaf.endswith(".jpg")
    assert leaf[:-4].isdigit()


def test_upload_creates_asset_and_removes_temp(db, blob_store, tmp_path):
    owner = create_user(db)
    upload = _spool(tmp_path)
    status, asset = asset_registry.upload_asset(
        db, blob_store, asset_type="image", upload=upload, uploaded_by=owner.id, alt_text="A photo"
    )
    assert status == "created"
    assert asset.asset_type == "image"
    assert asset.original_name == "Zoe-Photo.png"
    assert asset.format == "png"
    assert asset.alt_text == "A photo"
    assert asset.filename.startswith(f"assets/image/{owner.id}/")
    assert blob_store.exists(asset.filename)
    assert not os.path.exists(upload.path)


def test_upload_dedup_skips_second_copy(db, blob_store, tmp_path):
    owner = create_user(db)
    _, first = asset_registry.upload_asset(
        db, blob_store, asset_type="image", upload=_spool(tmp_path), uploaded_by=owner.id
    )
    second_upload = _spool(tmp_path)
    status, second = asset_registry.upload_asset(
        db, blob_store, asset_type="image", upload=second_upload, uploaded_by=owner.id
    )
    assert status == "skipped"
    assert second.id == first.id
    assert db.query(models.Asset).count() == 1
    assert not os.path.exists(second_upload.path)

    other = create_user(db)
    status, _ = asset_registry.upload_asset(
        db, blob_store, asset_type="image", upload=_spool(tmp_path), uploaded_by=other.id
    )
    assert status == "created"


def test_upload_rejects_bad_mime_and_cleans_up(db, blob_store, tmp_path):
    owner = create_user(db)
    upload = _spool(tmp_path, name="notes.txt", mime="text/plain")
    with pytest.raises(ValidationError):
        asset_registry.upload_asset(
            db, blob_store, asset_type="image", upload=upload, uploaded_by=owner.id
        )
    assert not os.path.exists(upload.path)


def test_upload_storage_failure_cleans_up(db, tmp_path):
    owner = create_user(db)
    upload = _spool(tmp_path)
    with pytest.raises(StorageFailure):
        asset_registry.upload_asset(
            db, FailingBlobStore(), asset_type="image", upload=upload, uploaded_by=owner.id
        )
    assert not os.path.exists(upload.path)
    assert db.query(models.Asset).count() == 0


def test_upload_audio_and_video_variants(db, blob_store, tmp_path):
    owner = create_user(db)
    _, audio = asset_registry.upload_asset(
        db,
        blob_store,
        asset_type="audio",
        upload=_spool(tmp_path, name="voice.mp3", mime="audio/mpeg"),
        uploaded_by=owner.id,
        metadata={"title": "Voice"},
    )
    _, video = asset_registry.upload_asset(
        db,
        blob_store,
        asset_type="video",
        upload=_spool(tmp_path, name="clip.webm", mime="video/webm"),
        uploaded_by=owner.id,
        subtitles=[{"language": "nl", "url": "http://cdn.example/nl.vtt"}],
    )
    assert isinstance(audio, models.AudioAsset)
    assert audio.format == "mp3"
    assert audio.meta == {"title": "Voice"}
    assert audio.duration == 120.0
    assert isinstance(video, models.VideoAsset)
    assert video.format == "webm"
    assert video.subtitles[0]["language"] == "nl"


def test_upload_many_collects_errors(db, blob_store, tmp_path):
    owner = create_user(db)
    good = _spool(tmp_path, name="a.png")
    dup = _spool(tmp_path, name="a.png")
    bad = _spool(tmp_path, name="b.txt", mime="text/plain")
    result = asset_registry.upload_many(
        db, blob_store, asset_type="image", uploads=[good, dup, bad], uploaded_by=owner.id
    )
    assert len(result["uploaded"]) == 1
    assert len(result["skipped"]) == 1
    assert [e["item"] for e in result["errors"]] == ["b.txt"]
    for upload in (good, dup, bad):
        assert not os.path.exists(upload.path)


def test_list_assets_paginates(db, blob_store, tmp_path):
    owner = create_user(db)
    for i in range(3):
        asset_registry.upload_asset(
            db,
            blob_store,
            asset_type="image",
            upload=_spool(tmp_path, name=f"img-{i}.png"),
            uploaded_by=owner.id,
        )
    rows, pagination = asset_registry.list_assets(db, asset_type="image", page=2, limit=2)
    assert len(rows) == 1
    assert pagination == {
        "current_page": 2,
        "total_pages": 2,
        "total_items": 3,
        "items_per_page": 2,
    }
    rows, _ = asset_registry.list_assets(db, asset_type="audio")
    assert rows == []
    with pytest.raises(ValidationError):
        asset_registry.list_assets(db, asset_type="pdf")


def test_delete_requires_owner_or_admin(db, blob_store, tmp_path):
    owner = create_user(db)
    stranger = create_user(db)
    admin = create_user(db, admin=True)
    _, asset = asset_registry.upload_asset(
        db, blob_store, asset_type="image", upload=_spool(tmp_path), uploaded_by=owner.id
    )
    with pytest.raises(Forbidden):
        asset_registry.delete_asset(db, blob_store, asset.id, stranger)
    key = asset.filename
    asset_registry.delete_asset(db, blob_store, asset.id, admin)
    assert not blob_store.exists(key)
    with pytest.raises(NotFound):
        asset_registry.get_asset(db, asset.id)


def test_delete_all_reports_failures(db, tmp_path, blob_store):
    owner = create_user(db)
    for i in range(2):
        asset_registry.upload_asset(
            db,
            blob_store,
            asset_type="image",
            upload=_spool(tmp_path, name=f"img-{i}.png"),
            uploaded_by=owner.id,
        )
    result = asset_registry.delete_all_assets(db, FailingBlobStore(), owner.id)
    assert result["deleted_count"] == 0
    assert len(result["errors"]) == 2

    result = asset_registry.delete_all_assets(db, blob_store, owner.id)
    assert result == {"deleted_count": 2, "errors": []}


def test_rename_conflict_within_owner(db, blob_store, tmp_path):
    owner = create_user(db)
    _, first = asset_registry.upload_asset(
        db, blob_store, asset_type="image", upload=_spool(tmp_path, name="a.png"), uploaded_by=owner.id
    )
    _, second = asset_registry.upload_asset(
        db, blob_store, asset_type="image", upload=_spool(tmp_path, name="b.png"), uploaded_by=owner.id
    )
    with pytest.raises(Conflict):
        asset_registry.rename_asset(db, second.id, "a.png", owner)
    renamed = asset_registry.rename_asset(db, second.id, "Cover Image.png", owner)
    assert renamed.original_name == "Cover-Image.png"
    with pytest.raises(ValidationError):
        asset_registry.rename_asset(db, first.id, "  ", owner)


def test_location_set_is_idempotent(db, blob_store, tmp_path):
    owner = create_user(db)
    _, asset = asset_registry.upload_asset(
        db, blob_store, asset_type="image", upload=_spool(tmp_path), uploaded_by=owner.id
    )
    storyline_id = uuid.uuid4()
    asset_registry.add_location(db, asset.id, f"c1:{storyline_id}", storyline_id)
    asset_registry.add_location(db, asset.id, f"c1:{storyline_id}", storyline_id)
    db.commit()
    assert asset.location == [f"c1:{storyline_id}"]
    asset_registry.remove_location(db, asset.id, f"c1:{storyline_id}")
    asset_registry.remove_location(db, asset.id, f"c1:{storyline_id}")
    db.commit()
    assert asset.location == []


def test_upload_api(client):
    headers, user_id = ensure_auth_headers()
    files = {"file": ("Sunset.png", b"\x89PNG data", "image/png")}
    resp = client.post("/api/assets/image/upload", files=files, data={"alt_text": "Sun"}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "created"
    assert body["asset"]["uploaded_by"] == str(user_id)
    assert body["asset"]["alt_text"] == "Sun"

    again = client.post("/api/assets/image/upload", files=files, headers=headers)
    assert again.json()["status"] == "skipped"

    bad_type = client.post("/api/assets/pdf/upload", files=files, headers=headers)
    assert bad_type.status_code == 400

    listing = client.get("/api/assets/image", headers=headers).json()
    assert listing["pagination"]["total_items"] == 1

    tmp_dir = os.environ["UPLOAD_TMP_DIR"]
    assert os.listdir(tmp_dir) == []

    asset_id = body["asset"]["id"]
    resp = client.patch(f"/api/assets/item/{asset_id}", json={"filename": "dusk.png"}, headers=headers)
    assert resp.json()["original_name"] == "dusk.png"
    assert client.delete(f"/api/assets/item/{asset_id}", headers=headers).status_code == 204
    assert client.get(f"/api/assets/item/{asset_id}", headers=headers).status_code == 404


def test_upload_multiple_api(client):
    headers, _ = ensure_auth_headers()
    files = [
        ("files", ("one.mp3", b"ID3 one", "audio/mpeg")),
        ("files", ("two.txt", b"text", "text/plain")),
    ]
    resp = client.post("/api/assets/audio/upload-multiple", files=files, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert len(body["uploaded"]) == 1
    assert body["errors"][0]["item"] == "two.txt"


def test_upload_api_rejects_bad_metadata(client):
    headers, _ = ensure_auth_headers()
    files = {"file": ("clip.mp4", b"video", "video/mp4")}
    resp = client.post(
        "/api/assets/video/upload",
        files=files,
        data={"subtitles": json.dumps([{"language": "nl"}])},
        headers=headers,
    )
    assert resp.status_code == 400


class BrokenStream:
    def read(self, size=-1):
        raise OSError("connection reset")


def test_spool_removes_partial_file_when_copy_fails():
    from types import SimpleNamespace

    from powerbag.routes import assets as asset_routes

    upload = SimpleNamespace(filename="Sunset.png", content_type="image/png", file=BrokenStream())
    with pytest.raises(OSError):
        asset_routes._spool(upload)
    assert os.listdir(os.environ["UPLOAD_TMP_DIR"]) == []
