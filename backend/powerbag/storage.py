"""Helpers for interacting with the object storage backing Powerbag assets."""

from __future__ import annotations

import logging
import os
import shutil
import time
from functools import lru_cache
from typing import Mapping, Optional

from minio import Minio

from .errors import StorageFailure

# purpose: centralize blob reads and writes for uploaded media assets
# status: active

_logger = logging.getLogger(__name__)


def _get_upload_dir() -> str:
    """Return the configured upload directory, creating it when needed."""

    upload_dir = os.getenv("UPLOAD_DIR", "uploaded_files")
    os.makedirs(upload_dir, exist_ok=True)
    return upload_dir


def _build_minio_client() -> tuple[Optional[Minio], str]:
    """Initialize a MinIO client when configuration is present."""

    endpoint = os.getenv("MINIO_ENDPOINT", "").strip()
    access_key = os.getenv("MINIO_ACCESS_KEY")
    secret_key = os.getenv("MINIO_SECRET_KEY")
    bucket = os.getenv("MINIO_BUCKET", "powerbag-assets")
    if not endpoint or not access_key or not secret_key:
        return None, bucket
    secure = endpoint.startswith("https")
    host = endpoint.split("://", 1)[-1]
    client = Minio(host, access_key=access_key, secret_key=secret_key, secure=secure)
    try:
        if not client.bucket_exists(bucket):
            client.make_bucket(bucket)
    except Exception:
        _logger.exception("Object storage at %s unavailable, using local uploads", endpoint)
        return None, bucket
    return client, bucket


class BlobStore:
    """Key/value blob store: MinIO when configured, a local directory otherwise."""

    def __init__(self, client: Optional[Minio] = None, bucket: str = "powerbag-assets") -> None:
        self.client = client
        self.bucket = bucket

    @staticmethod
    def generate_key(owner_id: str, asset_type: str, filename: str) -> str:
        extension = os.path.splitext(filename)[1].lower()
        timestamp = time.time_ns() // 1000
        return f"assets/{asset_type}/{owner_id}/{timestamp}{extension}"

    def public_url(self, key: str) -> str:
        base = os.getenv("ASSET_PUBLIC_BASE_URL", "").rstrip("/")
        if base:
            return f"{base}/{key}"
        if self.client is not None:
            endpoint = os.getenv("MINIO_ENDPOINT", "").strip().rstrip("/")
            if "://" not in endpoint:
                endpoint = f"http://{endpoint}"
            return f"{endpoint}/{self.bucket}/{key}"
        return os.path.join(_get_upload_dir(), *key.split("/"))

    def put(
        self,
        key: str,
        source_path: str,
        content_type: str,
        metadata: Mapping[str, str] | None = None,
    ) -> str:
        """Upload a local file under ``key`` and return its public URL."""

        try:
            if self.client is not None:
                self.client.fput_object(
                    self.bucket,
                    key,
                    source_path,
                    content_type=content_type,
                    metadata=dict(metadata or {}),
                )
            else:
                target = os.path.join(_get_upload_dir(), *key.split("/"))
                os.makedirs(os.path.dirname(target), exist_ok=True)
                shutil.copyfile(source_path, target)
        except Exception as exc:
            _logger.warning("Failed to store blob %s: %s", key, exc)
            raise StorageFailure("Failed to upload file to storage") from exc
        return self.public_url(key)

    def delete(self, key: str) -> None:
        try:
            if self.client is not None:
                self.client.remove_object(self.bucket, key)
            else:
                target = os.path.join(_get_upload_dir(), *key.split("/"))
                if os.path.exists(target):
                    os.remove(target)
        except Exception as exc:
            _logger.warning("Failed to delete blob %s: %s", key, exc)
            raise StorageFailure("Failed to delete file from storage") from exc

    def exists(self, key: str) -> bool:
        if self.client is not None:
            try:
                self.client.stat_object(self.bucket, key)
            except Exception:
                return False
            return True
        return os.path.exists(os.path.join(_get_upload_dir(), *key.split("/")))


@lru_cache
def get_blob_store() -> BlobStore:
    """Process-wide blob store, constructed on first use."""

    client, bucket = _build_minio_client()
    return BlobStore(client, bucket)


def remove_temp_file(path: str | None) -> None:
    """Best-effort removal of a spooled upload."""

    if not path:
        return
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError:
        _logger.warning("Error cleaning up temp file %s", path)
