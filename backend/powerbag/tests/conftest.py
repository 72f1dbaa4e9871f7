import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
for _name in ("MINIO_ENDPOINT", "ASSET_PUBLIC_BASE_URL"):
    os.environ.pop(_name, None)
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path
import shutil

import uuid

sys.path.append(str(Path(__file__).resolve().parents[2]))

from powerbag.main import app
from powerbag.database import Base, get_db
from powerbag.auth import create_access_token
from powerbag.storage import BlobStore
from powerbag import models, notify

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def clean_tables():
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    notify.EMAIL_OUTBOX.clear()
    yield


@pytest.fixture(autouse=True)
def upload_dir(tmp_path):
    d = tmp_path / "uploads"
    d.mkdir()
    os.environ["UPLOAD_DIR"] = str(d)
    os.environ["UPLOAD_TMP_DIR"] = str(d / "tmp")
    yield
    shutil.rmtree(d, ignore_errors=True)

@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def blob_store():
    """Local-directory blob store rooted in the per-test upload dir."""

    return BlobStore()


def create_user(db, *, admin: bool = False, email: str | None = None) -> models.User:
    user = models.User(
        email=email or f"user-{uuid.uuid4()}@example.com",
        name="Test User",
        roles=[models.ADMIN_ROLE] if admin else [],
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: models.User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


def ensure_auth_headers(*, admin: bool = False):
    """
    powerbag: purpose: create a user directly and return bearer headers for API tests
    powerbag: outputs: tuple(headers dict, user id)
    powerbag: status: active
    """

    session = TestingSessionLocal()
    try:
        user = create_user(session, admin=admin)
        return auth_headers(user), user.id
    finally:
        session.close()
