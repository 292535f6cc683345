"""
Shared pytest fixtures.

Provides:
- An in-memory ObjectStorage double
- A file-backed SQLite database per test
- The FastAPI app and a TestClient wired to both
- Helpers for registering users and seeding rows
"""

import io
from collections.abc import Iterable
from itertools import count

import pytest
from fastapi.testclient import TestClient

import assets_man.models  # noqa: F401
from assets_man.core.config import Settings
from assets_man.core.database import Database
from assets_man.main import create_app
from assets_man.models import Asset, Folder, User
from assets_man.services.object_storage import ObjectStorage, PresignedUrl, StorageError

TEST_QUOTA = 10 * 1024 * 1024


# ============================================================================
# Storage double
# ============================================================================

class MemoryStorage(ObjectStorage):
    """Keeps objects in a dict. Keys listed in ``broken`` fail on read."""

    def __init__(self, bucket: str = "test-bucket"):
        self.bucket = bucket
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.broken: set[str] = set()
        self.reads: list[str] = []
        self.uploads: list[str] = []
        self.deleted: list[str] = []
        self.bucket_error: Exception | None = None

    def check_bucket(self) -> None:
        if self.bucket_error is not None:
            raise StorageError("bucket check failed") from self.bucket_error

    def exists(self, key: str) -> bool:
        return key in self.objects

    def get_object_stream(self, key: str):
        self.reads.append(key)
        if key in self.broken or key not in self.objects:
            raise StorageError(f"get_object failed for {key}")
        return io.BytesIO(self.objects[key])

    def upload_buffer(self, key: str, buffer: bytes, content_type: str) -> None:
        self.uploads.append(key)
        self.objects[key] = bytes(buffer)
        self.content_types[key] = content_type

    def get_presigned_upload_url(self, key: str, content_type: str, expires_in: int = 3600) -> PresignedUrl:
        return PresignedUrl(url=f"https://storage.test/{self.bucket}/{key}?method=PUT", key=key, expires_in=expires_in)

    def get_presigned_download_url(self, key: str, expires_in: int = 3600, filename: str | None = None) -> PresignedUrl:
        return PresignedUrl(url=f"https://storage.test/{self.bucket}/{key}?method=GET", key=key, expires_in=expires_in)

    def delete_object(self, key: str) -> bool:
        self.deleted.append(key)
        self.objects.pop(key, None)
        return True

    def copy_object(self, source_key: str, destination_key: str) -> None:
        if source_key not in self.objects:
            raise StorageError(f"copy_object failed for {source_key}")
        self.objects[destination_key] = self.objects[source_key]

    def put(self, key: str, data: bytes) -> None:
        self.objects[key] = data


# ============================================================================
# App and database fixtures
# ============================================================================

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'assets.db'}",
        jwt_secret="test-access-secret-0123456789abcdef",
        jwt_refresh_secret="test-refresh-secret-0123456789abcdef",
        bcrypt_rounds=4,
        default_storage_quota=TEST_QUOTA,
        allowed_origins="http://localhost:3000",
    )


@pytest.fixture
def database(settings) -> Iterable[Database]:
    db = Database(settings.database_url)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def db_session(database):
    session = database.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app(settings, storage, database):
    return create_app(settings=settings, storage=storage, database=database)


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


# ============================================================================
# User helpers
# ============================================================================

_emails = count(1)


def register(client: TestClient, email: str | None = None, password: str = "correct-horse", name: str = "Test User") -> dict:
    email = email or f"user{next(_emails)}@example.com"
    response = client.post("/api/auth/register", json={"email": email, "password": password, "name": name})
    assert response.status_code == 201, response.text
    data = response.json()["data"]
    return {
        "user": data["user"],
        "headers": {"Authorization": f"Bearer {data['tokens']['access_token']}"},
        "email": email,
        "password": password,
    }


@pytest.fixture
def account(client) -> dict:
    return register(client)


@pytest.fixture
def auth_headers(account) -> dict:
    return account["headers"]


@pytest.fixture
def user(db_session) -> User:
    record = User(email=f"owner{next(_emails)}@example.com", name="Owner", password_hash="x")
    db_session.add(record)
    db_session.commit()
    return record


# ============================================================================
# Row factories
# ============================================================================

def make_folder(db, owner_id: str, name: str = "Folder", parent_id: str | None = None) -> Folder:
    folder = Folder(name=name, owner_id=owner_id, parent_id=parent_id)
    db.add(folder)
    db.commit()
    return folder


def make_asset(
    db,
    owner_id: str,
    name: str = "photo.png",
    mime_type: str = "image/png",
    size: int = 100,
    folder_id: str | None = None,
    storage: MemoryStorage | None = None,
    data: bytes | None = None,
) -> Asset:
    key = f"{owner_id}/{folder_id + '/' if folder_id else ''}{name}"
    asset = Asset(
        name=name,
        original_name=name,
        mime_type=mime_type,
        size=size,
        storage_key=key,
        folder_id=folder_id,
        owner_id=owner_id,
    )
    db.add(asset)
    db.commit()
    if storage is not None:
        storage.put(key, data if data is not None else b"x" * size)
    return asset
