"""Shared fixtures: temp directories, a seeded store, an app client."""

import asyncio
import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Setup environment for testing, before anything imports photodrop.config
os.environ["PHOTODROP_DATA_DIR"] = tempfile.mkdtemp()
os.environ["PHOTODROP_STORAGE_DIR"] = tempfile.mkdtemp()
os.environ["PHOTODROP_UPLOAD_DIR"] = tempfile.mkdtemp()
os.environ["PHOTODROP_DB_PATH"] = os.path.join(os.environ["PHOTODROP_DATA_DIR"], "test.db")
os.environ["PHOTODROP_DOWNLOAD_SECRET"] = "test-download-secret"
os.environ["PHOTODROP_JWT_SECRET"] = "test-jwt-secret"

import jwt  # noqa: E402
import pytest  # noqa: E402

from photodrop.config import settings  # noqa: E402
from photodrop.database import init_db  # noqa: E402
from photodrop.models import ShareLink, StoredCollection, StoredPhoto  # noqa: E402
from photodrop.store import PersistentStore  # noqa: E402
from photodrop.utils.security import hash_password  # noqa: E402
from photodrop.utils.signing import CapabilitySigner  # noqa: E402

OWNER_ID = "usr_owner"
SHARE_TOKEN = "share-wedding"
OTHER_SHARE_TOKEN = "share-portraits"
LOCKED_SHARE_TOKEN = "share-locked"
SHARE_PASSWORD = "open sesame"


def make_owner_token(owner_id: str = OWNER_ID, role: str = "owner", expire_minutes: int = 60) -> str:
    """Access token as the account service issues it."""
    payload = {
        "sub": owner_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expire_minutes),
        "type": "access",
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def make_photo(photo_id: str, collection_id: str, order_index: int, **extra) -> StoredPhoto:
    fields = dict(
        id=photo_id,
        collection_id=collection_id,
        filename=f"{photo_id}.jpg",
        original_filename=f"IMG_{order_index:04d}.JPG",
        order_index=order_index,
        thumbnail_url=f"/uploads/thumbs/{photo_id}.jpg",
        web_url=f"/uploads/web/{photo_id}.jpg",
        high_res_url=f"/uploads/high/{photo_id}.jpg",
        original_url=f"/uploads/originals/{photo_id}.jpg",
        file_size=2048,
        mime_type="image/jpeg",
    )
    fields.update(extra)
    return StoredPhoto(**fields)


async def seed_galleries(store: PersistentStore) -> None:
    """Two collections with their own share links.

    col_wedding: P1, P2 (no high-res), P3 shared as SHARE_TOKEN
    col_portraits: Q1 shared as OTHER_SHARE_TOKEN and, password protected,
    as LOCKED_SHARE_TOKEN.
    """
    await store.set_collection("col_wedding", StoredCollection(
        id="col_wedding", slug="smith-wedding", title="Smith Wedding", owner_id=OWNER_ID,
    ))
    await store.set_collection("col_portraits", StoredCollection(
        id="col_portraits", slug="portraits", title="Portraits", owner_id="usr_other",
    ))
    await store.set_photo("P1", make_photo("P1", "col_wedding", 0))
    await store.set_photo("P2", make_photo("P2", "col_wedding", 1, high_res_url=None))
    await store.set_photo("P3", make_photo("P3", "col_wedding", 2))
    await store.set_photo("Q1", make_photo("Q1", "col_portraits", 0))
    await store.set_share(SHARE_TOKEN, ShareLink(access_token=SHARE_TOKEN, collection_id="col_wedding"))
    await store.set_share(OTHER_SHARE_TOKEN, ShareLink(access_token=OTHER_SHARE_TOKEN, collection_id="col_portraits"))
    await store.set_share(LOCKED_SHARE_TOKEN, ShareLink(
        access_token=LOCKED_SHARE_TOKEN,
        collection_id="col_portraits",
        visibility="password_protected",
        password_hash=hash_password(SHARE_PASSWORD),
    ))


@pytest.fixture(scope="session", autouse=True)
def audit_db():
    init_db()


@pytest.fixture
def store(tmp_path) -> PersistentStore:
    return PersistentStore(tmp_path / "store", compact_min_ops=20)


@pytest.fixture
def seeded_store(store) -> PersistentStore:
    asyncio.run(seed_galleries(store))
    return store


@pytest.fixture
def upload_root(tmp_path) -> Path:
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture
def signer(upload_root) -> CapabilitySigner:
    return CapabilitySigner("unit-test-secret", upload_root)


@pytest.fixture
def client():
    """App client over a freshly seeded storage directory with one file on disk."""
    from fastapi.testclient import TestClient

    from photodrop.main import app

    shutil.rmtree(settings.storage_dir, ignore_errors=True)
    settings.storage_dir.mkdir(parents=True)
    asyncio.run(seed_galleries(PersistentStore(settings.storage_dir)))

    web_dir = settings.upload_dir / "web"
    web_dir.mkdir(parents=True, exist_ok=True)
    (web_dir / "P1.jpg").write_bytes(b"\xff\xd8\xff\xe0 fake jpeg")

    with TestClient(app) as c:
        yield c
