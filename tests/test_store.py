"""Persistent store: loading, writes, log replay and compaction."""

import asyncio
import json

import pytest

from conftest import SHARE_TOKEN, make_photo, seed_galleries
from photodrop.errors import InternalError, NotFoundError, PasswordRequired, ValidationError
from photodrop.models import StoredCollection
from photodrop.services.gallery_service import open_gallery
from photodrop.store import PersistentStore
from photodrop.utils.security import hash_password


def test_missing_files_start_empty(store):
    async def scenario():
        assert await store.get_collections() == {}
        assert await store.get_photos() == {}
        assert await store.get_shares() == {}
        assert await store.get_favorite_sessions() == {}
        assert await store.get_favorite_analytics() == {}

    asyncio.run(scenario())


def test_corrupt_log_degrades_to_readable_records(tmp_path):
    directory = tmp_path / "store"
    directory.mkdir()
    good = {"op": "put", "key": "col_a", "value": {"id": "col_a", "slug": "a", "ownerId": "u"}}
    (directory / "collections.jsonl").write_text(
        json.dumps(good) + "\n"
        + "{not json\n"
        + json.dumps({"op": "put", "key": "col_b", "value": {"id": "col_b"}}) + "\n"
    )
    (directory / "photos.jsonl").write_bytes(b"\x00\x01garbage")

    store = PersistentStore(directory)
    collections = asyncio.run(store.get_collections())

    assert list(collections) == ["col_a"]
    assert store.photos.records == {}
    # The unreadable lines are gone after the rewrite
    assert len((directory / "collections.jsonl").read_text().splitlines()) == 1


def test_writes_survive_reload(seeded_store):
    reopened = PersistentStore(seeded_store.storage_dir)

    async def scenario():
        collections = await reopened.get_collections()
        photos = await reopened.get_photos()
        shares = await reopened.get_shares()
        return collections, photos, shares

    collections, photos, shares = asyncio.run(scenario())
    assert set(collections) == {"col_wedding", "col_portraits"}
    assert collections["col_wedding"].photo_count == 3
    assert photos["P2"].high_res_url is None
    assert shares[SHARE_TOKEN].collection_id == "col_wedding"
    assert collections["col_wedding"].created_at.tzinfo is not None


def test_delete_is_persisted(seeded_store):
    asyncio.run(seeded_store.delete_share(SHARE_TOKEN))
    asyncio.run(seeded_store.delete_photo("P3"))

    reopened = PersistentStore(seeded_store.storage_dir)
    assert SHARE_TOKEN not in asyncio.run(reopened.get_shares())
    assert "P3" not in reopened.photos.records
    assert reopened.collections.records["col_wedding"].photo_count == 2


def test_delete_collection_removes_its_photos(seeded_store):
    asyncio.run(seeded_store.delete_collection("col_wedding"))

    assert "col_wedding" not in seeded_store.collections.records
    assert set(seeded_store.photos.records) == {"Q1"}


def test_slug_is_unique(seeded_store):
    duplicate = StoredCollection(id="col_new", slug="smith-wedding", owner_id="u")
    with pytest.raises(ValidationError):
        asyncio.run(seeded_store.set_collection("col_new", duplicate))


def test_slug_is_immutable(seeded_store):
    collection = seeded_store.collections.records["col_wedding"]
    collection.slug = "renamed"
    with pytest.raises(ValidationError):
        asyncio.run(seeded_store.set_collection("col_wedding", collection))
    with pytest.raises(ValidationError):
        asyncio.run(seeded_store.update_collection("col_wedding", {"slug": "renamed"}))


def test_photo_needs_existing_collection(seeded_store):
    with pytest.raises(NotFoundError):
        asyncio.run(seeded_store.set_photo("X1", make_photo("X1", "col_missing", 0)))


def test_order_index_unique_per_collection(seeded_store):
    with pytest.raises(ValidationError):
        asyncio.run(seeded_store.set_photo("P4", make_photo("P4", "col_wedding", 1)))
    # Same index in another collection is fine
    asyncio.run(seeded_store.set_photo("Q2", make_photo("Q2", "col_portraits", 1)))
    assert seeded_store.collections.records["col_portraits"].photo_count == 2


def test_update_collection_merges_and_stamps(seeded_store):
    before = seeded_store.collections.records["col_wedding"].updated_at
    updated = asyncio.run(seeded_store.update_collection("col_wedding", {"downloads_enabled": False}))

    assert updated.downloads_enabled is False
    assert updated.title == "Smith Wedding"
    assert updated.updated_at >= before
    assert seeded_store.collections.records["col_wedding"] is updated


def test_update_missing_collection_is_silent_noop(seeded_store):
    """Known smell: an unknown id reports nothing and changes nothing."""
    before = dict(seeded_store.collections.records)
    log_before = seeded_store.collections.log_entries

    assert asyncio.run(seeded_store.update_collection("col_missing", {"title": "x"})) is None
    assert seeded_store.collections.records == before
    assert seeded_store.collections.log_entries == log_before


def test_log_is_compacted(store):
    async def scenario():
        await store.set_collection("col_a", StoredCollection(id="col_a", slug="a", owner_id="u"))
        for i in range(50):
            await store.update_collection("col_a", {"title": f"take {i}"})

    asyncio.run(scenario())

    lines = store.collections.path.read_text().splitlines()
    assert len(lines) <= store.collections.compact_min_ops + 1
    reopened = PersistentStore(store.storage_dir)
    assert asyncio.run(reopened.get_collections())["col_a"].title == "take 49"


def test_close_compacts_superseded_entries(store):
    async def scenario():
        await store.set_collection("col_a", StoredCollection(id="col_a", slug="a", owner_id="u"))
        await store.update_collection("col_a", {"title": "again"})
        await store.close()

    asyncio.run(scenario())
    assert len(store.collections.path.read_text().splitlines()) == 1


def test_legacy_documents_are_imported(tmp_path):
    directory = tmp_path / "store"
    directory.mkdir()
    (directory / "collections.json").write_text(json.dumps([{
        "id": "c1", "title": "Old", "slug": "old", "ownerId": "u", "visibility": "private",
        "isStarred": False, "isFeatured": False, "tags": [], "photoCount": 0,
        "createdAt": "2024-03-01T10:00:00.000Z", "updatedAt": "2024-03-01T10:00:00.000Z",
    }]))
    (directory / "shares.json").write_text(json.dumps([{
        "id": "s1", "shareToken": "tok", "collectionId": "c1", "collectionSlug": "old",
        "visibility": "private", "createdAt": "2024-03-01T10:00:00.000Z",
        "createdBy": "u", "accessCount": 3,
    }]))
    (directory / "favorites.json").write_text(json.dumps({
        "sessions": [{
            "id": "tok_anon_1", "shareToken": "tok", "collectionId": "c1",
            "clientIdentifier": "anon_1", "createdAt": "2024-03-02T10:00:00.000Z",
            "lastUpdatedAt": "2024-03-02T11:00:00.000Z", "favoritePhotoIds": ["p1"],
            "totalFavorites": 1,
        }],
        "analytics": [{
            "photoId": "p1", "collectionId": "c1", "totalFavorites": 1,
            "favoriteSessions": [{
                "sessionId": "tok_anon_1", "clientIdentifier": "anon_1",
                "addedAt": "2024-03-02T10:30:00.000Z",
            }],
            "lastFavoritedAt": "2024-03-02T10:30:00.000Z",
        }],
    }))

    store = PersistentStore(directory)
    shares = asyncio.run(store.get_shares())
    analytics = asyncio.run(store.get_favorite_analytics())

    assert shares["tok"].access_count == 3
    assert store.collections.records["c1"].created_at.year == 2024
    assert analytics["p1"].total_favorites == 1
    assert analytics["p1"].favorite_sessions[0].added_at.hour == 10
    assert (directory / "favorites.jsonl").exists()


def test_legacy_share_passwords_stay_required(tmp_path):
    directory = tmp_path / "store"
    directory.mkdir()
    (directory / "collections.json").write_text(json.dumps([
        {"id": "c1", "slug": "old", "ownerId": "u"},
    ]))
    (directory / "shares.json").write_text(json.dumps([
        {"shareToken": "plain", "collectionId": "c1", "visibility": "password_protected",
         "password": "secret", "createdAt": "2024-03-01T10:00:00.000Z"},
        {"shareToken": "hashed", "collectionId": "c1", "visibility": "password_protected",
         "password": hash_password("hunter2"), "createdAt": "2024-03-01T10:00:00.000Z"},
        {"shareToken": "open", "collectionId": "c1", "password": None},
    ]))

    store = PersistentStore(directory)
    shares = asyncio.run(store.get_shares())
    assert shares["plain"].password_hash.startswith("$2")
    assert shares["plain"].password_hash != "secret"

    for token, password in [("plain", "secret"), ("hashed", "hunter2")]:
        with pytest.raises(PasswordRequired):
            asyncio.run(open_gallery(store, token))
        with pytest.raises(PasswordRequired):
            asyncio.run(open_gallery(store, token, password="wrong"))
        assert asyncio.run(open_gallery(store, token, password=password))["collection"].id == "c1"
    assert asyncio.run(open_gallery(store, "open"))["collection"].id == "c1"

    # The imported hash is what lands in the log, not the plain password
    assert "secret" not in (directory / "shares.jsonl").read_text()
    reopened = PersistentStore(directory)
    with pytest.raises(PasswordRequired):
        asyncio.run(open_gallery(reopened, "plain"))


def test_concurrent_writers_all_land(store):
    async def scenario():
        await seed_galleries(store)
        await asyncio.gather(*(
            store.set_photo(f"N{i}", make_photo(f"N{i}", "col_wedding", 10 + i)) for i in range(20)
        ))

    asyncio.run(scenario())
    reopened = PersistentStore(store.storage_dir)
    photos = asyncio.run(reopened.get_photos())
    assert sum(1 for p in photos.values() if p.collection_id == "col_wedding") == 23
    assert reopened.collections.records["col_wedding"].photo_count == 23


def test_failed_count_write_leaves_cached_collection_alone(seeded_store, monkeypatch):
    def fail_collections(lines):
        raise OSError("disk full")

    monkeypatch.setattr(seeded_store.collections, "_append_lines", fail_collections)
    cached = seeded_store.collections.records["col_wedding"]

    with pytest.raises(InternalError):
        asyncio.run(seeded_store.set_photo("P4", make_photo("P4", "col_wedding", 3)))

    assert seeded_store.collections.records["col_wedding"] is cached
    assert cached.photo_count == 3
