"""Persistent store for collections, photos, shares, download PINs and favorites.

One ``PersistentStore`` is created per process (see ``photodrop.main``) and
handed to request handlers through a dependency. Reads return the live cached
mappings; writes go through the ``set_*``/``delete_*``/``update_*`` methods,
which append to the owning table's log before the in-memory index changes.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, AsyncContextManager, Iterable, Literal, Optional

from photodrop.errors import NotFoundError, ValidationError
from photodrop.models.base import utcnow
from photodrop.models.collection import ShareLink, StoredCollection, StoredPhoto
from photodrop.models.download import DownloadPin
from photodrop.models.favorite import ClientInfo, FavoriteAnalytics, FavoriteSession
from photodrop.store.favorites import FavoritesIndex
from photodrop.store.table import LogTable, del_entry, put_entry
from photodrop.utils.locks import KeyedLock
from photodrop.utils.security import hash_password

logger = logging.getLogger(__name__)

FavoriteAction = Literal["add", "remove", "toggle"]

BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


# --- Legacy whole-table documents ---

def _legacy_list(key_field: str, *fallbacks: str):
    def read(raw: Any) -> Iterable[tuple[str, dict]]:
        for doc in raw:
            key = doc.get(key_field) or next((doc[f] for f in fallbacks if doc.get(f)), None)
            if key:
                yield key, doc
    return read


def _legacy_shares(raw: Any) -> Iterable[tuple[str, dict]]:
    """Flat share list whose ``password`` is a bcrypt hash or, in early files, plain text."""
    for key, doc in _legacy_list("accessToken", "shareToken")(raw):
        password = doc.pop("password", None)
        if password and not doc.get("passwordHash"):
            doc["passwordHash"] = password if password.startswith(BCRYPT_PREFIXES) else hash_password(password)
        yield key, doc


def _legacy_favorites(raw: Any) -> Iterable[tuple[str, dict]]:
    """Read ``{sessions, analytics}``; only sessions are kept, analytics supply add times."""
    added: dict[str, dict[str, str]] = {}
    for entry in raw.get("analytics") or []:
        for mark in entry.get("favoriteSessions") or []:
            added.setdefault(mark["sessionId"], {})[entry["photoId"]] = mark["addedAt"]

    for doc in raw.get("sessions") or []:
        doc.setdefault("favoriteAddedAt", added.get(doc["id"], {}))
        yield doc["id"], doc


class PersistentStore:
    def __init__(self, storage_dir: Path, compact_min_ops: int = 200):
        self.storage_dir = Path(storage_dir)
        self.collections: LogTable[StoredCollection] = LogTable(
            "collections", self.storage_dir, StoredCollection, compact_min_ops,
            legacy_reader=_legacy_list("id"),
        )
        self.photos: LogTable[StoredPhoto] = LogTable(
            "photos", self.storage_dir, StoredPhoto, compact_min_ops,
            legacy_reader=_legacy_list("id"),
        )
        self.shares: LogTable[ShareLink] = LogTable(
            "shares", self.storage_dir, ShareLink, compact_min_ops,
            legacy_reader=_legacy_shares,
        )
        self.pins: LogTable[DownloadPin] = LogTable(
            "pins", self.storage_dir, DownloadPin, compact_min_ops,
        )
        self.favorites: LogTable[FavoriteSession] = LogTable(
            "favorites", self.storage_dir, FavoriteSession, compact_min_ops,
            legacy_reader=_legacy_favorites,
        )
        self.analytics = FavoritesIndex()

        # Immutable facts checked on write, independent of live record mutation
        self._slugs: dict[str, str] = {}
        self._photo_parents: dict[str, str] = {}

        self._record_locks = KeyedLock()
        self._load_lock = asyncio.Lock()
        self._initialized = False

    def _tables(self) -> list[LogTable]:
        return [self.collections, self.photos, self.shares, self.pins, self.favorites]

    # --- Lifecycle ---

    async def ensure_loaded(self) -> None:
        if self._initialized:
            return
        async with self._load_lock:
            if self._initialized:
                return
            await asyncio.to_thread(self._load_all)
            self._initialized = True

    def _load_all(self) -> None:
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create storage directory %s: %s", self.storage_dir, e)

        for table in self._tables():
            table.load()

        self._slugs = {cid: c.slug for cid, c in self.collections.records.items()}
        self._photo_parents = {pid: p.collection_id for pid, p in self.photos.records.items()}
        self.analytics.rebuild(self.favorites.records.values())

    async def close(self) -> None:
        """Compact every table that carries superseded entries."""
        if not self._initialized:
            return
        for table in self._tables():
            async with table.lock:
                if table.log_entries > len(table.records):
                    await table.compact()
        logger.info("Store closed")

    def record_lock(self, table: str, key: str) -> AsyncContextManager[None]:
        """Serialize read-modify-write sequences on one record."""
        return self._record_locks.hold(f"{table}:{key}")

    # --- Reads ---

    async def get_collections(self) -> dict[str, StoredCollection]:
        await self.ensure_loaded()
        return self.collections.records

    async def get_photos(self) -> dict[str, StoredPhoto]:
        await self.ensure_loaded()
        return self.photos.records

    async def get_shares(self) -> dict[str, ShareLink]:
        await self.ensure_loaded()
        return self.shares.records

    async def get_pins(self) -> dict[str, DownloadPin]:
        await self.ensure_loaded()
        return self.pins.records

    async def get_favorite_sessions(self) -> dict[str, FavoriteSession]:
        await self.ensure_loaded()
        return self.favorites.records

    async def get_favorite_analytics(self) -> dict[str, FavoriteAnalytics]:
        await self.ensure_loaded()
        return self.analytics.entries

    # --- Generic writes ---

    async def _put(self, table: LogTable, key: str, record) -> None:
        await table.commit([put_entry(key, record)])
        table.records[key] = record
        await table.compact_if_needed()

    async def _delete(self, table: LogTable, key: str) -> bool:
        if key not in table.records:
            return False
        await table.commit([del_entry(key)])
        del table.records[key]
        await table.compact_if_needed()
        return True

    # --- Collections ---

    async def set_collection(self, collection_id: str, collection: StoredCollection) -> None:
        await self.ensure_loaded()
        async with self.collections.lock:
            original_slug = self._slugs.get(collection_id)
            if original_slug is not None and original_slug != collection.slug:
                raise ValidationError("Collection slug cannot be changed")
            for other_id, slug in self._slugs.items():
                if other_id != collection_id and slug == collection.slug:
                    raise ValidationError(f"Slug '{collection.slug}' is already in use")

            await self._put(self.collections, collection_id, collection)
            self._slugs[collection_id] = collection.slug

    async def update_collection(
        self, collection_id: str, fields: dict[str, Any]
    ) -> Optional[StoredCollection]:
        """Merge ``fields`` onto the collection and stamp ``updated_at``.

        An unknown id is silently ignored and returns None.
        """
        await self.ensure_loaded()
        async with self.collections.lock:
            existing = self.collections.records.get(collection_id)
            if existing is None:
                logger.debug("update_collection: %s not found, nothing to do", collection_id)
                return None
            if "slug" in fields and fields["slug"] != self._slugs[collection_id]:
                raise ValidationError("Collection slug cannot be changed")

            data = existing.model_dump()
            data.update(fields)
            data["updated_at"] = utcnow()
            updated = StoredCollection.model_validate(data)
            await self._put(self.collections, collection_id, updated)
            return updated

    async def delete_collection(self, collection_id: str) -> None:
        """Remove a collection together with its photos."""
        await self.ensure_loaded()
        async with self.photos.lock, self.collections.lock:
            children = [pid for pid, cid in self._photo_parents.items() if cid == collection_id]
            if children:
                await self.photos.commit([del_entry(pid) for pid in children])
                for pid in children:
                    self.photos.records.pop(pid, None)
                    del self._photo_parents[pid]
            if await self._delete(self.collections, collection_id):
                self._slugs.pop(collection_id, None)

    # --- Photos ---

    async def set_photo(self, photo_id: str, photo: StoredPhoto) -> None:
        await self.ensure_loaded()
        async with self.photos.lock, self.collections.lock:
            if photo.collection_id not in self.collections.records:
                raise NotFoundError(f"Collection {photo.collection_id} not found")
            for other_id, other in self.photos.records.items():
                if (
                    other_id != photo_id
                    and other.collection_id == photo.collection_id
                    and other.order_index == photo.order_index
                ):
                    raise ValidationError(
                        f"Order index {photo.order_index} is already used in this collection"
                    )

            previous_parent = self._photo_parents.get(photo_id)
            await self._put(self.photos, photo_id, photo)
            self._photo_parents[photo_id] = photo.collection_id

            await self._recount(photo.collection_id)
            if previous_parent and previous_parent != photo.collection_id:
                await self._recount(previous_parent)

    async def delete_photo(self, photo_id: str) -> None:
        await self.ensure_loaded()
        async with self.photos.lock, self.collections.lock:
            if await self._delete(self.photos, photo_id):
                parent = self._photo_parents.pop(photo_id)
                await self._recount(parent)

    async def _recount(self, collection_id: str) -> None:
        collection = self.collections.records.get(collection_id)
        if collection is None:
            return
        count = sum(1 for cid in self._photo_parents.values() if cid == collection_id)
        if collection.photo_count != count:
            updated = collection.model_copy(update={"photo_count": count})
            await self._put(self.collections, collection_id, updated)

    # --- Shares ---

    async def set_share(self, access_token: str, share: ShareLink) -> None:
        await self.ensure_loaded()
        async with self.shares.lock:
            await self._put(self.shares, access_token, share)

    async def delete_share(self, access_token: str) -> None:
        await self.ensure_loaded()
        async with self.shares.lock:
            await self._delete(self.shares, access_token)

    # --- Download PINs ---

    async def set_pin(self, pin_id: str, pin: DownloadPin) -> None:
        await self.ensure_loaded()
        async with self.pins.lock:
            await self._put(self.pins, pin_id, pin)

    # --- Favorites ---

    async def update_favorites(
        self,
        share_token: str,
        client_identifier: str,
        photo_id: str,
        action: FavoriteAction,
        client_info: Optional[ClientInfo] = None,
        now: Optional[datetime] = None,
    ) -> FavoriteSession:
        """Add, remove or toggle one favorite and update the photo's analytics with it.

        Adding an existing favorite and removing a missing one change nothing.
        ``toggle`` decides between the two inside the critical section. Removing
        the favorite a session added last undoes that add, ``last_updated_at``
        included, and a session left without favorites is dropped, so an add
        followed by a remove leaves the store exactly as it was.
        """
        if action not in ("add", "remove", "toggle"):
            raise ValidationError(f"Unknown favorite action {action!r}")

        await self.ensure_loaded()
        share = self.shares.records.get(share_token)
        if share is None:
            raise NotFoundError("Share not found")

        session_id = FavoriteSession.make_id(share_token, client_identifier)

        async with self.favorites.lock:
            now = now or utcnow()
            current = self.favorites.records.get(session_id)
            if action == "toggle":
                action = "remove" if current and photo_id in current.favorite_photo_ids else "add"

            if action == "add":
                if current is not None and photo_id in current.favorite_photo_ids:
                    return current
                if current is None:
                    session = FavoriteSession(
                        id=session_id,
                        share_token=share_token,
                        collection_id=share.collection_id,
                        client_identifier=client_identifier,
                        client_info=client_info,
                        created_at=now,
                        last_updated_at=now,
                    )
                else:
                    session = current.model_copy(deep=True)
                    session.previous_updated_at[photo_id] = session.last_updated_at
                session.favorite_photo_ids.append(photo_id)
                session.favorite_added_at[photo_id] = now
                session.last_updated_at = now

                await self._put(self.favorites, session_id, session)
                self.analytics.mark(session, photo_id, now)
                return session

            if current is None or photo_id not in current.favorite_photo_ids:
                return current or FavoriteSession(
                    id=session_id,
                    share_token=share_token,
                    collection_id=share.collection_id,
                    client_identifier=client_identifier,
                )

            session = current.model_copy(deep=True)
            session.favorite_photo_ids.remove(photo_id)
            added_at = session.favorite_added_at.pop(photo_id, None)
            previous = session.previous_updated_at.pop(photo_id, None)
            if previous is not None and added_at == session.last_updated_at:
                # Nothing else changed since this favorite was added
                session.last_updated_at = previous
            else:
                session.last_updated_at = now

            if session.favorite_photo_ids:
                await self._put(self.favorites, session_id, session)
            else:
                await self._delete(self.favorites, session_id)
            self.analytics.unmark(session_id, photo_id)
            return session

    async def clear_old_favorite_sessions(
        self, days_old: int = 30, now: Optional[datetime] = None
    ) -> int:
        """Drop sessions not updated for ``days_old`` days. Returns how many were removed."""
        await self.ensure_loaded()
        cutoff = (now or utcnow()) - timedelta(days=days_old)

        async with self.favorites.lock:
            stale = [s for s in self.favorites.records.values() if s.last_updated_at < cutoff]
            if not stale:
                return 0

            await self.favorites.commit([del_entry(s.id) for s in stale])
            for session in stale:
                del self.favorites.records[session.id]
                self.analytics.drop_session(session)
            await self.favorites.compact_if_needed()

        logger.info("Cleaned up %d old favorite sessions", len(stale))
        return len(stale)
