"""Shared gallery access for share-link holders."""

from typing import Optional

from photodrop.errors import NotFoundError, PasswordRequired
from photodrop.models.base import utcnow
from photodrop.models.collection import CoverPhoto, StoredCollection, StoredPhoto
from photodrop.services.download_service import active_share
from photodrop.store import PersistentStore
from photodrop.utils.security import verify_password


def cover_for(collection: StoredCollection, photos: list[StoredPhoto]) -> Optional[CoverPhoto]:
    """Explicit cover photo, else the first photo in gallery order."""
    if collection.cover_photo:
        return collection.cover_photo
    if not photos:
        return None
    first = min(photos, key=lambda p: p.order_index)
    return CoverPhoto(id=first.id, thumbnail_url=first.thumbnail_url, web_url=first.web_url)


async def open_gallery(
    store: PersistentStore, share_token: str, password: Optional[str] = None
) -> dict:
    """Resolve a share link to its collection and ordered photos, counting the visit."""
    now = utcnow()
    share = await active_share(store, share_token, now)

    if share.password_hash:
        if not password or not verify_password(password, share.password_hash):
            raise PasswordRequired()

    collection = (await store.get_collections()).get(share.collection_id)
    if collection is None:
        raise NotFoundError("Collection not found")

    photos = sorted(
        (p for p in (await store.get_photos()).values() if p.collection_id == collection.id),
        key=lambda p: p.order_index,
    )

    visited = share.model_copy(update={"access_count": share.access_count + 1, "last_accessed_at": now})
    await store.set_share(share_token, visited)

    return {
        "collection": collection,
        "photos": photos,
        "cover_photo": cover_for(collection, photos),
        "message": share.message,
    }
