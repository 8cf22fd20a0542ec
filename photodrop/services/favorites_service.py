"""Client favorites and the reports built on them."""

import logging
from typing import Optional

from photodrop.errors import NotFoundError
from photodrop.models.favorite import ClientInfo, FavoriteSession
from photodrop.services.activity_service import ClientContext, log_activity
from photodrop.store import PersistentStore
from photodrop.store.store import FavoriteAction
from photodrop.utils.security import client_fingerprint

logger = logging.getLogger(__name__)

RECENT_SESSIONS = 10


def client_identifier(client_email: Optional[str], client: ClientContext) -> str:
    """Email when the client gave one, else an anonymous browser fingerprint."""
    if client_email:
        return client_email
    return f"anon_{client_fingerprint(client.user_agent, client.ip)}"


async def toggle_favorite(
    store: PersistentStore,
    share_token: str,
    photo_id: str,
    action: Optional[FavoriteAction],
    client_email: Optional[str],
    client: ClientContext,
) -> tuple[FavoriteSession, str]:
    """Add or remove a favorite. Without an action the current state is flipped.

    Returns the session and the action that was applied.
    """
    share = (await store.get_shares()).get(share_token)
    if share is None:
        raise NotFoundError("Invalid access token")
    photo = (await store.get_photos()).get(photo_id)
    if photo is None or photo.collection_id != share.collection_id:
        raise NotFoundError("Photo not found in collection")

    session = await store.update_favorites(
        share_token,
        client_identifier(client_email, client),
        photo_id,
        action or "toggle",
        client_info=ClientInfo(user_agent=client.user_agent, ip=client.ip, country=client.country),
    )
    # The returned session reflects this call, so it tells which way a toggle went
    action = "add" if photo_id in session.favorite_photo_ids else "remove"

    await log_activity(
        "favorite" if action == "add" else "unfavorite",
        client,
        collection_id=share.collection_id,
        photo_id=photo_id,
        share_token=share_token,
        client_email=client_email,
        success=True,
    )
    return session, action


async def collection_report(store: PersistentStore, collection_id: str) -> dict:
    """Favorite analytics for one collection, most favorited photos first."""
    analytics = sorted(
        (a for a in (await store.get_favorite_analytics()).values() if a.collection_id == collection_id),
        key=lambda a: a.total_favorites,
        reverse=True,
    )
    sessions = [
        s for s in (await store.get_favorite_sessions()).values() if s.collection_id == collection_id
    ]
    sessions.sort(key=lambda s: s.last_updated_at, reverse=True)

    return {
        "photo_analytics": analytics,
        "total_sessions": len(sessions),
        "total_favorites": sum(a.total_favorites for a in analytics),
        "most_favorited_photo": analytics[0] if analytics else None,
        "recent_sessions": sessions[:RECENT_SESSIONS],
    }


async def share_report(store: PersistentStore, share_token: str) -> dict:
    """Which photos the clients of one share link favorited, and how often."""
    sessions = [
        s for s in (await store.get_favorite_sessions()).values() if s.share_token == share_token
    ]
    share_counts: dict[str, int] = {}
    for session in sessions:
        for photo_id in session.favorite_photo_ids:
            share_counts[photo_id] = share_counts.get(photo_id, 0) + 1

    analytics = await store.get_favorite_analytics()
    photos = []
    for photo_id, count in share_counts.items():
        entry = analytics.get(photo_id)
        photos.append({
            "photo_id": photo_id,
            "share_favorites": count,
            "total_favorites": entry.total_favorites if entry else count,
            "last_favorited_at": entry.last_favorited_at if entry else None,
        })
    photos.sort(key=lambda p: (p["total_favorites"], p["share_favorites"]), reverse=True)

    return {
        "sessions": sessions,
        "total_sessions": len(sessions),
        "photo_analytics": photos,
        "total_unique_favorites": len(share_counts),
    }

