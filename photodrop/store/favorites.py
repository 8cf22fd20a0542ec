"""Reverse index from photo to the favorite sessions that picked it."""

import logging
from datetime import datetime
from typing import Iterable

from photodrop.models.favorite import FavoriteAnalytics, FavoriteMark, FavoriteSession

logger = logging.getLogger(__name__)


class FavoritesIndex:
    """Derived per-photo analytics.

    Sessions are the only persisted source of truth; this index is rebuilt
    from them on load and updated in the same critical section as every
    session mutation, so ``entry.total_favorites`` always equals the number of
    sessions whose favorites contain the photo. Entries whose session list
    becomes empty are removed.
    """

    def __init__(self):
        self.entries: dict[str, FavoriteAnalytics] = {}

    def rebuild(self, sessions: Iterable[FavoriteSession]) -> None:
        self.entries = {}
        marks = [
            (session, photo_id, session.favorite_added_at.get(photo_id, session.last_updated_at))
            for session in sessions
            for photo_id in session.favorite_photo_ids
        ]
        # Oldest first so each entry's session list keeps the order favorites were made
        marks.sort(key=lambda m: m[2])
        for session, photo_id, added_at in marks:
            self.mark(session, photo_id, added_at)
        logger.debug("Rebuilt favorite analytics for %d photos", len(self.entries))

    def mark(self, session: FavoriteSession, photo_id: str, added_at: datetime) -> None:
        entry = self.entries.get(photo_id)
        if entry is None:
            entry = FavoriteAnalytics(photo_id=photo_id, collection_id=session.collection_id)
            self.entries[photo_id] = entry
        if any(m.session_id == session.id for m in entry.favorite_sessions):
            return
        entry.favorite_sessions.append(
            FavoriteMark(
                session_id=session.id,
                client_identifier=session.client_identifier,
                added_at=added_at,
            )
        )
        entry.last_favorited_at = entry.latest_mark()

    def unmark(self, session_id: str, photo_id: str) -> None:
        entry = self.entries.get(photo_id)
        if entry is None:
            return
        entry.favorite_sessions = [m for m in entry.favorite_sessions if m.session_id != session_id]
        if not entry.favorite_sessions:
            del self.entries[photo_id]
        else:
            entry.last_favorited_at = entry.latest_mark()

    def drop_session(self, session: FavoriteSession) -> None:
        for photo_id in session.favorite_photo_ids:
            self.unmark(session.id, photo_id)
