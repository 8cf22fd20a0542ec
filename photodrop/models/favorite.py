"""Favorite session and derived per-photo analytics records."""

from datetime import datetime
from typing import Optional

from pydantic import Field

from photodrop.models.base import Record, UtcDatetime, utcnow


class ClientInfo(Record):
    user_agent: str = ""
    ip: str = ""
    country: Optional[str] = None


class FavoriteSession(Record):
    id: str  # f"{share_token}_{client_identifier}"
    share_token: str
    collection_id: str
    client_identifier: str
    client_info: Optional[ClientInfo] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    last_updated_at: UtcDatetime = Field(default_factory=utcnow)
    favorite_photo_ids: list[str] = Field(default_factory=list)
    favorite_added_at: dict[str, UtcDatetime] = Field(default_factory=dict)
    # last_updated_at as it was before each favorite was added
    previous_updated_at: dict[str, UtcDatetime] = Field(default_factory=dict)

    @staticmethod
    def make_id(share_token: str, client_identifier: str) -> str:
        return f"{share_token}_{client_identifier}"

    @property
    def total_favorites(self) -> int:
        return len(self.favorite_photo_ids)


class FavoriteMark(Record):
    session_id: str
    client_identifier: str
    added_at: UtcDatetime


class FavoriteAnalytics(Record):
    """Per-photo aggregate, rebuilt from sessions and never stored on its own."""

    photo_id: str
    collection_id: str
    favorite_sessions: list[FavoriteMark] = Field(default_factory=list)
    last_favorited_at: Optional[UtcDatetime] = None

    @property
    def total_favorites(self) -> int:
        return len(self.favorite_sessions)

    def latest_mark(self) -> Optional[datetime]:
        if not self.favorite_sessions:
            return None
        return max(m.added_at for m in self.favorite_sessions)
