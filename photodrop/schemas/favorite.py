"""Favorites request/response schemas."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from photodrop.schemas.common import CamelModel
from photodrop.schemas.download import EMAIL_PATTERN


class FavoriteRequest(CamelModel):
    photo_id: str
    action: Optional[Literal["add", "remove"]] = None  # None toggles
    client_email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)


class FavoriteSessionResponse(CamelModel):
    action: str
    photo_id: str
    client_identifier: str  # 'anonymous' for fingerprinted clients
    favorite_photo_ids: list[str]
    total_favorites: int


class FavoriteMarkResponse(CamelModel):
    session_id: str
    client_identifier: str
    added_at: datetime


class PhotoAnalyticsResponse(CamelModel):
    photo_id: str
    collection_id: str
    total_favorites: int
    last_favorited_at: Optional[datetime]
    favorite_sessions: list[FavoriteMarkResponse]


class SessionSummaryResponse(CamelModel):
    id: str
    share_token: str
    client_identifier: str
    favorite_photo_ids: list[str]
    total_favorites: int
    created_at: datetime
    last_updated_at: datetime


class CollectionFavoritesResponse(CamelModel):
    collection_id: str
    photo_analytics: list[PhotoAnalyticsResponse]
    total_sessions: int
    total_favorites: int
    most_favorited_photo: Optional[PhotoAnalyticsResponse]
    recent_sessions: list[SessionSummaryResponse]


class SharePhotoFavoritesResponse(CamelModel):
    photo_id: str
    share_favorites: int
    total_favorites: int
    last_favorited_at: Optional[datetime]


class ShareFavoritesResponse(CamelModel):
    total_sessions: int
    total_unique_favorites: int
    photo_analytics: list[SharePhotoFavoritesResponse]
    my_favorites: list[str]


class CleanupResponse(CamelModel):
    removed: int
    days_old: int
