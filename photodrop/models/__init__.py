"""PhotoDrop records and database models."""

from photodrop.models.activity import ActivityLog
from photodrop.models.collection import CoverPhoto, ShareLink, StoredCollection, StoredPhoto
from photodrop.models.download import DownloadPin
from photodrop.models.favorite import (
    ClientInfo,
    FavoriteAnalytics,
    FavoriteMark,
    FavoriteSession,
)

__all__ = [
    "ActivityLog",
    "ClientInfo",
    "CoverPhoto",
    "DownloadPin",
    "FavoriteAnalytics",
    "FavoriteMark",
    "FavoriteSession",
    "ShareLink",
    "StoredCollection",
    "StoredPhoto",
]
