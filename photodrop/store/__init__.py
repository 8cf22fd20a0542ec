"""File-backed persistent store."""

from photodrop.store.favorites import FavoritesIndex
from photodrop.store.store import PersistentStore

__all__ = ["FavoritesIndex", "PersistentStore"]
