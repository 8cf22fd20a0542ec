"""Shared gallery and collection settings schemas."""

from datetime import datetime
from typing import Any, Optional

from photodrop.schemas.common import CamelModel


class CoverPhotoResponse(CamelModel):
    id: str
    thumbnail_url: str
    web_url: str


class GalleryPhotoResponse(CamelModel):
    id: str
    filename: str
    original_filename: str
    order_index: int
    thumbnail_url: str
    web_url: str
    width: Optional[int] = None
    height: Optional[int] = None
    processing_status: str


class GalleryResponse(CamelModel):
    id: str
    slug: str
    title: str
    description: Optional[str]
    visibility: str
    photo_count: int
    downloads_enabled: bool
    tags: list[str]
    design: Optional[dict[str, Any]]
    cover_photo: Optional[CoverPhotoResponse]
    message: Optional[str]
    photos: list[GalleryPhotoResponse]


class CollectionSettingsRequest(CamelModel):
    downloads_enabled: Optional[bool] = None
    cover_photo_id: Optional[str] = None


class CollectionSettingsResponse(CamelModel):
    id: str
    slug: str
    downloads_enabled: bool
    cover_photo: Optional[CoverPhotoResponse]
    updated_at: datetime
