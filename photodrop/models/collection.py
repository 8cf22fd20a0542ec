"""Collection, photo and share link records."""

import secrets
from typing import Any, Literal, Optional

from pydantic import AliasChoices, Field

from photodrop.models.base import Record, UtcDatetime, utcnow

Visibility = Literal["public", "private", "password_protected"]
ProcessingStatus = Literal["pending", "processing", "completed", "failed"]


class CoverPhoto(Record):
    id: str
    thumbnail_url: str
    web_url: str


class StoredCollection(Record):
    id: str = Field(default_factory=lambda: f"col_{secrets.token_hex(4)}")
    slug: str  # globally unique, immutable
    title: str = ""
    description: Optional[str] = None
    owner_id: str
    visibility: Visibility = "private"
    is_starred: bool = False
    is_featured: bool = False
    downloads_enabled: bool = True
    tags: list[str] = Field(default_factory=list)
    photo_count: int = 0
    cover_photo: Optional[CoverPhoto] = None
    design: Optional[dict[str, Any]] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


class StoredPhoto(Record):
    id: str = Field(default_factory=lambda: f"pho_{secrets.token_hex(4)}")
    collection_id: str
    filename: str
    original_filename: str
    order_index: int  # unique per collection
    thumbnail_url: str
    web_url: str
    high_res_url: Optional[str] = None
    original_url: str
    width: Optional[int] = None
    height: Optional[int] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    is_raw: bool = False
    processing_status: ProcessingStatus = "completed"
    metadata: Optional[dict[str, Any]] = None
    uploaded_at: UtcDatetime = Field(default_factory=utcnow)
    created_at: UtcDatetime = Field(default_factory=utcnow)


class ShareLink(Record):
    access_token: str = Field(
        default_factory=lambda: secrets.token_urlsafe(24),
        validation_alias=AliasChoices("accessToken", "shareToken", "access_token"),
    )
    id: str = Field(default_factory=lambda: f"shr_{secrets.token_hex(4)}")
    collection_id: str
    collection_slug: Optional[str] = None
    visibility: Visibility = "private"
    password_hash: Optional[str] = None  # bcrypt
    expires_at: Optional[UtcDatetime] = None
    message: Optional[str] = None
    created_by: Optional[str] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    access_count: int = 0
    last_accessed_at: Optional[UtcDatetime] = None
