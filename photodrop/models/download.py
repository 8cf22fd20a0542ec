"""Download PIN record."""

import secrets
from datetime import datetime
from typing import Literal, Optional

from pydantic import Field, model_validator

from photodrop.models.base import Record, UtcDatetime, utcnow

Resolution = Literal["web", "high_res", "original"]


class DownloadPin(Record):
    id: str = Field(default_factory=lambda: f"pin_{secrets.token_hex(6)}")
    pin: str  # 4 digits, not unique
    collection_id: Optional[str] = None
    photo_id: Optional[str] = None
    share_token: str
    client_email: Optional[str] = None
    resolution: Resolution = "web"
    expires_at: UtcDatetime
    attempts: int = 0
    max_attempts: int = 5
    used_at: Optional[UtcDatetime] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _single_scope(self) -> "DownloadPin":
        if (self.collection_id is None) == (self.photo_id is None):
            raise ValueError("exactly one of collectionId or photoId is required")
        return self

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts
