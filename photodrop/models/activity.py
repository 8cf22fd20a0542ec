"""Audit trail model."""

import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class ActivityLog(SQLModel, table=True):
    __tablename__ = "activity_log"

    id: str = Field(default_factory=lambda: f"act_{secrets.token_hex(6)}", primary_key=True)
    # 'download_request' | 'download_verify' | 'secure_download' | 'favorite' | 'unfavorite'
    activity_type: str = Field(index=True)
    collection_id: Optional[str] = Field(default=None, index=True)
    photo_id: Optional[str] = None
    pin_id: Optional[str] = Field(default=None, index=True)
    share_token: Optional[str] = None
    client_email: Optional[str] = None
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    success: Optional[bool] = None
    reason: Optional[str] = None  # error code on failure
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
