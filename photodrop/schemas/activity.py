"""Audit trail response schemas."""

from datetime import datetime
from typing import Optional

from photodrop.schemas.common import CamelModel


class ActivityResponse(CamelModel):
    id: str
    activity_type: str
    photo_id: Optional[str]
    pin_id: Optional[str]
    client_email: Optional[str]
    client_ip: Optional[str]
    success: Optional[bool]
    reason: Optional[str]
    created_at: datetime
