"""Download PIN and signed URL request/response schemas."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from photodrop.schemas.common import CamelModel

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class DownloadRequest(CamelModel):
    photo_id: Optional[str] = None
    collection_id: Optional[str] = None
    client_email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    resolution: Literal["web", "high_res", "original"] = "high_res"


class PinRequestResponse(CamelModel):
    pin: str
    expires_at: datetime
    max_attempts: int


class VerifyPinRequest(CamelModel):
    pin: str = Field(pattern=r"^[0-9]{4}$")


class DownloadGrantResponse(CamelModel):
    download_url: str
    filename: str
    file_size: Optional[int]
    expires_in: int  # seconds
