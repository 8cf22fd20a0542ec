"""Signed, time-limited download URLs.

A capability token is never stored: it is the triple (file path, expiry in
epoch milliseconds, HMAC-SHA256 signature over ``"{path}:{expires}"``) carried
in the query string of the secure-download URL, and it is checked by
recomputing the signature.
"""

import hashlib
import hmac
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from photodrop.errors import AccessDenied, BadSignature, Expired, ValidationError

SECURE_DOWNLOAD_PATH = "/api/v1/downloads/secure"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CapabilityToken:
    file_path: str
    expires: int  # epoch milliseconds
    signature: str

    def query(self) -> str:
        return urlencode({"path": self.file_path, "expires": self.expires, "signature": self.signature})

    def url(self, base: str = SECURE_DOWNLOAD_PATH) -> str:
        return f"{base}?{self.query()}"


class CapabilitySigner:
    def __init__(self, secret: str, upload_root: Path, uploads_prefix: str = "/uploads/"):
        if not secret:
            raise ValueError("A signing secret is required")
        self._key = secret.encode()
        self.upload_root = Path(upload_root).resolve()
        self.uploads_prefix = uploads_prefix

    def sign(self, file_path: str, expires: int) -> str:
        message = f"{file_path}:{expires}".encode()
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()

    def issue(self, file_path: str, ttl_seconds: int, now_ms: Optional[int] = None) -> CapabilityToken:
        now_ms = _now_ms() if now_ms is None else now_ms
        expires = now_ms + ttl_seconds * 1000
        return CapabilityToken(file_path=file_path, expires=expires, signature=self.sign(file_path, expires))

    def verify(
        self,
        file_path: str,
        expires: "int | str",
        signature: str,
        now_ms: Optional[int] = None,
    ) -> Path:
        """Check a token and return the absolute file it grants access to.

        Raises Expired, BadSignature or AccessDenied. The path check runs even
        for a correctly signed token.
        """
        try:
            expires_ms = int(expires)
        except (TypeError, ValueError):
            raise ValidationError("Invalid expires parameter")

        now_ms = _now_ms() if now_ms is None else now_ms
        if now_ms > expires_ms:
            raise Expired("Download link has expired")

        # Sign the value exactly as supplied so "0100" and "100" differ
        expected = self.sign(file_path, expires if isinstance(expires, str) else expires_ms)
        if not hmac.compare_digest(expected, str(signature)):
            raise BadSignature("Invalid signature")

        return self.resolve(file_path)

    def resolve(self, file_path: str) -> Path:
        """Map an uploads URL path to a file strictly inside the upload root."""
        if not file_path.startswith(self.uploads_prefix):
            raise AccessDenied(f"Path outside uploads: {file_path!r}")

        relative = file_path[len(self.uploads_prefix):]
        # resolve() follows symlinks, so a link pointing out of the root is caught too
        candidate = (self.upload_root / relative).resolve()
        if candidate == self.upload_root or not candidate.is_relative_to(self.upload_root):
            raise AccessDenied(f"Path escapes upload root: {file_path!r}")
        return candidate
