"""Download authorization: PIN issuance, PIN verification, signed file delivery.

Flow for a client holding a share link:

1. ``request_pin`` creates a 4-digit PIN scoped to one photo or one collection
   of the share (delivered out of band).
2. ``verify_pin`` checks the PIN against the share, enforces the attempt limit
   and returns a signed download URL valid for one hour.
3. ``authorize_download`` validates that URL when the file is fetched.

Each PIN keeps ``attempts``/``max_attempts``. Verification of one PIN record is
serialized with the store's record lock, so concurrent guesses can never push
more successful verifications through than the limit allows.
"""

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional

from photodrop.config import settings
from photodrop.errors import (
    AccessMismatch,
    AttemptsExceeded,
    AuthError,
    DeliveryError,
    DownloadsDisabled,
    InvalidPin,
    NotFoundError,
    ShareExpired,
    ValidationError,
)
from photodrop.models.base import utcnow
from photodrop.models.collection import ShareLink
from photodrop.models.download import DownloadPin, Resolution
from photodrop.services.activity_service import ClientContext, log_activity
from photodrop.store import PersistentStore
from photodrop.utils.security import generate_pin
from photodrop.utils.signing import CapabilitySigner

logger = logging.getLogger(__name__)

# Archive generation is handled elsewhere; collection PINs sign this endpoint
COLLECTION_ARCHIVE_PATH = "/api/v1/downloads/collection/{collection_id}/{resolution}"


async def active_share(store: PersistentStore, share_token: str, now: datetime) -> ShareLink:
    """Look up a share link, rejecting unknown and expired ones."""
    share = (await store.get_shares()).get(share_token)
    if share is None:
        raise NotFoundError("Invalid access token")
    if share.expires_at and share.expires_at < now:
        raise ShareExpired()
    return share


# --- PIN Request ---

async def request_pin(
    store: PersistentStore,
    share_token: str,
    resolution: Resolution = "high_res",
    photo_id: Optional[str] = None,
    collection_id: Optional[str] = None,
    client_email: Optional[str] = None,
    client: Optional[ClientContext] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Create a download PIN for one photo or the whole shared collection."""
    if (photo_id is None) == (collection_id is None):
        raise ValidationError("Exactly one of photoId or collectionId is required")

    now = now or utcnow()
    share = await active_share(store, share_token, now)

    collection = (await store.get_collections()).get(share.collection_id)
    if collection is None:
        raise NotFoundError("Collection not found")
    if not collection.downloads_enabled:
        raise DownloadsDisabled()

    if photo_id is not None:
        photo = (await store.get_photos()).get(photo_id)
        if photo is None or photo.collection_id != collection.id:
            raise NotFoundError("Photo not found in collection")
    elif collection_id != collection.id:
        raise NotFoundError("Collection not found")

    record = DownloadPin(
        pin=generate_pin(settings.pin_length),
        collection_id=None if photo_id else collection.id,
        photo_id=photo_id,
        share_token=share_token,
        client_email=client_email,
        resolution=resolution,
        expires_at=now + timedelta(hours=settings.pin_expire_hours),
        max_attempts=settings.pin_max_attempts,
        created_at=now,
    )
    await store.set_pin(record.id, record)

    if client_email:
        # TODO: hand the PIN to the mail service once it exposes a send endpoint
        logger.info("PIN %s for collection %s should be mailed to %s", record.id, collection.id, client_email)

    await log_activity(
        "download_request",
        client,
        collection_id=collection.id,
        photo_id=photo_id,
        pin_id=record.id,
        share_token=share_token,
        client_email=client_email,
        success=True,
    )

    return {
        "pin": record.pin,
        "expires_at": record.expires_at,
        "max_attempts": record.max_attempts,
    }


# --- PIN Verification ---

def _find_pin(
    pins: Iterable[DownloadPin], pin: str, share_token: str, now: datetime
) -> Optional[DownloadPin]:
    """PIN values are not unique: prefer one issued through this share, then the newest."""
    matches = [p for p in pins if p.pin == pin and not p.is_expired(now)]
    if not matches:
        return None
    return max(matches, key=lambda p: (p.share_token == share_token, p.created_at))


async def _bump_attempts(store: PersistentStore, record: DownloadPin, **changes) -> DownloadPin:
    updated = record.model_copy(update={"attempts": record.attempts + 1, **changes})
    await store.set_pin(updated.id, updated)
    return updated


async def _penalize_share(store: PersistentStore, share_token: str, now: datetime) -> int:
    """Count a wrong guess against every live PIN issued through the share."""
    pins = await store.get_pins()
    targets = [
        p.id for p in pins.values()
        if p.share_token == share_token and not p.is_expired(now) and not p.exhausted
    ]
    for pin_id in targets:
        async with store.record_lock("pins", pin_id):
            record = pins[pin_id]
            if not record.exhausted:
                await _bump_attempts(store, record)
    return len(targets)


async def _scope_collection_id(store: PersistentStore, record: DownloadPin) -> Optional[str]:
    if record.collection_id:
        return record.collection_id
    photo = (await store.get_photos()).get(record.photo_id)
    return photo.collection_id if photo else None


async def _resolve_target(store: PersistentStore, record: DownloadPin) -> tuple[str, str, Optional[int]]:
    """Return (file path, download filename, file size) for the PIN's scope."""
    if record.photo_id:
        photo = (await store.get_photos()).get(record.photo_id)
        if photo is None:
            raise NotFoundError("Photo not found")
        if record.resolution == "original":
            path = photo.original_url
        elif record.resolution == "high_res":
            path = photo.high_res_url or photo.web_url
        else:
            path = photo.web_url
        return path, photo.original_filename, photo.file_size

    collection = (await store.get_collections()).get(record.collection_id)
    if collection is None:
        raise NotFoundError("Collection not found")
    path = COLLECTION_ARCHIVE_PATH.format(collection_id=collection.id, resolution=record.resolution)
    return path, f"{collection.title or collection.slug}-{record.resolution}.zip", None


async def _verify_locked(
    store: PersistentStore,
    signer: CapabilitySigner,
    record: DownloadPin,
    scope_collection_id: Optional[str],
    share_token: str,
    now: datetime,
) -> dict:
    if record.exhausted:
        raise AttemptsExceeded()

    share = (await store.get_shares()).get(share_token)
    if share is None or share.collection_id != scope_collection_id:
        # The PIN was right but presented through the wrong share link: this
        # is treated as a probing request and still costs an attempt.
        await _bump_attempts(store, record)
        raise AccessMismatch()
    if share.expires_at and share.expires_at < now:
        raise ShareExpired()

    file_path, filename, file_size = await _resolve_target(store, record)
    await _bump_attempts(store, record, used_at=now)

    ttl = settings.download_url_ttl_seconds
    token = signer.issue(file_path, ttl)
    return {
        "download_url": token.url(),
        "filename": filename,
        "file_size": file_size,
        "expires_in": ttl,
        "pin_id": record.id,
        "resolution": record.resolution,
    }


async def verify_pin(
    store: PersistentStore,
    signer: CapabilitySigner,
    share_token: str,
    pin: str,
    client: Optional[ClientContext] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Exchange a PIN for a signed download URL.

    Raises InvalidPin, AttemptsExceeded, AccessMismatch or ShareExpired; all
    of them are recorded in the audit trail with their reason code.
    """
    if len(pin) != settings.pin_length or not (pin.isascii() and pin.isdigit()):
        raise ValidationError("Invalid PIN format")

    now = now or utcnow()
    candidate = _find_pin((await store.get_pins()).values(), pin, share_token, now)

    if candidate is None:
        penalized = await _penalize_share(store, share_token, now)
        logger.info("Wrong PIN for share %s, %d outstanding PINs charged", share_token[:8], penalized)
        await log_activity(
            "download_verify", client, share_token=share_token, success=False, reason=InvalidPin.code,
        )
        raise InvalidPin()

    async with store.record_lock("pins", candidate.id):
        record = (await store.get_pins())[candidate.id]
        scope_collection_id = await _scope_collection_id(store, record)
        try:
            result = await _verify_locked(store, signer, record, scope_collection_id, share_token, now)
        except DeliveryError as e:
            if isinstance(e, AuthError):
                logger.warning("PIN %s rejected: %s", record.id, e.code)
            await log_activity(
                "download_verify",
                client,
                collection_id=scope_collection_id,
                photo_id=record.photo_id,
                pin_id=record.id,
                share_token=share_token,
                client_email=record.client_email,
                success=False,
                reason=e.code,
            )
            raise

    await log_activity(
        "download_verify",
        client,
        collection_id=scope_collection_id,
        photo_id=record.photo_id,
        pin_id=record.id,
        share_token=share_token,
        client_email=record.client_email,
        success=True,
    )
    return result


# --- Secure Delivery ---

async def authorize_download(
    signer: CapabilitySigner,
    path: Optional[str],
    expires: Optional[str],
    signature: Optional[str],
    client: Optional[ClientContext] = None,
) -> Path:
    """Validate a signed download URL and return the file on disk to stream."""
    if not path or not expires or not signature:
        raise ValidationError("Missing required parameters")

    try:
        file_path = signer.verify(path, expires, signature)
    except AuthError as e:
        logger.warning("Secure download denied (%s): %s", e.code, e)
        await log_activity("secure_download", client, success=False, reason=e.code)
        raise

    if not file_path.is_file():
        logger.error("File not found: %s", file_path)
        raise NotFoundError("File not found")
    return file_path
