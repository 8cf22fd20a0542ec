"""Download PIN and secure file delivery endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from photodrop.api.deps import get_client, get_signer, get_store, http_error
from photodrop.errors import DeliveryError
from photodrop.schemas.download import (
    DownloadGrantResponse,
    DownloadRequest,
    PinRequestResponse,
    VerifyPinRequest,
)
from photodrop.services.activity_service import ClientContext
from photodrop.services.download_service import authorize_download, request_pin, verify_pin
from photodrop.store import PersistentStore
from photodrop.utils.signing import CapabilitySigner

router = APIRouter(tags=["downloads"])


@router.post("/gallery/{token}/download/request", response_model=PinRequestResponse)
async def download_request(
    token: str,
    request: DownloadRequest,
    store: PersistentStore = Depends(get_store),
    client: ClientContext = Depends(get_client),
):
    """Issue a 4-digit download PIN for a photo or the whole shared collection."""
    try:
        result = await request_pin(
            store,
            token,
            resolution=request.resolution,
            photo_id=request.photo_id,
            collection_id=request.collection_id,
            client_email=request.client_email,
            client=client,
        )
    except DeliveryError as e:
        raise http_error(e)
    return PinRequestResponse(**result)


@router.post("/gallery/{token}/download/verify", response_model=DownloadGrantResponse)
async def download_verify(
    token: str,
    request: VerifyPinRequest,
    store: PersistentStore = Depends(get_store),
    signer: CapabilitySigner = Depends(get_signer),
    client: ClientContext = Depends(get_client),
):
    """Exchange a PIN for a signed download URL valid for one hour."""
    try:
        result = await verify_pin(store, signer, token, request.pin, client=client)
    except DeliveryError as e:
        raise http_error(e)
    return DownloadGrantResponse(
        download_url=result["download_url"],
        filename=result["filename"],
        file_size=result["file_size"],
        expires_in=result["expires_in"],
    )


@router.get("/downloads/secure")
async def secure_download(
    path: Optional[str] = None,
    expires: Optional[str] = None,
    signature: Optional[str] = None,
    signer: CapabilitySigner = Depends(get_signer),
    client: ClientContext = Depends(get_client),
):
    """Stream a file named by a signed download URL."""
    try:
        file_path = await authorize_download(signer, path, expires, signature, client=client)
    except DeliveryError as e:
        raise http_error(e)

    return FileResponse(
        str(file_path),
        filename=file_path.name,
        headers={
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "Pragma": "no-cache",
            "Expires": "0",
        },
    )
