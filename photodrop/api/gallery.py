"""Shared gallery and collection settings endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from photodrop.api.deps import Owner, get_current_owner, get_store, http_error, owned_collection
from photodrop.errors import DeliveryError
from photodrop.models.collection import CoverPhoto
from photodrop.schemas.gallery import (
    CollectionSettingsRequest,
    CollectionSettingsResponse,
    CoverPhotoResponse,
    GalleryPhotoResponse,
    GalleryResponse,
)
from photodrop.services.gallery_service import open_gallery
from photodrop.store import PersistentStore

router = APIRouter(tags=["gallery"])


def _cover_to_response(cover: Optional[CoverPhoto]) -> Optional[CoverPhotoResponse]:
    if cover is None:
        return None
    return CoverPhotoResponse(id=cover.id, thumbnail_url=cover.thumbnail_url, web_url=cover.web_url)


@router.get("/gallery/{token}", response_model=GalleryResponse)
async def get_gallery(
    token: str,
    x_gallery_password: Optional[str] = Header(default=None),
    store: PersistentStore = Depends(get_store),
):
    """Open a shared gallery: collection details and photos in gallery order."""
    try:
        gallery = await open_gallery(store, token, password=x_gallery_password)
    except DeliveryError as e:
        raise http_error(e)

    collection = gallery["collection"]
    return GalleryResponse(
        id=collection.id,
        slug=collection.slug,
        title=collection.title,
        description=collection.description,
        visibility=collection.visibility,
        photo_count=collection.photo_count,
        downloads_enabled=collection.downloads_enabled,
        tags=collection.tags,
        design=collection.design,
        cover_photo=_cover_to_response(gallery["cover_photo"]),
        message=gallery["message"],
        photos=[
            GalleryPhotoResponse(
                id=p.id,
                filename=p.filename,
                original_filename=p.original_filename,
                order_index=p.order_index,
                thumbnail_url=p.thumbnail_url,
                web_url=p.web_url,
                width=p.width,
                height=p.height,
                processing_status=p.processing_status,
            )
            for p in gallery["photos"]
        ],
    )


@router.patch("/collections/{collection_id}/settings", response_model=CollectionSettingsResponse)
async def update_collection_settings(
    collection_id: str,
    request: CollectionSettingsRequest,
    owner: Owner = Depends(get_current_owner),
    store: PersistentStore = Depends(get_store),
):
    """Toggle downloads or pick the cover photo of an owned collection."""
    await owned_collection(store, collection_id, owner)

    fields = {}
    if request.downloads_enabled is not None:
        fields["downloads_enabled"] = request.downloads_enabled
    if request.cover_photo_id is not None:
        photo = (await store.get_photos()).get(request.cover_photo_id)
        if photo is None or photo.collection_id != collection_id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Photo not found in collection",
            )
        fields["cover_photo"] = CoverPhoto(
            id=photo.id, thumbnail_url=photo.thumbnail_url, web_url=photo.web_url,
        )

    try:
        updated = await store.update_collection(collection_id, fields)
    except DeliveryError as e:
        raise http_error(e)
    if updated is None:
        # Deleted between the ownership check and the write
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Collection not found")

    return CollectionSettingsResponse(
        id=updated.id,
        slug=updated.slug,
        downloads_enabled=updated.downloads_enabled,
        cover_photo=_cover_to_response(updated.cover_photo),
        updated_at=updated.updated_at,
    )
