"""Client favorites and favorite analytics endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from photodrop.api.deps import (
    Owner,
    get_client,
    get_current_owner,
    get_store,
    http_error,
    owned_collection,
    require_admin,
)
from photodrop.config import settings
from photodrop.errors import DeliveryError, NotFoundError
from photodrop.models.favorite import FavoriteAnalytics, FavoriteSession
from photodrop.schemas.favorite import (
    CleanupResponse,
    CollectionFavoritesResponse,
    FavoriteMarkResponse,
    FavoriteRequest,
    FavoriteSessionResponse,
    PhotoAnalyticsResponse,
    SessionSummaryResponse,
    ShareFavoritesResponse,
    SharePhotoFavoritesResponse,
)
from photodrop.services.activity_service import ClientContext
from photodrop.services.favorites_service import (
    client_identifier,
    collection_report,
    share_report,
    toggle_favorite,
)
from photodrop.store import PersistentStore

router = APIRouter(tags=["favorites"])


def _analytics_to_response(a: FavoriteAnalytics) -> PhotoAnalyticsResponse:
    return PhotoAnalyticsResponse(
        photo_id=a.photo_id,
        collection_id=a.collection_id,
        total_favorites=a.total_favorites,
        last_favorited_at=a.last_favorited_at,
        favorite_sessions=[
            FavoriteMarkResponse(
                session_id=m.session_id,
                client_identifier=m.client_identifier,
                added_at=m.added_at,
            )
            for m in a.favorite_sessions
        ],
    )


def _session_to_response(session: FavoriteSession, action: str, photo_id: str) -> FavoriteSessionResponse:
    identifier = session.client_identifier
    return FavoriteSessionResponse(
        action=action,
        photo_id=photo_id,
        client_identifier="anonymous" if identifier.startswith("anon_") else identifier,
        favorite_photo_ids=list(session.favorite_photo_ids),
        total_favorites=session.total_favorites,
    )


@router.get("/gallery/{token}/favorites", response_model=ShareFavoritesResponse)
async def get_share_favorites(
    token: str,
    client_email: Optional[str] = Query(default=None, alias="clientEmail"),
    store: PersistentStore = Depends(get_store),
    client: ClientContext = Depends(get_client),
):
    """Favorite counts on this share link plus the caller's own picks."""
    if token not in await store.get_shares():
        raise http_error(NotFoundError("Invalid access token"))

    report = await share_report(store, token)
    own_id = FavoriteSession.make_id(token, client_identifier(client_email, client))
    own = (await store.get_favorite_sessions()).get(own_id)

    return ShareFavoritesResponse(
        total_sessions=report["total_sessions"],
        total_unique_favorites=report["total_unique_favorites"],
        photo_analytics=[SharePhotoFavoritesResponse(**p) for p in report["photo_analytics"]],
        my_favorites=list(own.favorite_photo_ids) if own else [],
    )


@router.post("/gallery/{token}/favorites", response_model=FavoriteSessionResponse)
async def post_favorite(
    token: str,
    request: FavoriteRequest,
    response: Response,
    store: PersistentStore = Depends(get_store),
    client: ClientContext = Depends(get_client),
):
    """Add, remove or toggle a favorite photo."""
    try:
        session, action = await toggle_favorite(
            store, token, request.photo_id, request.action, request.client_email, client,
        )
    except DeliveryError as e:
        raise http_error(e)

    if action == "add":
        response.status_code = status.HTTP_201_CREATED
    return _session_to_response(session, "added" if action == "add" else "removed", request.photo_id)


@router.delete("/gallery/{token}/favorites/{photo_id}", response_model=FavoriteSessionResponse)
async def delete_favorite(
    token: str,
    photo_id: str,
    client_email: Optional[str] = Query(default=None, alias="clientEmail"),
    store: PersistentStore = Depends(get_store),
    client: ClientContext = Depends(get_client),
):
    """Remove a favorite photo."""
    try:
        session, _ = await toggle_favorite(store, token, photo_id, "remove", client_email, client)
    except DeliveryError as e:
        raise http_error(e)
    return _session_to_response(session, "removed", photo_id)


@router.get("/collections/{collection_id}/favorites", response_model=CollectionFavoritesResponse)
async def get_collection_favorites(
    collection_id: str,
    owner: Owner = Depends(get_current_owner),
    store: PersistentStore = Depends(get_store),
):
    """Favorite analytics for a collection (owner only)."""
    await owned_collection(store, collection_id, owner)
    report = await collection_report(store, collection_id)

    top = report["most_favorited_photo"]
    return CollectionFavoritesResponse(
        collection_id=collection_id,
        photo_analytics=[_analytics_to_response(a) for a in report["photo_analytics"]],
        total_sessions=report["total_sessions"],
        total_favorites=report["total_favorites"],
        most_favorited_photo=_analytics_to_response(top) if top else None,
        recent_sessions=[
            SessionSummaryResponse(
                id=s.id,
                share_token=s.share_token,
                client_identifier=s.client_identifier,
                favorite_photo_ids=list(s.favorite_photo_ids),
                total_favorites=s.total_favorites,
                created_at=s.created_at,
                last_updated_at=s.last_updated_at,
            )
            for s in report["recent_sessions"]
        ],
    )


@router.post("/favorites/cleanup", response_model=CleanupResponse)
async def cleanup_favorites(
    days_old: int = Query(default=settings.favorites_retention_days, alias="daysOld", ge=1),
    admin: Owner = Depends(require_admin),
    store: PersistentStore = Depends(get_store),
):
    """Purge favorite sessions that have not changed for ``daysOld`` days (admin only)."""
    removed = await store.clear_old_favorite_sessions(days_old)
    return CleanupResponse(removed=removed, days_old=days_old)
