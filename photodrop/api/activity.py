"""Download and favorite audit trail for collection owners."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from photodrop.api.deps import Owner, get_current_owner, get_store, owned_collection
from photodrop.database import get_session
from photodrop.schemas.activity import ActivityResponse
from photodrop.services.activity_service import list_activities
from photodrop.store import PersistentStore

router = APIRouter(tags=["activity"])


@router.get("/collections/{collection_id}/activity", response_model=list[ActivityResponse])
async def get_collection_activity(
    collection_id: str,
    activity_type: Optional[str] = Query(default=None, alias="type"),
    limit: int = Query(default=100, ge=1, le=500),
    owner: Owner = Depends(get_current_owner),
    store: PersistentStore = Depends(get_store),
    session: Session = Depends(get_session),
):
    """Recent PIN requests, verifications and favorites on an owned collection."""
    await owned_collection(store, collection_id, owner)
    entries = list_activities(session, activity_type, collection_id=collection_id, limit=limit)
    return [
        ActivityResponse(
            id=e.id,
            activity_type=e.activity_type,
            photo_id=e.photo_id,
            pin_id=e.pin_id,
            client_email=e.client_email,
            client_ip=e.client_ip,
            success=e.success,
            reason=e.reason,
            created_at=e.created_at,
        )
        for e in entries
    ]
