"""Audit trail for download and favorite activity."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from photodrop.database import engine
from photodrop.models.activity import ActivityLog

logger = logging.getLogger(__name__)


@dataclass
class ClientContext:
    """Who is making a request, as far as an anonymous client can be identified."""

    ip: str = ""
    user_agent: str = ""
    country: Optional[str] = None


def record_activity(
    activity_type: str,
    client: Optional[ClientContext] = None,
    **fields,
) -> ActivityLog:
    entry = ActivityLog(
        activity_type=activity_type,
        client_ip=client.ip if client else None,
        user_agent=client.user_agent if client else None,
        **fields,
    )
    with Session(engine) as session:
        session.add(entry)
        session.commit()
        session.refresh(entry)
    return entry


async def log_activity(
    activity_type: str,
    client: Optional[ClientContext] = None,
    **fields,
) -> None:
    """Record an activity off the event loop. A failed audit write never fails the request."""
    try:
        await asyncio.to_thread(record_activity, activity_type, client, **fields)
    except SQLAlchemyError as e:
        logger.error("Failed to record %s activity: %s", activity_type, e)


def list_activities(
    session: Session,
    activity_type: Optional[str] = None,
    collection_id: Optional[str] = None,
    pin_id: Optional[str] = None,
    limit: int = 100,
) -> list[ActivityLog]:
    """Newest first."""
    query = select(ActivityLog)
    if activity_type:
        query = query.where(ActivityLog.activity_type == activity_type)
    if collection_id:
        query = query.where(ActivityLog.collection_id == collection_id)
    if pin_id:
        query = query.where(ActivityLog.pin_id == pin_id)
    query = query.order_by(col(ActivityLog.created_at).desc()).limit(limit)
    return list(session.exec(query).all())
