from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.deps import Principal, get_principal
from app.schemas.notifications import NotificationListOut, NotificationOut
from app.services.notifications import list_notifications, mark_notification_read

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListOut)
async def get_notifications(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return await list_notifications(db, user_id=principal.user_id, page=page, limit=limit)


@router.put("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return await mark_notification_read(db, user_id=principal.user_id, notification_id=notification_id)
