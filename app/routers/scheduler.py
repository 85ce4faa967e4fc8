from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.deps import AdminPrincipal, require_admin
from app.schemas.scheduler import SchedulerStatusOut, SweepResultOut
from app.services.expiring_offers import check_and_notify_expiring_offers
from app.services.scheduler import expiring_offers_scheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduler", tags=["Admin - Scheduler"])


@router.post("/expiring-offers", response_model=SweepResultOut)
async def run_expiring_offers_check(
    db: AsyncSession = Depends(get_db),
    admin: AdminPrincipal = Depends(require_admin),
):
    logger.info("Expiring offers check triggered manually by admin %s", admin.user_id)
    result = await check_and_notify_expiring_offers(db)
    return result.as_dict()


@router.get("/status", response_model=SchedulerStatusOut)
async def scheduler_status(admin: AdminPrincipal = Depends(require_admin)):
    return expiring_offers_scheduler.status()
