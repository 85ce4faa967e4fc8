# app/routers/admin_coupons.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.deps import require_admin
from app.core.errors import NotFound
from app.models.coupon import Coupon
from app.models.coupon_event import CouponEvent
from app.schemas.coupon_events import CouponEventOut
from app.schemas.coupons import CouponOut

router = APIRouter(prefix="/admin/coupons", tags=["Admin - Coupons"])


@router.get("", response_model=list[CouponOut])
async def list_coupons(
    status: str | None = Query(default=None),
    offer_id: int | None = Query(default=None),
    partner_id: int | None = Query(default=None),
    member_id: int | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    stmt = select(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc())

    if status:
        stmt = stmt.where(Coupon.status == status.upper())
    if offer_id:
        stmt = stmt.where(Coupon.offer_id == offer_id)
    if partner_id:
        stmt = stmt.where(Coupon.partner_id == partner_id)
    if member_id:
        stmt = stmt.where(Coupon.member_id == member_id)

    res = await db.execute(stmt.limit(limit).offset(offset))
    return res.scalars().all()


@router.get("/{coupon_id}/events", response_model=list[CouponEventOut])
async def list_coupon_events(
    coupon_id: int,
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    coupon = await db.get(Coupon, coupon_id)
    if not coupon:
        raise NotFound("coupon not found")

    stmt = (
        select(CouponEvent)
        .where(CouponEvent.coupon_id == coupon_id)
        .order_by(CouponEvent.created_at.asc(), CouponEvent.id.asc())
    )
    res = await db.execute(stmt)
    return res.scalars().all()
