from __future__ import annotations

import logging
import math
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFound
from app.models.notification import Notification
from app.models.offer import Offer
from app.models.partner import Partner

logger = logging.getLogger(__name__)


async def create_notification(
    db: AsyncSession,
    *,
    user_id: int,
    type: str,
    title: str,
    message: str,
    entity_type: str | None = None,
    entity_id: int | None = None,
    created_at: datetime | None = None,
) -> Notification:
    """Stage a notification in the session; the caller commits."""
    n = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        entity_type=entity_type,
        entity_id=entity_id,
        is_read=False,
    )
    if created_at is not None:
        n.created_at = created_at
    db.add(n)
    await db.flush()
    return n


async def notify_coupon_redeemed(
    db: AsyncSession,
    *,
    coupon_id: int,
    coupon_code: str,
    offer_id: int,
    partner_id: int,
) -> None:
    """
    Tell the shop's login that one of its coupons was redeemed.

    Best effort: any failure is logged and rolled back, never raised.
    """
    try:
        partner = await db.get(Partner, partner_id)
        if partner is None or partner.user_id is None:
            return

        offer = await db.get(Offer, offer_id)
        title = offer.title if offer is not None else "your offer"

        await create_notification(
            db,
            user_id=int(partner.user_id),
            type="coupon_redeemed",
            title="Coupon Redeemed",
            message=f'Coupon {coupon_code} for "{title}" was redeemed.',
            entity_type="coupon",
            entity_id=coupon_id,
        )
        await db.commit()
    except Exception:
        logger.exception("Failed to notify partner %s about redemption of coupon %s", partner_id, coupon_id)
        await db.rollback()


async def list_notifications(
    db: AsyncSession,
    *,
    user_id: int,
    page: int,
    limit: int,
) -> dict:
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(int(limit))
        .offset((int(page) - 1) * int(limit))
    )
    res = await db.execute(stmt)
    items = list(res.scalars().all())

    total = (
        await db.execute(select(func.count(Notification.id)).where(Notification.user_id == user_id))
    ).scalar_one()
    unread = (
        await db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        )
    ).scalar_one()

    return {
        "notifications": items,
        "unread_count": int(unread),
        "pagination": {
            "page": int(page),
            "limit": int(limit),
            "total": int(total),
            "pages": math.ceil(int(total) / int(limit)) if limit else 0,
        },
    }


async def mark_notification_read(
    db: AsyncSession,
    *,
    user_id: int,
    notification_id: int,
) -> Notification:
    res = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    n = res.scalar_one_or_none()
    if not n:
        raise NotFound("Notification not found")

    try:
        n.is_read = True
        await db.commit()
        await db.refresh(n)
        return n
    except Exception:
        await db.rollback()
        raise
