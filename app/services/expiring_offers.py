"""
Daily reminder for members whose saved offers are about to expire.

At most one ``expiring_offer`` notification per member and offer per
calendar day; "today" is taken in the scheduler's timezone. Coupons are not
touched here.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from time import perf_counter
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc, utc_now
from app.core.config import settings
from app.models.notification import Notification
from app.models.offer import Offer
from app.models.partner import Partner
from app.models.saved_offer import SavedOffer
from app.models.user import User
from app.services.notifications import create_notification

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = "expiring_offer"
NOTIFICATION_TITLE = "Offer Expiring Soon"


@dataclass
class SweepResult:
    notifications_created: int = 0
    notifications_skipped: int = 0
    errors: int = 0
    duration_seconds: float = 0.0

    def as_dict(self) -> dict:
        return asdict(self)


def _start_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, datetime.min.time(), tzinfo=tz).astimezone(timezone.utc)


def days_until_expiry(expiry_date: datetime, *, today: date, tz: tzinfo) -> int:
    return (as_utc(expiry_date).astimezone(tz).date() - today).days


def expiring_offer_message(days: int, offer_title: str, partner_name: str) -> str:
    if days <= 0:
        return f"{offer_title} from {partner_name} expires today! Don't miss out!"
    if days == 1:
        return f"{offer_title} from {partner_name} expires tomorrow! Claim it now!"
    return f"{offer_title} from {partner_name} expires in {days} days. Don't miss this deal!"


async def _already_notified(
    db: AsyncSession,
    *,
    user_id: int,
    offer_id: int,
    day_start: datetime,
    day_end: datetime,
) -> bool:
    res = await db.execute(
        select(Notification.id)
        .where(
            Notification.user_id == user_id,
            Notification.type == NOTIFICATION_TYPE,
            Notification.entity_id == offer_id,
            Notification.created_at >= day_start,
            Notification.created_at < day_end,
        )
        .limit(1)
    )
    return res.first() is not None


async def check_and_notify_expiring_offers(
    db: AsyncSession,
    *,
    now: datetime | None = None,
    lookahead_days: int | None = None,
    tz: tzinfo | None = None,
) -> SweepResult:
    started = perf_counter()
    now = as_utc(now) if now is not None else utc_now()
    tz = tz or ZoneInfo(settings.SCHEDULER_TIMEZONE)
    lookahead = settings.EXPIRING_OFFERS_LOOKAHEAD_DAYS if lookahead_days is None else int(lookahead_days)

    today = as_utc(now).astimezone(tz).date()
    day_start = _start_of_day(today, tz)
    day_end = _start_of_day(today + timedelta(days=1), tz)
    window_end = _start_of_day(today + timedelta(days=lookahead + 1), tz)

    logger.info("Expiring offers check started (today=%s, lookahead=%d days)", today.isoformat(), lookahead)

    res = await db.execute(
        select(
            SavedOffer.member_id,
            User.email,
            Offer.id,
            Offer.title,
            Offer.expiry_date,
            Partner.shop_name,
            Partner.partner_name,
        )
        .join(User, User.id == SavedOffer.member_id)
        .join(Offer, Offer.id == SavedOffer.offer_id)
        .join(Partner, Partner.id == Offer.partner_id)
        .where(
            User.role == "member",
            User.is_active.is_(True),
            Offer.is_active.is_(True),
            Offer.expiry_date >= day_start,
            Offer.expiry_date < window_end,
        )
        .order_by(SavedOffer.id.asc())
    )
    rows = res.all()

    result = SweepResult()
    for member_id, email, offer_id, title, expiry_date, shop_name, partner_name in rows:
        try:
            if await _already_notified(
                db,
                user_id=int(member_id),
                offer_id=int(offer_id),
                day_start=day_start,
                day_end=day_end,
            ):
                result.notifications_skipped += 1
                logger.debug("Already notified %s today about offer %s", email, offer_id)
                continue

            days = days_until_expiry(expiry_date, today=today, tz=tz)
            label = shop_name or partner_name or "Partner"

            await create_notification(
                db,
                user_id=int(member_id),
                type=NOTIFICATION_TYPE,
                title=NOTIFICATION_TITLE,
                message=expiring_offer_message(days, title, label),
                entity_type="offer",
                entity_id=int(offer_id),
                created_at=now,
            )
            await db.commit()
            result.notifications_created += 1
        except Exception:
            result.errors += 1
            logger.exception("Failed to process saved offer %s for member %s", offer_id, member_id)
            await db.rollback()

    result.duration_seconds = round(perf_counter() - started, 3)
    logger.info(
        "Expiring offers check completed: created=%d skipped=%d errors=%d duration=%.2fs",
        result.notifications_created,
        result.notifications_skipped,
        result.errors,
        result.duration_seconds,
    )
    return result
