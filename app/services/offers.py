from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc, utc_now
from app.core.deps import PartnerPrincipal
from app.core.errors import BadRequest, Forbidden, NotFound
from app.models.offer import Offer
from app.models.partner import Partner

logger = logging.getLogger(__name__)

# PATCH may null these out; everything else ignores an explicit null
_CLEARABLE_FIELDS = {"coupon_expiry_days", "coupon_color", "image_url", "terms_and_conditions"}


async def _get_approved_partner(db: AsyncSession, partner: PartnerPrincipal) -> Partner:
    res = await db.execute(select(Partner).where(Partner.user_id == partner.user_id))
    profile = res.scalar_one_or_none()
    if not profile:
        raise NotFound("partner profile not found")
    if profile.status != "approved":
        raise Forbidden("Partner is not approved")
    return profile


async def _load_offer(db: AsyncSession, offer_id: int) -> Offer:
    res = await db.execute(
        select(Offer).where(Offer.id == offer_id).execution_options(populate_existing=True)
    )
    return res.scalar_one()


async def _increment_offer_views(db: AsyncSession, *, offer_ids: list[int]) -> None:
    if not offer_ids:
        return
    try:
        await db.execute(
            update(Offer)
            .where(Offer.id.in_(offer_ids))
            .values(views=Offer.views + 1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        logger.exception("Failed to count views for offers %s", offer_ids)
        await db.rollback()


def _check_prices(original_price, discounted_price) -> None:
    if original_price is not None and discounted_price is not None and discounted_price > original_price:
        raise BadRequest("discounted_price cannot exceed original_price")


async def partner_create_offer(db: AsyncSession, *, partner: PartnerPrincipal, data) -> Offer:
    profile = await _get_approved_partner(db, partner)
    _check_prices(data.original_price, data.discounted_price)

    offer = Offer(
        partner_id=profile.id,
        title=data.title,
        description=data.description,
        discount=data.discount,
        original_price=data.original_price,
        discounted_price=data.discounted_price,
        category=data.category,
        expiry_date=data.expiry_date,
        is_active=data.is_active,
        coupon_expiry_days=data.coupon_expiry_days,
        coupon_color=data.coupon_color,
        image_url=data.image_url,
        terms_and_conditions=data.terms_and_conditions,
    )

    try:
        db.add(offer)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return await _load_offer(db, int(offer.id))


async def partner_update_offer(
    db: AsyncSession,
    *,
    partner: PartnerPrincipal,
    offer_id: int,
    data,
) -> Offer:
    profile = await _get_approved_partner(db, partner)

    offer = await db.get(Offer, offer_id)
    if not offer or int(offer.partner_id) != int(profile.id):
        raise NotFound("offer not found")

    changes = data.model_dump(exclude_unset=True)
    _check_prices(
        changes.get("original_price", offer.original_price),
        changes.get("discounted_price", offer.discounted_price),
    )
    for field, value in changes.items():
        if value is None and field not in _CLEARABLE_FIELDS:
            continue
        setattr(offer, field, value)

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return await _load_offer(db, int(offer.id))


async def partner_list_offers(db: AsyncSession, *, partner: PartnerPrincipal) -> list[Offer]:
    profile = await _get_approved_partner(db, partner)
    res = await db.execute(
        select(Offer).where(Offer.partner_id == profile.id).order_by(Offer.created_at.desc(), Offer.id.desc())
    )
    return list(res.scalars().all())


async def public_list_active_offers(
    db: AsyncSession,
    *,
    category: str | None,
    limit: int,
    offset: int,
    now: datetime | None = None,
) -> list[Offer]:
    now = now or utc_now()
    stmt = select(Offer).where(Offer.is_active.is_(True), Offer.expiry_date > now)

    if category:
        stmt = stmt.where(Offer.category == category)

    stmt = stmt.order_by(Offer.created_at.desc(), Offer.id.desc()).limit(int(limit)).offset(int(offset))

    res = await db.execute(stmt)
    offers = list(res.scalars().all())
    # listed rows keep the counts they were read with
    await _increment_offer_views(db, offer_ids=[int(o.id) for o in offers])
    return offers


async def public_get_offer(db: AsyncSession, *, offer_id: int, now: datetime | None = None) -> Offer:
    now = now or utc_now()
    offer = await db.get(Offer, offer_id)
    if not offer or not offer.is_active or as_utc(offer.expiry_date) <= now:
        raise NotFound("offer not found")

    await _increment_offer_views(db, offer_ids=[int(offer.id)])
    return await _load_offer(db, int(offer.id))


async def record_offer_click(db: AsyncSession, *, offer_id: int) -> None:
    res = await db.execute(
        update(Offer)
        .where(Offer.id == offer_id)
        .values(clicks=Offer.clicks + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        await db.rollback()
        raise NotFound("offer not found")

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
