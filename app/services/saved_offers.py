from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utc_now
from app.core.deps import MemberPrincipal
from app.core.errors import BadRequest, NotFound
from app.models.offer import Offer
from app.models.saved_offer import SavedOffer


async def save_offer(db: AsyncSession, *, member: MemberPrincipal, offer_id: int) -> SavedOffer:
    member_user_id = member.user_id

    offer = await db.get(Offer, offer_id)
    if not offer:
        raise NotFound("offer not found")

    res = await db.execute(
        select(SavedOffer.id).where(
            SavedOffer.member_id == member_user_id,
            SavedOffer.offer_id == offer_id,
        )
    )
    if res.scalar_one_or_none() is not None:
        raise BadRequest("Offer already saved")

    saved = SavedOffer(member_id=member_user_id, offer_id=offer_id)
    db.add(saved)
    try:
        await db.commit()
    except IntegrityError:
        # lost a race with a concurrent save of the same offer
        await db.rollback()
        raise BadRequest("Offer already saved")
    await db.refresh(saved)
    return saved


async def list_saved_offers(
    db: AsyncSession,
    *,
    member: MemberPrincipal,
    now: datetime | None = None,
) -> list[Offer]:
    """Saved offers that can still be used, most recently saved first."""
    now = now or utc_now()
    res = await db.execute(
        select(Offer)
        .join(SavedOffer, SavedOffer.offer_id == Offer.id)
        .where(
            SavedOffer.member_id == member.user_id,
            Offer.is_active.is_(True),
            Offer.expiry_date > now,
        )
        .order_by(SavedOffer.created_at.desc(), SavedOffer.id.desc())
    )
    return list(res.scalars().all())


async def remove_saved_offer(db: AsyncSession, *, member: MemberPrincipal, offer_id: int) -> None:
    res = await db.execute(
        select(SavedOffer).where(
            SavedOffer.member_id == member.user_id,
            SavedOffer.offer_id == offer_id,
        )
    )
    saved = res.scalar_one_or_none()
    if not saved:
        raise NotFound("Saved offer not found")

    try:
        await db.delete(saved)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
