# app/services/coupons.py
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc, utc_now
from app.core.config import settings
from app.core.deps import MemberPrincipal, PartnerPrincipal, Principal
from app.core.errors import BadRequest, Conflict, Forbidden, InvalidState, NotFound
from app.models.coupon import (
    COUPON_ACTIVE,
    COUPON_EXPIRED,
    COUPON_REDEEMED,
    Coupon,
)
from app.models.coupon_event import CouponEvent
from app.models.member import Member
from app.models.offer import Offer
from app.models.partner import Partner
from app.services.notifications import notify_coupon_redeemed
from app.services.qr import render_qr_data_url
from app.services.scan_payload import (
    TOKEN_BYTES,
    encode_scan_payload,
    is_valid_token,
    parse_scan_payload,
)

logger = logging.getLogger(__name__)

# Reason vocabulary shared by validation and redemption
REASON_ALREADY_REDEEMED = "already redeemed"
REASON_EXPIRED = "expired"
REASON_WRONG_SHOP = "not valid at this shop"
REASON_INVALID_FORMAT = "invalid format"
REASON_COUPON_NOT_FOUND = "coupon not found"
REASON_PARTNER_NOT_FOUND = "partner profile not found"
REASON_MEMBER_NOT_FOUND = "member profile not found"
REASON_OFFER_NOT_FOUND = "offer not found"
REASON_OFFER_INACTIVE = "offer inactive"
REASON_OFFER_EXPIRED = "offer expired"
REASON_DUPLICATE_ACTIVE = "active coupon already exists for this offer"
REASON_CODE_EXHAUSTED = "could not allocate a unique coupon code"

# Unique violations worth retrying with fresh identifiers
IDENTIFIER_UNIQUE_MARKERS = (
    "coupons_coupon_code_uq",
    "coupons_qr_token_uq",
    "coupons.coupon_code",
    "coupons.qr_token",
)


@dataclass
class IssuedCoupon:
    coupon: Coupon
    scan_payload: str
    qr_code_data_url: str


@dataclass
class CouponValidation:
    valid: bool
    reason: str | None
    coupon: Coupon | None


# -------------------------
# Identifiers
# -------------------------
def _generate_coupon_code() -> str:
    # COUP-XXXX-XXXX, easy to read back over the phone
    raw = secrets.token_hex(4).upper()
    return f"COUP-{raw[:4]}-{raw[4:]}"


def _generate_qr_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


# -------------------------
# State machine helpers
# -------------------------
def coupon_ineligibility_reason(coupon: Coupon, *, now: datetime) -> str | None:
    """
    The eligibility predicate. Returns None when the coupon can be redeemed,
    otherwise the reason it cannot, in priority order.
    """
    if coupon.status == COUPON_REDEEMED:
        return REASON_ALREADY_REDEEMED
    if coupon.status == COUPON_EXPIRED or as_utc(coupon.expiry_date) < now:
        return REASON_EXPIRED
    return None


def compute_coupon_expiry(
    *,
    offer_expiry: datetime,
    coupon_expiry_days: int | None,
    now: datetime,
) -> datetime:
    if coupon_expiry_days is not None:
        return now + timedelta(days=int(coupon_expiry_days))
    return as_utc(offer_expiry)


async def _log_event(
    db: AsyncSession,
    *,
    coupon_id: int,
    actor_user_id: int | None,
    event_type: str,
    meta: dict | None = None,
):
    e = CouponEvent(
        coupon_id=coupon_id,
        actor_user_id=actor_user_id,
        event_type=event_type,
        meta=meta or {},
    )
    db.add(e)


async def _get_member_profile(db: AsyncSession, user_id: int) -> Member:
    res = await db.execute(select(Member).where(Member.user_id == user_id))
    member = res.scalar_one_or_none()
    if not member:
        raise NotFound(REASON_MEMBER_NOT_FOUND)
    return member


async def _get_partner_profile(db: AsyncSession, user_id: int) -> Partner:
    res = await db.execute(select(Partner).where(Partner.user_id == user_id))
    partner = res.scalar_one_or_none()
    if not partner:
        raise NotFound(REASON_PARTNER_NOT_FOUND)
    return partner


async def _load_coupon(db: AsyncSession, coupon_id: int) -> Coupon | None:
    # populate_existing so offer/partner/member are (re)loaded even for
    # instances already sitting in the identity map
    res = await db.execute(
        select(Coupon)
        .where(Coupon.id == coupon_id)
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def _reconcile_expiry(db: AsyncSession, coupon: Coupon, *, now: datetime) -> bool:
    """
    Lazy expiry: flip an ACTIVE coupon past its expiry_date to EXPIRED.

    Conditional on the row still being ACTIVE, so it cannot overwrite a
    redemption that committed in between. expiry_date is never touched.
    """
    if coupon.status != COUPON_ACTIVE or as_utc(coupon.expiry_date) >= now:
        return False

    try:
        res = await db.execute(
            update(Coupon)
            .where(Coupon.id == coupon.id, Coupon.status == COUPON_ACTIVE)
            .values(status=COUPON_EXPIRED)
            .execution_options(synchronize_session=False)
        )
        flipped = res.rowcount == 1
        if flipped:
            await _log_event(
                db,
                coupon_id=int(coupon.id),
                actor_user_id=None,
                event_type="expired",
                meta={"expiry_date": as_utc(coupon.expiry_date).isoformat()},
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(coupon)
    if flipped:
        logger.info("Coupon %s expired on access", coupon.coupon_code)
    return flipped


async def _claim_single_active_slot(
    db: AsyncSession,
    *,
    member_user_id: int,
    offer_id: int,
    now: datetime,
) -> None:
    """
    Refuse a second live coupon for the same offer.

    Writing the member row first takes its write lock for the rest of the
    transaction, so concurrent issuances for one member queue up here and
    each one sees the coupons committed before it.
    """
    await db.execute(
        update(Member)
        .where(Member.user_id == member_user_id)
        .values(last_coupon_at=now)
        .execution_options(synchronize_session=False)
    )
    res = await db.execute(
        select(Coupon.id).where(
            Coupon.member_id == member_user_id,
            Coupon.offer_id == offer_id,
            Coupon.status == COUPON_ACTIVE,
            Coupon.expiry_date >= now,
        )
    )
    if res.first() is not None:
        await db.rollback()
        raise Conflict(REASON_DUPLICATE_ACTIVE)


def _is_identifier_collision(exc: IntegrityError) -> bool:
    # PostgreSQL names the constraint, SQLite names the column
    message = str(exc.orig)
    return any(marker in message for marker in IDENTIFIER_UNIQUE_MARKERS)


# -------------------------
# Issuer
# -------------------------
async def generate_coupon(
    db: AsyncSession,
    *,
    member: MemberPrincipal,
    offer_id: int,
    now: datetime | None = None,
) -> IssuedCoupon:
    now = now or utc_now()
    member_user_id = member.user_id

    offer = await db.get(Offer, offer_id)
    if not offer:
        raise NotFound(REASON_OFFER_NOT_FOUND)
    if not offer.is_active:
        raise InvalidState(REASON_OFFER_INACTIVE)
    if as_utc(offer.expiry_date) < now:
        raise InvalidState(REASON_OFFER_EXPIRED)

    await _get_member_profile(db, member_user_id)

    # rollback on a collision expires `offer`; keep plain values
    offer_pk = int(offer.id)
    partner_id = int(offer.partner_id)
    color = offer.coupon_color or settings.COUPON_DEFAULT_COLOR
    expiry_date = compute_coupon_expiry(
        offer_expiry=offer.expiry_date,
        coupon_expiry_days=offer.coupon_expiry_days,
        now=now,
    )
    single_active = not settings.COUPON_ALLOW_MULTIPLE_PER_OFFER

    coupon_id: int | None = None
    for attempt in range(1, settings.COUPON_CODE_MAX_ATTEMPTS + 1):
        if single_active:
            await _claim_single_active_slot(
                db, member_user_id=member_user_id, offer_id=offer_pk, now=now
            )

        coupon = Coupon(
            coupon_code=_generate_coupon_code(),
            qr_token=_generate_qr_token(),
            member_id=member_user_id,
            partner_id=partner_id,
            offer_id=offer_pk,
            status=COUPON_ACTIVE,
            coupon_color=color,
            expiry_date=expiry_date,
        )
        try:
            db.add(coupon)
            await db.flush()

            await _log_event(
                db,
                coupon_id=int(coupon.id),
                actor_user_id=member_user_id,
                event_type="generated",
                meta={
                    "offer_id": offer_pk,
                    "coupon_code": coupon.coupon_code,
                    "expiry_date": expiry_date.isoformat(),
                },
            )
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            if not _is_identifier_collision(e):
                raise
            logger.warning(
                "Coupon identifier collision for offer %s (attempt %d/%d), retrying",
                offer_pk,
                attempt,
                settings.COUPON_CODE_MAX_ATTEMPTS,
            )
            continue

        coupon_id = int(coupon.id)
        break

    if coupon_id is None:
        raise Conflict(REASON_CODE_EXHAUSTED)

    full = await _load_coupon(db, coupon_id)
    payload = encode_scan_payload(token=full.qr_token, member_id=member_user_id)

    logger.info(
        "Coupon %s issued to member %s for offer %s (expires %s)",
        full.coupon_code,
        member_user_id,
        offer_pk,
        expiry_date.isoformat(),
    )
    return IssuedCoupon(
        coupon=full,
        scan_payload=payload,
        qr_code_data_url=render_qr_data_url(payload),
    )


# -------------------------
# Validator
# -------------------------
async def validate_coupon(
    db: AsyncSession,
    *,
    partner: PartnerPrincipal,
    raw_payload: str,
    now: datetime | None = None,
) -> CouponValidation:
    """
    Read-only check of a scanned coupon for the presenting shop.

    The only write is the lazy EXPIRED flip. Coupon detail is returned only
    when the coupon is valid.
    """
    payload = parse_scan_payload(raw_payload)
    if not is_valid_token(payload.token):
        raise BadRequest(REASON_INVALID_FORMAT)

    now = now or utc_now()
    profile = await _get_partner_profile(db, partner.user_id)

    res = await db.execute(
        select(Coupon)
        .where(Coupon.qr_token == payload.token)
        .execution_options(populate_existing=True)
    )
    coupon = res.scalar_one_or_none()
    if not coupon:
        raise NotFound(REASON_COUPON_NOT_FOUND)

    if int(coupon.partner_id) != int(profile.id):
        raise Forbidden(REASON_WRONG_SHOP)

    await _reconcile_expiry(db, coupon, now=now)

    reason = coupon_ineligibility_reason(coupon, now=now)
    if reason:
        return CouponValidation(valid=False, reason=reason, coupon=None)
    return CouponValidation(valid=True, reason=None, coupon=coupon)


# -------------------------
# Redeemer
# -------------------------
async def _increment_offer_redemptions(db: AsyncSession, *, offer_id: int) -> None:
    try:
        await db.execute(
            update(Offer)
            .where(Offer.id == offer_id)
            .values(redemptions=Offer.redemptions + 1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        logger.exception("Failed to increment redemptions for offer %s", offer_id)
        await db.rollback()


async def redeem_coupon(
    db: AsyncSession,
    *,
    partner: PartnerPrincipal,
    coupon_id: int,
    now: datetime | None = None,
) -> Coupon:
    now = now or utc_now()
    partner_user_id = partner.user_id

    profile = await _get_partner_profile(db, partner_user_id)

    coupon = await db.get(Coupon, coupon_id, populate_existing=True)
    if not coupon:
        raise NotFound(REASON_COUPON_NOT_FOUND)

    if int(coupon.partner_id) != int(profile.id):
        raise Forbidden(REASON_WRONG_SHOP)

    await _reconcile_expiry(db, coupon, now=now)

    # never trust an earlier validate call
    reason = coupon_ineligibility_reason(coupon, now=now)
    if reason:
        raise InvalidState(reason)

    try:
        res = await db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon.id,
                Coupon.status == COUPON_ACTIVE,
                Coupon.expiry_date >= now,
            )
            .values(
                status=COUPON_REDEEMED,
                redeemed_at=now,
                redeemed_by_user_id=partner_user_id,
            )
            .execution_options(synchronize_session=False)
        )
        won = res.rowcount == 1
        if won:
            await _log_event(
                db,
                coupon_id=int(coupon.id),
                actor_user_id=partner_user_id,
                event_type="redeemed",
                meta={"partner_id": int(profile.id)},
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(coupon)

    if not won:
        reason = coupon_ineligibility_reason(coupon, now=now) or REASON_ALREADY_REDEEMED
        logger.info("Redemption of coupon %s lost: %s", coupon.coupon_code, reason)
        raise InvalidState(reason)

    logger.info("Coupon %s redeemed by partner %s", coupon.coupon_code, profile.id)

    offer_id = int(coupon.offer_id)
    coupon_code = coupon.coupon_code
    await _increment_offer_redemptions(db, offer_id=offer_id)
    await notify_coupon_redeemed(
        db,
        coupon_id=int(coupon_id),
        coupon_code=coupon_code,
        offer_id=offer_id,
        partner_id=int(profile.id),
    )

    return await _load_coupon(db, int(coupon_id))


# -------------------------
# Queries
# -------------------------
async def _expire_member_coupons(db: AsyncSession, *, member_user_id: int, now: datetime) -> int:
    # RETURNING reports only rows this statement flipped, not ones redeemed meanwhile
    try:
        res = await db.execute(
            update(Coupon)
            .where(
                Coupon.member_id == member_user_id,
                Coupon.status == COUPON_ACTIVE,
                Coupon.expiry_date < now,
            )
            .values(status=COUPON_EXPIRED)
            .returning(Coupon.id)
            .execution_options(synchronize_session=False)
        )
        ids = [int(x) for x in res.scalars().all()]
        if not ids:
            await db.rollback()
            return 0
        for cid in ids:
            await _log_event(db, coupon_id=cid, actor_user_id=None, event_type="expired")
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Expired %d coupon(s) for member %s", len(ids), member_user_id)
    return len(ids)


async def list_member_coupons(
    db: AsyncSession,
    *,
    member: MemberPrincipal,
    status: str | None,
    now: datetime | None = None,
) -> list[Coupon]:
    now = now or utc_now()
    member_user_id = member.user_id

    await _expire_member_coupons(db, member_user_id=member_user_id, now=now)

    stmt = (
        select(Coupon)
        .where(Coupon.member_id == member_user_id)
        .order_by(Coupon.created_at.desc(), Coupon.id.desc())
        .execution_options(populate_existing=True)
    )
    if status:
        stmt = stmt.where(Coupon.status == status.upper())

    res = await db.execute(stmt)
    return list(res.scalars().all())


async def member_coupon_stats(
    db: AsyncSession,
    *,
    member: MemberPrincipal,
    now: datetime | None = None,
) -> dict:
    now = now or utc_now()
    member_user_id = member.user_id

    async def _count(*conds) -> int:
        res = await db.execute(select(func.count(Coupon.id)).where(Coupon.member_id == member_user_id, *conds))
        return int(res.scalar_one())

    return {
        "total_generated": await _count(),
        "total_redeemed": await _count(Coupon.status == COUPON_REDEEMED),
        "active_coupons": await _count(Coupon.status == COUPON_ACTIVE, Coupon.expiry_date > now),
    }


async def get_coupon_for_viewer(
    db: AsyncSession,
    *,
    principal: Principal,
    coupon_id: int,
) -> IssuedCoupon | Coupon:
    """
    Owning member gets the coupon with a freshly rendered QR code, the owning
    shop gets the bare coupon, everyone else is refused.
    """
    coupon = await _load_coupon(db, coupon_id)
    if not coupon:
        raise NotFound(REASON_COUPON_NOT_FOUND)

    if isinstance(principal, MemberPrincipal) and int(coupon.member_id) == principal.user_id:
        payload = encode_scan_payload(token=coupon.qr_token, member_id=principal.user_id)
        return IssuedCoupon(
            coupon=coupon,
            scan_payload=payload,
            qr_code_data_url=render_qr_data_url(payload),
        )

    if isinstance(principal, PartnerPrincipal):
        res = await db.execute(select(Partner.id).where(Partner.user_id == principal.user_id))
        partner_id = res.scalar_one_or_none()
        if partner_id is not None and int(coupon.partner_id) == int(partner_id):
            return coupon

    raise Forbidden("Not authorized to view this coupon")


async def list_partner_redemptions(
    db: AsyncSession,
    *,
    partner: PartnerPrincipal,
    limit: int,
    offset: int,
) -> list[Coupon]:
    profile = await _get_partner_profile(db, partner.user_id)

    res = await db.execute(
        select(Coupon)
        .where(Coupon.partner_id == profile.id, Coupon.status == COUPON_REDEEMED)
        .order_by(Coupon.redeemed_at.desc(), Coupon.id.desc())
        .limit(int(limit))
        .offset(int(offset))
    )
    return list(res.scalars().all())
