from datetime import timedelta

import pytest
from sqlalchemy import select

from app.core.clock import utc_now
from app.core.deps import AdminPrincipal, MemberPrincipal, PartnerPrincipal
from app.core.errors import Forbidden, NotFound
from app.models.coupon import COUPON_ACTIVE, COUPON_EXPIRED, COUPON_REDEEMED, Coupon
from app.models.coupon_event import CouponEvent
from app.services.coupons import (
    IssuedCoupon,
    generate_coupon,
    get_coupon_for_viewer,
    list_member_coupons,
    list_partner_redemptions,
    member_coupon_stats,
    redeem_coupon,
)
from tests.factories import make_member, make_offer, make_partner


async def test_my_coupons_expires_stale_entries(db, member_user, partner_pair):
    _, shop = partner_pair
    short = await make_offer(db, shop, coupon_expiry_days=1)
    long = await make_offer(db, shop, coupon_expiry_days=30)
    member = MemberPrincipal(user=member_user)

    stale = await generate_coupon(db, member=member, offer_id=short.id)
    fresh = await generate_coupon(db, member=member, offer_id=long.id)
    stale_id, fresh_id = stale.coupon.id, fresh.coupon.id

    coupons = await list_member_coupons(db, member=member, status=None, now=utc_now() + timedelta(days=2))
    by_id = {c.id: c.status for c in coupons}

    assert by_id == {stale_id: COUPON_EXPIRED, fresh_id: COUPON_ACTIVE}


async def test_bulk_expiry_skips_coupon_redeemed_meanwhile(session_factory, db, member_user, partner_pair, monkeypatch):
    partner_user, shop = partner_pair
    partner = PartnerPrincipal(user=partner_user)
    member = MemberPrincipal(user=member_user)
    short = await make_offer(db, shop, coupon_expiry_days=1)
    issued = await generate_coupon(db, member=member, offer_id=short.id)
    coupon_id = issued.coupon.id

    # a shop redeems the coupon just before the sweep writes
    execute = db.execute
    interleaved = []

    async def execute_after_redeem(statement, *args, **kwargs):
        if not interleaved and getattr(statement, "is_dml", False):
            interleaved.append(statement)
            async with session_factory() as shop_session:
                await redeem_coupon(shop_session, partner=partner, coupon_id=coupon_id)
        return await execute(statement, *args, **kwargs)

    monkeypatch.setattr(db, "execute", execute_after_redeem)

    coupons = await list_member_coupons(db, member=member, status=None, now=utc_now() + timedelta(days=3))
    monkeypatch.undo()

    assert interleaved
    assert [c.status for c in coupons] == [COUPON_REDEEMED]
    res = await db.execute(
        select(CouponEvent.event_type).where(CouponEvent.coupon_id == coupon_id).order_by(CouponEvent.id)
    )
    assert res.scalars().all() == ["generated", "redeemed"]


async def test_my_coupons_status_filter_and_order(db, member_user, offer):
    member = MemberPrincipal(user=member_user)
    first = await generate_coupon(db, member=member, offer_id=offer.id)
    second = await generate_coupon(db, member=member, offer_id=offer.id)

    active = await list_member_coupons(db, member=member, status="active")
    assert [c.id for c in active] == [second.coupon.id, first.coupon.id]

    redeemed = await list_member_coupons(db, member=member, status="REDEEMED")
    assert redeemed == []


async def test_my_coupons_only_lists_own(db, member_user, offer):
    other = await make_member(db)
    await generate_coupon(db, member=MemberPrincipal(user=other), offer_id=offer.id)

    assert await list_member_coupons(db, member=MemberPrincipal(user=member_user), status=None) == []


async def test_member_stats(db, member_user, offer, partner_pair):
    partner_user, _ = partner_pair
    member = MemberPrincipal(user=member_user)
    a = await generate_coupon(db, member=member, offer_id=offer.id)
    await generate_coupon(db, member=member, offer_id=offer.id)
    await generate_coupon(db, member=member, offer_id=offer.id)
    await redeem_coupon(db, partner=PartnerPrincipal(user=partner_user), coupon_id=a.coupon.id)

    stats = await member_coupon_stats(db, member=member)

    assert stats == {"total_generated": 3, "total_redeemed": 1, "active_coupons": 2}


async def test_owner_sees_coupon_with_qr(db, member_user, offer):
    member = MemberPrincipal(user=member_user)
    issued = await generate_coupon(db, member=member, offer_id=offer.id)

    found = await get_coupon_for_viewer(db, principal=member, coupon_id=issued.coupon.id)

    assert isinstance(found, IssuedCoupon)
    assert found.scan_payload == issued.scan_payload
    assert found.qr_code_data_url.startswith("data:image/png;base64,")


async def test_owning_shop_sees_bare_coupon(db, member_user, offer, partner_pair):
    partner_user, _ = partner_pair
    issued = await generate_coupon(db, member=MemberPrincipal(user=member_user), offer_id=offer.id)

    found = await get_coupon_for_viewer(
        db, principal=PartnerPrincipal(user=partner_user), coupon_id=issued.coupon.id
    )

    assert isinstance(found, Coupon)
    assert found.id == issued.coupon.id


async def test_other_viewers_are_refused(db, member_user, offer, admin_user):
    issued = await generate_coupon(db, member=MemberPrincipal(user=member_user), offer_id=offer.id)
    other_member = await make_member(db)
    other_shop_user, _ = await make_partner(db)

    for principal in (
        MemberPrincipal(user=other_member),
        PartnerPrincipal(user=other_shop_user),
        AdminPrincipal(user=admin_user),
    ):
        with pytest.raises(Forbidden):
            await get_coupon_for_viewer(db, principal=principal, coupon_id=issued.coupon.id)


async def test_missing_coupon_detail(db, member_user):
    with pytest.raises(NotFound):
        await get_coupon_for_viewer(db, principal=MemberPrincipal(user=member_user), coupon_id=777)


async def test_partner_redemption_history(db, member_user, offer, partner_pair):
    partner_user, _ = partner_pair
    partner = PartnerPrincipal(user=partner_user)
    member = MemberPrincipal(user=member_user)
    a = await generate_coupon(db, member=member, offer_id=offer.id)
    b = await generate_coupon(db, member=member, offer_id=offer.id)
    await generate_coupon(db, member=member, offer_id=offer.id)

    await redeem_coupon(db, partner=partner, coupon_id=a.coupon.id, now=utc_now())
    await redeem_coupon(db, partner=partner, coupon_id=b.coupon.id, now=utc_now() + timedelta(minutes=1))

    history = await list_partner_redemptions(db, partner=partner, limit=10, offset=0)

    assert [c.id for c in history] == [b.coupon.id, a.coupon.id]
    assert all(c.status == COUPON_REDEEMED for c in history)
