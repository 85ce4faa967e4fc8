from datetime import timedelta

from app.core.clock import utc_now
from app.core.security import create_access_token
from tests.factories import auth_headers, make_member, make_offer, make_partner


async def test_full_coupon_lifecycle(client, db, member_user, partner_pair):
    partner_user, shop = partner_pair
    offer = await make_offer(db, shop, title="Half price coffee")
    member_h = auth_headers(member_user)
    partner_h = auth_headers(partner_user)

    r = await client.post("/coupons/generate", json={"offer_id": offer.id}, headers=member_h)
    assert r.status_code == 201, r.text
    issued = r.json()
    assert issued["status"] == "ACTIVE"
    assert issued["offer"]["title"] == "Half price coffee"
    assert issued["partner"]["shop_name"] == shop.shop_name
    assert issued["qr_code_data_url"].startswith("data:image/png;base64,")

    r = await client.post("/coupons/validate", json={"qr_token": issued["scan_payload"]}, headers=partner_h)
    assert r.status_code == 200, r.text
    check = r.json()
    assert check["valid"] is True
    assert check["coupon"]["coupon_code"] == issued["coupon_code"]
    assert "qr_token" not in check["coupon"]

    r = await client.post("/coupons/redeem", json={"coupon_id": issued["id"]}, headers=partner_h)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "REDEEMED"
    assert r.json()["redeemed_by_user_id"] == partner_user.id

    r = await client.post("/coupons/redeem", json={"coupon_id": issued["id"]}, headers=partner_h)
    assert r.status_code == 400
    assert r.json()["detail"] == "already redeemed"

    r = await client.post("/coupons/validate", json={"qr_token": issued["qr_token"]}, headers=partner_h)
    assert r.json() == {"valid": False, "reason": "already redeemed", "coupon": None}

    r = await client.get("/coupons/my-coupons", headers=member_h)
    body = r.json()
    assert body["count"] == 1
    assert body["coupons"][0]["status"] == "REDEEMED"

    r = await client.get("/coupons/member/stats", headers=member_h)
    assert r.json() == {"total_generated": 1, "total_redeemed": 1, "active_coupons": 0}

    r = await client.get("/coupons/partner/redeemed", headers=partner_h)
    assert [c["id"] for c in r.json()["coupons"]] == [issued["id"]]

    r = await client.get(f"/offers/{offer.id}")
    assert r.json()["redemptions"] == 1

    r = await client.get("/notifications", headers=partner_h)
    notes = r.json()
    assert notes["unread_count"] == 1
    assert notes["notifications"][0]["type"] == "coupon_redeemed"


async def test_generate_requires_member_role(client, partner_pair, offer):
    partner_user, _ = partner_pair
    r = await client.post("/coupons/generate", json={"offer_id": offer.id}, headers=auth_headers(partner_user))
    assert r.status_code == 403
    assert r.json()["detail"] == "Member only"


async def test_validate_and_redeem_require_partner_role(client, member_user):
    h = auth_headers(member_user)
    r = await client.post("/coupons/validate", json={"qr_token": "0" * 64}, headers=h)
    assert r.status_code == 403
    r = await client.post("/coupons/redeem", json={"coupon_id": 1}, headers=h)
    assert r.status_code == 403


async def test_requests_without_token_are_rejected(client, offer):
    r = await client.post("/coupons/generate", json={"offer_id": offer.id})
    assert r.status_code == 401


async def test_expired_token_is_rejected(client, member_user, offer):
    token = create_access_token(user_id=member_user.id, role="member", minutes=-5)
    r = await client.post(
        "/coupons/generate",
        json={"offer_id": offer.id},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert r.status_code == 401


async def test_generate_for_expired_offer(client, db, member_user, partner_pair):
    _, shop = partner_pair
    offer = await make_offer(db, shop, expiry_date=utc_now() - timedelta(days=1))
    r = await client.post("/coupons/generate", json={"offer_id": offer.id}, headers=auth_headers(member_user))
    assert r.status_code == 400
    assert r.json()["detail"] == "offer expired"


async def test_validate_rejects_malformed_payload(client, partner_pair):
    partner_user, _ = partner_pair
    r = await client.post("/coupons/validate", json={"qr_token": "hello"}, headers=auth_headers(partner_user))
    assert r.status_code == 400
    assert r.json()["detail"] == "invalid format"


async def test_validate_miss_answers_valid_false(client, member_user, offer, partner_pair):
    partner_user, _ = partner_pair
    r = await client.post("/coupons/validate", json={"qr_token": "f" * 64}, headers=auth_headers(partner_user))
    assert r.status_code == 404
    assert r.json()["valid"] is False
    assert r.json()["reason"] == "coupon not found"


async def test_validate_at_wrong_shop(client, db):
    member = await make_member(db)
    _, owner = await make_partner(db, shop_name="Harbour Bakery")
    offer = await make_offer(db, owner)
    r = await client.post("/coupons/generate", json={"offer_id": offer.id}, headers=auth_headers(member))
    payload = r.json()["scan_payload"]
    other_user, _ = await make_partner(db, shop_name="Rival Deli")

    r = await client.post("/coupons/validate", json={"qr_token": payload}, headers=auth_headers(other_user))
    assert r.status_code == 403
    body = r.json()
    assert body == {"valid": False, "reason": "not valid at this shop", "detail": "not valid at this shop"}
    assert "coupon" not in body
    assert "partner_id" not in body
    assert "Harbour Bakery" not in r.text


async def test_redeem_at_wrong_shop_hides_coupon(client, db):
    member = await make_member(db)
    _, owner = await make_partner(db, shop_name="Harbour Bakery")
    offer = await make_offer(db, owner)
    r = await client.post("/coupons/generate", json={"offer_id": offer.id}, headers=auth_headers(member))
    issued = r.json()
    other_user, _ = await make_partner(db, shop_name="Rival Deli")

    r = await client.post("/coupons/redeem", json={"coupon_id": issued["id"]}, headers=auth_headers(other_user))
    assert r.status_code == 403
    assert r.json() == {"detail": "not valid at this shop"}
    assert "Harbour Bakery" not in r.text
    assert issued["coupon_code"] not in r.text


async def test_coupon_detail_visibility(client, db, member_user, offer, partner_pair):
    partner_user, _ = partner_pair
    r = await client.post("/coupons/generate", json={"offer_id": offer.id}, headers=auth_headers(member_user))
    coupon_id = r.json()["id"]

    r = await client.get(f"/coupons/{coupon_id}", headers=auth_headers(member_user))
    assert r.status_code == 200
    assert r.json()["qr_code_data_url"].startswith("data:image/png;base64,")

    r = await client.get(f"/coupons/{coupon_id}", headers=auth_headers(partner_user))
    assert r.status_code == 200
    assert r.json()["qr_code_data_url"] is None

    stranger = await make_member(db)
    r = await client.get(f"/coupons/{coupon_id}", headers=auth_headers(stranger))
    assert r.status_code == 403
    assert r.json()["detail"] == "Not authorized to view this coupon"
