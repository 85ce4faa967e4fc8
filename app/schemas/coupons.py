# app/schemas/coupons.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class CouponGenerateRequest(BaseModel):
    offer_id: int = Field(..., ge=1)


class CouponValidateRequest(BaseModel):
    # JSON scan payload {"t": ..., "m": ...} or a legacy bare token
    qr_token: str = Field(..., min_length=1, max_length=512)


class CouponRedeemRequest(BaseModel):
    coupon_id: int = Field(..., ge=1)


class CouponOfferOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    discount: int
    image_url: str | None = None
    original_price: Decimal
    discounted_price: Decimal


class CouponPartnerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    shop_name: str
    partner_name: str
    city: str | None = None


class CouponMemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str


class CouponOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    coupon_code: str
    status: str
    coupon_color: str

    member_id: int
    partner_id: int
    offer_id: int

    expiry_date: datetime
    redeemed_at: datetime | None
    redeemed_by_user_id: int | None
    created_at: datetime

    offer: CouponOfferOut | None = None
    partner: CouponPartnerOut | None = None
    member: CouponMemberOut | None = None


class CouponWithQrOut(CouponOut):
    # only ever shown to the owning member
    qr_token: str
    scan_payload: str
    qr_code_data_url: str


class CouponValidationOut(BaseModel):
    valid: bool
    reason: str | None = None
    coupon: CouponOut | None = None


class MemberCouponStatsOut(BaseModel):
    total_generated: int
    total_redeemed: int
    active_coupons: int


class CouponListOut(BaseModel):
    coupons: list[CouponOut]
    count: int


class CouponDetailOut(CouponOut):
    # QR fields are filled only for the owning member
    scan_payload: str | None = None
    qr_code_data_url: str | None = None
