from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class OfferCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    discount: int = Field(..., ge=0, le=100)
    original_price: Decimal = Field(..., ge=0)
    discounted_price: Decimal = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=120)
    expiry_date: datetime
    is_active: bool = True
    coupon_expiry_days: int | None = Field(default=None, ge=0)
    coupon_color: str | None = Field(default=None, max_length=32)
    image_url: str | None = None
    terms_and_conditions: str | None = None


class OfferUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    discount: int | None = Field(default=None, ge=0, le=100)
    original_price: Decimal | None = Field(default=None, ge=0)
    discounted_price: Decimal | None = Field(default=None, ge=0)
    category: str | None = Field(default=None, max_length=120)
    expiry_date: datetime | None = None
    is_active: bool | None = None
    coupon_expiry_days: int | None = Field(default=None, ge=0)
    coupon_color: str | None = Field(default=None, max_length=32)
    image_url: str | None = None
    terms_and_conditions: str | None = None


class OfferPartnerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    shop_name: str
    partner_name: str
    category: str
    city: str | None = None


class OfferOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    partner_id: int
    title: str
    description: str
    discount: int
    original_price: Decimal
    discounted_price: Decimal
    category: str
    expiry_date: datetime
    is_active: bool
    coupon_expiry_days: int | None
    coupon_color: str | None
    image_url: str | None
    terms_and_conditions: str | None
    views: int
    clicks: int
    redemptions: int
    created_at: datetime

    partner: OfferPartnerOut | None = None
