# app/models/offer.py
from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from app.core.db import Base, BigIntPK


class Offer(Base):
    __tablename__ = "offers"
    __table_args__ = (
        CheckConstraint("discount >= 0 AND discount <= 100", name="offers_discount_check"),
        CheckConstraint(
            "coupon_expiry_days IS NULL OR coupon_expiry_days >= 0",
            name="offers_coupon_expiry_days_check",
        ),
    )

    id = Column(BigIntPK, primary_key=True)
    partner_id = Column(BigInteger, ForeignKey("partners.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    discount = Column(Integer, nullable=False)
    original_price = Column(Numeric(12, 2), nullable=False)
    discounted_price = Column(Numeric(12, 2), nullable=False)
    category = Column(String(120), nullable=False, index=True)

    expiry_date = Column(DateTime(timezone=True), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, server_default="1")

    # NULL: coupons ride along with the offer's own expiry
    coupon_expiry_days = Column(Integer, nullable=True)
    coupon_color = Column(String(32), nullable=True)

    image_url = Column(Text, nullable=True)
    terms_and_conditions = Column(Text, nullable=True)

    # analytics counters, only ever changed with atomic increments
    views = Column(Integer, nullable=False, server_default="0")
    clicks = Column(Integer, nullable=False, server_default="0")
    redemptions = Column(Integer, nullable=False, server_default="0")

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    partner = relationship("Partner", lazy="selectin")
