# app/models/coupon.py
from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from app.core.db import Base, BigIntPK

COUPON_ACTIVE = "ACTIVE"
COUPON_REDEEMED = "REDEEMED"
COUPON_EXPIRED = "EXPIRED"

COUPON_STATUSES = (COUPON_ACTIVE, COUPON_REDEEMED, COUPON_EXPIRED)


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE','REDEEMED','EXPIRED')",
            name="coupons_status_check",
        ),
        UniqueConstraint("coupon_code", name="coupons_coupon_code_uq"),
        UniqueConstraint("qr_token", name="coupons_qr_token_uq"),
        CheckConstraint("length(qr_token) = 64", name="coupons_qr_token_length_chk"),
        # redeemed_at / redeemed_by are stamped together, and only on redemption
        CheckConstraint(
            "(status = 'REDEEMED' AND redeemed_at IS NOT NULL AND redeemed_by_user_id IS NOT NULL)"
            " OR (status <> 'REDEEMED' AND redeemed_at IS NULL AND redeemed_by_user_id IS NULL)",
            name="coupons_redemption_stamp_chk",
        ),
    )

    id = Column(BigIntPK, primary_key=True)

    coupon_code = Column(String(32), nullable=False)
    qr_token = Column(String(64), nullable=False)

    member_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    partner_id = Column(BigInteger, ForeignKey("partners.id"), nullable=False, index=True)
    offer_id = Column(BigInteger, ForeignKey("offers.id"), nullable=False, index=True)

    status = Column(String(16), nullable=False, server_default=COUPON_ACTIVE)
    coupon_color = Column(String(32), nullable=False)

    expiry_date = Column(DateTime(timezone=True), nullable=False, index=True)

    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    redeemed_by_user_id = Column(BigInteger, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    offer = relationship("Offer", lazy="selectin")
    partner = relationship("Partner", lazy="selectin")
    member = relationship("User", foreign_keys=[member_id], lazy="selectin")
