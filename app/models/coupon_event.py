# app/models/coupon_event.py
from __future__ import annotations

from sqlalchemy import JSON, BigInteger, CheckConstraint, Column, DateTime, ForeignKey, Index, Text, func

from app.core.db import Base, BigIntPK


class CouponEvent(Base):
    """Append-only audit trail of coupon state changes."""

    __tablename__ = "coupon_events"
    __table_args__ = (
        CheckConstraint(
            "event_type IN ('generated','expired','redeemed')",
            name="coupon_events_type_check",
        ),
        Index("ix_coupon_events_coupon_created", "coupon_id", "created_at"),
    )

    id = Column(BigIntPK, primary_key=True)
    coupon_id = Column(BigInteger, ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False)

    # NULL when the system flipped the status on access
    actor_user_id = Column(BigInteger, ForeignKey("users.id"), nullable=True)

    event_type = Column(Text, nullable=False)
    meta = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
