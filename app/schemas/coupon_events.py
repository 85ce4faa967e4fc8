from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

CouponEventType = Literal["generated", "expired", "redeemed"]


class CouponEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    coupon_id: int
    # None for system transitions (lazy expiry)
    actor_user_id: int | None
    event_type: CouponEventType
    meta: dict[str, Any]
    created_at: datetime
