# app/models/__init__.py
# Import all models here so SQLAlchemy registers them into Base.metadata.

from app.models.user import User  # noqa: F401
from app.models.member import Member  # noqa: F401
from app.models.partner import Partner  # noqa: F401

from app.models.offer import Offer  # noqa: F401

from app.models.coupon import Coupon  # noqa: F401
from app.models.coupon_event import CouponEvent  # noqa: F401

from app.models.saved_offer import SavedOffer  # noqa: F401
from app.models.notification import Notification  # noqa: F401
