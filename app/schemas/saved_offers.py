from __future__ import annotations

from pydantic import BaseModel, Field

from app.schemas.offers import OfferOut


class SaveOfferRequest(BaseModel):
    offer_id: int = Field(..., ge=1)


class SavedOffersOut(BaseModel):
    offers: list[OfferOut]
