from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.deps import MemberPrincipal, require_member
from app.schemas.offers import OfferOut
from app.schemas.saved_offers import SavedOffersOut, SaveOfferRequest
from app.services.saved_offers import list_saved_offers, remove_saved_offer, save_offer

router = APIRouter(prefix="/saved-offers", tags=["Saved Offers"])


@router.get("", response_model=SavedOffersOut)
async def get_saved_offers(
    db: AsyncSession = Depends(get_db),
    member: MemberPrincipal = Depends(require_member),
):
    offers = await list_saved_offers(db, member=member)
    return SavedOffersOut(offers=[OfferOut.model_validate(o) for o in offers])


@router.post("", status_code=status.HTTP_201_CREATED)
async def save(
    body: SaveOfferRequest,
    db: AsyncSession = Depends(get_db),
    member: MemberPrincipal = Depends(require_member),
):
    await save_offer(db, member=member, offer_id=body.offer_id)
    return {"message": "Offer saved successfully"}


@router.delete("/{offer_id}")
async def remove(
    offer_id: int,
    db: AsyncSession = Depends(get_db),
    member: MemberPrincipal = Depends(require_member),
):
    await remove_saved_offer(db, member=member, offer_id=offer_id)
    return {"message": "Offer removed from saved list"}
