from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.deps import PartnerPrincipal, require_partner
from app.schemas.offers import OfferCreate, OfferOut, OfferUpdate
from app.services.offers import partner_create_offer, partner_list_offers, partner_update_offer

router = APIRouter(prefix="/partners/offers", tags=["Partner - Offers"])


@router.get("", response_model=list[OfferOut])
async def list_my_offers(
    db: AsyncSession = Depends(get_db),
    partner: PartnerPrincipal = Depends(require_partner),
):
    return await partner_list_offers(db, partner=partner)


@router.post("", response_model=OfferOut, status_code=status.HTTP_201_CREATED)
async def create_offer(
    body: OfferCreate,
    db: AsyncSession = Depends(get_db),
    partner: PartnerPrincipal = Depends(require_partner),
):
    return await partner_create_offer(db, partner=partner, data=body)


@router.patch("/{offer_id}", response_model=OfferOut)
async def update_offer(
    offer_id: int,
    body: OfferUpdate,
    db: AsyncSession = Depends(get_db),
    partner: PartnerPrincipal = Depends(require_partner),
):
    return await partner_update_offer(db, partner=partner, offer_id=offer_id, data=body)
