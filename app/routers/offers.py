from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.schemas.offers import OfferOut
from app.services.offers import public_get_offer, public_list_active_offers, record_offer_click

router = APIRouter(prefix="/offers", tags=["Offers"])


@router.get("", response_model=list[OfferOut])
async def list_offers(
    category: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await public_list_active_offers(db, category=category, limit=limit, offset=offset)


@router.get("/{offer_id}", response_model=OfferOut)
async def get_offer(
    offer_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await public_get_offer(db, offer_id=offer_id)


@router.post("/{offer_id}/click")
async def click_offer(
    offer_id: int,
    db: AsyncSession = Depends(get_db),
):
    await record_offer_click(db, offer_id=offer_id)
    return {"message": "Click recorded successfully"}
