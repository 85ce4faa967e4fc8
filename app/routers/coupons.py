# app/routers/coupons.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.deps import (
    MemberPrincipal,
    PartnerPrincipal,
    Principal,
    get_principal,
    require_member,
    require_partner,
)
from app.core.errors import Forbidden, NotFound
from app.schemas.coupons import (
    CouponDetailOut,
    CouponGenerateRequest,
    CouponListOut,
    CouponOut,
    CouponRedeemRequest,
    CouponValidateRequest,
    CouponValidationOut,
    CouponWithQrOut,
    MemberCouponStatsOut,
)
from app.services.coupons import (
    IssuedCoupon,
    generate_coupon,
    get_coupon_for_viewer,
    list_member_coupons,
    list_partner_redemptions,
    member_coupon_stats,
    redeem_coupon,
    validate_coupon,
)

router = APIRouter(prefix="/coupons", tags=["Coupons"])


def _with_qr(issued: IssuedCoupon) -> CouponWithQrOut:
    base = CouponOut.model_validate(issued.coupon).model_dump()
    return CouponWithQrOut(
        **base,
        qr_token=issued.coupon.qr_token,
        scan_payload=issued.scan_payload,
        qr_code_data_url=issued.qr_code_data_url,
    )


# -------------------------
# Member
# -------------------------
@router.post("/generate", response_model=CouponWithQrOut, status_code=status.HTTP_201_CREATED)
async def generate(
    body: CouponGenerateRequest,
    db: AsyncSession = Depends(get_db),
    member: MemberPrincipal = Depends(require_member),
):
    issued = await generate_coupon(db, member=member, offer_id=body.offer_id)
    return _with_qr(issued)


@router.get("/my-coupons", response_model=CouponListOut)
async def my_coupons(
    status: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    member: MemberPrincipal = Depends(require_member),
):
    coupons = await list_member_coupons(db, member=member, status=status)
    return CouponListOut(
        coupons=[CouponOut.model_validate(c) for c in coupons],
        count=len(coupons),
    )


@router.get("/member/stats", response_model=MemberCouponStatsOut)
async def my_stats(
    db: AsyncSession = Depends(get_db),
    member: MemberPrincipal = Depends(require_member),
):
    return await member_coupon_stats(db, member=member)


# -------------------------
# Partner
# -------------------------
@router.post("/validate", response_model=CouponValidationOut)
async def validate(
    body: CouponValidateRequest,
    db: AsyncSession = Depends(get_db),
    partner: PartnerPrincipal = Depends(require_partner),
):
    # a failed scan is an expected outcome for the scanner UI, so lookups
    # that miss still answer with valid=false
    try:
        result = await validate_coupon(db, partner=partner, raw_payload=body.qr_token)
    except (NotFound, Forbidden) as e:
        return JSONResponse(
            status_code=e.status_code,
            content={"valid": False, "reason": e.reason, "detail": e.reason},
        )

    return CouponValidationOut(
        valid=result.valid,
        reason=result.reason,
        coupon=CouponOut.model_validate(result.coupon) if result.coupon is not None else None,
    )


@router.post("/redeem", response_model=CouponOut)
async def redeem(
    body: CouponRedeemRequest,
    db: AsyncSession = Depends(get_db),
    partner: PartnerPrincipal = Depends(require_partner),
):
    return await redeem_coupon(db, partner=partner, coupon_id=body.coupon_id)


@router.get("/partner/redeemed", response_model=CouponListOut)
async def partner_redeemed(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    partner: PartnerPrincipal = Depends(require_partner),
):
    coupons = await list_partner_redemptions(db, partner=partner, limit=limit, offset=offset)
    return CouponListOut(
        coupons=[CouponOut.model_validate(c) for c in coupons],
        count=len(coupons),
    )


# -------------------------
# Shared
# -------------------------
@router.get("/{coupon_id}", response_model=CouponDetailOut)
async def get_coupon(
    coupon_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    found = await get_coupon_for_viewer(db, principal=principal, coupon_id=coupon_id)
    if isinstance(found, IssuedCoupon):
        base = CouponOut.model_validate(found.coupon).model_dump()
        return CouponDetailOut(
            **base,
            scan_payload=found.scan_payload,
            qr_code_data_url=found.qr_code_data_url,
        )
    return CouponDetailOut.model_validate(found)
