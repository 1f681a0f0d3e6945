from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_session
from app.schemas.promo import OrderTotalsRead, PromoSummary, PromoValidateRequest, PromoValidateResponse
from app.services import delivery as delivery_service
from app.services import pricing
from app.services import promotions
from app.services.promotions import PromoRejection

router = APIRouter(prefix="/promo-codes", tags=["promo-codes"])

SessionDep = Annotated[AsyncSession, Depends(get_session)]


@router.post("/validate")
async def validate_promo_code(payload: PromoValidateRequest, session: SessionDep) -> PromoValidateResponse:
    """Preview a code against a cart; usage counters are never touched here."""
    promo, evaluation = await promotions.evaluate_code(
        session,
        code=payload.code,
        lines=payload.items,
        customer_id=payload.customer_id,
        guest_email=payload.guest_email,
        customer_groups=payload.customer_groups,
    )
    if promo is None or evaluation.reason == PromoRejection.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid promo code")

    subtotal = promotions.cart_subtotal(payload.items)
    if payload.zone_id is not None or payload.delivery_fee is None:
        _, base_fee = await delivery_service.resolve_delivery_fee(session, payload.zone_id)
    else:
        base_fee = payload.delivery_fee
    discount = evaluation.discount_amount if evaluation.applicable else pricing.ZERO
    totals = pricing.compose_totals(
        subtotal=subtotal,
        delivery_fee=base_fee,
        effective_delivery_fee=pricing.adjust_delivery_fee(base_fee, evaluation),
        discount_amount=discount,
    )
    return PromoValidateResponse(
        valid=evaluation.applicable,
        code=promo.code,
        reason=evaluation.reason.value if evaluation.reason else None,
        message=evaluation.message,
        discount_amount=discount,
        free_delivery=evaluation.applicable and evaluation.free_delivery,
        promo=PromoSummary.model_validate(promo),
        totals=OrderTotalsRead.model_validate(totals),
    )
