from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.session import get_session
from app.schemas.checkout import CheckoutQuoteResponse, CheckoutRequest, OrderRead, PromoOutcome
from app.schemas.promo import OrderTotalsRead
from app.services import checkout as checkout_service

router = APIRouter(prefix="/checkout", tags=["checkout"])

SessionDep = Annotated[AsyncSession, Depends(get_session)]


@router.post("/quote")
async def checkout_quote(payload: CheckoutRequest, session: SessionDep) -> CheckoutQuoteResponse:
    quote = await checkout_service.quote(session, payload)
    promo = None
    if quote.evaluation is not None:
        evaluation = quote.evaluation
        promo = PromoOutcome(
            code=evaluation.code,
            applied=evaluation.applicable,
            reason=evaluation.reason.value if evaluation.reason else None,
            message=evaluation.message,
            free_delivery=evaluation.applicable and evaluation.free_delivery,
        )
    return CheckoutQuoteResponse(
        order_mode=quote.order_mode,
        currency=settings.currency,
        zone_id=quote.zone.id if quote.zone else None,
        totals=OrderTotalsRead.model_validate(quote.totals),
        promo=promo,
        stock_issues=quote.stock_issues,
        can_checkout=quote.can_checkout,
    )


@router.post("/confirm", status_code=status.HTTP_201_CREATED)
async def checkout_confirm(payload: CheckoutRequest, session: SessionDep) -> OrderRead:
    order = await checkout_service.confirm(session, payload)
    return OrderRead.model_validate(order)
