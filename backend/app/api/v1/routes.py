from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1 import admin_promo_codes
from app.api.v1 import checkout
from app.api.v1 import delivery
from app.api.v1 import order_mode
from app.api.v1 import packs
from app.api.v1 import promo_codes
from app.api.v1 import stock
from app.db.session import get_session

api_router = APIRouter()

api_router.include_router(order_mode.router)
api_router.include_router(promo_codes.router)
api_router.include_router(admin_promo_codes.router)
api_router.include_router(stock.router)
api_router.include_router(packs.router)
api_router.include_router(checkout.router)
api_router.include_router(delivery.router)


@api_router.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@api_router.get("/health/ready", tags=["health"])
async def readiness(session: AsyncSession = Depends(get_session)) -> dict[str, str]:
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable") from exc
    return {"status": "ready"}
