from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import require_admin
from app.db.session import get_session
from app.models.site_setting import OrderMode
from app.services import order_mode as order_mode_service

router = APIRouter(tags=["order-mode"])

SessionDep = Annotated[AsyncSession, Depends(get_session)]
AdminDep = Annotated[str, Depends(require_admin)]


class OrderModeRead(BaseModel):
    order_mode: OrderMode


class OrderModeUpdate(BaseModel):
    order_mode: OrderMode


@router.get("/order-mode")
async def read_order_mode(session: SessionDep) -> OrderModeRead:
    return OrderModeRead(order_mode=await order_mode_service.get_order_mode(session))


@router.put("/admin/order-mode")
async def update_order_mode(payload: OrderModeUpdate, session: SessionDep, _: AdminDep) -> OrderModeRead:
    mode = await order_mode_service.set_order_mode(session, payload.order_mode)
    return OrderModeRead(order_mode=mode)
