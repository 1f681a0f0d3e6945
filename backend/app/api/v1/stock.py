from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import require_admin
from app.db.session import get_session
from app.models.catalog import FlavorSize, StockChangeType, StockItemType
from app.schemas.stock import (
    FlavorAvailabilityRead,
    SizeAvailability,
    StockAdjustRequest,
    StockAdjustResponse,
    StockCheckRequest,
    StockCheckResponse,
    StockHistoryRead,
)
from app.services import order_mode as order_mode_service
from app.services import stock as stock_service

router = APIRouter(tags=["stock"])

SessionDep = Annotated[AsyncSession, Depends(get_session)]
AdminDep = Annotated[str, Depends(require_admin)]


@router.get("/stock/flavors/{flavor_id}")
async def flavor_availability(flavor_id: UUID, session: SessionDep) -> FlavorAvailabilityRead:
    flavor = await stock_service.get_flavor(session, flavor_id)
    mode = await order_mode_service.get_order_mode(session)
    level = stock_service.StockLevel.from_flavor(flavor)
    sizes: list[SizeAvailability] = []
    for size in FlavorSize:
        quantity = stock_service.get_available_quantity(level, size)
        info = stock_service.availability_status(
            quantity, order_mode=mode, allow_out_of_stock_order=level.allow_out_of_stock_order
        )
        limit = stock_service.max_selectable(level, size, mode)
        sizes.append(
            SizeAvailability(
                size=size,
                quantity=quantity,
                max_selectable=None if limit == stock_service.UNLIMITED else limit,
                status=info.status,
                message=info.message,
                can_order=info.can_order,
            )
        )
    return FlavorAvailabilityRead(
        flavor_id=flavor.id,
        name=flavor.name,
        order_mode=mode,
        allow_out_of_stock_order=level.allow_out_of_stock_order,
        sizes=sizes,
    )


@router.post("/stock/check")
async def check_stock(payload: StockCheckRequest, session: SessionDep) -> StockCheckResponse:
    mode = await order_mode_service.get_order_mode(session)
    issues = await stock_service.check_cart_stock(session, lines=payload.items, order_mode=mode)
    return StockCheckResponse(ok=not issues, order_mode=mode, issues=issues)


@router.post("/admin/stock/adjust", status_code=status.HTTP_201_CREATED)
async def adjust_stock(payload: StockAdjustRequest, session: SessionDep, admin: AdminDep) -> StockAdjustResponse:
    entry = await stock_service.adjust_stock(
        session,
        item_type=payload.item_type,
        item_id=payload.item_id,
        size=payload.size,
        change_type=StockChangeType(payload.change_type),
        quantity=payload.quantity,
        notes=payload.notes,
        changed_by=admin,
    )
    history = StockHistoryRead.model_validate(entry)
    return StockAdjustResponse(
        item_id=entry.item_id,
        item_type=entry.item_type,
        size=entry.size,
        old_quantity=entry.old_quantity,
        new_quantity=entry.new_quantity,
        history=history,
    )


@router.get("/admin/stock/history")
async def stock_history(
    session: SessionDep,
    _: AdminDep,
    item_type: Annotated[StockItemType | None, Query()] = None,
    item_id: Annotated[UUID | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 100,
) -> list[StockHistoryRead]:
    rows = await stock_service.list_stock_history(session, item_type=item_type, item_id=item_id, limit=limit)
    return [StockHistoryRead.model_validate(row) for row in rows]
