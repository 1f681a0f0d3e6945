from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_session
from app.schemas.pack import PackFlavorLimit, PackValidateRequest, PackValidateResponse
from app.services import order_mode as order_mode_service
from app.services import packs as packs_service
from app.services.stock import UNLIMITED

router = APIRouter(prefix="/packs", tags=["packs"])

SessionDep = Annotated[AsyncSession, Depends(get_session)]


@router.post("/{product_id}/validate")
async def validate_pack(product_id: UUID, payload: PackValidateRequest, session: SessionDep) -> PackValidateResponse:
    mode = await order_mode_service.get_order_mode(session)
    pack, validation = await packs_service.validate_pack_selection(
        session, product_id=product_id, selections=payload.selections, order_mode=mode
    )
    flavors = [
        PackFlavorLimit(
            flavor_id=flavor_id,
            selected=selected,
            max_selectable=None if validation.limits[flavor_id] == UNLIMITED else validation.limits[flavor_id],
        )
        for flavor_id, selected in validation.selected.items()
    ]
    return PackValidateResponse(
        product_id=product_id,
        valid=validation.valid,
        reason=validation.reason.value if validation.reason else None,
        message=validation.message,
        total=validation.total,
        required=validation.required,
        size=pack.size,
        order_mode=mode,
        flavors=flavors,
    )
