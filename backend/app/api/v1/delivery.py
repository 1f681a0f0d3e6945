from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_session
from app.schemas.delivery import DeliveryZoneRead
from app.services import delivery as delivery_service

router = APIRouter(prefix="/delivery-zones", tags=["delivery"])

SessionDep = Annotated[AsyncSession, Depends(get_session)]


@router.get("")
async def list_delivery_zones(session: SessionDep) -> list[DeliveryZoneRead]:
    zones = await delivery_service.list_zones(session)
    return [DeliveryZoneRead.model_validate(zone) for zone in zones]
