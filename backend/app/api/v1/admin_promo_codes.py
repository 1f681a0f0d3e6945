from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import require_admin
from app.db.session import get_session
from app.models.promo import EnhancedPromoType
from app.schemas.promo import (
    PromoCodeCreate,
    PromoCodeListResponse,
    PromoCodeRead,
    PromoCodeUpdate,
    PromoCodeUsageRead,
)
from app.services import promo_usage
from app.services import promotions

router = APIRouter(prefix="/admin/promo-codes", tags=["admin-promo-codes"])

SessionDep = Annotated[AsyncSession, Depends(get_session)]
AdminDep = Annotated[str, Depends(require_admin)]
PageQuery = Annotated[int, Query(ge=1)]
LimitQuery = Annotated[int, Query(ge=1, le=100)]
SearchQuery = Annotated[str | None, Query(max_length=120)]
EnhancedTypeQuery = Annotated[EnhancedPromoType | None, Query()]
ActiveQuery = Annotated[bool | None, Query()]


@router.get("")
async def admin_list_promo_codes(
    session: SessionDep,
    _: AdminDep,
    page: PageQuery = 1,
    limit: LimitQuery = 20,
    search: SearchQuery = None,
    enhanced_type: EnhancedTypeQuery = None,
    is_active: ActiveQuery = None,
) -> PromoCodeListResponse:
    items, meta = await promotions.list_promo_codes(
        session, page=page, limit=limit, search=search, enhanced_type=enhanced_type, is_active=is_active
    )
    return PromoCodeListResponse(items=[PromoCodeRead.model_validate(item) for item in items], meta=meta)


@router.post("", status_code=status.HTTP_201_CREATED)
async def admin_create_promo_code(payload: PromoCodeCreate, session: SessionDep, admin: AdminDep) -> PromoCodeRead:
    promo = await promotions.create_promo(session, payload, created_by=admin)
    return PromoCodeRead.model_validate(promo)


@router.get("/{promo_id}")
async def admin_get_promo_code(promo_id: UUID, session: SessionDep, _: AdminDep) -> PromoCodeRead:
    return PromoCodeRead.model_validate(await promotions.get_promo(session, promo_id))


@router.patch("/{promo_id}")
async def admin_update_promo_code(
    promo_id: UUID, payload: PromoCodeUpdate, session: SessionDep, _: AdminDep
) -> PromoCodeRead:
    promo = await promotions.get_promo(session, promo_id)
    promo = await promotions.update_promo(session, promo, payload)
    return PromoCodeRead.model_validate(promo)


@router.delete("/{promo_id}", status_code=status.HTTP_204_NO_CONTENT)
async def admin_delete_promo_code(promo_id: UUID, session: SessionDep, _: AdminDep) -> Response:
    promo = await promotions.get_promo(session, promo_id)
    await promotions.delete_promo(session, promo)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{promo_id}/usage")
async def admin_promo_code_usage(promo_id: UUID, session: SessionDep, _: AdminDep) -> list[PromoCodeUsageRead]:
    promo = await promotions.get_promo(session, promo_id)
    rows = await promo_usage.list_usage(session, promo_id=promo.id)
    return [PromoCodeUsageRead.model_validate(row) for row in rows]
