from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.site_setting import OrderMode, SiteSetting

logger = logging.getLogger(__name__)

ORDER_MODE_KEY = "order_mode"


def _coerce(value: str | None) -> OrderMode:
    try:
        return OrderMode((value or "").strip())
    except ValueError:
        return OrderMode(settings.default_order_mode)


async def get_order_mode(session: AsyncSession) -> OrderMode:
    row = await session.get(SiteSetting, ORDER_MODE_KEY)
    if row is None:
        return OrderMode(settings.default_order_mode)
    return _coerce(row.setting_value)


async def set_order_mode(session: AsyncSession, mode: OrderMode) -> OrderMode:
    row = await session.get(SiteSetting, ORDER_MODE_KEY)
    if row is None:
        row = SiteSetting(setting_key=ORDER_MODE_KEY)
    row.setting_value = mode.value
    session.add(row)
    await session.commit()
    logger.info("order_mode_updated", extra={"reason": mode.value})
    return mode
