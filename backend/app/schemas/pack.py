from uuid import UUID

from pydantic import BaseModel, Field

from app.models.catalog import FlavorSize
from app.models.site_setting import OrderMode
from app.schemas.cart import FlavorSelection


class PackValidateRequest(BaseModel):
    selections: list[FlavorSelection] = Field(default_factory=list)


class PackFlavorLimit(BaseModel):
    flavor_id: UUID
    selected: int
    max_selectable: int | None = None


class PackValidateResponse(BaseModel):
    product_id: UUID
    valid: bool
    reason: str | None = None
    message: str | None = None
    total: int
    required: int
    size: FlavorSize | None = None
    order_mode: OrderMode
    flavors: list[PackFlavorLimit] = Field(default_factory=list)
