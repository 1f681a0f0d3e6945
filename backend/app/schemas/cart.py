from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.catalog import FlavorSize


class FlavorSelection(BaseModel):
    flavor_id: UUID
    size: FlavorSize = FlavorSize.medium
    quantity: int = Field(ge=1)
    category: str | None = Field(default=None, max_length=80)
    name: str | None = Field(default=None, max_length=120)


class CartLine(BaseModel):
    product_id: UUID
    name: str | None = Field(default=None, max_length=160)
    category: str | None = Field(default=None, max_length=80)
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(ge=0)
    is_pack: bool = False
    flavors: list[FlavorSelection] = Field(default_factory=list)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class CartPayload(BaseModel):
    items: list[CartLine] = Field(min_length=1)
