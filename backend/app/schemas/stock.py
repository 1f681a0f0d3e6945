from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.catalog import FlavorSize, StockChangeType, StockItemType
from app.models.site_setting import OrderMode
from app.schemas.cart import CartLine


class StockAdjustRequest(BaseModel):
    item_type: StockItemType = StockItemType.flavor
    item_id: UUID
    size: FlavorSize | None = None
    change_type: Literal["addition", "subtraction", "replacement"]
    quantity: int = Field(ge=0)
    notes: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def check_size(self):
        if self.item_type == StockItemType.flavor and self.size is None:
            raise ValueError("size is required for flavor stock")
        if self.item_type == StockItemType.product and self.size is not None:
            raise ValueError("size is only valid for flavor stock")
        return self


class StockHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    item_id: UUID
    item_type: StockItemType
    size: FlavorSize | None = None
    old_quantity: int
    new_quantity: int
    change_amount: int
    change_type: StockChangeType
    notes: str | None = None
    changed_by: str | None = None
    changed_at: datetime


class StockAdjustResponse(BaseModel):
    item_id: UUID
    item_type: StockItemType
    size: FlavorSize | None = None
    old_quantity: int
    new_quantity: int
    history: StockHistoryRead


class SizeAvailability(BaseModel):
    size: FlavorSize
    quantity: int
    max_selectable: int | None = None
    status: str
    message: str
    can_order: bool


class FlavorAvailabilityRead(BaseModel):
    flavor_id: UUID
    name: str
    order_mode: OrderMode
    allow_out_of_stock_order: bool
    sizes: list[SizeAvailability]


class StockCheckRequest(BaseModel):
    items: list[CartLine] = Field(min_length=1)


class StockIssue(BaseModel):
    item_id: UUID
    item_type: StockItemType
    name: str | None = None
    size: FlavorSize | None = None
    issue: Literal["not_found", "out_of_stock", "insufficient_stock"]
    available: int
    requested: int


class StockCheckResponse(BaseModel):
    ok: bool
    order_mode: OrderMode
    issues: list[StockIssue] = Field(default_factory=list)
