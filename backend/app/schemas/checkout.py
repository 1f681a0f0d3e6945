from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.models.order import OrderStatus
from app.models.site_setting import OrderMode
from app.schemas.cart import CartLine
from app.schemas.promo import OrderTotalsRead
from app.schemas.stock import StockIssue


class CheckoutRequest(BaseModel):
    items: list[CartLine] = Field(min_length=1)
    promo_code: str | None = Field(default=None, max_length=40)
    customer_id: UUID | None = None
    guest_email: EmailStr | None = None
    customer_groups: list[str] = Field(default_factory=list)
    zone_id: UUID | None = None


class PromoOutcome(BaseModel):
    code: str
    applied: bool
    reason: str | None = None
    message: str | None = None
    free_delivery: bool = False


class CheckoutQuoteResponse(BaseModel):
    order_mode: OrderMode
    currency: str
    zone_id: UUID | None = None
    totals: OrderTotalsRead
    promo: PromoOutcome | None = None
    stock_issues: list[StockIssue] = Field(default_factory=list)
    can_checkout: bool


class OrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: UUID
    name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    flavor_selections: list[dict] | None = None


class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reference_code: str | None = None
    status: OrderStatus
    customer_id: UUID | None = None
    customer_email: str | None = None
    order_mode: str
    promo_code: str | None = None
    zone_id: UUID | None = None
    subtotal: Decimal
    delivery_fee: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    currency: str
    created_at: datetime
    items: list[OrderItemRead] = Field(default_factory=list)
