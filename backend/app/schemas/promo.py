from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from app.models.promo import DiscountType, EnhancedPromoType
from app.schemas.cart import CartLine
from app.schemas.common import PaginationMeta
from app.services.promotions import parse_restrictions


def _clean_identifiers(value: list[str] | None) -> list[str]:
    cleaned: list[str] = []
    for raw in value or []:
        item = str(raw or "").strip()
        if item and item not in cleaned:
            cleaned.append(item)
    return cleaned


class PromoCodeBase(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str | None = None
    discount_type: DiscountType = DiscountType.percentage
    enhanced_type: EnhancedPromoType = EnhancedPromoType.basic
    discount_value: Decimal = Field(default=Decimal("0"), ge=0)
    minimum_order_amount: Decimal = Field(default=Decimal("0"), ge=0)
    maximum_discount: Decimal | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=0)
    usage_per_customer: int | None = Field(default=None, ge=1)
    usage_per_order: int = Field(default=1, ge=1)
    valid_until: datetime | None = None
    is_active: bool = True
    category_restrictions: list[str] = Field(default_factory=list)
    product_restrictions: list[str] = Field(default_factory=list)
    customer_group_restrictions: list[str] = Field(default_factory=list)
    first_time_only: bool = False
    minimum_quantity: int = Field(default=0, ge=0)
    maximum_quantity: int = Field(default=0, ge=0)
    combination_allowed: bool = True
    stack_with_pricing_rules: bool = True
    buy_x_quantity: int | None = Field(default=None, ge=1)
    get_y_quantity: int | None = Field(default=None, ge=1)
    get_y_discount_percentage: Decimal | None = Field(default=None, ge=0, le=100)


class PromoCodeCreate(PromoCodeBase):
    code: str = Field(min_length=3, max_length=40)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        cleaned = (value or "").strip().upper()
        if len(cleaned) < 3:
            raise ValueError("Promo code must have at least 3 characters")
        return cleaned

    @field_validator("category_restrictions", "product_restrictions", "customer_group_restrictions")
    @classmethod
    def clean_restrictions(cls, value: list[str]) -> list[str]:
        return _clean_identifiers(value)

    @model_validator(mode="after")
    def check_discount_value(self):
        if self.discount_type == DiscountType.percentage and self.discount_value > 100:
            raise ValueError("Percentage discounts cannot exceed 100")
        if (
            self.maximum_quantity
            and self.minimum_quantity
            and self.maximum_quantity < self.minimum_quantity
        ):
            raise ValueError("maximum_quantity must be greater than or equal to minimum_quantity")
        return self


class PromoCodeUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = None
    discount_type: DiscountType | None = None
    enhanced_type: EnhancedPromoType | None = None
    discount_value: Decimal | None = Field(default=None, ge=0)
    minimum_order_amount: Decimal | None = Field(default=None, ge=0)
    maximum_discount: Decimal | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=0)
    usage_per_customer: int | None = Field(default=None, ge=1)
    usage_per_order: int | None = Field(default=None, ge=1)
    valid_until: datetime | None = None
    is_active: bool | None = None
    category_restrictions: list[str] | None = None
    product_restrictions: list[str] | None = None
    customer_group_restrictions: list[str] | None = None
    first_time_only: bool | None = None
    minimum_quantity: int | None = Field(default=None, ge=0)
    maximum_quantity: int | None = Field(default=None, ge=0)
    combination_allowed: bool | None = None
    stack_with_pricing_rules: bool | None = None
    buy_x_quantity: int | None = Field(default=None, ge=1)
    get_y_quantity: int | None = Field(default=None, ge=1)
    get_y_discount_percentage: Decimal | None = Field(default=None, ge=0, le=100)

    @field_validator("category_restrictions", "product_restrictions", "customer_group_restrictions")
    @classmethod
    def clean_restrictions(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return _clean_identifiers(value)


class PromoCodeRead(PromoCodeBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    used_count: int
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("category_restrictions", "product_restrictions", "customer_group_restrictions", mode="before")
    @classmethod
    def decode_restrictions(cls, value: object) -> list[str]:
        if isinstance(value, list):
            return [str(item) for item in value]
        return sorted(parse_restrictions(value if isinstance(value, str) else None))


class PromoCodeListResponse(BaseModel):
    items: list[PromoCodeRead]
    meta: PaginationMeta


class PromoCodeUsageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    customer_key: str
    customer_id: UUID | None = None
    guest_email: str | None = None
    usage_count: int
    last_used_at: datetime | None = None


class PromoValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=40)
    items: list[CartLine] = Field(min_length=1)
    customer_id: UUID | None = None
    guest_email: EmailStr | None = None
    customer_groups: list[str] = Field(default_factory=list)
    delivery_fee: Decimal | None = Field(default=None, ge=0)
    zone_id: UUID | None = None


class PromoSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str
    description: str | None = None
    discount_type: DiscountType
    enhanced_type: EnhancedPromoType
    discount_value: Decimal


class OrderTotalsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    subtotal: Decimal
    delivery_fee: Decimal
    effective_delivery_fee: Decimal
    discount_amount: Decimal
    final_total: Decimal


class PromoValidateResponse(BaseModel):
    valid: bool
    code: str
    reason: str | None = None
    message: str | None = None
    discount_amount: Decimal = Decimal("0.00")
    free_delivery: bool = False
    promo: PromoSummary | None = None
    totals: OrderTotalsRead
