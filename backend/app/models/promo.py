import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class DiscountType(str, enum.Enum):
    percentage = "percentage"
    fixed_amount = "fixed_amount"


class EnhancedPromoType(str, enum.Enum):
    basic = "basic"
    free_delivery = "free_delivery"
    buy_one_get_one = "buy_one_get_one"
    buy_x_get_y = "buy_x_get_y"
    category_specific = "category_specific"
    first_time_customer = "first_time_customer"
    loyalty_reward = "loyalty_reward"


class PromoCode(Base):
    __tablename__ = "promo_codes"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(40), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    discount_type: Mapped[DiscountType] = mapped_column(
        Enum(DiscountType, native_enum=False), nullable=False, default=DiscountType.percentage
    )
    enhanced_type: Mapped[EnhancedPromoType] = mapped_column(
        Enum(EnhancedPromoType, native_enum=False), nullable=False, default=EnhancedPromoType.basic, index=True
    )
    discount_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    minimum_order_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    maximum_discount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    usage_per_customer: Mapped[int | None] = mapped_column(Integer, nullable=True)
    usage_per_order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    valid_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    # JSON-encoded lists; decoded by app.services.promotions.parse_restrictions.
    category_restrictions: Mapped[str | None] = mapped_column(Text, nullable=True)
    product_restrictions: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_group_restrictions: Mapped[str | None] = mapped_column(Text, nullable=True)
    first_time_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    minimum_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    maximum_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    combination_allowed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    stack_with_pricing_rules: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    buy_x_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    get_y_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    get_y_discount_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(120), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    usages: Mapped[list["PromoCodeUsage"]] = relationship(
        "PromoCodeUsage", back_populates="promo_code", cascade="all, delete-orphan"
    )


class PromoCodeUsage(Base):
    __tablename__ = "promo_code_usages"
    __table_args__ = (UniqueConstraint("promo_code_id", "customer_key", name="uq_promo_code_usages_code_customer"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    promo_code_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("promo_codes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    customer_key: Mapped[str] = mapped_column(String(320), nullable=False)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True, index=True)
    guest_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    promo_code: Mapped[PromoCode] = relationship("PromoCode", back_populates="usages")
