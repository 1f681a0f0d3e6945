from app.db.base import Base  # noqa: F401
from app.models.catalog import (
    Flavor,
    FlavorSize,
    FlavorStock,
    Product,
    StockChangeType,
    StockHistory,
    StockItemType,
)  # noqa: F401
from app.models.delivery import DeliveryZone  # noqa: F401
from app.models.promo import DiscountType, EnhancedPromoType, PromoCode, PromoCodeUsage  # noqa: F401
from app.models.order import Order, OrderEvent, OrderItem, OrderStatus  # noqa: F401
from app.models.site_setting import OrderMode, SiteSetting  # noqa: F401

__all__ = [
    "Base",
    "Flavor",
    "FlavorSize",
    "FlavorStock",
    "Product",
    "StockChangeType",
    "StockHistory",
    "StockItemType",
    "DeliveryZone",
    "DiscountType",
    "EnhancedPromoType",
    "PromoCode",
    "PromoCodeUsage",
    "Order",
    "OrderEvent",
    "OrderItem",
    "OrderStatus",
    "OrderMode",
    "SiteSetting",
]
