from __future__ import annotations

import json
import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog import Flavor, FlavorSize, FlavorStock, Product
from app.models.delivery import DeliveryZone
from app.models.promo import DiscountType, EnhancedPromoType, PromoCode

logger = logging.getLogger(__name__)

DEMO_FLAVORS: list[dict] = [
    {"slug": "classic-chocolate-chip", "name": "Classic Chocolate Chip", "category": "classic", "stock": 40},
    {"slug": "red-velvet", "name": "Red Velvet", "category": "signature", "stock": 12},
    {"slug": "lotus-biscoff", "name": "Lotus Biscoff", "category": "signature", "stock": 4},
    {"slug": "pistachio-kunafa", "name": "Pistachio Kunafa", "category": "limited", "stock": 0, "allow_oos": True},
]

DEMO_PRODUCTS: list[dict] = [
    {"slug": "box-of-6", "name": "Box of 6", "price": "420.00", "is_pack": True, "count": 6, "size": FlavorSize.medium},
    {"slug": "mini-box-of-12", "name": "Mini Box of 12", "price": "390.00", "is_pack": True, "count": 12, "size": FlavorSize.mini},
    {"slug": "milk-bottle", "name": "Fresh Milk Bottle", "price": "45.00", "category": "drinks", "stock": 30},
]

DEMO_PROMOS: list[dict] = [
    {"code": "WELCOME10", "name": "Welcome 10%", "discount_value": Decimal("10")},
    {"code": "SAVE15", "name": "Save 15", "discount_type": DiscountType.fixed_amount, "discount_value": Decimal("15")},
    {"code": "FREESHIP", "name": "Free delivery", "enhanced_type": EnhancedPromoType.free_delivery},
    {"code": "BOGO", "name": "Buy one get one", "enhanced_type": EnhancedPromoType.buy_one_get_one},
    {
        "code": "SIGNATURE20",
        "name": "Signature flavors 20%",
        "enhanced_type": EnhancedPromoType.category_specific,
        "discount_value": Decimal("20"),
        "category_restrictions": json.dumps(["signature"]),
    },
]

DEMO_ZONES: list[dict] = [
    {"slug": "new-cairo", "name": "New Cairo", "city": "Cairo", "delivery_fee": "50.00", "sort_order": 1},
    {"slug": "maadi", "name": "Maadi", "city": "Cairo", "delivery_fee": "60.00", "sort_order": 2},
    {"slug": "sheikh-zayed", "name": "Sheikh Zayed", "city": "Giza", "delivery_fee": "75.00", "sort_order": 3},
]


async def _seed_flavors(session: AsyncSession) -> int:
    created = 0
    for entry in DEMO_FLAVORS:
        existing = (await session.execute(select(Flavor).where(Flavor.slug == entry["slug"]))).scalar_one_or_none()
        if existing:
            continue
        flavor = Flavor(
            slug=entry["slug"],
            name=entry["name"],
            category=entry["category"],
            allow_out_of_stock_order=bool(entry.get("allow_oos", False)),
        )
        flavor.stock_levels = [FlavorStock(size=size, quantity=entry["stock"]) for size in FlavorSize]
        session.add(flavor)
        created += 1
    return created


async def _seed_products(session: AsyncSession) -> int:
    created = 0
    for entry in DEMO_PRODUCTS:
        existing = (await session.execute(select(Product).where(Product.slug == entry["slug"]))).scalar_one_or_none()
        if existing:
            continue
        session.add(
            Product(
                slug=entry["slug"],
                name=entry["name"],
                category=entry.get("category", "cookies"),
                base_price=Decimal(entry["price"]),
                is_pack=bool(entry.get("is_pack", False)),
                count=int(entry.get("count", 0)),
                flavor_size=entry.get("size"),
                stock_quantity=int(entry.get("stock", 0)),
            )
        )
        created += 1
    return created


async def _seed_promos(session: AsyncSession) -> int:
    created = 0
    for entry in DEMO_PROMOS:
        existing = (await session.execute(select(PromoCode).where(PromoCode.code == entry["code"]))).scalar_one_or_none()
        if existing:
            continue
        session.add(PromoCode(created_by="seed", **entry))
        created += 1
    return created


async def _seed_zones(session: AsyncSession) -> int:
    created = 0
    for entry in DEMO_ZONES:
        existing = (
            await session.execute(select(DeliveryZone).where(DeliveryZone.slug == entry["slug"]))
        ).scalar_one_or_none()
        if existing:
            continue
        session.add(DeliveryZone(**{**entry, "delivery_fee": Decimal(entry["delivery_fee"])}))
        created += 1
    return created


async def seed_demo(session: AsyncSession) -> dict[str, int]:
    """Insert demo flavors, packs, promo codes and delivery zones; existing slugs and codes are left untouched."""
    counts = {
        "flavors": await _seed_flavors(session),
        "products": await _seed_products(session),
        "promo_codes": await _seed_promos(session),
        "delivery_zones": await _seed_zones(session),
    }
    await session.commit()
    logger.info("seed_demo_completed", extra=counts)
    return counts
