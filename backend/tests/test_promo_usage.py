import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.db.base import Base
from app.models.order import Order, OrderEvent
from app.models.promo import PromoCode, PromoCodeUsage
from app.services import promo_usage


def _session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    return engine, SessionLocal, init_models


async def _make_promo(session, **overrides) -> PromoCode:
    values = dict(code="LIMITED", name="Limited", discount_value=Decimal("10"))
    values.update(overrides)
    promo = PromoCode(**values)
    session.add(promo)
    await session.commit()
    await session.refresh(promo)
    return promo


async def _make_order(session, email: str = "guest@example.com") -> Order:
    order = Order(customer_email=email, total_amount=Decimal("100.00"))
    session.add(order)
    await session.commit()
    return order


def test_customer_key_prefers_customer_id() -> None:
    customer = uuid.uuid4()
    assert promo_usage.customer_key(customer, "a@example.com") == f"customer:{customer}"
    assert promo_usage.customer_key(None, "  Guest@Example.COM ") == "guest:guest@example.com"
    assert promo_usage.customer_key(None, "  ") is None


def test_record_usage_increments_both_counters() -> None:
    engine, SessionLocal, init_models = _session_factory()

    async def run_flow() -> None:
        await init_models()
        async with SessionLocal() as session:
            promo = await _make_promo(session)
            order = await _make_order(session)
            now = datetime(2026, 5, 1, tzinfo=timezone.utc)

            counted = await promo_usage.record_promo_usage(
                session, promo=promo, order=order, guest_email="Guest@Example.com", now=now
            )
            await session.commit()
            assert counted is True

            await session.refresh(promo)
            assert promo.used_count == 1
            usage = await promo_usage.get_usage(session, promo_id=promo.id, key="guest:guest@example.com")
            assert usage.usage_count == 1
            assert usage.last_used_at is not None

            events = (
                await session.execute(select(OrderEvent).where(OrderEvent.order_id == order.id))
            ).scalars().all()
            assert [event.event for event in events] == [promo_usage.PROMO_COUNTED_EVENT]

    asyncio.run(run_flow())


def test_record_usage_is_idempotent_per_order() -> None:
    engine, SessionLocal, init_models = _session_factory()

    async def run_flow() -> None:
        await init_models()
        async with SessionLocal() as session:
            promo = await _make_promo(session)
            order = await _make_order(session)
            assert await promo_usage.record_promo_usage(session, promo=promo, order=order, guest_email=order.customer_email)
            await session.commit()
            assert not await promo_usage.record_promo_usage(
                session, promo=promo, order=order, guest_email=order.customer_email
            )
            await session.commit()

            await session.refresh(promo)
            assert promo.used_count == 1
            usage = await promo_usage.get_usage(session, promo_id=promo.id, key="guest:guest@example.com")
            assert usage.usage_count == 1

    asyncio.run(run_flow())


def test_record_usage_is_idempotent_within_one_transaction() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

    async def run_flow() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with SessionLocal() as session:
            promo = await _make_promo(session)
            order = await _make_order(session)
            first = await promo_usage.record_promo_usage(
                session, promo=promo, order=order, guest_email=order.customer_email
            )
            second = await promo_usage.record_promo_usage(
                session, promo=promo, order=order, guest_email=order.customer_email
            )
            await session.commit()
            assert (first, second) == (True, False)

            await session.refresh(promo)
            assert promo.used_count == 1
            usage = await promo_usage.get_usage(session, promo_id=promo.id, key="guest:guest@example.com")
            assert usage.usage_count == 1
            events = (
                await session.execute(select(OrderEvent).where(OrderEvent.order_id == order.id))
            ).scalars().all()
            assert len(events) == 1

    asyncio.run(run_flow())


def test_global_limit_conflict_rolls_back() -> None:
    engine, SessionLocal, init_models = _session_factory()

    async def run_flow() -> None:
        await init_models()
        async with SessionLocal() as session:
            promo = await _make_promo(session, usage_limit=1)
            first = await _make_order(session, "one@example.com")
            second = await _make_order(session, "two@example.com")

            await promo_usage.record_promo_usage(session, promo=promo, order=first, guest_email="one@example.com")
            await session.commit()

            with pytest.raises(HTTPException) as excinfo:
                await promo_usage.record_promo_usage(
                    session, promo=promo, order=second, guest_email="two@example.com"
                )
            assert excinfo.value.status_code == 409
            assert getattr(excinfo.value, "code", None) == "promo_usage_conflict"

            await session.refresh(promo)
            assert promo.used_count == 1
            usage = await promo_usage.get_usage(session, promo_id=promo.id, key="guest:two@example.com")
            assert usage.usage_count == 0

    asyncio.run(run_flow())


def test_customer_limit_conflict_leaves_global_count_untouched() -> None:
    engine, SessionLocal, init_models = _session_factory()

    async def run_flow() -> None:
        await init_models()
        async with SessionLocal() as session:
            promo = await _make_promo(session, usage_per_customer=1)
            first = await _make_order(session)
            second = await _make_order(session)

            await promo_usage.record_promo_usage(session, promo=promo, order=first, guest_email="guest@example.com")
            await session.commit()

            with pytest.raises(HTTPException) as excinfo:
                await promo_usage.record_promo_usage(
                    session, promo=promo, order=second, guest_email="guest@example.com"
                )
            assert excinfo.value.status_code == 409

            await session.refresh(promo)
            assert promo.used_count == 1
            rows = (await session.execute(select(PromoCodeUsage))).scalars().all()
            assert len(rows) == 1
            assert rows[0].usage_count == 1

    asyncio.run(run_flow())


def test_list_usage_orders_by_count() -> None:
    engine, SessionLocal, init_models = _session_factory()

    async def run_flow() -> None:
        await init_models()
        async with SessionLocal() as session:
            promo = await _make_promo(session)
            now = datetime(2026, 5, 1, tzinfo=timezone.utc)
            for index, email in enumerate(["a@example.com", "b@example.com", "b@example.com"]):
                order = await _make_order(session, email)
                await promo_usage.record_promo_usage(
                    session, promo=promo, order=order, guest_email=email, now=now + timedelta(minutes=index)
                )
                await session.commit()

            rows = await promo_usage.list_usage(session, promo_id=promo.id)
            assert [row.customer_key for row in rows] == ["guest:b@example.com", "guest:a@example.com"]
            assert [row.usage_count for row in rows] == [2, 1]
            assert rows[0].guest_email == "b@example.com"

            await session.refresh(promo)
            assert promo.used_count == 3

    asyncio.run(run_flow())


def test_usage_without_identity_counts_globally_only() -> None:
    engine, SessionLocal, init_models = _session_factory()

    async def run_flow() -> None:
        await init_models()
        async with SessionLocal() as session:
            promo = await _make_promo(session)
            order = await _make_order(session, "")
            assert await promo_usage.record_promo_usage(session, promo=promo, order=order)
            await session.commit()
            await session.refresh(promo)
            assert promo.used_count == 1
            assert await promo_usage.list_usage(session, promo_id=promo.id) == []
            assert (await promo_usage.get_usage(session, promo_id=promo.id, key=None)).usage_count == 0

    asyncio.run(run_flow())


@pytest.mark.anyio
async def test_get_usage_defaults_for_unknown_customer() -> None:
    engine, SessionLocal, init_models = _session_factory()
    await init_models()
    async with SessionLocal() as session:
        promo = await _make_promo(session)
        snapshot = await promo_usage.get_usage(session, promo_id=promo.id, key="guest:nobody@example.com")
        assert snapshot == promo_usage.UsageSnapshot()
    await engine.dispose()
