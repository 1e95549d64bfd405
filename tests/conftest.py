"""Shared fixtures: a fresh SQLite database per test, sessions, an HTTP client."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RENTAL_RATE_LIMIT_MAX_REQUESTS", "1000")

from datetime import datetime, timezone
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio

from core.database import build_engine, build_session_factory, get_session, init_db
from verticals.rental.models.db_models import BundleItem, Product
from verticals.rental.orders import OrderService


def utc(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'rentals.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[httpx.AsyncClient, None]:
    from api.main import app

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


# =============================================================================
# Data helpers
# =============================================================================

async def make_product(
    session, name: str, total_stock: int = 1, price: float = 20.0, is_bundle: bool = False
) -> Product:
    product = Product(
        name=name,
        slug=name.lower().replace(" ", "-"),
        price=price,
        total_stock=total_stock,
        is_bundle=is_bundle,
    )
    session.add(product)
    await session.commit()
    return product


async def make_bundle(session, name: str, parts: list[tuple[Product, int]]) -> Product:
    bundle = await make_product(session, name, total_stock=0, price=50.0, is_bundle=True)
    for product, quantity in parts:
        session.add(BundleItem(bundle_id=bundle.id, product_id=product.id, quantity=quantity))
    await session.commit()
    return bundle


def order_payload(
    lines: list[tuple[Product, int]],
    start: datetime = None,
    end: datetime = None,
    **overrides,
) -> dict:
    data = {
        "customer_id": None,
        "customer_name": "Sam Carter",
        "customer_email": "sam@example.com",
        "rental_start_date": start or utc(2030, 1, 10),
        "rental_end_date": end or utc(2030, 1, 15),
        "terms_accepted": True,
        "items": [
            {"product_id": str(p.id), "quantity": q, "price": p.price} for p, q in lines
        ],
    }
    data.update(overrides)
    return data


async def place_order(session, lines, start=None, end=None, **overrides) -> str:
    result = await OrderService(session).create(order_payload(lines, start, end, **overrides))
    return result["orderId"]
