"""Rental store repositories: async database access.

Extends BaseRepository with catalog queries (active listing, slug
uniqueness, sort order, categories), the stock report and the persisted
pricing settings, and exposes FastAPI
dependency factories for every repository and service.
"""

import uuid
from collections import defaultdict
from decimal import Decimal
from typing import Any

from fastapi import Depends
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_session
from core.errors import NotFoundError, ValidationError
from patterns.domain_config import PricingConfig
from patterns.repository import BaseRepository, as_uuid
from patterns.workflow_states import INACTIVE_STATUSES
from verticals.rental.availability import (
    AvailabilityCalculator,
    HoldInterval,
    find_oversold_windows,
    peak_concurrent,
)
from verticals.rental.bundles import BundleExpander, BundleRepository
from verticals.rental.config import config
from verticals.rental.models.db_models import (
    BundleItem,
    Category,
    Customer,
    Order,
    OrderItem,
    PricingSettings,
    Product,
    StockBlock,
)
from verticals.rental.orders import OrderService


# ---------------------------------------------------------------------------
# Product repository
# ---------------------------------------------------------------------------

async def _require_category(session: AsyncSession, category_id) -> uuid.UUID | None:
    """Resolve an incoming category id; None clears the category."""
    if category_id in (None, ""):
        return None
    key = as_uuid(category_id)
    if key is None or await session.get(Category, key) is None:
        raise NotFoundError("Category not found")
    return key


class ProductRepository(BaseRepository[Product]):
    """Repository for catalog CRUD and the stock report."""

    model = Product

    async def _categories(self, products) -> dict[uuid.UUID, dict]:
        ids = {p.category_id for p in products if p.category_id}
        if not ids:
            return {}
        result = await self.session.execute(select(Category).where(Category.id.in_(ids)))
        return {c.id: c.to_dict() for c in result.scalars().all()}

    async def _with_category(self, products) -> list[dict]:
        categories = await self._categories(products)
        return [
            {**p.to_dict(), "category": categories.get(p.category_id)}
            for p in products
        ]

    async def catalog(
        self, include_inactive: bool = False, category: str | None = None
    ) -> list[dict]:
        """Products in display order; only active ones unless asked.

        ``category`` is a category slug; "all" or None means no filter.
        """
        stmt = select(Product).order_by(Product.sort_order, Product.created_at.desc())
        if not include_inactive:
            stmt = stmt.where(Product.is_active.is_(True))
        if category and category != "all":
            stmt = stmt.join(Category, Product.category_id == Category.id).where(
                Category.slug == category
            )
        result = await self.session.execute(stmt)
        return await self._with_category(result.scalars().all())

    async def require(self, product_id: str) -> dict:
        product = await self.get_model(product_id)
        if not product:
            raise NotFoundError("Product not found")
        return (await self._with_category([product]))[0]

    async def create(self, data: dict[str, Any]) -> dict:
        """Create a product at the end of the display order."""
        taken = await self.session.execute(
            select(Product.id).where(Product.slug == data["slug"])
        )
        if taken.first() is not None:
            raise ValidationError("A product with this slug already exists")

        max_sort = await self.session.execute(select(func.max(Product.sort_order)))
        current = max_sort.scalar()
        data = {
            **data,
            "category_id": await _require_category(self.session, data.get("category_id")),
            "sort_order": (current if current is not None else -1) + 1,
        }
        return await super().create(data)

    async def update(self, item_id: str, data: dict[str, Any]) -> dict:
        if "category_id" in data:
            data = {
                **data,
                "category_id": await _require_category(self.session, data["category_id"]),
            }
        product = await super().update(item_id, data)
        if not product:
            raise NotFoundError("Product not found")
        return product

    async def delete(self, item_id: str) -> bool:
        """Delete a product nothing else points at.

        Refused while any order line, hold or bundle membership references
        it: a bundle order holds its constituents without an order line of
        their own.
        """
        product = await self.get_model(item_id)
        if not product:
            raise NotFoundError("Product not found")

        references = [
            (OrderItem, OrderItem.product_id, "Product has orders; deactivate it instead"),
            (StockBlock, StockBlock.product_id, "Product has stock holds; deactivate it instead"),
            (
                BundleItem,
                BundleItem.product_id,
                "Product is part of a bundle; remove it from its bundles first",
            ),
        ]
        for model, column, message in references:
            used = await self.session.execute(
                select(func.count()).select_from(model).where(column == product.id)
            )
            if used.scalar():
                raise ValidationError(message)

        # bulk statements; the bundle_items cascade would lazy-load
        await self.session.execute(delete(BundleItem).where(BundleItem.bundle_id == product.id))
        await self.session.execute(delete(Product).where(Product.id == product.id))
        await self.session.flush()
        return True

    async def stock_report(self) -> list[dict]:
        """Per active product: reserved units, available units and the
        orders that push it over stock.

        ``reserved`` counts every hold of an order that still blocks,
        whatever its dates, and ``available`` is total stock minus that
        (negative when over-committed). ``peakReserved`` is the largest
        number of holds covering any single instant; ``oversoldOrders``
        lists the orders holding units during a span where that peak
        exceeds total stock.
        """
        products = (
            await self.session.execute(
                select(Product)
                .where(Product.is_active.is_(True))
                .order_by(Product.sort_order, Product.name)
            )
        ).scalars().all()
        categories = await self._categories(products)

        rows = await self.session.execute(
            select(StockBlock, Order)
            .join(Order, StockBlock.order_id == Order.id)
            .where(Order.status.not_in([s.value for s in INACTIVE_STATUSES]))
        )
        holds: dict = defaultdict(list)
        orders: dict[str, Order] = {}
        for block, order in rows.all():
            holds[block.product_id].append(
                HoldInterval(order_id=str(order.id), start=block.start_date, end=block.end_date)
            )
            orders[str(order.id)] = order

        report = []
        for product in products:
            product_holds = holds.get(product.id, [])
            windows = find_oversold_windows(product_holds, product.total_stock)
            culprits = sorted({oid for w in windows for oid in w.order_ids})
            report.append({
                **product.to_dict(),
                "category": categories.get(product.category_id),
                "reserved": len(product_holds),
                "available": product.total_stock - len(product_holds),
                "peakReserved": peak_concurrent(product_holds),
                "oversold": bool(windows),
                "oversoldOrders": [
                    {
                        "orderId": oid,
                        "rentalStartDate": orders[oid].rental_start_date.isoformat(),
                        "rentalEndDate": orders[oid].rental_end_date.isoformat(),
                        "customerName": orders[oid].customer_name,
                        "customerEmail": orders[oid].customer_email,
                    }
                    for oid in culprits
                ],
            })
        return report


# ---------------------------------------------------------------------------
# Category repository
# ---------------------------------------------------------------------------

class CategoryRepository(BaseRepository[Category]):
    model = Category

    async def list_categories(self) -> list[dict]:
        result = await self.session.execute(select(Category).order_by(Category.name))
        return [c.to_dict() for c in result.scalars().all()]

    async def _check_slug(self, slug: str, own_id: uuid.UUID | None = None) -> None:
        stmt = select(Category.id).where(Category.slug == slug)
        if own_id is not None:
            stmt = stmt.where(Category.id != own_id)
        if (await self.session.execute(stmt)).first() is not None:
            raise ValidationError("A category with this slug already exists")

    async def create(self, data: dict[str, Any]) -> dict:
        await self._check_slug(data["slug"])
        return await super().create(data)

    async def update(self, item_id: str, data: dict[str, Any]) -> dict:
        category = await self.get_model(item_id)
        if not category:
            raise NotFoundError("Category not found")
        if data.get("slug"):
            await self._check_slug(data["slug"], category.id)
        return await super().update(category.id, data)

    async def delete(self, item_id: str) -> bool:
        """Delete an empty category; products must be moved out first."""
        category = await self.get_model(item_id)
        if not category:
            raise NotFoundError("Category not found")
        used = await self.session.execute(
            select(func.count(Product.id)).where(Product.category_id == category.id)
        )
        if used.scalar():
            raise ValidationError("Category still has products")
        return await super().delete(category.id)


# ---------------------------------------------------------------------------
# Pricing settings
# ---------------------------------------------------------------------------

_PRICING_FIELDS = (
    "weekly_price_percent_increase",
    "min_order_value",
    "airport_min_order",
    "bundle_discount_percent",
)


class PricingRepository:
    """The single pricing settings row, seeded from config on first read."""

    def __init__(self, session: AsyncSession, defaults: PricingConfig | None = None):
        self.session = session
        self.defaults = defaults or config.pricing

    async def _row(self) -> PricingSettings:
        result = await self.session.execute(
            select(PricingSettings).order_by(PricingSettings.created_at).limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = PricingSettings(
                **{name: float(getattr(self.defaults, name)) for name in _PRICING_FIELDS}
            )
            self.session.add(row)
            await self.session.flush()
        return row

    async def get(self) -> dict:
        return (await self._row()).to_dict()

    async def update(self, data: dict[str, Any]) -> dict:
        row = await self._row()
        for name in _PRICING_FIELDS:
            if data.get(name) is not None:
                setattr(row, name, data[name])
        await self.session.flush()
        return row.to_dict()

    async def as_config(self) -> PricingConfig:
        """Pricing rules for a quote; the contact threshold stays in config."""
        row = await self._row()
        return PricingConfig(
            **{name: Decimal(str(getattr(row, name))) for name in _PRICING_FIELDS},
            contact_threshold_days=self.defaults.contact_threshold_days,
        )


# ---------------------------------------------------------------------------
# Customer repository
# ---------------------------------------------------------------------------

class CustomerRepository(BaseRepository[Customer]):
    """Read access to customers; accounts are managed by the auth service."""

    model = Customer

    async def require(self, customer_id: str) -> dict:
        customer = await self.get(customer_id)
        if not customer:
            raise NotFoundError("Customer not found")
        return customer


# ---------------------------------------------------------------------------
# FastAPI dependency factories
# ---------------------------------------------------------------------------

def get_product_repository(
    session: AsyncSession = Depends(get_session),
) -> ProductRepository:
    """FastAPI dependency for ProductRepository."""
    return ProductRepository(session)


def get_customer_repository(
    session: AsyncSession = Depends(get_session),
) -> CustomerRepository:
    return CustomerRepository(session)


def get_bundle_repository(
    session: AsyncSession = Depends(get_session),
) -> BundleRepository:
    return BundleRepository(session)


def get_bundle_expander(
    session: AsyncSession = Depends(get_session),
) -> BundleExpander:
    return BundleExpander(session)


def get_availability_calculator(
    session: AsyncSession = Depends(get_session),
) -> AvailabilityCalculator:
    return AvailabilityCalculator(session)


def get_order_service(
    session: AsyncSession = Depends(get_session),
) -> OrderService:
    """FastAPI dependency for OrderService."""
    return OrderService(session, config)


def get_category_repository(
    session: AsyncSession = Depends(get_session),
) -> CategoryRepository:
    return CategoryRepository(session)


def get_pricing_repository(
    session: AsyncSession = Depends(get_session),
) -> PricingRepository:
    return PricingRepository(session)
