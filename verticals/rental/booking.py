"""Booking conflict resolver.

Reserving stock is a single check-and-insert step guarded by a
per-product serialization point:

1. ProductLocks: an in-process asyncio.Lock per product, acquired in
   sorted id order and held until the caller commits.
2. SELECT ... FOR UPDATE on the product rows, which serializes writers
   across processes on databases with row locks (ignored by SQLite).

Inside that guard the resolver counts overlapping holds and inserts new
ones only when every requested product has enough free units, so a
booking is all-or-nothing.
"""

import asyncio
import logging
import uuid
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import InsufficientStock, NotFoundError, ValidationError
from patterns.rules_engine import (
    check_date_range,
    check_quantity,
    check_stock_availability,
    evaluate_rules,
)
from verticals.rental.availability import AvailabilityCalculator, to_utc
from verticals.rental.bundles import BundleExpander
from verticals.rental.models.db_models import Product, StockBlock

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Per-product serialization
# ---------------------------------------------------------------------------

class ProductLocks:
    """Registry of asyncio locks keyed by product id.

    Locks are held weakly: an entry lives only while some task holds or
    waits on it, so the registry never grows past the set of products
    being booked right now.
    """

    def __init__(self):
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def _lock_for(self, product_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(product_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[product_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, product_ids: Iterable[uuid.UUID]) -> AsyncIterator[None]:
        """Acquire every product's lock in a fixed order."""
        locks = [self._lock_for(pid) for pid in sorted(set(product_ids), key=str)]
        acquired = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def __len__(self) -> int:
        return len(self._locks)


product_locks = ProductLocks()


# ---------------------------------------------------------------------------
# Booking requests
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BookingLine:
    """A requested line: `quantity` units of a product or of a bundle."""

    product_id: uuid.UUID
    quantity: int


class BookingResolver:
    """Grants or rejects holds for an order's lines."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.availability = AvailabilityCalculator(session)
        self.bundles = BundleExpander(session)

    async def lock_products(self, product_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, Product]:
        """Load products with a row lock, in id order."""
        ids = sorted(set(product_ids), key=str)
        if not ids:
            return {}
        stmt = (
            select(Product)
            .where(Product.id.in_(ids))
            .order_by(Product.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return {p.id: p for p in result.scalars().all()}

    async def requirements(self, lines: Iterable[BookingLine]) -> dict[uuid.UUID, int]:
        """Units needed per plain product once bundles are expanded.

        A bundle line of quantity q books q * n units of each constituent
        that the bundle lists n times.
        """
        needed: dict[uuid.UUID, int] = {}
        for line in lines:
            rule = check_quantity(line.quantity)
            if not rule.passed:
                raise ValidationError(rule.message, details=rule.details)

            product = await self.session.get(Product, line.product_id)
            if product is None:
                raise NotFoundError("Product not found", details={"productId": str(line.product_id)})

            if product.is_bundle:
                for part in await self.bundles.expand(product.id):
                    needed[part.product_id] = (
                        needed.get(part.product_id, 0) + part.quantity * line.quantity
                    )
            else:
                needed[product.id] = needed.get(product.id, 0) + line.quantity
        return needed

    async def reserve(
        self,
        needed: dict[uuid.UUID, int],
        start: datetime,
        end: datetime,
        order_id: uuid.UUID,
        exclude_order_id: uuid.UUID | None = None,
    ) -> list[StockBlock]:
        """Check every product, then insert one hold per unit.

        Callers must hold ``product_locks`` for ``needed`` and commit before
        releasing them. Nothing is written unless every product has room.
        """
        start, end = to_utc(start), to_utc(end)
        rule = check_date_range(start, end)
        if not rule.passed:
            raise ValidationError(rule.message, details=rule.details)

        products = await self.lock_products(needed)
        checks = []
        shortages = []
        for product_id, quantity in needed.items():
            product = products.get(product_id)
            if product is None:
                raise NotFoundError("Product not found", details={"productId": str(product_id)})
            availability = await self.availability.for_product(
                product, start, end, exclude_order_id
            )
            check = check_stock_availability(availability.available, quantity)
            checks.append(check)
            if not check.passed:
                shortages.append({
                    "productId": str(product_id),
                    "productName": product.name,
                    "requested": quantity,
                    "available": max(availability.available, 0),
                })

        verdict = evaluate_rules(*checks)
        if not verdict.all_passed:
            names = ", ".join(s["productName"] for s in shortages)
            logger.info("Booking for order %s rejected: %s", order_id, verdict.message)
            raise InsufficientStock(
                f"Not enough stock for the selected dates: {names}",
                details={"shortages": shortages},
            )

        blocks = [
            StockBlock(product_id=product_id, order_id=order_id, start_date=start, end_date=end)
            for product_id, quantity in needed.items()
            for _ in range(quantity)
        ]
        self.session.add_all(blocks)
        await self.session.flush()
        logger.info(
            "Reserved %d holds for order %s across %d products",
            len(blocks), order_id, len(needed),
        )
        return blocks

    async def try_book(
        self,
        product_id: uuid.UUID,
        quantity: int,
        start: datetime,
        end: datetime,
        order_id: uuid.UUID,
    ) -> list[StockBlock]:
        """Book one line (a product or a bundle) for an existing order.

        Serialized per product; the caller owns the transaction and must
        commit while the returned holds are still protected, so this is
        meant for use inside ``product_locks.hold``.
        """
        needed = await self.requirements([BookingLine(product_id, quantity)])
        return await self.reserve(needed, start, end, order_id)
