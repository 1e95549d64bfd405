"""Availability calculator and oversold detection.

Free units for a product over [start, end) are its total stock minus the
holds (stock blocks) that overlap the range and belong to orders that are
still active. Orders in a CANCELLED or COMPLETED state never block, and a
CONFIRMED order keeps blocking until someone marks it completed: holds do
not expire by date.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError, ValidationError
from patterns.repository import as_uuid
from patterns.rules_engine import check_date_range
from patterns.workflow_states import INACTIVE_STATUSES
from verticals.rental.models.db_models import Order, Product, StockBlock

logger = logging.getLogger(__name__)

_INACTIVE = [s.value for s in INACTIVE_STATUSES]


def to_utc(value: datetime) -> datetime:
    """Normalise an instant to UTC; naive values are taken as UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def overlap_clause(start: datetime, end: datetime):
    """Holds that overlap the half-open query range [start, end).

    Three explicit cases: the hold covers the query start, the hold covers
    the query end, or the hold lies inside the query. A hold that ends
    exactly when the query starts, or starts exactly when it ends, only
    touches the range and does not block.
    """
    return or_(
        and_(StockBlock.start_date <= start, StockBlock.end_date > start),
        and_(StockBlock.start_date < end, StockBlock.end_date >= end),
        and_(StockBlock.start_date >= start, StockBlock.end_date <= end),
    )


@dataclass(frozen=True)
class Availability:
    available: int
    total_stock: int
    blocked: int

    def to_dict(self) -> dict:
        return {
            "available": self.available,
            "totalStock": self.total_stock,
            "blocked": self.blocked,
        }


class AvailabilityCalculator:
    """Read-only view over the inventory ledger."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def count_blocked(
        self,
        product_id: uuid.UUID,
        start: datetime,
        end: datetime,
        exclude_order_id: uuid.UUID | None = None,
    ) -> int:
        stmt = (
            select(func.count(StockBlock.id))
            .join(Order, StockBlock.order_id == Order.id)
            .where(
                StockBlock.product_id == product_id,
                Order.status.not_in(_INACTIVE),
                overlap_clause(start, end),
            )
        )
        if exclude_order_id is not None:
            stmt = stmt.where(StockBlock.order_id != exclude_order_id)

        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def for_product(
        self,
        product: Product,
        start: datetime,
        end: datetime,
        exclude_order_id: uuid.UUID | None = None,
    ) -> Availability:
        blocked = await self.count_blocked(product.id, start, end, exclude_order_id)
        return Availability(
            available=product.total_stock - blocked,
            total_stock=product.total_stock,
            blocked=blocked,
        )

    async def compute_available(
        self,
        product_id: str | uuid.UUID,
        start: datetime,
        end: datetime,
        exclude_order_id: str | uuid.UUID | None = None,
    ) -> Availability:
        """Free units of a product over [start, end).

        The result is not clamped: a negative ``available`` means the
        product is oversold for that range.
        """
        start, end = to_utc(start), to_utc(end)
        rule = check_date_range(start, end)
        if not rule.passed:
            raise ValidationError(rule.message, details=rule.details)

        key = as_uuid(product_id)
        product = await self.session.get(Product, key) if key else None
        if product is None:
            raise NotFoundError("Product not found")

        excluded = None
        if exclude_order_id:
            excluded = as_uuid(exclude_order_id)
            if excluded is None:
                raise ValidationError(
                    "Invalid excludeOrderId",
                    details={"excludeOrderId": str(exclude_order_id)},
                )
        availability = await self.for_product(product, start, end, excluded)
        logger.debug(
            "Availability product=%s range=%s..%s blocked=%d available=%d",
            product.id, start.isoformat(), end.isoformat(),
            availability.blocked, availability.available,
        )
        return availability


# ---------------------------------------------------------------------------
# Oversold detection (pure)
# ---------------------------------------------------------------------------

@dataclass
class HoldInterval:
    order_id: str
    start: datetime
    end: datetime


@dataclass
class OversoldWindow:
    start: datetime
    end: datetime
    peak: int
    order_ids: set[str] = field(default_factory=set)


def find_oversold_windows(
    holds: Iterable[HoldInterval], total_stock: int
) -> list[OversoldWindow]:
    """Sweep the holds of one product and return every span where the
    number of concurrent holds exceeds ``total_stock``.

    Intervals are half-open, so a hold ending at t and another starting at
    t are never concurrent. Adjacent oversold spans are merged.
    """
    holds = [h for h in holds if h.start < h.end]
    # ends sort before starts at the same instant
    events = sorted(
        [(h.start, 1, h) for h in holds] + [(h.end, 0, h) for h in holds],
        key=lambda e: (e[0], e[1]),
    )

    windows: list[OversoldWindow] = []
    active: list[HoldInterval] = []
    current: OversoldWindow | None = None
    i = 0
    while i < len(events):
        instant = events[i][0]
        while i < len(events) and events[i][0] == instant:
            _, is_start, hold = events[i]
            if is_start:
                active.append(hold)
            else:
                active.remove(hold)
            i += 1

        if len(active) > total_stock:
            if current is None:
                current = OversoldWindow(start=instant, end=instant, peak=0)
                windows.append(current)
            current.peak = max(current.peak, len(active))
            current.order_ids.update(h.order_id for h in active)
        elif current is not None:
            current.end = instant
            current = None

        if current is not None and i < len(events):
            current.end = events[i][0]

    return windows


def peak_concurrent(holds: Iterable[HoldInterval]) -> int:
    """Largest number of holds covering any single instant."""
    events = []
    for h in holds:
        if h.start < h.end:
            events.append((h.start, 1))
            events.append((h.end, -1))
    peak = current = 0
    # -1 sorts first, so touching holds never count as concurrent
    for _, delta in sorted(events):
        current += delta
        peak = max(peak, current)
    return peak
