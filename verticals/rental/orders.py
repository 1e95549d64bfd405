"""Order lifecycle manager.

Owns the transaction boundary for every change that touches holds:
creation, amendment and confirmation run under ``product_locks`` and
commit before the locks are released, so two requests for the same
product are serialized from the availability check to the commit. Any
failure rolls the whole transaction back: no order, no items, no holds.
"""

import logging
import random
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.errors import NotFoundError, ValidationError
from patterns.domain_config import RentalConfig
from patterns.repository import as_uuid
from patterns.rules_engine import check_date_range, evaluate_rules
from patterns.workflow_states import OrderStatus, transition
from verticals.rental.availability import to_utc
from verticals.rental.booking import BookingLine, BookingResolver, product_locks
from verticals.rental.models.db_models import (
    Customer,
    Order,
    OrderItem,
    Product,
    StockBlock,
)

logger = logging.getLogger(__name__)


def generate_order_number(prefix: str = "RB") -> str:
    """``<prefix>-<epoch ms>-<4 random digits>``"""
    return f"{prefix}-{int(time.time() * 1000)}-{random.randint(0, 9999):04d}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    """Creates orders, moves them through their lifecycle, and releases holds."""

    def __init__(self, session: AsyncSession, config: RentalConfig | None = None):
        self.session = session
        self.config = config or RentalConfig.default()
        self.resolver = BookingResolver(session)

    # -- Loading --

    async def _load(self, order_id: str | uuid.UUID, lock: bool = False) -> Order:
        key = as_uuid(order_id)
        order = None
        if key is not None:
            stmt = (
                select(Order)
                .where(Order.id == key)
                .options(selectinload(Order.items))
                .execution_options(populate_existing=True)
            )
            if lock:
                stmt = stmt.with_for_update()
            order = (await self.session.execute(stmt)).scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order not found")
        return order

    @staticmethod
    def _lines(items: Iterable[dict[str, Any]]) -> list[BookingLine]:
        lines = []
        for item in items:
            key = as_uuid(item["product_id"])
            if key is None:
                raise ValidationError(f"Invalid product id: {item['product_id']}")
            lines.append(BookingLine(product_id=key, quantity=int(item["quantity"])))
        return lines

    def _check_line_count(self, items: list) -> None:
        if len(items) > self.config.max_items_per_order:
            raise ValidationError(
                f"An order may contain at most {self.config.max_items_per_order} lines"
            )

    async def _commit_or_rollback(self, work):
        try:
            result = await work()
            await self.session.commit()
            return result
        except Exception:
            await self.session.rollback()
            raise

    # -- Queries --

    async def get(self, order_id: str) -> dict:
        order = await self._load(order_id)
        return await self.serialize(order)

    async def serialize(self, order: Order) -> dict:
        data = order.to_dict()
        product_ids = {item.product_id for item in order.items}
        products: dict[uuid.UUID, Product] = {}
        if product_ids:
            result = await self.session.execute(
                select(Product).where(Product.id.in_(product_ids))
            )
            products = {p.id: p for p in result.scalars().all()}
        data["items"] = []
        for item in order.items:
            product = products.get(item.product_id)
            data["items"].append({
                **item.to_dict(),
                "product": {
                    "id": str(product.id),
                    "name": product.name,
                    "slug": product.slug,
                    "image": product.image,
                    "isBundle": product.is_bundle,
                } if product else None,
            })
        count = await self.session.execute(
            select(func.count(StockBlock.id)).where(StockBlock.order_id == order.id)
        )
        data["holds"] = count.scalar() or 0
        return data

    async def list_orders(
        self, status: str | None = None, customer_id: str | None = None
    ) -> list[dict]:
        stmt = (
            select(Order)
            .options(selectinload(Order.items))
            .order_by(Order.created_at.desc())
        )
        if status and status != "all":
            try:
                stmt = stmt.where(Order.status == OrderStatus(status.upper()).value)
            except ValueError:
                raise ValidationError(f"Unknown order status: {status}")
        if customer_id is not None:
            key = as_uuid(customer_id)
            if key is None:
                return []
            stmt = stmt.where(Order.customer_id == key)
        result = await self.session.execute(stmt)
        return [await self.serialize(o) for o in result.scalars().all()]

    # -- Creation --

    async def create(self, data: dict[str, Any]) -> dict:
        """Persist an order and book every line, atomically."""
        if not data.get("terms_accepted"):
            raise ValidationError("You must accept the terms and conditions")

        start = to_utc(data["rental_start_date"])
        end = to_utc(data["rental_end_date"])
        items = data["items"]
        verdict = evaluate_rules(check_date_range(start, end))
        if not verdict.all_passed:
            raise ValidationError(verdict.message)
        self._check_line_count(items)

        customer_id = None
        if data.get("customer_id"):
            key = as_uuid(data["customer_id"])
            customer = await self.session.get(Customer, key) if key else None
            if customer is not None:
                customer_id = customer.id
            else:
                logger.info("Customer %s not found, creating guest order", data["customer_id"])

        lines = self._lines(items)
        needed = await self.resolver.requirements(lines)

        async def work():
            order = Order(
                order_number=generate_order_number(self.config.order_number_prefix),
                customer_id=customer_id,
                customer_name=data["customer_name"],
                customer_email=str(data["customer_email"]),
                customer_phone=data.get("customer_phone"),
                delivery_type=getattr(data.get("delivery_type"), "value", data.get("delivery_type")),
                special_requests=data.get("special_requests"),
                rental_start_date=start,
                rental_end_date=end,
                terms_accepted=True,
                status=OrderStatus.PENDING.value,
                total_price=sum(i["price"] * i["quantity"] for i in items),
                items=[
                    OrderItem(product_id=line.product_id, quantity=line.quantity, price=i["price"])
                    for line, i in zip(lines, items)
                ],
            )
            self.session.add(order)
            await self.session.flush()
            await self.resolver.reserve(needed, start, end, order.id)
            return order

        async with product_locks.hold(needed):
            order = await self._commit_or_rollback(work)

        logger.info(
            "Created order %s (%s) with %d lines",
            order.order_number, order.id, len(lines),
        )
        return {
            "success": True,
            "orderId": str(order.id),
            "orderNumber": order.order_number,
        }

    # -- Lifecycle transitions --

    async def release_holds(self, order_id: uuid.UUID) -> int:
        result = await self.session.execute(
            delete(StockBlock).where(StockBlock.order_id == order_id)
        )
        return result.rowcount or 0

    async def cancel(self, order_id: str, actor: str = "customer") -> dict:
        """Cancel a PENDING or CONFIRMED order and free its holds."""
        order = await self._load(order_id, lock=True)
        record = transition(str(order.id), order.status, OrderStatus.CANCELLED, actor=actor)

        order.status = OrderStatus.CANCELLED.value
        order.cancelled_at = _now()
        released = await self.release_holds(order.id)
        await self.session.flush()
        logger.info(
            "Order %s %s -> %s by %s, released %d holds",
            order.id, record.from_state, record.to_state, actor, released,
        )
        return {"success": True}

    async def confirm(self, order_id: str, actor: str = "admin") -> dict:
        """PENDING -> CONFIRMED. Re-books the order if it has no holds."""
        order = await self._load(order_id)
        transition(str(order.id), order.status, OrderStatus.CONFIRMED, actor=actor)

        lines = [BookingLine(i.product_id, i.quantity) for i in order.items]
        needed = await self.resolver.requirements(lines)

        async def work():
            locked = await self._load(order.id, lock=True)
            transition(str(locked.id), locked.status, OrderStatus.CONFIRMED, actor=actor)
            count = await self.session.execute(
                select(func.count(StockBlock.id)).where(StockBlock.order_id == locked.id)
            )
            if not count.scalar():
                logger.warning("Order %s had no holds at confirmation, re-booking", locked.id)
                await self.resolver.reserve(
                    needed, locked.rental_start_date, locked.rental_end_date, locked.id
                )
            locked.status = OrderStatus.CONFIRMED.value
            locked.confirmed_at = _now()
            await self.session.flush()
            return locked

        async with product_locks.hold(needed):
            order = await self._commit_or_rollback(work)
        logger.info("Order %s confirmed by %s", order.id, actor)
        return await self.serialize(order)

    async def complete(self, order_id: str, actor: str = "admin") -> dict:
        """CONFIRMED -> COMPLETED. Holds stay; completed orders never block."""
        order = await self._load(order_id, lock=True)
        transition(str(order.id), order.status, OrderStatus.COMPLETED, actor=actor)
        order.status = OrderStatus.COMPLETED.value
        order.completed_at = _now()
        await self.session.flush()
        logger.info("Order %s completed by %s", order.id, actor)
        return await self.serialize(order)

    async def update_status(
        self, order_id: str, status: OrderStatus, admin_notes: str | None = None
    ) -> dict:
        """Admin status change; the same status only updates the notes."""
        order = await self._load(order_id)
        status = OrderStatus(status)

        if admin_notes is not None:
            order.admin_notes = admin_notes
            await self.session.flush()

        if status.value == order.status:
            return await self.serialize(order)
        if status == OrderStatus.CANCELLED:
            await self.cancel(order_id, actor="admin")
            return await self.serialize(await self._load(order_id))
        if status == OrderStatus.CONFIRMED:
            return await self.confirm(order_id)
        if status == OrderStatus.COMPLETED:
            return await self.complete(order_id)

        # Any other target (e.g. back to PENDING) is refused by the workflow.
        transition(str(order.id), order.status, status, actor="admin")
        return await self.serialize(order)

    # -- Amendment --

    async def amend(self, order_id: str, items: list[dict[str, Any]]) -> dict:
        """Replace a PENDING order's lines and holds, all-or-nothing.

        The new lines are checked with the order's own holds excluded, so
        keeping the same quantities always succeeds.
        """
        order = await self._load(order_id)
        if order.status != OrderStatus.PENDING.value:
            raise ValidationError("Only PENDING orders can be amended")

        self._check_line_count(items)

        lines = self._lines(items)
        needed = await self.resolver.requirements(lines)
        old = await self.resolver.requirements(
            [BookingLine(i.product_id, i.quantity) for i in order.items]
        )

        async def work():
            locked = await self._load(order.id, lock=True)
            if locked.status != OrderStatus.PENDING.value:
                raise ValidationError("Only PENDING orders can be amended")

            await self.session.execute(delete(OrderItem).where(OrderItem.order_id == locked.id))
            await self.release_holds(locked.id)
            await self.resolver.reserve(
                needed,
                locked.rental_start_date,
                locked.rental_end_date,
                locked.id,
                exclude_order_id=locked.id,
            )
            for line, item in zip(lines, items):
                self.session.add(OrderItem(
                    order_id=locked.id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    price=item["price"],
                ))
            locked.total_price = sum(i["price"] * i["quantity"] for i in items)
            await self.session.flush()
            return locked

        async with product_locks.hold(set(needed) | set(old)):
            await self._commit_or_rollback(work)

        logger.info("Order %s amended to %d lines", order.id, len(lines))
        return {"success": True}
