"""Test the order lifecycle: create, cancel, confirm, complete, amend."""
import re
import uuid

import pytest
from sqlalchemy import func, select

from core.errors import (
    InsufficientStock,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from patterns.domain_config import RentalConfig
from patterns.workflow_states import OrderStatus
from verticals.rental.availability import AvailabilityCalculator
from verticals.rental.models.db_models import Customer, StockBlock
from verticals.rental.orders import OrderService, generate_order_number

from conftest import make_product, order_payload, place_order, utc


async def holds_of(session, order_id) -> int:
    stmt = select(func.count(StockBlock.id)).where(StockBlock.order_id == uuid.UUID(order_id))
    return (await session.execute(stmt)).scalar()


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def test_order_number_format():
    assert re.fullmatch(r"RB-\d{13}-\d{4}", generate_order_number())
    assert generate_order_number("XY").startswith("XY-")


@pytest.mark.asyncio
async def test_create_returns_pending_order(session):
    tent = await make_product(session, "Tent", total_stock=2, price=40.0)
    service = OrderService(session)
    result = await service.create(order_payload([(tent, 2)]))

    assert result["success"] is True
    assert result["orderNumber"].startswith("RB-")

    order = await service.get(result["orderId"])
    assert order["status"] == "PENDING"
    assert order["totalPrice"] == 80.0
    assert order["holds"] == 2
    assert order["customerId"] is None
    assert order["items"][0]["product"]["name"] == "Tent"


@pytest.mark.asyncio
async def test_create_requires_terms(session):
    tent = await make_product(session, "Tent")
    with pytest.raises(ValidationError, match="terms"):
        await OrderService(session).create(order_payload([(tent, 1)], terms_accepted=False))


@pytest.mark.asyncio
async def test_create_rejects_empty_range(session):
    tent = await make_product(session, "Tent")
    payload = order_payload([(tent, 1)], utc(2030, 1, 10), utc(2030, 1, 10))
    with pytest.raises(ValidationError, match="before the end date"):
        await OrderService(session).create(payload)


@pytest.mark.asyncio
async def test_create_caps_line_count(session):
    tent = await make_product(session, "Tent", total_stock=10)
    service = OrderService(session, RentalConfig(max_items_per_order=2))
    with pytest.raises(ValidationError, match="at most 2"):
        await service.create(order_payload([(tent, 1), (tent, 1), (tent, 1)]))


@pytest.mark.asyncio
async def test_unknown_customer_becomes_guest(session):
    tent = await make_product(session, "Tent")
    order_id = await place_order(session, [(tent, 1)], customer_id=str(uuid.uuid4()))
    order = await OrderService(session).get(order_id)
    assert order["customerId"] is None
    assert order["customerName"] == "Sam Carter"


@pytest.mark.asyncio
async def test_orders_listed_per_customer(session):
    tent = await make_product(session, "Tent", total_stock=3)
    customer = Customer(name="Ada", email="ada@example.com")
    session.add(customer)
    await session.commit()
    customer_id = str(customer.id)

    await place_order(session, [(tent, 1)], customer_id=customer_id)
    await place_order(session, [(tent, 1)])

    service = OrderService(session)
    mine = await service.list_orders(customer_id=customer_id)
    assert len(mine) == 1
    assert mine[0]["customerId"] == customer_id
    assert len(await service.list_orders()) == 2


@pytest.mark.asyncio
async def test_list_orders_by_status(session):
    tent = await make_product(session, "Tent", total_stock=3)
    first = await place_order(session, [(tent, 1)])
    await place_order(session, [(tent, 1)])
    service = OrderService(session)
    await service.cancel(first)
    await session.commit()

    assert len(await service.list_orders(status="cancelled")) == 1
    assert len(await service.list_orders(status="PENDING")) == 1
    assert len(await service.list_orders(status="all")) == 2
    with pytest.raises(ValidationError):
        await service.list_orders(status="SHIPPED")


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_cancel_frees_only_its_own_holds(session):
    tent = await make_product(session, "Tent", total_stock=3)
    keep = await place_order(session, [(tent, 1)])
    drop = await place_order(session, [(tent, 2)])

    service = OrderService(session)
    assert await service.cancel(drop) == {"success": True}
    await session.commit()

    assert await holds_of(session, drop) == 0
    assert await holds_of(session, keep) == 1
    order = await service.get(drop)
    assert order["status"] == "CANCELLED"
    assert order["cancelledAt"] is not None

    free = await AvailabilityCalculator(session).compute_available(
        tent.id, utc(2030, 1, 10), utc(2030, 1, 15)
    )
    assert free.available == 2


@pytest.mark.asyncio
async def test_cancel_confirmed_order(session):
    tent = await make_product(session, "Tent")
    order_id = await place_order(session, [(tent, 1)])
    service = OrderService(session)
    await service.confirm(order_id)
    await service.cancel(order_id)
    await session.commit()
    assert await holds_of(session, order_id) == 0


@pytest.mark.asyncio
async def test_cancel_terminal_order_is_refused(session):
    tent = await make_product(session, "Tent")
    order_id = await place_order(session, [(tent, 1)])
    service = OrderService(session)
    await service.confirm(order_id)
    await service.complete(order_id)
    await session.commit()

    with pytest.raises(InvalidStateTransition, match="Cannot cancel order in current status"):
        await service.cancel(order_id)
    assert await holds_of(session, order_id) == 1
    assert (await service.get(order_id))["status"] == "COMPLETED"


@pytest.mark.asyncio
async def test_cancel_twice_is_refused(session):
    tent = await make_product(session, "Tent")
    order_id = await place_order(session, [(tent, 1)])
    service = OrderService(session)
    await service.cancel(order_id)
    await session.commit()

    with pytest.raises(InvalidStateTransition):
        await service.cancel(order_id)


@pytest.mark.asyncio
async def test_cancel_unknown_order(session):
    service = OrderService(session)
    with pytest.raises(NotFoundError, match="Order not found"):
        await service.cancel(str(uuid.uuid4()))
    with pytest.raises(NotFoundError):
        await service.cancel("garbage")


# ---------------------------------------------------------------------------
# Confirmation and completion
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_confirm_then_complete(session):
    tent = await make_product(session, "Tent")
    order_id = await place_order(session, [(tent, 1)])
    service = OrderService(session)

    confirmed = await service.confirm(order_id)
    assert confirmed["status"] == "CONFIRMED"
    assert confirmed["confirmedAt"] is not None
    assert confirmed["holds"] == 1

    completed = await service.complete(order_id)
    await session.commit()
    assert completed["status"] == "COMPLETED"
    assert completed["holds"] == 1


@pytest.mark.asyncio
async def test_confirm_rebooks_missing_holds(session):
    tent = await make_product(session, "Tent")
    order_id = await place_order(session, [(tent, 1)])
    service = OrderService(session)
    await service.release_holds(uuid.UUID(order_id))
    await session.commit()

    confirmed = await service.confirm(order_id)
    assert confirmed["holds"] == 1


@pytest.mark.asyncio
async def test_confirm_fails_when_stock_was_taken(session):
    tent = await make_product(session, "Tent")
    payload = order_payload([(tent, 1)])
    service = OrderService(session)
    first = (await service.create(payload))["orderId"]
    await service.release_holds(uuid.UUID(first))
    await session.commit()
    await service.create(payload)

    with pytest.raises(InsufficientStock):
        await service.confirm(first)
    assert (await service.get(first))["status"] == "PENDING"


@pytest.mark.asyncio
async def test_wrong_order_transitions(session):
    tent = await make_product(session, "Tent")
    order_id = await place_order(session, [(tent, 1)])
    service = OrderService(session)

    with pytest.raises(InvalidStateTransition, match="Only confirmed orders can be completed"):
        await service.complete(order_id)
    await service.confirm(order_id)
    with pytest.raises(InvalidStateTransition, match="Only pending orders can be confirmed"):
        await service.confirm(order_id)


@pytest.mark.asyncio
async def test_update_status_notes_and_transitions(session):
    tent = await make_product(session, "Tent")
    order_id = await place_order(session, [(tent, 1)])
    service = OrderService(session)

    noted = await service.update_status(order_id, OrderStatus.PENDING, "Call before delivery")
    assert noted["adminNotes"] == "Call before delivery"
    assert noted["status"] == "PENDING"

    cancelled = await service.update_status(order_id, OrderStatus.CANCELLED)
    await session.commit()
    assert cancelled["status"] == "CANCELLED"
    assert cancelled["holds"] == 0

    with pytest.raises(InvalidStateTransition):
        await service.update_status(order_id, OrderStatus.PENDING)


# ---------------------------------------------------------------------------
# Amendment
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_amend_replaces_lines_and_holds(session):
    tent = await make_product(session, "Tent", total_stock=2, price=30.0)
    stove = await make_product(session, "Stove", total_stock=1, price=10.0)
    order_id = await place_order(session, [(tent, 2)])
    service = OrderService(session)

    # keeping the full stock is fine: the order's own holds are excluded
    await service.amend(order_id, [
        {"product_id": str(tent.id), "quantity": 2, "price": 30.0},
        {"product_id": str(stove.id), "quantity": 1, "price": 10.0},
    ])
    order = await service.get(order_id)
    assert order["holds"] == 3
    assert order["totalPrice"] == 70.0
    assert sorted(i["quantity"] for i in order["items"]) == [1, 2]


@pytest.mark.asyncio
async def test_amend_over_stock_keeps_previous_lines(session):
    tent = await make_product(session, "Tent", total_stock=2)
    tent_id = str(tent.id)
    order_id = await place_order(session, [(tent, 1)])
    service = OrderService(session)

    with pytest.raises(InsufficientStock):
        await service.amend(order_id, [{"product_id": tent_id, "quantity": 3, "price": 20.0}])

    order = await service.get(order_id)
    assert order["holds"] == 1
    assert [i["quantity"] for i in order["items"]] == [1]


@pytest.mark.asyncio
async def test_amend_requires_pending(session):
    tent = await make_product(session, "Tent")
    tent_id = str(tent.id)
    order_id = await place_order(session, [(tent, 1)])
    service = OrderService(session)
    await service.confirm(order_id)

    with pytest.raises(ValidationError, match="Only PENDING orders can be amended"):
        await service.amend(order_id, [{"product_id": tent_id, "quantity": 1, "price": 20.0}])


@pytest.mark.asyncio
async def test_amend_caps_line_count(session):
    tent = await make_product(session, "Tent", total_stock=10)
    tent_id = str(tent.id)
    order_id = await place_order(session, [(tent, 1)])
    service = OrderService(session, RentalConfig(max_items_per_order=2))

    line = {"product_id": tent_id, "quantity": 1, "price": 20.0}
    with pytest.raises(ValidationError, match="at most 2"):
        await service.amend(order_id, [line, line, line])
    assert (await service.get(order_id))["holds"] == 1
