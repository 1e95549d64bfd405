"""Test the availability calculator and oversold detection."""
from datetime import datetime, timedelta, timezone

import pytest

from core.errors import NotFoundError, ValidationError
from verticals.rental.availability import (
    AvailabilityCalculator,
    HoldInterval,
    find_oversold_windows,
    peak_concurrent,
    to_utc,
)
from verticals.rental.orders import OrderService

from conftest import make_product, place_order, utc


@pytest.mark.asyncio
async def test_available_is_total_minus_overlapping_holds(session):
    tent = await make_product(session, "Tent", total_stock=5)
    await place_order(session, [(tent, 2)], utc(2030, 1, 10), utc(2030, 1, 15))

    result = await AvailabilityCalculator(session).compute_available(
        tent.id, utc(2030, 1, 12), utc(2030, 1, 20)
    )
    assert result.total_stock == 5
    assert result.blocked == 2
    assert result.available == 3


@pytest.mark.asyncio
async def test_touching_ranges_do_not_block(session):
    kayak = await make_product(session, "Kayak", total_stock=1)
    await place_order(session, [(kayak, 1)], utc(2030, 1, 10), utc(2030, 1, 15))
    calc = AvailabilityCalculator(session)

    after = await calc.compute_available(kayak.id, utc(2030, 1, 15), utc(2030, 1, 20))
    before = await calc.compute_available(kayak.id, utc(2030, 1, 5), utc(2030, 1, 10))
    assert after.available == 1
    assert before.available == 1


@pytest.mark.asyncio
async def test_every_overlap_shape_blocks(session):
    bike = await make_product(session, "Bike", total_stock=1)
    await place_order(session, [(bike, 1)], utc(2030, 1, 10), utc(2030, 1, 15))
    calc = AvailabilityCalculator(session)

    ranges = [
        (utc(2030, 1, 8), utc(2030, 1, 11)),   # covers the hold start
        (utc(2030, 1, 14), utc(2030, 1, 18)),  # covers the hold end
        (utc(2030, 1, 11), utc(2030, 1, 12)),  # inside the hold
        (utc(2030, 1, 1), utc(2030, 1, 30)),   # contains the hold
        (utc(2030, 1, 10), utc(2030, 1, 15)),  # identical
    ]
    for start, end in ranges:
        result = await calc.compute_available(bike.id, start, end)
        assert result.available == 0, (start, end)


@pytest.mark.asyncio
async def test_exclude_order_ignores_its_holds(session):
    sup = await make_product(session, "Paddle Board", total_stock=2)
    order_id = await place_order(session, [(sup, 2)])
    calc = AvailabilityCalculator(session)

    blocked = await calc.compute_available(sup.id, utc(2030, 1, 10), utc(2030, 1, 15))
    excluded = await calc.compute_available(
        sup.id, utc(2030, 1, 10), utc(2030, 1, 15), exclude_order_id=order_id
    )
    assert blocked.available == 0
    assert excluded.available == 2


@pytest.mark.asyncio
async def test_malformed_exclude_order_id_is_rejected(session):
    sup = await make_product(session, "Paddle Board", total_stock=2)
    with pytest.raises(ValidationError, match="Invalid excludeOrderId"):
        await AvailabilityCalculator(session).compute_available(
            sup.id, utc(2030, 1, 10), utc(2030, 1, 15), exclude_order_id="not-a-uuid"
        )


@pytest.mark.asyncio
async def test_cancelled_and_completed_orders_do_not_block(session):
    cot = await make_product(session, "Travel Cot", total_stock=1)
    first = await place_order(session, [(cot, 1)])
    service = OrderService(session)
    await service.cancel(first)
    await session.commit()

    second = await place_order(session, [(cot, 1)])
    await service.confirm(second)
    await service.complete(second)
    await session.commit()

    result = await AvailabilityCalculator(session).compute_available(
        cot.id, utc(2030, 1, 10), utc(2030, 1, 15)
    )
    assert result.available == 1


@pytest.mark.asyncio
async def test_repeated_queries_agree(session):
    chair = await make_product(session, "High Chair", total_stock=3)
    await place_order(session, [(chair, 1)])
    calc = AvailabilityCalculator(session)

    first = await calc.compute_available(chair.id, utc(2030, 1, 1), utc(2030, 2, 1))
    second = await calc.compute_available(chair.id, utc(2030, 1, 1), utc(2030, 2, 1))
    assert first == second


@pytest.mark.asyncio
async def test_unknown_product_is_not_found(session):
    calc = AvailabilityCalculator(session)
    with pytest.raises(NotFoundError, match="Product not found"):
        await calc.compute_available("not-a-uuid", utc(2030, 1, 1), utc(2030, 1, 2))


@pytest.mark.asyncio
async def test_empty_range_is_rejected(session):
    stroller = await make_product(session, "Stroller")
    calc = AvailabilityCalculator(session)
    with pytest.raises(ValidationError):
        await calc.compute_available(stroller.id, utc(2030, 1, 5), utc(2030, 1, 5))
    with pytest.raises(ValidationError):
        await calc.compute_available(stroller.id, utc(2030, 1, 6), utc(2030, 1, 5))


def test_to_utc_normalises_offsets():
    local = datetime(2030, 1, 10, 12, tzinfo=timezone(timedelta(hours=2)))
    assert to_utc(local) == datetime(2030, 1, 10, 10, tzinfo=timezone.utc)
    assert to_utc(datetime(2030, 1, 10)).tzinfo == timezone.utc


# ---------------------------------------------------------------------------
# Oversold sweep
# ---------------------------------------------------------------------------

def test_no_oversold_window_within_stock():
    holds = [
        HoldInterval("a", utc(2030, 1, 1), utc(2030, 1, 5)),
        HoldInterval("b", utc(2030, 1, 3), utc(2030, 1, 8)),
    ]
    assert find_oversold_windows(holds, total_stock=2) == []


def test_oversold_window_spans_the_overlap():
    holds = [
        HoldInterval("a", utc(2030, 1, 1), utc(2030, 1, 5)),
        HoldInterval("b", utc(2030, 1, 3), utc(2030, 1, 8)),
    ]
    windows = find_oversold_windows(holds, total_stock=1)
    assert len(windows) == 1
    assert windows[0].start == utc(2030, 1, 3)
    assert windows[0].end == utc(2030, 1, 5)
    assert windows[0].peak == 2
    assert windows[0].order_ids == {"a", "b"}


def test_back_to_back_holds_are_not_oversold():
    holds = [
        HoldInterval("a", utc(2030, 1, 1), utc(2030, 1, 5)),
        HoldInterval("b", utc(2030, 1, 5), utc(2030, 1, 8)),
    ]
    assert find_oversold_windows(holds, total_stock=1) == []
    assert peak_concurrent(holds) == 1


def test_peak_concurrent():
    holds = [
        HoldInterval("a", utc(2030, 1, 1), utc(2030, 1, 10)),
        HoldInterval("b", utc(2030, 1, 2), utc(2030, 1, 4)),
        HoldInterval("c", utc(2030, 1, 3), utc(2030, 1, 6)),
        HoldInterval("d", utc(2030, 1, 7), utc(2030, 1, 9)),
    ]
    assert peak_concurrent(holds) == 3
    assert peak_concurrent([]) == 0
