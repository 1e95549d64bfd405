"""Rental business rules as pure functions.

Re-exports the booking rules from the rules engine and adds the weekly
pricing model:

- Product prices are weekly prices.
- 1-7 days: the weekly price.
- 8-14 days: weekly price plus ``weekly_price_percent_increase`` percent
  of it for each day past the seventh.
- 15+ days: no online price; a representative quotes by hand.
- A delivery fee tops the order up to the minimum order value (the
  airport minimum for airport deliveries).
"""

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from patterns.domain_config import PricingConfig
from patterns.rules_engine import (
    RuleResult,
    RuleSetResult,
    check_bundle_constituent,
    check_date_range,
    check_quantity,
    check_stock_availability,
    evaluate_rules,
)

__all__ = [
    "RuleResult",
    "RuleSetResult",
    "check_bundle_constituent",
    "check_date_range",
    "check_quantity",
    "check_stock_availability",
    "evaluate_rules",
    "PriceQuote",
    "rental_days",
    "quote_price",
]

CONTACT_MESSAGE = (
    "A representative will contact you to arrange a better package "
    "for your extended rental."
)

_CENT = Decimal("0.01")


@dataclass
class PriceQuote:
    days: int
    subtotal: Decimal
    weekly_price: Decimal
    extra_days_charge: Decimal
    discount: Decimal
    bundle_discount: Decimal
    delivery_fee: Decimal
    total: Decimal
    requires_contact: bool
    message: str | None = None

    def to_dict(self) -> dict:
        def money(value: Decimal) -> float:
            return float(value.quantize(_CENT, rounding=ROUND_HALF_UP))

        return {
            "days": self.days,
            "subtotal": money(self.subtotal),
            "weeklyPrice": money(self.weekly_price),
            "extraDaysCharge": money(self.extra_days_charge),
            "discount": money(self.discount),
            "bundleDiscount": money(self.bundle_discount),
            "deliveryFee": money(self.delivery_fee),
            "total": money(self.total),
            "requiresContact": self.requires_contact,
            "message": self.message,
        }


def rental_days(start: datetime, end: datetime) -> int:
    """Whole days between two instants, rounding part days up."""
    seconds = abs((end - start).total_seconds())
    return math.ceil(seconds / 86400)


def quote_price(
    items: list[dict],
    start: datetime,
    end: datetime,
    pricing: PricingConfig,
    delivery_type: str | None = None,
) -> PriceQuote:
    """Price a cart of ``{price, quantity}`` lines for a rental range."""
    weekly = sum(
        (Decimal(str(i.get("price") or 0)) * int(i.get("quantity") or 1) for i in items),
        Decimal("0"),
    )
    zero = Decimal("0")
    days = rental_days(start, end)

    if not items or days <= 0:
        return PriceQuote(days, weekly, weekly, zero, zero, zero, zero, weekly, False)

    if days >= pricing.contact_threshold_days:
        return PriceQuote(
            days=days,
            subtotal=weekly,
            weekly_price=weekly,
            extra_days_charge=zero,
            discount=weekly,
            bundle_discount=zero,
            delivery_fee=zero,
            total=zero,
            requires_contact=True,
            message=CONTACT_MESSAGE,
        )

    extra = zero
    if days > 7:
        extra_days = min(days - 7, 7)
        extra = weekly * extra_days * pricing.weekly_price_percent_increase / 100

    # TODO: apply bundle_discount_percent once cart lines carry bundle membership
    bundle_discount = zero
    subtotal = weekly + extra - bundle_discount

    minimum = (
        pricing.airport_min_order if delivery_type == "AIRPORT" else pricing.min_order_value
    )
    delivery_fee = minimum - subtotal if subtotal < minimum else zero

    return PriceQuote(
        days=days,
        subtotal=weekly + extra,
        weekly_price=weekly,
        extra_days_charge=extra,
        discount=zero,
        bundle_discount=bundle_discount,
        delivery_fee=delivery_fee,
        total=subtotal + delivery_fee,
        requires_contact=False,
    )
