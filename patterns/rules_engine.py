"""Pure-function rules engine pattern.

Rules are stateless functions: (inputs) -> RuleResult.
No database, no side effects. The booking path evaluates these before it
writes anything, and turns failed results into domain errors.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class RuleResult:
    """Outcome of a single rule evaluation."""

    passed: bool
    rule_name: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class RuleSetResult:
    """Aggregate outcome of multiple rules."""

    all_passed: bool
    results: list[RuleResult]
    failed: list[RuleResult] = field(default_factory=list)

    def __post_init__(self):
        self.failed = [r for r in self.results if not r.passed]
        self.all_passed = len(self.failed) == 0

    @property
    def message(self) -> str:
        return "; ".join(r.message for r in self.failed)


# ---------------------------------------------------------------------------
# Rental rules
# ---------------------------------------------------------------------------

def check_date_range(start: datetime, end: datetime) -> RuleResult:
    """A rental range must be non-empty: start strictly before end."""
    passed = start < end
    return RuleResult(
        passed=passed,
        rule_name="date_range",
        message=(
            "Valid rental range"
            if passed
            else "Rental start date must be before the end date"
        ),
        details={"start": start.isoformat(), "end": end.isoformat()},
    )


def check_quantity(quantity: int) -> RuleResult:
    passed = quantity >= 1
    return RuleResult(
        passed=passed,
        rule_name="quantity",
        message="Valid quantity" if passed else "Quantity must be at least 1",
        details={"quantity": quantity},
    )


def check_stock_availability(available: int, quantity: int) -> RuleResult:
    """Check if enough free units remain for the requested quantity."""
    passed = available >= quantity
    return RuleResult(
        passed=passed,
        rule_name="stock_availability",
        message=(
            f"In stock: {available} available"
            if passed
            else f"Insufficient stock: {max(available, 0)} available, {quantity} requested"
        ),
        details={"available": available, "requested": quantity},
    )


def check_bundle_constituent(
    bundle_id: Any, product_id: Any, product_name: str, is_bundle: bool
) -> RuleResult:
    """A bundle may only contain plain products, never itself or another bundle."""
    is_self = str(product_id) == str(bundle_id)
    passed = not (is_self or is_bundle)

    if is_self:
        message = "A bundle cannot contain itself"
    elif is_bundle:
        message = f"Bundle cannot include another bundle ({product_name})"
    else:
        message = "Valid constituent"

    return RuleResult(
        passed=passed,
        rule_name="bundle_constituent",
        message=message,
        details={"product_id": str(product_id), "is_bundle": is_bundle},
    )


# ---------------------------------------------------------------------------
# Rule composition
# ---------------------------------------------------------------------------

def evaluate_rules(*rules: RuleResult) -> RuleSetResult:
    """Compose multiple rule results into a single aggregate.

    Example::

        result = evaluate_rules(
            check_date_range(start, end),
            check_quantity(qty),
        )
        if not result.all_passed:
            raise ValidationError(result.message)
    """
    return RuleSetResult(
        all_passed=all(r.passed for r in rules),
        results=list(rules),
    )
