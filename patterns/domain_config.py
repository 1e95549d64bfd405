"""Dataclass-based domain configuration pattern.

The rental store defines its thresholds, limits, and feature flags as a
frozen dataclass. This gives you:
- Type safety (IDE autocompletion, mypy checking)
- Default values (sensible out-of-the-box)
- Immutability (frozen=True prevents accidental mutation)
- Easy overrides (from env vars)
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal


# ---------------------------------------------------------------------------
# Nested config sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PricingConfig:
    """Weekly rental pricing rules."""

    weekly_price_percent_increase: Decimal = Decimal("10")  # per extra day, days 8-14
    min_order_value: Decimal = Decimal("50")
    airport_min_order: Decimal = Decimal("75")
    bundle_discount_percent: Decimal = Decimal("0")
    contact_threshold_days: int = 15  # longer rentals are quoted by hand


@dataclass(frozen=True)
class RateLimitConfig:
    """Limits for public write endpoints."""

    max_requests: int = 5
    window_seconds: int = 15 * 60
    sweep_interval_seconds: int = 60
    enabled: bool = True


# ---------------------------------------------------------------------------
# Top-level domain config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RentalConfig:
    """Complete configuration for the rental store.

    Usage::

        config = RentalConfig.from_env()
        if days >= config.pricing.contact_threshold_days:
            ...
    """

    pricing: PricingConfig = field(default_factory=PricingConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    order_number_prefix: str = "RB"
    max_items_per_order: int = 50

    @classmethod
    def default(cls) -> "RentalConfig":
        """Create config with all defaults."""
        return cls()

    @classmethod
    def from_env(cls, prefix: str = "RENTAL_") -> "RentalConfig":
        """Create config from environment variables.

        Example: RENTAL_RATE_LIMIT_MAX_REQUESTS=20
        """
        overrides = {}
        max_items = os.getenv(f"{prefix}MAX_ITEMS_PER_ORDER")
        if max_items:
            overrides["max_items_per_order"] = int(max_items)
        order_prefix = os.getenv(f"{prefix}ORDER_NUMBER_PREFIX")
        if order_prefix:
            overrides["order_number_prefix"] = order_prefix

        limits = {}
        max_requests = os.getenv(f"{prefix}RATE_LIMIT_MAX_REQUESTS")
        if max_requests:
            limits["max_requests"] = int(max_requests)
        window = os.getenv(f"{prefix}RATE_LIMIT_WINDOW_SECONDS")
        if window:
            limits["window_seconds"] = int(window)
        enabled = os.getenv(f"{prefix}RATE_LIMIT_ENABLED")
        if enabled:
            limits["enabled"] = enabled.lower() == "true"
        if limits:
            overrides["rate_limit"] = RateLimitConfig(**limits)

        return cls(**overrides)
