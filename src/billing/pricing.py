"""Subscription tiers and their prices."""

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class PlanPricing:
    """Price list entry for one tier (prices in whole dollars)."""
    channel: int
    month_price: int
    year_price: int

    def price_for(self, period: str) -> int:
        return self.month_price if period.upper() == "MONTHLY" else self.year_price

    def unit_amount(self, period: str) -> int:
        """Price for the period in cents, as Stripe expects it."""
        return self.price_for(period) * 100


PRICING: Dict[str, PlanPricing] = {
    "FREE": PlanPricing(channel=0, month_price=0, year_price=0),
    "STANDARD": PlanPricing(channel=5, month_price=30, year_price=288),
    "PRO": PlanPricing(channel=8, month_price=40, year_price=384),
}

# Lookup keys of the prices shown on the pricing page
PACKAGE_LOOKUP_KEYS = [
    "standard_monthly",
    "standard_yearly",
    "pro_monthly",
    "pro_yearly",
]


def get_plan(billing: str) -> PlanPricing:
    """Get the price list entry of a tier, raising ValueError for unknown tiers."""
    try:
        return PRICING[billing.upper()]
    except KeyError:
        raise ValueError(f"Unknown billing tier: {billing}")


def recurring_interval(period: str) -> str:
    """Map a billing period to a Stripe recurring interval."""
    return "month" if period.upper() == "MONTHLY" else "year"
