"""Checkout line items for marketplace orders."""

from typing import Any, Dict, List, Sequence


def order_total(order_items: Sequence[Dict[str, Any]]) -> float:
    """Sum of price * quantity over the order items."""
    return sum(item["price"] * item["quantity"] for item in order_items)


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


def _fee_label(service_name: str, fee_amount: float) -> str:
    return f"{service_name.capitalize()} Fee ({round(fee_amount * 100, 2):g}%)"


def build_line_items(
    order_items: Sequence[Dict[str, Any]],
    fee_amount: float,
    service_name: str = "gitroom",
    currency: str = "usd"
) -> List[Dict[str, Any]]:
    """
    Build Stripe checkout line items for an order plus the platform fee.

    The fee is charged on top of the order total as its own line item.
    Item names are capitalized; items with no price are labelled as
    platform items.

    Args:
        order_items: Dicts with integration_type, quantity and price (dollars)
        fee_amount: Fee as a fraction of the order total
        service_name: Brand used in the fee label
        currency: ISO currency code

    Returns:
        List of line items with inline price_data
    """
    fee_item = {
        "integration_type": _fee_label(service_name, fee_amount),
        "quantity": 1,
        "price": order_total(order_items) * fee_amount,
    }

    return [
        {
            "price_data": {
                "currency": currency,
                "product_data": {
                    "name": ("" if item["price"] else "Platform: ")
                    + item["integration_type"].capitalize(),
                },
                "unit_amount": to_cents(item["price"]),
            },
            "quantity": item["quantity"],
        }
        for item in [*order_items, fee_item]
    ]
