"""
Quote and variant totals.

total = subtotal - subtotal * discount_percent / 100 - discount_amount,
never below zero. Subtotals are sums of stored item total_price values.
"""
from dataclasses import dataclass
from typing import Iterable, Optional

from .models import QuoteItem, QuoteItemVariant, QuoteVariant


@dataclass
class Totals:
    subtotal: float
    discount_percent: float
    discount_amount: float
    discount_total: float
    total_price: float


def clamp_discount(discount_percent: Optional[float], discount_amount: Optional[float]) -> tuple[float, float]:
    """Negative inputs become 0; percent is capped at 100."""
    percent = max(0.0, float(discount_percent or 0))
    amount = max(0.0, float(discount_amount or 0))
    return min(percent, 100.0), amount


def calculate_total(
    subtotal: float,
    discount_percent: Optional[float] = 0,
    discount_amount: Optional[float] = 0,
) -> Totals:
    percent, amount = clamp_discount(discount_percent, discount_amount)
    percent_discount = subtotal * percent / 100
    total = max(0.0, subtotal - percent_discount - amount)
    return Totals(
        subtotal=subtotal,
        discount_percent=percent,
        discount_amount=amount,
        discount_total=subtotal - total,
        total_price=total,
    )


def items_subtotal(items: Iterable[QuoteItem]) -> float:
    return sum(item.total_price or 0 for item in items)


def calculate_quote_totals(
    items: Iterable[QuoteItem],
    discount_percent: Optional[float] = 0,
    discount_amount: Optional[float] = 0,
) -> Totals:
    return calculate_total(items_subtotal(items), discount_percent, discount_amount)


def variant_items(
    variant: QuoteVariant,
    items: Iterable[QuoteItem],
    links: Iterable[QuoteItemVariant],
) -> list[QuoteItem]:
    """Items linked to the variant, in sort order."""
    linked = {link.quote_item_id for link in links if link.variant_id == variant.id}
    return sorted((i for i in items if i.id in linked), key=lambda i: i.sort_order)


def calculate_variant_totals(
    variant: QuoteVariant,
    items: Iterable[QuoteItem],
    links: Iterable[QuoteItemVariant],
) -> Totals:
    return calculate_quote_totals(
        variant_items(variant, items, links),
        variant.discount_percent,
        variant.discount_amount,
    )


def needs_comparison(variants: list[QuoteVariant]) -> bool:
    """A side-by-side comparison only makes sense for two or more variants."""
    return len(variants) > 1
