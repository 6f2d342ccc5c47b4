"""
Price Calculator - effective price of a single catalog product.

Resolution per price_type:
- fixed: unit_price as stored
- percentage: percentage of a reference product's resolved price,
  raised to price_minimum when set
- surface_coefficient: coefficient × pool surface (m²) or perimeter (bm)

Every branch falls back to unit_price when its inputs are missing, so
calculate_price always returns a number and never raises.
"""
import math
from dataclasses import dataclass, field
from typing import Optional

from .geometry import calculate_surface, calculate_perimeter
from .models import (
    Product,
    PoolDimensions,
    PRICE_FIXED,
    PRICE_PERCENTAGE,
    PRICE_SURFACE_COEFFICIENT,
    UNIT_BM,
    UNIT_M2,
    normalize_price_type,
)


@dataclass
class PriceContext:
    """Reference prices and pool measurements available while pricing."""
    product_prices: dict[str, float] = field(default_factory=dict)
    pool_surface: Optional[float] = None
    pool_perimeter: Optional[float] = None
    pool_shape: Optional[str] = None
    pool_dimensions: Optional[PoolDimensions] = None


@dataclass
class CalculatedPrice:
    """A product price together with how it was derived."""
    price: float
    price_type: str
    required_surcharge_ids: list[str] = field(default_factory=list)
    reference_price: Optional[float] = None
    percentage_applied: Optional[float] = None
    minimum_applied: bool = False
    measurement_used: Optional[float] = None
    measurement_unit: Optional[str] = None
    coefficient_used: Optional[float] = None
    fallback_reason: Optional[str] = None

    @property
    def fell_back(self) -> bool:
        return self.fallback_reason is not None


def _measurement(unit: str, context: PriceContext) -> Optional[float]:
    if unit == UNIT_BM:
        measurement = context.pool_perimeter
        if not measurement and context.pool_shape and context.pool_dimensions:
            measurement = calculate_perimeter(context.pool_shape, context.pool_dimensions)
    else:
        measurement = context.pool_surface
        if not measurement and context.pool_shape and context.pool_dimensions:
            measurement = calculate_surface(context.pool_shape, context.pool_dimensions)
    return measurement or None


def calculate_price(product: Product, context: PriceContext) -> CalculatedPrice:
    """
    Calculate the price of a product based on its price_type.

    Args:
        product: Catalog product
        context: Reference prices and pool measurements

    Returns:
        CalculatedPrice with derivation metadata
    """
    price_type = normalize_price_type(product.price_type)
    result = CalculatedPrice(
        price=product.unit_price,
        price_type=price_type,
        required_surcharge_ids=list(product.required_surcharge_ids or []),
    )

    if price_type == PRICE_PERCENTAGE:
        if not product.price_reference_product_id or not product.price_percentage:
            result.fallback_reason = "percentage pricing not configured"
            return result

        reference_price = context.product_prices.get(product.price_reference_product_id)
        if reference_price is None:
            result.fallback_reason = f"reference product {product.price_reference_product_id} has no price"
            return result

        result.reference_price = reference_price
        result.percentage_applied = product.price_percentage
        price = reference_price * (product.price_percentage / 100)

        if product.price_minimum is not None and price < product.price_minimum:
            price = product.price_minimum
            result.minimum_applied = True

        result.price = price
        return result

    if price_type == PRICE_SURFACE_COEFFICIENT:
        if not product.price_coefficient:
            result.fallback_reason = "coefficient not configured"
            return result

        unit = product.coefficient_unit or UNIT_M2
        measurement = _measurement(unit, context)
        if measurement is None:
            result.fallback_reason = "pool measurement unavailable"
            return result

        result.measurement_used = measurement
        result.measurement_unit = unit
        result.coefficient_used = product.price_coefficient
        result.price = measurement * product.price_coefficient
        return result

    # fixed, and anything unrecognised, is the stored unit price
    if price_type != PRICE_FIXED:
        result.fallback_reason = f"unknown price type '{price_type}'"
    return result


def build_price_context(
    products: list[Product],
    pool_shape: Optional[str] = None,
    pool_dimensions: Optional[PoolDimensions] = None,
) -> PriceContext:
    """Seed a context with all fixed prices and the pool measurements."""
    context = PriceContext(pool_shape=pool_shape, pool_dimensions=pool_dimensions)

    for product in products:
        if normalize_price_type(product.price_type) == PRICE_FIXED:
            context.product_prices[product.id] = product.unit_price

    if pool_shape and pool_dimensions:
        context.pool_surface = calculate_surface(pool_shape, pool_dimensions)
        context.pool_perimeter = calculate_perimeter(pool_shape, pool_dimensions)

    return context


def round_price(price: float) -> int:
    """Round to whole CZK, halves up."""
    return int(math.floor(price + 0.5))


def format_price_number(price: float) -> str:
    """Whole-CZK amount with Czech digit grouping, e.g. "12 345"."""
    return f"{round_price(price):,}".replace(",", " ")


def format_price(price: float) -> str:
    """Czech currency format, e.g. "12 345 Kč"."""
    return f"{format_price_number(price)} Kč"


def describe_price(calculated: CalculatedPrice) -> str:
    """Human-readable description of how a price was calculated."""
    if calculated.price_type == PRICE_FIXED:
        return "Fixní cena"

    if calculated.price_type == PRICE_PERCENTAGE:
        if calculated.reference_price is not None and calculated.percentage_applied:
            desc = f"{calculated.percentage_applied:g}% z {format_price(calculated.reference_price)}"
            if calculated.minimum_applied:
                desc += " (použito minimum)"
            return desc
        return "Procentuální příplatek"

    if calculated.price_type == PRICE_SURFACE_COEFFICIENT:
        if calculated.measurement_used and calculated.coefficient_used:
            unit_label = 'bm' if calculated.measurement_unit == UNIT_BM else 'm²'
            return (
                f"{calculated.measurement_used:.1f} {unit_label} × "
                f"{format_price_number(calculated.coefficient_used)} Kč"
            )
        return "Koeficient × měření"

    return "Neznámý typ"
