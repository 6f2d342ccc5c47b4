"""
Catalog Price Resolver - prices a whole product set at once.

Resolution order:
1. Seed the reference map with every fixed product's unit_price
2. Surface-coefficient products (depend on geometry only), added to the map
3. Fixed products, for a uniform CalculatedPrice envelope
4. Percentage products, reading whatever the map holds at that point

This is a single pass, not a topological sort. A percentage product that
references another percentage product sees that reference only if it was
resolved earlier in list order. Chained percentages are unsupported;
find_percentage_chains reports them so the catalog can be corrected.
"""
import logging
from typing import Optional

from .models import (
    Product,
    PoolDimensions,
    PRICE_FIXED,
    PRICE_PERCENTAGE,
    PRICE_SURFACE_COEFFICIENT,
    normalize_price_type,
)
from .price_calculator import CalculatedPrice, PriceContext, build_price_context, calculate_price

logger = logging.getLogger(__name__)


def resolve_all(
    products: list[Product],
    pool_shape: Optional[str] = None,
    pool_dimensions: Optional[PoolDimensions] = None,
    context: Optional[PriceContext] = None,
) -> dict[str, CalculatedPrice]:
    """
    Calculate prices for all products, handling reference dependencies.

    Args:
        products: Catalog snapshot
        pool_shape: Shape used for coefficient pricing
        pool_dimensions: Dimensions used for coefficient pricing
        context: Optional pre-built context; it is filled in place

    Returns:
        Map of product id → CalculatedPrice
    """
    if context is None:
        context = build_price_context(products, pool_shape, pool_dimensions)
    results: dict[str, CalculatedPrice] = {}

    by_type: dict[str, list[Product]] = {
        PRICE_SURFACE_COEFFICIENT: [],
        PRICE_FIXED: [],
        PRICE_PERCENTAGE: [],
    }
    for product in products:
        price_type = normalize_price_type(product.price_type)
        by_type.get(price_type, by_type[PRICE_FIXED]).append(product)

    for product in by_type[PRICE_SURFACE_COEFFICIENT]:
        calculated = calculate_price(product, context)
        results[product.id] = calculated
        context.product_prices[product.id] = calculated.price

    for product in by_type[PRICE_FIXED]:
        results[product.id] = calculate_price(product, context)

    for product in by_type[PRICE_PERCENTAGE]:
        calculated = calculate_price(product, context)
        results[product.id] = calculated
        context.product_prices[product.id] = calculated.price

    fallbacks = [pid for pid, c in results.items() if c.fell_back]
    if fallbacks:
        logger.debug("Resolved %d products, %d fell back to unit_price", len(results), len(fallbacks))

    return results


def find_percentage_chains(products: list[Product]) -> list[tuple[str, str]]:
    """
    Percentage products whose reference is itself percentage-priced.

    Returns (product_id, reference_id) pairs in catalog order.
    """
    percentage_ids = {
        p.id for p in products
        if normalize_price_type(p.price_type) == PRICE_PERCENTAGE
    }
    chains = []
    for product in products:
        if product.id not in percentage_ids:
            continue
        ref = product.price_reference_product_id
        if ref and ref in percentage_ids:
            chains.append((product.id, ref))
    return chains
