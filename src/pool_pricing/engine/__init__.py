"""Engine subpackage - geometry, pricing and quote item generation."""
from .quote_generator import QuoteGenerator, SkeletonAddonOptions
from .catalog_resolver import resolve_all
from .price_calculator import calculate_price, PriceContext, CalculatedPrice
from .models import (
    CatalogSnapshot,
    Configuration,
    PoolDimensions,
    Product,
    ProductMappingRule,
    SetAddon,
    GeneratedQuoteItem,
    GenerationResult,
)

__all__ = [
    'QuoteGenerator', 'SkeletonAddonOptions', 'resolve_all', 'calculate_price',
    'PriceContext', 'CalculatedPrice', 'CatalogSnapshot', 'Configuration',
    'PoolDimensions', 'Product', 'ProductMappingRule', 'SetAddon',
    'GeneratedQuoteItem', 'GenerationResult',
]
