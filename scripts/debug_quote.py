import json
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from pool_pricing.data.catalog_loader import load_catalog, catalog_warnings
from pool_pricing.engine.models import Configuration
from pool_pricing.engine.price_calculator import format_price
from pool_pricing.engine.quote_generator import QuoteGenerator, SkeletonAddonOptions


def debug(config_path=None):
    catalog = load_catalog()

    print("Loaded catalog:")
    print(f"  {len(catalog.products)} products, {len(catalog.mapping_rules)} rules")
    for warning in catalog_warnings(catalog):
        print(f"  ⚠️  {warning}")

    if config_path:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    else:
        # Sharp 8×4 skimmer with 8mm walls
        data = {
            "pool_shape": "rectangle_sharp",
            "pool_type": "skimmer",
            "dimensions": {"width": 4, "length": 8, "depth": 1.5},
            "stairs": "roman",
            "technology": "shaft",
            "lighting": "led",
            "heating": "heat_pump",
        }

    config = Configuration.from_dict(data)
    result = QuoteGenerator(catalog).generate(config, SkeletonAddonOptions(thickness_8mm=True))

    print("\n--- Items ---")
    for item in result.items:
        print(f"{item.sort_order:>2} [{item.source}] {item.name}: "
              f"{item.quantity:g} × {format_price(item.unit_price)} = {format_price(item.total_price)}")
        for step in item.trace:
            print(f"      {step.step}: {step.description}" + (f" = {step.value}" if step.value else ""))

    print(f"\nSubtotal: {format_price(result.subtotal)}")
    print("\n--- Trace ---")
    print(result.get_trace_text())
    if result.warnings:
        print("\n--- Warnings ---")
        for warning in result.warnings:
            print(f"  {warning}")

if __name__ == "__main__":
    debug(sys.argv[1] if len(sys.argv) > 1 else None)
