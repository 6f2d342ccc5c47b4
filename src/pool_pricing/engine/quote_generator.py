"""
Quote Generator - Turns a pool configuration into priced quote lines.

Line order is part of the contract (the pool always comes first):
1. Pool set for the exact dimensions, or the individual skeleton
2. Skeleton addons merged into the skeleton line (sharp corners, 8mm)
   or set addons auto-attached by their trigger
3. Accessories from mapping rules, in configurator field order
4. Required surcharges of everything added so far
5. Delivery line when nothing in the quote covers it

Every price goes through the catalog resolver / price calculator so that
percentage and coefficient products resolve against the chosen pool.
"""
import logging
from dataclasses import dataclass, replace
from typing import Optional

from ..config.settings import get_settings, Settings
from .addon_triggers import effective_trigger, select_set_addons
from .catalog_resolver import resolve_all
from .geometry import format_surface, format_dimensions, format_number
from .models import (
    CatalogSnapshot,
    Configuration,
    GeneratedQuoteItem,
    GenerationResult,
    Product,
    CIRCLE,
    CONFIG_FIELDS,
    RECTANGLE_SHARP,
    RECTANGULAR_SHAPES,
    PRICE_PERCENTAGE,
    PRICE_SURFACE_COEFFICIENT,
    UNIT_M2,
)
from .prerequisites import collect_required_surcharges
from .price_calculator import PriceContext, build_price_context, calculate_price, describe_price, round_price
from .rule_matcher import RuleMatcher
from .skeleton_code import build_pool_product_code

logger = logging.getLogger(__name__)

# Legacy product categories shown under their current quote category
LEGACY_CATEGORY_MAP = {
    'bazeny': 'skelety',
    'prislusenstvi': 'jine',
}

DELIVERY_CATEGORY = 'doprava'


def normalize_category(category: str) -> str:
    return LEGACY_CATEGORY_MAP.get(category, category)


def set_dimension_key(config: Configuration) -> Optional[str]:
    """Key into the set dimension map, "<length>-<width>"; rectangles only."""
    dims = config.dimensions
    if config.pool_shape not in RECTANGULAR_SHAPES or not dims.length or not dims.width:
        return None
    return f"{format_number(dims.length)}-{format_number(dims.width)}"


@dataclass
class SkeletonAddonOptions:
    """
    Addons merged into an individually priced skeleton.

    sharp_corners=None means "follow the shape": selected for
    rectangle_sharp pools. Choosing 8mm on a rectangle selects sharp
    corners as well; the reverse does not hold.
    """
    sharp_corners: Optional[bool] = None
    thickness_8mm: bool = False


class QuoteGenerator:
    """
    Generates quote items for a configuration against one catalog snapshot.

    The set dimension map comes with the catalog snapshot unless passed
    explicitly; the generator holds no business data of its own.
    """

    def __init__(
        self,
        catalog: CatalogSnapshot,
        set_dimension_map: Optional[dict[str, str]] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.catalog = catalog
        self.products = catalog.active_products()
        self.products_by_id = {p.id: p for p in self.products}
        self.products_by_code = {}
        for product in self.products:
            if product.code and product.code not in self.products_by_code:
                self.products_by_code[product.code] = product
        if set_dimension_map is None:
            set_dimension_map = catalog.set_dimension_map
        self.set_dimension_map = dict(set_dimension_map or {})
        self.rule_matcher = RuleMatcher(catalog.mapping_rules)

    def find_set_product(self, config: Configuration) -> Optional[Product]:
        """Pre-built set for the configured dimensions, if one is mapped."""
        key = set_dimension_key(config)
        if key is None:
            return None
        code = self.set_dimension_map.get(key)
        if not code:
            return None
        product = self.products_by_code.get(code)
        if product is None:
            logger.warning("Set code %s mapped for %s but no active product has it", code, key)
        return product

    def find_skeleton_product(self, config: Configuration) -> Optional[Product]:
        return self.products_by_code.get(build_pool_product_code(config))

    def generate(
        self,
        config: Configuration,
        skeleton_addons: Optional[SkeletonAddonOptions] = None,
    ) -> GenerationResult:
        """
        Generate quote items with full traceability.

        Args:
            config: Configuration snapshot
            skeleton_addons: Addon choice for an individually priced skeleton

        Returns:
            GenerationResult with ordered items, subtotal, trace and warnings
        """
        result = GenerationResult()
        options = skeleton_addons or SkeletonAddonOptions()

        context = build_price_context(self.products, config.pool_shape, config.dimensions)
        resolved = resolve_all(self.products, context=context)
        result.add_trace("Geometry", "Pool surface", format_surface(context.pool_surface or 0))

        added_products: list[Product] = []

        pool_product = self.find_set_product(config)
        used_set = pool_product is not None
        if used_set:
            result.add_trace("Set Lookup", "Pre-built set matches dimensions", pool_product.code)
        else:
            pool_product = self.find_skeleton_product(config)
            code = build_pool_product_code(config)
            if pool_product:
                result.add_trace("Skeleton Lookup", "Found skeleton product", code)
            else:
                logger.warning(
                    "Pool product not found for code %s (shape=%s, type=%s, dims=%s)",
                    code, config.pool_shape, config.pool_type,
                    format_dimensions(config.dimensions, config.pool_shape),
                )
                result.add_warning(f"Pool product not found for code {code}")

        if pool_product:
            calculated = resolved.get(pool_product.id) or calculate_price(pool_product, context)
            pool_price = round_price(calculated.price)
            context.product_prices[pool_product.id] = pool_price
            result.pool_product_id = pool_product.id
            result.pool_price = pool_price
            result.used_set = used_set
            added_products.append(pool_product)

            if used_set:
                item = self._product_item(pool_product, pool_price, 1, 'set')
                item.add_trace("Price Resolution", describe_price(calculated), f"{pool_price}")
                self._append(result, item)
                self._attach_set_addons(result, pool_product, config)
            else:
                item = self._skeleton_item(result, pool_product, pool_price, config, options, context)
                self._append(result, item)

        self._add_mapped_accessories(result, config, context, added_products)
        self._add_required_surcharges(result, context, added_products)
        self._add_delivery(result)

        result.subtotal = sum(item.total_price for item in result.items)
        result.add_trace("Subtotal", f"{len(result.items)} items", format_number(result.subtotal))
        return result

    def _append(self, result: GenerationResult, item: GeneratedQuoteItem):
        item.sort_order = len(result.items)
        result.items.append(item)

    def _product_item(
        self,
        product: Product,
        unit_price: float,
        quantity: float,
        source: str,
        rule_id: Optional[str] = None,
    ) -> GeneratedQuoteItem:
        return GeneratedQuoteItem(
            product_id=product.id,
            name=product.name,
            description=product.description,
            category=normalize_category(product.category),
            quantity=quantity,
            unit=product.unit or 'ks',
            unit_price=unit_price,
            total_price=unit_price * quantity,
            source=source,
            rule_id=rule_id,
        )

    def _skeleton_item(
        self,
        result: GenerationResult,
        skeleton: Product,
        skeleton_price: float,
        config: Configuration,
        options: SkeletonAddonOptions,
        context: PriceContext,
    ) -> GeneratedQuoteItem:
        """Skeleton line with selected addons merged into its name and price."""
        is_circle = config.pool_shape == CIRCLE
        sharp = options.sharp_corners
        if sharp is None:
            sharp = config.pool_shape == RECTANGLE_SHARP
        thick = options.thickness_8mm

        sharp_product = self.products_by_code.get(self.settings.sharp_corners_code)
        thick_product = self.products_by_code.get(self.settings.thickness_8mm_code)

        if is_circle:
            sharp = False
        elif thick and sharp_product is not None:
            sharp = True

        item = self._product_item(skeleton, skeleton_price, 1, 'skeleton')
        item.add_trace("Price Resolution", "Skeleton price", f"{skeleton_price}")

        suffixes = []
        total = skeleton_price

        if sharp:
            if sharp_product is None:
                result.add_warning(f"Sharp corners product {self.settings.sharp_corners_code} not in catalog")
            else:
                priced = replace(
                    sharp_product,
                    price_type=PRICE_PERCENTAGE,
                    price_reference_product_id=skeleton.id,
                    price_percentage=sharp_product.price_percentage or self.settings.sharp_corners_percentage,
                )
                calculated = calculate_price(priced, context)
                price = round_price(calculated.price)
                total += price
                suffixes.append('ostré rohy')
                item.add_trace("Skeleton Addon", f"ostré rohy: {describe_price(calculated)}", f"{price}")

        if thick:
            if thick_product is None:
                result.add_warning(f"8mm thickness product {self.settings.thickness_8mm_code} not in catalog")
            else:
                priced = replace(
                    thick_product,
                    price_type=PRICE_SURFACE_COEFFICIENT,
                    price_coefficient=thick_product.price_coefficient or self.settings.thickness_8mm_price_per_m2,
                    coefficient_unit=UNIT_M2,
                )
                calculated = calculate_price(priced, context)
                price = round_price(calculated.price)
                total += price
                suffixes.append('8mm')
                item.add_trace("Skeleton Addon", f"8mm: {describe_price(calculated)}", f"{price}")

        if suffixes:
            item.name = f"{skeleton.name} ({', '.join(suffixes)})"
            item.unit_price = total
            item.total_price = total
        return item

    def _attach_set_addons(self, result: GenerationResult, set_product: Product, config: Configuration):
        selected = select_set_addons(set_product.set_addons, config)
        manual = len(set_product.set_addons) - len(selected)

        for addon in selected:
            price = round_price(addon.price)
            item = GeneratedQuoteItem(
                product_id=None,
                name=addon.name,
                category=normalize_category(set_product.category),
                quantity=1,
                unit='ks',
                unit_price=price,
                total_price=price,
                source='set_addon',
            )
            trigger = effective_trigger(addon)
            item.add_trace("Set Addon", f"Triggered by {trigger.kind}", str(trigger.value) if trigger.value is not None else None)
            self._append(result, item)

        if manual:
            result.add_trace("Set Addon", "Addons left for manual selection", str(manual))

    def _add_mapped_accessories(
        self,
        result: GenerationResult,
        config: Configuration,
        context: PriceContext,
        added_products: list[Product],
    ):
        added_ids = {p.id for p in added_products}

        for config_field in CONFIG_FIELDS:
            value = config.get_field(config_field)
            matched = self.rule_matcher.select(config_field, value, config.pool_shape, config.pool_type)
            if matched is None:
                continue

            rule = matched.rule
            if not rule.product_id:
                logger.warning('Mapping rule "%s" has no product assigned', rule.name)
                result.add_warning(f'Mapping rule "{rule.name}" has no product assigned')
                continue

            product = self.products_by_id.get(rule.product_id)
            if product is None:
                result.add_warning(f'Mapping rule "{rule.name}" points to missing or inactive product {rule.product_id}')
                continue

            if product.id in added_ids:
                continue

            calculated = calculate_price(product, context)
            unit_price = round_price(calculated.price)
            quantity = rule.quantity or 1
            item = self._product_item(product, unit_price, quantity, 'mapping_rule', rule_id=rule.id)
            item.add_trace("Rule Applied", f"{rule.name} ({matched.match_reason})", describe_price(calculated))
            self._append(result, item)

            added_ids.add(product.id)
            added_products.append(product)
            context.product_prices[product.id] = unit_price

    def _add_required_surcharges(
        self,
        result: GenerationResult,
        context: PriceContext,
        added_products: list[Product],
    ):
        added_ids = {p.id for p in added_products}
        for surcharge_id in collect_required_surcharges(added_products, added_ids, self.products_by_id):
            surcharge = self.products_by_id.get(surcharge_id)
            if surcharge is None:
                result.add_warning(f"Required surcharge {surcharge_id} missing or inactive")
                continue
            calculated = calculate_price(surcharge, context)
            unit_price = round_price(calculated.price)
            item = self._product_item(surcharge, unit_price, 1, 'required_surcharge')
            item.add_trace("Required Surcharge", describe_price(calculated), f"{unit_price}")
            self._append(result, item)
            context.product_prices[surcharge.id] = unit_price

    def _add_delivery(self, result: GenerationResult):
        if any(item.category == DELIVERY_CATEGORY for item in result.items):
            return
        self._append(result, GeneratedQuoteItem(
            product_id=None,
            name='Doprava',
            category=DELIVERY_CATEGORY,
            quantity=1,
            unit='ks',
            unit_price=0,
            total_price=0,
            source='delivery',
        ))
