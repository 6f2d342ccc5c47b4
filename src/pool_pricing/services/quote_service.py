"""
Quote Service - quote editing, variants, versions and conversion to orders.

Storage is an injected QuoteStore. The bundled store keeps everything in
memory behind one lock; item writes for a quote are replace-all so readers
never see a partially written item set.
"""
import copy
import logging
import threading
import uuid
from dataclasses import asdict
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional

from ..config.settings import get_settings, Settings
from ..engine.catalog_resolver import resolve_all
from ..engine.geometry import describe_dimensions, format_number
from ..engine.models import CatalogSnapshot, Configuration, GeneratedQuoteItem, GenerationResult, PoolDimensions
from ..engine.prerequisites import check_product_prerequisites
from ..engine.price_calculator import build_price_context, round_price
from ..engine.quote_generator import QuoteGenerator, SkeletonAddonOptions, normalize_category
from ..quotes.exceptions import (
    InvalidSnapshotError,
    MissingPrerequisitesError,
    OrderAlreadyExistsError,
    OrderNotFoundError,
    ProductionOrderExistsError,
    ProductNotFoundError,
    QuoteItemNotFoundError,
    QuoteNotAcceptedError,
    QuoteNotFoundError,
    VariantLimitError,
    VariantNotFoundError,
    VersionNotFoundError,
)
from ..quotes.lifecycle import apply_status
from ..quotes.models import (
    Order,
    OrderItem,
    ProductionChecklistItem,
    ProductionOrder,
    Quote,
    QuoteItem,
    QuoteItemVariant,
    QuoteVariant,
    QuoteVersion,
    ACCEPTED,
    MAX_VARIANTS,
    ORDER_IN_PRODUCTION,
    RESTORABLE_QUOTE_FIELDS,
    VARIANT_KEYS,
    VARIANT_LABELS,
    utcnow,
)
from ..quotes.totals import calculate_quote_totals, calculate_variant_totals

logger = logging.getLogger(__name__)

# Editable quote header fields
QUOTE_UPDATE_FIELDS = (
    'customer_name', 'customer_email', 'customer_phone', 'customer_address',
    'valid_until', 'notes',
)


def _new_id() -> str:
    return str(uuid.uuid4())


def _json_value(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _json_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_value(v) for v in value]
    return value


def pool_config_from_configuration(config: Configuration) -> dict[str, Any]:
    """Denormalized pool configuration stored on quotes and orders."""
    pool_config = {
        'shape': config.pool_shape,
        'type': config.pool_type,
        'dimensions': config.dimensions.to_dict(),
        'dimensions_label': describe_dimensions(config.dimensions, config.pool_shape),
        'color': config.color,
    }
    for name in ('stairs', 'technology', 'lighting', 'counterflow', 'water_treatment', 'heating', 'roofing'):
        pool_config[name] = getattr(config, name)
    return pool_config


class QuoteStore:
    """In-process quote storage."""

    def __init__(self):
        self.lock = threading.RLock()
        self.quotes: dict[str, Quote] = {}
        self.items: dict[str, list[QuoteItem]] = {}
        self.variants: dict[str, list[QuoteVariant]] = {}
        self.item_variants: dict[str, list[QuoteItemVariant]] = {}
        self.versions: dict[str, list[QuoteVersion]] = {}
        self.orders: dict[str, Order] = {}
        self.production_orders: dict[str, ProductionOrder] = {}
        self._sequences: dict[tuple[str, int], int] = {}

    def next_number(self, prefix: str, year: int) -> str:
        """Next business number for the prefix and year, e.g. NAB-2026-0001."""
        with self.lock:
            seq = self._sequences.get((prefix, year), 0) + 1
            self._sequences[(prefix, year)] = seq
        return f"{prefix}-{year}-{seq:04d}"


class QuoteService:
    """Service for managing quotes and their downstream orders."""

    def __init__(self, store: Optional[QuoteStore] = None, settings: Optional[Settings] = None):
        self.store = store or QuoteStore()
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    def get_quote(self, quote_id: str) -> Quote:
        quote = self.store.quotes.get(quote_id)
        if quote is None:
            raise QuoteNotFoundError(quote_id)
        return quote

    def list_quotes(self, status: Optional[str] = None) -> list[Quote]:
        quotes = list(self.store.quotes.values())
        if status:
            quotes = [q for q in quotes if q.status == status]
        return sorted(quotes, key=lambda q: q.created_at, reverse=True)

    def get_items(self, quote_id: str) -> list[QuoteItem]:
        self.get_quote(quote_id)
        with self.store.lock:
            return list(self.store.items.get(quote_id, []))

    def create_quote(
        self,
        customer_name: str,
        customer_email: Optional[str] = None,
        customer_phone: Optional[str] = None,
        customer_address: Optional[str] = None,
        configuration: Optional[Configuration] = None,
        pool_config: Optional[dict] = None,
        items: Optional[Iterable] = None,
        discount_percent: float = 0,
        discount_amount: float = 0,
        valid_until: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> Quote:
        """
        Create a quote, manually or from a configuration.

        Numbering is per year (NAB-2026-0001); validity defaults to
        quote_validity_days from today.
        """
        now = utcnow()
        if configuration is not None and pool_config is None:
            pool_config = pool_config_from_configuration(configuration)

        quote = Quote(
            id=_new_id(),
            quote_number=self.store.next_number(self.settings.quote_number_prefix, now.year),
            customer_name=customer_name,
            configuration_id=configuration.id if configuration else None,
            customer_email=customer_email,
            customer_phone=customer_phone,
            customer_address=customer_address,
            pool_config=pool_config,
            discount_percent=discount_percent or 0,
            discount_amount=discount_amount or 0,
            valid_until=valid_until or (now.date() + timedelta(days=self.settings.quote_validity_days)),
            notes=notes,
            created_at=now,
            updated_at=now,
        )

        with self.store.lock:
            self.store.quotes[quote.id] = quote
            self.store.items[quote.id] = []
            self.store.variants[quote.id] = []
            self.store.item_variants[quote.id] = []
            self.store.versions[quote.id] = []

        logger.info("Created quote %s", quote.quote_number)
        if items:
            self.replace_items(quote.id, items)
        else:
            self._recalculate(quote)
        return quote

    def create_quote_from_configuration(
        self,
        configuration: Configuration,
        generator: QuoteGenerator,
        skeleton_addons: Optional[SkeletonAddonOptions] = None,
    ) -> tuple[Quote, GenerationResult]:
        """Generate items for a configuration and store them as a new quote."""
        result = generator.generate(configuration, skeleton_addons)
        quote = self.create_quote(
            customer_name=configuration.contact_name or '',
            customer_email=configuration.contact_email,
            customer_phone=configuration.contact_phone,
            customer_address=configuration.contact_address,
            configuration=configuration,
            items=result.items,
        )
        if result.pool_product_id:
            quote.pool_config['pool_product_id'] = result.pool_product_id
            quote.pool_config['pool_price'] = result.pool_price
        for warning in result.warnings:
            logger.warning("Quote %s: %s", quote.quote_number, warning)
        return quote, result

    def update_quote(self, quote_id: str, updates: dict) -> Quote:
        """Update customer and validity fields of a quote."""
        with self.store.lock:
            quote = self.get_quote(quote_id)
            for key, value in updates.items():
                if key in QUOTE_UPDATE_FIELDS:
                    setattr(quote, key, value)
            quote.updated_at = utcnow()
        return quote

    def delete_quote(self, quote_id: str) -> bool:
        with self.store.lock:
            self.get_quote(quote_id)
            for table in (self.store.quotes, self.store.items, self.store.variants,
                          self.store.item_variants, self.store.versions):
                table.pop(quote_id, None)
        return True

    def set_discount(self, quote_id: str, discount_percent: float = 0, discount_amount: float = 0) -> Quote:
        with self.store.lock:
            quote = self.get_quote(quote_id)
            totals = calculate_quote_totals(self.store.items.get(quote_id, []), discount_percent, discount_amount)
            quote.discount_percent = totals.discount_percent
            quote.discount_amount = totals.discount_amount
            quote.subtotal = totals.subtotal
            quote.total_price = totals.total_price
            quote.updated_at = utcnow()
        return quote

    def set_status(self, quote_id: str, status: str) -> Quote:
        with self.store.lock:
            quote = self.get_quote(quote_id)
            previous = quote.status
            apply_status(quote, status)
        logger.info("Quote %s: %s -> %s", quote.quote_number, previous, status)
        return quote

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def _build_item(self, quote_id: str, data, sort_order: int) -> tuple[QuoteItem, list[str]]:
        if isinstance(data, GeneratedQuoteItem):
            data = data.to_insert_dict()
        elif isinstance(data, QuoteItem):
            data = data.to_dict()
        quantity = data.get('quantity')
        unit_price = float(data.get('unit_price') or 0)
        item = QuoteItem(
            id=_new_id(),
            quote_id=quote_id,
            product_id=data.get('product_id') or None,
            name=data['name'],
            description=data.get('description'),
            category=normalize_category(data.get('category') or 'jine'),
            quantity=1 if quantity is None else quantity,
            unit=data.get('unit') or 'ks',
            unit_price=unit_price,
            total_price=float(data.get('total_price') or 0),
            sort_order=data.get('sort_order', sort_order),
        )
        return item, list(data.get('variant_ids') or [])

    def replace_items(self, quote_id: str, items: Iterable) -> list[QuoteItem]:
        """
        Replace all items of a quote in one step.

        Accepts generated items, QuoteItem records or plain dicts; a dict may
        carry variant_ids to link the new item into variants. Totals are
        recomputed from the stored total_price values.
        """
        with self.store.lock:
            quote = self.get_quote(quote_id)
            variant_ids = {v.id for v in self.store.variants.get(quote_id, [])}

            new_items = []
            new_links = []
            for index, data in enumerate(items):
                item, linked = self._build_item(quote_id, data, index)
                new_items.append(item)
                for variant_id in linked:
                    if variant_id not in variant_ids:
                        raise VariantNotFoundError(variant_id)
                    new_links.append(QuoteItemVariant(quote_item_id=item.id, variant_id=variant_id))

            new_items.sort(key=lambda i: i.sort_order)
            self.store.items[quote_id] = new_items
            self.store.item_variants[quote_id] = new_links
            self._recalculate(quote)
        return list(new_items)

    def add_catalog_item(
        self,
        quote_id: str,
        product_id: str,
        catalog: CatalogSnapshot,
        quantity: float = 1,
    ) -> QuoteItem:
        """
        Append a catalog product to a quote.

        The product's prerequisites must already be on the quote; its price
        is resolved against the quote's pool and the prices already quoted.

        Raises:
            ProductNotFoundError: unknown or inactive product
            MissingPrerequisitesError: prerequisites missing from the quote
        """
        product = catalog.get_product(product_id)
        if product is None or not product.active:
            raise ProductNotFoundError(product_id)

        with self.store.lock:
            quote = self.get_quote(quote_id)
            current = self.store.items.get(quote_id, [])
            pool_config = quote.pool_config or {}
            pool_shape = pool_config.get('shape')

            check = check_product_prerequisites(
                product, [i.product_id for i in current], pool_shape, catalog.active_products(),
            )
            if not check.can_add:
                raise MissingPrerequisitesError(check.message, [p.id for p in check.missing_prerequisites])

            dims = PoolDimensions.from_dict(pool_config.get('dimensions'))
            products = catalog.active_products()
            context = build_price_context(products, pool_shape, dims)
            for existing in current:
                if existing.product_id:
                    context.product_prices[existing.product_id] = existing.unit_price
            # A generated skeleton line includes its merged addons; references use the bare pool price
            pool_product_id = pool_config.get('pool_product_id')
            if pool_product_id and pool_config.get('pool_price') is not None:
                context.product_prices[pool_product_id] = pool_config['pool_price']
            resolved = resolve_all(products, context=context)
            unit_price = round_price(resolved[product.id].price)

            item = QuoteItem(
                id=_new_id(),
                quote_id=quote_id,
                product_id=product.id,
                name=product.name,
                description=product.description,
                category=normalize_category(product.category),
                quantity=quantity,
                unit=product.unit or 'ks',
                unit_price=unit_price,
                total_price=unit_price * quantity,
                sort_order=max((i.sort_order for i in current), default=-1) + 1,
            )
            self.store.items[quote_id] = current + [item]
            self._recalculate(quote)
        return item

    def _recalculate(self, quote: Quote):
        items = self.store.items.get(quote.id, [])
        totals = calculate_quote_totals(items, quote.discount_percent, quote.discount_amount)
        quote.subtotal = totals.subtotal
        quote.total_price = totals.total_price
        quote.updated_at = utcnow()
        self._recalculate_variants(quote.id)

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    def get_variants(self, quote_id: str) -> list[QuoteVariant]:
        self.get_quote(quote_id)
        return sorted(self.store.variants.get(quote_id, []), key=lambda v: v.sort_order)

    def get_item_variant_ids(self, quote_id: str) -> dict[str, list[str]]:
        """Item id → ids of the variants that include it."""
        result: dict[str, list[str]] = {}
        for link in self.store.item_variants.get(quote_id, []):
            result.setdefault(link.quote_item_id, []).append(link.variant_id)
        return result

    def add_variant(
        self,
        quote_id: str,
        variant_key: str,
        variant_name: Optional[str] = None,
        discount_percent: float = 0,
        discount_amount: float = 0,
    ) -> QuoteVariant:
        """
        Add a pricing tier to a quote.

        Raises:
            VariantLimitError: unknown key, key already used or three variants exist
        """
        if variant_key not in VARIANT_KEYS:
            raise VariantLimitError(f"Unknown variant key '{variant_key}' (use one of {', '.join(VARIANT_KEYS)})")

        with self.store.lock:
            self.get_quote(quote_id)
            variants = self.store.variants.setdefault(quote_id, [])
            if len(variants) >= MAX_VARIANTS:
                raise VariantLimitError(f"A quote can have at most {MAX_VARIANTS} variants")
            if any(v.variant_key == variant_key for v in variants):
                raise VariantLimitError(f"Variant '{variant_key}' already exists on this quote")

            variant = QuoteVariant(
                id=_new_id(),
                quote_id=quote_id,
                variant_key=variant_key,
                variant_name=variant_name or VARIANT_LABELS[variant_key],
                sort_order=VARIANT_KEYS.index(variant_key),
                discount_percent=discount_percent or 0,
                discount_amount=discount_amount or 0,
            )
            variants.append(variant)
            self._recalculate_variants(quote_id)
        return variant

    def assign_item_to_variant(self, quote_id: str, item_id: str, variant_id: str) -> QuoteVariant:
        with self.store.lock:
            self.get_quote(quote_id)
            if not any(i.id == item_id for i in self.store.items.get(quote_id, [])):
                raise QuoteItemNotFoundError(item_id)
            variant = next((v for v in self.store.variants.get(quote_id, []) if v.id == variant_id), None)
            if variant is None:
                raise VariantNotFoundError(variant_id)

            links = self.store.item_variants.setdefault(quote_id, [])
            if not any(l.quote_item_id == item_id and l.variant_id == variant_id for l in links):
                links.append(QuoteItemVariant(quote_item_id=item_id, variant_id=variant_id))
            self._recalculate_variants(quote_id)
        return variant

    def set_variant_discount(
        self,
        quote_id: str,
        variant_id: str,
        discount_percent: float = 0,
        discount_amount: float = 0,
    ) -> QuoteVariant:
        with self.store.lock:
            self.get_quote(quote_id)
            variant = next((v for v in self.store.variants.get(quote_id, []) if v.id == variant_id), None)
            if variant is None:
                raise VariantNotFoundError(variant_id)
            variant.discount_percent = discount_percent or 0
            variant.discount_amount = discount_amount or 0
            self._recalculate_variants(quote_id)
        return variant

    def recalculate_variants(self, quote_id: str) -> list[QuoteVariant]:
        with self.store.lock:
            self.get_quote(quote_id)
            self._recalculate_variants(quote_id)
        return self.get_variants(quote_id)

    def _recalculate_variants(self, quote_id: str):
        items = self.store.items.get(quote_id, [])
        links = self.store.item_variants.get(quote_id, [])
        for variant in self.store.variants.get(quote_id, []):
            totals = calculate_variant_totals(variant, items, links)
            variant.discount_percent = totals.discount_percent
            variant.discount_amount = totals.discount_amount
            variant.subtotal = totals.subtotal
            variant.total_price = totals.total_price

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def _snapshot(self, quote_id: str) -> dict:
        quote = self.get_quote(quote_id)
        items = sorted(self.store.items.get(quote_id, []), key=lambda i: i.sort_order)
        return {
            'quote': _json_value(asdict(quote)),
            'items': [_json_value(i.to_dict()) for i in items],
            'created_at': utcnow().isoformat(),
        }

    def _append_version(self, quote_id: str, notes: Optional[str]) -> QuoteVersion:
        versions = self.store.versions.setdefault(quote_id, [])
        number = max((v.version_number for v in versions), default=0) + 1
        version = QuoteVersion(
            id=_new_id(),
            quote_id=quote_id,
            version_number=number,
            snapshot=self._snapshot(quote_id),
            notes=notes or f"Verze {number}",
        )
        versions.append(version)
        return version

    def create_version(self, quote_id: str, notes: Optional[str] = None) -> QuoteVersion:
        """Snapshot the current quote and items as the next version."""
        with self.store.lock:
            self.get_quote(quote_id)
            version = self._append_version(quote_id, notes)
        logger.info("Quote %s: saved version %d", quote_id, version.version_number)
        return version

    def list_versions(self, quote_id: str) -> list[QuoteVersion]:
        """Versions, newest first."""
        self.get_quote(quote_id)
        return sorted(self.store.versions.get(quote_id, []), key=lambda v: v.version_number, reverse=True)

    def get_version(self, quote_id: str, version_id: str) -> QuoteVersion:
        self.get_quote(quote_id)
        for version in self.store.versions.get(quote_id, []):
            if version.id == version_id:
                return version
        raise VersionNotFoundError(quote_id, version_id)

    def restore_version(self, quote_id: str, version_id: str) -> tuple[Quote, QuoteVersion]:
        """
        Restore a quote to a saved version.

        The current state is saved first as a backup version, so a restore
        never loses data.

        Returns:
            (restored quote, backup version)
        """
        with self.store.lock:
            quote = self.get_quote(quote_id)
            version = self.get_version(quote_id, version_id)
            snapshot_quote, snapshot_items = _validate_snapshot(version.snapshot)

            backup = self._append_version(quote_id, f"Záloha před obnovením verze {version.version_number}")

            for key in RESTORABLE_QUOTE_FIELDS:
                if key not in snapshot_quote:
                    continue
                value = snapshot_quote[key]
                if key == 'valid_until' and isinstance(value, str):
                    value = date.fromisoformat(value[:10])
                setattr(quote, key, copy.deepcopy(value))
            quote.updated_at = utcnow()

            restored = []
            for index, data in enumerate(snapshot_items):
                item, _ = self._build_item(quote_id, data, index)
                restored.append(item)
            restored.sort(key=lambda i: i.sort_order)
            self.store.items[quote_id] = restored
            self.store.item_variants[quote_id] = []
            self._recalculate_variants(quote_id)

        logger.info(
            "Quote %s restored to version %d (backup version %d)",
            quote.quote_number, version.version_number, backup.version_number,
        )
        return quote, backup

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        order = self.store.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def list_orders(self) -> list[Order]:
        return sorted(self.store.orders.values(), key=lambda o: o.created_at, reverse=True)

    def find_order_for_quote(self, quote_id: str) -> Optional[Order]:
        for order in self.store.orders.values():
            if order.quote_id == quote_id:
                return order
        return None

    def convert_to_order(self, quote_id: str) -> Order:
        """
        Create the order for an accepted quote. The quote stays accepted.

        Raises:
            QuoteNotAcceptedError: quote is not accepted
            OrderAlreadyExistsError: quote was already converted
        """
        with self.store.lock:
            quote = self.get_quote(quote_id)
            if quote.status != ACCEPTED:
                raise QuoteNotAcceptedError(quote_id, quote.status)
            existing = self.find_order_for_quote(quote_id)
            if existing is not None:
                raise OrderAlreadyExistsError(quote_id, existing.order_number)

            now = utcnow()
            order = Order(
                id=_new_id(),
                order_number=self.store.next_number(self.settings.order_number_prefix, now.year),
                quote_id=quote.id,
                customer_name=quote.customer_name,
                customer_email=quote.customer_email,
                customer_phone=quote.customer_phone,
                customer_address=quote.customer_address,
                pool_config=copy.deepcopy(quote.pool_config),
                subtotal=quote.subtotal,
                discount_percent=quote.discount_percent,
                discount_amount=quote.discount_amount,
                total_price=quote.total_price,
                notes=quote.notes,
                created_at=now,
            )
            for item in sorted(self.store.items.get(quote_id, []), key=lambda i: i.sort_order):
                order.items.append(OrderItem(
                    id=_new_id(),
                    order_id=order.id,
                    product_id=item.product_id,
                    name=item.name,
                    description=item.description,
                    category=item.category,
                    quantity=item.quantity,
                    unit=item.unit,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                    sort_order=item.sort_order,
                ))
            self.store.orders[order.id] = order

        logger.info("Quote %s converted to order %s", quote.quote_number, order.order_number)
        return order

    def create_production_order(
        self,
        order_id: str,
        catalog: Optional[CatalogSnapshot] = None,
    ) -> ProductionOrder:
        """
        Create the production order (material checklist) for an order.

        Material codes come from the catalog when one is given. The order
        moves to in_production.

        Raises:
            OrderNotFoundError: unknown order
            ProductionOrderExistsError: order already has a production order
        """
        with self.store.lock:
            order = self.get_order(order_id)
            for existing in self.store.production_orders.values():
                if existing.order_id == order_id:
                    raise ProductionOrderExistsError(order_id, existing.production_number)

            pool_config = order.pool_config or {}
            dims = PoolDimensions.from_dict(pool_config.get('dimensions'))
            now = utcnow()
            production = ProductionOrder(
                id=_new_id(),
                production_number=self.store.next_number(self.settings.production_number_prefix, now.year),
                order_id=order_id,
                pool_shape=pool_config.get('shape'),
                pool_type=pool_config.get('type'),
                pool_dimensions=_production_dimensions(dims),
                pool_color=pool_config.get('color'),
                pool_depth=f"{format_number(dims.depth)}m" if dims.depth else None,
                created_at=now,
            )
            for index, item in enumerate(sorted(order.items, key=lambda i: i.sort_order)):
                product = catalog.get_product(item.product_id) if (catalog and item.product_id) else None
                production.items.append(ProductionChecklistItem(
                    material_code=product.code if product else None,
                    material_name=item.name,
                    description=item.description,
                    quantity=item.quantity,
                    unit=item.unit,
                    category=item.category,
                    sort_order=index,
                ))

            self.store.production_orders[production.id] = production
            order.status = ORDER_IN_PRODUCTION

        logger.info("Order %s handed to production as %s", order.order_number, production.production_number)
        return production

    def list_production_orders(self) -> list[ProductionOrder]:
        return sorted(self.store.production_orders.values(), key=lambda p: p.created_at, reverse=True)


def _production_dimensions(dims: PoolDimensions) -> Optional[str]:
    if dims.diameter and not dims.width and not dims.length:
        return f"{format_number(dims.diameter)}m"
    if dims.width and dims.length:
        return f"{format_number(dims.width)}×{format_number(dims.length)}m"
    return None


def _validate_snapshot(snapshot) -> tuple[dict, list]:
    if not isinstance(snapshot, dict) or not isinstance(snapshot.get('quote'), dict):
        raise InvalidSnapshotError("Version snapshot has no quote data")
    items = snapshot.get('items') or []
    if not isinstance(items, list):
        raise InvalidSnapshotError("Version snapshot items must be a list")
    for item in items:
        if not isinstance(item, dict) or not item.get('name'):
            raise InvalidSnapshotError("Version snapshot contains an item without a name")
    return snapshot['quote'], items
