"""
Data models for the pricing engine.

Uses dataclasses for structured, type-safe data representation.
Catalog and configuration records are plain snapshots of stored rows;
the engine never writes them back.
"""
from dataclasses import dataclass, field, asdict
from typing import Optional


# Pool shapes
CIRCLE = 'circle'
RECTANGLE_ROUNDED = 'rectangle_rounded'
RECTANGLE_SHARP = 'rectangle_sharp'
POOL_SHAPES = (CIRCLE, RECTANGLE_ROUNDED, RECTANGLE_SHARP)
RECTANGULAR_SHAPES = (RECTANGLE_ROUNDED, RECTANGLE_SHARP)

# Pool types
POOL_TYPES = ('skimmer', 'overflow')

# Price types
PRICE_FIXED = 'fixed'
PRICE_PERCENTAGE = 'percentage'
PRICE_SURFACE_COEFFICIENT = 'surface_coefficient'
PRICE_TYPES = (PRICE_FIXED, PRICE_PERCENTAGE, PRICE_SURFACE_COEFFICIENT)
LEGACY_PRICE_TYPES = {'coefficient': PRICE_SURFACE_COEFFICIENT}

# Coefficient measurement units
UNIT_M2 = 'm2'
UNIT_BM = 'bm'

PRODUCT_CATEGORIES = (
    'bazeny', 'zastreseni', 'sluzby', 'doprava', 'prislusenstvi', 'schodiste',
    'uprava_vody', 'protiproud', 'technologie', 'material', 'ohrev',
    'osvetleni', 'cisteni', 'chemie', 'jine', 'sety',
)
SET_CATEGORY = 'sety'

# Configurator fields resolved through mapping rules, in quote order
CONFIG_FIELDS = (
    'stairs', 'technology', 'lighting', 'counterflow',
    'water_treatment', 'heating', 'roofing',
)

# Choices the configurator offers per field
CONFIG_FIELD_VALUES = {
    'stairs': ('none', 'roman', 'corner_triangle', 'full_width', 'with_bench', 'corner_square'),
    'technology': ('shaft', 'wall', 'other'),
    'lighting': ('none', 'led'),
    'counterflow': ('none', 'with_counterflow'),
    'water_treatment': ('chlorine', 'salt'),
    'heating': ('none', 'preparation', 'heat_pump'),
    'roofing': ('none', 'with_roofing'),
}

# Set addon trigger kinds
TRIGGER_DEPTH = 'depth'
TRIGGER_SHARP_CORNERS = 'sharp_corners'
TRIGGER_STAIRS = 'stairs'
TRIGGER_KINDS = (TRIGGER_DEPTH, TRIGGER_SHARP_CORNERS, TRIGGER_STAIRS)


def normalize_price_type(value: Optional[str]) -> str:
    """Map empty and legacy price type names onto the supported set."""
    if not value:
        return PRICE_FIXED
    value = str(value).strip()
    return LEGACY_PRICE_TYPES.get(value, value)


@dataclass
class PoolDimensions:
    """Pool dimensions in meters."""
    depth: Optional[float] = None
    diameter: Optional[float] = None
    width: Optional[float] = None
    length: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'PoolDimensions':
        data = data or {}

        def num(key):
            value = data.get(key)
            if value is None or value == '':
                return None
            return float(value)

        return cls(
            depth=num('depth'),
            diameter=num('diameter'),
            width=num('width'),
            length=num('length'),
        )

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class AddonTrigger:
    """Configuration fact that auto-attaches a set addon."""
    kind: str
    value: Optional[str | float] = None


@dataclass
class SetAddon:
    """An optional extra bundled with one specific set product."""
    id: str
    name: str
    price: float = 0.0
    sort_order: int = 0
    trigger: Optional[AddonTrigger] = None


@dataclass
class Product:
    """A catalog item with its pricing mode."""
    id: str
    name: str
    unit_price: float = 0.0
    code: Optional[str] = None
    category: str = 'jine'
    unit: str = 'ks'
    active: bool = True
    description: Optional[str] = None

    price_type: str = PRICE_FIXED
    price_percentage: Optional[float] = None
    price_reference_product_id: Optional[str] = None
    price_minimum: Optional[float] = None
    price_coefficient: Optional[float] = None
    coefficient_unit: str = UNIT_M2

    required_surcharge_ids: list[str] = field(default_factory=list)
    prerequisite_product_ids: list[str] = field(default_factory=list)
    prerequisite_pool_shapes: list[str] = field(default_factory=list)

    set_addons: list[SetAddon] = field(default_factory=list)

    @property
    def is_set(self) -> bool:
        return self.category == SET_CATEGORY


@dataclass
class ProductMappingRule:
    """Links a configurator field value to a catalog product."""
    id: str
    name: str
    config_field: str
    config_value: str
    product_id: Optional[str] = None
    quantity: float = 1
    pool_shape: list[str] = field(default_factory=list)
    pool_type: list[str] = field(default_factory=list)
    sort_order: int = 0
    active: bool = True
    description: Optional[str] = None


@dataclass
class Configuration:
    """A customer's configurator submission (or a manual equivalent)."""
    pool_shape: str
    pool_type: str
    dimensions: PoolDimensions
    id: Optional[str] = None
    color: Optional[str] = None
    stairs: Optional[str] = None
    technology: Optional[str] = None
    lighting: Optional[str] = None
    counterflow: Optional[str] = None
    water_treatment: Optional[str] = None
    heating: Optional[str] = None
    roofing: Optional[str] = None

    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_address: Optional[str] = None
    message: Optional[str] = None
    source: str = 'web'

    pipedrive_status: str = 'pending'
    pipedrive_error: Optional[str] = None

    def get_field(self, config_field: str) -> Optional[str]:
        """Value of a configurator field (accepts the camelCase form too)."""
        if config_field == 'waterTreatment':
            config_field = 'water_treatment'
        if config_field not in CONFIG_FIELDS:
            return None
        value = getattr(self, config_field, None)
        return value if isinstance(value, str) else None

    @classmethod
    def from_dict(cls, data: dict) -> 'Configuration':
        known = {f for f in cls.__dataclass_fields__ if f != 'dimensions'}
        values = {k: v for k, v in data.items() if k in known}
        return cls(dimensions=PoolDimensions.from_dict(data.get('dimensions')), **values)


@dataclass
class CatalogSnapshot:
    """Read-only view of the catalog a quote is generated against."""
    products: list[Product] = field(default_factory=list)
    mapping_rules: list[ProductMappingRule] = field(default_factory=list)
    # "<length>-<width>" → set product code
    set_dimension_map: dict[str, str] = field(default_factory=dict)

    def active_products(self) -> list[Product]:
        return [p for p in self.products if p.active]

    def get_product(self, product_id: str) -> Optional[Product]:
        for product in self.products:
            if product.id == product_id:
                return product
        return None


@dataclass
class TraceStep:
    """A single step in the quote generation trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class GeneratedQuoteItem:
    """A priced quote line draft, ready for bulk insert."""
    product_id: Optional[str]
    name: str
    category: str
    quantity: float
    unit: str
    unit_price: float
    total_price: float
    sort_order: int = 0
    description: Optional[str] = None
    source: str = 'mapping_rule'  # set, skeleton, set_addon, mapping_rule, required_surcharge, delivery
    rule_id: Optional[str] = None
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the trace for this line item."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def to_insert_dict(self) -> dict:
        """Row shape expected by quote storage."""
        return {
            'product_id': self.product_id,
            'name': self.name,
            'description': self.description,
            'category': self.category,
            'quantity': self.quantity,
            'unit': self.unit,
            'unit_price': self.unit_price,
            'total_price': self.total_price,
            'sort_order': self.sort_order,
        }


@dataclass
class GenerationResult:
    """Complete result of generating quote items from a configuration."""
    items: list[GeneratedQuoteItem] = field(default_factory=list)
    subtotal: float = 0.0
    pool_product_id: Optional[str] = None
    pool_price: Optional[float] = None
    used_set: bool = False
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the result-level trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_warning(self, warning: str):
        """Add a result-level warning."""
        if warning not in self.warnings:
            self.warnings.append(warning)

    def get_trace_text(self) -> str:
        """Get human-readable result trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"• {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"• {t.step}: {t.description}")
        return "\n".join(lines)
