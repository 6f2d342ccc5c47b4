"""
Quote, variant, version and order records.

Plain dataclasses mirroring stored rows. Timestamps are timezone-aware
UTC datetimes; JSON snapshots store them as ISO strings.
"""
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timezone
from typing import Any, Optional


# Quote statuses
DRAFT = 'draft'
SENT = 'sent'
ACCEPTED = 'accepted'
REJECTED = 'rejected'
QUOTE_STATUSES = (DRAFT, SENT, ACCEPTED, REJECTED)

# Order statuses
ORDER_CREATED = 'created'
ORDER_IN_PRODUCTION = 'in_production'

# Production order statuses
PRODUCTION_PENDING = 'pending'

# Variant tiers
VARIANT_KEYS = ('ekonomicka', 'optimalni', 'premiova')
VARIANT_LABELS = {
    'ekonomicka': 'Ekonomická',
    'optimalni': 'Optimální',
    'premiova': 'Prémiová',
}
MAX_VARIANTS = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class QuoteItem:
    """One line of a quote. total_price is stored, never recomputed."""
    id: str
    quote_id: str
    name: str
    unit_price: float
    total_price: float
    product_id: Optional[str] = None
    description: Optional[str] = None
    category: str = 'jine'
    quantity: float = 1
    unit: str = 'ks'
    sort_order: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class QuoteVariant:
    """A named pricing tier with its own discount."""
    id: str
    quote_id: str
    variant_key: str
    variant_name: str
    sort_order: int = 0
    discount_percent: float = 0.0
    discount_amount: float = 0.0
    subtotal: float = 0.0
    total_price: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class QuoteItemVariant:
    """Membership of an item in a variant."""
    quote_item_id: str
    variant_id: str


@dataclass
class Quote:
    id: str
    quote_number: str
    customer_name: str
    configuration_id: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    pool_config: Optional[dict[str, Any]] = None
    subtotal: float = 0.0
    discount_percent: float = 0.0
    discount_amount: float = 0.0
    total_price: float = 0.0
    status: str = DRAFT
    valid_until: Optional[date] = None
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    sent_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return asdict(self)


# Quote fields a version restore writes back
RESTORABLE_QUOTE_FIELDS = (
    'customer_name', 'customer_email', 'customer_phone', 'customer_address',
    'pool_config', 'subtotal', 'discount_percent', 'discount_amount',
    'total_price', 'valid_until', 'notes',
)


@dataclass
class QuoteVersion:
    """Immutable snapshot of a quote and its items."""
    id: str
    quote_id: str
    version_number: int
    snapshot: dict[str, Any]
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class OrderItem:
    id: str
    order_id: str
    name: str
    unit_price: float
    total_price: float
    product_id: Optional[str] = None
    description: Optional[str] = None
    category: str = 'jine'
    quantity: float = 1
    unit: str = 'ks'
    sort_order: int = 0


@dataclass
class Order:
    id: str
    order_number: str
    quote_id: Optional[str]
    customer_name: str
    status: str = ORDER_CREATED
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    pool_config: Optional[dict[str, Any]] = None
    subtotal: float = 0.0
    discount_percent: float = 0.0
    discount_amount: float = 0.0
    total_price: float = 0.0
    notes: Optional[str] = None
    items: list[OrderItem] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ProductionChecklistItem:
    """One material line on a production order (checked off in the workshop)."""
    material_name: str
    quantity: float
    unit: str
    material_code: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    sort_order: int = 0
    checked: bool = False
    checked_at: Optional[datetime] = None


@dataclass
class ProductionOrder:
    id: str
    production_number: str
    order_id: str
    status: str = PRODUCTION_PENDING
    pool_shape: Optional[str] = None
    pool_type: Optional[str] = None
    pool_dimensions: Optional[str] = None
    pool_color: Optional[str] = None
    pool_depth: Optional[str] = None
    items: list[ProductionChecklistItem] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return asdict(self)
