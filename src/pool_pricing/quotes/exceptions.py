"""Quote domain exceptions."""
from typing import Optional


class QuoteError(Exception):
    """Base class for quote domain errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class QuoteNotFoundError(QuoteError):
    def __init__(self, quote_id: str):
        super().__init__(f"Quote {quote_id} not found")
        self.quote_id = quote_id


class QuoteItemNotFoundError(QuoteError):
    def __init__(self, item_id: str):
        super().__init__(f"Quote item {item_id} not found")
        self.item_id = item_id


class VersionNotFoundError(QuoteError):
    def __init__(self, quote_id: str, version_id: str):
        super().__init__(f"Version {version_id} of quote {quote_id} not found")
        self.quote_id = quote_id
        self.version_id = version_id


class InvalidSnapshotError(QuoteError):
    """Raised when a stored version snapshot cannot be restored."""
    pass


class InvalidStatusTransitionError(QuoteError):
    def __init__(self, current: str, requested: str, allowed: Optional[list[str]] = None):
        allowed = allowed or []
        allowed_str = ", ".join(allowed) if allowed else "none"
        super().__init__(f"Cannot change status from '{current}' to '{requested}' (allowed: {allowed_str})")
        self.current = current
        self.requested = requested
        self.allowed = allowed


class QuoteNotAcceptedError(QuoteError):
    def __init__(self, quote_id: str, status: str):
        super().__init__(f"Only accepted quotes can be converted to an order (quote {quote_id} is '{status}')")
        self.quote_id = quote_id
        self.status = status


class OrderAlreadyExistsError(QuoteError):
    def __init__(self, quote_id: str, order_number: str):
        super().__init__(f"Quote {quote_id} was already converted to order {order_number}")
        self.quote_id = quote_id
        self.order_number = order_number


class OrderNotFoundError(QuoteError):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class ProductionOrderExistsError(QuoteError):
    def __init__(self, order_id: str, production_number: str):
        super().__init__(f"Production order {production_number} already exists for order {order_id}")
        self.order_id = order_id
        self.production_number = production_number


class VariantLimitError(QuoteError):
    """Raised when a variant would exceed the per-quote limit or reuse a key."""
    pass


class VariantNotFoundError(QuoteError):
    def __init__(self, variant_id: str):
        super().__init__(f"Variant {variant_id} not found")
        self.variant_id = variant_id


class MissingPrerequisitesError(QuoteError):
    """Raised when a catalog product's prerequisites are not on the quote."""

    def __init__(self, message: str, missing_product_ids: Optional[list[str]] = None):
        super().__init__(message)
        self.missing_product_ids = missing_product_ids or []


class ProductNotFoundError(QuoteError):
    def __init__(self, product_id: str):
        super().__init__(f"Product {product_id} not found or inactive")
        self.product_id = product_id
