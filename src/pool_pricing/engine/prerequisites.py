"""
Product prerequisites and required surcharges.

Prerequisites gate manual additions to a quote (8mm material needs sharp
corners on rectangles). Required surcharges are pulled in automatically
whenever their owner is on the quote.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .models import Product

logger = logging.getLogger(__name__)

MAX_SURCHARGE_DEPTH = 10


@dataclass
class PrerequisiteCheckResult:
    can_add: bool
    missing_prerequisites: list[Product] = field(default_factory=list)
    message: Optional[str] = None
    skipped_due_to_shape: bool = False


def check_product_prerequisites(
    product: Product,
    current_product_ids: Iterable[Optional[str]],
    pool_shape: Optional[str],
    all_products: list[Product],
) -> PrerequisiteCheckResult:
    """
    Check whether a product's prerequisites are already on the quote.

    Shapes listed in prerequisite_pool_shapes skip the check entirely
    (8mm material on a circle needs no sharp corners).
    """
    if not product.prerequisite_product_ids:
        return PrerequisiteCheckResult(can_add=True)

    if pool_shape and pool_shape in (product.prerequisite_pool_shapes or []):
        return PrerequisiteCheckResult(can_add=True, skipped_due_to_shape=True)

    present = {pid for pid in current_product_ids if pid is not None}
    missing_ids = [pid for pid in product.prerequisite_product_ids if pid not in present]
    if not missing_ids:
        return PrerequisiteCheckResult(can_add=True)

    missing = [p for p in all_products if p.id in missing_ids]
    if missing:
        names = ", ".join(p.name for p in missing)
        message = f'Pro přidání "{product.name}" je nutné nejprve přidat: {names}'
    else:
        message = f'Pro přidání "{product.name}" chybí požadované produkty'

    return PrerequisiteCheckResult(can_add=False, missing_prerequisites=missing, message=message)


def collect_required_surcharges(
    products: list[Product],
    added_product_ids: set[str],
    all_products: dict[str, Product],
) -> list[str]:
    """
    Surcharge ids required by the given products, followed recursively.

    Ids already on the quote are skipped. Circular references stop at
    MAX_SURCHARGE_DEPTH levels.
    """
    surcharge_ids: list[str] = []
    seen: set[str] = set()
    to_process: list[str] = []

    def enqueue(ids):
        for sid in ids or []:
            if sid not in added_product_ids and sid not in seen:
                seen.add(sid)
                surcharge_ids.append(sid)
                to_process.append(sid)

    for product in products:
        enqueue(product.required_surcharge_ids)

    processed: set[str] = set()
    depth = 0
    while to_process and depth < MAX_SURCHARGE_DEPTH:
        depth += 1
        batch = list(to_process)
        to_process.clear()
        for sid in batch:
            if sid in processed:
                continue
            processed.add(sid)
            surcharge = all_products.get(sid)
            if surcharge:
                enqueue(surcharge.required_surcharge_ids)

    if to_process:
        logger.warning(
            "Surcharge collection hit max depth - possible circular dependency in required_surcharge_ids"
        )

    return surcharge_ids
