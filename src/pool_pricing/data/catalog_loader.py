"""
Catalog Loader - Reads the product catalog CSVs into a CatalogSnapshot.

Inputs (all under the data directory):
- products.csv: products with their pricing mode
- set_addons.csv: optional extras per set product
- compiled_rules.json (or mapping_rules.csv as a fallback)
- set_dimension_map.json: "<length>-<width>" → set product code

build_catalog_report checks the loaded catalog and writes a build report.
"""
import hashlib
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from ..config.settings import get_settings, Settings
from ..engine.catalog_resolver import find_percentage_chains
from ..engine.models import (
    AddonTrigger,
    CatalogSnapshot,
    Product,
    SetAddon,
    PRICE_PERCENTAGE,
    PRODUCT_CATEGORIES,
    PRICE_TYPES,
    TRIGGER_DEPTH,
    TRIGGER_KINDS,
    UNIT_M2,
    normalize_price_type,
)
from ..engine.rule_matcher import rule_from_dict
from ..rules.compile_rules import parse_bool, parse_list, read_rules_csv

logger = logging.getLogger(__name__)


def get_file_hash(path: Path) -> str:
    """Get SHA256 hash of a file."""
    if not path.exists():
        return ""
    with open(path, 'rb') as f:
        return hashlib.sha256(f.read()).hexdigest()[:12]


def _read_csv(path: Path) -> pd.DataFrame:
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df.columns = [c.strip() for c in df.columns]
    return df.apply(lambda col: col.str.strip())


def _num(value: str) -> Optional[float]:
    if value is None or value == '':
        return None
    return float(str(value).replace(',', '.'))


def _trigger_from_row(row: dict) -> Optional[AddonTrigger]:
    kind = row.get('trigger_kind') or None
    if kind is None:
        return None
    if kind not in TRIGGER_KINDS:
        logger.warning("Set addon %s: unknown trigger kind '%s' ignored", row.get('id'), kind)
        return None
    value = row.get('trigger_value') or None
    if kind == TRIGGER_DEPTH and value is not None:
        value = _num(value)
    return AddonTrigger(kind=kind, value=value)


def load_set_addons(path: Path) -> dict[str, list[SetAddon]]:
    """Set product id → its addons in sort_order."""
    if not path.exists():
        return {}

    df = _read_csv(path)
    addons: dict[str, list[SetAddon]] = {}
    for row in df.to_dict(orient='records'):
        if not row.get('id') or not row.get('set_product_id'):
            continue
        addon = SetAddon(
            id=row['id'],
            name=row.get('name', ''),
            price=_num(row.get('price')) or 0.0,
            sort_order=int(row.get('sort_order') or 0),
            trigger=_trigger_from_row(row),
        )
        addons.setdefault(row['set_product_id'], []).append(addon)

    for items in addons.values():
        items.sort(key=lambda a: a.sort_order)
    return addons


def _category(row: dict) -> str:
    category = row.get('category') or 'jine'
    if category not in PRODUCT_CATEGORIES:
        logger.warning("Product %s has unknown category '%s', using 'jine'", row.get('id'), category)
        return 'jine'
    return category


def load_products(path: Path, set_addons: Optional[dict[str, list[SetAddon]]] = None) -> list[Product]:
    df = _read_csv(path)
    df = df[df['id'] != '']

    duplicates = df['id'].duplicated()
    if duplicates.any():
        logger.warning("Dropping %d duplicate product ids", int(duplicates.sum()))
        df = df[~duplicates]

    set_addons = set_addons or {}
    products = []
    for row in df.to_dict(orient='records'):
        products.append(Product(
            id=row['id'],
            name=row.get('name') or row['id'],
            code=row.get('code') or None,
            category=_category(row),
            unit=row.get('unit') or 'ks',
            unit_price=_num(row.get('unit_price')) or 0.0,
            active=parse_bool(row.get('active') or 'true'),
            description=row.get('description') or None,
            price_type=normalize_price_type(row.get('price_type')),
            price_percentage=_num(row.get('price_percentage')),
            price_reference_product_id=row.get('price_reference_product_id') or None,
            price_minimum=_num(row.get('price_minimum')),
            price_coefficient=_num(row.get('price_coefficient')),
            coefficient_unit=row.get('coefficient_unit') or UNIT_M2,
            required_surcharge_ids=parse_list(row.get('required_surcharge_ids')),
            prerequisite_product_ids=parse_list(row.get('prerequisite_product_ids')),
            prerequisite_pool_shapes=parse_list(row.get('prerequisite_pool_shapes')),
            set_addons=set_addons.get(row['id'], []),
        ))
    return products


def load_mapping_rules(settings: Settings) -> list:
    """Compiled rules when present, otherwise the valid rows of the CSV."""
    if settings.compiled_rules.exists():
        with open(settings.compiled_rules, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return [rule_from_dict(r) for r in data.get('rules', [])]

    if settings.mapping_rules_csv.exists():
        rules, errors = read_rules_csv(settings.mapping_rules_csv)
        for err in errors:
            logger.warning("mapping_rules.csv: %s", err)
        return sorted(rules, key=lambda r: r.sort_order)

    return []


def load_set_dimension_map(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return {str(k): str(v) for k, v in data.items()}


def load_catalog(settings: Optional[Settings] = None) -> CatalogSnapshot:
    """
    Load the full catalog snapshot.

    Raises:
        FileNotFoundError: products.csv is missing
    """
    settings = settings or get_settings()
    if not settings.products_csv.exists():
        raise FileNotFoundError(f"Products file not found: {settings.products_csv}")

    set_addons = load_set_addons(settings.set_addons_csv)
    products = load_products(settings.products_csv, set_addons)
    known_ids = {p.id for p in products}
    orphans = [pid for pid in set_addons if pid not in known_ids]
    if orphans:
        logger.warning("Set addons reference unknown set products: %s", ", ".join(orphans))

    catalog = CatalogSnapshot(
        products=products,
        mapping_rules=load_mapping_rules(settings),
        set_dimension_map=load_set_dimension_map(settings.set_dimension_map_json),
    )
    logger.info(
        "Loaded catalog: %d products, %d mapping rules, %d set sizes",
        len(catalog.products), len(catalog.mapping_rules), len(catalog.set_dimension_map),
    )
    return catalog


def catalog_warnings(catalog: CatalogSnapshot) -> list[str]:
    """Data problems that do not stop loading but produce wrong or missing quote lines."""
    warnings = []
    products_by_id = {p.id: p for p in catalog.products}
    active = catalog.active_products()

    for product_id, ref_id in find_percentage_chains(active):
        warnings.append(
            f"Product {product_id} is a percentage of {ref_id}, which is itself percentage-priced; "
            f"chained percentages are not supported"
        )

    for product in active:
        if product.price_type not in PRICE_TYPES:
            warnings.append(f"Product {product.id} has unknown price type '{product.price_type}'")
        if product.price_type == PRICE_PERCENTAGE and product.price_reference_product_id not in products_by_id:
            warnings.append(f"Product {product.id} references missing product {product.price_reference_product_id}")
        for sid in product.required_surcharge_ids:
            if sid not in products_by_id:
                warnings.append(f"Product {product.id} requires missing surcharge {sid}")

    codes = {p.code for p in active if p.code}
    for key, code in catalog.set_dimension_map.items():
        if code not in codes:
            warnings.append(f"Set size {key} maps to {code}, which is not an active product")

    unassigned = [r for r in catalog.mapping_rules if r.active and not r.product_id]
    if unassigned:
        warnings.append(f"{len(unassigned)} pravidel nemá přiřazený produkt")

    for rule in catalog.mapping_rules:
        if rule.active and rule.product_id and rule.product_id not in products_by_id:
            warnings.append(f"Mapping rule {rule.id} points to missing product {rule.product_id}")

    return warnings


def build_catalog_report(settings: Optional[Settings] = None, verbose: bool = True) -> dict:
    """
    Load the catalog, check it and save a build report.

    Args:
        settings: Optional settings override
        verbose: Print progress messages

    Returns:
        Build report dictionary
    """
    settings = settings or get_settings()

    report = {
        "timestamp": datetime.now().isoformat(),
        "status": "pending",
        "input_files": {},
        "metrics": {},
        "warnings": [],
        "errors": []
    }

    for key, path in (
        ("products", settings.products_csv),
        ("set_addons", settings.set_addons_csv),
        ("mapping_rules", settings.mapping_rules_csv),
        ("set_dimension_map", settings.set_dimension_map_json),
    ):
        if path.exists():
            report["input_files"][key] = {"path": str(path), "hash": get_file_hash(path)}

    try:
        catalog = load_catalog(settings)
    except (FileNotFoundError, ValueError, KeyError) as e:
        msg = f"ERROR: Failed to load catalog. {e}"
        report["errors"].append(msg)
        report["status"] = "failed"
        if verbose:
            print(msg)
        return report

    products_df = pd.DataFrame(
        [{'id': p.id, 'category': p.category, 'price_type': p.price_type, 'active': p.active,
          'is_set': p.is_set, 'addons': len(p.set_addons)} for p in catalog.products]
    )
    active_df = products_df[products_df['active']] if not products_df.empty else products_df

    report["metrics"]["product_count"] = len(products_df)
    report["metrics"]["active_product_count"] = len(active_df)
    report["metrics"]["by_price_type"] = (
        {k: int(v) for k, v in active_df['price_type'].value_counts().items()} if not active_df.empty else {}
    )
    report["metrics"]["by_category"] = (
        {k: int(v) for k, v in active_df['category'].value_counts().items()} if not active_df.empty else {}
    )

    sets_df = active_df[active_df['is_set']] if not active_df.empty else active_df
    report["metrics"]["set_count"] = len(sets_df)
    report["metrics"]["set_addon_count"] = int(sets_df['addons'].sum()) if not sets_df.empty else 0
    sets_without_addons = sorted(sets_df[sets_df['addons'] == 0]['id']) if not sets_df.empty else []
    report["metrics"]["sets_without_addons"] = sets_without_addons

    report["metrics"]["mapping_rule_count"] = len(catalog.mapping_rules)
    report["metrics"]["unassigned_rules"] = sum(1 for r in catalog.mapping_rules if r.active and not r.product_id)

    report["warnings"].extend(catalog_warnings(catalog))
    report["status"] = "success"

    if verbose:
        print(f"Catalog: {report['metrics']['active_product_count']} active products, "
              f"{report['metrics']['set_count']} sets, {report['metrics']['mapping_rule_count']} mapping rules")
        for warning in report["warnings"]:
            print(f"  ⚠️  {warning}")

    report_path = settings.build_report
    report_path.parent.mkdir(parents=True, exist_ok=True)
    with open(report_path, 'w', encoding='utf-8') as f:
        json.dump(report, f, indent=2, ensure_ascii=False)

    if verbose:
        print(f"Build report saved to: {report_path}")

    return report


if __name__ == "__main__":
    build_catalog_report()
