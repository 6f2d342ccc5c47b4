"""
Rule Compiler - Validates and compiles mapping rules from CSV to JSON.

Reads mapping_rules.csv, validates each row, and outputs compiled_rules.json
sorted by sort_order (the order the quote generator resolves them in).

Also hosts the one-time set addon trigger migration: legacy addons whose
trigger was implied by their Czech name get explicit trigger columns.
"""
import csv
import json
import logging
from pathlib import Path
from typing import Optional
from datetime import datetime
from dataclasses import asdict

from ..engine.addon_triggers import decode_addon_trigger
from ..engine.geometry import format_number
from ..engine.models import (
    ProductMappingRule,
    CONFIG_FIELDS,
    CONFIG_FIELD_VALUES,
    POOL_SHAPES,
    POOL_TYPES,
    TRIGGER_KINDS,
)

logger = logging.getLogger(__name__)

LIST_SEPARATOR = '|'


def parse_bool(value: str) -> bool:
    """Parse a boolean from CSV string."""
    return str(value or '').strip().lower() in ('true', '1', 'yes', 'on')


def parse_optional_int(value: str) -> Optional[int]:
    """Parse optional integer."""
    if value is None or str(value).strip() == '':
        return None
    return int(value)


def parse_optional_float(value: str) -> Optional[float]:
    """Parse optional float (decimal comma accepted)."""
    if value is None or str(value).strip() == '':
        return None
    return float(str(value).strip().replace(',', '.'))


def parse_optional_str(value: str) -> Optional[str]:
    """Parse optional string (empty = None)."""
    if value is None or str(value).strip() == '':
        return None
    return str(value).strip()


def parse_list(value: str) -> list[str]:
    """Parse a "|"-separated list; empty means no restriction."""
    if not value:
        return []
    return [v.strip() for v in str(value).split(LIST_SEPARATOR) if v.strip()]


def validate_rule(row: dict, line_num: int) -> tuple[Optional[ProductMappingRule], list[str]]:
    """
    Validate and parse a mapping rule from a CSV row.

    Returns (rule, errors) - rule is None if validation failed.
    """
    errors = []

    rule_id = parse_optional_str(row.get('id', ''))
    if not rule_id:
        errors.append(f"Line {line_num}: id is required")
        return None, errors

    name = parse_optional_str(row.get('name', '')) or rule_id

    config_field = parse_optional_str(row.get('config_field', ''))
    if config_field not in CONFIG_FIELDS:
        errors.append(f"Line {line_num}: invalid config_field '{config_field}', must be one of: {', '.join(CONFIG_FIELDS)}")
        return None, errors

    config_value = parse_optional_str(row.get('config_value', ''))
    if not config_value:
        errors.append(f"Line {line_num}: config_value is required")
        return None, errors
    if config_value not in CONFIG_FIELD_VALUES[config_field]:
        errors.append(
            f"Line {line_num}: invalid config_value '{config_value}' for {config_field}, "
            f"must be one of: {', '.join(CONFIG_FIELD_VALUES[config_field])}"
        )

    try:
        quantity = parse_optional_float(row.get('quantity', ''))
    except ValueError:
        errors.append(f"Line {line_num}: quantity must be a number")
        return None, errors
    if quantity is None:
        quantity = 1
    if quantity <= 0:
        errors.append(f"Line {line_num}: quantity must be positive")

    try:
        sort_order = parse_optional_int(row.get('sort_order', '')) or 0
    except ValueError:
        errors.append(f"Line {line_num}: sort_order must be an integer")
        return None, errors

    pool_shape = parse_list(row.get('pool_shape', ''))
    for shape in pool_shape:
        if shape not in POOL_SHAPES:
            errors.append(f"Line {line_num}: invalid pool_shape '{shape}'")

    pool_type = parse_list(row.get('pool_type', ''))
    for pool_type_value in pool_type:
        if pool_type_value not in POOL_TYPES:
            errors.append(f"Line {line_num}: invalid pool_type '{pool_type_value}'")

    if errors:
        return None, errors

    return ProductMappingRule(
        id=rule_id,
        name=name,
        config_field=config_field,
        config_value=config_value,
        product_id=parse_optional_str(row.get('product_id', '')),
        quantity=quantity,
        pool_shape=pool_shape,
        pool_type=pool_type,
        sort_order=sort_order,
        active=parse_bool(row.get('active', 'true')),
        description=parse_optional_str(row.get('description', '')),
    ), []


def read_rules_csv(rules_csv: Path) -> tuple[list[ProductMappingRule], list[str]]:
    """Read and validate every row. Returns (valid rules, errors)."""
    rules = []
    all_errors = []

    with open(rules_csv, 'r', newline='', encoding='utf-8') as f:
        reader = csv.DictReader(f)

        for line_num, row in enumerate(reader, start=2):  # +2 for 1-indexed header row
            rule, errors = validate_rule(row, line_num)

            if errors:
                all_errors.extend(errors)
            elif rule:
                rules.append(rule)

    seen = set()
    for rule in rules:
        if rule.id in seen:
            all_errors.append(f"Duplicate rule id '{rule.id}'")
        seen.add(rule.id)

    return rules, all_errors


def compile_rules(
    rules_csv: Path,
    output_json: Path,
    verbose: bool = True
) -> tuple[bool, list[ProductMappingRule], list[str]]:
    """
    Compile mapping rules from CSV to JSON.

    Returns (success, rules, errors).
    """
    if not rules_csv.exists():
        return False, [], [f"Rules file not found: {rules_csv}"]

    rules, all_errors = read_rules_csv(rules_csv)

    if all_errors:
        if verbose:
            print("Validation errors:")
            for err in all_errors:
                print(f"  ❌ {err}")
        return False, rules, all_errors

    # Stable: equal sort_order keeps CSV order
    rules.sort(key=lambda r: r.sort_order)

    output_data = {
        "compiled_at": datetime.now().isoformat(),
        "source_file": str(rules_csv),
        "total_rules": len(rules),
        "active_rules": sum(1 for r in rules if r.active),
        "unassigned_rules": sum(1 for r in rules if r.active and not r.product_id),
        "rules": [asdict(rule) for rule in rules],
    }

    output_json.parent.mkdir(parents=True, exist_ok=True)
    with open(output_json, 'w', encoding='utf-8') as f:
        json.dump(output_data, f, indent=2, ensure_ascii=False)

    if verbose:
        print(f"✅ Compiled {len(rules)} mapping rules ({output_data['active_rules']} active)")
        if output_data['unassigned_rules']:
            print(f"   ⚠️  {output_data['unassigned_rules']} pravidel nemá přiřazený produkt")
        print(f"   Output: {output_json}")

    return True, rules, []


def migrate_addon_triggers(set_addons_csv: Path, verbose: bool = True) -> dict:
    """
    Write explicit trigger columns for set addons that have none.

    Rows that already carry a trigger_kind are left alone, so running the
    migration twice changes nothing. Addons whose name matches no known
    pattern keep an empty trigger and stay manual.

    Returns counts: {'migrated', 'already_set', 'manual'}.
    """
    with open(set_addons_csv, 'r', newline='', encoding='utf-8') as f:
        reader = csv.DictReader(f)
        fieldnames = list(reader.fieldnames or [])
        rows = list(reader)

    for column in ('trigger_kind', 'trigger_value'):
        if column not in fieldnames:
            fieldnames.append(column)

    counts = {'migrated': 0, 'already_set': 0, 'manual': 0}
    for row in rows:
        kind = parse_optional_str(row.get('trigger_kind', ''))
        if kind:
            if kind not in TRIGGER_KINDS:
                logger.warning("Set addon %s has unknown trigger kind '%s'", row.get('id'), kind)
            counts['already_set'] += 1
            continue

        trigger = decode_addon_trigger(row.get('name', ''))
        if trigger is None:
            row['trigger_kind'] = ''
            row['trigger_value'] = ''
            counts['manual'] += 1
            continue

        row['trigger_kind'] = trigger.kind
        row['trigger_value'] = '' if trigger.value is None else (
            format_number(trigger.value) if isinstance(trigger.value, float) else str(trigger.value)
        )
        counts['migrated'] += 1

    with open(set_addons_csv, 'w', newline='', encoding='utf-8') as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for row in rows:
            writer.writerow({k: row.get(k, '') for k in fieldnames})

    if verbose:
        print(
            f"✅ Set addon triggers: {counts['migrated']} migrated, "
            f"{counts['already_set']} already explicit, {counts['manual']} manual"
        )
    return counts


def main():
    """CLI entry point."""
    import sys

    from ..config.settings import get_settings

    settings = get_settings()

    print("Compiling mapping rules...")
    success, rules, errors = compile_rules(settings.mapping_rules_csv, settings.compiled_rules)

    if not success:
        print(f"\n❌ Compilation failed with {len(errors)} errors")
        sys.exit(1)


if __name__ == "__main__":
    main()
