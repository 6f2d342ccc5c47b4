"""
Mapping Rules Service - CRUD operations for product mapping rules.
Handles reading/writing mapping_rules.csv and auto-compiling to JSON.
"""
import csv
import logging
from pathlib import Path
from typing import Callable, Optional
from dataclasses import dataclass, field
import re

from ..engine.catalog_resolver import find_percentage_chains
from ..engine.models import (
    CatalogSnapshot,
    Configuration,
    ProductMappingRule,
    CONFIG_FIELDS,
    CONFIG_FIELD_VALUES,
    POOL_SHAPES,
    POOL_TYPES,
)
from ..engine.rule_matcher import RuleMatcher
from ..rules.compile_rules import LIST_SEPARATOR, compile_rules, parse_bool, parse_list

logger = logging.getLogger(__name__)


def rule_to_csv_row(rule: ProductMappingRule) -> dict:
    """Convert to CSV row format."""
    return {
        'id': rule.id,
        'name': rule.name,
        'config_field': rule.config_field,
        'config_value': rule.config_value,
        'product_id': rule.product_id or '',
        'quantity': f"{rule.quantity:g}",
        'pool_shape': LIST_SEPARATOR.join(rule.pool_shape),
        'pool_type': LIST_SEPARATOR.join(rule.pool_type),
        'sort_order': str(rule.sort_order),
        'active': 'true' if rule.active else 'false',
        'description': rule.description or '',
    }


def rule_from_csv_row(row: dict) -> ProductMappingRule:
    """Create a rule from a CSV row (lenient; validation is separate)."""
    return ProductMappingRule(
        id=row.get('id', ''),
        name=row.get('name', '') or row.get('id', ''),
        config_field=row.get('config_field', ''),
        config_value=row.get('config_value', ''),
        product_id=row.get('product_id') or None,
        quantity=float(str(row.get('quantity') or 1).replace(',', '.')),
        pool_shape=parse_list(row.get('pool_shape', '')),
        pool_type=parse_list(row.get('pool_type', '')),
        sort_order=int(row.get('sort_order') or 0),
        active=parse_bool(row.get('active', 'true')),
        description=row.get('description') or None,
    )


@dataclass
class ValidationResult:
    """Result of rule validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class MappingRulesService:
    """Service for managing product mapping rules."""

    CSV_COLUMNS = [
        'id', 'name', 'config_field', 'config_value', 'product_id', 'quantity',
        'pool_shape', 'pool_type', 'sort_order', 'active', 'description',
    ]

    def __init__(
        self,
        rules_csv_path: Path,
        compiled_rules_path: Path,
        catalog_provider: Optional[Callable[[], CatalogSnapshot]] = None,
    ):
        self.rules_csv_path = rules_csv_path
        self.compiled_rules_path = compiled_rules_path
        self.catalog_provider = catalog_provider

    def list_rules(self, include_inactive: bool = True) -> list[ProductMappingRule]:
        """List all rules from CSV."""
        rules = []
        if not self.rules_csv_path.exists():
            return rules

        with open(self.rules_csv_path, 'r', encoding='utf-8') as f:
            reader = csv.DictReader(f)
            for row in reader:
                if not row.get('id'):
                    continue
                rule = rule_from_csv_row(row)
                if include_inactive or rule.active:
                    rules.append(rule)

        return rules

    def get_rule(self, rule_id: str) -> Optional[ProductMappingRule]:
        """Get a single rule by ID."""
        for rule in self.list_rules():
            if rule.id == rule_id:
                return rule
        return None

    def create_rule(self, rule: ProductMappingRule, auto_compile: bool = True) -> ProductMappingRule:
        """Create a new rule."""
        if not rule.id:
            rule.id = self._generate_rule_id(rule)

        if self.get_rule(rule.id):
            raise ValueError(f"Rule with ID '{rule.id}' already exists")

        validation = self.validate_rule(rule)
        if not validation.valid:
            raise ValueError("; ".join(validation.errors))

        rules = self.list_rules()
        rules.append(rule)
        self._write_rules(rules)

        if auto_compile:
            self.compile_rules()

        return rule

    def update_rule(self, rule_id: str, updates: dict, auto_compile: bool = True) -> ProductMappingRule:
        """Update an existing rule."""
        rules = self.list_rules()
        index = next((i for i, r in enumerate(rules) if r.id == rule_id), None)

        if index is None:
            raise ValueError(f"Rule with ID '{rule_id}' not found")

        rule = rules[index]
        for key, value in updates.items():
            if key != 'id' and hasattr(rule, key):
                setattr(rule, key, value)

        validation = self.validate_rule(rule)
        if not validation.valid:
            raise ValueError("; ".join(validation.errors))

        self._write_rules(rules)

        if auto_compile:
            self.compile_rules()

        return rule

    def delete_rule(self, rule_id: str, auto_compile: bool = True) -> bool:
        """Delete a rule."""
        rules = self.list_rules()
        original_count = len(rules)
        rules = [r for r in rules if r.id != rule_id]

        if len(rules) == original_count:
            raise ValueError(f"Rule with ID '{rule_id}' not found")

        self._write_rules(rules)

        if auto_compile:
            self.compile_rules()

        return True

    def validate_rule(self, rule: ProductMappingRule) -> ValidationResult:
        """Validate a rule before saving."""
        result = ValidationResult(valid=True)

        if not rule.name:
            result.errors.append("Name is required")

        if rule.config_field not in CONFIG_FIELDS:
            result.errors.append(f"Config field must be one of: {', '.join(CONFIG_FIELDS)}")
        elif rule.config_value not in CONFIG_FIELD_VALUES[rule.config_field]:
            result.errors.append(
                f"Value '{rule.config_value}' is not a {rule.config_field} choice "
                f"({', '.join(CONFIG_FIELD_VALUES[rule.config_field])})"
            )

        if rule.quantity is None or rule.quantity <= 0:
            result.errors.append("Quantity must be positive")

        for shape in rule.pool_shape:
            if shape not in POOL_SHAPES:
                result.errors.append(f"Unknown pool shape '{shape}'")
        for pool_type in rule.pool_type:
            if pool_type not in POOL_TYPES:
                result.errors.append(f"Unknown pool type '{pool_type}'")

        if rule.config_value == 'none':
            result.warnings.append("Rules for 'none' never match; the choice means no product")

        if not rule.product_id:
            result.warnings.append("No product assigned; the rule is skipped until one is set")
        elif self.catalog_provider is not None:
            catalog = self.catalog_provider()
            product = catalog.get_product(rule.product_id)
            if product is None:
                result.warnings.append(f"Product '{rule.product_id}' not found in catalog")
            else:
                if not product.active:
                    result.warnings.append(f"Product '{rule.product_id}' is inactive")
                chained = dict(find_percentage_chains(catalog.active_products()))
                if product.id in chained:
                    result.warnings.append(
                        f"Product '{product.id}' is a percentage of percentage-priced '{chained[product.id]}'"
                    )

        result.valid = not result.errors

        if result.valid:
            result.warnings.extend(self._check_conflicts(rule))

        return result

    def _check_conflicts(self, rule: ProductMappingRule) -> list[str]:
        """Rules that match the same choice; only the first in sort order is used."""
        warnings = []

        for existing in self.list_rules(include_inactive=False):
            if existing.id == rule.id:
                continue
            if existing.config_field != rule.config_field or existing.config_value != rule.config_value:
                continue

            shapes_overlap = not rule.pool_shape or not existing.pool_shape or \
                bool(set(rule.pool_shape) & set(existing.pool_shape))
            types_overlap = not rule.pool_type or not existing.pool_type or \
                bool(set(rule.pool_type) & set(existing.pool_type))

            if shapes_overlap and types_overlap:
                winner = existing if existing.sort_order <= rule.sort_order else rule
                warnings.append(
                    f"Potential conflict with rule '{existing.id}' "
                    f"(sort order {existing.sort_order} vs {rule.sort_order}, '{winner.id}' wins)"
                )

        return warnings

    def _generate_rule_id(self, rule: ProductMappingRule) -> str:
        """Generate a unique rule ID."""
        base = f"{rule.config_field}-{rule.config_value}".upper()
        base = re.sub(r'[^A-Z0-9]+', '-', base).strip('-') or "RULE"

        existing_ids = {r.id for r in self.list_rules()}
        candidate = base
        counter = 1
        while candidate in existing_ids:
            candidate = f"{base}-{counter}"
            counter += 1

        return candidate

    def _write_rules(self, rules: list[ProductMappingRule]):
        """Write rules back to CSV."""
        self.rules_csv_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.rules_csv_path, 'w', encoding='utf-8', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=self.CSV_COLUMNS)
            writer.writeheader()
            for rule in rules:
                writer.writerow(rule_to_csv_row(rule))

    def compile_rules(self) -> tuple[bool, str]:
        """Recompile the CSV to JSON."""
        success, rules, errors = compile_rules(self.rules_csv_path, self.compiled_rules_path, verbose=False)
        if not success:
            logger.warning("Mapping rule compilation failed: %s", "; ".join(errors))
            return False, "\n".join(errors)
        return True, f"Compiled {len(rules)} mapping rules"

    def test_configuration(self, config: Configuration) -> list[dict]:
        """Which rule each configurator field resolves to, for the admin test panel."""
        matcher = RuleMatcher(self.list_rules(include_inactive=False))
        results = []
        for config_field in CONFIG_FIELDS:
            value = config.get_field(config_field)
            candidates = matcher.find_matching_rules(config_field, value, config.pool_shape, config.pool_type)
            selected = candidates[0] if candidates else None
            results.append({
                'config_field': config_field,
                'config_value': value,
                'rule_id': selected.rule.id if selected else None,
                'product_id': selected.rule.product_id if selected else None,
                'match_reason': selected.match_reason if selected else None,
                'candidates': [c.rule.id for c in candidates],
            })
        return results

    def get_stats(self) -> dict:
        """Get statistics about rules."""
        rules = self.list_rules()

        active = [r for r in rules if r.active]
        unassigned = [r for r in active if not r.product_id]
        by_field = {}
        for r in rules:
            by_field[r.config_field] = by_field.get(r.config_field, 0) + 1

        stats = {
            'total': len(rules),
            'active': len(active),
            'inactive': len(rules) - len(active),
            'unassigned': len(unassigned),
            'by_field': by_field,
        }
        if unassigned:
            stats['unassigned_message'] = f"{len(unassigned)} pravidel nemá přiřazený produkt"
        return stats
