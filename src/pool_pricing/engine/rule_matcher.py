"""
Rule Matcher - Matches configurator choices to mapping rules.

Used by the quote generator to turn accessory choices (stairs,
technology, lighting, ...) into catalog products.
"""
import logging
from typing import Optional
from dataclasses import dataclass

from .models import ProductMappingRule

logger = logging.getLogger(__name__)

# Configurator values that never map to a product
SKIP_VALUES = ('none',)


@dataclass
class MatchedRule:
    """A rule that matched with context."""
    rule: ProductMappingRule
    match_reason: str


def rule_matches(
    rule: ProductMappingRule,
    config_field: str,
    config_value: Optional[str],
    pool_shape: Optional[str] = None,
    pool_type: Optional[str] = None,
) -> Optional[str]:
    """
    Check a single rule against a configurator choice.

    Returns the match reason, or None when the rule does not apply.
    """
    if not rule.active:
        return None
    if config_value is None or config_value in SKIP_VALUES:
        return None
    if rule.config_field != config_field or rule.config_value != config_value:
        return None

    reasons = [f"{config_field}={config_value}"]

    if rule.pool_shape:
        if pool_shape not in rule.pool_shape:
            return None
        reasons.append(f"shape={pool_shape}")

    if rule.pool_type:
        if pool_type not in rule.pool_type:
            return None
        reasons.append(f"type={pool_type}")

    return ", ".join(reasons)


def select_mapping_rule(
    rules: list[ProductMappingRule],
    config_field: str,
    config_value: Optional[str],
    pool_shape: Optional[str] = None,
    pool_type: Optional[str] = None,
) -> Optional[MatchedRule]:
    """
    First rule in list order that matches, or None.

    No further tie-breaking: when several active rules match the same
    choice, the earlier one wins.
    """
    for rule in rules:
        reason = rule_matches(rule, config_field, config_value, pool_shape, pool_type)
        if reason is not None:
            return MatchedRule(rule=rule, match_reason=reason)
    return None


class RuleMatcher:
    """
    Holds the active mapping rules in resolution order.

    Rules are sorted by sort_order once; the sort is stable so rules with
    equal sort_order keep their catalog order.
    """

    def __init__(self, rules: Optional[list[ProductMappingRule]] = None):
        self.rules = sorted(
            (r for r in (rules or []) if r.active),
            key=lambda r: r.sort_order,
        )

    def find_matching_rules(
        self,
        config_field: str,
        config_value: Optional[str],
        pool_shape: Optional[str] = None,
        pool_type: Optional[str] = None,
    ) -> list[MatchedRule]:
        """All matching rules in resolution order (for diagnostics)."""
        matched = []
        for rule in self.rules:
            reason = rule_matches(rule, config_field, config_value, pool_shape, pool_type)
            if reason is not None:
                matched.append(MatchedRule(rule=rule, match_reason=reason))
        return matched

    def select(
        self,
        config_field: str,
        config_value: Optional[str],
        pool_shape: Optional[str] = None,
        pool_type: Optional[str] = None,
    ) -> Optional[MatchedRule]:
        matched = select_mapping_rule(self.rules, config_field, config_value, pool_shape, pool_type)
        if matched and len(self.find_matching_rules(config_field, config_value, pool_shape, pool_type)) > 1:
            logger.info(
                "Several mapping rules match %s=%s, using '%s'",
                config_field, config_value, matched.rule.id,
            )
        return matched

    def unassigned_rules(self) -> list[ProductMappingRule]:
        """Active rules that have no product yet."""
        return [r for r in self.rules if not r.product_id]


def rule_from_dict(data: dict) -> ProductMappingRule:
    """Build a rule from a compiled JSON entry."""
    return ProductMappingRule(
        id=str(data['id']),
        name=data.get('name') or str(data['id']),
        config_field=data['config_field'],
        config_value=str(data['config_value']),
        product_id=data.get('product_id') or None,
        quantity=float(data.get('quantity') or 1),
        pool_shape=list(data.get('pool_shape') or []),
        pool_type=list(data.get('pool_type') or []),
        sort_order=int(data.get('sort_order') or 0),
        active=bool(data.get('active', True)),
        description=data.get('description') or None,
    )
