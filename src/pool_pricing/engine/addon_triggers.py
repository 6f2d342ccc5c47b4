"""
Set addon triggers.

A set addon is auto-attached when its trigger matches the configuration.
Triggers are stored explicitly on each addon; addons authored before the
trigger column existed are decoded from their Czech display name.
"""
import re
from typing import Optional

from .models import (
    AddonTrigger,
    Configuration,
    SetAddon,
    RECTANGLE_SHARP,
    TRIGGER_DEPTH,
    TRIGGER_SHARP_CORNERS,
    TRIGGER_STAIRS,
)

_DEPTH_PATTERN = re.compile(r'hloubka (\d+(?:[,.]\d+)?)\s*m?')

# Name fragment → stairs choice
STAIRS_NAME_PATTERNS = (
    ('schody přes šířku', 'full_width'),
    ('trojúhelníkové schody', 'corner_triangle'),
    ('románské schody', 'roman'),
)

DEPTH_TOLERANCE = 1e-6


def decode_addon_trigger(name: str) -> Optional[AddonTrigger]:
    """Infer a trigger from a legacy addon name, or None if unrecognised."""
    if not name:
        return None
    lowered = name.lower()

    depth_match = _DEPTH_PATTERN.search(lowered)
    if depth_match:
        return AddonTrigger(kind=TRIGGER_DEPTH, value=float(depth_match.group(1).replace(',', '.')))

    if 'ostré rohy' in lowered:
        return AddonTrigger(kind=TRIGGER_SHARP_CORNERS)

    for fragment, stairs in STAIRS_NAME_PATTERNS:
        if fragment in lowered:
            return AddonTrigger(kind=TRIGGER_STAIRS, value=stairs)

    return None


def effective_trigger(addon: SetAddon) -> Optional[AddonTrigger]:
    """The stored trigger, falling back to name decoding for legacy rows."""
    if addon.trigger is not None:
        return addon.trigger
    return decode_addon_trigger(addon.name)


def trigger_matches(trigger: Optional[AddonTrigger], config: Configuration) -> bool:
    if trigger is None:
        return False

    if trigger.kind == TRIGGER_DEPTH:
        if config.dimensions.depth is None or trigger.value is None:
            return False
        try:
            depth = float(trigger.value)
        except (TypeError, ValueError):
            return False
        return abs(config.dimensions.depth - depth) < DEPTH_TOLERANCE

    if trigger.kind == TRIGGER_SHARP_CORNERS:
        return config.pool_shape == RECTANGLE_SHARP

    if trigger.kind == TRIGGER_STAIRS:
        return config.stairs is not None and config.stairs == trigger.value

    return False


def select_set_addons(addons: list[SetAddon], config: Configuration) -> list[SetAddon]:
    """Addons to auto-attach, in sort_order. Untriggered addons stay manual."""
    ordered = sorted(addons, key=lambda a: a.sort_order)
    return [a for a in ordered if trigger_matches(effective_trigger(a), config)]


def describe_trigger(trigger: Optional[AddonTrigger]) -> Optional[str]:
    """Admin-facing description of when an addon is attached."""
    if trigger is None:
        return None
    if trigger.kind == TRIGGER_DEPTH:
        return f"Při hloubce {float(trigger.value):g}m"
    if trigger.kind == TRIGGER_SHARP_CORNERS:
        return "Při ostrém tvaru bazénu"
    if trigger.kind == TRIGGER_STAIRS:
        labels = {
            'full_width': 'Při volbě schodů „přes šířku"',
            'corner_triangle': 'Při volbě trojúhelníkových schodů',
            'roman': 'Při volbě románských schodů',
        }
        return labels.get(trigger.value, f"Při volbě schodů {trigger.value}")
    return None
