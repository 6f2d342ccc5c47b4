"""
Skeleton product codes.

Code format: BAZ-{SHAPE}-{TYPE}-{DIMENSIONS}
    BAZ-OBD-SK-3-6-1.2   rectangle, skimmer, 3×6×1.2 m
    BAZ-KRU-SK-4-1.5     circle, skimmer, Ø4 m, 1.5 m deep
    BAZ-OBD-O-PR-4-8-1.5 sharp-cornered rectangle, overflow
"""
from dataclasses import dataclass
from typing import Optional

from .geometry import format_dimensions
from .models import Configuration, PoolDimensions, CIRCLE, RECTANGLE_ROUNDED, RECTANGLE_SHARP

SHAPE_CODES = {
    'OBD': RECTANGLE_ROUNDED,
    'KRU': CIRCLE,
}

TYPE_CODES = {
    'SK': 'skimmer',
    'PR': 'overflow',
}

# Values above these are stored in decimeters ("6-35-15" = 6 × 3.5 × 1.5 m)
MAX_SIDE_METERS = 12
MAX_DEPTH_METERS = 3


@dataclass
class ParsedSkeletonCode:
    shape: str
    pool_type: str
    dimensions: PoolDimensions


def build_pool_product_code(config: Configuration) -> str:
    """
    Skeleton code for a configuration.

    Both rectangle shapes share the OBD skeleton; sharp corners are priced
    as an addon on top of it.
    """
    shape_code = 'KRU' if config.pool_shape == CIRCLE else 'OBD'
    type_code = 'SK' if config.pool_type == 'skimmer' else 'PR'
    return f"BAZ-{shape_code}-{type_code}-{format_dimensions(config.dimensions, config.pool_shape)}"


def _to_meters(raw: str, limit: float) -> Optional[float]:
    try:
        value = float(raw)
    except ValueError:
        return None
    if value > limit:
        value = value / 10
    return value if value > 0 else None


def parse_skeleton_code(code: Optional[str]) -> Optional[ParsedSkeletonCode]:
    """Parse a skeleton product code, or None if it is not one."""
    if not code:
        return None

    normalized = code.upper().strip()
    if not normalized.startswith('BAZ-'):
        return None

    parts = normalized[4:].split('-')
    if len(parts) < 4:
        return None

    type_index = 1
    if len(parts) >= 5 and parts[0] == 'OBD' and parts[1] == 'O':
        shape = RECTANGLE_SHARP
        type_index = 2
    else:
        shape = SHAPE_CODES.get(parts[0])
    if not shape:
        return None

    pool_type = TYPE_CODES.get(parts[type_index])
    if not pool_type:
        return None

    dims = parts[type_index + 1:]
    if shape == CIRCLE:
        if len(dims) < 2:
            return None
        diameter = _to_meters(dims[0], MAX_SIDE_METERS)
        depth = _to_meters(dims[1], MAX_DEPTH_METERS)
        if diameter is None or depth is None:
            return None
        return ParsedSkeletonCode(shape, pool_type, PoolDimensions(diameter=diameter, depth=depth))

    if len(dims) < 3:
        return None
    width = _to_meters(dims[0], MAX_SIDE_METERS)
    length = _to_meters(dims[1], MAX_SIDE_METERS)
    depth = _to_meters(dims[2], MAX_DEPTH_METERS)
    if width is None or length is None or depth is None:
        return None
    return ParsedSkeletonCode(shape, pool_type, PoolDimensions(width=width, length=length, depth=depth))


def is_skeleton_code(code: Optional[str]) -> bool:
    return parse_skeleton_code(code) is not None
