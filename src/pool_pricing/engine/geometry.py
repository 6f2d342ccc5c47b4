"""
Pool geometry - surface, perimeter and volume for pricing.

All functions are total over their input: a missing required dimension
yields 0 (or None for the parser) so that pricing never fails on
incomplete data. Callers treat 0 as "cannot measure", not as a real pool.
"""
import math
import re
from decimal import Decimal
from typing import Optional

from .models import PoolDimensions, CIRCLE

_SEPARATORS = re.compile(r'[x×X]')


def calculate_surface(shape: str, dims: PoolDimensions) -> float:
    """
    Total lined surface of the pool (walls + bottom) in m².

    Rectangles with rounded or sharp corners are measured the same way.
    """
    if not dims.depth:
        return 0.0

    if shape == CIRCLE:
        if not dims.diameter:
            return 0.0
        radius = dims.diameter / 2
        walls = math.pi * dims.diameter * dims.depth
        bottom = math.pi * radius * radius
        return walls + bottom

    if not dims.width or not dims.length:
        return 0.0

    walls = 2 * (dims.width * dims.depth) + 2 * (dims.length * dims.depth)
    bottom = dims.width * dims.length
    return walls + bottom


def calculate_perimeter(shape: str, dims: PoolDimensions) -> float:
    """Skeleton perimeter in running meters (bm)."""
    if shape == CIRCLE:
        if not dims.diameter:
            return 0.0
        return math.pi * dims.diameter

    if not dims.width or not dims.length:
        return 0.0
    return 2 * (dims.width + dims.length)


def calculate_volume(shape: str, dims: PoolDimensions) -> float:
    """Water volume in m³."""
    if not dims.depth:
        return 0.0

    if shape == CIRCLE:
        if not dims.diameter:
            return 0.0
        radius = dims.diameter / 2
        return math.pi * radius * radius * dims.depth

    if not dims.width or not dims.length:
        return 0.0
    return dims.width * dims.length * dims.depth


def format_surface(surface: float) -> str:
    return f"{surface:.1f} m²"


def format_perimeter(perimeter: float) -> str:
    return f"{perimeter:.1f} bm"


def format_volume(volume: float) -> str:
    return f"{volume:.1f} m³"


def _parse_number(text: str) -> Optional[float]:
    text = text.strip().replace(',', '.')
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def parse_dimension_string(dimension_str: str, shape: str) -> Optional[PoolDimensions]:
    """
    Parse "3-6-1.2", "3x6x1.2" or "3 × 6 × 1,2" into PoolDimensions.

    Circles take "diameter-depth", rectangles "width-length-depth".
    Returns None when the string is malformed for the given shape.
    """
    if not dimension_str:
        return None

    normalized = _SEPARATORS.sub('-', dimension_str)
    parts = [_parse_number(p) for p in normalized.split('-')]
    if any(p is None for p in parts):
        return None

    if shape == CIRCLE:
        if len(parts) < 2:
            return None
        return PoolDimensions(diameter=parts[0], depth=parts[1])

    if len(parts) < 3:
        return None
    return PoolDimensions(width=parts[0], length=parts[1], depth=parts[2])


def format_number(value: Optional[float]) -> str:
    """Shortest exact decimal form without exponent or trailing zeros: 3, 1.5, 3.1234567."""
    if value is None:
        return ''
    text = format(Decimal(repr(float(value))), 'f')
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    return text


def format_dimensions(dims: PoolDimensions, shape: str) -> str:
    """Inverse of parse_dimension_string: "3-6-1.5" or "4-1.2"."""
    if shape == CIRCLE:
        return f"{format_number(dims.diameter)}-{format_number(dims.depth)}"
    return f"{format_number(dims.width)}-{format_number(dims.length)}-{format_number(dims.depth)}"


def describe_dimensions(dims: PoolDimensions, shape: str) -> str:
    """Customer-facing dimensions, e.g. "6 × 3 × 1.5 m" or "Ø4 × 1.2 m"."""
    if shape == CIRCLE:
        return f"Ø{format_number(dims.diameter)} × {format_number(dims.depth)} m"
    return f"{format_number(dims.length)} × {format_number(dims.width)} × {format_number(dims.depth)} m"
