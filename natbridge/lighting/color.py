"""
Color conversion helpers for the Hue API.

The bridge takes colors as CIE 1931 xy coordinates and brightness as a
percentage; the bus side speaks 8-bit RGB and a 0-254 level.
"""

from typing import Tuple

# Chromaticity used when the input carries no color (all channels zero)
DEFAULT_XY = (0.3227, 0.3290)

MAX_LEVEL = 254


def _gamma(channel: int) -> float:
    value = max(0, min(255, channel)) / 255.0
    if value > 0.04045:
        return ((value + 0.055) / 1.055) ** 2.4
    return value / 12.92


def rgb_to_xy(red: int, green: int, blue: int) -> Tuple[float, float]:
    """Convert 8-bit RGB to xy using the wide-gamut D65 matrix."""
    r, g, b = _gamma(red), _gamma(green), _gamma(blue)

    x = r * 0.664511 + g * 0.154324 + b * 0.162028
    y = r * 0.283881 + g * 0.668433 + b * 0.047685
    z = r * 0.000088 + g * 0.072310 + b * 0.986039

    total = x + y + z
    if total == 0:
        return DEFAULT_XY
    return round(x / total, 4), round(y / total, 4)


def brightness_to_percent(level: int) -> float:
    """Convert a 0-254 level into the 0-100 percentage the bridge expects."""
    level = max(0, min(MAX_LEVEL, level))
    return round(level / MAX_LEVEL * 100.0, 2)
