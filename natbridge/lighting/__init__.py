"""
Lighting (Philips Hue) integration.

Key Components:
- models: lighting targets and bridge status
- client: HueClient for the bridge's local API
- discovery: finding bridges on the network
- color: RGB/brightness conversion
"""

from .models import (
    TargetType,
    LightingTarget,
    DiscoveredBridge,
    BridgeStatus,
)

from .client import (
    HueClient,
    LightingError,
)

from .discovery import discover_bridges

from .color import rgb_to_xy, brightness_to_percent


__all__ = [
    "TargetType",
    "LightingTarget",
    "DiscoveredBridge",
    "BridgeStatus",
    "HueClient",
    "LightingError",
    "discover_bridges",
    "rgb_to_xy",
    "brightness_to_percent",
]
