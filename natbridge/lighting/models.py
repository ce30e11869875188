"""
Lighting API models.

Defines the lighting targets (lights, groups, scenes) exposed by the
Hue bridge and the bridge connection state.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID


class TargetType(str, Enum):
    """Kind of lighting target."""
    LIGHT = "light"
    GROUP = "group"
    SCENE = "scene"


@dataclass
class LightingTarget:
    """
    An addressable lighting entity on the bridge.

    Capability flags drive the binding type chosen by the allocator.
    """
    id: UUID
    name: str = ""
    target_type: TargetType = TargetType.LIGHT
    supports_color: bool = False
    supports_dimming: bool = False
    is_on: Optional[bool] = None
    brightness: Optional[float] = None  # Percent, 0-100

    @property
    def display_name(self) -> str:
        return self.name or f"{self.target_type.value.title()} {self.id}"

    @classmethod
    def from_resource(cls, data: Dict[str, Any], target_type: TargetType = TargetType.LIGHT) -> "LightingTarget":
        """Build a target from a CLIP v2 resource object."""
        metadata = data.get("metadata") or {}
        on = data.get("on") or {}
        dimming = data.get("dimming")
        return cls(
            id=UUID(str(data["id"])),
            name=metadata.get("name", ""),
            target_type=target_type,
            supports_color=data.get("color") is not None,
            supports_dimming=dimming is not None,
            is_on=on.get("on"),
            brightness=(dimming or {}).get("brightness"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "type": self.target_type.value,
            "supports_color": self.supports_color,
            "supports_dimming": self.supports_dimming,
            "on": self.is_on,
            "brightness": self.brightness,
        }


@dataclass
class DiscoveredBridge:
    """A bridge found on the local network."""
    ip_address: str
    bridge_id: str = ""
    port: int = 443


@dataclass
class BridgeStatus:
    """Connection state of the lighting bridge."""
    is_connected: bool = False
    is_paired: bool = False
    ip_address: Optional[str] = None
    bridge_id: Optional[str] = None
    api_version: Optional[str] = None
    app_key: Optional[str] = field(default=None, repr=False)

    @property
    def is_ready(self) -> bool:
        return self.is_connected and self.is_paired

    @property
    def description(self) -> str:
        if self.is_ready:
            return "Connected"
        if self.is_paired:
            return "Paired (Offline)"
        if self.ip_address:
            return "Discovered (Not Paired)"
        return "Not Discovered"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_connected": self.is_connected,
            "is_paired": self.is_paired,
            "ip_address": self.ip_address,
            "bridge_id": self.bridge_id,
            "api_version": self.api_version,
            "status": self.description,
        }
