"""
Mapping models.

A Binding ties one field device, addressed by its extension and device
serials, to one lighting target. The on-disk form uses camelCase keys:

    {
      "extensionSerial": "13:2A:F0:00",
      "deviceSerial": "F0:00:00:01",
      "targetId": "0d8f...",
      "targetType": "light",
      "bindingType": "color",
      "options": {"name": "Kitchen", "auto_generated": true}
    }
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple
from uuid import UUID

from ..lighting.models import TargetType
from ..nat import serial

BindingKey = Tuple[str, str]


class BindingType(str, Enum):
    """How a field device's value drives its target."""
    DIGITAL = "digital"
    ANALOG = "analog"
    COLOR = "color"

    @classmethod
    def from_value(cls, value: str) -> "BindingType":
        value = str(value).lower()
        # Older mapping files call color bindings "rgbw"
        if value == "rgbw":
            return cls.COLOR
        return cls(value)


@dataclass
class Binding:
    """A persistent field device to lighting target association."""
    extension_serial: str
    device_serial: str
    target_id: UUID
    target_type: TargetType = TargetType.LIGHT
    binding_type: BindingType = BindingType.DIGITAL
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> BindingKey:
        return self.extension_serial, self.device_serial

    def normalized(self) -> "Binding":
        """
        Copy with canonical serials.

        Raises:
            FormatError: if either serial is malformed
        """
        return Binding(
            extension_serial=serial.normalize(self.extension_serial),
            device_serial=serial.normalize(self.device_serial),
            target_id=self.target_id,
            target_type=self.target_type,
            binding_type=self.binding_type,
            options=dict(self.options),
        )

    @property
    def name(self) -> str:
        return self.options.get("name", "")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "extensionSerial": self.extension_serial,
            "deviceSerial": self.device_serial,
            "targetId": str(self.target_id),
            "targetType": self.target_type.value,
            "bindingType": self.binding_type.value,
            "options": self.options,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Binding":
        """
        Parse a stored binding.

        Raises:
            KeyError, ValueError: if the record is incomplete or malformed
        """
        return cls(
            extension_serial=serial.normalize(data["extensionSerial"]),
            device_serial=serial.normalize(data["deviceSerial"]),
            target_id=UUID(str(data["targetId"])),
            target_type=TargetType(data.get("targetType", TargetType.LIGHT.value)),
            binding_type=BindingType.from_value(data.get("bindingType", BindingType.DIGITAL.value)),
            options=dict(data.get("options") or {}),
        )
