"""
NAT bus frame and event models.

Defines the raw frame received from the field bus and the typed
events the codec turns it into.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Union


class NatCommandType(IntEnum):
    """
    Command type byte carried by a NAT frame.

    Output codes are sent by the controller, input codes by field devices.
    """
    DIGITAL_OUT = 0x80
    DIGITAL_IN = 0x81
    ANALOG_OUT = 0x84
    ANALOG_IN = 0x88
    COLOR_OUT = 0x8C
    COLOR_IN = 0x8D

    @classmethod
    def parse(cls, value: int) -> Union["NatCommandType", int]:
        """Return the enum member for a known code, the raw int otherwise."""
        try:
            return cls(value)
        except ValueError:
            return value


DIGITAL_COMMANDS = frozenset({NatCommandType.DIGITAL_OUT, NatCommandType.DIGITAL_IN})
ANALOG_COMMANDS = frozenset({NatCommandType.ANALOG_OUT, NatCommandType.ANALOG_IN})
COLOR_COMMANDS = frozenset({NatCommandType.COLOR_OUT, NatCommandType.COLOR_IN})


@dataclass(frozen=True)
class RawFrame:
    """A single frame as delivered by the bus adapter."""
    bus_id: int
    command_type: Union[NatCommandType, int]
    device_id: int
    payload: bytes = b""

    @property
    def command_name(self) -> str:
        if isinstance(self.command_type, NatCommandType):
            return self.command_type.name
        return f"0x{self.command_type:02X}"


@dataclass(frozen=True)
class DigitalChanged:
    """A digital (on/off) value changed."""
    device_id: int
    timestamp: datetime
    value: bool


@dataclass(frozen=True)
class AnalogChanged:
    """An analog value changed. ``value`` is in base units."""
    device_id: int
    timestamp: datetime
    value: float


@dataclass(frozen=True)
class ColorChanged:
    """An RGBW color value changed."""
    device_id: int
    timestamp: datetime
    red: int
    green: int
    blue: int
    white: int = 0


NatEvent = Union[DigitalChanged, AnalogChanged, ColorChanged]
