"""
NAT field bus protocol support.

Key Components:
- models: raw frames, command types and decoded events
- codec: frame decoding (and frame builders)
- serial: XX:XX:XX:XX serial formatting
- adapter: bus adapters hosting extensions and field devices
"""

from .models import (
    NatCommandType,
    RawFrame,
    NatEvent,
    DigitalChanged,
    AnalogChanged,
    ColorChanged,
)

from .codec import (
    FrameCodec,
    ANALOG_SCALE,
    encode_digital,
    encode_analog,
    encode_color,
)

from .serial import (
    FormatError,
    to_hex,
    from_hex,
    is_valid_hex,
    normalize,
)

from .adapter import (
    BusAdapter,
    SimulatedBusAdapter,
    Extension,
    FieldDevice,
    MAX_DEVICES_PER_EXTENSION,
)


__all__ = [
    # Models
    "NatCommandType",
    "RawFrame",
    "NatEvent",
    "DigitalChanged",
    "AnalogChanged",
    "ColorChanged",

    # Codec
    "FrameCodec",
    "ANALOG_SCALE",
    "encode_digital",
    "encode_analog",
    "encode_color",

    # Serials
    "FormatError",
    "to_hex",
    "from_hex",
    "is_valid_hex",
    "normalize",

    # Adapters
    "BusAdapter",
    "SimulatedBusAdapter",
    "Extension",
    "FieldDevice",
    "MAX_DEVICES_PER_EXTENSION",
]
