"""
NAT frame codec.

Turns raw bus frames into typed events:

    DIGITAL_OUT / DIGITAL_IN  -> DigitalChanged   (payload[0] != 0)
    ANALOG_OUT  / ANALOG_IN   -> AnalogChanged    (u32 LE / 1_000_000)
    COLOR_OUT   / COLOR_IN    -> ColorChanged     (R, G, B, W bytes)

Decoding never raises. Frames that are too short are skipped with a
warning, unknown command types are skipped silently.
"""

import logging
import struct
from datetime import datetime, timezone
from typing import Callable, Optional

from .models import (
    ANALOG_COMMANDS,
    COLOR_COMMANDS,
    DIGITAL_COMMANDS,
    AnalogChanged,
    ColorChanged,
    DigitalChanged,
    NatCommandType,
    NatEvent,
    RawFrame,
)

logger = logging.getLogger(__name__)

# Analog values travel as unsigned micro-units
ANALOG_SCALE = 1_000_000.0

MIN_DIGITAL_PAYLOAD = 1
MIN_ANALOG_PAYLOAD = 4
MIN_COLOR_PAYLOAD = 4


class FrameCodec:
    """
    Decoder for NAT frames.

    Usage:
        codec = FrameCodec()
        event = codec.decode(frame)
        if event is not None:
            await router.route(event)

    ``on_skipped`` is called with ``(frame, reason)`` whenever a frame
    of a known type is dropped because of a malformed payload.
    """

    def __init__(
        self,
        on_skipped: Optional[Callable[[RawFrame, str], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.on_skipped = on_skipped
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.decoded_count = 0
        self.skipped_count = 0

    def decode(self, frame: RawFrame) -> Optional[NatEvent]:
        """Decode a frame into an event, or None."""
        timestamp = self._clock()

        try:
            if frame.command_type in DIGITAL_COMMANDS:
                event = self._decode_digital(frame, timestamp)
            elif frame.command_type in ANALOG_COMMANDS:
                event = self._decode_analog(frame, timestamp)
            elif frame.command_type in COLOR_COMMANDS:
                event = self._decode_color(frame, timestamp)
            else:
                logger.debug(
                    f"Ignoring frame with unknown command type {frame.command_name} "
                    f"for device {frame.device_id}"
                )
                return None
        except Exception as e:
            logger.error(
                f"Failed to decode NAT frame for device {frame.device_id}, "
                f"command type {frame.command_name}: {e}"
            )
            self._skip(frame, str(e))
            return None

        if event is not None:
            self.decoded_count += 1
        return event

    def _skip(self, frame: RawFrame, reason: str) -> None:
        self.skipped_count += 1
        if self.on_skipped:
            self.on_skipped(frame, reason)

    def _insufficient(self, frame: RawFrame, kind: str) -> None:
        logger.warning(f"{kind} frame for device {frame.device_id} has insufficient data")
        self._skip(frame, f"{kind.lower()} payload too short ({len(frame.payload)} bytes)")

    def _decode_digital(self, frame: RawFrame, timestamp: datetime) -> Optional[DigitalChanged]:
        if len(frame.payload) < MIN_DIGITAL_PAYLOAD:
            self._insufficient(frame, "Digital")
            return None

        value = frame.payload[0] != 0
        logger.debug(f"Parsed digital event: device {frame.device_id}, value {value}")
        return DigitalChanged(device_id=frame.device_id, timestamp=timestamp, value=value)

    def _decode_analog(self, frame: RawFrame, timestamp: datetime) -> Optional[AnalogChanged]:
        if len(frame.payload) < MIN_ANALOG_PAYLOAD:
            self._insufficient(frame, "Analog")
            return None

        (raw,) = struct.unpack_from("<I", frame.payload, 0)
        value = raw / ANALOG_SCALE
        logger.debug(f"Parsed analog event: device {frame.device_id}, value {value}")
        return AnalogChanged(device_id=frame.device_id, timestamp=timestamp, value=value)

    def _decode_color(self, frame: RawFrame, timestamp: datetime) -> Optional[ColorChanged]:
        if len(frame.payload) < MIN_COLOR_PAYLOAD:
            self._insufficient(frame, "Color")
            return None

        red, green, blue, white = frame.payload[:4]
        logger.debug(
            f"Parsed color event: device {frame.device_id}, "
            f"R:{red} G:{green} B:{blue} W:{white}"
        )
        return ColorChanged(
            device_id=frame.device_id,
            timestamp=timestamp,
            red=red,
            green=green,
            blue=blue,
            white=white,
        )


# =============================================================================
# FRAME BUILDERS
# =============================================================================

def encode_digital(device_id: int, value: bool, bus_id: int = 0x100,
                   command_type: NatCommandType = NatCommandType.DIGITAL_OUT) -> RawFrame:
    """Build a digital frame."""
    return RawFrame(bus_id, command_type, device_id & 0xFF, bytes([1 if value else 0]))


def encode_analog(device_id: int, value: float, bus_id: int = 0x200,
                  command_type: NatCommandType = NatCommandType.ANALOG_OUT) -> RawFrame:
    """Build an analog frame from a base-unit value."""
    raw = max(0, min(0xFFFFFFFF, int(value * ANALOG_SCALE)))
    return RawFrame(bus_id, command_type, device_id & 0xFF, struct.pack("<I", raw))


def encode_color(device_id: int, red: int, green: int, blue: int, white: int = 0,
                 bus_id: int = 0x300,
                 command_type: NatCommandType = NatCommandType.COLOR_OUT) -> RawFrame:
    """Build an RGBW frame."""
    return RawFrame(bus_id, command_type, device_id & 0xFF, bytes([red, green, blue, white]))
