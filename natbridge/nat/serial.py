"""
Serial number formatting.

Extension and device serials are 32-bit values rendered as four
uppercase hex octets joined by colons, most significant first:

    0x12345678  <->  "12:34:56:78"
"""

import re

SERIAL_PATTERN = re.compile(r"[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){3}")

MAX_SERIAL = 0xFFFFFFFF


class FormatError(ValueError):
    """Raised when a serial string or value is not in the expected format."""

    def __init__(self, value, message: str = "Serial must be in format 'XX:XX:XX:XX'"):
        super().__init__(f"{message}: {value!r}")
        self.value = value


def to_hex(value: int) -> str:
    """Format a 32-bit value as ``XX:XX:XX:XX``."""
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_SERIAL:
        raise FormatError(value, "Serial value must be an unsigned 32-bit integer")
    return ":".join(f"{b:02X}" for b in value.to_bytes(4, "big"))


def from_hex(text: str) -> int:
    """Parse ``XX:XX:XX:XX`` into its 32-bit value."""
    if not is_valid_hex(text):
        raise FormatError(text)
    return int.from_bytes(bytes(int(part, 16) for part in text.split(":")), "big")


def is_valid_hex(text) -> bool:
    """Check whether ``text`` is a well-formed serial string (either case)."""
    return isinstance(text, str) and SERIAL_PATTERN.fullmatch(text) is not None


def normalize(text: str) -> str:
    """Return the canonical uppercase form of a serial string."""
    if not is_valid_hex(text):
        raise FormatError(text)
    return text.upper()
