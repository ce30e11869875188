"""
NAT bus adapters.

An adapter owns the connection to the field bus. It delivers received
frames through ``on_frame`` and hosts the virtual field devices
(grouped under extensions) that the allocator creates for lighting
targets.

Architecture:
    Field bus <--frames--> BusAdapter --on_frame--> BridgeService
                               |
                               +-- Extension --> FieldDevice --on_change--> lighting

``SimulatedBusAdapter`` is an in-process implementation that fakes
bus traffic. A hardware transport plugs in by subclassing
``BusAdapter``.
"""

import asyncio
import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from . import serial
from .codec import encode_analog, encode_color, encode_digital
from .models import NatEvent, RawFrame

logger = logging.getLogger(__name__)

# Hard ceiling of devices hosted by one extension
MAX_DEVICES_PER_EXTENSION = 50

FrameHandler = Callable[[RawFrame], Awaitable[None]]
DeviceChangeHandler = Callable[[UUID, NatEvent], Awaitable[None]]


@dataclass
class FieldDevice:
    """A virtual field device bound to a lighting target."""
    serial: int
    target_id: UUID
    on_change: Optional[DeviceChangeHandler] = None
    created_at: float = field(default_factory=time.time)

    @property
    def serial_hex(self) -> str:
        return serial.to_hex(self.serial)


@dataclass
class Extension:
    """A logical bus endpoint hosting up to 50 field devices."""
    serial: int
    devices: Dict[int, FieldDevice] = field(default_factory=dict)

    @property
    def serial_hex(self) -> str:
        return serial.to_hex(self.serial)

    @property
    def is_full(self) -> bool:
        return len(self.devices) >= MAX_DEVICES_PER_EXTENSION


class BusAdapter(ABC):
    """
    Abstract base for field bus adapters.

    Subclasses implement the transport (``start``/``stop``). The
    extension and device tables are shared.
    """

    def __init__(self):
        self.on_frame: Optional[FrameHandler] = None
        self._extensions: Dict[int, Extension] = {}

    @property
    @abstractmethod
    def is_running(self) -> bool:
        """Whether the adapter is connected to the bus."""

    @abstractmethod
    async def start(self) -> None:
        """Connect to the bus and begin delivering frames."""

    @abstractmethod
    async def stop(self) -> None:
        """Disconnect from the bus."""

    async def _deliver(self, frame: RawFrame) -> None:
        """Hand a received frame to the registered handler."""
        if self.on_frame is None:
            return
        try:
            await self.on_frame(frame)
        except Exception as e:
            logger.error(f"Error processing NAT frame from device {frame.device_id}: {e}")

    async def create_extension(self, extension_serial: int) -> Extension:
        """Create an extension, or return the existing one."""
        extension = self._extensions.get(extension_serial)
        if extension is not None:
            return extension

        extension = Extension(serial=extension_serial)
        self._extensions[extension_serial] = extension
        logger.info(f"Created extension {extension.serial_hex}")
        return extension

    async def add_device(
        self,
        extension_serial: int,
        device_serial: int,
        target_id: UUID,
        on_change: Optional[DeviceChangeHandler] = None,
    ) -> bool:
        """
        Instantiate a field device inside an extension.

        Idempotent: an existing device is left untouched. The extension
        is created on demand.

        Returns:
            True if the device exists afterwards, False if the
            extension is full
        """
        extension = await self.create_extension(extension_serial)

        if device_serial in extension.devices:
            logger.debug(
                f"Device {serial.to_hex(device_serial)} already exists in "
                f"extension {extension.serial_hex}"
            )
            return True

        if extension.is_full:
            logger.warning(
                f"Extension {extension.serial_hex} already has maximum number of "
                f"devices ({MAX_DEVICES_PER_EXTENSION})"
            )
            return False

        device = FieldDevice(serial=device_serial, target_id=target_id, on_change=on_change)
        extension.devices[device_serial] = device
        logger.info(
            f"Added device {device.serial_hex} to extension {extension.serial_hex} "
            f"mapped to target {target_id}"
        )
        return True

    async def remove_device(self, extension_serial: int, device_serial: int) -> bool:
        """Remove a field device. Returns False if it did not exist."""
        extension = self._extensions.get(extension_serial)
        if extension is None:
            logger.warning(f"Extension {serial.to_hex(extension_serial)} does not exist")
            return False

        if extension.devices.pop(device_serial, None) is None:
            logger.warning(
                f"Device {serial.to_hex(device_serial)} does not exist in "
                f"extension {extension.serial_hex}"
            )
            return False

        logger.info(
            f"Removed device {serial.to_hex(device_serial)} from extension {extension.serial_hex}"
        )
        return True

    def get_device(self, extension_serial: int, device_serial: int) -> Optional[FieldDevice]:
        extension = self._extensions.get(extension_serial)
        if extension is None:
            return None
        return extension.devices.get(device_serial)

    def extensions(self) -> List[Extension]:
        """Get all extensions."""
        return list(self._extensions.values())

    async def push_device_change(
        self,
        extension_serial: int,
        device_serial: int,
        event: NatEvent,
    ) -> bool:
        """
        Report a value change on a field device.

        The change is forwarded to the device's ``on_change`` handler
        together with the bound target. Returns False if the device is
        unknown or has no handler.
        """
        device = self.get_device(extension_serial, device_serial)
        if device is None or device.on_change is None:
            return False

        try:
            await device.on_change(device.target_id, event)
        except Exception as e:
            logger.error(f"Error forwarding change of device {device.serial_hex}: {e}")
            return False
        return True

    def _clear(self) -> None:
        self._extensions.clear()


class SimulatedBusAdapter(BusAdapter):
    """
    In-process bus adapter.

    While running, emits a random digital, analog or color frame every
    ``interval_seconds``. Frames can also be fed with ``inject``.
    """

    MOCK_EXTENSIONS = (0x12345678, 0xAABBCCDD, 0x87654321)

    def __init__(
        self,
        interval_seconds: float = 5.0,
        emit_random: bool = True,
        rng: Optional[random.Random] = None,
    ):
        super().__init__()
        self.interval_seconds = interval_seconds
        self.emit_random = emit_random
        self._rng = rng or random.Random()
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.frames_emitted = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("Simulated bus adapter is already running")
            return

        self._running = True
        if self.emit_random:
            self._task = asyncio.create_task(self._simulate_frames())
        logger.info("Simulated bus adapter started")

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._clear()
        logger.info("Simulated bus adapter stopped")

    async def inject(self, frame: RawFrame) -> None:
        """Deliver a frame as if it had been received from the bus."""
        self.frames_emitted += 1
        await self._deliver(frame)

    def random_frame(self) -> RawFrame:
        """Build a random frame for one of the mock extensions."""
        ext_serial = self._rng.choice(self.MOCK_EXTENSIONS)
        device_id = (ext_serial + self._rng.randint(1, 3)) & 0xFF

        kind = self._rng.randrange(3)
        if kind == 0:
            return encode_digital(device_id, self._rng.random() < 0.5)
        if kind == 1:
            return encode_analog(device_id, self._rng.random() * 100)
        return encode_color(
            device_id,
            self._rng.randrange(256),
            self._rng.randrange(256),
            self._rng.randrange(256),
            self._rng.randrange(256),
        )

    async def _simulate_frames(self) -> None:
        """Background task emitting random frames."""
        while self._running:
            frame = self.random_frame()
            await self.inject(frame)
            logger.debug(
                f"Simulated frame: device {frame.device_id}, type {frame.command_name}"
            )
            await asyncio.sleep(self.interval_seconds)
