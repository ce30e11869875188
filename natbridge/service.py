"""
Bridge runtime.

Wires the bus adapter, codec, router, registry and allocator together
and runs the background work:

- frame consumer: adapter frames -> queue -> decode -> route
- lighting check: test the bridge connection, reconcile when it comes up
- auto-mapping: periodic reconciliation
- heartbeat: periodic status line in the debug log
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional
from uuid import UUID

from .config import BusConfig, Config
from .lighting.client import HueClient
from .lighting.models import DiscoveredBridge, TargetType
from .mapping.allocator import MappingAllocator
from .mapping.models import Binding
from .mapping.registry import MappingRegistry
from .mapping.router import EventRouter
from .nat import serial
from .nat.adapter import BusAdapter, SimulatedBusAdapter
from .nat.codec import FrameCodec
from .nat.models import NatEvent, RawFrame

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 60.0


class BindingExistsError(Exception):
    """A binding for the field device already exists."""

    def __init__(self, extension_serial: str, device_serial: str):
        super().__init__(f"Mapping already exists for {extension_serial}/{device_serial}")
        self.extension_serial = extension_serial
        self.device_serial = device_serial


def create_adapter(config: BusConfig) -> BusAdapter:
    """Build the bus adapter for the configured mode."""
    if config.mock_mode:
        logger.info("Running NAT bus in mock mode")
        return SimulatedBusAdapter(interval_seconds=config.mock_interval_seconds)

    logger.warning(
        f"No hardware transport available for {config.interface}; "
        f"frames must be injected"
    )
    return SimulatedBusAdapter(emit_random=False)


class BridgeService:
    """
    The running bridge.

    Usage:
        service = BridgeService(config)
        await service.start()
        ...
        await service.stop()
    """

    def __init__(
        self,
        config: Config,
        adapter: Optional[BusAdapter] = None,
        lighting: Optional[HueClient] = None,
        registry: Optional[MappingRegistry] = None,
    ):
        self.config = config
        self.adapter = adapter or create_adapter(config.bus)
        self.lighting = lighting or HueClient(config.lighting)
        self.registry = registry or MappingRegistry()
        self.codec = FrameCodec()
        self.router = EventRouter(self.lighting)
        self.allocator = MappingAllocator(
            self.registry,
            self.adapter,
            auto_save=config.mappings.auto_save,
            mappings_path=config.mappings_path,
            on_device_change=self._on_device_change,
        )

        self._queue: Optional[asyncio.Queue] = None
        self._tasks: List[asyncio.Task] = []
        self._running = False
        self._was_ready = False
        self.started_at: Optional[float] = None

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, connect: bool = True) -> None:
        """Load mappings, start the adapter and the background tasks."""
        if self._running:
            logger.warning("Bridge service is already running")
            return

        logger.info("Bridge service starting...")
        await self.registry.load(self.config.mappings_path)

        self._queue = asyncio.Queue()
        self.adapter.on_frame = self._enqueue_frame
        self._running = True
        self.started_at = time.time()
        self._tasks.append(asyncio.create_task(self._consume_frames()))

        await self.adapter.start()

        if connect:
            await self.connect_lighting()

        self._tasks.append(asyncio.create_task(self._lighting_check_loop()))
        if self.config.link.enable_auto_mapping:
            self._tasks.append(asyncio.create_task(self._auto_mapping_loop()))
        self._tasks.append(asyncio.create_task(self._heartbeat_loop()))

        logger.info("Bridge service started")

    async def stop(self) -> None:
        """Stop background work and save mappings."""
        if not self._running:
            return

        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        await self.adapter.stop()

        if self.config.mappings.auto_save:
            await self.registry.save(self.config.mappings_path)

        await self.lighting.close()
        logger.info("Bridge service stopped")

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    async def _enqueue_frame(self, frame: RawFrame) -> None:
        if self._queue is not None:
            self._queue.put_nowait(frame)

    async def process_frame(self, frame: RawFrame) -> None:
        """Decode a frame and route the resulting event."""
        event = self.codec.decode(frame)
        if event is not None:
            await self.router.route(event)

    async def _consume_frames(self) -> None:
        """Consume frames in receipt order."""
        while self._running:
            frame = await self._queue.get()
            try:
                await self.process_frame(frame)
            except Exception as e:
                logger.error(f"Error processing NAT frame: {e}")
            finally:
                self._queue.task_done()

    async def _on_device_change(self, target_id: UUID, event: NatEvent) -> None:
        """A field device reported a new value: apply it to its target."""
        bindings = await self.registry.find_by_target(target_id)
        target_type = bindings[0].target_type if bindings else TargetType.LIGHT
        await self.router.forward(target_id, event, target_type)

    # ------------------------------------------------------------------
    # Lighting
    # ------------------------------------------------------------------

    async def connect_lighting(self) -> bool:
        """Test the configured bridge and reconcile on success."""
        lighting = self.config.lighting
        if lighting.manual_ip_address and lighting.app_key:
            if await self.lighting.test_connection():
                logger.info("Successfully connected to Hue bridge")
                self._was_ready = True
                await self.reconcile()
                return True
            logger.warning("Failed to connect with existing app key. Re-pairing may be required.")

        logger.info("Hue bridge requires pairing. Use 'natbridge lighting pair' or the API.")
        return False

    async def check_lighting(self) -> bool:
        """Periodic connection test; reconciles on reconnect."""
        connected = await self.lighting.test_connection()
        if not connected:
            if self._was_ready:
                logger.warning("Lost connection to Hue bridge")
            self._was_ready = False
        elif not self._was_ready:
            self._was_ready = True
            logger.info("Hue bridge connection established")
            await self.reconcile()
        return connected

    async def discover(self, timeout: float = 5.0) -> List[DiscoveredBridge]:
        return await self.lighting.discover_all(timeout=timeout)

    async def pair(self, ip_address: Optional[str] = None) -> Optional[str]:
        """Pair with the bridge, persist the key and reconcile."""
        if ip_address is None and self.lighting.base_url is None:
            if not await self.lighting.discover():
                return None

        app_key = await self.lighting.pair(ip_address)
        if app_key is None:
            return None

        self.config.update_lighting(
            ip_address=self.lighting.status.ip_address,
            app_key=app_key,
            auto_discover=False,
        )
        self._was_ready = True
        await self.reconcile()
        return app_key

    def unpair(self) -> None:
        self.lighting.unpair()
        self.config.clear_lighting()
        self._was_ready = False

    # ------------------------------------------------------------------
    # Mappings
    # ------------------------------------------------------------------

    async def reconcile(self) -> Optional[List[Binding]]:
        """
        Run automatic mapping against the bridge's lights.

        Returns None if the bridge is not ready or a reconciliation is
        already running.
        """
        status = await self.lighting.get_bridge_status()
        if status is None or not status.is_ready:
            logger.warning(
                f"Skipping automatic mapping generation - Hue bridge is not connected or not paired. "
                f"Connected: {bool(status and status.is_connected)}, Paired: {bool(status and status.is_paired)}"
            )
            return None

        targets = await self.lighting.get_lights()
        if not targets:
            logger.warning("No Hue lights found - cannot generate automatic mappings")
            return []

        return await self.allocator.reconcile(targets)

    async def register_discovered(self, extension_serial: int, device_serial: int) -> Optional[Binding]:
        """Bind a field device seen on the bus to a free light."""
        if not self.config.link.auto_discover_devices:
            return None

        status = await self.lighting.get_bridge_status()
        if status is None or not status.is_ready:
            self.allocator.discovered_devices[
                f"{serial.to_hex(extension_serial)}-{serial.to_hex(device_serial)}"
            ] = time.time()
            logger.debug(
                f"Skipping auto-mapping for discovered device {serial.to_hex(extension_serial)}/"
                f"{serial.to_hex(device_serial)} - Hue bridge is not ready"
            )
            return None

        targets = await self.lighting.get_lights()
        return await self.allocator.register_discovered(extension_serial, device_serial, targets)

    async def add_binding(self, binding: Binding, replace: bool = False) -> Binding:
        """
        Add a user-defined binding and instantiate its device.

        Raises:
            FormatError: if a serial is malformed
            BindingExistsError: if the key is taken and ``replace`` is False
        """
        binding = binding.normalized()
        if not replace and await self.registry.get(*binding.key) is not None:
            raise BindingExistsError(*binding.key)

        binding = await self.registry.add(binding)
        await self.adapter.add_device(
            serial.from_hex(binding.extension_serial),
            serial.from_hex(binding.device_serial),
            binding.target_id,
            self._on_device_change,
        )
        if self.config.mappings.auto_save:
            await self.registry.save(self.config.mappings_path)
        return binding

    async def remove_binding(self, extension_serial: str, device_serial: str) -> bool:
        """Remove a binding and its device."""
        removed = await self.registry.remove(extension_serial, device_serial)
        if not removed:
            return False

        await self.adapter.remove_device(serial.from_hex(extension_serial), serial.from_hex(device_serial))
        if self.config.mappings.auto_save:
            await self.registry.save(self.config.mappings_path)
        return True

    # ------------------------------------------------------------------
    # Background loops
    # ------------------------------------------------------------------

    async def _lighting_check_loop(self) -> None:
        interval = self.config.lighting.connection_check_minutes * 60
        while self._running:
            await asyncio.sleep(interval)
            try:
                await self.check_lighting()
            except Exception as e:
                logger.error(f"Error during Hue bridge check: {e}")

    async def _auto_mapping_loop(self) -> None:
        interval = self.config.link.auto_mapping_interval_minutes * 60
        while self._running:
            await asyncio.sleep(interval)
            try:
                await self.reconcile()
            except Exception as e:
                logger.error(f"Failed to generate automatic mappings: {e}")

    async def _heartbeat_loop(self) -> None:
        while self._running:
            await asyncio.sleep(HEARTBEAT_INTERVAL)
            logger.debug(
                f"Heartbeat: adapter running={self.adapter.is_running}, "
                f"mappings={len(self.registry)}, decoded={self.codec.decoded_count}, "
                f"routed={self.router.routed_count}"
            )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def status(self) -> Dict[str, Any]:
        lighting = self.lighting.status
        return {
            "running": self._running,
            "uptime_seconds": round(time.time() - self.started_at, 1) if self.started_at else 0.0,
            "bus": {
                "running": self.adapter.is_running,
                "mock_mode": self.config.bus.mock_mode,
                "interface": self.config.bus.interface,
                "extensions": len(self.adapter.extensions()),
            },
            "lighting": lighting.to_dict() if lighting else {"status": "Not Discovered"},
            "mappings": {
                "count": await self.registry.count(),
                "reconciling": self.allocator.is_reconciling,
                "discovered_devices": len(self.allocator.discovered_devices),
            },
            "frames": {
                "decoded": self.codec.decoded_count,
                "skipped": self.codec.skipped_count,
                "routed": self.router.routed_count,
                "failed": self.router.failed_count,
            },
        }
