"""
Mapping allocator.

Creates bindings for lighting targets that have none yet and makes sure
every bound target has its field device instantiated on the bus
adapter.

Allocation rules:
- Extension: the existing extension with the fewest bindings below 50,
  otherwise a new random serial 0x13XXXX00 not in use.
- Device: the lowest unused serial from 0xF0000001 in that extension.
- Type: color if the target supports color, analog if it dims,
  digital otherwise.
"""

import asyncio
import logging
import random
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Union

from ..lighting.models import LightingTarget
from ..nat import serial
from ..nat.adapter import MAX_DEVICES_PER_EXTENSION, BusAdapter, DeviceChangeHandler
from .models import Binding, BindingType
from .registry import MappingRegistry

logger = logging.getLogger(__name__)

EXTENSION_BASE = 0x13000000
EXTENSION_RANDOM_MAX = 0xFFFE
MAX_EXTENSION_ATTEMPTS = 100

DEVICE_SERIAL_START = 0xF0000001
DEVICE_SERIAL_MAX = serial.MAX_SERIAL


class AllocationExhausted(Exception):
    """No free extension or device serial could be found."""


def classify(target: LightingTarget) -> BindingType:
    """Pick the binding type from a target's capabilities."""
    if target.supports_color:
        return BindingType.COLOR
    if target.supports_dimming:
        return BindingType.ANALOG
    return BindingType.DIGITAL


class _AllocationState:
    """Extension usage during one reconciliation pass."""

    def __init__(self, bindings: Iterable[Binding]):
        self.used: Dict[str, Set[int]] = {}
        for binding in bindings:
            self.used.setdefault(binding.extension_serial, set()).add(
                serial.from_hex(binding.device_serial)
            )

    def pick_extension(self, rng: random.Random) -> str:
        candidates = [
            (len(devices), ext)
            for ext, devices in self.used.items()
            if len(devices) < MAX_DEVICES_PER_EXTENSION
        ]
        if candidates:
            return min(candidates, key=lambda c: c[0])[1]

        for _ in range(MAX_EXTENSION_ATTEMPTS):
            candidate = serial.to_hex(EXTENSION_BASE + (rng.randint(0, EXTENSION_RANDOM_MAX) << 8))
            if candidate not in self.used:
                self.used[candidate] = set()
                logger.info(f"Allocated new extension {candidate}")
                return candidate

        raise AllocationExhausted(
            f"No unused extension serial found after {MAX_EXTENSION_ATTEMPTS} attempts"
        )

    def next_device(self, extension_serial: str) -> str:
        used = self.used.setdefault(extension_serial, set())
        candidate = DEVICE_SERIAL_START
        while candidate in used:
            candidate += 1
        if candidate > DEVICE_SERIAL_MAX:
            raise AllocationExhausted(f"No free device serial in extension {extension_serial}")
        used.add(candidate)
        return serial.to_hex(candidate)


class MappingAllocator:
    """
    Keeps bindings in step with the lighting targets.

    Usage:
        allocator = MappingAllocator(registry, adapter, mappings_path=path)
        created = await allocator.reconcile(await hue.get_lights())

    ``reconcile`` is single-flight: a call made while another is running
    returns None immediately.
    """

    def __init__(
        self,
        registry: MappingRegistry,
        adapter: BusAdapter,
        *,
        auto_save: bool = True,
        mappings_path: Optional[Union[str, Path]] = None,
        on_device_change: Optional[DeviceChangeHandler] = None,
        rng: Optional[random.Random] = None,
    ):
        self.registry = registry
        self.adapter = adapter
        self.auto_save = auto_save
        self.mappings_path = Path(mappings_path) if mappings_path else None
        self.on_device_change = on_device_change
        self._rng = rng or random.Random()
        self._reconcile_lock = asyncio.Lock()

        # "EXT-DEV" -> last seen (epoch seconds)
        self.discovered_devices: Dict[str, float] = {}

    @property
    def is_reconciling(self) -> bool:
        return self._reconcile_lock.locked()

    def create_binding(
        self,
        extension_serial: str,
        device_serial: str,
        target: LightingTarget,
        auto_generated: bool = True,
    ) -> Binding:
        """Build a binding for a target, typed by its capabilities."""
        return Binding(
            extension_serial=extension_serial,
            device_serial=device_serial,
            target_id=target.id,
            target_type=target.target_type,
            binding_type=classify(target),
            options={
                "name": target.display_name,
                "auto_generated": auto_generated,
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
        )

    async def _ensure_device(self, binding: Binding) -> bool:
        added = await self.adapter.add_device(
            serial.from_hex(binding.extension_serial),
            serial.from_hex(binding.device_serial),
            binding.target_id,
            self.on_device_change,
        )
        if not added:
            logger.warning(
                f"Could not instantiate device {binding.device_serial} in "
                f"extension {binding.extension_serial}"
            )
        return added

    async def _save(self) -> None:
        if self.auto_save and self.mappings_path is not None:
            await self.registry.save(self.mappings_path)

    async def _current_bindings(self, snapshot: Optional[List[Binding]] = None) -> List[Binding]:
        """Live registry contents, on top of a caller-supplied snapshot."""
        live = await self.registry.list()
        if not snapshot:
            return live
        merged = {b.key: b for b in snapshot}
        merged.update((b.key, b) for b in live)
        return list(merged.values())

    async def _allocate(
        self,
        target: LightingTarget,
        bindings: List[Binding],
        snapshot: Optional[List[Binding]] = None,
    ) -> Optional[Binding]:
        """
        Pick serials for a target and insert its binding.

        The insert is refused by the registry if another writer took the
        key or filled the extension in the meantime; allocation is then
        redone from the registry's current contents.

        Returns:
            The new binding, or None if the target got bound concurrently
        """
        for _ in range(MAX_EXTENSION_ATTEMPTS):
            if any(b.target_id == target.id for b in bindings):
                return None

            state = _AllocationState(bindings)
            extension_serial = state.pick_extension(self._rng)
            device_serial = state.next_device(extension_serial)
            binding = await self.registry.add_if_absent(
                self.create_binding(extension_serial, device_serial, target),
                max_per_extension=MAX_DEVICES_PER_EXTENSION,
            )
            if binding is not None:
                return binding

            logger.debug(
                f"Extension {extension_serial}/Device {device_serial} was taken "
                f"concurrently, allocating again"
            )
            bindings = await self._current_bindings(snapshot)

        raise AllocationExhausted(
            f"Could not insert a mapping for {target.id} after {MAX_EXTENSION_ATTEMPTS} attempts"
        )

    async def reconcile(
        self,
        targets: List[LightingTarget],
        snapshot: Optional[List[Binding]] = None,
    ) -> Optional[List[Binding]]:
        """
        Create bindings for unbound targets and instantiate all devices.

        Allocation works from the registry's current contents before
        each target, so bindings written by others during the pass are
        respected.

        Args:
            targets: Lighting targets, processed in order
            snapshot: Bindings known to the caller, merged under the
                registry's own

        Returns:
            The bindings created, or None if a reconciliation was
            already running
        """
        if self._reconcile_lock.locked():
            logger.debug("Automatic mapping generation already in progress, skipping")
            return None

        async with self._reconcile_lock:
            if not targets:
                logger.debug("No lighting targets to reconcile")
                return []

            logger.info(f"Starting automatic mapping generation for {len(targets)} targets")
            created: List[Binding] = []

            try:
                for target in targets:
                    bindings = await self._current_bindings(snapshot)
                    existing = [b for b in bindings if b.target_id == target.id]
                    if existing:
                        for binding in existing:
                            await self._ensure_device(binding)
                            logger.debug(
                                f"Ensured device exists for mapped target {target.id}: "
                                f"Extension {binding.extension_serial}/Device {binding.device_serial}"
                            )
                        continue

                    binding = await self._allocate(target, bindings, snapshot)
                    if binding is None:
                        continue
                    created.append(binding)

                    await self._ensure_device(binding)
                    logger.info(
                        f"Created automatic mapping: {target.target_type.value} {target.id} "
                        f"({target.display_name}) -> Extension {binding.extension_serial}/"
                        f"Device {binding.device_serial}"
                    )
            except AllocationExhausted as e:
                logger.error(f"Automatic mapping stopped: {e}")
            finally:
                if created:
                    await self._save()

            logger.info(f"Automatic mapping generation completed. Created {len(created)} new mappings")
            return created

    async def register_discovered(
        self,
        extension_serial: int,
        device_serial: int,
        targets: List[LightingTarget],
    ) -> Optional[Binding]:
        """
        Record a field device seen on the bus and bind it to a free target.

        Shares the single-flight guard with ``reconcile``: while a pass
        is running the sighting is recorded and nothing is bound.

        Returns:
            The new binding, or None if the device is already bound, no
            target is free, the extension is full or a pass is running
        """
        ext_hex = serial.to_hex(extension_serial)
        dev_hex = serial.to_hex(device_serial)
        self.discovered_devices[f"{ext_hex}-{dev_hex}"] = time.time()

        if self._reconcile_lock.locked():
            logger.debug(
                f"Automatic mapping in progress, not mapping discovered device {ext_hex}/{dev_hex}"
            )
            return None

        async with self._reconcile_lock:
            bindings = await self.registry.list()
            if any(b.key == (ext_hex, dev_hex) for b in bindings):
                logger.debug(f"Mapping already exists for discovered device {ext_hex}/{dev_hex}")
                return None

            bound = {b.target_id for b in bindings}
            target = next((t for t in targets if t.id not in bound), None)
            if target is None:
                logger.debug(f"No available lighting target for discovered device {ext_hex}/{dev_hex}")
                return None

            binding = await self.registry.add_if_absent(
                self.create_binding(ext_hex, dev_hex, target),
                max_per_extension=MAX_DEVICES_PER_EXTENSION,
            )
            if binding is None:
                logger.warning(
                    f"Extension {ext_hex} is full or device {dev_hex} is already mapped, "
                    f"not mapping discovered device"
                )
                return None

            await self._ensure_device(binding)
            await self._save()

        logger.info(
            f"Auto-created mapping for discovered device: Extension {ext_hex}/Device {dev_hex} "
            f"-> {target.target_type.value} {target.id} ({target.display_name})"
        )
        return binding
