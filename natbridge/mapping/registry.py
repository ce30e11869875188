"""
Mapping registry.

Holds the bindings between field devices and lighting targets, keyed by
``(extension_serial, device_serial)``, and persists them as a JSON
array. All access goes through one asyncio lock; file I/O runs in the
default executor outside the lock.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..nat import serial
from .models import Binding, BindingKey

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _read_records(path: Path) -> Optional[List[Any]]:
    """Read the mapping file. None if it does not exist."""
    if not path.exists():
        return None
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"expected a JSON array, got {type(data).__name__}")
    return data


def _write_records(path: Path, records: List[Dict[str, Any]]) -> None:
    """Write the mapping file atomically (temp file + rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class MappingRegistry:
    """
    Keyed store of bindings.

    Usage:
        registry = MappingRegistry()
        await registry.load(config.mappings_path)

        await registry.add(Binding("13:00:01:00", "F0:00:00:01", light_id))
        binding = await registry.get("13:00:01:00", "F0:00:00:01")

        await registry.save(config.mappings_path)
    """

    def __init__(self):
        self._bindings: Dict[BindingKey, Binding] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(extension_serial: str, device_serial: str) -> Optional[BindingKey]:
        if not (serial.is_valid_hex(extension_serial) and serial.is_valid_hex(device_serial)):
            return None
        return extension_serial.upper(), device_serial.upper()

    async def get(self, extension_serial: str, device_serial: str) -> Optional[Binding]:
        """Get the binding for a field device, if any."""
        key = self._key(extension_serial, device_serial)
        if key is None:
            return None
        async with self._lock:
            return self._bindings.get(key)

    async def add(self, binding: Binding) -> Binding:
        """
        Insert or replace a binding.

        Raises:
            FormatError: if a serial is malformed
        """
        binding = binding.normalized()
        async with self._lock:
            replaced = binding.key in self._bindings
            self._bindings[binding.key] = binding

        action = "Updated" if replaced else "Added"
        logger.info(
            f"{action} mapping: Extension {binding.extension_serial}/Device "
            f"{binding.device_serial} -> {binding.target_type.value} {binding.target_id}"
        )
        return binding

    async def add_if_absent(
        self,
        binding: Binding,
        max_per_extension: Optional[int] = None,
    ) -> Optional[Binding]:
        """
        Insert a binding only if its key is free.

        With ``max_per_extension`` the insert is also refused when the
        extension already holds that many bindings. Both checks and the
        insert happen under the registry lock.

        Returns:
            The stored binding, or None if it was refused

        Raises:
            FormatError: if a serial is malformed
        """
        binding = binding.normalized()
        async with self._lock:
            if binding.key in self._bindings:
                return None
            if max_per_extension is not None:
                used = sum(1 for ext, _ in self._bindings if ext == binding.extension_serial)
                if used >= max_per_extension:
                    return None
            self._bindings[binding.key] = binding

        logger.info(
            f"Added mapping: Extension {binding.extension_serial}/Device "
            f"{binding.device_serial} -> {binding.target_type.value} {binding.target_id}"
        )
        return binding

    async def remove(self, extension_serial: str, device_serial: str) -> bool:
        """Remove a binding. Returns whether one was removed."""
        key = self._key(extension_serial, device_serial)
        if key is None:
            return False
        async with self._lock:
            removed = self._bindings.pop(key, None)

        if removed is not None:
            logger.info(f"Removed mapping: Extension {key[0]}/Device {key[1]}")
        return removed is not None

    async def list(self) -> List[Binding]:
        """Snapshot of all bindings."""
        async with self._lock:
            return list(self._bindings.values())

    async def clear(self) -> None:
        async with self._lock:
            self._bindings.clear()
        logger.info("Cleared all mappings")

    async def count(self) -> int:
        async with self._lock:
            return len(self._bindings)

    async def find_by_target(self, target_id) -> List[Binding]:
        """All bindings pointing at a lighting target."""
        async with self._lock:
            return [b for b in self._bindings.values() if b.target_id == target_id]

    async def extension_usage(self) -> Dict[str, int]:
        """Number of bindings per extension serial."""
        usage: Dict[str, int] = {}
        async with self._lock:
            for ext, _ in self._bindings:
                usage[ext] = usage.get(ext, 0) + 1
        return usage

    async def load(self, path: PathLike) -> int:
        """
        Replace the contents with the bindings stored at ``path``.

        A missing file yields an empty registry. Malformed records are
        skipped; an unreadable file also yields an empty registry.

        Returns:
            Number of bindings loaded
        """
        path = Path(path)
        loop = asyncio.get_running_loop()

        try:
            records = await loop.run_in_executor(None, _read_records, path)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load mappings from {path}: {e}")
            records = []

        if records is None:
            logger.info(f"Mappings file {path} not found, starting with empty mappings")
            records = []

        loaded: Dict[BindingKey, Binding] = {}
        for index, record in enumerate(records):
            try:
                binding = Binding.from_dict(record)
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed mapping #{index} in {path}: {e}")
                continue
            loaded[binding.key] = binding

        async with self._lock:
            self._bindings = loaded

        logger.info(f"Loaded {len(loaded)} mappings from {path}")
        return len(loaded)

    async def save(self, path: PathLike) -> bool:
        """
        Write all bindings to ``path``.

        Returns:
            False if the file could not be written
        """
        path = Path(path)
        async with self._lock:
            records = [b.to_dict() for b in self._bindings.values()]

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, _write_records, path, records)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save mappings to {path}: {e}")
            return False

        logger.info(f"Saved {len(records)} mappings to {path}")
        return True

    def __len__(self) -> int:
        return len(self._bindings)
