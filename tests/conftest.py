"""
Shared test fixtures.

``FakeLighting`` stands in for HueClient: it serves a fixed set of
targets and records every actuation call.
"""

import tempfile
from pathlib import Path
from typing import List, Optional
from uuid import UUID, uuid4

import pytest

from natbridge.config import Config
from natbridge.lighting.models import BridgeStatus, DiscoveredBridge, LightingTarget, TargetType
from natbridge.nat.adapter import SimulatedBusAdapter


def make_target(
    name: str = "",
    color: bool = False,
    dimming: bool = False,
    target_type: TargetType = TargetType.LIGHT,
    target_id: Optional[UUID] = None,
) -> LightingTarget:
    return LightingTarget(
        id=target_id or uuid4(),
        name=name,
        target_type=target_type,
        supports_color=color,
        supports_dimming=dimming,
    )


class FakeLighting:
    """Records lighting calls instead of talking to a bridge."""

    def __init__(self, targets: Optional[List[LightingTarget]] = None, ready: bool = True):
        self.targets = list(targets or [])
        self.groups: List[LightingTarget] = []
        self.scenes: List[LightingTarget] = []
        self.calls = []
        self.result = True
        self.error: Optional[Exception] = None
        self.pair_key: Optional[str] = "fake-app-key"
        self.bridges = [DiscoveredBridge(ip_address="192.168.1.20", bridge_id="001788fffe000001")]
        self.status = BridgeStatus(
            is_connected=ready,
            is_paired=ready,
            ip_address="192.168.1.20" if ready else None,
        )
        self.closed = False

    @property
    def base_url(self) -> Optional[str]:
        return f"https://{self.status.ip_address}" if self.status.ip_address else None

    def _record(self, *call):
        self.calls.append(call)
        if self.error is not None:
            raise self.error
        return self.result

    async def get_bridge_status(self) -> BridgeStatus:
        return self.status

    async def test_connection(self) -> bool:
        return self.status.is_ready

    async def get_lights(self) -> List[LightingTarget]:
        return list(self.targets)

    async def get_groups(self) -> List[LightingTarget]:
        return list(self.groups)

    async def get_scenes(self) -> List[LightingTarget]:
        return list(self.scenes)

    async def set_light_state(self, light_id, on, brightness=None):
        return self._record("set_light_state", light_id, on, brightness)

    async def set_light_color(self, light_id, red, green, blue, brightness=None):
        return self._record("set_light_color", light_id, red, green, blue, brightness)

    async def set_group_state(self, group_id, on, brightness=None):
        return self._record("set_group_state", group_id, on, brightness)

    async def activate_scene(self, scene_id):
        return self._record("activate_scene", scene_id)

    async def discover(self, timeout: float = 5.0) -> bool:
        if not self.bridges:
            return False
        self.status.ip_address = self.bridges[0].ip_address
        return True

    async def discover_all(self, timeout: float = 5.0) -> List[DiscoveredBridge]:
        return list(self.bridges)

    async def pair(self, ip_address: Optional[str] = None) -> Optional[str]:
        if ip_address:
            self.status.ip_address = ip_address
        if self.pair_key:
            self.status.is_paired = True
            self.status.is_connected = True
        return self.pair_key

    def unpair(self) -> None:
        self.status = BridgeStatus()

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def data_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config(data_dir):
    config = Config(data_dir=data_dir)
    config.enable_file_logging = False
    return config


@pytest.fixture
def adapter():
    return SimulatedBusAdapter(emit_random=False)


@pytest.fixture
def lights():
    return [
        make_target("Kitchen", color=True, dimming=True),
        make_target("Hallway", dimming=True),
        make_target("Porch"),
    ]


@pytest.fixture
def lighting(lights):
    return FakeLighting(lights)
