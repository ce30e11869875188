"""
Tests for event routing to lighting calls.
"""

from datetime import datetime, timezone

import pytest

from conftest import FakeLighting, make_target
from natbridge.lighting.models import TargetType
from natbridge.mapping.router import EventRouter, analog_to_brightness
from natbridge.nat.models import AnalogChanged, ColorChanged, DigitalChanged

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def digital(device_id=0, value=True):
    return DigitalChanged(device_id=device_id, timestamp=NOW, value=value)


def analog(device_id=0, value=50.0):
    return AnalogChanged(device_id=device_id, timestamp=NOW, value=value)


def color(device_id=0, r=255, g=128, b=0, w=200):
    return ColorChanged(device_id=device_id, timestamp=NOW, red=r, green=g, blue=b, white=w)


class TestBrightness:
    """Tests for analog to brightness conversion."""

    @pytest.mark.parametrize("value,expected", [
        (0.0, 0),
        (0.3, 0),
        (1.0, 2),
        (50.0, 127),
        (100.0, 254),
        (150.0, 254),
        (-5.0, 0),
    ])
    def test_clamped_scale(self, value, expected):
        assert analog_to_brightness(value) == expected


class TestFallbackSelection:
    """Tests for the device_id % N target choice."""

    @pytest.mark.asyncio
    async def test_device_id_modulo_targets(self, lighting, lights):
        router = EventRouter(lighting)

        outcome = await router.route(digital(device_id=7), lights)

        assert outcome.success
        assert outcome.target_id == lights[1].id
        assert lighting.calls == [("set_light_state", lights[1].id, True, None)]

    @pytest.mark.asyncio
    async def test_targets_default_to_bridge_lights(self, lighting, lights):
        router = EventRouter(lighting)

        outcome = await router.route(digital(device_id=5))

        assert outcome.target_id == lights[2].id

    @pytest.mark.asyncio
    async def test_no_targets_is_noop(self):
        lighting = FakeLighting([])
        router = EventRouter(lighting)

        outcome = await router.route(digital(device_id=3))

        assert outcome.success is False
        assert outcome.error == "no targets available"
        assert lighting.calls == []

    @pytest.mark.asyncio
    async def test_explicit_empty_targets(self, lighting):
        outcome = await EventRouter(lighting).route(digital(), [])
        assert outcome.success is False
        assert lighting.calls == []


class TestLightActions:
    """Tests for event to light call translation."""

    @pytest.mark.asyncio
    async def test_digital_off(self, lighting, lights):
        await EventRouter(lighting).route(digital(value=False), lights)
        assert lighting.calls == [("set_light_state", lights[0].id, False, None)]

    @pytest.mark.asyncio
    async def test_analog_sets_brightness(self, lighting, lights):
        outcome = await EventRouter(lighting).route(analog(value=50.0), lights)
        assert outcome.action == "brightness"
        assert lighting.calls == [("set_light_state", lights[0].id, True, 127)]

    @pytest.mark.asyncio
    async def test_analog_zero_turns_off(self, lighting, lights):
        await EventRouter(lighting).route(analog(value=0.0), lights)
        assert lighting.calls == [("set_light_state", lights[0].id, False, 0)]

    @pytest.mark.asyncio
    async def test_analog_above_range_clamps(self, lighting, lights):
        await EventRouter(lighting).route(analog(value=4000.0), lights)
        assert lighting.calls[0][3] == 254

    @pytest.mark.asyncio
    async def test_color_sends_rgb_only(self, lighting, lights):
        outcome = await EventRouter(lighting).route(color(r=10, g=20, b=30, w=255), lights)
        assert outcome.action == "color"
        # White is not forwarded and no brightness is set
        assert lighting.calls == [("set_light_color", lights[0].id, 10, 20, 30, None)]


class TestFailures:
    """Tests for actuation failures."""

    @pytest.mark.asyncio
    async def test_exception_is_contained(self, lighting, lights):
        lighting.error = RuntimeError("bridge unreachable")
        router = EventRouter(lighting)

        outcome = await router.route(digital(), lights)

        assert outcome.success is False
        assert "bridge unreachable" in outcome.error
        assert router.failed_count == 1

    @pytest.mark.asyncio
    async def test_rejected_call(self, lighting, lights):
        lighting.result = False
        outcome = await EventRouter(lighting).route(analog(), lights)
        assert outcome.success is False
        assert outcome.error == "actuation failed"

    @pytest.mark.asyncio
    async def test_listing_failure(self, lighting):
        async def broken():
            raise RuntimeError("timeout")

        lighting.get_lights = broken
        outcome = await EventRouter(lighting).route(digital())
        assert outcome.success is False
        assert lighting.calls == []

    @pytest.mark.asyncio
    async def test_counters(self, lighting, lights):
        router = EventRouter(lighting)
        await router.route(digital(), lights)
        lighting.result = False
        await router.route(digital(), lights)
        assert router.routed_count == 1
        assert router.failed_count == 1


class TestForward:
    """Tests for direct forwarding used by field devices."""

    @pytest.mark.asyncio
    async def test_light(self, lighting):
        target = make_target()
        outcome = await EventRouter(lighting).forward(target.id, analog(value=100.0))
        assert outcome.success
        assert lighting.calls == [("set_light_state", target.id, True, 254)]

    @pytest.mark.asyncio
    async def test_group(self, lighting):
        group = make_target(target_type=TargetType.GROUP)
        await EventRouter(lighting).forward(group.id, analog(value=50.0), TargetType.GROUP)
        assert lighting.calls == [("set_group_state", group.id, True, 127)]

    @pytest.mark.asyncio
    async def test_group_color_switches_on(self, lighting):
        group = make_target(target_type=TargetType.GROUP)
        await EventRouter(lighting).forward(group.id, color(), TargetType.GROUP)
        assert lighting.calls == [("set_group_state", group.id, True, None)]

    @pytest.mark.asyncio
    async def test_scene_recalled_on_rising_value(self, lighting):
        scene = make_target(target_type=TargetType.SCENE)
        router = EventRouter(lighting)

        await router.forward(scene.id, digital(value=True), TargetType.SCENE)
        outcome = await router.forward(scene.id, digital(value=False), TargetType.SCENE)

        assert lighting.calls == [("activate_scene", scene.id)]
        assert outcome.success


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
