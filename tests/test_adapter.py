"""
Tests for the bus adapter device tables and the simulated adapter.
"""

import asyncio
import random
from uuid import uuid4

import pytest

from natbridge.nat.adapter import MAX_DEVICES_PER_EXTENSION, SimulatedBusAdapter
from natbridge.nat.codec import FrameCodec, encode_digital
from natbridge.nat.models import DigitalChanged


class TestDeviceTables:
    """Tests for extensions and field devices."""

    @pytest.mark.asyncio
    async def test_add_device_creates_extension(self, adapter):
        target = uuid4()
        assert await adapter.add_device(0x13000100, 0xF0000001, target) is True

        [extension] = adapter.extensions()
        assert extension.serial_hex == "13:00:01:00"
        assert adapter.get_device(0x13000100, 0xF0000001).target_id == target

    @pytest.mark.asyncio
    async def test_add_device_is_idempotent(self, adapter):
        first, second = uuid4(), uuid4()
        await adapter.add_device(1, 2, first)
        assert await adapter.add_device(1, 2, second) is True
        assert adapter.get_device(1, 2).target_id == first

    @pytest.mark.asyncio
    async def test_refuses_device_beyond_capacity(self, adapter):
        for i in range(MAX_DEVICES_PER_EXTENSION):
            assert await adapter.add_device(1, 0xF0000001 + i, uuid4())

        assert await adapter.add_device(1, 0xF0000100, uuid4()) is False
        assert len(adapter.extensions()[0].devices) == MAX_DEVICES_PER_EXTENSION
        assert adapter.extensions()[0].is_full

    @pytest.mark.asyncio
    async def test_remove_device(self, adapter):
        await adapter.add_device(1, 2, uuid4())
        assert await adapter.remove_device(1, 2) is True
        assert await adapter.remove_device(1, 2) is False
        assert await adapter.remove_device(9, 2) is False

    @pytest.mark.asyncio
    async def test_push_device_change(self, adapter):
        received = []

        async def on_change(target_id, event):
            received.append((target_id, event))

        target = uuid4()
        await adapter.add_device(1, 2, target, on_change)
        event = FrameCodec().decode(encode_digital(2, True))

        assert await adapter.push_device_change(1, 2, event) is True
        assert received == [(target, event)]

    @pytest.mark.asyncio
    async def test_push_to_unknown_device(self, adapter):
        event = FrameCodec().decode(encode_digital(2, True))
        assert await adapter.push_device_change(1, 2, event) is False

    @pytest.mark.asyncio
    async def test_push_handler_error_contained(self, adapter):
        async def on_change(target_id, event):
            raise RuntimeError("boom")

        await adapter.add_device(1, 2, uuid4(), on_change)
        event = FrameCodec().decode(encode_digital(2, True))
        assert await adapter.push_device_change(1, 2, event) is False


class TestSimulatedAdapter:
    """Tests for the in-process adapter."""

    @pytest.mark.asyncio
    async def test_inject_delivers_frame(self, adapter):
        frames = []

        async def on_frame(frame):
            frames.append(frame)

        adapter.on_frame = on_frame
        frame = encode_digital(4, True)
        await adapter.inject(frame)

        assert frames == [frame]
        assert adapter.frames_emitted == 1

    @pytest.mark.asyncio
    async def test_handler_error_contained(self, adapter):
        async def on_frame(frame):
            raise ValueError("bad handler")

        adapter.on_frame = on_frame
        await adapter.inject(encode_digital(4, True))

    @pytest.mark.asyncio
    async def test_random_frames_decode(self):
        adapter = SimulatedBusAdapter(emit_random=False, rng=random.Random(7))
        codec = FrameCodec()
        for _ in range(30):
            assert codec.decode(adapter.random_frame()) is not None

    @pytest.mark.asyncio
    async def test_emits_while_running(self):
        adapter = SimulatedBusAdapter(interval_seconds=0.01, rng=random.Random(1))
        frames = []

        async def on_frame(frame):
            frames.append(frame)

        adapter.on_frame = on_frame
        await adapter.start()
        assert adapter.is_running
        await asyncio.sleep(0.05)
        await adapter.stop()

        assert not adapter.is_running
        assert len(frames) >= 2

    @pytest.mark.asyncio
    async def test_stop_clears_devices(self, adapter):
        await adapter.start()
        await adapter.add_device(1, 2, uuid4())
        await adapter.stop()
        assert adapter.extensions() == []

    @pytest.mark.asyncio
    async def test_digital_round_trip_through_adapter(self, adapter):
        events = []
        codec = FrameCodec()

        async def on_frame(frame):
            events.append(codec.decode(frame))

        adapter.on_frame = on_frame
        await adapter.inject(encode_digital(12, False))
        assert isinstance(events[0], DigitalChanged)
        assert events[0].device_id == 12


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
