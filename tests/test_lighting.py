"""
Tests for the Hue client, lighting models and color conversion.

The client's transport (``_request``) is replaced with a scripted fake so
no bridge is needed.
"""

from uuid import uuid4

import pytest

from natbridge.config import LightingConfig
from natbridge.lighting.client import HueClient, LightingError
from natbridge.lighting.color import DEFAULT_XY, brightness_to_percent, rgb_to_xy
from natbridge.lighting.models import BridgeStatus, LightingTarget, TargetType


class ScriptedTransport:
    """Replacement for HueClient._request."""

    def __init__(self, responses=None, error=None):
        self.responses = responses or {}
        self.error = error
        self.requests = []

    async def __call__(self, method, path, payload=None, authenticated=True):
        self.requests.append((method, path, payload, authenticated))
        if self.error is not None:
            raise self.error
        return self.responses.get((method, path), {})


def paired_client() -> HueClient:
    client = HueClient(LightingConfig(manual_ip_address="192.168.1.20", app_key="key"))
    client._request = ScriptedTransport()
    return client


class TestColor:
    """Tests for RGB and brightness conversion."""

    def test_black_uses_default(self):
        assert rgb_to_xy(0, 0, 0) == DEFAULT_XY

    def test_white_is_d65(self):
        assert rgb_to_xy(255, 255, 255) == pytest.approx(DEFAULT_XY, abs=1e-3)

    def test_red(self):
        x, y = rgb_to_xy(255, 0, 0)
        assert x == pytest.approx(0.7006, abs=1e-3)
        assert y == pytest.approx(0.2993, abs=1e-3)

    def test_out_of_range_channels_clamped(self):
        assert rgb_to_xy(300, -4, 0) == rgb_to_xy(255, 0, 0)

    @pytest.mark.parametrize("level,percent", [(0, 0.0), (127, 50.0), (254, 100.0), (400, 100.0), (-1, 0.0)])
    def test_brightness_to_percent(self, level, percent):
        assert brightness_to_percent(level) == percent


class TestModels:
    """Tests for lighting models."""

    def test_from_resource_capabilities(self):
        light_id = uuid4()
        target = LightingTarget.from_resource({
            "id": str(light_id),
            "metadata": {"name": "Kitchen"},
            "on": {"on": True},
            "dimming": {"brightness": 42.0},
            "color": {"xy": {"x": 0.3, "y": 0.3}},
        })
        assert target.id == light_id
        assert target.name == "Kitchen"
        assert target.supports_color and target.supports_dimming
        assert target.is_on is True
        assert target.brightness == 42.0

    def test_from_resource_plain(self):
        target = LightingTarget.from_resource({"id": str(uuid4())}, TargetType.GROUP)
        assert not target.supports_color
        assert not target.supports_dimming
        assert target.display_name.startswith("Group ")

    @pytest.mark.parametrize("status,text", [
        (BridgeStatus(is_connected=True, is_paired=True), "Connected"),
        (BridgeStatus(is_paired=True), "Paired (Offline)"),
        (BridgeStatus(ip_address="10.0.0.2"), "Discovered (Not Paired)"),
        (BridgeStatus(), "Not Discovered"),
    ])
    def test_status_description(self, status, text):
        assert status.description == text

    def test_status_dict_hides_key(self):
        assert "app_key" not in BridgeStatus(app_key="secret").to_dict()


class TestClientState:
    """Tests for client state without a bridge."""

    def test_loads_address_from_config(self):
        client = HueClient(LightingConfig(manual_ip_address="10.0.0.2", app_key="k"))
        assert client.base_url == "https://10.0.0.2"
        assert client.status.is_paired

    def test_no_config_no_status(self):
        client = HueClient(LightingConfig())
        assert client.status is None
        assert client.base_url is None

    @pytest.mark.asyncio
    async def test_unconfigured_calls_degrade(self):
        client = HueClient(LightingConfig())
        assert await client.get_lights() == []
        assert await client.set_light_state(uuid4(), True) is False
        assert await client.test_connection() is False
        assert await client.get_bridge_status() is None

    @pytest.mark.asyncio
    async def test_request_without_address_raises(self):
        client = HueClient(LightingConfig())
        with pytest.raises(LightingError):
            await client._request("GET", "/clip/v2/resource/light")

    @pytest.mark.asyncio
    async def test_invalid_target_id(self):
        client = paired_client()
        assert await client.set_light_state("not-a-uuid", True) is False
        assert client._request.requests == []

    def test_unpair(self):
        client = HueClient(LightingConfig(manual_ip_address="10.0.0.2", app_key="k", auto_discover=False))
        client.unpair()
        assert client.config.app_key is None
        assert client.config.auto_discover is True
        assert client.status is None


class TestClientRequests:
    """Tests for request payloads and response parsing."""

    @pytest.mark.asyncio
    async def test_get_lights(self):
        light_id = uuid4()
        client = paired_client()
        client._request.responses[("GET", "/clip/v2/resource/light")] = {
            "data": [
                {"id": str(light_id), "metadata": {"name": "Desk"}, "dimming": {"brightness": 10}},
                {"metadata": {"name": "broken, no id"}},
            ]
        }

        lights = await client.get_lights()

        assert [l.id for l in lights] == [light_id]
        assert lights[0].supports_dimming

    @pytest.mark.asyncio
    async def test_groups_and_scenes_resources(self):
        client = paired_client()
        await client.get_groups()
        await client.get_scenes()
        paths = [r[1] for r in client._request.requests]
        assert paths == ["/clip/v2/resource/grouped_light", "/clip/v2/resource/scene"]

    @pytest.mark.asyncio
    async def test_listing_error_gives_empty(self):
        client = paired_client()
        client._request.error = LightingError("down")
        assert await client.get_lights() == []

    @pytest.mark.asyncio
    async def test_set_light_state_brightness(self):
        client = paired_client()
        light_id = uuid4()

        assert await client.set_light_state(light_id, True, 127) is True
        method, path, payload, _ = client._request.requests[0]
        assert method == "PUT"
        assert path == f"/clip/v2/resource/light/{light_id}"
        assert payload == {"on": {"on": True}, "dimming": {"brightness": 50.0}}

    @pytest.mark.asyncio
    async def test_set_light_state_off_has_no_dimming(self):
        client = paired_client()
        await client.set_light_state(str(uuid4()), False, 0)
        assert client._request.requests[0][2] == {"on": {"on": False}}

    @pytest.mark.asyncio
    async def test_set_light_color(self):
        client = paired_client()
        await client.set_light_color(uuid4(), 255, 0, 0)
        payload = client._request.requests[0][2]
        assert payload["on"] == {"on": True}
        assert payload["color"]["xy"]["x"] == pytest.approx(0.7006, abs=1e-3)
        assert "dimming" not in payload

    @pytest.mark.asyncio
    async def test_group_and_scene(self):
        client = paired_client()
        group_id, scene_id = uuid4(), uuid4()
        await client.set_group_state(group_id, True)
        await client.activate_scene(scene_id)

        requests = client._request.requests
        assert requests[0][1] == f"/clip/v2/resource/grouped_light/{group_id}"
        assert requests[1][1] == f"/clip/v2/resource/scene/{scene_id}"
        assert requests[1][2] == {"recall": {"action": "active"}}

    @pytest.mark.asyncio
    async def test_actuation_error_gives_false(self):
        client = paired_client()
        client._request.error = LightingError("503", status=503)
        assert await client.set_light_state(uuid4(), True) is False

    @pytest.mark.asyncio
    async def test_test_connection(self):
        client = paired_client()
        client._request.responses[("GET", "/clip/v2/resource/bridge")] = {
            "data": [{"bridge_id": "001788fffe000001"}]
        }

        assert await client.test_connection() is True
        assert client.status.is_ready
        assert client.status.bridge_id == "001788fffe000001"

    @pytest.mark.asyncio
    async def test_test_connection_failure(self):
        client = paired_client()
        client._request.error = LightingError("unreachable")
        assert await client.test_connection() is False
        assert client.status.description == "Paired (Offline)"


class TestPairing:
    """Tests for the link-button pairing flow."""

    @pytest.mark.asyncio
    async def test_pair_success(self):
        client = HueClient(LightingConfig())
        client._request = ScriptedTransport({
            ("POST", "/api"): [{"success": {"username": "new-key", "clientkey": "abc"}}]
        })

        assert await client.pair("192.168.1.30") == "new-key"
        assert client.config.app_key == "new-key"
        assert client.status.ip_address == "192.168.1.30"
        assert client.status.is_ready

        _, _, payload, authenticated = client._request.requests[0]
        assert payload == {"devicetype": "natbridge#natbridge", "generateclientkey": True}
        assert authenticated is False

    @pytest.mark.asyncio
    async def test_link_button_not_pressed(self):
        client = HueClient(LightingConfig())
        client._request = ScriptedTransport({
            ("POST", "/api"): [{"error": {"type": 101, "description": "link button not pressed"}}]
        })

        assert await client.pair("192.168.1.30") is None
        assert client.config.app_key is None

    @pytest.mark.asyncio
    async def test_pair_without_address(self):
        client = HueClient(LightingConfig())
        assert await client.pair() is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
