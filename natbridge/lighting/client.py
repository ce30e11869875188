"""
Hue bridge client.

Talks to a Philips Hue bridge over its local HTTPS API:

    POST /api                              pairing (link button)
    GET  /clip/v2/resource/bridge          connection test
    GET  /clip/v2/resource/light           lights
    GET  /clip/v2/resource/grouped_light   groups
    GET  /clip/v2/resource/scene           scenes
    PUT  /clip/v2/resource/<type>/<id>     actuation

The bridge serves a self-signed certificate, so TLS verification is
disabled for the local connection.
"""

import logging
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

import aiohttp

from ..config import LightingConfig
from .color import brightness_to_percent, rgb_to_xy
from .discovery import discover_bridges
from .models import BridgeStatus, DiscoveredBridge, LightingTarget, TargetType

logger = logging.getLogger(__name__)

APP_KEY_HEADER = "hue-application-key"

# Returned by POST /api while the link button has not been pressed
LINK_BUTTON_ERROR = 101

TargetId = Union[UUID, str]


class LightingError(Exception):
    """Error returned by (or while talking to) the lighting bridge."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def _as_uuid(target_id: TargetId) -> Optional[UUID]:
    if isinstance(target_id, UUID):
        return target_id
    try:
        return UUID(str(target_id))
    except ValueError:
        return None


class HueClient:
    """
    Client for a single Hue bridge.

    Usage:
        client = HueClient(config.lighting)

        if await client.test_connection():
            lights = await client.get_lights()
            await client.set_light_state(lights[0].id, True, brightness=127)

    Listing calls return an empty list and actuation calls return False
    when the bridge is unreachable; failures are logged.
    """

    def __init__(self, config: Optional[LightingConfig] = None):
        self.config = config or LightingConfig()
        self._session: Optional[aiohttp.ClientSession] = None
        self._status: Optional[BridgeStatus] = None
        self._load_status_from_config()

    def _load_status_from_config(self) -> None:
        if self.config.manual_ip_address:
            self._status = BridgeStatus(
                ip_address=self.config.manual_ip_address,
                is_paired=bool(self.config.app_key),
                app_key=self.config.app_key,
            )
            logger.info(
                f"Loaded bridge configuration: IP={self._status.ip_address}, "
                f"paired={self._status.is_paired}"
            )
        elif self.config.app_key:
            self._status = BridgeStatus(is_paired=True, app_key=self.config.app_key)
            logger.warning("Found app key but no bridge IP address - bridge will need to be rediscovered")

    @property
    def status(self) -> Optional[BridgeStatus]:
        return self._status

    @property
    def is_ready(self) -> bool:
        return self._status is not None and self._status.is_ready

    @property
    def base_url(self) -> Optional[str]:
        if not self._status or not self._status.ip_address:
            return None
        return f"https://{self._status.ip_address}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_seconds),
                connector=aiohttp.TCPConnector(ssl=False),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        authenticated: bool = True,
    ) -> Any:
        """
        Send a request to the bridge.

        Raises:
            LightingError: if the bridge is unknown, unreachable or
                answers with an error status
        """
        base_url = self.base_url
        if base_url is None:
            raise LightingError("Bridge IP not set")

        headers = {}
        if authenticated:
            if not self.config.app_key:
                raise LightingError("Not paired with bridge")
            headers[APP_KEY_HEADER] = self.config.app_key

        session = await self._get_session()
        try:
            async with session.request(method, f"{base_url}{path}", json=payload, headers=headers) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise LightingError(f"{method} {path} failed: {resp.status} {text[:200]}", status=resp.status)
                return await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise LightingError(f"{method} {path} failed: {e}") from e

    # ------------------------------------------------------------------
    # Discovery & pairing
    # ------------------------------------------------------------------

    async def discover(self, timeout: float = 5.0) -> bool:
        """
        Find a bridge and remember its address.

        A configured manual address wins when auto-discovery is off.
        """
        if not self.config.auto_discover and self.config.manual_ip_address:
            self._status = BridgeStatus(
                ip_address=self.config.manual_ip_address,
                is_paired=bool(self.config.app_key),
                app_key=self.config.app_key,
            )
            logger.info(f"Using manual bridge IP: {self._status.ip_address}")
            return True

        logger.info("Discovering Hue bridge on network...")
        bridges = await discover_bridges(timeout=timeout)
        if not bridges:
            logger.warning("No Hue bridge found on network")
            return False

        bridge = bridges[0]
        self._status = BridgeStatus(
            ip_address=bridge.ip_address,
            bridge_id=bridge.bridge_id,
            is_paired=bool(self.config.app_key),
            app_key=self.config.app_key,
        )
        logger.info(f"Discovered Hue bridge at IP: {bridge.ip_address}")
        return True

    async def discover_all(self, timeout: float = 5.0) -> List[DiscoveredBridge]:
        """List all bridges found on the network."""
        try:
            return await discover_bridges(timeout=timeout)
        except Exception as e:
            logger.error(f"Error discovering bridges: {e}")
            return []

    async def pair(self, ip_address: Optional[str] = None) -> Optional[str]:
        """
        Register this application with the bridge.

        The bridge's link button must have been pressed shortly before.

        Returns:
            The new application key, or None if pairing failed
        """
        if ip_address:
            if self._status is None:
                self._status = BridgeStatus()
            self._status.ip_address = ip_address

        if not self.base_url:
            logger.warning("Cannot pair: bridge IP not set. Run discovery first.")
            return None

        logger.info(f"Attempting to pair with Hue bridge at {self._status.ip_address}...")
        try:
            result = await self._request(
                "POST",
                "/api",
                {
                    "devicetype": f"{self.config.application_name}#{self.config.device_name}",
                    "generateclientkey": True,
                },
                authenticated=False,
            )
        except LightingError as e:
            logger.error(f"Failed to pair with Hue bridge: {e}")
            return None

        entry = result[0] if isinstance(result, list) and result else {}
        if "success" in entry:
            app_key = entry["success"].get("username")
            self.config.app_key = app_key
            self._status.app_key = app_key
            self._status.is_paired = True
            self._status.is_connected = True
            logger.info("Successfully paired with Hue bridge")
            return app_key

        error = entry.get("error", {})
        if error.get("type") == LINK_BUTTON_ERROR:
            logger.warning("Pairing failed. Press the button on the Hue bridge and try again.")
        else:
            logger.warning(f"Pairing failed: {error.get('description', 'unknown error')}")
        return None

    def unpair(self) -> None:
        """Forget the application key and bridge address."""
        self.config.app_key = None
        self.config.manual_ip_address = None
        self.config.auto_discover = True
        self._status = None
        logger.info("Unpaired from Hue bridge")

    # ------------------------------------------------------------------
    # Connection state
    # ------------------------------------------------------------------

    async def test_connection(self) -> bool:
        """Check that the bridge answers authenticated requests."""
        if not self._status or not self._status.ip_address:
            if self._status:
                self._status.is_connected = False
            return False

        if not self.config.app_key:
            self._status.is_paired = False
            return False

        try:
            data = await self._request("GET", "/clip/v2/resource/bridge")
        except LightingError as e:
            logger.error(f"Connection test failed: {e}")
            self._status.is_connected = False
            self._status.is_paired = bool(self.config.app_key)
            return False

        bridges = data.get("data") or [{}]
        self._status.is_connected = True
        self._status.is_paired = True
        self._status.bridge_id = bridges[0].get("bridge_id") or self._status.bridge_id
        logger.debug(f"Connection test successful, bridge {self._status.bridge_id}")
        return True

    async def get_bridge_status(self) -> Optional[BridgeStatus]:
        """Refresh and return the bridge status (None if no bridge is known)."""
        if self._status is None:
            if not self.config.app_key:
                return None
            self._status = BridgeStatus(is_paired=True, app_key=self.config.app_key)

        self._status.is_paired = bool(self.config.app_key)
        if self._status.ip_address and self._status.is_paired:
            await self.test_connection()
        return self._status

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    async def _get_resources(self, resource: str, target_type: TargetType) -> List[LightingTarget]:
        if not self.base_url or not self.config.app_key:
            logger.warning(f"Cannot get {resource} resources: not connected to bridge")
            return []

        try:
            data = await self._request("GET", f"/clip/v2/resource/{resource}")
        except LightingError as e:
            logger.error(f"Failed to get {resource} resources from bridge: {e}")
            return []

        targets = []
        for item in data.get("data", []):
            try:
                targets.append(LightingTarget.from_resource(item, target_type))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed {resource} resource: {e}")
        logger.debug(f"Retrieved {len(targets)} {resource} resources from bridge")
        return targets

    async def get_lights(self) -> List[LightingTarget]:
        return await self._get_resources("light", TargetType.LIGHT)

    async def get_groups(self) -> List[LightingTarget]:
        return await self._get_resources("grouped_light", TargetType.GROUP)

    async def get_scenes(self) -> List[LightingTarget]:
        return await self._get_resources("scene", TargetType.SCENE)

    # ------------------------------------------------------------------
    # Actuation
    # ------------------------------------------------------------------

    async def _update(self, resource: str, target_id: TargetId, body: Dict[str, Any]) -> bool:
        uuid = _as_uuid(target_id)
        if uuid is None:
            logger.warning(f"Invalid {resource} ID format: {target_id}")
            return False

        if not self.base_url or not self.config.app_key:
            logger.warning(f"Cannot control {resource}: not connected to bridge")
            return False

        try:
            await self._request("PUT", f"/clip/v2/resource/{resource}/{uuid}", body)
        except LightingError as e:
            logger.error(f"Failed to update {resource} {uuid}: {e}")
            return False

        logger.debug(f"Updated {resource} {uuid}: {body}")
        return True

    @staticmethod
    def _state_body(on: bool, brightness: Optional[int]) -> Dict[str, Any]:
        body: Dict[str, Any] = {"on": {"on": on}}
        if on and brightness is not None:
            body["dimming"] = {"brightness": brightness_to_percent(brightness)}
        return body

    async def set_light_state(self, light_id: TargetId, on: bool, brightness: Optional[int] = None) -> bool:
        """Switch a light, optionally setting brightness (0-254)."""
        return await self._update("light", light_id, self._state_body(on, brightness))

    async def set_light_color(
        self,
        light_id: TargetId,
        red: int,
        green: int,
        blue: int,
        brightness: Optional[int] = None,
    ) -> bool:
        """Turn a light on with an RGB color."""
        x, y = rgb_to_xy(red, green, blue)
        body: Dict[str, Any] = {"on": {"on": True}, "color": {"xy": {"x": x, "y": y}}}
        if brightness is not None:
            body["dimming"] = {"brightness": brightness_to_percent(brightness)}
        return await self._update("light", light_id, body)

    async def set_group_state(self, group_id: TargetId, on: bool, brightness: Optional[int] = None) -> bool:
        """Switch a group of lights, optionally setting brightness (0-254)."""
        return await self._update("grouped_light", group_id, self._state_body(on, brightness))

    async def activate_scene(self, scene_id: TargetId) -> bool:
        """Recall a scene."""
        return await self._update("scene", scene_id, {"recall": {"action": "active"}})
