"""
Hue bridge discovery.

Browses mDNS for ``_hue._tcp.local.`` and, when nothing answers, asks
the public discovery endpoint for bridges registered from this network.
"""

import asyncio
import logging
import socket
from typing import Dict, List

import aiohttp
from zeroconf import ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from .models import DiscoveredBridge

logger = logging.getLogger(__name__)

SERVICE_TYPE = "_hue._tcp.local."
DISCOVERY_URL = "https://discovery.meethue.com"


async def discover_mdns(timeout: float = 5.0) -> List[DiscoveredBridge]:
    """Browse the local network for Hue bridges for ``timeout`` seconds."""
    names: List[str] = []

    def on_state_change(
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        if state_change == ServiceStateChange.Added and name not in names:
            names.append(name)

    aiozc = AsyncZeroconf()
    browser = AsyncServiceBrowser(aiozc.zeroconf, SERVICE_TYPE, handlers=[on_state_change])
    bridges: Dict[str, DiscoveredBridge] = {}
    try:
        await asyncio.sleep(timeout)

        for name in names:
            info = AsyncServiceInfo(SERVICE_TYPE, name)
            if not await info.async_request(aiozc.zeroconf, 3000):
                continue

            if info.addresses:
                host = socket.inet_ntoa(info.addresses[0])
            elif info.server:
                host = info.server.rstrip(".")
            else:
                continue

            bridge_id = (info.properties.get(b"bridgeid") or b"").decode()
            bridges[host] = DiscoveredBridge(ip_address=host, bridge_id=bridge_id, port=info.port or 443)
            logger.debug(f"mDNS found bridge {bridge_id or name} at {host}")
    finally:
        await browser.async_cancel()
        await aiozc.async_close()

    return list(bridges.values())


async def discover_cloud(timeout: float = 5.0) -> List[DiscoveredBridge]:
    """Query the public discovery endpoint."""
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
        async with session.get(DISCOVERY_URL) as resp:
            if resp.status != 200:
                logger.warning(f"Discovery endpoint returned {resp.status}")
                return []
            data = await resp.json(content_type=None)

    bridges = []
    for item in data or []:
        ip_address = item.get("internalipaddress")
        if not ip_address:
            continue
        bridges.append(
            DiscoveredBridge(
                ip_address=ip_address,
                bridge_id=item.get("id", ""),
                port=item.get("port", 443),
            )
        )
    return bridges


async def discover_bridges(timeout: float = 5.0) -> List[DiscoveredBridge]:
    """
    Find Hue bridges on the local network.

    mDNS first, then the discovery endpoint. Errors in either method are
    logged and treated as "nothing found".
    """
    try:
        bridges = await discover_mdns(timeout)
        if bridges:
            logger.info(f"Found {len(bridges)} bridge(s) via mDNS")
            return bridges
    except Exception as e:
        logger.warning(f"mDNS discovery failed: {e}")

    try:
        bridges = await discover_cloud(timeout)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning(f"Discovery endpoint unreachable: {e}")
        return []

    if bridges:
        logger.info(f"Found {len(bridges)} bridge(s) via discovery endpoint")
    return bridges
