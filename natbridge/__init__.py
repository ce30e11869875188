"""
natbridge - NAT field bus to Philips Hue bridge

Decodes frames from a NAT field bus, maps field devices onto Hue lights,
groups and scenes, and drives the lights from bus events.

Example:
    >>> from natbridge import Config, BridgeService
    >>> service = BridgeService(Config.load())
    >>> await service.start()
"""

__version__ = "0.1.0"

from .config import Config, get_config
from .service import BridgeService

__all__ = [
    "__version__",
    "Config",
    "get_config",
    "BridgeService",
]
