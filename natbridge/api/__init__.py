"""
HTTP API for natbridge.

Provides REST endpoints for:
- Bridge status and logs
- Mapping management and reconciliation
- Lighting discovery, pairing and listing
"""

from .server import create_app, get_service, set_service, run_server
from .routes import router

__all__ = [
    "create_app",
    "get_service",
    "set_service",
    "run_server",
    "router",
]
