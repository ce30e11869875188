"""
FastAPI server for natbridge.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from .. import __version__
from ..config import Config, get_config, set_config
from ..service import BridgeService

logger = logging.getLogger(__name__)

# Global service instance (shared with routes.py)
_service: Optional[BridgeService] = None


def get_service() -> Optional[BridgeService]:
    """Get the global bridge service."""
    return _service


def set_service(service: Optional[BridgeService]) -> None:
    """Set the global bridge service."""
    global _service
    _service = service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global _service

    # Startup
    if _service is None:
        _service = BridgeService(get_config())

    owned = not _service.is_running
    if owned:
        try:
            await _service.start()
        except Exception as e:
            logger.error(f"Failed to start bridge service: {e}")
            raise

    yield

    # Shutdown
    if owned:
        await _service.stop()


def create_app(
    config: Optional[Config] = None,
    service: Optional[BridgeService] = None,
) -> FastAPI:
    """Create the FastAPI application."""
    from .routes import router

    if config:
        set_config(config)
    if service is not None:
        set_service(service)

    app = FastAPI(
        title="natbridge",
        description="NAT field bus to Hue lighting bridge",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    # Health check
    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app


def run_server(config: Optional[Config] = None, host: Optional[str] = None, port: Optional[int] = None):
    """Run the server with uvicorn."""
    config = config or get_config()
    app = create_app(config)
    uvicorn.run(
        app,
        host=host or config.server.host,
        port=port or config.server.port,
        log_level=config.log_level.lower(),
        log_config=None,
    )
