"""
Configuration management for natbridge.

Handles:
- NAT bus adapter settings
- Auto-mapping schedule
- Lighting bridge address and pairing key
- Mapping file location
- API server and logging settings
"""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional
import logging

logger = logging.getLogger(__name__)

# Default paths
DEFAULT_DATA_DIR = Path.home() / ".natbridge"
DATA_DIR_ENV = "NATBRIDGE_DATA_DIR"

DEFAULT_API_PORT = 5070


def _known(cls, data: dict) -> dict:
    """Filter to only known fields to handle config evolution."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in (data or {}).items() if k in names}


@dataclass
class BusConfig:
    """Configuration for the NAT bus adapter."""
    interface: str = "can0"
    bitrate: int = 125000
    mock_mode: bool = False
    mock_interval_seconds: float = 5.0

    def to_dict(self) -> dict:
        return {
            "interface": self.interface,
            "bitrate": self.bitrate,
            "mock_mode": self.mock_mode,
            "mock_interval_seconds": self.mock_interval_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BusConfig":
        return cls(**_known(cls, data))


@dataclass
class LinkConfig:
    """Configuration for automatic mapping of lighting targets."""
    auto_discover_devices: bool = True
    auto_mapping_interval_minutes: int = 10
    enable_auto_mapping: bool = True

    def to_dict(self) -> dict:
        return {
            "auto_discover_devices": self.auto_discover_devices,
            "auto_mapping_interval_minutes": self.auto_mapping_interval_minutes,
            "enable_auto_mapping": self.enable_auto_mapping,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LinkConfig":
        return cls(**_known(cls, data))


@dataclass
class LightingConfig:
    """Configuration for the Hue bridge connection."""
    auto_discover: bool = True
    manual_ip_address: Optional[str] = None
    app_key: Optional[str] = None
    application_name: str = "natbridge"
    device_name: str = "natbridge"
    connection_check_minutes: int = 5
    request_timeout_seconds: float = 10.0

    def to_dict(self) -> dict:
        return {
            "auto_discover": self.auto_discover,
            "manual_ip_address": self.manual_ip_address,
            "app_key": self.app_key,
            "application_name": self.application_name,
            "device_name": self.device_name,
            "connection_check_minutes": self.connection_check_minutes,
            "request_timeout_seconds": self.request_timeout_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LightingConfig":
        return cls(**_known(cls, data))


@dataclass
class MappingsConfig:
    """Where mappings are persisted."""
    config_file: str = "mappings.json"
    auto_save: bool = True

    def to_dict(self) -> dict:
        return {
            "config_file": self.config_file,
            "auto_save": self.auto_save,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MappingsConfig":
        return cls(**_known(cls, data))


@dataclass
class ServerConfig:
    """Configuration for the API server."""
    host: str = "0.0.0.0"
    port: int = DEFAULT_API_PORT

    def to_dict(self) -> dict:
        return {
            "host": self.host,
            "port": self.port,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ServerConfig":
        return cls(**_known(cls, data))


@dataclass
class Config:
    """
    Main natbridge configuration.

    Stored at ~/.natbridge/config.json
    """
    # Paths
    data_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)

    # Components
    bus: BusConfig = field(default_factory=BusConfig)
    link: LinkConfig = field(default_factory=LinkConfig)
    lighting: LightingConfig = field(default_factory=LightingConfig)
    mappings: MappingsConfig = field(default_factory=MappingsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    # Logging
    log_level: str = "INFO"
    log_retention_days: int = 30
    enable_file_logging: bool = True

    @property
    def config_path(self) -> Path:
        return self.data_dir / "config.json"

    @property
    def mappings_path(self) -> Path:
        path = Path(self.mappings.config_file).expanduser()
        if path.is_absolute():
            return path
        return self.data_dir / path

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    def ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> dict:
        return {
            "bus": self.bus.to_dict(),
            "link": self.link.to_dict(),
            "lighting": self.lighting.to_dict(),
            "mappings": self.mappings.to_dict(),
            "server": self.server.to_dict(),
            "log_level": self.log_level,
            "log_retention_days": self.log_retention_days,
            "enable_file_logging": self.enable_file_logging,
        }

    def save(self) -> None:
        """Save configuration to disk."""
        self.ensure_data_dir()

        with open(self.config_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.debug(f"Configuration saved to {self.config_path}")

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "Config":
        """Load configuration from disk."""
        data_dir = Path(data_dir) if data_dir else default_data_dir()
        config_path = data_dir / "config.json"

        if not config_path.exists():
            return cls(data_dir=data_dir)

        with open(config_path, 'r') as f:
            data = json.load(f)

        return cls(
            data_dir=data_dir,
            bus=BusConfig.from_dict(data.get("bus", {})),
            link=LinkConfig.from_dict(data.get("link", {})),
            lighting=LightingConfig.from_dict(data.get("lighting", {})),
            mappings=MappingsConfig.from_dict(data.get("mappings", {})),
            server=ServerConfig.from_dict(data.get("server", {})),
            log_level=data.get("log_level", "INFO"),
            log_retention_days=data.get("log_retention_days", 30),
            enable_file_logging=data.get("enable_file_logging", True),
        )

    @classmethod
    def exists(cls, data_dir: Optional[Path] = None) -> bool:
        """Check if configuration exists."""
        data_dir = Path(data_dir) if data_dir else default_data_dir()
        return (data_dir / "config.json").exists()

    def update_lighting(
        self,
        ip_address: Optional[str] = None,
        app_key: Optional[str] = None,
        auto_discover: Optional[bool] = None,
    ) -> None:
        """Record bridge pairing results and persist them."""
        if ip_address is not None:
            self.lighting.manual_ip_address = ip_address
        if app_key is not None:
            self.lighting.app_key = app_key
        if auto_discover is not None:
            self.lighting.auto_discover = auto_discover

        self.save()
        logger.info(
            f"Updated lighting configuration: IP={self.lighting.manual_ip_address}, "
            f"auto_discover={self.lighting.auto_discover}"
        )

    def clear_lighting(self) -> None:
        """Forget the bridge address and pairing key."""
        self.lighting.manual_ip_address = None
        self.lighting.app_key = None
        self.lighting.auto_discover = True
        self.save()
        logger.info("Cleared lighting configuration")


def default_data_dir() -> Path:
    """Data directory, honouring NATBRIDGE_DATA_DIR."""
    env = os.environ.get(DATA_DIR_ENV)
    return Path(env).expanduser() if env else DEFAULT_DATA_DIR


# Global config instance
_config: Optional[Config] = None


def get_config(data_dir: Optional[Path] = None) -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load(data_dir)
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
