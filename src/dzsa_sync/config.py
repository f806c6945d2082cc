"""Configuration management for dzsa-sync."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml

from dzsa_sync.errors import ConfigError


DEFAULT_API_PORT = 8888

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServerConfig:
    """A single DayZ server to register with the DZSA launcher."""

    name: str
    port: int  # Server query port


@dataclass
class ApiConfig:
    """HTTP API server configuration (metrics and /api/v1/servers)."""

    host: str = ""  # Empty means all interfaces
    port: int = DEFAULT_API_PORT


@dataclass
class Config:
    """Daemon configuration."""

    detect_ip: bool = False
    external_ip: str = ""
    servers: list[ServerConfig] = field(default_factory=list)
    log_path: str | None = None
    log_level: str = "INFO"
    api: ApiConfig = field(default_factory=ApiConfig)
    sync_interval: float = 3600.0  # seconds
    ip_check_interval: float = 600.0  # seconds
    request_timeout: float = 15.0  # seconds
    sync_jitter: float = 0.0  # seconds, max random delay before each sync

    @property
    def ports(self) -> list[int]:
        """Configured server ports, in configuration order."""
        return [s.port for s in self.servers]

    def validate(self) -> None:
        """Validate the configuration.

        Raises:
            ConfigError: On the first invalid setting found.
        """
        self._validate_types()

        if not self.detect_ip and not self.external_ip:
            raise ConfigError("external_ip is required when detect_ip is false")
        if not self.servers:
            raise ConfigError("servers must not be empty")

        seen: set[int] = set()
        for i, server in enumerate(self.servers):
            if not server.name:
                raise ConfigError(f"servers[{i}]: name is required")
            if not server.port:
                raise ConfigError(f"servers[{i}]: port is required")
            if not _valid_port(server.port):
                raise ConfigError(
                    f"servers[{i}]: port must be 1-65535, got {server.port}"
                )
            if server.port in seen:
                raise ConfigError(f"duplicate port: {server.port}")
            seen.add(server.port)

        if not _valid_port(self.api.port):
            raise ConfigError(f"api.port must be 1-65535, got {self.api.port}")

        for name in ("sync_interval", "ip_check_interval", "request_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.sync_jitter < 0:
            raise ConfigError("sync_jitter must not be negative")

    def _validate_types(self) -> None:
        """Reject YAML values of the wrong type (e.g. quoted numbers)."""
        if not isinstance(self.detect_ip, bool):
            raise ConfigError(
                f"detect_ip must be true or false, got {self.detect_ip!r}"
            )
        for name in ("external_ip", "log_level"):
            if not isinstance(getattr(self, name), str):
                raise ConfigError(f"{name} must be a string")
        if self.log_path is not None and not isinstance(self.log_path, str):
            raise ConfigError("log_path must be a string")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(
                f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}"
            )
        if not isinstance(self.api.host, str):
            raise ConfigError("api.host must be a string")
        for i, server in enumerate(self.servers):
            if not isinstance(server.name, str):
                raise ConfigError(f"servers[{i}]: name must be a string")

        for name in ("sync_interval", "ip_check_interval", "request_timeout", "sync_jitter"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{name} must be a number, got {value!r}")


def _valid_port(port: Any) -> bool:
    return isinstance(port, int) and not isinstance(port, bool) and 1 <= port <= 65535


def get_config_path(custom_path: Path | None = None) -> Path:
    """Get the configuration file path.

    Args:
        custom_path: Override path. If None, returns default.

    Returns:
        Path to config file.
    """
    if custom_path is not None:
        return custom_path
    return Path("/etc/dzsa-sync/config.yaml")


def _default_file_reader(path: Path) -> dict[str, Any] | None:
    """Default file reader that loads YAML from disk."""
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        content = path.read_text()
    except OSError as e:
        raise ConfigError(f"read file {path}: {e}")
    if not content.strip():
        return None
    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"unmarshal {path}: {e}")


def _parse_servers(raw: Any) -> list[ServerConfig]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError("servers must be a list")

    servers = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ConfigError(f"servers[{i}]: expected a mapping")
        servers.append(
            ServerConfig(name=item.get("name") or "", port=item.get("port") or 0)
        )
    return servers


def load_config(
    path: Path | None = None,
    file_reader: Callable[[Path], dict[str, Any] | None] | None = None,
) -> Config:
    """Load and validate configuration from a YAML file.

    Args:
        path: Path to config file. If None, uses default path.
        file_reader: Injectable file reader for testing.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If the file is missing, unparsable or invalid.
    """
    config_path = get_config_path(path)
    reader = file_reader or _default_file_reader

    data = reader(config_path)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: top level must be a mapping")

    # Parse api config section; zero or missing port means default
    api_data = data.get("api") or {}
    if not isinstance(api_data, dict):
        raise ConfigError("api must be a mapping")
    api_config = ApiConfig(
        host=api_data.get("host") or ApiConfig.host,
        port=api_data.get("port") or ApiConfig.port,
    )

    config = Config(
        detect_ip=data.get("detect_ip", Config.detect_ip),
        external_ip=data.get("external_ip") or "",
        servers=_parse_servers(data.get("servers")),
        log_path=data.get("log_path", Config.log_path),
        log_level=data.get("log_level", Config.log_level),
        api=api_config,
        sync_interval=data.get("sync_interval", Config.sync_interval),
        ip_check_interval=data.get("ip_check_interval", Config.ip_check_interval),
        request_timeout=data.get("request_timeout", Config.request_timeout),
        sync_jitter=data.get("sync_jitter", Config.sync_jitter),
    )
    config.validate()
    return config
