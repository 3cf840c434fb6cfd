"""Configuration management for the user directory service."""
from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_TITLE = "User Directory API"

_ALLOWED_KEYS = {"host", "port", "log_level", "title"}
_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass(frozen=True)
class ServiceConfig:
    """Runtime settings for the HTTP service."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = DEFAULT_LOG_LEVEL
    title: str = DEFAULT_TITLE

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "ServiceConfig":
        """Create a :class:`ServiceConfig` from raw dictionary data."""
        unknown = set(data.keys()) - _ALLOWED_KEYS
        if unknown:
            raise ValueError(f"Unknown service configuration fields: {', '.join(sorted(unknown))}")

        port = int(data.get("port", DEFAULT_PORT))  # type: ignore[arg-type]
        if not 0 < port < 65536:
            raise ValueError(f"Service port must be between 1 and 65535, got {port}")

        log_level = str(data.get("log_level", DEFAULT_LOG_LEVEL)).upper()
        if log_level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level {log_level!r}")

        return ServiceConfig(
            host=str(data.get("host", DEFAULT_HOST)),
            port=port,
            log_level=log_level,
            title=str(data.get("title", DEFAULT_TITLE)),
        )


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "service.yaml").resolve(strict=False)
    return candidate


def load_service_config(config_path: Path) -> ServiceConfig:
    """Load service settings from a YAML file, falling back to defaults when it is absent."""
    if not config_path.exists():
        return ServiceConfig()

    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping")

    section = raw.get("service") or {}
    if not isinstance(section, dict):
        raise ValueError("The 'service' key must contain a mapping")
    return ServiceConfig.from_dict(section)


def apply_environment_overrides(config: ServiceConfig, environ: Optional[Mapping[str, str]] = None) -> ServiceConfig:
    """Return *config* with values taken from ``USERDIR_*`` and ``PORT`` variables."""
    env = os.environ if environ is None else environ
    overrides: Dict[str, object] = {}

    host = env.get("USERDIR_HOST", "").strip()
    if host:
        overrides["host"] = host

    port = env.get("PORT", "").strip()
    if port:
        try:
            overrides["port"] = int(port)
        except ValueError as exc:
            raise ValueError(f"PORT must be an integer, got {port!r}") from exc

    log_level = env.get("USERDIR_LOG_LEVEL", "").strip()
    if log_level:
        overrides["log_level"] = log_level.upper()

    if not overrides:
        return config
    return ServiceConfig.from_dict({**asdict(config), **overrides})


def load_config_from_env(environ: Optional[Mapping[str, str]] = None) -> ServiceConfig:
    """Load the configuration file named by ``USERDIR_CONFIG`` and apply environment overrides."""
    env = os.environ if environ is None else environ
    config = load_service_config(resolve_config_path(env.get("USERDIR_CONFIG")))
    return apply_environment_overrides(config, env)


__all__ = [
    "ServiceConfig",
    "apply_environment_overrides",
    "load_config_from_env",
    "load_service_config",
    "resolve_config_path",
]
