"""
Configuration module for inventoryd.

Layered, lowest to highest precedence:

1. built-in defaults (paths under ``$XDG_CONFIG_HOME/inventoryd``, falling
   back to ``~/.config/inventoryd``)
2. YAML config file (``INVENTORYD_CONFIG`` or ``<config dir>/config.yaml``;
   a missing default file just means defaults)
3. ``INVENTORYD_*`` environment variables
4. command-line flags (``apply_overrides``)

Unknown keys and invalid values raise ``ConfigError``.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .merge import deep_merge

APP_NAME = "inventoryd"

DEFAULT_HTTP_ADDR = "127.0.0.1:9100"
DEFAULT_PRIVATE_FIELDS = ["secrets.age_keys", "secrets.age_key_file", "nix.attic"]


# ============================================================
# Paths
# ============================================================

def config_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    """Base directory for inventoryd's files."""
    env = os.environ if env is None else env
    base = env.get("XDG_CONFIG_HOME")
    root = Path(base) if base else Path.home() / ".config"
    return root / APP_NAME


def default_config_path() -> Path:
    return config_dir() / "config.yaml"


def default_identity_path() -> Path:
    return config_dir() / "node.yaml"


def default_overlay_dir() -> Path:
    return config_dir() / "identity.d"


def default_report_path() -> Path:
    return config_dir() / "report.json"


def parse_http_addr(addr: str) -> Tuple[str, int]:
    """Split ``host:port``; raises ValueError if the port is missing or invalid."""
    host, sep, port = addr.rpartition(":")
    if not sep or not host or not port.isdigit() or not 0 < int(port) < 65536:
        raise ValueError(f"invalid listen address {addr!r}, expected HOST:PORT")
    return host.strip("[]"), int(port)


# ============================================================
# Models
# ============================================================

class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class IdentityConfig(_Section):
    path: Path = Field(default_factory=default_identity_path)
    default_overlay_dir: Path = Field(default_factory=default_overlay_dir)
    overlay_dirs: List[Path] = Field(default_factory=list)
    private_fields: List[str] = Field(default_factory=lambda: list(DEFAULT_PRIVATE_FIELDS))

    @field_validator("path", "default_overlay_dir")
    @classmethod
    def _expand(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("overlay_dirs")
    @classmethod
    def _expand_all(cls, value: List[Path]) -> List[Path]:
        return [p.expanduser() for p in value]


class ReportConfig(_Section):
    cache_file: Path = Field(default_factory=default_report_path)
    max_age_secs: int = Field(default=3600, ge=0)
    refresh_interval_secs: int = Field(default=300, ge=0)
    probe_timeout_secs: float = Field(default=10.0, gt=0)

    @field_validator("cache_file")
    @classmethod
    def _expand(cls, value: Path) -> Path:
        return value.expanduser()


class DaemonConfig(_Section):
    http_addr: str = DEFAULT_HTTP_ADDR
    log_level: str = "info"
    log_format: str = "json"
    log_file: Optional[Path] = None
    refresh_rpm: int = Field(default=6, ge=1)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)

    @field_validator("http_addr")
    @classmethod
    def _check_addr(cls, value: str) -> str:
        parse_http_addr(value)
        return value

    @field_validator("log_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        if value.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {value!r}")
        return value.lower()

    @field_validator("log_format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if value not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return value

    @field_validator("log_file")
    @classmethod
    def _expand_log_file(cls, value: Optional[Path]) -> Optional[Path]:
        return value.expanduser() if value is not None else None

    @property
    def listen(self) -> Tuple[str, int]:
        return parse_http_addr(self.http_addr)


# ============================================================
# Loading
# ============================================================

# env var -> (section, key); section None means top level
ENV_OVERRIDES = {
    "INVENTORYD_HTTP_ADDR": (None, "http_addr"),
    "INVENTORYD_LOG_LEVEL": (None, "log_level"),
    "INVENTORYD_LOG_FILE": (None, "log_file"),
    "INVENTORYD_REPORT_CACHE_FILE": ("report", "cache_file"),
    "INVENTORYD_REPORT_MAX_AGE": ("report", "max_age_secs"),
    "INVENTORYD_REFRESH_INTERVAL": ("report", "refresh_interval_secs"),
    "INVENTORYD_IDENTITY_PATH": ("identity", "path"),
    "INVENTORYD_OVERLAY_DIRS": ("identity", "overlay_dirs"),
}


def env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    """Nested override dict from ``INVENTORYD_*`` variables."""
    overrides: Dict[str, Any] = {}
    for var, (section, key) in ENV_OVERRIDES.items():
        value: Any = env.get(var)
        if value is None or value == "":
            continue
        if key == "overlay_dirs":
            value = [d for d in value.split(os.pathsep) if d]
        target = overrides if section is None else overrides.setdefault(section, {})
        target[key] = value
    return overrides


def _read_config_file(path: Path, required: bool) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as exc:
        if required:
            raise ConfigError(f"config file not found: {path}") from exc
        return {}
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"failed to read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse config file {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    return data


def _validate(data: Dict[str, Any]) -> DaemonConfig:
    try:
        return DaemonConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc


def load_config(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None
) -> DaemonConfig:
    """
    Load configuration from file and environment.

    Args:
        path: config file; defaults to ``INVENTORYD_CONFIG`` or the default
            location. An explicitly named file must exist.
        env: environment mapping (defaults to ``os.environ``)
    """
    env = os.environ if env is None else env
    explicit = path or env.get("INVENTORYD_CONFIG")
    config_path = Path(explicit).expanduser() if explicit else config_dir(env) / "config.yaml"

    data = _read_config_file(config_path, required=bool(explicit))
    data = deep_merge(data, env_overrides(env))
    if is_debug(env):
        data = deep_merge(data, {"log_level": "debug"})
    return _validate(data)


def apply_overrides(config: DaemonConfig, overrides: Dict[str, Any]) -> DaemonConfig:
    """Return ``config`` with non-None ``overrides`` (e.g. CLI flags) merged on top."""
    return _validate(deep_merge(config.model_dump(), overrides))


# ============================================================
# Feature Flags
# ============================================================

def is_debug(env: Optional[Mapping[str, str]] = None) -> bool:
    """Check if debug mode is enabled; it forces the debug log level."""
    env = os.environ if env is None else env
    return env.get("INVENTORYD_DEBUG", "").lower() in ("1", "true", "yes")
