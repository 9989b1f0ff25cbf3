from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .types import TunnelSpec

DEFAULT_POOL_SIZE = 20
DEFAULT_TOR_BASE_PORT = 10000
DEFAULT_NEW_CIRCUIT_PERIOD = 120
DEFAULT_MAX_CIRCUIT_DIRTINESS = 600
DEFAULT_CIRCUIT_BUILD_TIMEOUT = 60
DEFAULT_HAPROXY_STATS_PORT = 2090
DEFAULT_HAPROXY_LOGIN = "admin"
DEFAULT_HAPROXY_PASSWORD = "admin"
DEFAULT_HAPROXY_PORT = 5566
DEFAULT_PRIVOXY_PORT = 8118
DEFAULT_TEST_URL = "http://google.com"
DEFAULT_TEST_STATUS = 302
DEFAULT_FIRST_WAIT = 60.0
DEFAULT_IDLE_INTERVAL = 60.0
DEFAULT_RESTART_QUIESCE = 5.0
DEFAULT_VAR_ROOT = Path("/var")
DEFAULT_CONFIG_DIR = Path("/usr/local/etc")
DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
DEFAULT_LOG_SINK = "logger"

_FALSE_TOKENS = {"", "0", "false", "no", "off"}

# Environment keys are read verbatim; DEBUG keeps its historical spelling.
_ENV_FIELDS = {
    "tors": "pool_size",
    "tor_base_port": "tor_base_port",
    "new_circuit_period": "new_circuit_period",
    "max_circuit_dirtiness": "max_circuit_dirtiness",
    "circuit_build_timeout": "circuit_build_timeout",
    "tor_bridges": "tor_bridges",
    "haproxy_stats": "haproxy_stats",
    "haproxy_login": "haproxy_login",
    "haproxy_pass": "haproxy_pass",
    "haproxy_port": "haproxy_port",
    "privoxy": "privoxy",
    "privoxy_port": "privoxy_port",
    "privoxy_permit": "privoxy_permit",
    "privoxy_deny": "privoxy_deny",
    "onion_tunnels": "onion_tunnels",
    "test_url": "test_url",
    "test_status": "test_status",
    "first_wait": "first_wait",
    "idle_interval": "idle_interval",
    "restart_quiesce": "restart_quiesce",
    "var_root": "var_root",
    "config_dir": "config_dir",
    "template_dir": "template_dir",
    "log_sink": "log_sink",
    "stop_on_exit": "stop_on_exit",
    "DEBUG": "debug",
}


def _env_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() not in _FALSE_TOKENS


class PoolSettings(BaseModel):
    """Validated runtime settings for the pool, usually sourced from the environment."""

    model_config = ConfigDict(frozen=True)

    pool_size: int = Field(default=DEFAULT_POOL_SIZE, ge=0)
    tor_base_port: int = Field(default=DEFAULT_TOR_BASE_PORT, gt=0, lt=65536)
    new_circuit_period: int = DEFAULT_NEW_CIRCUIT_PERIOD
    max_circuit_dirtiness: int = DEFAULT_MAX_CIRCUIT_DIRTINESS
    circuit_build_timeout: int = DEFAULT_CIRCUIT_BUILD_TIMEOUT
    tor_bridges: tuple[str, ...] = ()

    haproxy_stats: int = DEFAULT_HAPROXY_STATS_PORT
    haproxy_login: str = DEFAULT_HAPROXY_LOGIN
    haproxy_pass: str = DEFAULT_HAPROXY_PASSWORD
    haproxy_port: int = DEFAULT_HAPROXY_PORT

    privoxy: bool = False
    privoxy_port: int = DEFAULT_PRIVOXY_PORT
    privoxy_permit: str = ""
    privoxy_deny: str = ""
    onion_tunnels: tuple[TunnelSpec, ...] = ()

    test_url: str = DEFAULT_TEST_URL
    test_status: int = DEFAULT_TEST_STATUS

    first_wait: float = Field(default=DEFAULT_FIRST_WAIT, ge=0)
    idle_interval: float = Field(default=DEFAULT_IDLE_INTERVAL, gt=0)
    restart_quiesce: float = Field(default=DEFAULT_RESTART_QUIESCE, ge=0)

    var_root: Path = DEFAULT_VAR_ROOT
    config_dir: Path = DEFAULT_CONFIG_DIR
    template_dir: Path = DEFAULT_TEMPLATE_DIR
    log_sink: str = DEFAULT_LOG_SINK
    stop_on_exit: bool = False
    debug: bool = False

    @field_validator("tor_bridges", mode="before")
    @classmethod
    def _split_bridges(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(item.strip() for item in value.split(";") if item.strip())
        return value

    @field_validator("onion_tunnels", mode="before")
    @classmethod
    def _parse_tunnels(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        tunnels: list[TunnelSpec] = []
        for entry in value.split(";"):
            entry = entry.strip()
            if not entry:
                continue
            port, sep, host = entry.partition("=")
            if not sep or not host.strip():
                raise ValueError(f"Tunnel entry must look like 'port=host': {entry!r}")
            tunnels.append(TunnelSpec(listen_port=int(port), upstream_host=host.strip()))
        return tuple(tunnels)

    @field_validator("privoxy", "stop_on_exit", "debug", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> bool:
        return _env_flag(value)

    @classmethod
    def from_env(cls, environ: Mapping[str, str], **overrides: Any) -> "PoolSettings":
        """Build settings from environment variables; unknown keys are ignored."""

        values: dict[str, Any] = {
            field: environ[key] for key, field in _ENV_FIELDS.items() if key in environ
        }
        values.update(overrides)
        return cls.model_validate(values)
