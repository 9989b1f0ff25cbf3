from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, List, Protocol, runtime_checkable


@dataclass(frozen=True)
class BackendTarget:
    """One address/port pair the load balancer forwards traffic to."""

    name: str
    address: str
    port: int


@dataclass(frozen=True)
class TunnelSpec:
    """Static TCP relay from a local port to a hidden-service host."""

    listen_port: int
    upstream_host: str
    upstream_port: int = 80


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of probing every unit in the pool through its SOCKS port."""

    success: bool
    reachable: List[int] = field(default_factory=list)
    unreachable: List[int] = field(default_factory=list)


class ServiceState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    CONFIGURED = "configured"
    RUNNING = "running"
    STOPPED = "stopped"


@runtime_checkable
class Startable(Protocol):
    def start(self) -> None: ...


@runtime_checkable
class Stoppable(Protocol):
    def stop(self) -> None: ...


@runtime_checkable
class ConfigurableService(Startable, Stoppable, Protocol):
    """A service whose configuration is rendered from a template before launch."""

    name: str
    port: int

    def render_config(self) -> str: ...


@runtime_checkable
class ReachabilityCheck(Protocol):
    port: int

    async def check_reachability(self, *, client_factory: Any = None) -> bool: ...
