from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .config import PoolSettings
from .health import ClientFactory, check_reachability
from .rendering import block
from .service import ManagedService
from .types import BackendTarget

LOGGER = logging.getLogger("TorPool.Tor")
UNIT_LOGGER = logging.getLogger("TorPool.ProxyUnit")

BACKEND_NAME = "tor"
BACKEND_ADDRESS = "127.0.0.1"


class TorClient(ManagedService):
    """One tor client; every pool member keeps its files under its own port."""

    name = "tor"
    template_name = "torrc.tmpl"

    def __init__(
        self,
        port: int,
        settings: PoolSettings,
        *,
        logger: Optional[logging.Logger] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(port, settings, logger=logger or LOGGER, **kwargs)
        self.new_circuit_period = settings.new_circuit_period
        self.max_circuit_dirtiness = settings.max_circuit_dirtiness
        self.circuit_build_timeout = settings.circuit_build_timeout
        self.bridges = list(settings.tor_bridges)

    @property
    def data_directory(self) -> Path:
        return self.layout.data_directory / str(self.port)

    @property
    def config_path(self) -> Path:
        return self.layout.data_directory / f"{self.port}-torrc"

    @property
    def log_tag(self) -> str:
        return f"tor{self.port}"

    def ensure_directories(self) -> None:
        super().ensure_directories()
        self.data_directory.mkdir(parents=True, exist_ok=True)

    def template_parameters(self) -> Dict[str, Any]:
        params = super().template_parameters()
        bridge_lines: List[str] = []
        if self.bridges:
            bridge_lines.append("UseBridges 1")
            bridge_lines.extend(f"Bridge {bridge}" for bridge in self.bridges)
        params.update(
            new_circuit_period=self.new_circuit_period,
            max_circuit_dirtiness=self.max_circuit_dirtiness,
            circuit_build_timeout=self.circuit_build_timeout,
            bridges=block(bridge_lines),
        )
        return params

    def command_args(self) -> List[str]:
        return ["-f", str(self.config_path)]


class ProxyUnit:
    """A pool member: one tor client addressed as a single backend."""

    def __init__(
        self,
        unit_id: int,
        settings: PoolSettings,
        *,
        logger: Optional[logging.Logger] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        if unit_id < 0:
            raise ValueError("Proxy unit id must be non-negative.")
        self.id = unit_id
        self.settings = settings
        self._logger = logger or UNIT_LOGGER
        self._sleep = sleep or time.sleep
        self.tor = TorClient(
            self.port, settings, logger=logger.getChild("Tor") if logger else None
        )

    @property
    def port(self) -> int:
        return self.settings.tor_base_port + self.id

    def backend_target(self) -> BackendTarget:
        return BackendTarget(name=BACKEND_NAME, address=BACKEND_ADDRESS, port=self.port)

    def start(self) -> None:
        self._logger.info("starting proxy id %s", self.id)
        self.tor.start()

    def stop(self) -> None:
        self._logger.info("stopping proxy id %s", self.id)
        self.tor.stop()

    def restart(self) -> None:
        """Stop, let the network settle, then start again on a fresh circuit."""

        self._logger.info("restarting proxy id %s for a new identity", self.id)
        self.stop()
        self._sleep(self.settings.restart_quiesce)
        self.start()

    async def check_reachability(
        self, *, client_factory: Optional[ClientFactory] = None
    ) -> bool:
        return await check_reachability(
            self.port,
            self.settings.test_url,
            self.settings.test_status,
            client_factory=client_factory,
            logger=self._logger,
        )
