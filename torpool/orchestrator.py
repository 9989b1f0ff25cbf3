from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

from .config import PoolSettings
from .haproxy import HAProxy
from .health import probe_pool
from .privoxy import Privoxy
from .tor import ProxyUnit
from .types import ProbeResult

LOGGER = logging.getLogger("TorPool")


class Orchestrator:
    """Build the pool, start it in dependency order, then idle."""

    def __init__(
        self,
        settings: PoolSettings,
        *,
        logger: logging.Logger = LOGGER,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.settings = settings
        self._logger = logger
        self._sleep = sleep or time.sleep
        self.haproxy = HAProxy(settings, logger=logger.getChild("HAProxy"))
        self.units: List[ProxyUnit] = [
            ProxyUnit(
                unit_id,
                settings,
                logger=logger.getChild("ProxyUnit"),
                sleep=sleep,
            )
            for unit_id in range(settings.pool_size)
        ]
        self.privoxy: Optional[Privoxy] = (
            Privoxy(settings, logger=logger.getChild("Privoxy"))
            if settings.privoxy
            else None
        )
        self._registered = False

    def register_backends(self) -> None:
        if self._registered:
            return
        for unit in self.units:
            self.haproxy.add_backend(unit.backend_target())
        self._registered = True

    def start(self) -> None:
        """Start every unit before the balancer so its config sees all backends."""

        self._logger.info("starting pool of %s proxy unit(s)", len(self.units))
        self.register_backends()
        for unit in self.units:
            unit.start()
        self.haproxy.start()
        if self.privoxy is not None:
            self.privoxy.start()

    def stop(self) -> None:
        if self.privoxy is not None:
            self.privoxy.stop()
        self.haproxy.stop()
        for unit in self.units:
            unit.stop()

    def reload(self) -> int:
        self.register_backends()
        return self.haproxy.soft_reload()

    async def probe(self) -> ProbeResult:
        return await probe_pool(self.units)

    def warm_up(self) -> None:
        self._logger.info("waiting %ss for the pool to warm up", self.settings.first_wait)
        self._sleep(self.settings.first_wait)

    def idle(self, max_cycles: Optional[int] = None) -> None:
        """Wake once per interval with nothing scheduled.

        Exceptions raised while idling are logged and the loop carries on.
        ``KeyboardInterrupt`` is not caught: it ends the loop so the caller can
        shut down, optionally stopping the pool.
        """

        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            cycles += 1
            try:
                self._sleep(self.settings.idle_interval)
            except Exception:
                self._logger.exception("unexpected error while idling; continuing")

    def run(self, max_cycles: Optional[int] = None) -> None:
        self.start()
        self.warm_up()
        self.idle(max_cycles=max_cycles)
