from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import PoolSettings
from .rendering import block
from .service import ManagedService
from .types import BackendTarget

LOGGER = logging.getLogger("TorPool.HAProxy")


class HAProxy(ManagedService):
    """Load balancer in front of the tor pool.

    Backends are a snapshot taken when the config is rendered, so every unit
    has to be registered before ``start``.
    """

    name = "haproxy"
    template_name = "haproxy.cfg.tmpl"

    def __init__(
        self,
        settings: PoolSettings,
        *,
        logger: Optional[logging.Logger] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(settings.haproxy_port, settings, logger=logger or LOGGER, **kwargs)
        self.backends: List[BackendTarget] = []
        self.stats = settings.haproxy_stats
        self.login = settings.haproxy_login
        self.password = settings.haproxy_pass

    @property
    def config_path(self) -> Path:
        return self.settings.config_dir / "haproxy.cfg"

    def add_backend(self, target: BackendTarget) -> None:
        # Additive on purpose: registering the same unit twice yields two servers.
        self.backends.append(target)
        self.logger.debug(
            "registered backend %s at %s:%s", target.name, target.address, target.port
        )

    def backend_lines(self) -> List[str]:
        return [
            f"    server {target.name}{index} {target.address}:{target.port} check"
            for index, target in enumerate(self.backends)
        ]

    def template_parameters(self) -> Dict[str, Any]:
        params = super().template_parameters()
        params.update(
            stats=self.stats,
            login=self.login,
            password=self.password,
            backends=block(self.backend_lines()),
        )
        return params

    def command_args(self) -> List[str]:
        return ["-f", str(self.config_path), "-p", str(self.pid_file)]

    def soft_reload(self) -> int:
        """Replace the running balancer without dropping its listening sockets.

        Phase one renders the config and starts a successor with ``-sf``; phase
        two happens inside haproxy, where the successor tells the previous
        process to release its sockets and finish. Returns the previous PID.
        """

        old_pid = self.handle.read_pid()
        self.logger.info("soft reloading %s (previous pid=%s)", self.label, old_pid)
        self.ensure_directories()
        self.render_config()
        self.handle.launch_detached(
            self.executable, [*self.command_args(), "-sf", str(old_pid)]
        )
        return old_pid
