from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .config import PoolSettings
from .launcher import fire_and_forget, which
from .rendering import block
from .service import ManagedService
from .types import TunnelSpec

LOGGER = logging.getLogger("TorPool.Privoxy")

RELAY_EXECUTABLE = "socat"


class Privoxy(ManagedService):
    """Filtering HTTP proxy forwarding into haproxy, plus static onion relays.

    The relay table comes from ``tunnels`` or the ``onion_tunnels`` setting and
    is empty by default, in which case ``start`` launches privoxy alone.
    """

    name = "privoxy"
    template_name = "privoxy.cfg.tmpl"

    def __init__(
        self,
        settings: PoolSettings,
        *,
        tunnels: Optional[Sequence[TunnelSpec]] = None,
        logger: Optional[logging.Logger] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(settings.privoxy_port, settings, logger=logger or LOGGER, **kwargs)
        self.haproxy_port = settings.haproxy_port
        self.permit = settings.privoxy_permit.split()
        self.deny = settings.privoxy_deny.split()
        self.tunnels = tuple(settings.onion_tunnels if tunnels is None else tunnels)
        self.relays: List[subprocess.Popen[bytes]] = []

    @property
    def config_path(self) -> Path:
        return self.settings.config_dir / "privoxy.cfg"

    @property
    def log_tag(self) -> str:
        return f"privoxy{self.port}"

    def template_parameters(self) -> Dict[str, Any]:
        params = super().template_parameters()
        params.update(
            haproxy_port=self.haproxy_port,
            permit=block(f"permit-access {rule}" for rule in self.permit),
            deny=block(f"deny-access {rule}" for rule in self.deny),
        )
        return params

    def command_args(self) -> List[str]:
        return ["--no-daemon", "--pidfile", str(self.pid_file), str(self.config_path)]

    def relay_args(self, tunnel: TunnelSpec) -> List[str]:
        return [
            "-d",
            f"tcp4-LISTEN:{tunnel.listen_port},reuseaddr,fork,keepalive,bind=0.0.0.0",
            f"SOCKS4A:127.0.0.1:{tunnel.upstream_host}:{tunnel.upstream_port},"
            f"socksport={self.haproxy_port}",
        ]

    def after_launch(self) -> None:
        relay = which(RELAY_EXECUTABLE) or RELAY_EXECUTABLE
        for tunnel in self.tunnels:
            self.logger.info(
                "relaying port %s to %s:%s",
                tunnel.listen_port,
                tunnel.upstream_host,
                tunnel.upstream_port,
            )
            # Each relay is independent; nothing watches or respawns it.
            self.relays.append(
                fire_and_forget(
                    [relay, *self.relay_args(tunnel)],
                    log_sink=self.settings.log_sink,
                    log_tag=f"socat{tunnel.listen_port}",
                    logger=self.logger,
                )
            )
