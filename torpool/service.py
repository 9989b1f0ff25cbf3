from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import PoolSettings
from .launcher import ProcessHandle, which
from .rendering import ConfigRenderer
from .types import ServiceState

LOGGER = logging.getLogger("TorPool.Service")

_DIRECTORY_KINDS = ("lib", "run", "log")


@dataclass(frozen=True)
class ServiceLayout:
    """Filesystem convention shared by every managed service.

    ``<root>/lib/<name>`` holds data, ``<root>/run/<name>/<port>.pid`` the PID
    file and ``<root>/log/<name>`` logs. The PID path is unique per
    ``(name, port)`` so co-located instances never collide.
    """

    name: str
    port: int
    root: Path

    @property
    def data_directory(self) -> Path:
        return self.root / "lib" / self.name

    @property
    def run_directory(self) -> Path:
        return self.root / "run" / self.name

    @property
    def log_directory(self) -> Path:
        return self.root / "log" / self.name

    @property
    def pid_file(self) -> Path:
        return self.run_directory / f"{self.port}.pid"

    def directories(self) -> List[Path]:
        return [self.root / kind / self.name for kind in _DIRECTORY_KINDS]

    def ensure_directories(self) -> None:
        for path in self.directories():
            path.mkdir(parents=True, exist_ok=True)


class ManagedService:
    """An external binary with a templated config and a PID-tracked lifetime.

    Concrete services set ``name`` and ``template_name`` and implement
    ``command_args``/``template_parameters``; ``after_launch`` runs once the
    main process has been spawned.
    """

    name: str = ""
    template_name: str = ""

    def __init__(
        self,
        port: int,
        settings: PoolSettings,
        *,
        logger: Optional[logging.Logger] = None,
        renderer: Optional[ConfigRenderer] = None,
    ) -> None:
        self.port = port
        self.settings = settings
        self.logger = logger or LOGGER
        self.layout = ServiceLayout(name=self.name, port=port, root=settings.var_root)
        self.renderer = renderer or ConfigRenderer(self.logger)
        self.handle = ProcessHandle(
            self.layout.pid_file,
            label=self.label,
            log_sink=settings.log_sink,
            logger=self.logger,
        )
        self.state = ServiceState.UNINITIALIZED

    @property
    def label(self) -> str:
        return f"{self.name} on port {self.port}"

    @property
    def data_directory(self) -> Path:
        return self.layout.data_directory

    @property
    def pid_file(self) -> Path:
        return self.layout.pid_file

    @property
    def template_path(self) -> Path:
        return self.settings.template_dir / self.template_name

    @property
    def config_path(self) -> Path:
        raise NotImplementedError

    @property
    def executable(self) -> str:
        resolved = which(self.name)
        if resolved is None:
            self.logger.warning("%s not found on PATH; launching by bare name", self.name)
            return self.name
        return resolved

    @property
    def log_tag(self) -> Optional[str]:
        return None

    def ensure_directories(self) -> None:
        self.layout.ensure_directories()

    def template_parameters(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "port": self.port,
            "pid_file": self.pid_file,
            "data_directory": self.data_directory,
        }

    def command_args(self) -> List[str]:
        raise NotImplementedError

    def render_config(self) -> str:
        text = self.renderer.render_to(
            self.template_path, self.config_path, self.template_parameters()
        )
        self.state = ServiceState.CONFIGURED
        return text

    def start(self) -> None:
        self.ensure_directories()
        self.logger.info("starting %s", self.label)
        self.render_config()
        self.handle.launch_detached(self.executable, self.command_args(), log_tag=self.log_tag)
        self.state = ServiceState.RUNNING
        self.after_launch()

    def after_launch(self) -> None:
        pass

    def stop(self) -> None:
        self.logger.info("stopping %s", self.label)
        self.handle.stop()
        self.state = ServiceState.STOPPED
