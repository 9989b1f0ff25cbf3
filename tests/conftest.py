"""Shared fixtures: isolated filesystem roots and a recorder in place of process spawning."""

from __future__ import annotations

import shlex
import subprocess
from pathlib import Path
from typing import Any, Callable, List

import pytest

from torpool.config import PoolSettings


class RecordingPopen:
    """Stands in for ``subprocess.Popen``; records the shell command instead of running it."""

    calls: List["RecordingPopen"] = []

    def __init__(self, command: str, **kwargs: Any) -> None:
        self.command = command
        self.kwargs = kwargs
        self.pid = 40000 + len(RecordingPopen.calls)
        self.returncode: int | None = None
        RecordingPopen.calls.append(self)

    @property
    def argv(self) -> List[str]:
        return shlex.split(self.command)

    def poll(self) -> int | None:
        return self.returncode


@pytest.fixture
def launches(monkeypatch: pytest.MonkeyPatch) -> List[RecordingPopen]:
    RecordingPopen.calls = []
    monkeypatch.setattr(subprocess, "Popen", RecordingPopen)
    monkeypatch.setattr("torpool.launcher.shutil.which", lambda name: f"/usr/bin/{name}")
    return RecordingPopen.calls


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., PoolSettings]:
    def factory(**overrides: Any) -> PoolSettings:
        values: dict[str, Any] = {
            "var_root": tmp_path / "var",
            "config_dir": tmp_path / "etc",
            "first_wait": 0,
            "restart_quiesce": 0,
        }
        values.update(overrides)
        return PoolSettings(**values)

    return factory


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
