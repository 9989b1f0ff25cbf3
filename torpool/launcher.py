from __future__ import annotations

import logging
import os
import shlex
import shutil
import signal
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from .config import DEFAULT_LOG_SINK

LOGGER = logging.getLogger("TorPool.Launcher")


class ServiceNotRunningError(RuntimeError):
    """Raised when an operation needs a live, PID-tracked process and none exists."""

    def __init__(self, pid_file: Path, message: str) -> None:
        super().__init__(message)
        self.pid_file = pid_file


def which(executable: str) -> Optional[str]:
    """Resolve ``executable`` on ``PATH``; ``None`` when it cannot be found."""

    return shutil.which(executable)


def build_command(
    argv: Sequence[str],
    *,
    log_sink: str = DEFAULT_LOG_SINK,
    log_tag: str | None = None,
) -> str:
    """Shell pipeline that runs ``argv`` with its stdout and stderr fed to the log sink."""

    sink = [log_sink]
    if log_tag:
        sink.extend(["-t", log_tag])
    return f"{shlex.join(argv)} 2>&1 | {shlex.join(sink)}"


def fire_and_forget(
    argv: Sequence[str],
    *,
    log_sink: str = DEFAULT_LOG_SINK,
    log_tag: str | None = None,
    logger: logging.Logger = LOGGER,
) -> subprocess.Popen[bytes]:
    """Spawn ``argv`` in its own session so it outlives the supervisor.

    Nothing waits for the child to become ready and launch failures of the
    external binary only surface through the log sink.
    """

    command = build_command(argv, log_sink=log_sink, log_tag=log_tag)
    logger.debug("running: %s", command)
    return subprocess.Popen(
        command,
        shell=True,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
        close_fds=True,
    )


class ProcessHandle:
    """A launched external process tracked through the PID file it writes."""

    def __init__(
        self,
        pid_file: Path,
        *,
        label: str,
        log_sink: str = DEFAULT_LOG_SINK,
        stop_signal: int = signal.SIGINT,
        logger: logging.Logger = LOGGER,
    ) -> None:
        self.pid_file = pid_file
        self.label = label
        self.log_sink = log_sink
        self.stop_signal = stop_signal
        self.process: subprocess.Popen[bytes] | None = None
        self._logger = logger

    @property
    def pid(self) -> Optional[int]:
        """PID recorded in the PID file, or ``None`` when absent or unreadable."""

        try:
            pid = int(self.pid_file.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None
        # 0 and negative values address process groups, never a single service.
        return pid if pid > 0 else None

    @property
    def exit_code(self) -> Optional[int]:
        """Exit status of the launching pipeline, ``None`` while it is still running."""

        if self.process is None:
            return None
        return self.process.poll()

    def read_pid(self) -> int:
        """Strict PID lookup: the file must exist and name a live process."""

        if not self.pid_file.exists():
            raise ServiceNotRunningError(
                self.pid_file, f"{self.label} has no PID file at {self.pid_file}"
            )
        raw = self.pid_file.read_text(encoding="utf-8").strip()
        try:
            pid = int(raw)
        except ValueError as exc:
            raise ServiceNotRunningError(
                self.pid_file, f"{self.label} PID file {self.pid_file} is corrupt: {raw!r}"
            ) from exc
        if pid <= 0:
            raise ServiceNotRunningError(
                self.pid_file, f"{self.label} PID file {self.pid_file} is corrupt: {raw!r}"
            )
        if not _pid_alive(pid):
            raise ServiceNotRunningError(
                self.pid_file, f"{self.label} PID {pid} from {self.pid_file} is stale"
            )
        return pid

    def is_running(self) -> bool:
        pid = self.pid
        return pid is not None and _pid_alive(pid)

    def launch_detached(
        self,
        executable: str,
        args: Sequence[str],
        *,
        log_tag: str | None = None,
    ) -> subprocess.Popen[bytes]:
        self.process = fire_and_forget(
            [executable, *args],
            log_sink=self.log_sink,
            log_tag=log_tag,
            logger=self._logger,
        )
        return self.process

    def stop(self) -> bool:
        """Signal the recorded PID once; returns whether a signal was delivered."""

        if not self.pid_file.exists():
            self._logger.info("%s was not running", self.label)
            return False

        pid = self.pid
        if pid is None:
            self._logger.warning(
                "couldn't stop %s: unreadable PID file %s", self.label, self.pid_file
            )
            return False

        try:
            os.kill(pid, self.stop_signal)
        except OSError as exc:
            self._logger.warning("couldn't stop %s (pid=%s): %s", self.label, pid, exc)
            return False
        self._logger.debug("sent signal %s to %s (pid=%s)", self.stop_signal, self.label, pid)
        return True


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True
