from __future__ import annotations

import logging
import signal
import subprocess
from pathlib import Path
from typing import List

import pytest

from torpool import launcher
from torpool.launcher import (
    ProcessHandle,
    ServiceNotRunningError,
    build_command,
    fire_and_forget,
)


def make_handle(tmp_path: Path, contents: str | None = None) -> ProcessHandle:
    pid_file = tmp_path / "run" / "svc" / "1234.pid"
    if contents is not None:
        pid_file.parent.mkdir(parents=True)
        pid_file.write_text(contents, encoding="utf-8")
    return ProcessHandle(pid_file, label="svc on port 1234")


def record_kills(monkeypatch: pytest.MonkeyPatch, error: OSError | None = None) -> List[tuple[int, int]]:
    sent: List[tuple[int, int]] = []

    def fake_kill(pid: int, sig: int) -> None:
        sent.append((pid, sig))
        if error is not None:
            raise error

    monkeypatch.setattr(launcher.os, "kill", fake_kill)
    return sent


def test_build_command_pipes_output_to_log_sink() -> None:
    command = build_command(["/usr/bin/tor", "-f", "/var/lib/tor/10000-torrc"], log_tag="tor10000")

    assert command == "/usr/bin/tor -f /var/lib/tor/10000-torrc 2>&1 | logger -t tor10000"


def test_build_command_quotes_arguments() -> None:
    command = build_command(["prog", "a b"], log_sink="cat")

    assert command == "prog 'a b' 2>&1 | cat"


def test_fire_and_forget_detaches_child(launches) -> None:
    process = fire_and_forget(["/usr/bin/socat", "-d"], log_tag="socat8408")

    assert launches == [process]
    assert process.kwargs["shell"] is True
    assert process.kwargs["start_new_session"] is True
    assert process.kwargs["stdin"] == subprocess.DEVNULL


def test_launch_detached_keeps_process_for_exit_status(tmp_path: Path, launches) -> None:
    handle = make_handle(tmp_path)
    assert handle.exit_code is None

    handle.launch_detached("/usr/bin/svc", ["--flag"], log_tag="svc")
    assert handle.exit_code is None

    launches[0].returncode = 1
    assert handle.exit_code == 1


def test_stop_without_pid_file_logs_not_running(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    sent = record_kills(monkeypatch)
    handle = make_handle(tmp_path)

    with caplog.at_level(logging.INFO, logger="TorPool.Launcher"):
        assert handle.stop() is False

    assert sent == []
    assert "svc on port 1234 was not running" in caplog.text


def test_stop_signals_recorded_pid_once(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    sent = record_kills(monkeypatch)
    handle = make_handle(tmp_path, "4321\n")

    assert handle.stop() is True
    assert sent == [(4321, signal.SIGINT)]


def test_stop_with_stale_pid_warns_and_keeps_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    record_kills(monkeypatch, ProcessLookupError("No such process"))
    handle = make_handle(tmp_path, "4321")

    with caplog.at_level(logging.WARNING, logger="TorPool.Launcher"):
        assert handle.stop() is False

    assert "couldn't stop svc on port 1234" in caplog.text
    assert handle.pid_file.exists()


def test_stop_with_permission_error_is_not_fatal(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    record_kills(monkeypatch, PermissionError("Operation not permitted"))
    handle = make_handle(tmp_path, "1")

    assert handle.stop() is False


def test_stop_with_corrupt_pid_file_warns(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    sent = record_kills(monkeypatch)
    handle = make_handle(tmp_path, "not-a-pid")

    with caplog.at_level(logging.WARNING, logger="TorPool.Launcher"):
        assert handle.stop() is False

    assert sent == []
    assert "unreadable PID file" in caplog.text


def test_read_pid_requires_pid_file(tmp_path: Path) -> None:
    with pytest.raises(ServiceNotRunningError):
        make_handle(tmp_path).read_pid()


def test_read_pid_rejects_corrupt_file(tmp_path: Path) -> None:
    with pytest.raises(ServiceNotRunningError, match="corrupt"):
        make_handle(tmp_path, "garbage").read_pid()


def test_read_pid_rejects_stale_pid(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    record_kills(monkeypatch, ProcessLookupError())

    with pytest.raises(ServiceNotRunningError, match="stale"):
        make_handle(tmp_path, "4321").read_pid()


def test_read_pid_returns_live_pid(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    sent = record_kills(monkeypatch)
    handle = make_handle(tmp_path, "4321\n")

    assert handle.read_pid() == 4321
    assert handle.is_running() is True
    assert sent[0] == (4321, 0)


@pytest.mark.parametrize("contents", ["0", "-1", "-4321"])
def test_stop_refuses_group_addressing_pid(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
    contents: str,
) -> None:
    sent = record_kills(monkeypatch)
    handle = make_handle(tmp_path, contents)

    with caplog.at_level(logging.WARNING, logger="TorPool.Launcher"):
        assert handle.stop() is False

    assert sent == []
    assert handle.pid is None
    assert "unreadable PID file" in caplog.text


@pytest.mark.parametrize("contents", ["0", "-1"])
def test_read_pid_rejects_non_positive_pid(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, contents: str
) -> None:
    sent = record_kills(monkeypatch)

    with pytest.raises(ServiceNotRunningError, match="corrupt"):
        make_handle(tmp_path, contents).read_pid()
    assert sent == []
