"""
Supervisor for a pool of tor clients fronted by haproxy.

The package renders configuration for each external service, launches the
binaries detached from the supervisor and tracks them through PID files so
they can be stopped or reloaded from a later invocation.
"""

from __future__ import annotations

__all__ = [
    "config",
    "haproxy",
    "health",
    "launcher",
    "main",
    "orchestrator",
    "privoxy",
    "rendering",
    "service",
    "tor",
    "types",
]
