from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from pydantic import ValidationError

from .config import PoolSettings
from .launcher import ServiceNotRunningError
from .orchestrator import Orchestrator
from .rendering import ConfigRenderError

LOGGER = logging.getLogger("TorPool")

COMMANDS = ("run", "stop", "reload", "check")


@dataclass(frozen=True)
class CLIArgs:
    """Typed representation of the command line."""

    command: str
    settings: PoolSettings


def parse_args(
    argv: Sequence[str] | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> CLIArgs:
    parser = argparse.ArgumentParser(
        description="Supervise a pool of tor clients behind haproxy."
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=COMMANDS,
        default="run",
        help=(
            "'run' starts the pool and idles, 'stop' signals every PID-tracked "
            "service, 'reload' soft-reloads haproxy and 'check' probes each unit."
        ),
    )
    parser.add_argument(
        "--tors",
        type=int,
        default=None,
        help="Number of tor clients. Defaults to the 'tors' environment variable or 20.",
    )
    parser.add_argument(
        "--privoxy",
        action="store_true",
        help="Also start privoxy and the onion relays.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging (same as setting DEBUG).",
    )

    args = parser.parse_args(argv)
    overrides: dict[str, object] = {}
    if args.tors is not None:
        overrides["pool_size"] = args.tors
    if args.privoxy:
        overrides["privoxy"] = True
    if args.debug:
        overrides["debug"] = True

    settings = PoolSettings.from_env(
        os.environ if environ is None else environ, **overrides
    )
    return CLIArgs(command=args.command, settings=settings)


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )


def main(
    argv: Sequence[str] | None = None,
    environ: Optional[Mapping[str, str]] = None,
    *,
    max_cycles: Optional[int] = None,
) -> int:
    try:
        args = parse_args(argv, environ)
    except ValidationError as exc:
        configure_logging(debug=False)
        LOGGER.error("Invalid configuration: %s", exc)
        return 1

    configure_logging(args.settings.debug)
    orchestrator = Orchestrator(args.settings)

    if args.command == "stop":
        orchestrator.stop()
        return 0

    if args.command == "reload":
        try:
            old_pid = orchestrator.reload()
        except ServiceNotRunningError as exc:
            LOGGER.error("Cannot soft reload haproxy: %s", exc)
            return 1
        except ConfigRenderError as exc:
            LOGGER.error("Failed to render haproxy config: %s", exc)
            return 1
        LOGGER.info("haproxy reloaded; previous pid %s is handing over", old_pid)
        return 0

    if args.command == "check":
        result = asyncio.run(orchestrator.probe())
        LOGGER.info(
            "reachable: %s, unreachable: %s",
            result.reachable or "(none)",
            result.unreachable or "(none)",
        )
        return 0 if result.success else 1

    try:
        orchestrator.run(max_cycles=max_cycles)
    except ConfigRenderError as exc:
        LOGGER.error("Startup aborted: %s", exc)
        return 1
    except KeyboardInterrupt:
        LOGGER.info("Shutdown requested by user.")
        if args.settings.stop_on_exit:
            orchestrator.stop()
    return 0


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
