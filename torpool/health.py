from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

import httpx

from .types import ProbeResult, ReachabilityCheck

LOGGER = logging.getLogger("TorPool.Health")

ClientFactory = Callable[[str, float], httpx.AsyncClient]


def socks_proxy_url(port: int, host: str = "127.0.0.1") -> str:
    return f"socks5://{host}:{port}"


def socks_client(proxy_url: str, timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(proxy=proxy_url, timeout=timeout)


async def check_reachability(
    port: int,
    test_url: str,
    expected_status: int,
    *,
    timeout: float = 30.0,
    client_factory: Optional[ClientFactory] = None,
    logger: logging.Logger = LOGGER,
) -> bool:
    """Fetch ``test_url`` through the SOCKS port and compare the status code.

    Redirects are not followed, so a redirecting test URL is matched on its
    3xx status. ``client_factory`` receives the proxy URL for ``port``.
    """

    proxy_url = socks_proxy_url(port)
    factory = client_factory or socks_client
    logger.info("checking %s through %s", test_url, proxy_url)
    try:
        async with factory(proxy_url, timeout) as client:
            response = await client.get(test_url, follow_redirects=False)
    except httpx.HTTPError as exc:
        logger.debug("reachability check through %s failed: %s", proxy_url, exc)
        return False

    if response.status_code != expected_status:
        logger.debug(
            "port %s returned %s, expected %s",
            port,
            response.status_code,
            expected_status,
        )
        return False
    return True


async def probe_pool(
    units: Iterable[ReachabilityCheck],
    *,
    client_factory: Optional[ClientFactory] = None,
) -> ProbeResult:
    """Probe each unit once, in order, each through its own SOCKS port."""

    reachable: list[int] = []
    unreachable: list[int] = []
    for unit in units:
        if await unit.check_reachability(client_factory=client_factory):
            reachable.append(unit.port)
        else:
            unreachable.append(unit.port)

    if unreachable:
        LOGGER.warning("unreachable proxy ports: %s", unreachable)
    return ProbeResult(
        success=not unreachable, reachable=reachable, unreachable=unreachable
    )
