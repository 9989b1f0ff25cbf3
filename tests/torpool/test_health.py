from __future__ import annotations

import socket
from typing import Callable, List, Tuple

import httpx
import pytest

from torpool.health import check_reachability, probe_pool, socks_client, socks_proxy_url
from torpool.tor import ProxyUnit

Handler = Callable[[httpx.Request], httpx.Response]


def recording_factory(
    handler: Handler,
) -> Tuple[Callable[[str, float], httpx.AsyncClient], List[str]]:
    proxies: List[str] = []

    def factory(proxy_url: str, timeout: float) -> httpx.AsyncClient:
        proxies.append(proxy_url)
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=timeout)

    return factory, proxies


def respond(status: int) -> Handler:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, headers={"Location": "http://www.google.com/"})

    return handler


def refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("SOCKS port refused", request=request)


def closed_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_socks_proxy_url() -> None:
    assert socks_proxy_url(10004) == "socks5://127.0.0.1:10004"


@pytest.mark.anyio
async def test_matching_status_is_reachable() -> None:
    factory, proxies = recording_factory(respond(302))

    assert await check_reachability(10000, "http://google.com", 302, client_factory=factory)
    assert proxies == ["socks5://127.0.0.1:10000"]


@pytest.mark.anyio
async def test_other_status_is_unreachable() -> None:
    factory, _ = recording_factory(respond(200))

    assert not await check_reachability(10000, "http://google.com", 302, client_factory=factory)


@pytest.mark.anyio
async def test_transport_error_is_unreachable() -> None:
    factory, _ = recording_factory(refuse)

    assert not await check_reachability(10000, "http://google.com", 302, client_factory=factory)


@pytest.mark.anyio
async def test_closed_socks_port_is_unreachable() -> None:
    port = closed_port()

    assert not await check_reachability(port, "http://example.com/", 302, timeout=2.0)


def test_default_client_is_built_with_socks_proxy(monkeypatch: pytest.MonkeyPatch) -> None:
    built: list[dict] = []

    def fake_client(**kwargs) -> str:
        built.append(kwargs)
        return "client"

    monkeypatch.setattr(httpx, "AsyncClient", fake_client)

    assert socks_client(socks_proxy_url(10007), 2.0) == "client"
    assert built == [{"proxy": "socks5://127.0.0.1:10007", "timeout": 2.0}]


@pytest.mark.anyio
async def test_unit_uses_configured_url_status_and_port(make_settings) -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(204)

    factory, proxies = recording_factory(handler)
    settings = make_settings(test_url="http://example.com/ping", test_status=204)
    unit = ProxyUnit(1, settings)

    assert await unit.check_reachability(client_factory=factory)
    assert seen == ["http://example.com/ping"]
    assert proxies == ["socks5://127.0.0.1:10001"]


@pytest.mark.anyio
async def test_probe_pool_uses_each_units_port(make_settings) -> None:
    settings = make_settings(pool_size=3)
    units = [ProxyUnit(i, settings) for i in range(3)]
    factory, proxies = recording_factory(respond(302))

    result = await probe_pool(units, client_factory=factory)

    assert result.success is True
    assert proxies == [
        "socks5://127.0.0.1:10000",
        "socks5://127.0.0.1:10001",
        "socks5://127.0.0.1:10002",
    ]


class StubUnit:
    def __init__(self, port: int, reachable: bool) -> None:
        self.port = port
        self._reachable = reachable

    async def check_reachability(self, *, client_factory=None) -> bool:
        return self._reachable


@pytest.mark.anyio
async def test_probe_pool_partitions_ports() -> None:
    units = [StubUnit(10000, True), StubUnit(10001, False), StubUnit(10002, True)]

    result = await probe_pool(units)

    assert result.success is False
    assert result.reachable == [10000, 10002]
    assert result.unreachable == [10001]


@pytest.mark.anyio
async def test_probe_empty_pool_succeeds() -> None:
    result = await probe_pool([])

    assert result.success is True
