"""Pytest session bootstrap for this repository.

Responsibilities:
- Ensure the `assetproxy` package is importable from a source checkout
- Keep host environment variables from leaking into ProxySettings
- Provide fake DNS and a fake upstream so no test touches the network
"""

import ipaddress
import os
import socket
import sys
from typing import Callable, Dict, List, Optional

import httpx
import pytest

HERE = os.path.dirname(__file__)
ROOT = os.path.abspath(os.path.join(HERE, '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from assetproxy.config import ProxySettings  # noqa: E402

PUBLIC_DNS = {
    'example.com': ['93.184.216.34'],
    'cdn.example.com': ['93.184.216.35'],
    'img1.example.com': ['93.184.216.41'],
    'img2.example.com': ['93.184.216.42'],
    'img3.example.com': ['93.184.216.43'],
    'img4.example.com': ['93.184.216.44'],
    'img5.example.com': ['93.184.216.45'],
    'internal.example.com': ['10.1.2.3'],
    'mixed.example.com': ['93.184.216.50', '192.168.0.7'],
    'metadata.example.com': ['169.254.169.254'],
}


class FakeDNS:
    """Resolver double: a static table, IP literals resolve to themselves."""

    def __init__(self, table: Optional[Dict[str, List[str]]] = None) -> None:
        self.table = dict(PUBLIC_DNS if table is None else table)
        self.lookups: List[str] = []

    async def __call__(self, host: str, port: int) -> List[str]:
        self.lookups.append(host)
        if host in self.table:
            return list(self.table[host])
        try:
            ipaddress.ip_address(host)
        except ValueError:
            raise socket.gaierror(socket.EAI_NONAME, 'Name or service not known')
        return [host]


Handler = Callable[[httpx.Request], httpx.Response]


class TrackedStream(httpx.AsyncByteStream):
    """Wraps an upstream body and records whether it was closed."""

    def __init__(self, inner: httpx.AsyncByteStream) -> None:
        self.inner = inner
        self.closed = False

    async def __aiter__(self):
        async for chunk in self.inner:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True
        await self.inner.aclose()


class FakeUpstream:
    """Dispatches pinned requests by their Host header, recording each one."""

    def __init__(self) -> None:
        self.handlers: Dict[str, Handler] = {}
        self.requests: List[httpx.Request] = []
        self.streams: List[TrackedStream] = []

    def on(self, host: str, handler: Handler) -> None:
        self.handlers[host] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.handlers.get(request.headers.get('host', ''))
        if handler is None:
            raise httpx.ConnectError('connection refused', request=request)
        response = handler(request)
        response.stream = TrackedStream(response.stream)
        self.streams.append(response.stream)
        return response

    @property
    def all_closed(self) -> bool:
        return all(s.closed for s in self.streams)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def image_response(
    body: bytes = b'',
    status_code: int = 200,
    content_type: Optional[str] = 'image/png',
    content_length: bool = True,
    headers: Optional[Dict[str, str]] = None,
) -> httpx.Response:
    """Build an unread streaming upstream response."""
    hdrs: Dict[str, str] = {}
    if content_type is not None:
        hdrs['Content-Type'] = content_type
    if content_length:
        hdrs['Content-Length'] = str(len(body))
    hdrs.update(headers or {})
    return httpx.Response(status_code, headers=hdrs, stream=httpx.ByteStream(body))


def redirect_response(location: str, status_code: int = 302) -> httpx.Response:
    return httpx.Response(status_code, headers={'Location': location}, stream=httpx.ByteStream(b''))


def hex_path(url: str) -> str:
    return '/' + url.encode('utf-8').hex()


@pytest.fixture(autouse=True)
def _env_isolation(monkeypatch):
    for name in list(os.environ):
        if name.upper().startswith('ASSETPROXY_'):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv('PORT', raising=False)
    yield


@pytest.fixture
def dns() -> FakeDNS:
    return FakeDNS()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def settings() -> ProxySettings:
    return ProxySettings()


@pytest.fixture
def proxy(settings, dns, upstream):
    from fastapi.testclient import TestClient
    from assetproxy.api.app import create_app

    app = create_app(settings, resolver=dns, transport=upstream.transport())
    with TestClient(app, follow_redirects=False) as client:
        yield client
