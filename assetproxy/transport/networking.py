from __future__ import annotations

"""
Networking helpers for host resolution and address-pinned outbound requests.

Outbound connections never resolve names themselves: a hop is resolved once,
its addresses are vetted, and the request URL is rewritten to one of those
addresses while the Host header and TLS server name keep the original host.
"""

from typing import Awaitable, Callable, Dict, List
import asyncio
import socket

import httpx


Resolver = Callable[[str, int], Awaitable[List[str]]]

DEFAULT_PORTS = {"http": 80, "https": 443}


async def resolve_host(host: str, port: int) -> List[str]:
    """Resolve host to its addresses, de-duplicated in resolver order.

    IP literals resolve to themselves. Raises OSError (socket.gaierror) when
    the name cannot be resolved.
    """
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    seen: Dict[str, None] = {}
    for info in infos:
        seen.setdefault(str(info[4][0]), None)
    return list(seen)


def port_of(url: httpx.URL) -> int:
    return url.port or DEFAULT_PORTS.get(url.scheme, 80)


def host_header(url: httpx.URL) -> str:
    """Host header value for url: the host, plus the port when non-default."""
    host = url.host
    if ":" in host:
        host = f"[{host}]"
    if url.port is not None and url.port != DEFAULT_PORTS.get(url.scheme):
        return f"{host}:{url.port}"
    return host


def pinned_url(url: httpx.URL, address: str) -> httpx.URL:
    """Return url with its host replaced by an already validated address."""
    if ":" in address:
        address = f"[{address}]"
    return url.copy_with(host=address)


def pinned_extensions(url: httpx.URL) -> Dict[str, str]:
    # TLS must still negotiate and verify against the name the caller asked for
    if url.scheme == "https":
        return {"sni_hostname": url.host}
    return {}
