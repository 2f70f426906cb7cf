from __future__ import annotations

"""
Outbound fetch for the proxy.

Owns request shaping, the redirect loop and address pinning, so the HTTP
route stays free of transport details.
"""

from typing import Dict, Optional
import asyncio
import logging

import httpx

from ..utils import ClientInputError, ProxyError, UpstreamError
from ..web.decode import ProxyRequest
from . import networking as _net
from .policy import RedirectPolicy, is_redirect

logger = logging.getLogger(__name__)


def build_client(
    *,
    connect_timeout_s: float = 5.0,
    read_timeout_s: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the shared outbound client.

    Redirects are followed by Forwarder, never by httpx. Keep-alive is off
    because connections are keyed by the pinned address and must not be
    reused for a different virtual host. Environment proxies are ignored.
    """
    timeout = httpx.Timeout(connect=connect_timeout_s, read=read_timeout_s, write=read_timeout_s, pool=connect_timeout_s)
    limits = httpx.Limits(max_keepalive_connections=0)
    return httpx.AsyncClient(
        timeout=timeout,
        limits=limits,
        follow_redirects=False,
        trust_env=False,
        transport=transport,
    )


class Forwarder:
    """
    Fetch a ProxyRequest on the caller's behalf.
    Responsibilities:
      - Reject requests that already passed through this proxy
      - Shape the outbound headers from the inbound subset
      - Consult the redirect policy before every hop
      - Connect only to addresses the policy has just validated
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: RedirectPolicy,
        *,
        via_token: str = "assetproxy",
        user_agent: str = "assetproxy/1.0",
        default_accept: str = "image/*",
        fetch_deadline_s: Optional[float] = None,
    ) -> None:
        self.client = client
        self.policy = policy
        self.via_token = via_token
        self.user_agent = user_agent
        self.default_accept = default_accept
        self.fetch_deadline_s = fetch_deadline_s

    # ---------------- Request shaping ----------------
    def check_loop(self, via: Optional[str]) -> None:
        if via and self.via_token in via:
            logger.warning("Rejected request that already passed through %s: %s", self.via_token, via)
            raise ClientInputError("Requesting from self")

    def outbound_headers(self, proxy_request: ProxyRequest) -> Dict[str, str]:
        headers = {
            "User-Agent": proxy_request.header("User-Agent") or self.user_agent,
            "Accept": proxy_request.header("Accept") or self.default_accept,
            # identity keeps the relayed bytes exactly as the upstream sent them
            "Accept-Encoding": proxy_request.header("Accept-Encoding") or "identity",
        }
        for name in ("If-Modified-Since", "If-None-Match"):
            value = proxy_request.header(name)
            if value:
                headers[name] = value
        via = proxy_request.header("Via")
        headers["Via"] = f"{via}, 1.1 {self.via_token}" if via else f"1.1 {self.via_token}"
        return headers

    # ---------------- Fetching ----------------
    async def _send_pinned(self, url: httpx.URL, addresses, headers: Dict[str, str]) -> httpx.Response:
        last_exc: Optional[Exception] = None
        for address in addresses:
            request = self.client.build_request(
                "GET",
                _net.pinned_url(url, address),
                headers={**headers, "Host": _net.host_header(url)},
                extensions=_net.pinned_extensions(url),
            )
            try:
                return await self.client.send(request, stream=True)
            except httpx.ConnectError as e:
                logger.debug("Connect to %s (%s) failed: %s", url.host, address, e)
                last_exc = e
                continue
            except httpx.HTTPError as e:
                logger.warning("Upstream request to %s failed: %s", url.host, e)
                raise UpstreamError("Upstream request failed") from e
        logger.warning("Could not connect to %s: %s", url.host, last_exc)
        raise UpstreamError("Upstream request failed") from last_exc

    async def _fetch(self, proxy_request: ProxyRequest) -> httpx.Response:
        try:
            url = httpx.URL(proxy_request.url)
        except httpx.InvalidURL as e:
            raise ClientInputError("Invalid URL") from e
        headers = self.outbound_headers(proxy_request)
        hops = 0
        while True:
            addresses = await self.policy.check(url, hops)
            response = await self._send_pinned(url, addresses, headers)
            hops += 1
            if not is_redirect(response):
                return response
            location = response.headers["location"]
            await response.aclose()
            try:
                url = url.join(location)
            except httpx.InvalidURL as e:
                raise UpstreamError("Invalid redirect location") from e
            logger.debug("Following redirect %d to %s", hops, url.host)

    async def fetch(self, proxy_request: ProxyRequest) -> httpx.Response:
        """
        Issue the outbound GET and follow redirects under the policy.

        Returns the final upstream response with its body still unread; the
        caller must close it. Any rejected hop fails the whole fetch.
        """
        try:
            if self.fetch_deadline_s:
                return await asyncio.wait_for(self._fetch(proxy_request), self.fetch_deadline_s)
            return await self._fetch(proxy_request)
        except ProxyError:
            raise
        except asyncio.TimeoutError as e:
            logger.warning("Fetch deadline exceeded for %s", proxy_request.host)
            raise UpstreamError("Upstream request timed out") from e
