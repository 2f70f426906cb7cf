from __future__ import annotations

import logging
from typing import AsyncIterator

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from ..config import ProxySettings
from ..transport.http import Forwarder
from ..utils import MethodNotAllowedError, ProxyError
from ..web.decode import decode_request
from ..web.relay import RelayHead, filter_response, limit_stream
from .deps import get_forwarder, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["proxy"])

# Every method is routed here so non-GET requests get our own 405
ROUTED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@router.get("/health")
async def health(
    request: Request,
    forwarder: Forwarder = Depends(get_forwarder),
    settings: ProxySettings = Depends(get_settings),
):
    # The url query form names a target on any path, this one included
    if request.query_params.get("url"):
        return await proxy(request, request.url.path, forwarder, settings)
    return {"status": "ok"}


async def _relay_body(upstream: httpx.Response, max_size: int) -> AsyncIterator[bytes]:
    # Runs until the cap, the end of the body, or cancellation on disconnect
    try:
        async for chunk in limit_stream(upstream.aiter_raw(), max_size):
            yield chunk
    finally:
        await upstream.aclose()


class RelayResponse(StreamingResponse):
    """StreamingResponse that closes its upstream however sending ends.

    The body generator only closes the upstream once it has started; this
    also covers a send that fails before the first body chunk.
    """

    def __init__(self, content, upstream: httpx.Response, **kwargs) -> None:
        super().__init__(content, **kwargs)
        self.upstream = upstream

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.upstream.aclose()


def write_response(head: RelayHead, upstream: httpx.Response, max_size: int) -> RelayResponse:
    return RelayResponse(
        _relay_body(upstream, max_size),
        upstream,
        status_code=head.status_code,
        headers=head.headers,
        media_type=None,
    )


@router.api_route("/{path:path}", methods=ROUTED_METHODS)
async def proxy(
    request: Request,
    path: str,
    forwarder: Forwarder = Depends(get_forwarder),
    settings: ProxySettings = Depends(get_settings),
):
    """Fetch the image named by the request and stream it back.

    Each stage either hands on to the next or raises a ProxyError, which the
    application turns into the error response; nothing runs after a failure.
    """
    forwarder.check_loop(request.headers.get("via"))
    if request.method != "GET":
        raise MethodNotAllowedError("Only GET is allowed")

    proxy_request = decode_request(request.url.path, request.url.query, request.headers)
    upstream = await forwarder.fetch(proxy_request)
    try:
        head = filter_response(
            upstream.status_code,
            upstream.headers,
            max_size=settings.max_size,
            default_cache_control=settings.default_cache_control,
        )
    except ProxyError:
        await upstream.aclose()
        raise
    return write_response(head, upstream, settings.max_size)
