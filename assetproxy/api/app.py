from __future__ import annotations

import time
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from ..config import ProxySettings
from ..sandbox.net_policy import HostValidator, NetworkBlocklist
from ..transport.http import Forwarder, build_client
from ..transport.networking import Resolver
from ..transport.policy import RedirectPolicy
from ..utils import MethodNotAllowedError, ProxyError
from .router import router


def build_forwarder(
    settings: ProxySettings,
    *,
    resolver: Optional[Resolver] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Forwarder:
    # The blocklist is built once here and only ever read afterwards
    blocklist = NetworkBlocklist.from_cidrs(settings.blocked_networks)
    validator = HostValidator(blocklist, resolver=resolver)
    policy = RedirectPolicy(validator, max_hops=settings.max_hops)
    client = build_client(
        connect_timeout_s=settings.connect_timeout_s,
        read_timeout_s=settings.read_timeout_s,
        transport=transport,
    )
    return Forwarder(
        client,
        policy,
        via_token=settings.via_token,
        user_agent=settings.user_agent,
        default_accept=settings.default_accept,
        fetch_deadline_s=settings.fetch_deadline_s,
    )


def create_app(
    settings: Optional[ProxySettings] = None,
    *,
    resolver: Optional[Resolver] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or ProxySettings()
    forwarder = build_forwarder(settings, resolver=resolver, transport=transport)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        try:
            yield
        finally:
            await forwarder.client.aclose()

    app = FastAPI(title="assetproxy", version="1.0.0", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = settings
    app.state.forwarder = forwarder

    logger = logging.getLogger("assetproxy.access")

    @app.middleware("http")
    async def request_logger(request: Request, call_next):
        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
            return response
        finally:
            dur_ms = (time.perf_counter() - start) * 1000.0
            logger.info(
                "%s %s -> %s in %.1fms",
                request.method,
                request.url.path,
                getattr(response, 'status_code', 'NA'),
                dur_ms,
            )

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(_request: Request, exc: ProxyError) -> PlainTextResponse:
        headers = {"X-Content-Type-Options": "nosniff"}
        if isinstance(exc, MethodNotAllowedError):
            headers["Allow"] = "GET"
        return PlainTextResponse(exc.message, status_code=exc.status_code, headers=headers)

    app.include_router(router)
    return app
