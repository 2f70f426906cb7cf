from __future__ import annotations

from fastapi import Request

from ..config import ProxySettings
from ..transport.http import Forwarder


def get_forwarder(request: Request) -> Forwarder:
    return request.app.state.forwarder


def get_settings(request: Request) -> ProxySettings:
    return request.app.state.settings
