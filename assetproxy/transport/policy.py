from __future__ import annotations

"""
Redirect policy for outbound fetches.

A single policy object decides whether each hop of a fetch may be issued: the
original request and every redirect the upstream asks us to follow. Hop
counting and host validation live here and nowhere else.
"""

from dataclasses import dataclass
from typing import List
import logging

import httpx

from ..sandbox.net_policy import HostValidator
from ..utils import SecurityPolicyError, UpstreamError
from .networking import port_of

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")
REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


@dataclass
class RedirectPolicy:
    validator: HostValidator
    max_hops: int = 4

    async def check(self, url: httpx.URL, hops_done: int) -> List[str]:
        """
        Vet the next hop and return the addresses it may connect to.
        hops_done counts requests already issued (0 for the original request).
        """
        if hops_done >= self.max_hops:
            logger.warning("Redirect limit reached after %d hops at %s", hops_done, url.host)
            raise UpstreamError(f"Stopped after {hops_done} hops")
        if url.scheme not in ALLOWED_SCHEMES:
            raise UpstreamError(f"Unsupported redirect scheme: {url.scheme}")
        if not url.host:
            raise SecurityPolicyError("Invalid host")
        return await self.validator.validate(url.host, port_of(url))


def is_redirect(response: httpx.Response) -> bool:
    return response.status_code in REDIRECT_STATUSES and "location" in response.headers
