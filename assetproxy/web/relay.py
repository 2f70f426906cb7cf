from __future__ import annotations

"""
Upstream response filtering for the relay.

Decides whether an upstream response may be relayed at all, which of its
headers reach the caller, and caps the number of body bytes streamed.
"""

from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Mapping, Optional
import logging

from ..config import MAX_SIZE
from ..utils import ResourceLimitError, UpstreamError

logger = logging.getLogger(__name__)

RELAYABLE_STATUSES = (200, 304)
DEFAULT_CACHE_CONTROL = 'public, max-age=3600'


@dataclass
class RelayHead:
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)


def parse_content_length(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        n = int(value.strip())
    except ValueError:
        return None
    return n if n >= 0 else None


def filter_response(
    status_code: int,
    headers: Mapping[str, str],
    *,
    max_size: int = MAX_SIZE,
    default_cache_control: str = DEFAULT_CACHE_CONTROL,
) -> RelayHead:
    """Vet an upstream status line and headers; return what to send back.

    Raises UpstreamError for a status other than 200/304 or a non-image
    Content-Type, and ResourceLimitError when the declared length is over
    max_size. The body is never touched here.
    """
    if status_code not in RELAYABLE_STATUSES:
        logger.info("Upstream returned status %s", status_code)
        raise UpstreamError()

    content_type = headers.get('content-type', '')
    if not content_type.startswith('image'):
        logger.info("Upstream returned Content-Type %r", content_type)
        raise UpstreamError("Received invalid Content-Type")

    out: Dict[str, str] = {'Content-Type': content_type}

    etag = headers.get('etag')
    if etag:
        out['ETag'] = etag

    content_encoding = headers.get('content-encoding')
    if content_encoding:
        out['Content-Encoding'] = content_encoding

    content_length = parse_content_length(headers.get('content-length'))
    if content_length is not None and content_length > max_size:
        raise ResourceLimitError("Response is too large")
    if content_length is not None:
        out['Content-Length'] = str(content_length)

    out['Cache-Control'] = headers.get('cache-control') or default_cache_control
    out['X-Content-Type-Options'] = 'nosniff'
    return RelayHead(status_code, out)


async def limit_stream(chunks: AsyncIterator[bytes], max_bytes: int = MAX_SIZE) -> AsyncIterator[bytes]:
    """Yield at most max_bytes from chunks, cutting the last chunk short."""
    remaining = max_bytes
    async for chunk in chunks:
        if not chunk:
            continue
        if len(chunk) >= remaining:
            if len(chunk) > remaining:
                logger.info("Truncating upstream body at %d bytes", max_bytes)
            yield chunk[:remaining]
            return
        remaining -= len(chunk)
        yield chunk
