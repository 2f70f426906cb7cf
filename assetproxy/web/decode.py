from __future__ import annotations

import binascii
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional
from urllib.parse import parse_qs, urlparse

from ..utils import ClientInputError

# Inbound headers that may influence the outbound request
FORWARDED_HEADERS = (
    'User-Agent',
    'Accept',
    'Accept-Encoding',
    'If-Modified-Since',
    'If-None-Match',
    'Via',
)


@dataclass(frozen=True)
class ProxyRequest:
    url: str
    scheme: str
    host: str
    headers: Dict[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str:
        return self.headers.get(name, '')


def target_from_query(query_string: str) -> Optional[str]:
    values = parse_qs(query_string or '', keep_blank_values=True).get('url')
    if values and values[0]:
        return values[0]
    return None


def target_from_path(path: str) -> str:
    """Decode a hex-encoded target URL from the request path."""
    encoded = path[1:] if path.startswith('/') else path
    try:
        return binascii.unhexlify(encoded).decode('utf-8')
    except (binascii.Error, ValueError):
        raise ClientInputError("Invalid URL encoding")


def select_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Copy the forwarded subset of inbound headers that are present."""
    out: Dict[str, str] = {}
    for name in FORWARDED_HEADERS:
        value = headers.get(name)
        if value:
            out[name] = value
    return out


def decode_request(path: str, query_string: str, headers: Optional[Mapping[str, str]] = None) -> ProxyRequest:
    """Turn an inbound path and query into a validated ProxyRequest.

    A non-empty ``url`` query parameter wins; otherwise the path is the hex
    encoding of the target URL. Raises ClientInputError on any defect.
    """
    dest_url = target_from_query(query_string)
    if dest_url is None:
        dest_url = target_from_path(path)

    try:
        parsed = urlparse(dest_url)
        host = parsed.hostname or ''
        # Accessing .port validates it
        parsed.port
    except ValueError:
        raise ClientInputError("Invalid URL")
    if parsed.scheme not in ('http', 'https'):
        raise ClientInputError("Invalid URL scheme, expected http")
    if not host:
        raise ClientInputError("Missing URL host")

    return ProxyRequest(
        url=dest_url,
        scheme=parsed.scheme,
        host=host,
        headers=select_headers(headers or {}),
    )
