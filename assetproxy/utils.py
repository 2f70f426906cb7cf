"""
Utility functions and the error taxonomy for assetproxy.
"""

import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stderr)
        ]
    )

    # Reduce noise from third-party libraries unless debugging
    if level.upper() != "DEBUG":
        for name in ("httpx", "httpcore", "uvicorn.access"):
            logging.getLogger(name).setLevel(logging.WARNING)


# Error handling classes
class ProxyError(Exception):
    """Base class for errors that end a proxied request.

    `status_code` is the HTTP status reported to the caller and the message is
    echoed as the plain-text response body.
    """
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ClientInputError(ProxyError):
    """Malformed inbound request: encoding, URL, scheme, host or loop."""
    status_code = 400


class MethodNotAllowedError(ClientInputError):
    status_code = 405


class SecurityPolicyError(ProxyError):
    """Host resolves to a blocked network, or could not be resolved at all."""
    status_code = 404


class UpstreamError(ProxyError):
    """Upstream fetch failed or returned something we will not relay."""
    status_code = 404


class ResourceLimitError(ProxyError):
    """Upstream declared a payload larger than the configured cap."""
    status_code = 400
