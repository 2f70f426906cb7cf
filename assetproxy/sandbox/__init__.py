"""
SSRF policy: network block-list and host validation.
"""

from .net_policy import BlockedNetworkRule, HostValidator, NetworkBlocklist

__all__ = ["BlockedNetworkRule", "HostValidator", "NetworkBlocklist"]
