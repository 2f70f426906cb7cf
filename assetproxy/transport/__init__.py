"""
Transport layer: address-pinned outbound fetches and the redirect policy.

This package exposes:
- networking: host resolution and address pinning helpers
- policy: per-hop redirect policy (hop cap + host validation)
- http: Forwarder, the outbound fetch with redirect handling
"""

__all__ = ["networking", "policy", "http"]
