"""
assetproxy - an SSRF-safe forwarding proxy for remote image assets.
"""

__version__ = "1.0.0"
__author__ = "assetproxy maintainers"
