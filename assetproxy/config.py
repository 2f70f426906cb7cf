"""
Configuration settings for the proxy.
Uses pydantic-settings for validation and environment variable loading.
"""

from __future__ import annotations
from typing import List

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# 5 MiB, applied both to the declared Content-Length and as a streaming cap
MAX_SIZE = 5242880

DEFAULT_BLOCKED_NETWORKS = [
    # IPv4 link-local
    "169.254.0.0/16",
    # IPv4 private
    "10.0.0.0/8",
    "172.16.0.0/16",
    "192.168.0.0/16",
]


class ProxySettings(BaseSettings):
    """Proxy service configuration.

    Every field can be set from the environment with the ``ASSETPROXY_``
    prefix. The listening port is also read from a bare ``PORT`` variable,
    which is what most container platforms provide.
    """

    model_config = SettingsConfigDict(
        env_prefix='ASSETPROXY_',
        case_sensitive=False,
        populate_by_name=True,
        extra='ignore',
    )

    # Serving
    host: str = '0.0.0.0'
    port: int = Field(8081, validation_alias=AliasChoices('PORT', 'ASSETPROXY_PORT', 'port'))
    log_level: str = 'INFO'

    # Relay limits
    max_size: int = MAX_SIZE
    max_hops: int = 4

    # Outbound request shape
    via_token: str = 'assetproxy'
    user_agent: str = 'assetproxy/1.0'
    default_accept: str = 'image/*'
    default_cache_control: str = 'public, max-age=3600'

    # Timeouts (seconds)
    connect_timeout_s: float = 5.0
    read_timeout_s: float = 30.0
    fetch_deadline_s: float = 30.0

    # SSRF policy; byte-aligned CIDR prefixes
    blocked_networks: List[str] = Field(default_factory=lambda: list(DEFAULT_BLOCKED_NETWORKS))

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}:
            raise ValueError(f"unknown log level: {v}")
        return level

    @field_validator('max_size', 'max_hops')
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v
