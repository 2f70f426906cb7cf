from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from ..transport.networking import Resolver, resolve_host
from ..utils import SecurityPolicyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockedNetworkRule:
    """Leading address bytes that mark an address as off-limits."""
    version: int
    prefix: bytes

    @classmethod
    def from_cidr(cls, cidr: str) -> "BlockedNetworkRule":
        net = ipaddress.ip_network(cidr.strip(), strict=False)
        if net.prefixlen % 8:
            raise ValueError(f"Blocked network must be byte aligned: {cidr}")
        return cls(net.version, net.network_address.packed[: net.prefixlen // 8])

    def matches(self, packed: bytes) -> bool:
        # Compare octet by octet; every prefix octet must match
        if len(packed) < len(self.prefix):
            return False
        for i, b in enumerate(self.prefix):
            if packed[i] != b:
                return False
        return True


@dataclass(frozen=True)
class NetworkBlocklist:
    rules: Tuple[BlockedNetworkRule, ...]

    @classmethod
    def from_cidrs(cls, cidrs: Iterable[str]) -> "NetworkBlocklist":
        return cls(tuple(BlockedNetworkRule.from_cidr(c) for c in cidrs))

    def blocked_rule(self, address: str) -> Optional[BlockedNetworkRule]:
        """Return the first rule that blocks address, or None."""
        ip = ipaddress.ip_address(address.split('%', 1)[0])
        if ip.version == 6 and ip.ipv4_mapped is not None:
            ip = ip.ipv4_mapped
        packed = ip.packed
        for rule in self.rules:
            if rule.version == ip.version and rule.matches(packed):
                return rule
        return None


class HostValidator:
    """Resolve a host and vet every address it resolves to.

    Fails closed: a resolution error, an empty answer, an unparsable address
    or any single blocked address rejects the whole host. Nothing is cached,
    so each call reflects the current DNS answer.
    """

    def __init__(self, blocklist: NetworkBlocklist, resolver: Optional[Resolver] = None) -> None:
        self.blocklist = blocklist
        self.resolver = resolver or resolve_host

    async def validate(self, host: str, port: int = 443) -> List[str]:
        """Return the validated addresses for host or raise SecurityPolicyError."""
        try:
            addresses = await self.resolver(host, port)
        except OSError as e:
            logger.warning("Resolution failed for %s: %s", host, e)
            raise SecurityPolicyError("Invalid host") from e
        if not addresses:
            logger.warning("No addresses for %s", host)
            raise SecurityPolicyError("Invalid host")
        for address in addresses:
            try:
                rule = self.blocklist.blocked_rule(address)
            except ValueError as e:
                logger.warning("Unparsable address %r for %s", address, host)
                raise SecurityPolicyError("Invalid host") from e
            if rule is not None:
                logger.warning("Blocked host %s: %s is in a blocked network", host, address)
                raise SecurityPolicyError("Invalid host")
        return list(addresses)

    async def is_allowed(self, host: str, port: int = 443) -> bool:
        try:
            await self.validate(host, port)
        except SecurityPolicyError:
            return False
        return True
