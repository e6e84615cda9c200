"""IP blocklist for filtering discovered peers.

Supports single addresses, CIDR networks (e.g. ``10.0.0.0/8``) and
inclusive ranges (e.g. ``192.168.0.10-192.168.0.20``), IPv4 and IPv6.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Iterable, Union

from btclient.utils.exceptions import ConfigurationError
from btclient.utils.logging_config import get_logger

Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


class IPBlocklist:
    """Set of blocked IP networks."""

    def __init__(
        self,
        entries: Iterable[str] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize blocklist.

        Args:
            entries: Addresses, CIDR networks or ``start-end`` ranges
            logger: Injected logger

        Raises:
            ConfigurationError: If an entry cannot be parsed

        """
        self.ipv4_ranges: list[ipaddress.IPv4Network] = []
        self.ipv6_ranges: list[ipaddress.IPv6Network] = []
        self.logger = logger or get_logger("blocklist")
        for entry in entries or ():
            self.add(entry)

    def add(self, entry: str) -> None:
        """Add one address, network or range."""
        for network in self._parse(entry.strip()):
            if isinstance(network, ipaddress.IPv4Network):
                self.ipv4_ranges.append(network)
            else:
                self.ipv6_ranges.append(network)

    def _parse(self, entry: str) -> list[Network]:
        try:
            if "-" in entry:
                start_str, end_str = entry.split("-", 1)
                start = ipaddress.ip_address(start_str.strip())
                end = ipaddress.ip_address(end_str.strip())
                if start.version != end.version or start > end:
                    msg = f"Invalid IP range: {entry}"
                    raise ConfigurationError(msg)
                return list(ipaddress.summarize_address_range(start, end))
            return [ipaddress.ip_network(entry, strict=False)]
        except ValueError as e:
            msg = f"Invalid blocklist entry '{entry}': {e}"
            raise ConfigurationError(msg) from e

    def is_blocked(self, host: str) -> bool:
        """Check whether ``host`` falls inside any blocked network.

        Hostnames that are not literal IP addresses are never blocked.
        """
        try:
            ip_addr = ipaddress.ip_address(host)
        except ValueError:
            return False
        if isinstance(ip_addr, ipaddress.IPv4Address):
            return any(ip_addr in network for network in self.ipv4_ranges)
        return any(ip_addr in network for network in self.ipv6_ranges)

    def __len__(self) -> int:
        return len(self.ipv4_ranges) + len(self.ipv6_ranges)

    def __contains__(self, host: object) -> bool:
        return isinstance(host, str) and self.is_blocked(host)
