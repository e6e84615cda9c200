"""Version management utilities for btclient.

This module provides functions to:
- Retrieve the installed package version using importlib
- Generate peer_id prefixes based on version
- Format user-agent strings
"""

from __future__ import annotations

import importlib.metadata
import re
import secrets
from typing import Final

NETWORK_CLIENT_NAME: Final[str] = "btclient"


def get_version() -> str:
    """Get the installed package version.

    Falls back to ``btclient.__version__`` when package metadata is unavailable.
    """
    try:
        return importlib.metadata.version("btclient")
    except importlib.metadata.PackageNotFoundError:
        import btclient

        return getattr(btclient, "__version__", "0.0.1")


def parse_version(version: str) -> tuple[int, int, int]:
    """Parse version string into major, minor, patch components.

    Raises:
        ValueError: If version format is invalid

    """
    version_clean = re.split(r"[-+]", version)[0]
    parts = version_clean.split(".")
    if len(parts) < 2:
        msg = f"Invalid version format: {version} (expected MAJOR.MINOR.PATCH)"
        raise ValueError(msg)
    major = int(parts[0])
    minor = int(parts[1])
    patch = int(parts[2]) if len(parts) > 2 else 0
    return (major, minor, patch)


def get_peer_id_prefix(version: str | None = None) -> bytes:
    """Generate the Azureus-style peer_id prefix for ``version``.

    Pattern: ``-BC{major:02d}{minor:02d}-``; patch is ignored.

    Examples:
        Version 0.0.3 → -BC0001-
        Version 0.1.2 → -BC0001-
        Version 1.4.0 → -BC0104-

    """
    if version is None:
        version = get_version()
    major, minor, _patch = parse_version(version)
    if major == 0 and minor == 0:
        return b"-BC0001-"
    return f"-BC{major:02d}{minor:02d}-".encode()


def generate_peer_id(version: str | None = None) -> bytes:
    """Generate a complete 20-byte peer_id: 8-byte prefix + 12 random bytes."""
    return get_peer_id_prefix(version) + secrets.token_bytes(12)


def generate_node_id() -> bytes:
    """Generate a random 160-bit DHT node id."""
    return secrets.token_bytes(20)


def get_user_agent(version: str | None = None) -> str:
    """Format user-agent string for HTTP tracker requests."""
    if version is None:
        version = get_version()
    return f"{NETWORK_CLIENT_NAME}/{version}"
