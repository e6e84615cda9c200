"""Magnet URI parsing (BEP 9) utilities.

Only the parameters needed to identify a torrent and find peers for it are
understood: ``xt=urn:btih:<hash>``, ``dn``, ``tr`` (multiple) and ``ws``
(multiple).
"""

from __future__ import annotations

import base64
import binascii
import urllib.parse
from dataclasses import dataclass, field

from btclient.utils.exceptions import MagnetError

MAGNET_PREFIX = "magnet:"
BTIH_PREFIX = "urn:btih:"


@dataclass
class MagnetInfo:
    """Information extracted from a magnet link."""

    info_hash: bytes
    display_name: str | None = None
    trackers: list[str] = field(default_factory=list)
    web_seeds: list[str] = field(default_factory=list)


def is_magnet_uri(value: str) -> bool:
    """Return True if ``value`` starts with the magnet scheme."""
    return value[: len(MAGNET_PREFIX)].lower() == MAGNET_PREFIX


def decode_info_hash(btih: str) -> bytes:
    """Decode a textual info hash: hex (40 chars) or base32 (32 chars).

    Raises:
        MagnetError: If the text has another length or does not decode

    """
    btih = btih.strip()
    try:
        if len(btih) == 40:
            return bytes.fromhex(btih)
        if len(btih) == 32:
            return base64.b32decode(btih.upper())
    except (ValueError, binascii.Error) as e:
        msg = f"Invalid info hash encoding: {btih!r}"
        raise MagnetError(msg) from e
    msg = f"Info hash must be 40 hex or 32 base32 characters, got {len(btih)}"
    raise MagnetError(msg)


def parse_magnet(uri: str) -> MagnetInfo:
    """Parse a magnet URI and return `MagnetInfo`.

    Raises:
        MagnetError: If the URI is not a magnet link or carries no usable btih

    """
    parsed = urllib.parse.urlparse(uri)
    if parsed.scheme.lower() != "magnet":
        msg = "Not a magnet URI"
        raise MagnetError(msg, {"uri": uri})

    qs = urllib.parse.parse_qs(parsed.query)
    btih_value = None
    for xt in qs.get("xt", []):
        if xt.lower().startswith(BTIH_PREFIX):
            btih_value = xt[len(BTIH_PREFIX) :]
            break
    if not btih_value:
        msg = "Magnet link missing xt=urn:btih"
        raise MagnetError(msg, {"uri": uri})

    info_hash = decode_info_hash(btih_value)
    if len(info_hash) != 20:
        msg = "Invalid info hash length"
        raise MagnetError(msg, {"length": len(info_hash)})

    return MagnetInfo(
        info_hash=info_hash,
        display_name=qs.get("dn", [None])[0],
        trackers=qs.get("tr", []),
        web_seeds=qs.get("ws", []),
    )


def build_magnet_uri(
    info_hash: bytes,
    display_name: str | None = None,
    trackers: list[str] | None = None,
) -> str:
    """Build a magnet URI for ``info_hash`` (hex encoded)."""
    params = [("xt", f"{BTIH_PREFIX}{info_hash.hex()}")]
    if display_name:
        params.append(("dn", display_name))
    params.extend(("tr", tracker) for tracker in trackers or [])
    return "magnet:?" + urllib.parse.urlencode(params, safe=":/")
