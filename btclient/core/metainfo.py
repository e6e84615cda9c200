"""Decoding of raw ``.torrent`` metainfo bytes.

Only what the discovery layer needs is extracted: the info hash, the tracker
list, the display name and the total content length.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any

import bencodepy

from btclient.utils.exceptions import TorrentError


@dataclass
class Metainfo:
    """Fields of a decoded metainfo dictionary."""

    info_hash: bytes
    name: str | None
    length: int
    announce: list[str] = field(default_factory=list)
    info: dict[bytes, Any] = field(default_factory=dict)


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _announce_list(data: dict[bytes, Any]) -> list[str]:
    """Flatten ``announce`` and the tiers of ``announce-list``, keeping order."""
    urls: list[str] = []
    if b"announce" in data:
        urls.append(_text(data[b"announce"]))
    for tier in data.get(b"announce-list", []):
        tier_urls = tier if isinstance(tier, list) else [tier]
        for url in tier_urls:
            text = _text(url)
            if text not in urls:
                urls.append(text)
    return urls


def _total_length(info: dict[bytes, Any]) -> int:
    if b"length" in info:
        return int(info[b"length"])
    files = info.get(b"files")
    if not isinstance(files, list):
        msg = "Info dictionary has neither 'length' nor 'files'"
        raise TorrentError(msg)
    return sum(int(f[b"length"]) for f in files)


def decode_metainfo(data: bytes) -> Metainfo:
    """Decode bencoded metainfo bytes.

    Raises:
        TorrentError: If the bytes are not valid bencoded metainfo

    """
    try:
        decoded = bencodepy.decode(data)
    except Exception as e:
        msg = f"Failed to decode torrent metainfo: {e}"
        raise TorrentError(msg) from e

    if not isinstance(decoded, dict):
        msg = "Torrent metainfo must be a dictionary"
        raise TorrentError(msg)
    info = decoded.get(b"info")
    if not isinstance(info, dict):
        msg = "Missing or invalid 'info' dictionary"
        raise TorrentError(msg)

    try:
        info_hash = hashlib.sha1(bencodepy.encode(info)).digest()  # nosec B324 - BitTorrent info hash
        length = _total_length(info)
        name = _text(info[b"name"]) if b"name" in info else None
        announce = _announce_list(decoded)
    except TorrentError:
        raise
    except Exception as e:
        msg = f"Malformed torrent metainfo: {e}"
        raise TorrentError(msg) from e

    return Metainfo(
        info_hash=info_hash,
        name=name,
        length=length,
        announce=announce,
        info=info,
    )
