"""Torrent identifiers, magnet links and metainfo decoding."""

from btclient.core.identifier import (
    ContentID,
    IdentifierKind,
    ParsedIdentifier,
    TorrentDescriptor,
    parse_identifier,
    resolve,
)

__all__ = [
    "ContentID",
    "IdentifierKind",
    "ParsedIdentifier",
    "TorrentDescriptor",
    "parse_identifier",
    "resolve",
]
