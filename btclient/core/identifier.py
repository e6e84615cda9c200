"""Torrent identifier resolution.

Every accepted representation of a torrent is parsed into a
`ParsedIdentifier` whose descriptor carries the canonical 20-byte
`ContentID`:

- 40-character hex text or 32-character base32 text
- ``magnet:`` URIs
- exactly 20 raw bytes
- longer raw bytes, decoded as bencoded ``.torrent`` metainfo
- an already parsed `TorrentDescriptor`
- a mapping carrying an ``info_hash`` (and optionally ``announce``,
  ``name``, ``length``)

Anything else fails with `ValidationError`. Parsing has no side effects.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Mapping, Union

from btclient.core.magnet import decode_info_hash, is_magnet_uri, parse_magnet
from btclient.core.metainfo import decode_metainfo
from btclient.utils.exceptions import ValidationError

INFO_HASH_LENGTH = 20

_HEX_RE = re.compile(r"^[0-9a-fA-F]{40}$")
_BASE32_RE = re.compile(r"^[A-Za-z2-7]{32}$")


@dataclass(frozen=True)
class ContentID:
    """Canonical 20-byte torrent content identifier."""

    value: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.value, bytes) or len(self.value) != INFO_HASH_LENGTH:
            msg = "Content identifier must be exactly 20 bytes"
            raise ValidationError(msg)

    @classmethod
    def from_hex(cls, text: str) -> ContentID:
        """Build from 40 hex characters."""
        if not _HEX_RE.match(text):
            msg = f"Not a 40-character hex info hash: {text!r}"
            raise ValidationError(msg)
        return cls(bytes.fromhex(text))

    @classmethod
    def from_base32(cls, text: str) -> ContentID:
        """Build from 32 base32 characters."""
        if not _BASE32_RE.match(text):
            msg = f"Not a 32-character base32 info hash: {text!r}"
            raise ValidationError(msg)
        return cls(decode_info_hash(text))

    @property
    def hex(self) -> str:
        """Lowercase hex form."""
        return self.value.hex()

    def __bytes__(self) -> bytes:
        return self.value

    def __str__(self) -> str:
        return self.hex

    def __repr__(self) -> str:
        return f"ContentID({self.hex})"


@dataclass(frozen=True)
class TorrentDescriptor:
    """A torrent as far as discovery is concerned.

    ``length`` and ``info`` are unknown (``None``) until metadata is available.
    """

    content_id: ContentID
    announce: tuple[str, ...] = ()
    name: str | None = None
    length: int | None = None
    info: Mapping[bytes, Any] | None = field(default=None, compare=False)

    @property
    def info_hash(self) -> bytes:
        return self.content_id.value

    @property
    def has_metadata(self) -> bool:
        return self.length is not None

    def with_announce(self, urls: Iterable[str]) -> TorrentDescriptor:
        """Return a copy with ``urls`` appended to the announce list."""
        merged = list(self.announce)
        for url in urls:
            if url not in merged:
                merged.append(url)
        return replace(self, announce=tuple(merged))


class IdentifierKind(str, Enum):
    """Which representation an identifier was given in."""

    HEX = "hex"
    BASE32 = "base32"
    MAGNET = "magnet"
    INFO_HASH_BYTES = "info_hash_bytes"
    METAINFO = "metainfo"
    DESCRIPTOR = "descriptor"
    MAPPING = "mapping"


@dataclass(frozen=True)
class ParsedIdentifier:
    """Result of parsing a torrent identifier."""

    kind: IdentifierKind
    descriptor: TorrentDescriptor

    @property
    def content_id(self) -> ContentID:
        return self.descriptor.content_id


TorrentIdentifier = Union[str, bytes, bytearray, TorrentDescriptor, Mapping[str, Any]]


def _parse_text(text: str) -> ParsedIdentifier:
    text = text.strip()
    if is_magnet_uri(text):
        magnet = parse_magnet(text)
        return ParsedIdentifier(
            IdentifierKind.MAGNET,
            TorrentDescriptor(
                content_id=ContentID(magnet.info_hash),
                announce=tuple(magnet.trackers),
                name=magnet.display_name,
            ),
        )
    if _HEX_RE.match(text):
        return ParsedIdentifier(
            IdentifierKind.HEX, TorrentDescriptor(ContentID.from_hex(text))
        )
    if _BASE32_RE.match(text):
        return ParsedIdentifier(
            IdentifierKind.BASE32, TorrentDescriptor(ContentID.from_base32(text))
        )
    msg = f"Unrecognized torrent identifier: {text!r}"
    raise ValidationError(msg)


def _parse_bytes(data: bytes) -> ParsedIdentifier:
    if len(data) == INFO_HASH_LENGTH:
        return ParsedIdentifier(
            IdentifierKind.INFO_HASH_BYTES, TorrentDescriptor(ContentID(data))
        )
    if len(data) < INFO_HASH_LENGTH:
        msg = f"Raw identifier too short: {len(data)} bytes"
        raise ValidationError(msg)
    metainfo = decode_metainfo(data)
    return ParsedIdentifier(
        IdentifierKind.METAINFO,
        TorrentDescriptor(
            content_id=ContentID(metainfo.info_hash),
            announce=tuple(metainfo.announce),
            name=metainfo.name,
            length=metainfo.length,
            info=metainfo.info,
        ),
    )


def _parse_mapping(data: Mapping[str, Any]) -> ParsedIdentifier:
    if "info_hash" not in data:
        msg = "Mapping identifier has no 'info_hash'"
        raise ValidationError(msg)
    raw = data["info_hash"]
    if isinstance(raw, ContentID):
        content_id = raw
    elif isinstance(raw, (bytes, bytearray)):
        content_id = ContentID(bytes(raw))
    elif isinstance(raw, str):
        content_id = _parse_text(raw).content_id
    else:
        msg = f"Unsupported info_hash type: {type(raw).__name__}"
        raise ValidationError(msg)

    announce = data.get("announce") or ()
    if isinstance(announce, str):
        announce = (announce,)
    length = data.get("length")
    try:
        announce_urls = tuple(announce)
        if not all(isinstance(url, str) for url in announce_urls):
            msg = "Mapping identifier 'announce' must contain only strings"
            raise ValidationError(msg)
        torrent_length = int(length) if length is not None else None
    except (TypeError, ValueError) as e:
        msg = f"Malformed mapping identifier: {e}"
        raise ValidationError(msg) from e
    return ParsedIdentifier(
        IdentifierKind.MAPPING,
        TorrentDescriptor(
            content_id=content_id,
            announce=announce_urls,
            name=data.get("name"),
            length=torrent_length,
            info=data.get("info"),
        ),
    )


def parse_identifier(identifier: Any) -> ParsedIdentifier:
    """Parse any supported torrent identifier.

    Raises:
        ValidationError: If the identifier is unsupported or malformed

    """
    if isinstance(identifier, ParsedIdentifier):
        return identifier
    if isinstance(identifier, TorrentDescriptor):
        return ParsedIdentifier(IdentifierKind.DESCRIPTOR, identifier)
    if isinstance(identifier, ContentID):
        return ParsedIdentifier(
            IdentifierKind.INFO_HASH_BYTES, TorrentDescriptor(identifier)
        )
    if isinstance(identifier, str):
        return _parse_text(identifier)
    if isinstance(identifier, (bytes, bytearray, memoryview)):
        return _parse_bytes(bytes(identifier))
    if isinstance(identifier, Mapping):
        return _parse_mapping(identifier)
    msg = f"Unsupported torrent identifier type: {type(identifier).__name__}"
    raise ValidationError(msg)


def resolve(identifier: Any) -> ContentID:
    """Resolve any supported torrent identifier to its `ContentID`."""
    return parse_identifier(identifier).content_id
