"""Tests for torrent identifier resolution."""

from __future__ import annotations

import base64

import pytest

from btclient.core.identifier import (
    ContentID,
    IdentifierKind,
    TorrentDescriptor,
    parse_identifier,
    resolve,
)
from btclient.utils.exceptions import MagnetError, TorrentError, ValidationError
from tests.conftest import ANNOUNCE_URL, INFO_HASH, TORRENT_BYTES

pytestmark = [pytest.mark.unit, pytest.mark.core]


class TestResolveEquivalence:
    """Every representation of one torrent resolves to the same ContentID."""

    def test_all_representations_agree(self):
        expected = ContentID(INFO_HASH)
        identifiers = [
            INFO_HASH.hex(),
            INFO_HASH,
            f"magnet:?xt=urn:btih:{INFO_HASH.hex()}",
            TORRENT_BYTES,
            TorrentDescriptor(ContentID(INFO_HASH), announce=(ANNOUNCE_URL,)),
            base64.b32encode(INFO_HASH).decode(),
            {"info_hash": INFO_HASH, "announce": [ANNOUNCE_URL]},
        ]
        assert [resolve(i) for i in identifiers] == [expected] * len(identifiers)

    def test_uppercase_hex_is_canonicalised(self):
        content_id = resolve(INFO_HASH.hex().upper())
        assert content_id.hex == INFO_HASH.hex()
        assert str(content_id) == INFO_HASH.hex()

    def test_resolve_is_deterministic(self):
        assert resolve(TORRENT_BYTES) == resolve(TORRENT_BYTES)


class TestParseIdentifier:
    def test_kinds(self):
        assert parse_identifier(INFO_HASH.hex()).kind is IdentifierKind.HEX
        assert parse_identifier(INFO_HASH).kind is IdentifierKind.INFO_HASH_BYTES
        assert parse_identifier(TORRENT_BYTES).kind is IdentifierKind.METAINFO
        assert (
            parse_identifier(f"magnet:?xt=urn:btih:{INFO_HASH.hex()}").kind
            is IdentifierKind.MAGNET
        )
        assert (
            parse_identifier(base64.b32encode(INFO_HASH).decode()).kind
            is IdentifierKind.BASE32
        )

    def test_metainfo_carries_metadata(self):
        descriptor = parse_identifier(TORRENT_BYTES).descriptor
        assert descriptor.name == "test.bin"
        assert descriptor.length == 12345
        assert descriptor.announce == (ANNOUNCE_URL,)
        assert descriptor.has_metadata

    def test_magnet_carries_trackers_and_name(self):
        uri = (
            f"magnet:?xt=urn:btih:{INFO_HASH.hex()}&dn=test.bin"
            "&tr=http%3A%2F%2Fa.example%2Fannounce&tr=http%3A%2F%2Fb.example%2Fannounce"
        )
        descriptor = parse_identifier(uri).descriptor
        assert descriptor.name == "test.bin"
        assert descriptor.announce == (
            "http://a.example/announce",
            "http://b.example/announce",
        )
        assert not descriptor.has_metadata

    def test_descriptor_passes_through(self):
        descriptor = TorrentDescriptor(ContentID(INFO_HASH), name="x")
        parsed = parse_identifier(descriptor)
        assert parsed.kind is IdentifierKind.DESCRIPTOR
        assert parsed.descriptor is descriptor

    def test_mapping_with_hex_info_hash(self):
        parsed = parse_identifier({"info_hash": INFO_HASH.hex(), "length": "10"})
        assert parsed.kind is IdentifierKind.MAPPING
        assert parsed.content_id == ContentID(INFO_HASH)
        assert parsed.descriptor.length == 10


class TestInvalidIdentifiers:
    @pytest.mark.parametrize(
        "identifier",
        [
            "not a torrent",
            INFO_HASH.hex()[:-1],
            "",
            b"short",
            12345,
            None,
            ["list"],
            {"name": "no hash"},
        ],
    )
    def test_rejected(self, identifier):
        with pytest.raises(ValidationError):
            resolve(identifier)

    @pytest.mark.parametrize(
        "mapping",
        [
            {"info_hash": "ab" * 20, "length": "not-a-number"},
            {"info_hash": "ab" * 20, "length": [1000]},
            {"info_hash": "ab" * 20, "announce": 5},
            {"info_hash": "ab" * 20, "announce": ["http://a/", 7]},
        ],
    )
    def test_malformed_mapping_fields(self, mapping):
        with pytest.raises(ValidationError):
            resolve(mapping)

    def test_malformed_metainfo(self):
        with pytest.raises(TorrentError):
            resolve(b"d4:spam" + b"x" * 30)

    def test_magnet_without_btih(self):
        with pytest.raises(MagnetError):
            resolve("magnet:?dn=nothing")

    def test_content_id_length_checked(self):
        with pytest.raises(ValidationError):
            ContentID(b"\x00" * 19)


class TestTorrentDescriptor:
    def test_with_announce_merges_without_duplicates(self):
        descriptor = TorrentDescriptor(ContentID(INFO_HASH), announce=("http://a/",))
        merged = descriptor.with_announce(["http://a/", "http://b/"])
        assert merged.announce == ("http://a/", "http://b/")
        assert descriptor.announce == ("http://a/",)

    def test_equality_is_by_value(self):
        assert TorrentDescriptor(ContentID(INFO_HASH)) == TorrentDescriptor(
            ContentID(bytes(INFO_HASH))
        )
