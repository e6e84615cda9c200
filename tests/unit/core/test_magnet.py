"""Tests for magnet URI parsing."""

from __future__ import annotations

import base64

import pytest

from btclient.core.magnet import build_magnet_uri, decode_info_hash, parse_magnet
from btclient.utils.exceptions import MagnetError, ValidationError

pytestmark = [pytest.mark.unit, pytest.mark.core]

INFO_HASH = bytes(range(20))


class TestParseMagnet:
    def test_hex_btih(self):
        info = parse_magnet(f"magnet:?xt=urn:btih:{INFO_HASH.hex()}&dn=Example")
        assert info.info_hash == INFO_HASH
        assert info.display_name == "Example"
        assert info.trackers == []

    def test_base32_btih(self):
        b32 = base64.b32encode(INFO_HASH).decode()
        assert parse_magnet(f"magnet:?xt=urn:btih:{b32}").info_hash == INFO_HASH

    def test_trackers_and_web_seeds(self):
        uri = (
            f"magnet:?xt=urn:btih:{INFO_HASH.hex()}"
            "&tr=udp%3A%2F%2Ft1%3A80&tr=http%3A%2F%2Ft2%2Fannounce&ws=http%3A%2F%2Fseed"
        )
        info = parse_magnet(uri)
        assert info.trackers == ["udp://t1:80", "http://t2/announce"]
        assert info.web_seeds == ["http://seed"]

    def test_uppercase_urn(self):
        info = parse_magnet(f"magnet:?xt=URN:BTIH:{INFO_HASH.hex()}")
        assert info.info_hash == INFO_HASH

    def test_not_a_magnet(self):
        with pytest.raises(MagnetError):
            parse_magnet("http://example.com/file.torrent")

    def test_missing_xt(self):
        with pytest.raises(MagnetError):
            parse_magnet("magnet:?dn=nothing")

    def test_bad_hash_length(self):
        with pytest.raises(MagnetError):
            parse_magnet("magnet:?xt=urn:btih:abcdef")

    def test_magnet_error_is_validation_error(self):
        with pytest.raises(ValidationError):
            parse_magnet("magnet:?xt=urn:btih:zz")


class TestDecodeInfoHash:
    def test_invalid_hex(self):
        with pytest.raises(MagnetError):
            decode_info_hash("g" * 40)

    def test_invalid_base32(self):
        with pytest.raises(MagnetError):
            decode_info_hash("1" * 32)


def test_build_magnet_uri_is_parseable():
    uri = build_magnet_uri(INFO_HASH, "Name", ["http://t/announce"])
    info = parse_magnet(uri)
    assert info.info_hash == INFO_HASH
    assert info.display_name == "Name"
    assert info.trackers == ["http://t/announce"]
