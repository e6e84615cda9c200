"""Tests for the HTTP tracker engine."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from btclient.core.identifier import ContentID, TorrentDescriptor
from btclient.discovery.tracker import (
    HTTPTrackerClient,
    build_tracker_url,
    make_tracker_factory,
    parse_compact_peers,
    parse_tracker_response,
)
from btclient.models import ClientConfig, PeerAddress
from btclient.utils.exceptions import TrackerError

pytestmark = [pytest.mark.unit, pytest.mark.tracker]

INFO_HASH = b"\x00" * 19 + b"\xff"
PEER_ID = b"-BC0001-abcdefghijkl"
COMPACT = bytes([192, 0, 2, 1, 0x1A, 0xE1, 10, 0, 0, 2, 0x1A, 0xE2])
OK_RESPONSE = b"d8:intervali900e5:peers12:" + COMPACT + b"e"


def make_client(*urls, length=None):
    descriptor = TorrentDescriptor(ContentID(INFO_HASH), announce=tuple(urls), length=length)
    return HTTPTrackerClient(peer_id=PEER_ID, port=6881, descriptor=descriptor)


class TestBuildTrackerURL:
    def test_binary_parameters_are_percent_encoded(self):
        url = build_tracker_url(
            "http://t.example/announce", INFO_HASH, PEER_ID, 6881, 1, 2, 3, "started"
        )
        assert url.startswith("http://t.example/announce?info_hash=" + "%00" * 19 + "%FF")
        assert "peer_id=-BC0001-abcdefghijkl" in url
        assert "port=6881&uploaded=1&downloaded=2&left=3&compact=1&numwant=200" in url
        assert url.endswith("&event=started")

    def test_existing_query_string(self):
        url = build_tracker_url("http://t/announce?key=1", INFO_HASH, PEER_ID, 1, 0, 0, 0)
        assert url.startswith("http://t/announce?key=1&info_hash=")
        assert "event=" not in url


class TestParsing:
    def test_compact_peers(self):
        assert parse_compact_peers(COMPACT) == [
            PeerAddress(host="192.0.2.1", port=6881),
            PeerAddress(host="10.0.0.2", port=6882),
        ]

    def test_compact_peers_invalid_length(self):
        with pytest.raises(TrackerError):
            parse_compact_peers(b"\x01\x02\x03")

    def test_compact_ipv6_peers(self):
        data = b"\x20\x01\x0d\xb8" + b"\x00" * 11 + b"\x01" + b"\x1a\xe1"
        assert parse_compact_peers(data, ipv6=True) == [
            PeerAddress(host="2001:db8::1", port=6881)
        ]

    def test_response_with_compact_peers(self):
        response = parse_tracker_response(OK_RESPONSE)
        assert response.interval == 900
        assert len(response.peers) == 2

    def test_response_with_dict_peers(self):
        data = b"d8:intervali60e5:peersld2:ip9:192.0.2.94:porti51413eeee"
        response = parse_tracker_response(data)
        assert response.peers == [PeerAddress(host="192.0.2.9", port=51413)]

    def test_failure_reason(self):
        with pytest.raises(TrackerError, match="unregistered torrent"):
            parse_tracker_response(b"d14:failure reason20:unregistered torrente")

    def test_garbage(self):
        with pytest.raises(TrackerError):
            parse_tracker_response(b"<html>")

    def test_missing_interval(self):
        with pytest.raises(TrackerError):
            parse_tracker_response(b"d5:peers0:e")


class TestHTTPTrackerClient:
    def test_left(self):
        client = make_client(length=1000)
        client.downloaded = 400
        assert client.left == 600
        client.torrent_length = None
        assert client.left == 0

    @pytest.mark.asyncio
    async def test_announce_all_emits_peers_and_errors_per_url(self):
        client = make_client("http://good/announce", "http://bad/announce")
        peers, errors = [], []
        client.on_peer.subscribe(peers.append)
        client.on_error.subscribe(errors.append)

        async def fake_request(url):
            if url.startswith("http://bad"):
                raise TrackerError("connection refused")
            return OK_RESPONSE

        with patch.object(client, "_make_request", side_effect=fake_request):
            await client.announce_all("started")

        assert len(peers) == 2
        assert len(errors) == 1
        assert isinstance(errors[0], TrackerError)
        assert client.interval == 900

    @pytest.mark.asyncio
    async def test_start_reports_unsupported_schemes_and_stop_closes(self):
        client = make_client("udp://tracker.example:80", "http://good/announce")
        errors = []
        client.on_error.subscribe(errors.append)
        request = AsyncMock(return_value=OK_RESPONSE)

        with patch.object(client, "_make_request", request):
            await client.start()
            await client.stop()

        assert len(errors) == 1
        assert "udp" in str(errors[0])
        assert client.session is None
        urls = [call.args[0] for call in request.await_args_list]
        assert all(url.startswith("http://good/announce") for url in urls)
        assert urls[-1].endswith("event=stopped")

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        client = make_client()
        await client.start()
        await client.stop()
        await client.stop()
        assert client.session is None


def test_factory_uses_config():
    factory = make_tracker_factory(
        ClientConfig(tracker_announce_interval=60, tracker_request_timeout=2.5)
    )
    client = factory(
        peer_id=PEER_ID, port=1, descriptor=TorrentDescriptor(ContentID(INFO_HASH))
    )
    assert client.interval == 60
    assert client.request_timeout == 2.5
