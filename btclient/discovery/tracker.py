"""HTTP(S) tracker engine.

Announces one torrent to every HTTP tracker in its announce list on a
recurring timer and emits the returned peers. Failures are reported on
``on_error`` per tracker URL; they never stop the loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import ipaddress
import logging
import urllib.parse
from typing import TYPE_CHECKING, Any

import aiohttp
import bencodepy

from btclient.models import PeerAddress
from btclient.utils.events import EventChannel
from btclient.utils.exceptions import TrackerError
from btclient.utils.logging_config import get_logger
from btclient.utils.version import get_user_agent

if TYPE_CHECKING:  # pragma: no cover
    from btclient.core.identifier import TorrentDescriptor
    from btclient.models import ClientConfig

HTTP_SCHEMES = frozenset({"http", "https"})
DEFAULT_NUMWANT = 200
STOP_ANNOUNCE_TIMEOUT = 5.0


class TrackerResponse:
    """Parsed announce response."""

    def __init__(
        self,
        interval: int,
        peers: list[PeerAddress],
        complete: int | None = None,
        incomplete: int | None = None,
    ):
        self.interval = interval
        self.peers = peers
        self.complete = complete
        self.incomplete = incomplete


def build_tracker_url(
    base_url: str,
    info_hash: bytes,
    peer_id: bytes,
    port: int,
    uploaded: int,
    downloaded: int,
    left: int,
    event: str = "",
    numwant: int = DEFAULT_NUMWANT,
) -> str:
    """Build the complete tracker URL with all required parameters.

    Binary parameters are percent-encoded byte by byte; the query string is
    assembled by hand so they are not encoded twice.
    """
    query_parts = [
        f"info_hash={urllib.parse.quote(info_hash, safe='')}",
        f"peer_id={urllib.parse.quote(peer_id, safe='')}",
        f"port={port}",
        f"uploaded={uploaded}",
        f"downloaded={downloaded}",
        f"left={left}",
        "compact=1",
        f"numwant={numwant}",
    ]
    if event:
        query_parts.append(f"event={urllib.parse.quote(event, safe='')}")

    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{'&'.join(query_parts)}"


def parse_compact_peers(peers_data: bytes, ipv6: bool = False) -> list[PeerAddress]:
    """Parse compact peers: 6 bytes (IPv4) or 18 bytes (IPv6) per peer.

    Raises:
        TrackerError: If the data length is not a multiple of the entry size

    """
    ip_len = 16 if ipv6 else 4
    entry_len = ip_len + 2
    if len(peers_data) % entry_len != 0:
        msg = f"Invalid compact peer data length: {len(peers_data)} bytes"
        raise TrackerError(msg)

    peers = []
    for start in range(0, len(peers_data), entry_len):
        ip_bytes = peers_data[start : start + ip_len]
        port = int.from_bytes(peers_data[start + ip_len : start + entry_len], "big")
        if port == 0:
            continue
        host = str(ipaddress.ip_address(ip_bytes))
        peers.append(PeerAddress(host=host, port=port, source="tracker"))
    return peers


def _parse_peer_dicts(peers_data: list[Any]) -> list[PeerAddress]:
    peers = []
    for peer_info in peers_data:
        if not isinstance(peer_info, dict):
            continue
        ip_raw = peer_info.get(b"ip")
        port_raw = peer_info.get(b"port")
        if isinstance(ip_raw, bytes):
            ip_raw = ip_raw.decode("utf-8", errors="ignore")
        if not ip_raw or not isinstance(port_raw, int) or not 1 <= port_raw <= 65535:
            continue
        peers.append(PeerAddress(host=ip_raw, port=port_raw, source="tracker"))
    return peers


def parse_tracker_response(response_data: bytes) -> TrackerResponse:
    """Parse a bencoded announce response.

    Raises:
        TrackerError: On a ``failure reason`` or an undecodable body

    """
    try:
        decoded = bencodepy.decode(response_data)
    except Exception as e:
        msg = f"Invalid tracker response: {e}"
        raise TrackerError(msg) from e
    if not isinstance(decoded, dict):
        msg = "Tracker response is not a dictionary"
        raise TrackerError(msg)

    if b"failure reason" in decoded:
        reason = decoded[b"failure reason"].decode("utf-8", errors="ignore")
        msg = f"Tracker failure: {reason}"
        raise TrackerError(msg)
    if b"interval" not in decoded:
        msg = "Missing interval in tracker response"
        raise TrackerError(msg)

    peers: list[PeerAddress] = []
    peers_data = decoded.get(b"peers", b"")
    if isinstance(peers_data, bytes):
        peers.extend(parse_compact_peers(peers_data))
    elif isinstance(peers_data, list):
        peers.extend(_parse_peer_dicts(peers_data))
    peers6 = decoded.get(b"peers6")
    if isinstance(peers6, bytes):
        peers.extend(parse_compact_peers(peers6, ipv6=True))

    return TrackerResponse(
        interval=int(decoded[b"interval"]),
        peers=peers,
        complete=decoded.get(b"complete"),
        incomplete=decoded.get(b"incomplete"),
    )


class HTTPTrackerClient:
    """Tracker engine for one torrent over HTTP(S).

    Events:
        on_peer(address: PeerAddress)
        on_error(error: TrackerError)
    """

    def __init__(
        self,
        *,
        peer_id: bytes,
        port: int,
        descriptor: TorrentDescriptor,
        announce_interval: int = 1800,
        request_timeout: float = 15.0,
        logger: logging.Logger | None = None,
    ):
        """Initialize tracker client.

        Args:
            peer_id: 20-byte peer id
            port: Local listen port to announce
            descriptor: Torrent descriptor (info hash and announce list)
            announce_interval: Interval used until a tracker returns one
            request_timeout: Per-request timeout in seconds
            logger: Injected logger

        """
        self.peer_id = peer_id
        self.port = port
        self.info_hash = descriptor.info_hash
        self.announce_urls = list(descriptor.announce)
        self.torrent_length: int | None = descriptor.length
        self.uploaded = 0
        self.downloaded = 0
        self.interval = announce_interval
        self.request_timeout = request_timeout
        self.logger = logger or get_logger("tracker")

        self.on_peer = EventChannel("peer", self.logger)
        self.on_error = EventChannel("error", self.logger)

        self.session: aiohttp.ClientSession | None = None
        self._announce_task: asyncio.Task | None = None
        self._stopped = False

    @property
    def left(self) -> int:
        """Bytes left to download; 0 while the total length is unknown."""
        if self.torrent_length is None:
            return 0
        return max(self.torrent_length - self.downloaded, 0)

    def _http_urls(self) -> list[str]:
        return [
            url
            for url in self.announce_urls
            if urllib.parse.urlparse(url).scheme.lower() in HTTP_SCHEMES
        ]

    async def start(self) -> None:
        """Open the HTTP session and start the announce loop."""
        if self._announce_task is not None or self._stopped:
            return
        for url in self.announce_urls:
            scheme = urllib.parse.urlparse(url).scheme.lower()
            if scheme not in HTTP_SCHEMES:
                self.on_error.emit(
                    TrackerError(
                        f"Unsupported tracker scheme: {scheme or 'none'}",
                        {"url": url},
                    )
                )

        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        self.session = aiohttp.ClientSession(
            timeout=timeout, headers={"User-Agent": get_user_agent()}
        )
        self._announce_task = asyncio.create_task(
            self._announce_loop(), name=f"tracker-announce-{self.info_hash.hex()[:8]}"
        )
        self.logger.debug(
            "Tracker announce loop started for %s (%d URLs)",
            self.info_hash.hex(),
            len(self._http_urls()),
        )

    async def _announce_loop(self) -> None:
        event = "started"
        while not self._stopped:
            await self.announce_all(event)
            event = ""
            await asyncio.sleep(self.interval)

    async def announce_all(self, event: str = "") -> list[PeerAddress]:
        """Announce to every HTTP tracker concurrently and emit their peers."""
        urls = self._http_urls()
        if not urls:
            return []
        results = await asyncio.gather(
            *(self._announce_one(url, event) for url in urls),
            return_exceptions=True,
        )
        peers: list[PeerAddress] = []
        for url, result in zip(urls, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                error = (
                    result
                    if isinstance(result, TrackerError)
                    else TrackerError(f"Announce failed: {result}", {"url": url})
                )
                self.logger.debug("Announce to %s failed: %s", url, error)
                self.on_error.emit(error)
                continue
            if result.interval > 0:
                self.interval = result.interval
            for peer in result.peers:
                if self._stopped:
                    break
                self.on_peer.emit(peer)
            peers.extend(result.peers)
        return peers

    async def _announce_one(self, base_url: str, event: str) -> TrackerResponse:
        url = build_tracker_url(
            base_url,
            self.info_hash,
            self.peer_id,
            self.port,
            self.uploaded,
            self.downloaded,
            self.left,
            event,
        )
        return parse_tracker_response(await self._make_request(url))

    async def _make_request(self, url: str) -> bytes:
        """Make HTTP GET request to tracker.

        Raises:
            TrackerError: If the request fails or returns a non-200 status

        """
        if self.session is None:
            msg = "HTTP session not initialized"
            raise TrackerError(msg)
        try:
            async with self.session.get(url) as response:
                if response.status != 200:
                    msg = f"Tracker returned HTTP {response.status}"
                    raise TrackerError(msg, {"url": url})
                return await response.read()
        except aiohttp.ClientError as e:
            msg = f"Tracker request failed: {e}"
            raise TrackerError(msg, {"url": url}) from e
        except asyncio.TimeoutError as e:
            msg = "Tracker request timed out"
            raise TrackerError(msg, {"url": url}) from e

    async def stop(self) -> None:
        """Cancel the announce loop, send ``stopped`` and close the session."""
        if self._stopped:
            return
        self._stopped = True
        if self._announce_task is not None:
            self._announce_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._announce_task
            self._announce_task = None

        if self.session is not None:
            urls = self._http_urls()
            if urls:
                results = await asyncio.gather(
                    *(
                        asyncio.wait_for(
                            self._announce_one(url, "stopped"), STOP_ANNOUNCE_TIMEOUT
                        )
                        for url in urls
                    ),
                    return_exceptions=True,
                )
                for url, result in zip(urls, results):
                    if isinstance(result, Exception):
                        self.logger.debug("Stopped announce to %s failed: %s", url, result)
            await self.session.close()
            self.session = None
        self.logger.debug("Tracker client stopped for %s", self.info_hash.hex())


def make_tracker_factory(config: ClientConfig | None = None) -> Any:
    """Return a factory building `HTTPTrackerClient` instances from ``config``."""
    announce_interval = config.tracker_announce_interval if config else 1800
    request_timeout = config.tracker_request_timeout if config else 15.0

    def factory(
        *,
        peer_id: bytes,
        port: int,
        descriptor: TorrentDescriptor,
        logger: logging.Logger | None = None,
        **_kwargs: Any,
    ) -> HTTPTrackerClient:
        return HTTPTrackerClient(
            peer_id=peer_id,
            port=port,
            descriptor=descriptor,
            announce_interval=announce_interval,
            request_timeout=request_timeout,
            logger=logger,
        )

    return factory
