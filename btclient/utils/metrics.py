"""Client-wide throughput metrics.

Per-torrent byte-transfer events feed two sliding-window rate meters; the
aggregate seed ratio is computed from the registered torrents' totals.
Values are mirrored into Prometheus gauges/counters kept in a private
registry so several clients in one process do not collide.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Callable, Iterable, Protocol

from prometheus_client import CollectorRegistry, Counter, Gauge

from btclient.utils.logging_config import get_logger

Clock = Callable[[], float]


class _TransferTotals(Protocol):
    uploaded: int
    downloaded: int


class RateMeter:
    """Bytes-per-second meter over a sliding window of one-second buckets."""

    def __init__(self, window: float = 5.0, clock: Clock | None = None) -> None:
        """Initialize meter.

        Args:
            window: Averaging window in seconds
            clock: Monotonic time source (defaults to ``time.monotonic``)

        """
        if window < 1:
            msg = f"window must be at least one second, got {window}"
            raise ValueError(msg)
        self.window = window
        self._clock = clock or time.monotonic
        self._buckets: deque[tuple[int, int]] = deque()
        self.total = 0

    def _expire(self, now: float) -> None:
        cutoff = now - self.window
        while self._buckets and self._buckets[0][0] <= cutoff:
            self._buckets.popleft()

    def add(self, nbytes: int) -> float:
        """Record ``nbytes`` transferred now and return the updated rate."""
        if nbytes < 0:
            msg = f"byte count must be non-negative, got {nbytes}"
            raise ValueError(msg)
        now = self._clock()
        second = int(now)
        if self._buckets and self._buckets[-1][0] == second:
            self._buckets[-1] = (second, self._buckets[-1][1] + nbytes)
        else:
            self._buckets.append((second, nbytes))
        self.total += nbytes
        self._expire(now)
        return self.rate()

    def rate(self) -> float:
        """Average bytes per second over the window."""
        self._expire(self._clock())
        return sum(nbytes for _, nbytes in self._buckets) / self.window


def seed_ratio(torrents: Iterable[_TransferTotals]) -> float:
    """Uploaded / downloaded over ``torrents``; 0 when nothing was downloaded."""
    uploaded = 0
    downloaded = 0
    for torrent in torrents:
        uploaded += torrent.uploaded
        downloaded += torrent.downloaded
    if downloaded == 0:
        return 0.0
    return uploaded / downloaded


class MetricsAggregator:
    """Combines per-torrent transfer samples into client-wide meters."""

    def __init__(
        self,
        window: float = 5.0,
        clock: Clock | None = None,
        enable_prometheus: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize aggregator.

        Args:
            window: Averaging window for both rate meters
            clock: Time source shared by both meters
            enable_prometheus: Mirror values into a Prometheus registry
            logger: Injected logger

        """
        self.download = RateMeter(window, clock)
        self.upload = RateMeter(window, clock)
        self.logger = logger or get_logger("metrics")
        self.registry: CollectorRegistry | None = None
        if enable_prometheus:
            self._setup_prometheus_metrics()

    def _setup_prometheus_metrics(self) -> None:
        self.registry = CollectorRegistry()
        self.prom_download_rate = Gauge(
            "btclient_download_rate_bytes_per_second",
            "Global download rate in bytes per second",
            registry=self.registry,
        )
        self.prom_upload_rate = Gauge(
            "btclient_upload_rate_bytes_per_second",
            "Global upload rate in bytes per second",
            registry=self.registry,
        )
        self.prom_bytes_downloaded = Counter(
            "btclient_bytes_downloaded",
            "Total bytes downloaded",
            registry=self.registry,
        )
        self.prom_bytes_uploaded = Counter(
            "btclient_bytes_uploaded",
            "Total bytes uploaded",
            registry=self.registry,
        )

    def record_download(self, nbytes: int) -> None:
        """Feed a download sample."""
        rate = self.download.add(nbytes)
        if self.registry is not None:
            self.prom_download_rate.set(rate)
            self.prom_bytes_downloaded.inc(nbytes)

    def record_upload(self, nbytes: int) -> None:
        """Feed an upload sample."""
        rate = self.upload.add(nbytes)
        if self.registry is not None:
            self.prom_upload_rate.set(rate)
            self.prom_bytes_uploaded.inc(nbytes)

    @property
    def download_speed(self) -> float:
        return self.download.rate()

    @property
    def upload_speed(self) -> float:
        return self.upload.rate()

    def snapshot(self) -> dict[str, float]:
        """Current rates and totals."""
        return {
            "download_rate": self.download.rate(),
            "upload_rate": self.upload.rate(),
            "bytes_downloaded": float(self.download.total),
            "bytes_uploaded": float(self.upload.total),
        }
