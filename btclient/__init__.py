"""btclient - torrent identifier resolution and peer discovery orchestration."""

from __future__ import annotations

__version__ = "0.1.0"

from btclient.core.identifier import ContentID, TorrentDescriptor, resolve
from btclient.models import ClientConfig, PeerAddress
from btclient.session.client import Client
from btclient.session.readiness import ClientState

__all__ = [
    "Client",
    "ClientConfig",
    "ClientState",
    "ContentID",
    "PeerAddress",
    "TorrentDescriptor",
    "__version__",
    "resolve",
]
