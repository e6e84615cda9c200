"""Client session management."""

from btclient.session.client import Client
from btclient.session.readiness import ClientState

__all__ = ["Client", "ClientState"]
