"""Concrete bootstrap tasks run by the readiness barrier."""

from __future__ import annotations

import asyncio
import contextlib
import ipaddress
import socket

from btclient.discovery.types import DHTEngine
from btclient.utils.exceptions import DHTError, NetworkError


def _bind_ephemeral_port(interface: str) -> int:
    try:
        family = (
            socket.AF_INET6
            if ipaddress.ip_address(interface).version == 6
            else socket.AF_INET
        )
    except ValueError:
        family = socket.AF_INET
    with socket.socket(family, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((interface, 0))
        return sock.getsockname()[1]


async def acquire_listen_port(interface: str = "0.0.0.0") -> int:  # nosec B104
    """Ask the OS for a free TCP port on ``interface``.

    Raises:
        NetworkError: If no port could be bound

    """
    try:
        return await asyncio.to_thread(_bind_ephemeral_port, interface)
    except OSError as e:
        msg = f"Failed to acquire a listen port on {interface}: {e}"
        raise NetworkError(msg) from e


async def bring_up_dht(
    dht: DHTEngine, port: int | None = None, timeout: float = 30.0
) -> DHTEngine:
    """Start ``dht`` listening and wait until it reports ready.

    Raises:
        DHTError: If listening fails or the DHT is not ready within ``timeout``

    """
    ready = dht.on_ready.wait()
    try:
        try:
            await dht.listen(port)
        except Exception as e:
            msg = f"DHT failed to listen: {e}"
            raise DHTError(msg) from e
        if not dht.ready:
            try:
                await asyncio.wait_for(ready, timeout)
            except asyncio.TimeoutError as e:
                msg = f"DHT not ready after {timeout:.1f}s"
                raise DHTError(msg) from e
    finally:
        if not ready.done():
            ready.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ready
    return dht
