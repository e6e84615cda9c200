"""Data models for btclient.

Pydantic models for client configuration and for the peer addresses emitted
by discovery.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from btclient.utils.exceptions import ConfigurationError
from btclient.utils.version import generate_node_id, generate_peer_id


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class PeerAddress(BaseModel):
    """Address of a discovered peer."""

    host: str = Field(..., description="Peer IP address or hostname")
    port: int = Field(..., ge=1, le=65535, description="Peer port number")
    source: str | None = Field(
        default=None,
        description="Source of peer discovery (tracker/dht)",
        exclude=True,
    )

    @field_validator("host")
    @classmethod
    def validate_host(cls, v):
        """Validate host is non-empty."""
        if not v:
            msg = "Peer host cannot be empty"
            raise ValueError(msg)
        return v

    def __str__(self) -> str:
        """String representation of peer address."""
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    def __hash__(self) -> int:
        """Hash peer address for use as dictionary key."""
        return hash((self.host, self.port))

    def __eq__(self, other) -> bool:
        """Equality ignores the discovery source."""
        if not isinstance(other, PeerAddress):
            return False
        return self.host == other.host and self.port == other.port

    model_config = {"frozen": True}


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    structured_logging: bool = Field(
        default=False, description="Write JSON lines to the log file"
    )
    log_correlation_id: bool = Field(
        default=True,
        description="Include correlation IDs",
    )
    enable_metrics: bool = Field(
        default=True, description="Mirror rate meters into Prometheus metrics"
    )
    rate_window: float = Field(
        default=5.0,
        ge=1.0,
        le=3600.0,
        description="Moving-average window for rate meters in seconds",
    )

    model_config = {"frozen": True}


class ClientConfig(BaseModel):
    """Client configuration.

    Immutable; use `with_overrides` to derive a modified copy.
    """

    dht: bool | None = Field(
        default=None,
        description="Enable DHT discovery (None = enabled when a DHT engine is available)",
    )
    trackers: bool = Field(default=True, description="Enable tracker discovery")
    torrent_port: int | None = Field(
        default=None,
        ge=0,
        le=65535,
        description="Fixed listen port (None = acquire one during bootstrap)",
    )
    dht_port: int | None = Field(
        default=None,
        ge=0,
        le=65535,
        description="Fixed DHT listen port (None = engine chooses)",
    )
    peer_id: bytes = Field(
        default_factory=generate_peer_id,
        description="20-byte peer id presented to peers and trackers",
    )
    node_id: bytes = Field(
        default_factory=generate_node_id,
        description="20-byte node id presented to the DHT overlay",
    )
    blocklist: list[str] = Field(
        default_factory=list,
        description="Addresses, CIDR networks or ranges excluded from discovery",
    )
    listen_interface: str = Field(
        default="0.0.0.0",  # nosec B104 - listen on all interfaces
        description="Interface used when acquiring a listen port",
    )
    dht_bootstrap_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Seconds to wait for an owned DHT to become ready",
    )
    tracker_announce_interval: int = Field(
        default=1800,
        ge=1,
        description="Announce interval used until a tracker supplies one",
    )
    tracker_request_timeout: float = Field(
        default=15.0,
        gt=0.0,
        description="HTTP tracker request timeout in seconds",
    )
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"frozen": True}

    @field_validator("peer_id", mode="before")
    @classmethod
    def validate_peer_id(cls, v):
        """Accept text (UTF-8 encoded) or bytes of exactly 20 bytes."""
        if isinstance(v, str):
            v = v.encode("utf-8")
        if isinstance(v, (bytes, bytearray)) and len(v) != 20:
            msg = f"peer_id must be 20 bytes, got {len(v)}"
            raise ValueError(msg)
        return v

    @field_validator("node_id", mode="before")
    @classmethod
    def validate_node_id(cls, v):
        """Accept hex text or bytes of exactly 20 bytes."""
        if isinstance(v, str):
            try:
                v = bytes.fromhex(v)
            except ValueError as e:
                msg = "node_id text must be hex encoded"
                raise ValueError(msg) from e
        if isinstance(v, (bytes, bytearray)) and len(v) != 20:
            msg = f"node_id must be 20 bytes, got {len(v)}"
            raise ValueError(msg)
        return v

    def with_overrides(self, **changes: Any) -> ClientConfig:
        """Return a new validated config with ``changes`` applied.

        Raises:
            ConfigurationError: If the merged values do not validate

        """
        data = self.model_dump()
        data.update(changes)
        try:
            return ClientConfig(**data)
        except ValidationError as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e
