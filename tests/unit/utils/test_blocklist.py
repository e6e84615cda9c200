"""Tests for the IP blocklist."""

from __future__ import annotations

import pytest

from btclient.utils.blocklist import IPBlocklist
from btclient.utils.exceptions import ConfigurationError

pytestmark = [pytest.mark.unit, pytest.mark.utils]


def test_single_addresses_networks_and_ranges():
    blocklist = IPBlocklist(
        ["192.0.2.1", "10.0.0.0/8", "198.51.100.10-198.51.100.20", "2001:db8::/32"]
    )
    assert blocklist.is_blocked("192.0.2.1")
    assert not blocklist.is_blocked("192.0.2.2")
    assert blocklist.is_blocked("10.200.1.1")
    assert blocklist.is_blocked("198.51.100.15")
    assert not blocklist.is_blocked("198.51.100.21")
    assert blocklist.is_blocked("2001:db8::1")
    assert not blocklist.is_blocked("2001:db9::1")
    assert "10.0.0.1" in blocklist


def test_hostnames_are_never_blocked():
    assert not IPBlocklist(["0.0.0.0/0"]).is_blocked("tracker.example")


def test_empty():
    blocklist = IPBlocklist()
    assert len(blocklist) == 0
    assert not blocklist.is_blocked("192.0.2.1")


@pytest.mark.parametrize(
    "entry",
    ["not-an-ip", "10.0.0.300", "10.0.0.9-10.0.0.1", "10.0.0.1-2001:db8::1"],
)
def test_malformed_entries(entry):
    with pytest.raises(ConfigurationError):
        IPBlocklist([entry])
