"""Tests for version helpers and identity generation."""

from __future__ import annotations

import pytest

from btclient.utils.version import (
    generate_node_id,
    generate_peer_id,
    get_peer_id_prefix,
    get_user_agent,
    parse_version,
)

pytestmark = [pytest.mark.unit, pytest.mark.utils]


@pytest.mark.parametrize(
    ("version", "prefix"),
    [("0.0.3", b"-BC0001-"), ("0.1.2", b"-BC0001-"), ("1.4.0", b"-BC0104-"), ("12.3.1-rc1", b"-BC1203-")],
)
def test_peer_id_prefix(version, prefix):
    assert get_peer_id_prefix(version) == prefix


def test_parse_version():
    assert parse_version("1.2") == (1, 2, 0)
    assert parse_version("1.2.3+local") == (1, 2, 3)
    with pytest.raises(ValueError):
        parse_version("1")


def test_generated_ids():
    peer_id = generate_peer_id("1.4.0")
    assert len(peer_id) == 20
    assert peer_id.startswith(b"-BC0104-")
    assert generate_peer_id("1.4.0") != peer_id
    assert len(generate_node_id()) == 20


def test_user_agent():
    assert get_user_agent("1.4.0").startswith("btclient/1.4.0")
