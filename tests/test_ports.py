# Tests for flow/ports.py (callback port negotiation)
# Created: 2026-10-16

import socket
from unittest.mock import AsyncMock, patch

import pytest

from loopauth.errors import NoPortAvailable
from loopauth.flow.ports import LOOPBACK_HOST, LOOPBACK_HOST_V6, lease_port, loopback_hosts


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((LOOPBACK_HOST, 0))
        return s.getsockname()[1]


async def test_returns_base_port_when_free():
    port = _free_port()
    assert await lease_port(port, max_attempts=1, delay=0) == port


async def test_skips_busy_port():
    busy = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        busy.bind((LOOPBACK_HOST, 0))
        busy.listen(1)
        base = busy.getsockname()[1]

        port = await lease_port(base, max_attempts=10, delay=0)
    finally:
        busy.close()

    assert port > base


async def test_leased_port_is_released():
    port = await lease_port(_free_port(), max_attempts=1, delay=0)
    # The test socket is closed again, so the caller can bind it.
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((LOOPBACK_HOST, port))


async def test_walks_ports_in_order():
    with patch("loopauth.flow.ports._probe", side_effect=[False, False, True]) as check:
        port = await lease_port(4000, max_attempts=5, delay=0)

    assert port == 4002
    assert [c.args[0] for c in check.call_args_list] == [4000, 4001, 4002]


async def test_exhaustion_raises():
    with patch("loopauth.flow.ports._probe", return_value=False) as check:
        with pytest.raises(NoPortAvailable, match="after 3 attempts"):
            await lease_port(4000, max_attempts=3, delay=0)
    assert check.call_count == 3


async def test_stops_at_highest_port():
    with patch("loopauth.flow.ports._probe", return_value=False) as check:
        with pytest.raises(NoPortAvailable):
            await lease_port(65534, max_attempts=10, delay=0)
    assert [c.args[0] for c in check.call_args_list] == [65534, 65535]


async def test_delay_with_backoff_is_capped():
    sleep = AsyncMock()
    with (
        patch("loopauth.flow.ports._probe", side_effect=[False, False, False, False, True]),
        patch("loopauth.flow.ports.asyncio.sleep", sleep),
    ):
        await lease_port(4000, max_attempts=5, delay=0.1, backoff=2.0, max_delay=0.3)

    assert [c.args[0] for c in sleep.call_args_list] == pytest.approx([0.1, 0.2, 0.3, 0.3])


async def test_no_sleep_after_last_attempt():
    sleep = AsyncMock()
    with (
        patch("loopauth.flow.ports._probe", return_value=False),
        patch("loopauth.flow.ports.asyncio.sleep", sleep),
    ):
        with pytest.raises(NoPortAvailable):
            await lease_port(4000, max_attempts=2, delay=0.1)

    assert sleep.await_count == 1


def test_loopback_hosts_always_include_ipv4():
    hosts = loopback_hosts()
    assert hosts[0] == LOOPBACK_HOST
    assert set(hosts) <= {LOOPBACK_HOST, LOOPBACK_HOST_V6}


def test_loopback_hosts_without_ipv6(monkeypatch):
    monkeypatch.setattr("loopauth.flow.ports.socket.has_ipv6", False)
    assert loopback_hosts() == (LOOPBACK_HOST,)


async def test_checks_every_host():
    with patch("loopauth.flow.ports._probe", return_value=True) as check:
        await lease_port(4000, max_attempts=1, delay=0, hosts=("127.0.0.1", "::1"))
    check.assert_called_once_with(4000, ("127.0.0.1", "::1"))


@pytest.mark.skipif(
    LOOPBACK_HOST_V6 not in loopback_hosts(), reason="IPv6 loopback not available"
)
async def test_skips_port_busy_on_ipv6_loopback():
    busy = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
    try:
        busy.bind((LOOPBACK_HOST_V6, 0))
        busy.listen(1)
        base = busy.getsockname()[1]

        port = await lease_port(base, max_attempts=10, delay=0)
    finally:
        busy.close()

    assert port != base
