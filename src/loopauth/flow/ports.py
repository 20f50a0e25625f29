# Port negotiation — find a free loopback port for the OAuth callback server.
# Created: 2026-10-12
# Updated: 2026-10-14 — bounded backoff between probes (fixed delay by default)
# Updated: 2026-10-19 — a port counts as free only if every loopback family can bind it

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Sequence

from loopauth.errors import NoPortAvailable

logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"
LOOPBACK_HOST_V6 = "::1"
MAX_PORT = 65535


def address_family(host: str) -> socket.AddressFamily:
    return socket.AF_INET6 if ":" in host else socket.AF_INET


def loopback_hosts() -> tuple[str, ...]:
    """Loopback addresses ``localhost`` can resolve to on this machine.

    ``::1`` is included only when IPv6 loopback is usable, so the callback
    redirect to ``localhost`` cannot land on another process bound to ``[::1]``.
    """
    if not socket.has_ipv6:
        return (LOOPBACK_HOST,)
    try:
        with socket.socket(socket.AF_INET6, socket.SOCK_STREAM) as s:
            s.bind((LOOPBACK_HOST_V6, 0))
    except OSError:
        return (LOOPBACK_HOST,)
    return (LOOPBACK_HOST, LOOPBACK_HOST_V6)


def _probe(port: int, hosts: Sequence[str]) -> bool:
    """Return True if ``port`` can be bound on every one of ``hosts`` right now."""
    for host in hosts:
        try:
            with socket.socket(address_family(host), socket.SOCK_STREAM) as s:
                s.bind((host, port))
        except OSError:
            return False
    return True


async def lease_port(
    base_port: int,
    max_attempts: int = 50,
    delay: float = 0.1,
    backoff: float = 1.0,
    max_delay: float = 2.0,
    hosts: Sequence[str] | None = None,
) -> int:
    """Find an available port starting from ``base_port``.

    Probes ``base_port``, ``base_port + 1``, ... with throwaway sockets on each
    loopback address (``loopback_hosts()`` by default). The sockets are closed
    again before returning, so the caller must rebind the port itself.
    Between busy ports it sleeps ``delay`` seconds, multiplied by ``backoff``
    after each failure and capped at ``max_delay``.

    Raises:
        NoPortAvailable: All ``max_attempts`` ports were busy.
    """
    if hosts is None:
        hosts = loopback_hosts()

    wait = delay
    for attempt in range(1, max_attempts + 1):
        port = base_port + attempt - 1
        if port > MAX_PORT:
            break

        if _probe(port, hosts):
            logger.debug("Leased callback port %d (attempt %d/%d)", port, attempt, max_attempts)
            return port

        logger.debug("Port %d is in use (attempt %d/%d)", port, attempt, max_attempts)
        if attempt < max_attempts:
            await asyncio.sleep(wait)
            wait = min(wait * backoff, max_delay)

    raise NoPortAvailable(f"Failed to find available port after {max_attempts} attempts")
