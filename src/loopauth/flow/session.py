# Authorization session — state, single-use result cell, and the flow result.
# Created: 2026-10-13
#
# One AuthorizationSession exists per running flow. Its ResultCell is the only
# synchronization point between the competing terminal events (callback,
# window closed, timeout): the first resolve() wins, the rest are no-ops.

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from loopauth.errors import OAuthFlowError
from loopauth.integrations.token_store import Credential

if TYPE_CHECKING:
    from loopauth.flow.callback_server import CallbackListener
    from loopauth.flow.window import ConsentWindow


class SessionState(str, Enum):
    """Authorization session lifecycle state."""

    IDLE = "idle"
    NEGOTIATING = "negotiating"  # Looking for a free callback port
    LISTENING = "listening"  # Callback server bound
    AWAITING_CONSENT = "awaiting_consent"  # Consent window open
    EXCHANGING = "exchanging"  # Code received, token request in flight
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = {
    SessionState.COMPLETED,
    SessionState.FAILED,
    SessionState.TIMED_OUT,
    SessionState.CANCELLED,
}


@dataclass(frozen=True)
class FlowResult:
    """Outcome of ``start_authorization_flow()``."""

    success: bool
    state: SessionState
    credential: Credential | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def completed(cls, credential: Credential) -> FlowResult:
        return cls(success=True, state=SessionState.COMPLETED, credential=credential)

    @classmethod
    def failed(cls, state: SessionState, exc: OAuthFlowError) -> FlowResult:
        return cls(success=False, state=state, error=exc.message, error_code=exc.code)


class ResultCell:
    """Single-use completion handle with consult-and-clear semantics.

    ``resolve()`` takes the resolver reference and clears it in the same step,
    so in a single-threaded event loop only the first caller can complete the
    waiting flow.
    """

    def __init__(self) -> None:
        self._waiter: asyncio.Future[FlowResult] = asyncio.get_running_loop().create_future()
        self._resolver: asyncio.Future[FlowResult] | None = self._waiter

    @property
    def resolved(self) -> bool:
        return self._resolver is None

    def resolve(self, result: FlowResult) -> bool:
        """Complete the cell. Returns False if it was already resolved."""
        resolver, self._resolver = self._resolver, None
        if resolver is None:
            return False
        if not resolver.done():
            resolver.set_result(result)
        return True

    async def wait(self) -> FlowResult:
        return await self._waiter


@dataclass
class AuthorizationSession:
    """State of the one in-flight authorization flow."""

    cell: ResultCell
    state: SessionState = SessionState.IDLE
    port: int | None = None
    listener: CallbackListener | None = None
    window: ConsentWindow | None = None
    timeout_handle: asyncio.TimerHandle | None = None
    grace_handle: asyncio.TimerHandle | None = None
    exchange_task: asyncio.Task | None = None

    @property
    def callback_url(self) -> str:
        if self.port is None:
            raise RuntimeError("Callback port not negotiated yet")
        return f"http://localhost:{self.port}/callback"

    @property
    def resolved(self) -> bool:
        return self.cell.resolved
