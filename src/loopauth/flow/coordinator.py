"""Session coordinator — runs one loopback OAuth authorization flow at a time.

Lifecycle of a session::

    IDLE -> NEGOTIATING -> LISTENING -> AWAITING_CONSENT -> EXCHANGING -> COMPLETED
                                                   |               \\-> FAILED
                                                   |-> FAILED     (error redirect / missing code)
                                                   |-> CANCELLED  (window closed + grace elapsed)
                                                   \\-> TIMED_OUT (flow_timeout elapsed)

Every terminal path goes through the session's ResultCell, so whichever event
arrives first decides the outcome and the others become no-ops. Teardown
(timers, exchange task, window, listener, busy flag) always runs once the
outcome is known, whatever produced it.

Changes:
  - 2026-10-19: Unexpected errors while starting a session resolve it as FAILED.
  - 2026-10-16: Window closed during a token exchange no longer cancels the flow.
  - 2026-10-15: Caller cancellation resolves the session as CANCELLED before teardown.
  - 2026-10-13: Initial coordinator.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from loopauth.auth_store import INVALID_LOGIN_MESSAGE, CredentialStore
from loopauth.config import Settings, get_settings
from loopauth.errors import (
    CallbackError,
    ConsentWindowError,
    ExchangeError,
    FlowAlreadyInProgress,
    FlowTimedOut,
    NoPortAvailable,
    OAuthFlowError,
    OAuthNotConfigured,
    UserCancelled,
)
from loopauth.flow.callback_server import CallbackListener, CodeHandler, ErrorHandler
from loopauth.flow.ports import lease_port
from loopauth.flow.session import AuthorizationSession, FlowResult, ResultCell, SessionState
from loopauth.flow.window import ConsentWindow, create_consent_window
from loopauth.integrations.oauth import OAuthManager

logger = logging.getLogger(__name__)

WindowFactory = Callable[[], ConsentWindow]
ListenerFactory = Callable[[CodeHandler, ErrorHandler], CallbackListener]


class SessionCoordinator:
    """Single-flight coordinator for the authorization code flow.

    Usage:
        coordinator = SessionCoordinator()
        result = await coordinator.start_authorization_flow()
        if result.success:
            print(result.credential.access_token)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: CredentialStore | None = None,
        oauth: OAuthManager | None = None,
        window_factory: WindowFactory | None = None,
        listener_factory: ListenerFactory | None = None,
        provider: str = "google",
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store or CredentialStore()
        self.oauth = oauth or OAuthManager()
        self.provider = provider
        self._window_factory = window_factory or (
            lambda: create_consent_window(self.settings.consent_window)
        )
        self._listener_factory = listener_factory or CallbackListener
        self._busy = False
        self._session: AuthorizationSession | None = None

    @property
    def in_progress(self) -> bool:
        """True while a session is between NEGOTIATING and a terminal state."""
        return self._busy

    @property
    def session(self) -> AuthorizationSession | None:
        return self._session

    async def start_authorization_flow(self) -> FlowResult:
        """Run the flow to completion and return its single outcome.

        Never raises for flow outcomes: failures come back as a FlowResult with
        ``success=False`` and an ``error_code`` from ``loopauth.errors``.
        """
        if self._busy:
            logger.info("OAuth flow already in progress, rejecting duplicate request")
            return FlowResult.failed(SessionState.IDLE, FlowAlreadyInProgress())

        if not self.settings.google_oauth_client_id:
            logger.error("OAuth client ID is not configured")
            return FlowResult.failed(SessionState.IDLE, OAuthNotConfigured())

        self._busy = True
        session = AuthorizationSession(cell=ResultCell())
        self._session = session
        self.store.set_loading(True)

        try:
            await self._begin_or_fail(session)
            result = await session.cell.wait()
        finally:
            await self._teardown(session)
            self.store.set_loading(False)
            self._session = None
            self._busy = False

        if result.success:
            logger.info("OAuth flow completed")
        else:
            self.store.set_error(result.error)
        return result

    # ── Flow steps ─────────────────────────────────────────────────────

    async def _begin_or_fail(self, session: AuthorizationSession) -> None:
        try:
            await self._begin(session)
        except Exception as e:
            logger.exception("Unexpected error while starting OAuth flow")
            self._fail(
                session,
                SessionState.FAILED,
                OAuthFlowError(f"Failed to start OAuth flow: {e}"),
            )

    async def _begin(self, session: AuthorizationSession) -> None:
        """Negotiate a port, start the listener, arm the timeout, open the window."""
        settings = self.settings
        session.state = SessionState.NEGOTIATING

        try:
            session.port = await lease_port(
                settings.callback_base_port,
                max_attempts=settings.port_max_attempts,
                delay=settings.port_retry_delay,
                backoff=settings.port_retry_backoff,
            )
        except NoPortAvailable as e:
            self._fail(session, SessionState.FAILED, e)
            return

        session.state = SessionState.LISTENING
        logger.info("Using port %d for OAuth callback", session.port)

        listener = self._listener_factory(
            lambda code: self._on_code(session, code),
            lambda message: self._on_callback_error(session, message),
        )
        session.listener = listener
        try:
            await listener.start(session.port)
        except CallbackError as e:
            self._fail(session, SessionState.FAILED, e)
            return

        session.state = SessionState.AWAITING_CONSENT
        loop = asyncio.get_running_loop()
        session.timeout_handle = loop.call_later(settings.flow_timeout, self._on_timeout, session)

        auth_url = self.oauth.get_auth_url(
            provider=self.provider,
            client_id=settings.google_oauth_client_id or "",
            redirect_uri=session.callback_url,
            scopes=settings.oauth_scopes,
        )

        window = self._window_factory()
        session.window = window
        window.on_closed(lambda: self._on_window_closed(session))
        try:
            await window.open(auth_url)
        except Exception as e:
            self._fail(
                session,
                SessionState.FAILED,
                ConsentWindowError(f"Failed to open sign-in window: {e}"),
            )

    async def _exchange(self, session: AuthorizationSession, code: str) -> None:
        try:
            credential = await self.oauth.exchange_code(
                provider=self.provider,
                code=code,
                client_id=self.settings.google_oauth_client_id or "",
                client_secret=self.settings.google_oauth_client_secret or "",
                redirect_uri=session.callback_url,
            )
        except OAuthFlowError as e:
            logger.error("Token exchange error: %s", e.message)
            self._fail(session, SessionState.FAILED, e)
            return
        except Exception as e:
            logger.exception("Unexpected token exchange error")
            self._fail(session, SessionState.FAILED, ExchangeError(str(e)))
            return

        if session.resolved:
            logger.info("Token exchange finished after the flow ended; discarding credential")
            return

        if not self.store.login(credential):
            self._fail(
                session,
                SessionState.FAILED,
                ExchangeError(self.store.error or INVALID_LOGIN_MESSAGE),
            )
            return

        self._finish(session, FlowResult.completed(credential))

    # ── Terminal events ────────────────────────────────────────────────

    def _on_code(self, session: AuthorizationSession, code: str) -> None:
        if session.resolved or session.state is not SessionState.AWAITING_CONSENT:
            logger.info("Ignoring authorization code: session is %s", session.state.value)
            return
        session.state = SessionState.EXCHANGING
        session.exchange_task = asyncio.create_task(self._exchange(session, code))

    def _on_callback_error(self, session: AuthorizationSession, message: str) -> None:
        if session.resolved or session.state is not SessionState.AWAITING_CONSENT:
            logger.info("Ignoring callback error: session is %s", session.state.value)
            return
        self._fail(session, SessionState.FAILED, CallbackError(message))

    def _on_window_closed(self, session: AuthorizationSession) -> None:
        if session.resolved or session.grace_handle is not None:
            return
        grace = self.settings.window_close_grace
        logger.info("Sign-in window closed; waiting %.1fs for a pending callback", grace)
        loop = asyncio.get_running_loop()
        session.grace_handle = loop.call_later(grace, self._on_close_grace_elapsed, session)

    def _on_close_grace_elapsed(self, session: AuthorizationSession) -> None:
        if session.resolved:
            return
        if session.state is SessionState.EXCHANGING:
            logger.info("Sign-in window closed during token exchange; waiting for the exchange")
            return
        self._fail(session, SessionState.CANCELLED, UserCancelled())

    def _on_timeout(self, session: AuthorizationSession) -> None:
        session.timeout_handle = None
        if session.resolved:
            return
        logger.warning("OAuth flow timed out after %.0f seconds", self.settings.flow_timeout)
        self._fail(session, SessionState.TIMED_OUT, FlowTimedOut())

    # ── Resolution & teardown ──────────────────────────────────────────

    def _finish(self, session: AuthorizationSession, result: FlowResult) -> bool:
        """Resolve the session once. Returns False if another event already won."""
        if not session.cell.resolve(result):
            return False
        session.state = result.state
        return True

    def _fail(
        self, session: AuthorizationSession, state: SessionState, exc: OAuthFlowError
    ) -> None:
        if not self._finish(session, FlowResult.failed(state, exc)):
            return
        if state is SessionState.FAILED:
            logger.error("OAuth flow failed: %s", exc.message)
        else:
            logger.warning("OAuth flow ended (%s): %s", state.value, exc.message)

    async def _teardown(self, session: AuthorizationSession) -> None:
        """Release every session resource. Safe against already-closed resources."""
        # Caller cancellation reaches here with the cell still open.
        self._fail(session, SessionState.CANCELLED, UserCancelled("OAuth flow was cancelled"))

        for handle in (session.timeout_handle, session.grace_handle):
            if handle is not None:
                handle.cancel()
        session.timeout_handle = None
        session.grace_handle = None

        task = session.exchange_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        if session.window is not None:
            try:
                await session.window.close()
            except Exception as e:
                logger.debug("Sign-in window close failed: %s", e)

        if session.listener is not None:
            await session.listener.close()
