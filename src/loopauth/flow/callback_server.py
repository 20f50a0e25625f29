"""Loopback HTTP server that catches the OAuth redirect.

Serves ``GET /callback`` on ``127.0.0.1:<port>`` (and ``[::1]:<port>`` where IPv6
loopback is available) for the lifetime of one authorization session.
Everything else is a 404.

Changes:
  - 2026-10-19: Also bind ``::1`` so ``localhost`` resolves to our listener on either family.
  - 2026-10-15: Bind the listening socket ourselves so a lost port race is a CallbackError.
  - 2026-10-13: Initial callback server (FastAPI app under a background uvicorn task).
"""

from __future__ import annotations

import asyncio
import html
import logging
import socket
from collections.abc import Callable, Sequence

import uvicorn
from fastapi import FastAPI, Query
from fastapi.responses import HTMLResponse

from loopauth.errors import CallbackError
from loopauth.flow.ports import address_family, loopback_hosts

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"

CodeHandler = Callable[[str], None]
ErrorHandler = Callable[[str], None]

SUCCESS_PAGE = """
<html>
  <body style="font-family: Arial, sans-serif; text-align: center; padding: 50px;">
    <h2 style="color: #4285F4;">&#10003; Authorization Successful!</h2>
    <p>Processing your authorization...</p>
    <p>You can close this window and return to the app.</p>
    <script>setTimeout(() => { try { window.close(); } catch (e) {} }, 3000);</script>
  </body>
</html>
"""

FAILURE_PAGE = """
<html>
  <body style="font-family: Arial, sans-serif; text-align: center; padding: 50px;">
    <h2 style="color: #d93025;">&#10007; Authorization Failed</h2>
    <p>Error: {message}</p>
    <p>You can close this window and try again.</p>
    <script>setTimeout(() => {{ try {{ window.close(); }} catch (e) {{}} }}, 3000);</script>
  </body>
</html>
"""


def create_app(on_code: CodeHandler, on_error: ErrorHandler) -> FastAPI:
    """Create the FastAPI app for the callback route.

    ``on_code`` must only schedule work: it runs before the success page is
    returned to the browser.
    """
    app = FastAPI(title="loopauth callback", docs_url=None, redoc_url=None, openapi_url=None)

    @app.get(CALLBACK_PATH, response_class=HTMLResponse)
    async def oauth_callback(
        code: str = Query(""),
        error: str = Query(""),
        error_description: str = Query(""),
    ):
        """OAuth redirect target — hands the code or the provider error to the session."""
        if code:
            logger.info("Authorization code received on callback")
            on_code(code)
            return HTMLResponse(SUCCESS_PAGE)

        message = error_description or error or "OAuth authorization failed"
        logger.warning("OAuth authorization failed: %s", message)
        on_error(message)
        return HTMLResponse(FAILURE_PAGE.format(message=html.escape(message)))

    return app


class CallbackListener:
    """Ephemeral uvicorn server for one authorization session.

    Usage:
        listener = CallbackListener(on_code, on_error)
        await listener.start(port)
        ...
        await listener.close()
    """

    def __init__(
        self,
        on_code: CodeHandler,
        on_error: ErrorHandler,
        hosts: Sequence[str] | None = None,
    ) -> None:
        self.hosts = tuple(hosts) if hosts is not None else loopback_hosts()
        self.port: int | None = None
        self.app = create_app(on_code, on_error)
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None
        self._socks: list[socket.socket] = []

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _bind(self, host: str, port: int) -> socket.socket:
        family = address_family(host)
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if family == socket.AF_INET6:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
            sock.bind((host, port))
        except OSError:
            sock.close()
            raise
        return sock

    async def start(self, port: int) -> None:
        """Bind ``port`` on every loopback host and serve until ``close()``.

        Raises:
            CallbackError: The port could not be bound or the server did not start.
        """
        try:
            for host in self.hosts:
                self._socks.append(self._bind(host, port))
        except OSError as e:
            self._close_sockets()
            raise CallbackError(f"Failed to start OAuth callback server: {e}") from e

        config = uvicorn.Config(
            self.app,
            host=self.hosts[0],
            port=port,
            log_level="warning",
            log_config=None,
            lifespan="off",
        )
        server = uvicorn.Server(config)

        self._server = server
        self.port = port
        self._task = asyncio.create_task(server.serve(sockets=list(self._socks)))

        while not server.started:
            if self._task.done():
                task, self._task = self._task, None
                self._close_sockets()
                exc = None if task.cancelled() else task.exception()
                raise CallbackError(
                    f"Failed to start OAuth callback server: {exc or 'server exited'}"
                )
            await asyncio.sleep(0.01)

        logger.info(
            "OAuth callback server started on http://localhost:%d%s (%s)",
            port,
            CALLBACK_PATH,
            ", ".join(self.hosts),
        )

    async def close(self) -> None:
        """Stop the server. Safe to call more than once or before ``start()``."""
        task, self._task = self._task, None
        if task is None:
            return

        if self._server is not None:
            self._server.should_exit = True

        try:
            await task
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("Callback server exited with error during shutdown: %s", e)
        finally:
            self._close_sockets()

        logger.info("OAuth callback server on port %s stopped", self.port)

    def _close_sockets(self) -> None:
        socks, self._socks = self._socks, []
        for sock in socks:
            sock.close()
