"""Single-use local HTTP listener for the OAuth redirect.

The listener is bound only for as long as it takes one callback request to
arrive on the redirect path: start -> wait for one callback (or timeout) ->
stop. Requests to any other path get a 404 and do not end the session.
"""
from __future__ import annotations

import asyncio
import socket
from collections.abc import Callable
from dataclasses import dataclass

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse

from helpscout_archiver.adapters.helpscout.errors import (
    AuthorizationTimeoutError,
    CallbackListenerError,
    CsrfStateMismatchError,
    MissingAuthorizationCodeError,
)

log = structlog.get_logger(__name__)

SUCCESS_PAGE = """<!DOCTYPE html>
<html>
<head>
  <style>
    body { font-family: system-ui; padding: 40px; text-align: center; }
    .success { color: #10b981; }
  </style>
</head>
<body>
  <h1 class="success">&#9989; Authentication Successful!</h1>
  <p>You can close this window and return to the terminal.</p>
  <script>setTimeout(() => window.close(), 3000);</script>
</body>
</html>
"""


@dataclass(frozen=True)
class CallbackOutcome:
    code: str | None = None
    error: Exception | None = None


def build_callback_app(
    *,
    expected_state: str,
    callback_path: str,
    on_outcome: Callable[[CallbackOutcome], None],
) -> FastAPI:
    """ASGI app that validates one OAuth redirect and reports it via `on_outcome`."""
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.get(callback_path)
    async def oauth_callback(request: Request):
        code = request.query_params.get("code")
        returned_state = request.query_params.get("state")

        if returned_state != expected_state:
            on_outcome(
                CallbackOutcome(
                    error=CsrfStateMismatchError("State mismatch - possible CSRF attack")
                )
            )
            return PlainTextResponse("Authentication failed: State mismatch", status_code=400)

        if not code:
            on_outcome(
                CallbackOutcome(
                    error=MissingAuthorizationCodeError("No authorization code received")
                )
            )
            return PlainTextResponse("Authentication failed: No code received", status_code=400)

        on_outcome(CallbackOutcome(code=code))
        return HTMLResponse(SUCCESS_PAGE)

    return app


def _bind_socket(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError as exc:
        sock.close()
        raise CallbackListenerError(
            f"Could not listen for the OAuth callback on {host}:{port}: {exc}"
        ) from exc
    return sock


class OneShotCallbackListener:
    def __init__(
        self,
        *,
        host: str,
        port: int,
        callback_path: str,
        expected_state: str,
        timeout_seconds: float | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._callback_path = callback_path
        self._expected_state = expected_state
        self._timeout_seconds = timeout_seconds

    async def wait_for_code(self) -> str:
        """Serve until one callback arrives, then shut down and return its code."""
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future[CallbackOutcome] = loop.create_future()

        def _record(result: CallbackOutcome) -> None:
            if not outcome.done():
                outcome.set_result(result)

        app = build_callback_app(
            expected_state=self._expected_state,
            callback_path=self._callback_path,
            on_outcome=_record,
        )
        config = uvicorn.Config(
            app,
            log_config=None,
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=5,
        )
        server = uvicorn.Server(config)

        sock = _bind_socket(self._host, self._port)
        serve_task = asyncio.create_task(server.serve(sockets=[sock]))
        log.info(
            "oauth.callback_listener_started",
            host=self._host,
            port=self._port,
            path=self._callback_path,
        )

        try:
            done, _ = await asyncio.wait(
                {outcome, serve_task},
                timeout=self._timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if outcome not in done:
                if serve_task in done:
                    raise CallbackListenerError(
                        "OAuth callback listener stopped before a callback arrived"
                    ) from serve_task.exception()
                raise AuthorizationTimeoutError(
                    f"No OAuth callback received within {self._timeout_seconds} seconds"
                )
        finally:
            server.should_exit = True
            if not serve_task.done():
                await serve_task
            sock.close()
            log.info("oauth.callback_listener_stopped", port=self._port)

        result = outcome.result()
        if result.error is not None:
            raise result.error
        if result.code is None:
            raise MissingAuthorizationCodeError("No authorization code received")
        return result.code
