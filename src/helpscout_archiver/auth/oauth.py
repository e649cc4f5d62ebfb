from __future__ import annotations

import secrets
import time
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol
from urllib.parse import urlencode, urlsplit

import httpx
import structlog
from pydantic import ValidationError

from helpscout_archiver.adapters.helpscout.errors import (
    ReauthenticationRequiredError,
    TokenExchangeFailedError,
    UnauthenticatedError,
)
from helpscout_archiver.adapters.http_util import response_text, timeouts_for
from helpscout_archiver.auth.callback_server import OneShotCallbackListener
from helpscout_archiver.auth.token_store import TokenRecord, TokenStore
from helpscout_archiver.config.redact import scrub_secrets_in_text
from helpscout_archiver.config.settings import DEFAULT_CALLBACK_PATH, HelpScoutSettings
from helpscout_archiver.domain.time_utils import now_epoch_ms

log = structlog.get_logger(__name__)

# Refresh this long before the recorded expiry.
EXPIRY_MARGIN_MS = 60_000


class AuthState(str, Enum):
    NO_TOKEN = "no_token"
    AWAITING_USER_AUTHORIZATION = "awaiting_user_authorization"
    EXCHANGING_CODE = "exchanging_code"
    AUTHENTICATED = "authenticated"
    EXPIRING = "expiring"
    REFRESHING = "refreshing"


class CallbackListener(Protocol):
    async def wait_for_code(self) -> str: ...


ListenerFactory = Callable[..., CallbackListener]


class OAuthManager:
    """Authorization-code grant against Help Scout with a locally cached token."""

    def __init__(
        self,
        *,
        settings: HelpScoutSettings,
        token_store: TokenStore,
        clock: Callable[[], float] = time.time,
        verify_tls: bool = True,
        trust_env: bool = False,
        http_client: httpx.AsyncClient | None = None,
        listener_factory: ListenerFactory = OneShotCallbackListener,
        announce: Callable[[str], None] = print,
    ) -> None:
        if not settings.app_id:
            raise ValueError("app_id must be set")

        self._app_id = settings.app_id
        self._app_secret = settings.app_secret.get_secret_value()
        self._port = settings.port
        self._redirect_uri = settings.effective_redirect_uri
        self._callback_host = settings.callback_host
        self._callback_timeout = settings.callback_timeout_seconds
        self._token_url = str(settings.token_url)
        self._authorize_url = str(settings.authorize_url)

        self._store = token_store
        self._clock = clock
        self._listener_factory = listener_factory
        self._announce = announce
        self.state = AuthState.NO_TOKEN

        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=timeouts_for(settings.timeout_seconds),
            verify=verify_tls,
            trust_env=trust_env,
            follow_redirects=False,
        )

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def __aenter__(self) -> OAuthManager:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: Any,
    ) -> None:
        await self.aclose()

    @property
    def redirect_uri(self) -> str:
        return self._redirect_uri

    @property
    def callback_path(self) -> str:
        return urlsplit(self._redirect_uri).path or DEFAULT_CALLBACK_PATH

    def get_authorization_url(self, state: str) -> str:
        params = urlencode(
            {
                "client_id": self._app_id,
                "state": state,
                "response_type": "code",
                "redirect_uri": self._redirect_uri,
            }
        )
        return f"{self._authorize_url}?{params}"

    async def get_valid_token(self) -> str:
        record = self._store.load()
        if record is None:
            self.state = AuthState.NO_TOKEN
            raise UnauthenticatedError("No tokens found. Please authenticate first.")

        if record.expires_within(now_epoch_ms(self._clock), EXPIRY_MARGIN_MS):
            self.state = AuthState.EXPIRING
            log.info("oauth.token_expiring", expires_at=record.expires_at)
            try:
                refreshed = await self._refresh(record)
            except TokenExchangeFailedError as exc:
                self.state = AuthState.NO_TOKEN
                raise ReauthenticationRequiredError(
                    "Refreshing the access token failed. Please re-authenticate."
                ) from exc
            return refreshed.access_token

        self.state = AuthState.AUTHENTICATED
        return record.access_token

    async def start_auth_server(self) -> str:
        """Print the authorization URL and wait for the browser redirect's code."""
        state = secrets.token_urlsafe(24)
        auth_url = self.get_authorization_url(state)

        self.state = AuthState.AWAITING_USER_AUTHORIZATION
        self._announce("Please visit this URL to authenticate:")
        self._announce(auth_url)
        self._announce(f"Waiting for callback on port {self._port}...")

        listener = self._listener_factory(
            host=self._callback_host,
            port=self._port,
            callback_path=self.callback_path,
            expected_state=state,
            timeout_seconds=self._callback_timeout,
        )
        try:
            code = await listener.wait_for_code()
        except Exception:
            self.state = AuthState.NO_TOKEN
            raise
        log.info("oauth.authorization_code_received")
        return code

    async def exchange_code_for_token(self, code: str) -> TokenRecord:
        self.state = AuthState.EXCHANGING_CODE
        try:
            record = await self._request_token(
                {
                    "grant_type": "authorization_code",
                    "client_id": self._app_id,
                    "client_secret": self._app_secret,
                    "code": code,
                    "redirect_uri": self._redirect_uri,
                }
            )
        except TokenExchangeFailedError:
            self.state = AuthState.NO_TOKEN
            raise
        self.state = AuthState.AUTHENTICATED
        log.info("oauth.token_issued", expires_at=record.expires_at)
        return record

    async def refresh_access_token(self) -> TokenRecord:
        record = self._store.load()
        if record is None:
            self.state = AuthState.NO_TOKEN
            raise UnauthenticatedError("No refresh token available. Please re-authenticate.")
        return await self._refresh(record)

    async def _refresh(self, current: TokenRecord) -> TokenRecord:
        self.state = AuthState.REFRESHING
        record = await self._request_token(
            {
                "grant_type": "refresh_token",
                "client_id": self._app_id,
                "client_secret": self._app_secret,
                "refresh_token": current.refresh_token,
            }
        )
        self.state = AuthState.AUTHENTICATED
        log.info("oauth.token_refreshed", expires_at=record.expires_at)
        return record

    async def _request_token(self, form: dict[str, str]) -> TokenRecord:
        try:
            response = await self._http.post(
                self._token_url,
                data=form,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise TokenExchangeFailedError(
                None, scrub_secrets_in_text(f"{exc.__class__.__name__}: {exc}")
            ) from exc

        if not 200 <= response.status_code < 300:
            raise TokenExchangeFailedError(
                response.status_code, scrub_secrets_in_text(response_text(response))
            )

        issued_at_ms = now_epoch_ms(self._clock)
        try:
            payload = response.json()
        except ValueError as exc:
            raise TokenExchangeFailedError(
                response.status_code, "Token response is not valid JSON"
            ) from exc
        if not isinstance(payload, dict):
            raise TokenExchangeFailedError(
                response.status_code, "Token response is not a JSON object"
            )

        try:
            record = TokenRecord.from_token_response(payload, issued_at_ms=issued_at_ms)
        except ValidationError as exc:
            # Only field names: the input values are credentials.
            fields = sorted(
                {".".join(str(p) for p in err["loc"]) for err in exc.errors(include_input=False)}
            )
            raise TokenExchangeFailedError(
                response.status_code,
                f"Token response missing or invalid fields: {', '.join(fields)}",
            ) from exc

        self._store.save(record)
        return record
