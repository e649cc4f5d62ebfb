from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
import respx

from helpscout_archiver.adapters.helpscout.errors import (
    CsrfStateMismatchError,
    ReauthenticationRequiredError,
    TokenExchangeFailedError,
    UnauthenticatedError,
)
from helpscout_archiver.auth.oauth import EXPIRY_MARGIN_MS, AuthState, OAuthManager
from helpscout_archiver.auth.token_store import TokenRecord, TokenStore
from test.support.payloads import TOKEN_URL, token_payload
from test.support.settings_factory import make_settings

NOW_S = 1_700_000_000.0
NOW_MS = int(NOW_S * 1000)


def _manager(tmp_path: Path, **kwargs: Any) -> tuple[OAuthManager, TokenStore]:
    settings = make_settings(str(tmp_path))
    store = TokenStore(settings.tokens)
    manager = OAuthManager(
        settings=settings.helpscout,
        token_store=store,
        clock=lambda: NOW_S,
        announce=lambda _msg: None,
        **kwargs,
    )
    return manager, store


def _stored(store: TokenStore, *, expires_at: int) -> TokenRecord:
    record = TokenRecord(
        access_token="cached-access",
        refresh_token="cached-refresh",
        expires_in=7200,
        expires_at=expires_at,
    )
    store.save(record)
    return record


def test_authorization_url_has_expected_params(tmp_path: Path) -> None:
    manager, _ = _manager(tmp_path)

    url = manager.get_authorization_url("state-123")
    parts = urlsplit(url)
    query = parse_qs(parts.query)

    assert url.startswith(
        "https://secure.helpscout.example/authentication/authorizeClientApplication?"
    )
    assert query == {
        "client_id": ["test-app-id"],
        "state": ["state-123"],
        "response_type": ["code"],
        "redirect_uri": ["http://localhost:3698/auth"],
    }
    asyncio.run(manager.aclose())


def test_get_valid_token_without_record_raises(tmp_path: Path) -> None:
    manager, _ = _manager(tmp_path)

    async def run() -> None:
        async with manager:
            with pytest.raises(UnauthenticatedError):
                await manager.get_valid_token()

    asyncio.run(run())
    assert manager.state is AuthState.NO_TOKEN


def test_get_valid_token_returns_cached_token_without_network(tmp_path: Path) -> None:
    manager, store = _manager(tmp_path)
    _stored(store, expires_at=NOW_MS + 10 * 60_000)

    async def run() -> str:
        async with manager:
            return await manager.get_valid_token()

    with respx.mock(assert_all_called=False) as router:
        route = router.post(TOKEN_URL)
        assert asyncio.run(run()) == "cached-access"
        assert route.call_count == 0
    assert manager.state is AuthState.AUTHENTICATED


def test_get_valid_token_refreshes_inside_margin_once_and_persists(tmp_path: Path) -> None:
    manager, store = _manager(tmp_path)
    _stored(store, expires_at=NOW_MS + EXPIRY_MARGIN_MS - 1)

    async def run() -> str:
        async with manager:
            return await manager.get_valid_token()

    with respx.mock:
        route = respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(
                200, json=token_payload(access_token="fresh", refresh_token="fresh-r")
            )
        )
        assert asyncio.run(run()) == "fresh"
        assert route.call_count == 1
        form = parse_qs(route.calls.last.request.content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["cached-refresh"]
        assert form["client_id"] == ["test-app-id"]
        assert form["client_secret"] == ["test-app-secret"]

    saved = store.load()
    assert saved is not None
    assert saved.access_token == "fresh"
    assert saved.refresh_token == "fresh-r"
    assert saved.expires_at == NOW_MS + 7200 * 1000


def test_failed_refresh_requires_reauthentication(tmp_path: Path) -> None:
    manager, store = _manager(tmp_path)
    _stored(store, expires_at=NOW_MS - 1)

    async def run() -> None:
        async with manager:
            await manager.get_valid_token()

    with respx.mock:
        respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(400, json={"error": "invalid_grant"})
        )
        with pytest.raises(ReauthenticationRequiredError) as exc:
            asyncio.run(run())

    assert isinstance(exc.value.__cause__, TokenExchangeFailedError)
    assert exc.value.__cause__.status_code == 400


def test_exchange_code_posts_form_and_saves_record(tmp_path: Path) -> None:
    manager, store = _manager(tmp_path)

    async def run() -> TokenRecord:
        async with manager:
            return await manager.exchange_code_for_token("auth-code")

    with respx.mock:
        route = respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json=token_payload())
        )
        record = asyncio.run(run())

        request = route.calls.last.request
        assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
        form = parse_qs(request.content.decode())
        assert form == {
            "grant_type": ["authorization_code"],
            "client_id": ["test-app-id"],
            "client_secret": ["test-app-secret"],
            "code": ["auth-code"],
            "redirect_uri": ["http://localhost:3698/auth"],
        }

    assert record.access_token == "access-1"
    assert store.load() == record
    assert manager.state is AuthState.AUTHENTICATED


def test_exchange_code_non_2xx_raises_with_status_and_body(tmp_path: Path) -> None:
    manager, store = _manager(tmp_path)

    async def run() -> None:
        async with manager:
            await manager.exchange_code_for_token("bad-code")

    with respx.mock:
        respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(401, text="invalid client")
        )
        with pytest.raises(TokenExchangeFailedError) as exc:
            asyncio.run(run())

    assert exc.value.status_code == 401
    assert "invalid client" in exc.value.body
    assert store.load() is None


def test_exchange_code_rejects_response_missing_fields_without_echoing_values(
    tmp_path: Path,
) -> None:
    manager, _ = _manager(tmp_path)

    async def run() -> None:
        async with manager:
            await manager.exchange_code_for_token("code")

    with respx.mock:
        respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"access_token": "leaky-value"})
        )
        with pytest.raises(TokenExchangeFailedError) as exc:
            asyncio.run(run())

    assert "refresh_token" in str(exc.value)
    assert "leaky-value" not in str(exc.value)


def test_transport_error_on_token_endpoint_raises_exchange_failed(tmp_path: Path) -> None:
    manager, _ = _manager(tmp_path)

    async def run() -> None:
        async with manager:
            await manager.exchange_code_for_token("code")

    with respx.mock:
        respx.post(TOKEN_URL).mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(TokenExchangeFailedError) as exc:
            asyncio.run(run())

    assert exc.value.status_code is None


def test_refresh_access_token_without_record_raises(tmp_path: Path) -> None:
    manager, _ = _manager(tmp_path)

    async def run() -> None:
        async with manager:
            await manager.refresh_access_token()

    with pytest.raises(UnauthenticatedError):
        asyncio.run(run())


class _FakeListener:
    def __init__(self, result: str | Exception, captured: dict[str, Any], **kwargs: Any):
        self._result = result
        captured.update(kwargs)

    async def wait_for_code(self) -> str:
        if isinstance(self._result, Exception):
            raise self._result
        return self._result


def test_start_auth_server_announces_url_and_returns_code(tmp_path: Path) -> None:
    captured: dict[str, Any] = {}
    announced: list[str] = []
    settings = make_settings(
        str(tmp_path), overrides={"helpscout": {"callback_timeout_seconds": 5}}
    )
    manager = OAuthManager(
        settings=settings.helpscout,
        token_store=TokenStore(settings.tokens),
        listener_factory=lambda **kw: _FakeListener("the-code", captured, **kw),
        announce=announced.append,
    )

    async def run() -> str:
        async with manager:
            return await manager.start_auth_server()

    assert asyncio.run(run()) == "the-code"
    assert captured["host"] == "127.0.0.1"
    assert captured["port"] == 3698
    assert captured["callback_path"] == "/auth"
    assert captured["timeout_seconds"] == 5
    state = captured["expected_state"]
    assert state
    assert any(f"state={state}" in line for line in announced)


def test_start_auth_server_propagates_listener_failure(tmp_path: Path) -> None:
    captured: dict[str, Any] = {}
    manager, _ = _manager(
        tmp_path,
        listener_factory=lambda **kw: _FakeListener(
            CsrfStateMismatchError("State mismatch"), captured, **kw
        ),
    )

    async def run() -> None:
        async with manager:
            await manager.start_auth_server()

    with pytest.raises(CsrfStateMismatchError):
        asyncio.run(run())
    assert manager.state is AuthState.NO_TOKEN


def test_custom_redirect_uri_drives_callback_path(tmp_path: Path) -> None:
    settings = make_settings(
        str(tmp_path),
        port=4000,
        overrides={"helpscout": {"redirect_uri": "http://localhost:4000/oauth/callback"}},
    )
    manager = OAuthManager(
        settings=settings.helpscout, token_store=TokenStore(settings.tokens)
    )
    assert manager.redirect_uri == "http://localhost:4000/oauth/callback"
    assert manager.callback_path == "/oauth/callback"
    asyncio.run(manager.aclose())
