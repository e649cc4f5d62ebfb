from __future__ import annotations

import os
import socket
import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src_path = repo_root / "src"
    sys.path.insert(0, str(src_path))

    # Set required env vars for Settings validation during test collection
    os.environ["APP_ID"] = "test-app-id"
    os.environ["APP_SECRET"] = "test-app-secret"
    os.environ["TOKEN_DIR"] = "/tmp/helpscout-archiver-test"


_LOOPBACK_HOSTS = frozenset({"127.0.0.1", "::1", "localhost"})


@pytest.fixture(autouse=True)
def _disable_network(request: pytest.FixtureRequest, monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Prevent accidental real network calls in unit/integration tests.

    Respx mocks should still work because they intercept at the HTTP client layer.
    Tests marked `loopback` may still connect to 127.0.0.1 / ::1.
    """
    if (os.environ.get("ALLOW_NETWORK_TESTS") or "").strip().lower() in {"1", "true", "yes"}:
        return

    def _blocked(*_args: object, **_kwargs: object) -> None:
        raise RuntimeError(
            "Network access is disabled in tests (set ALLOW_NETWORK_TESTS=1 to override)."
        )

    monkeypatch.setattr(socket, "create_connection", _blocked)

    if request.node.get_closest_marker("loopback") is None:
        monkeypatch.setattr(socket.socket, "connect", _blocked, raising=True)
        return

    real_connect = socket.socket.connect

    def _loopback_only(self: socket.socket, address: object) -> None:
        host = address[0] if isinstance(address, tuple) else None
        if host not in _LOOPBACK_HOSTS:
            _blocked()
        real_connect(self, address)

    monkeypatch.setattr(socket.socket, "connect", _loopback_only, raising=True)
