from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from helpscout_archiver.adapters.storage.fs_storage import write_atomic_text
from helpscout_archiver.config.settings import TokenStoreSettings

log = structlog.get_logger(__name__)

_TOKEN_FILE_MODE = 0o600


class TokenRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(ge=0)
    # Absolute expiry, epoch milliseconds.
    expires_at: int

    @classmethod
    def from_token_response(cls, payload: dict[str, Any], *, issued_at_ms: int) -> TokenRecord:
        """Build a record from a token endpoint response issued at `issued_at_ms`.

        `expires_at` is always derived locally from `expires_in`; any absolute
        expiry the server might send is ignored.
        """
        data = {k: v for k, v in payload.items() if k != "expires_at"}
        record = cls.model_validate({**data, "expires_at": 0})
        return record.model_copy(
            update={"expires_at": issued_at_ms + record.expires_in * 1000}
        )

    def expires_within(self, now_ms: int, margin_ms: int) -> bool:
        return now_ms >= self.expires_at - margin_ms


class TokenStore:
    """Persists a single OAuth token record as JSON on local disk."""

    def __init__(self, settings: TokenStoreSettings) -> None:
        self._base_dir = Path(settings.base_dir)
        self._path = self._base_dir / settings.token_filename

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> TokenRecord | None:
        if not self._path.is_file():
            return None

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return TokenRecord.model_validate(raw)
        except (OSError, ValueError, ValidationError) as exc:
            log.warning("token_store.load_failed", path=str(self._path), error=str(exc))
            return None

    def save(self, record: TokenRecord) -> None:
        payload = json.dumps(record.model_dump(mode="json"), indent=2)
        write_atomic_text(
            self._path,
            payload,
            storage_root=self._base_dir,
            mode=_TOKEN_FILE_MODE,
        )
        log.debug("token_store.saved", path=str(self._path))

    def clear(self) -> bool:
        try:
            self._path.unlink()
        except FileNotFoundError:
            return False
        return True
