from __future__ import annotations

from typing import Any, Literal, NoReturn

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from helpscout_archiver.adapters.helpscout.errors import (
    ApiError,
    AttachmentDownloadFailedError,
    NoDownloadLinkAvailableError,
    ReauthenticationRequiredError,
    UnauthenticatedError,
)
from helpscout_archiver.adapters.helpscout.models import (
    Attachment,
    AttachmentData,
    Conversation,
    Thread,
)
from helpscout_archiver.adapters.http_util import response_text, timeouts_for
from helpscout_archiver.auth.oauth import OAuthManager
from helpscout_archiver.domain.conversation_ref import extract_conversation_id

log = structlog.get_logger(__name__)


class AsyncHelpScoutClient:
    def __init__(
        self,
        *,
        base_url: str,
        oauth: OAuthManager,
        timeout_seconds: float = 30.0,
        verify_tls: bool = True,
        trust_env: bool = False,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        url = httpx.URL(base_url)
        if not url.scheme or not url.host:
            raise ValueError("base_url must include scheme and host, e.g. https://api.helpscout.net/v2")

        # Ensure a trailing slash to make httpx base_url joining unambiguous.
        base_path = url.path.rstrip("/") + "/"
        self._base_url = url.copy_with(path=base_path)
        self._oauth = oauth

        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeouts_for(timeout_seconds),
            verify=verify_tls,
            trust_env=trust_env,
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()
        await self._oauth.aclose()

    async def __aenter__(self) -> AsyncHelpScoutClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: Any,
    ) -> None:
        await self.aclose()

    async def authenticate(self) -> None:
        """Make sure a valid token is stored, running the browser flow if needed."""
        try:
            await self._oauth.get_valid_token()
            log.info("helpscout.already_authenticated")
            return
        except (UnauthenticatedError, ReauthenticationRequiredError) as exc:
            log.info("helpscout.authentication_required", reason=str(exc))

        code = await self._oauth.start_auth_server()
        await self._oauth.exchange_code_for_token(code)
        log.info("helpscout.authentication_successful")

    @staticmethod
    def extract_conversation_id(link: str) -> str:
        return extract_conversation_id(link)

    async def get_conversation(self, conversation_id: str | int) -> Conversation:
        resp = await self._request_json(
            "GET", f"conversations/{conversation_id}", params={"embed": "threads"}
        )
        try:
            return Conversation.model_validate(resp)
        except ValidationError as exc:
            raise ApiError(
                None,
                f"Conversation response format unexpected for {conversation_id}: {exc!s}",
            ) from exc

    async def get_threads(self, conversation_id: str | int) -> list[Thread]:
        resp = await self._request_json("GET", f"conversations/{conversation_id}/threads")

        embedded = resp.get("_embedded") if isinstance(resp, dict) else None
        threads_value = embedded.get("threads", []) if isinstance(embedded, dict) else []
        try:
            return TypeAdapter(list[Thread]).validate_python(threads_value)
        except ValidationError as exc:
            raise ApiError(
                None,
                f"Threads response format unexpected for conversation {conversation_id}: {exc!s}",
            ) from exc

    async def get_attachment_data(
        self, conversation_id: str | int, attachment_id: int
    ) -> AttachmentData:
        resp = await self._request_json(
            "GET", f"conversations/{conversation_id}/attachments/{attachment_id}/data"
        )
        return AttachmentData.model_validate(resp)

    async def download_attachment_binary(
        self, conversation_id: str | int, attachment: Attachment
    ) -> bytes:
        link = attachment.download_link
        if not link:
            raise NoDownloadLinkAvailableError(attachment.filename)

        token = await self._oauth.get_valid_token()
        try:
            response = await self._http.get(
                link, headers={"Authorization": f"Bearer {token}"}
            )
        except httpx.HTTPError as exc:
            raise AttachmentDownloadFailedError(
                attachment.filename, f"{exc.__class__.__name__}: {exc}"
            ) from exc

        if not 200 <= response.status_code < 300:
            raise AttachmentDownloadFailedError(
                attachment.filename, response.reason_phrase or str(response.status_code)
            )

        log.debug(
            "helpscout.attachment_downloaded",
            conversation_id=str(conversation_id),
            attachment_id=attachment.id,
            size=len(response.content),
        )
        return response.content

    async def _request_json(
        self,
        method: Literal["GET", "POST"],
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: Any | None = None,
    ) -> Any:
        response = await self._request(method, path, params=params, json=json)
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(
                response.status_code,
                f"Invalid JSON from Help Scout at {response.request.url!s}",
            ) from exc

    async def _request(
        self,
        method: Literal["GET", "POST"],
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: Any | None = None,
    ) -> httpx.Response:
        # Fetched per request so a call right after a refresh uses the new token.
        token = await self._oauth.get_valid_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            response = await self._http.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.HTTPError as exc:
            raise ApiError(None, f"{exc.__class__.__name__} at {path}: {exc}") from exc

        if 200 <= response.status_code < 300:
            return response

        self._raise_for_status(response)

    def _raise_for_status(self, response: httpx.Response) -> NoReturn:
        raise ApiError(response.status_code, response_text(response))
