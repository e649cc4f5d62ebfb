from __future__ import annotations


class HelpScoutError(Exception):
    """Base class for Help Scout API and OAuth errors."""


class AuthError(HelpScoutError):
    """Base class for OAuth flow and token lifecycle failures."""


class UnauthenticatedError(AuthError):
    """No token record is stored; the interactive flow must run first."""


class ReauthenticationRequiredError(AuthError):
    """The stored refresh token was rejected; the user has to authorize again."""


class CsrfStateMismatchError(AuthError):
    """The OAuth callback carried a `state` other than the one we issued."""


class MissingAuthorizationCodeError(AuthError):
    """The OAuth callback arrived without an authorization `code`."""


class AuthorizationTimeoutError(AuthError):
    """No OAuth callback arrived within the configured timeout."""


class CallbackListenerError(AuthError):
    """The local OAuth callback listener could not be started."""


class TokenExchangeFailedError(AuthError):
    """The token endpoint rejected a code exchange or refresh.

    `status_code` is None when the request never got an HTTP response.
    """

    def __init__(self, status_code: int | None, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Token exchange failed (status={status_code}): {body}")


class UnrecognizedConversationReferenceError(HelpScoutError, ValueError):
    """Input is neither a numeric conversation id nor a conversation URL."""

    def __init__(self, link: str) -> None:
        self.link = link
        super().__init__(f"Could not extract conversation ID from: {link}")


class ApiError(HelpScoutError):
    """A Mailbox API request failed (non-2xx or transport error)."""

    def __init__(self, status_code: int | None, body: str) -> None:
        self.status_code = status_code
        self.body = body
        if status_code is None:
            super().__init__(f"Help Scout API request failed: {body}")
        else:
            super().__init__(f"Help Scout API error ({status_code}): {body}")


class NoDownloadLinkAvailableError(HelpScoutError):
    """The attachment payload carried no direct-data link to fetch."""

    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"No download link available for attachment {filename}")


class AttachmentDownloadFailedError(HelpScoutError):
    """Fetching an attachment's binary content failed (non-2xx)."""

    def __init__(self, filename: str, status_text: str) -> None:
        self.filename = filename
        self.status_text = status_text
        super().__init__(f"Failed to download attachment {filename}: {status_text}")
