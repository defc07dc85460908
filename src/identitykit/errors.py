"""Exception taxonomy for identitykit.

Every error carries a short machine-readable ``code`` alongside a human message,
so callers can branch on the code without parsing text.
"""

from __future__ import annotations

import re


class AuthError(Exception):
    """Base identitykit error with an error code."""

    def __init__(self, message: str, code: str, **extra):
        self.message = message
        self.code = code
        self.extra = extra
        super().__init__(message)


class InvalidArgumentError(AuthError, ValueError):
    """Raised by local validation, before any network call is made."""

    def __init__(self, message: str, **extra):
        super().__init__(message, "invalid_argument", **extra)


class SigningError(AuthError):
    """Raised when no signer can be resolved or a signature cannot be produced."""


class TokenVerificationError(AuthError):
    """Raised when an ID token fails verification."""


class UserNotFoundError(AuthError):
    """Raised when a lookup or a single delete finds no matching user."""

    def __init__(self, message: str = "No user record found for the given identifier", **extra):
        super().__init__(message, "user_not_found", **extra)


class OperationCancelledError(AuthError):
    """Raised when a caller-supplied cancel signal fires during a remote call."""

    def __init__(self, message: str = "Operation was cancelled", **extra):
        super().__init__(message, "cancelled", **extra)


class RemoteServiceError(AuthError):
    """Non-2xx response or transport failure from a remote service.

    Attributes:
        status_code: HTTP status, or None when the request never got a response.
        remote_code: The raw error code reported by the service, if any.
        retryable: Whether the same call may succeed if repeated later.
    """

    def __init__(
        self,
        message: str,
        code: str,
        *,
        status_code: int | None = None,
        remote_code: str | None = None,
        retryable: bool = False,
        **extra,
    ):
        self.status_code = status_code
        self.remote_code = remote_code
        self.retryable = retryable
        super().__init__(message, code, **extra)


# Identity service error codes -> identitykit codes.
_REMOTE_CODES: dict[str, str] = {
    "CONFIGURATION_NOT_FOUND": "configuration_not_found",
    "DUPLICATE_EMAIL": "email_already_exists",
    "DUPLICATE_LOCAL_ID": "uid_already_exists",
    "EMAIL_EXISTS": "email_already_exists",
    "INSUFFICIENT_PERMISSION": "insufficient_permission",
    "INVALID_EMAIL": "invalid_email",
    "INVALID_PAGE_SELECTION": "invalid_page_token",
    "INVALID_PHONE_NUMBER": "invalid_phone_number",
    "PHONE_NUMBER_EXISTS": "phone_number_already_exists",
    "PROJECT_NOT_FOUND": "project_not_found",
    "QUOTA_EXCEEDED": "quota_exceeded",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "too_many_requests",
    "USER_NOT_FOUND": "user_not_found",
    "WEAK_PASSWORD": "invalid_password",
}

_CODE_RE = re.compile(r"^[A-Z][A-Z0-9_]*$")
_RETRYABLE_REMOTE_CODES = frozenset({"QUOTA_EXCEEDED", "TOO_MANY_ATTEMPTS_TRY_LATER"})
_RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


def _status_code_name(status_code: int) -> str:
    if status_code == 429:
        return "too_many_requests"
    if status_code in (401, 403):
        return "insufficient_permission"
    if status_code == 404:
        return "not_found"
    if status_code == 503:
        return "unavailable"
    if status_code >= 500:
        return "internal_error"
    return "unknown"


def from_remote_error(
    status_code: int, body: object, *, service: str = "Identity service",
) -> AuthError:
    """Build the exception for an error response from the identity service.

    The service reports errors as ``{"error": {"message": "CODE : detail"}}``.
    ``USER_NOT_FOUND`` becomes a :class:`UserNotFoundError`; everything else is a
    :class:`RemoteServiceError`.
    """
    remote_code = None
    detail = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        raw = body["error"].get("message")
        if isinstance(raw, str) and raw:
            head, _, tail = raw.partition(":")
            if _CODE_RE.match(head.strip()):
                remote_code = head.strip()
                detail = tail.strip() or None
            else:
                detail = raw

    message = f"{service} responded with HTTP {status_code}"
    if remote_code:
        message = f"{message}: {remote_code}"
    if detail:
        message = f"{message} ({detail})"

    if remote_code == "USER_NOT_FOUND":
        return UserNotFoundError(message, status_code=status_code)

    code = _REMOTE_CODES.get(remote_code or "") or _status_code_name(status_code)
    return RemoteServiceError(
        message,
        code,
        status_code=status_code,
        remote_code=remote_code,
        retryable=status_code in _RETRYABLE_STATUS or remote_code in _RETRYABLE_REMOTE_CODES,
    )
