"""Local argument validation. Every check here runs before any network call."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlparse

from identitykit.config import MAX_CLAIMS_PAYLOAD_SIZE, MAX_UID_LENGTH, RESERVED_CLAIMS
from identitykit.errors import InvalidArgumentError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")
_PHONE_RE = re.compile(r"\w")

MIN_PASSWORD_LENGTH = 6


def validate_uid(uid: Any, *, required: bool = False) -> str | None:
    """Validate a user id: a non-empty string of at most 128 characters."""
    if uid is None and not required:
        return None
    if not isinstance(uid, str) or not uid or len(uid) > MAX_UID_LENGTH:
        raise InvalidArgumentError(
            f"Invalid uid: {uid!r}. uid must be a non-empty string with at most "
            f"{MAX_UID_LENGTH} characters."
        )
    return uid


def validate_email(email: Any, *, required: bool = False) -> str | None:
    """Basic email format validation — just a sanity check, the service has the final say."""
    if email is None and not required:
        return None
    if not isinstance(email, str) or not email:
        raise InvalidArgumentError(f"Invalid email: {email!r}. Email must be a non-empty string.")
    if not _EMAIL_RE.match(email):
        raise InvalidArgumentError(f"Malformed email address string: {email!r}.")
    return email


def validate_phone_number(phone: Any, *, required: bool = False) -> str | None:
    """Phone numbers must be E.164-shaped: a leading '+' and at least one digit or letter."""
    if phone is None and not required:
        return None
    if not isinstance(phone, str) or not phone:
        raise InvalidArgumentError(
            f"Invalid phone number: {phone!r}. Phone number must be a non-empty string."
        )
    if not phone.startswith("+") or not _PHONE_RE.search(phone):
        raise InvalidArgumentError(
            f"Invalid phone number: {phone!r}. Phone number must be a valid, "
            "E.164 compliant identifier."
        )
    return phone


def validate_password(password: Any, *, required: bool = False) -> str | None:
    if password is None and not required:
        return None
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidArgumentError(
            f"Invalid password. Password must be a string at least {MIN_PASSWORD_LENGTH} "
            "characters long."
        )
    return password


def validate_display_name(display_name: Any, *, required: bool = False) -> str | None:
    if display_name is None and not required:
        return None
    if not isinstance(display_name, str) or not display_name:
        raise InvalidArgumentError(
            f"Invalid display name: {display_name!r}. Display name must be a non-empty string."
        )
    return display_name


def validate_photo_url(photo_url: Any, *, required: bool = False) -> str | None:
    if photo_url is None and not required:
        return None
    if not isinstance(photo_url, str) or not photo_url:
        raise InvalidArgumentError(
            f"Invalid photo URL: {photo_url!r}. Photo URL must be a non-empty string."
        )
    parsed = urlparse(photo_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidArgumentError(f"Malformed photo URL string: {photo_url!r}.")
    return photo_url


def validate_provider_id(provider_id: Any, *, required: bool = True) -> str | None:
    if provider_id is None and not required:
        return None
    if not isinstance(provider_id, str) or not provider_id:
        raise InvalidArgumentError(
            f"Invalid provider ID: {provider_id!r}. Provider ID must be a non-empty string."
        )
    return provider_id


def validate_provider_uid(provider_uid: Any, *, required: bool = True) -> str | None:
    if provider_uid is None and not required:
        return None
    if not isinstance(provider_uid, str) or not provider_uid:
        raise InvalidArgumentError(
            f"Invalid provider UID: {provider_uid!r}. Provider UID must be a non-empty string."
        )
    return provider_uid


def _reject_reserved(claims: Mapping[str, Any]) -> None:
    reserved = sorted(set(claims) & RESERVED_CLAIMS)
    if reserved:
        raise InvalidArgumentError(
            f"Claims {', '.join(reserved)} are reserved and cannot be set.",
            reserved=reserved,
        )


def validate_developer_claims(claims: Any) -> dict[str, Any]:
    """Validate the extra claims embedded in a custom token."""
    if not isinstance(claims, Mapping):
        raise InvalidArgumentError("Developer claims must be a mapping of names to values.")
    _reject_reserved(claims)
    try:
        json.dumps(claims)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"Developer claims are not JSON-serializable: {e}") from e
    return dict(claims)


def serialize_custom_claims(claims: Mapping[str, Any] | None) -> str:
    """Serialize user custom claims for storage; ``None`` serializes to ``"{}"`` (clears).

    Raises:
        InvalidArgumentError: If a reserved name is used, the value is not
            JSON-serializable, or the serialized form exceeds 1000 characters.
    """
    if claims is None:
        return "{}"
    if not isinstance(claims, Mapping):
        raise InvalidArgumentError("Custom claims must be a mapping of names to values.")
    _reject_reserved(claims)
    try:
        serialized = json.dumps(claims)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"Custom claims are not JSON-serializable: {e}") from e
    if len(serialized) > MAX_CLAIMS_PAYLOAD_SIZE:
        raise InvalidArgumentError(
            f"Custom claims payload must not exceed {MAX_CLAIMS_PAYLOAD_SIZE} characters."
        )
    return serialized


def validate_page_token(page_token: Any) -> str | None:
    if page_token is None:
        return None
    if not isinstance(page_token, str) or not page_token:
        raise InvalidArgumentError("Page token must be a non-empty string.")
    return page_token


def validate_max_results(max_results: Any, limit: int) -> int:
    if isinstance(max_results, bool) or not isinstance(max_results, int):
        raise InvalidArgumentError("max_results must be an integer.")
    if max_results < 1 or max_results > limit:
        raise InvalidArgumentError(f"max_results must be between 1 and {limit}, got {max_results}.")
    return max_results
