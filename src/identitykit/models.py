"""User record snapshots and request arguments.

Records are parsed from the identity service's JSON account objects with pydantic
and are immutable once constructed. Request arguments are plain dataclasses;
they are validated by :meth:`to_payload` so errors surface as InvalidArgumentError.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from identitykit import validators
from identitykit.errors import InvalidArgumentError

_REDACTED_PASSWORD_HASH = "UkVEQUNURUQ="  # base64("REDACTED")


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


# ---------------------------------------------------------------------------
# Records returned by the identity service
# ---------------------------------------------------------------------------


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class UserInfo(_Record):
    """A user's identity information from one identity provider."""

    uid: str = Field(alias="rawId")
    provider_id: str = Field(alias="providerId")
    email: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")
    display_name: str | None = Field(default=None, alias="displayName")
    photo_url: str | None = Field(default=None, alias="photoUrl")


class UserMetadata(_Record):
    """Account timestamps, in milliseconds since the epoch."""

    creation_timestamp: int | None = Field(default=None, alias="createdAt")
    last_sign_in_timestamp: int | None = Field(default=None, alias="lastLoginAt")
    last_refresh_timestamp: int | None = Field(default=None, alias="lastRefreshAt")

    @field_validator("last_refresh_timestamp", mode="before")
    @classmethod
    def _parse_rfc3339(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.isdigit():
            return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)
        return value


class UserRecord(_Record):
    """A snapshot of a user account held by the identity service."""

    uid: str = Field(alias="localId")
    email: str | None = None
    email_verified: bool = Field(default=False, alias="emailVerified")
    phone_number: str | None = Field(default=None, alias="phoneNumber")
    display_name: str | None = Field(default=None, alias="displayName")
    photo_url: str | None = Field(default=None, alias="photoUrl")
    disabled: bool = False
    provider_data: tuple[UserInfo, ...] = Field(default=(), alias="providerUserInfo")
    custom_claims: dict[str, Any] | None = Field(default=None, alias="customAttributes")
    tokens_valid_after_timestamp: int | None = Field(default=None, alias="validSince")
    tenant_id: str | None = Field(default=None, alias="tenantId")
    user_metadata: UserMetadata = Field(default_factory=UserMetadata, alias="userMetadata")

    @property
    def provider_id(self) -> str:
        return "firebase"

    @model_validator(mode="before")
    @classmethod
    def _collect_metadata(cls, data: Any) -> Any:
        if isinstance(data, dict) and "userMetadata" not in data and "user_metadata" not in data:
            data = dict(data)
            data["userMetadata"] = {
                key: data[key]
                for key in ("createdAt", "lastLoginAt", "lastRefreshAt")
                if key in data
            }
        return data

    @field_validator("custom_claims", mode="before")
    @classmethod
    def _parse_custom_attributes(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = json.loads(value) if value else None
        return value or None

    @field_validator("tokens_valid_after_timestamp", mode="before")
    @classmethod
    def _seconds_to_millis(cls, value: Any) -> Any:
        if value is None:
            return None
        return int(value) * 1000


class ExportedUserRecord(UserRecord):
    """A user record as returned by listing, including password hash and salt."""

    password_hash: str | None = Field(default=None, alias="passwordHash")
    password_salt: str | None = Field(default=None, alias="salt")

    @field_validator("password_hash", mode="before")
    @classmethod
    def _drop_redacted(cls, value: Any) -> Any:
        if value == _REDACTED_PASSWORD_HASH:
            return None
        return value


@dataclass(frozen=True, slots=True)
class ListUsersPage:
    """One page of a user listing."""

    users: tuple[ExportedUserRecord, ...]
    next_page_token: str | None

    @property
    def has_next_page(self) -> bool:
        return self.next_page_token is not None


# ---------------------------------------------------------------------------
# Request arguments
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CreateUserRequest:
    """Attributes for a new user account. Omitted fields are left to the service."""

    uid: str | None = None
    email: str | None = None
    email_verified: bool | None = None
    phone_number: str | None = None
    display_name: str | None = None
    photo_url: str | None = None
    password: str | None = None
    disabled: bool | None = None

    def to_payload(self) -> dict[str, Any]:
        """Validate the attributes and build the create-account request body."""
        payload = {
            "localId": validators.validate_uid(self.uid),
            "email": validators.validate_email(self.email),
            "phoneNumber": validators.validate_phone_number(self.phone_number),
            "displayName": validators.validate_display_name(self.display_name),
            "photoUrl": validators.validate_photo_url(self.photo_url),
            "password": validators.validate_password(self.password),
            "emailVerified": _validate_bool(self.email_verified, "email_verified"),
            "disabled": _validate_bool(self.disabled, "disabled"),
        }
        return {k: v for k, v in payload.items() if v is not None}


@dataclass(frozen=True, slots=True)
class UpdateUserRequest:
    """Attributes to change on an existing user account.

    Fields left as ``UNSET`` are not touched. Setting ``display_name``,
    ``photo_url`` or ``phone_number`` to ``None`` removes that attribute;
    setting ``custom_claims`` to ``None`` clears all custom claims.
    """

    uid: str
    email: str | None = UNSET
    email_verified: bool | None = UNSET
    phone_number: str | None = UNSET
    display_name: str | None = UNSET
    photo_url: str | None = UNSET
    password: str | None = UNSET
    disabled: bool | None = UNSET
    custom_claims: dict[str, Any] | None = UNSET
    valid_since: int | None = UNSET

    def to_payload(self) -> dict[str, Any]:
        """Validate the changes and build the update-account request body."""
        payload: dict[str, Any] = {"localId": validators.validate_uid(self.uid, required=True)}
        delete_attributes: list[str] = []

        if self.display_name is None:
            delete_attributes.append("DISPLAY_NAME")
        elif self.display_name is not UNSET:
            payload["displayName"] = validators.validate_display_name(self.display_name)

        if self.photo_url is None:
            delete_attributes.append("PHOTO_URL")
        elif self.photo_url is not UNSET:
            payload["photoUrl"] = validators.validate_photo_url(self.photo_url)

        if delete_attributes:
            payload["deleteAttribute"] = delete_attributes

        if self.phone_number is None:
            payload["deleteProvider"] = ["phone"]
        elif self.phone_number is not UNSET:
            payload["phoneNumber"] = validators.validate_phone_number(self.phone_number)

        if self.custom_claims is not UNSET:
            payload["customAttributes"] = validators.serialize_custom_claims(self.custom_claims)

        for attr, key, check in (
            ("email", "email", validators.validate_email),
            ("password", "password", validators.validate_password),
        ):
            value = getattr(self, attr)
            if value is not UNSET:
                payload[key] = check(value, required=True)

        for attr, key in (("email_verified", "emailVerified"), ("disabled", "disableUser")):
            value = getattr(self, attr)
            if value is not UNSET:
                payload[key] = _validate_bool(value, attr, required=True)

        if self.valid_since is not UNSET:
            if isinstance(self.valid_since, bool) or not isinstance(self.valid_since, int) \
                    or self.valid_since <= 0:
                raise InvalidArgumentError("valid_since must be a positive integer timestamp.")
            payload["validSince"] = self.valid_since

        return payload


@dataclass(frozen=True, slots=True)
class ListUsersOptions:
    """Where a listing starts and how many records each page request asks for."""

    page_size: int | None = None
    page_token: str | None = None


def _validate_bool(value: Any, name: str, *, required: bool = False) -> bool | None:
    if value is None and not required:
        return None
    if not isinstance(value, bool):
        raise InvalidArgumentError(f"{name} must be a boolean.")
    return value
