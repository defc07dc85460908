"""User identifiers for batch lookups.

The identity service returns batch lookup results in no particular order, so
found/not-found accounting uses :meth:`UserIdentifier.matches` against each
returned record rather than response position.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any

from identitykit import validators
from identitykit.models import UserRecord


class UserIdentifier(abc.ABC):
    """Identifies a user account by one of its unique attributes."""

    @abc.abstractmethod
    def matches(self, record: UserRecord) -> bool:
        """Whether ``record`` is the account this identifier refers to."""

    @abc.abstractmethod
    def add_to_lookup(self, body: dict[str, list[Any]]) -> None:
        """Add this identifier to an accounts:lookup request body."""


@dataclass(frozen=True, slots=True)
class UidIdentifier(UserIdentifier):
    uid: str

    def __post_init__(self) -> None:
        validators.validate_uid(self.uid, required=True)

    def matches(self, record: UserRecord) -> bool:
        return record.uid == self.uid

    def add_to_lookup(self, body: dict[str, list[Any]]) -> None:
        body.setdefault("localId", []).append(self.uid)


@dataclass(frozen=True, slots=True)
class EmailIdentifier(UserIdentifier):
    email: str

    def __post_init__(self) -> None:
        validators.validate_email(self.email, required=True)

    def matches(self, record: UserRecord) -> bool:
        return record.email == self.email

    def add_to_lookup(self, body: dict[str, list[Any]]) -> None:
        body.setdefault("email", []).append(self.email)


@dataclass(frozen=True, slots=True)
class PhoneIdentifier(UserIdentifier):
    phone_number: str

    def __post_init__(self) -> None:
        validators.validate_phone_number(self.phone_number, required=True)

    def matches(self, record: UserRecord) -> bool:
        return record.phone_number == self.phone_number

    def add_to_lookup(self, body: dict[str, list[Any]]) -> None:
        body.setdefault("phoneNumber", []).append(self.phone_number)


@dataclass(frozen=True, slots=True)
class ProviderIdentifier(UserIdentifier):
    """Identifies a user by their uid at a federated identity provider."""

    provider_id: str
    provider_uid: str

    def __post_init__(self) -> None:
        validators.validate_provider_id(self.provider_id)
        validators.validate_provider_uid(self.provider_uid)

    def matches(self, record: UserRecord) -> bool:
        return any(
            info.provider_id == self.provider_id and info.uid == self.provider_uid
            for info in record.provider_data
        )

    def add_to_lookup(self, body: dict[str, list[Any]]) -> None:
        body.setdefault("federatedUserId", []).append(
            {"providerId": self.provider_id, "rawId": self.provider_uid},
        )


def is_user_found(identifier: UserIdentifier, records: tuple[UserRecord, ...]) -> bool:
    return any(identifier.matches(record) for record in records)
