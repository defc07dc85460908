"""Result types for batch user operations."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from identitykit.identifiers import UserIdentifier, is_user_found
from identitykit.models import UserRecord


@dataclass(frozen=True, slots=True)
class GetUsersResult:
    """Outcome of a batch lookup.

    Every requested identifier lands in exactly one of ``found`` or ``not_found``.
    ``users`` holds the distinct records returned; two identifiers naming the
    same account share one record.
    """

    users: tuple[UserRecord, ...]
    found: tuple[UserIdentifier, ...]
    not_found: tuple[UserIdentifier, ...]

    @classmethod
    def partition(
        cls,
        identifiers: Sequence[UserIdentifier],
        records: Sequence[UserRecord],
    ) -> GetUsersResult:
        """Split ``identifiers`` by whether any returned record matches them."""
        users = tuple(records)
        found: list[UserIdentifier] = []
        not_found: list[UserIdentifier] = []
        for identifier in identifiers:
            (found if is_user_found(identifier, users) else not_found).append(identifier)
        return cls(users=users, found=tuple(found), not_found=tuple(not_found))


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    """Why a single item in a batch operation failed.

    ``index`` is the position of the item in the request, or None when the
    service did not report one.
    """

    index: int | None
    uid: str | None
    reason: str


@dataclass(frozen=True, slots=True)
class DeleteUsersResult:
    """Outcome of a batch delete. Deleting a missing user counts as a success."""

    success_count: int
    failure_count: int
    errors: tuple[ErrorInfo, ...]

    @classmethod
    def from_response(cls, uids: Sequence[str], response: dict) -> DeleteUsersResult:
        """Build the result from an accounts:batchDelete response body."""
        errors = tuple(_error_info(uids, item) for item in response.get("errors") or ())
        return cls(
            success_count=len(uids) - len(errors),
            failure_count=len(errors),
            errors=errors,
        )


def _error_info(uids: Sequence[str], item: dict) -> ErrorInfo:
    index = item.get("index")
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(uids):
        index = None
    return ErrorInfo(
        index=index,
        uid=item.get("localId") or (uids[index] if index is not None else None),
        reason=item.get("message") or "Unknown error",
    )
