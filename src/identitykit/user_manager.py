"""User management — account CRUD, batch operations and listing.

Framework-agnostic client of the remote identity service. Every method validates
its arguments locally before issuing exactly one remote call (listing issues one
call per page). No method retries; remote errors propagate to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Sequence
from typing import Any

from pydantic import ValidationError

from identitykit import validators
from identitykit.config import (
    MAX_DELETE_USERS_UIDS,
    MAX_GET_USERS_IDENTIFIERS,
    MAX_LIST_USERS_RESULTS,
    AuthConfig,
)
from identitykit.errors import InvalidArgumentError, RemoteServiceError, UserNotFoundError
from identitykit.http import IdentityHttpClient
from identitykit.identifiers import (
    EmailIdentifier,
    PhoneIdentifier,
    ProviderIdentifier,
    UidIdentifier,
    UserIdentifier,
)
from identitykit.models import (
    CreateUserRequest,
    ExportedUserRecord,
    ListUsersOptions,
    ListUsersPage,
    UpdateUserRequest,
    UserRecord,
)
from identitykit.results import DeleteUsersResult, GetUsersResult

logger = logging.getLogger("identitykit.user_manager")


def _parse_record(data: Any, model: type[UserRecord] = UserRecord) -> UserRecord:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise RemoteServiceError(
            "Identity service returned a malformed user record", "unknown",
        ) from e


class UserManager:
    """Issues account operations against the identity service for one project.

    Args:
        http: Authenticated client for the identity service.
        config: identitykit configuration (project id and service URL).
    """

    def __init__(self, http: IdentityHttpClient, config: AuthConfig) -> None:
        self._http = http
        self._base_url = config.project_url

    def _url(self, action: str) -> str:
        return f"{self._base_url}/{action}"

    # -- create / update -----------------------------------------------------

    async def create_user(
        self, request: CreateUserRequest, *, cancel: asyncio.Event | None = None,
    ) -> str:
        """Create a user account and return its uid.

        Raises:
            InvalidArgumentError: If any attribute is malformed.
            RemoteServiceError: E.g. ``uid_already_exists`` or ``email_already_exists``.
        """
        payload = request.to_payload()
        body = await self._http.request_json(
            "POST", self._url("accounts"), json=payload, cancel=cancel,
        )
        uid = body.get("localId")
        if not uid:
            raise RemoteServiceError("Failed to create new user", "internal_error")
        logger.debug("Created user %s", uid)
        return uid

    async def update_user(
        self, request: UpdateUserRequest, *, cancel: asyncio.Event | None = None,
    ) -> str:
        """Apply ``request`` to an existing account and return its uid.

        Raises:
            InvalidArgumentError: If the uid or any changed attribute is malformed.
            UserNotFoundError: If no account has the given uid.
        """
        payload = request.to_payload()
        body = await self._http.request_json(
            "POST", self._url("accounts:update"), json=payload, cancel=cancel,
        )
        uid = body.get("localId")
        if not uid:
            raise RemoteServiceError(
                f"Failed to update user: {request.uid}", "internal_error",
            )
        return uid

    async def set_custom_user_claims(
        self,
        uid: str,
        claims: dict[str, Any] | None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> None:
        """Replace a user's custom claims. ``None`` removes all existing claims."""
        await self.update_user(UpdateUserRequest(uid=uid, custom_claims=claims), cancel=cancel)

    async def revoke_refresh_tokens(
        self, uid: str, *, cancel: asyncio.Event | None = None,
    ) -> None:
        """Invalidate every token issued to ``uid`` before now."""
        await self.update_user(
            UpdateUserRequest(uid=uid, valid_since=int(time.time())), cancel=cancel,
        )

    # -- lookups ---------------------------------------------------------------

    async def get_user(self, uid: str, *, cancel: asyncio.Event | None = None) -> UserRecord:
        return await self._get_one(UidIdentifier(uid), cancel=cancel)

    async def get_user_by_email(
        self, email: str, *, cancel: asyncio.Event | None = None,
    ) -> UserRecord:
        return await self._get_one(EmailIdentifier(email), cancel=cancel)

    async def get_user_by_phone_number(
        self, phone_number: str, *, cancel: asyncio.Event | None = None,
    ) -> UserRecord:
        return await self._get_one(PhoneIdentifier(phone_number), cancel=cancel)

    async def get_user_by_provider_uid(
        self, provider_id: str, uid: str, *, cancel: asyncio.Event | None = None,
    ) -> UserRecord:
        return await self._get_one(ProviderIdentifier(provider_id, uid), cancel=cancel)

    async def _get_one(
        self, identifier: UserIdentifier, *, cancel: asyncio.Event | None,
    ) -> UserRecord:
        records = await self._lookup([identifier], cancel=cancel)
        if not records:
            raise UserNotFoundError(
                f"No user record found for the provided identifier: {identifier}",
            )
        return records[0]

    async def get_users(
        self,
        identifiers: Sequence[UserIdentifier],
        *,
        cancel: asyncio.Event | None = None,
    ) -> GetUsersResult:
        """Look up at most 100 users in a single remote call.

        The service returns records in no particular order; each identifier is
        matched against the returned records by its own attribute.

        Raises:
            InvalidArgumentError: If more than 100 identifiers are given or one is not
                a UserIdentifier.
        """
        identifiers = list(identifiers)
        if len(identifiers) > MAX_GET_USERS_IDENTIFIERS:
            raise InvalidArgumentError(
                f"`identifiers` parameter must have <= {MAX_GET_USERS_IDENTIFIERS} entries.",
            )
        for identifier in identifiers:
            if not isinstance(identifier, UserIdentifier):
                raise InvalidArgumentError(f"Invalid user identifier: {identifier!r}")
        if not identifiers:
            return GetUsersResult(users=(), found=(), not_found=())

        records = await self._lookup(identifiers, cancel=cancel)
        return GetUsersResult.partition(identifiers, records)

    async def _lookup(
        self,
        identifiers: Sequence[UserIdentifier],
        *,
        cancel: asyncio.Event | None,
    ) -> tuple[UserRecord, ...]:
        payload: dict[str, list[Any]] = {}
        for identifier in identifiers:
            identifier.add_to_lookup(payload)
        body = await self._http.request_json(
            "POST", self._url("accounts:lookup"), json=payload, cancel=cancel,
        )
        return tuple(_parse_record(user) for user in body.get("users") or ())

    # -- delete ----------------------------------------------------------------

    async def delete_user(self, uid: str, *, cancel: asyncio.Event | None = None) -> None:
        """Delete a single user.

        Raises:
            UserNotFoundError: If no account has the given uid.
        """
        validators.validate_uid(uid, required=True)
        await self._http.request_json(
            "POST", self._url("accounts:delete"), json={"localId": uid}, cancel=cancel,
        )
        logger.debug("Deleted user %s", uid)

    async def delete_users(
        self, uids: Sequence[str], *, cancel: asyncio.Event | None = None,
    ) -> DeleteUsersResult:
        """Delete at most 1000 users in a single remote call.

        Deleting a user that does not exist counts as a success. Per-user failures
        are reported in the result; they never fail the whole call. The service
        rate-limits this call; callers deleting more than 1000 users should space
        out their batches.

        Raises:
            InvalidArgumentError: If more than 1000 uids are given or one is invalid.
        """
        uids = list(uids)
        if len(uids) > MAX_DELETE_USERS_UIDS:
            raise InvalidArgumentError(
                f"`uids` parameter must have <= {MAX_DELETE_USERS_UIDS} entries.",
            )
        for uid in uids:
            validators.validate_uid(uid, required=True)
        if not uids:
            return DeleteUsersResult(success_count=0, failure_count=0, errors=())

        body = await self._http.request_json(
            "POST",
            self._url("accounts:batchDelete"),
            json={"localIds": uids, "force": True},
            cancel=cancel,
        )
        result = DeleteUsersResult.from_response(uids, body)
        if result.failure_count:
            logger.debug(
                "Batch delete: %d deleted, %d failed", result.success_count, result.failure_count,
            )
        return result

    # -- listing ---------------------------------------------------------------

    def list_users(self, options: ListUsersOptions | None = None) -> ListUsersIterable:
        """Return a lazy, restartable listing of all users.

        Raises:
            InvalidArgumentError: If the page size or page token is malformed.
        """
        options = options or ListUsersOptions()
        page_size = MAX_LIST_USERS_RESULTS
        if options.page_size is not None:
            page_size = validators.validate_max_results(options.page_size, MAX_LIST_USERS_RESULTS)
        page_token = validators.validate_page_token(options.page_token)
        return ListUsersIterable(self, page_size=page_size, page_token=page_token)

    async def fetch_page(
        self,
        *,
        page_size: int,
        page_token: str | None,
        cancel: asyncio.Event | None = None,
    ) -> ListUsersPage:
        """Fetch one page of users starting at ``page_token``."""
        params: dict[str, Any] = {"maxResults": page_size}
        if page_token:
            params["nextPageToken"] = page_token
        body = await self._http.request_json(
            "GET", self._url("accounts:batchGet"), params=params, cancel=cancel,
        )
        users = tuple(_parse_record(u, ExportedUserRecord) for u in body.get("users") or ())
        return ListUsersPage(users=users, next_page_token=body.get("nextPageToken") or None)


class ListUsersIterable:
    """Lazy listing of user records, one remote page at a time.

    ``async for user in listing`` yields records, fetching the next page only
    when the current one is used up. ``listing.pages()`` yields whole pages and
    exposes ``next_page_token`` for resuming later. Each iteration starts over
    from the page token the listing was created with.
    """

    def __init__(
        self,
        manager: UserManager,
        *,
        page_size: int,
        page_token: str | None,
        cancel: asyncio.Event | None = None,
    ) -> None:
        self._manager = manager
        self._page_size = page_size
        self._page_token = page_token
        self._cancel = cancel

    def with_cancel(self, cancel: asyncio.Event) -> ListUsersIterable:
        """Return the same listing, aborting page requests when ``cancel`` fires."""
        return ListUsersIterable(
            self._manager,
            page_size=self._page_size,
            page_token=self._page_token,
            cancel=cancel,
        )

    async def pages(self) -> AsyncIterator[ListUsersPage]:
        token = self._page_token
        while True:
            page = await self._manager.fetch_page(
                page_size=self._page_size, page_token=token, cancel=self._cancel,
            )
            yield page
            if page.next_page_token is None:
                return
            token = page.next_page_token

    async def first_page(self) -> ListUsersPage:
        """Fetch only the first page of this listing."""
        return await self._manager.fetch_page(
            page_size=self._page_size, page_token=self._page_token, cancel=self._cancel,
        )

    def __aiter__(self) -> AsyncIterator[ExportedUserRecord]:
        return self._iter_users()

    async def _iter_users(self) -> AsyncIterator[ExportedUserRecord]:
        async for page in self.pages():
            for user in page.users:
                yield user
