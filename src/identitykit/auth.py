"""IdentityAuth — main entry point for identitykit.

One object configured up front; its components are built on first use and
cached for the lifetime of the instance.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import httpx

from identitykit.config import AuthConfig, ServiceAccount
from identitykit.errors import TokenVerificationError
from identitykit.http import Credential, IdentityHttpClient
from identitykit.identifiers import UserIdentifier
from identitykit.models import (
    CreateUserRequest,
    ListUsersOptions,
    UpdateUserRequest,
    UserRecord,
)
from identitykit.public_keys import PublicKeyFetcher
from identitykit.results import DeleteUsersResult, GetUsersResult
from identitykit.signer import SignerResolver
from identitykit.tokens import CustomTokenFactory
from identitykit.user_manager import ListUsersIterable, UserManager
from identitykit.verifier import IdTokenVerifier, VerifiedToken


class IdentityAuth:
    """Server-side identity management for one project.

    Mints custom tokens, verifies ID tokens and manages user accounts held by
    the remote identity service.

    Args:
        project_id: The project whose users and tokens are managed.
        service_account: Service-account credential with a private key (optional).
            Used to sign custom tokens locally.
        service_account_id: Service-account email to sign with via IAM when no
            private key is available (optional).
        credential: Bearer access token for the identity and IAM services, or an
            async callable returning one (optional).
        clock_skew_seconds: Allowed clock skew when checking ID token times (default 5).
        custom_token_ttl: Custom token lifetime in seconds (default 3600 = 1 hour).
        http_timeout: HTTP request timeout in seconds (default 10).
        identity_toolkit_url: Base URL of the identity service (override for emulators).
        cookie_name: Cookie that FastAPI dependencies read the ID token from when no
            Bearer header is sent (optional).
    """

    def __init__(
        self,
        project_id: str,
        *,
        service_account: ServiceAccount | None = None,
        service_account_id: str | None = None,
        credential: Credential = None,
        clock_skew_seconds: int = 5,
        custom_token_ttl: int = 3600,
        http_timeout: float = 10.0,
        identity_toolkit_url: str = "https://identitytoolkit.googleapis.com/v1",
        cookie_name: str | None = None,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not isinstance(project_id, str) or not project_id:
            raise ValueError("project_id must be a non-empty string")
        self._config = AuthConfig(
            project_id=project_id,
            service_account=service_account,
            service_account_id=service_account_id,
            identity_toolkit_url=identity_toolkit_url,
            clock_skew_seconds=clock_skew_seconds,
            custom_token_ttl_seconds=custom_token_ttl,
            http_timeout=http_timeout,
        )
        self._http = IdentityHttpClient(
            credential=credential, http_timeout=http_timeout, _transport=_transport,
        )
        self._token_factory: CustomTokenFactory | None = None
        self._verifier: IdTokenVerifier | None = None
        self._user_manager: UserManager | None = None
        self._cookie_name = cookie_name
        self._current_user_dep = None

    @property
    def config(self) -> AuthConfig:
        return self._config

    @property
    def token_factory(self) -> CustomTokenFactory:
        if self._token_factory is None:
            resolver = SignerResolver(self._config, self._http)
            self._token_factory = CustomTokenFactory(resolver, self._config)
        return self._token_factory

    @property
    def id_token_verifier(self) -> IdTokenVerifier:
        if self._verifier is None:
            fetcher = PublicKeyFetcher(
                self._config.id_token_certs_url,
                self._http.with_service("Public key endpoint", authenticated=False),
                default_ttl=self._config.public_keys_cache_ttl,
            )
            self._verifier = IdTokenVerifier(fetcher, self._config)
        return self._verifier

    @property
    def user_manager(self) -> UserManager:
        if self._user_manager is None:
            self._user_manager = UserManager(self._http, self._config)
        return self._user_manager

    # -- tokens ----------------------------------------------------------------

    async def create_custom_token(
        self,
        uid: str,
        developer_claims: dict[str, Any] | None = None,
        *,
        tenant_id: str | None = None,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """Create a custom token that a client can exchange for an ID token.

        Raises:
            InvalidArgumentError: If the uid or claims are invalid.
            SigningError: If no signer can be discovered or signing fails.
        """
        return await self.token_factory.create_custom_token(
            uid, developer_claims, tenant_id=tenant_id, cancel=cancel,
        )

    async def verify_id_token(
        self,
        id_token: str,
        *,
        check_revoked: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> VerifiedToken:
        """Verify an ID token and return its decoded claims.

        With ``check_revoked=True`` the user's account is also loaded, and the token
        is rejected if the account is disabled or its tokens were revoked after the
        token was issued.

        Raises:
            InvalidArgumentError: If the token is empty or malformed.
            TokenVerificationError: If verification fails.
        """
        token = await self.id_token_verifier.verify(id_token, cancel=cancel)
        if check_revoked:
            await self._check_revoked(token, cancel=cancel)
        return token

    async def _check_revoked(
        self, token: VerifiedToken, *, cancel: asyncio.Event | None,
    ) -> None:
        user = await self.user_manager.get_user(token.uid, cancel=cancel)
        if user.disabled:
            raise TokenVerificationError("The user record is disabled", "user_disabled")
        valid_after = user.tokens_valid_after_timestamp
        auth_time = token.auth_time if token.auth_time is not None else token.issued_at
        if valid_after is not None and auth_time * 1000 < valid_after:
            raise TokenVerificationError("The ID token has been revoked", "id_token_revoked")

    @property
    def current_user(self):
        """FastAPI dependency: get the verified ID token of the caller.

        Usage:
            auth = IdentityAuth("my-project")

            @app.get("/profile")
            async def profile(user=Depends(auth.current_user)):
                print(user.uid)
        """
        if self._current_user_dep is None:
            from identitykit.integrations.fastapi import create_current_user_dep

            self._current_user_dep = create_current_user_dep(
                self.verify_id_token, cookie_name=self._cookie_name,
            )
        return self._current_user_dep

    def require_claim(self, claim: str, value: Any = True, *, check_revoked: bool = False):
        """FastAPI dependency factory: require a custom claim on the ID token.

        With ``check_revoked=True`` the account is also checked as in
        ``verify_id_token``.

        Usage:
            @app.get("/admin")
            async def admin(user=Depends(auth.require_claim("admin"))):
                ...
        """
        from identitykit.integrations.fastapi import (
            create_current_user_dep,
            create_require_claim_dep,
        )

        if check_revoked:
            current_user = create_current_user_dep(
                self.verify_id_token, cookie_name=self._cookie_name, check_revoked=True,
            )
        else:
            current_user = self.current_user
        return create_require_claim_dep(current_user, claim, value)

    # -- users -----------------------------------------------------------------

    async def create_user(
        self, request: CreateUserRequest, *, cancel: asyncio.Event | None = None,
    ) -> str:
        return await self.user_manager.create_user(request, cancel=cancel)

    async def get_user(self, uid: str, *, cancel: asyncio.Event | None = None) -> UserRecord:
        return await self.user_manager.get_user(uid, cancel=cancel)

    async def get_user_by_email(
        self, email: str, *, cancel: asyncio.Event | None = None,
    ) -> UserRecord:
        return await self.user_manager.get_user_by_email(email, cancel=cancel)

    async def get_user_by_phone_number(
        self, phone_number: str, *, cancel: asyncio.Event | None = None,
    ) -> UserRecord:
        return await self.user_manager.get_user_by_phone_number(phone_number, cancel=cancel)

    async def get_user_by_provider_uid(
        self, provider_id: str, uid: str, *, cancel: asyncio.Event | None = None,
    ) -> UserRecord:
        return await self.user_manager.get_user_by_provider_uid(provider_id, uid, cancel=cancel)

    async def get_users(
        self,
        identifiers: Sequence[UserIdentifier],
        *,
        cancel: asyncio.Event | None = None,
    ) -> GetUsersResult:
        return await self.user_manager.get_users(identifiers, cancel=cancel)

    async def update_user(
        self, request: UpdateUserRequest, *, cancel: asyncio.Event | None = None,
    ) -> str:
        return await self.user_manager.update_user(request, cancel=cancel)

    async def set_custom_user_claims(
        self,
        uid: str,
        claims: dict[str, Any] | None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> None:
        await self.user_manager.set_custom_user_claims(uid, claims, cancel=cancel)

    async def revoke_refresh_tokens(
        self, uid: str, *, cancel: asyncio.Event | None = None,
    ) -> None:
        await self.user_manager.revoke_refresh_tokens(uid, cancel=cancel)

    async def delete_user(self, uid: str, *, cancel: asyncio.Event | None = None) -> None:
        await self.user_manager.delete_user(uid, cancel=cancel)

    async def delete_users(
        self, uids: Sequence[str], *, cancel: asyncio.Event | None = None,
    ) -> DeleteUsersResult:
        return await self.user_manager.delete_users(uids, cancel=cancel)

    def list_users(self, options: ListUsersOptions | None = None) -> ListUsersIterable:
        return self.user_manager.list_users(options)
