"""Signer discovery — resolves a credential that can produce RS256 signatures.

Resolution order (first available source wins):
1. The private key of a locally supplied service-account credential.
2. The IAM signBlob API, when a service-account id is configured.
3. The platform metadata server, when running in a managed environment.

The resolved signer is cached on the resolver. Failures are not cached, so a
credential that only becomes available later is picked up on the next call.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Protocol, runtime_checkable

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from identitykit.config import JWT_ALGORITHM, AuthConfig, ServiceAccount
from identitykit.errors import RemoteServiceError, SigningError
from identitykit.http import IdentityHttpClient

logger = logging.getLogger("identitykit.signer")


@runtime_checkable
class Signer(Protocol):
    """Anything that can sign bytes on behalf of a service account."""

    algorithm: str

    async def key_id(self, *, cancel: asyncio.Event | None = None) -> str: ...

    async def sign(self, data: bytes, *, cancel: asyncio.Event | None = None) -> bytes: ...


class ServiceAccountSigner:
    """Signs locally with a service account's RSA private key."""

    algorithm = JWT_ALGORITHM

    def __init__(self, service_account: ServiceAccount) -> None:
        try:
            private_key = serialization.load_pem_private_key(
                service_account.private_key.encode("utf-8"), password=None,
            )
        except (ValueError, TypeError) as e:
            raise SigningError(
                "Service account private key could not be loaded", "no_credential_available",
            ) from e
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise SigningError(
                "Service account private key is not an RSA key", "no_credential_available",
            )
        self._client_email = service_account.client_email
        self._private_key = private_key

    async def key_id(self, *, cancel: asyncio.Event | None = None) -> str:
        return self._client_email

    async def sign(self, data: bytes, *, cancel: asyncio.Event | None = None) -> bytes:
        return self._private_key.sign(data, padding.PKCS1v15(), hashes.SHA256())


class IAMSigner:
    """Delegates signing to the IAM credentials signBlob API.

    Args:
        http: Authenticated client for the IAM service.
        iam_url: Base URL of the IAM credentials API.
        service_account_id: Email of the service account that signs.
    """

    algorithm = JWT_ALGORITHM

    def __init__(self, http: IdentityHttpClient, iam_url: str, service_account_id: str) -> None:
        self._http = http
        self._iam_url = iam_url.rstrip("/")
        self._service_account_id = service_account_id

    async def key_id(self, *, cancel: asyncio.Event | None = None) -> str:
        return self._service_account_id

    async def sign(self, data: bytes, *, cancel: asyncio.Event | None = None) -> bytes:
        url = f"{self._iam_url}/projects/-/serviceAccounts/{self._service_account_id}:signBlob"
        try:
            body = await self._http.request_json(
                "POST",
                url,
                json={"payload": base64.b64encode(data).decode("ascii")},
                cancel=cancel,
            )
        except RemoteServiceError as e:
            raise SigningError(f"Failed to sign with IAM: {e.message}", "signing_failed") from e

        signed = body.get("signedBlob")
        if not signed:
            raise SigningError("IAM signBlob response had no signature", "signing_failed")
        return base64.b64decode(signed)


class MetadataServerSigner:
    """Discovers the default service account from the metadata server, then signs via IAM."""

    algorithm = JWT_ALGORITHM

    def __init__(
        self,
        metadata_http: IdentityHttpClient,
        metadata_url: str,
        iam_http: IdentityHttpClient,
        iam_url: str,
    ) -> None:
        self._metadata_http = metadata_http
        self._metadata_url = metadata_url.rstrip("/")
        self._iam_http = iam_http
        self._iam_url = iam_url
        self._delegate: IAMSigner | None = None
        self._lock = asyncio.Lock()

    async def key_id(self, *, cancel: asyncio.Event | None = None) -> str:
        delegate = await self._get_delegate(cancel=cancel)
        return await delegate.key_id()

    async def sign(self, data: bytes, *, cancel: asyncio.Event | None = None) -> bytes:
        delegate = await self._get_delegate(cancel=cancel)
        return await delegate.sign(data, cancel=cancel)

    async def _get_delegate(self, *, cancel: asyncio.Event | None) -> IAMSigner:
        if self._delegate is not None:
            return self._delegate
        async with self._lock:
            if self._delegate is None:
                email = await self.discover_service_account(cancel=cancel)
                self._delegate = IAMSigner(self._iam_http, self._iam_url, email)
                logger.debug("Discovered service account %s from metadata server", email)
        return self._delegate

    async def discover_service_account(self, *, cancel: asyncio.Event | None = None) -> str:
        """Ask the metadata server for the default service account email.

        Raises:
            SigningError: If the metadata server is unreachable or returns no email.
        """
        url = f"{self._metadata_url}/instance/service-accounts/default/email"
        try:
            response = await self._metadata_http.request("GET", url, cancel=cancel)
        except RemoteServiceError as e:
            raise SigningError(
                "Failed to determine service account. Initialize the SDK with service "
                "account credentials or set a service account id, or run on a managed "
                "environment with a metadata server.",
                "no_credential_available",
            ) from e
        email = response.text.strip()
        if not email:
            raise SigningError(
                "Metadata server returned an empty service account", "no_credential_available",
            )
        return email


class SignerResolver:
    """Resolves and caches the signer used for custom tokens.

    Construction never performs I/O; the first :meth:`resolve` call does.
    """

    def __init__(self, config: AuthConfig, http: IdentityHttpClient) -> None:
        self._config = config
        self._http = http
        self._signer: Signer | None = None
        self._lock = asyncio.Lock()

    async def resolve(self, *, cancel: asyncio.Event | None = None) -> Signer:
        """Return the cached signer, discovering one on first use.

        Raises:
            SigningError: With code ``no_credential_available`` if no source works.
        """
        if self._signer is not None:
            return self._signer
        async with self._lock:
            if self._signer is None:
                self._signer = await self._discover(cancel=cancel)
        return self._signer

    async def _discover(self, *, cancel: asyncio.Event | None) -> Signer:
        config = self._config
        iam_http = self._http.with_service("IAM service")

        if config.service_account is not None:
            logger.debug("Using service account private key for signing")
            return ServiceAccountSigner(config.service_account)

        if config.service_account_id:
            logger.debug("Using IAM signing for %s", config.service_account_id)
            return IAMSigner(iam_http, config.iam_url, config.service_account_id)

        metadata_http = self._http.with_service(
            "Metadata server", headers={"Metadata-Flavor": "Google"}, authenticated=False,
        )
        signer = MetadataServerSigner(metadata_http, config.metadata_url, iam_http, config.iam_url)
        await signer.key_id(cancel=cancel)
        return signer
