"""Custom token creation — signed JWTs a client exchanges for an identity session."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Mapping
from typing import Any

from jwt.utils import base64url_encode

from identitykit import validators
from identitykit.config import AuthConfig
from identitykit.errors import InvalidArgumentError, OperationCancelledError, SigningError
from identitykit.signer import SignerResolver

logger = logging.getLogger("identitykit.tokens")


def _encode_segment(value: Mapping[str, Any]) -> bytes:
    return base64url_encode(json.dumps(value, separators=(",", ":")).encode("utf-8"))


class CustomTokenFactory:
    """Builds and signs custom tokens.

    Args:
        resolver: Resolves the signer whose identity becomes ``iss``/``sub``.
        config: identitykit configuration (audience and token lifetime).
        clock: Returns the current Unix time in seconds (tests override this).
    """

    def __init__(
        self,
        resolver: SignerResolver,
        config: AuthConfig,
        *,
        clock=time.time,
    ) -> None:
        self._resolver = resolver
        self._config = config
        self._clock = clock

    async def create_custom_token(
        self,
        uid: str,
        developer_claims: Mapping[str, Any] | None = None,
        *,
        tenant_id: str | None = None,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """Create a signed custom token for ``uid``.

        Args:
            uid: The user id to embed; 1-128 characters.
            developer_claims: Extra claims made available to security rules.
                Must be JSON-serializable and must not use reserved JWT claim names.
            tenant_id: Optional tenant the user belongs to.
            cancel: Optional event that aborts remote signing when set.

        Returns:
            The compact ``header.payload.signature`` token string.

        Raises:
            InvalidArgumentError: If the uid or claims are invalid.
            SigningError: If no signer is available or signing fails.
        """
        validators.validate_uid(uid, required=True)
        claims = None
        if developer_claims:
            claims = validators.validate_developer_claims(developer_claims)
        if tenant_id is not None and (not isinstance(tenant_id, str) or not tenant_id):
            raise InvalidArgumentError("tenant_id must be a non-empty string")

        signer = await self._resolve_signer(cancel)
        issuer = await signer.key_id(cancel=cancel)

        now = int(self._clock())
        header = {"alg": signer.algorithm, "typ": "JWT"}
        payload: dict[str, Any] = {
            "iss": issuer,
            "sub": issuer,
            "aud": self._config.custom_token_audience,
            "iat": now,
            "exp": now + self._config.custom_token_ttl_seconds,
            "uid": uid,
        }
        if tenant_id is not None:
            payload["tenant_id"] = tenant_id
        if claims:
            payload["claims"] = claims

        signing_input = _encode_segment(header) + b"." + _encode_segment(payload)
        try:
            signature = await signer.sign(signing_input, cancel=cancel)
        except (SigningError, OperationCancelledError):
            raise
        except Exception as e:
            raise SigningError(f"Failed to sign custom token: {e}", "signing_failed") from e

        return (signing_input + b"." + base64url_encode(signature)).decode("ascii")

    async def _resolve_signer(self, cancel: asyncio.Event | None):
        try:
            return await self._resolver.resolve(cancel=cancel)
        except SigningError as e:
            logger.warning("No signer available for custom tokens: %s", e.message)
            raise SigningError(
                f"Cannot sign custom token: {e.message}", "signing_failed", cause_code=e.code,
            ) from e
