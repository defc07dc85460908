"""ID token verification using the issuer's rotating public keys."""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

import jwt

from identitykit.config import JWT_ALGORITHM, MAX_UID_LENGTH, RESERVED_CLAIMS, AuthConfig
from identitykit.errors import InvalidArgumentError, TokenVerificationError
from identitykit.public_keys import PublicKeyFetcher

logger = logging.getLogger("identitykit.verifier")

# Claims the identity service sets on every ID token, in addition to the JWT ones.
_STANDARD_ID_TOKEN_CLAIMS = RESERVED_CLAIMS | {"uid", "user_id", "email", "email_verified",
                                               "phone_number", "name", "picture"}


@dataclass(frozen=True, slots=True)
class VerifiedToken:
    """Decoded claims of an ID token that passed signature and claim checks."""

    uid: str
    issuer: str
    audience: str  # the verified project id; the raw "aud" claim stays in claims
    issued_at: int
    expires_at: int
    auth_time: int | None
    tenant_id: str | None
    sign_in_provider: str | None
    claims: Mapping[str, Any]

    @property
    def subject(self) -> str:
        return self.uid

    @property
    def custom_claims(self) -> dict[str, Any]:
        """Claims that are not set by the identity service itself."""
        return {k: v for k, v in self.claims.items() if k not in _STANDARD_ID_TOKEN_CLAIMS}


class IdTokenVerifier:
    """Verifies ID tokens issued for a single project.

    Checks: structure, algorithm, kid, signature, expiry, issued-at, issuer,
    audience and subject. On unknown kid, triggers a key refresh (key rotation).

    Args:
        key_fetcher: Source of the issuer's public keys.
        config: identitykit configuration (project id, clock skew).
    """

    def __init__(self, key_fetcher: PublicKeyFetcher, config: AuthConfig) -> None:
        self._fetcher = key_fetcher
        self._project_id = config.project_id
        self._issuer = config.id_token_issuer
        self._leeway = config.clock_skew_seconds

    async def verify(self, token: str, *, cancel: asyncio.Event | None = None) -> VerifiedToken:
        """Verify an ID token and return its decoded claims.

        Raises:
            InvalidArgumentError: If the token is empty or structurally malformed.
            TokenVerificationError: If any signature or claim check fails.
            RemoteServiceError: If the public keys cannot be fetched.
        """
        if not isinstance(token, str) or not token:
            raise InvalidArgumentError("ID token must be a non-empty string")
        if token.count(".") != 2:
            raise InvalidArgumentError("Malformed ID token: expected three segments")
        try:
            header = jwt.get_unverified_header(token)
            # Payload must decode locally before any key is fetched.
            jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            raise InvalidArgumentError(f"Malformed ID token: {e}") from e

        if header.get("alg") != JWT_ALGORITHM:
            raise TokenVerificationError(
                f"ID token has incorrect algorithm {header.get('alg')!r}, "
                f"expected {JWT_ALGORITHM!r}",
                "invalid_token",
            )
        kid = header.get("kid")
        if not kid:
            raise TokenVerificationError(
                "ID token has no 'kid' header. A custom token may have been passed "
                "instead of an ID token.",
                "invalid_token",
            )

        public_key = await self._fetcher.get_key(kid, cancel=cancel)
        if public_key is None:
            raise TokenVerificationError(
                f"ID token has 'kid' {kid!r} that matches none of the issuer's public keys",
                "invalid_signature",
            )

        payload = self._decode(token, public_key)

        sub = payload["sub"]
        if not isinstance(sub, str) or not sub or len(sub) > MAX_UID_LENGTH:
            raise TokenVerificationError(
                "ID token has an invalid subject ('sub') claim", "invalid_token",
            )

        firebase = payload.get("firebase") if isinstance(payload.get("firebase"), dict) else {}
        payload = {**payload, "uid": sub}
        return VerifiedToken(
            uid=sub,
            issuer=payload["iss"],
            audience=self._project_id,
            issued_at=payload["iat"],
            expires_at=payload["exp"],
            auth_time=payload.get("auth_time"),
            tenant_id=firebase.get("tenant"),
            sign_in_provider=firebase.get("sign_in_provider"),
            claims=MappingProxyType(payload),
        )

    def _decode(self, token: str, public_key: Any) -> dict[str, Any]:
        try:
            return jwt.decode(
                token,
                public_key,
                algorithms=[JWT_ALGORITHM],
                audience=self._project_id,
                issuer=self._issuer,
                leeway=self._leeway,
                options={"require": ["exp", "iat", "aud", "iss", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenVerificationError("ID token has expired", "token_expired") from e
        except jwt.ImmatureSignatureError as e:
            raise TokenVerificationError(
                "ID token is not yet valid (issued in the future)", "token_not_yet_valid",
            ) from e
        except jwt.InvalidIssuerError as e:
            raise TokenVerificationError(
                f"ID token has incorrect issuer, expected {self._issuer!r}", "issuer_mismatch",
            ) from e
        except jwt.InvalidAudienceError as e:
            raise TokenVerificationError(
                f"ID token has incorrect audience, expected {self._project_id!r}",
                "audience_mismatch",
            ) from e
        except jwt.InvalidSignatureError as e:
            raise TokenVerificationError(
                "ID token signature could not be verified", "invalid_signature",
            ) from e
        except jwt.InvalidTokenError as e:
            raise TokenVerificationError(f"Invalid ID token: {e}", "invalid_token") from e
