"""FastAPI dependencies that authenticate requests with identity-service ID tokens."""

from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import Depends, HTTPException, Request

from identitykit.errors import InvalidArgumentError, TokenVerificationError, UserNotFoundError
from identitykit.verifier import VerifiedToken

VerifyFn = Callable[..., Awaitable[VerifiedToken]]


def id_token_from_request(request: Request, cookie_name: str | None = None) -> str | None:
    """Return the ID token carried by ``request``, or None.

    An ``Authorization: Bearer`` header wins over the ``cookie_name`` cookie.
    The scheme is matched case-insensitively.
    """
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    if cookie_name:
        return request.cookies.get(cookie_name) or None
    return None


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"error": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_current_user_dep(
    verify: VerifyFn, *, cookie_name: str | None = None, check_revoked: bool = False,
):
    """Create a dependency that resolves to the caller's ``VerifiedToken``.

    ``verify`` is called as ``verify(id_token, check_revoked=...)``, normally
    ``IdentityAuth.verify_id_token``. A missing, malformed, invalid or revoked
    token becomes a 401 whose detail carries the error code.
    """

    async def current_user(request: Request) -> VerifiedToken:
        id_token = id_token_from_request(request, cookie_name)
        if id_token is None:
            raise _unauthorized("token_missing", "No ID token provided")
        try:
            return await verify(id_token, check_revoked=check_revoked)
        except (TokenVerificationError, InvalidArgumentError) as e:
            raise _unauthorized(e.code, e.message) from e
        except UserNotFoundError as e:
            # Account deleted after the token was issued.
            raise _unauthorized(e.code, e.message) from e

    return current_user


def create_require_claim_dep(current_user_dep, claim: str, value: Any = True):
    """Create a dependency that also requires ``claims[claim] == value`` (403 otherwise)."""

    async def check_claim(user: VerifiedToken = Depends(current_user_dep)) -> VerifiedToken:
        if user.claims.get(claim) != value:
            raise HTTPException(
                status_code=403,
                detail={"error": "insufficient_claims", "message": f"Requires claim {claim!r}"},
            )
        return user

    return check_claim
