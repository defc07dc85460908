"""identitykit — Server-side custom tokens, ID token verification and user management."""

__version__ = "0.1.0"

from identitykit.auth import IdentityAuth
from identitykit.config import ServiceAccount
from identitykit.errors import (
    AuthError,
    InvalidArgumentError,
    OperationCancelledError,
    RemoteServiceError,
    SigningError,
    TokenVerificationError,
    UserNotFoundError,
)
from identitykit.identifiers import (
    EmailIdentifier,
    PhoneIdentifier,
    ProviderIdentifier,
    UidIdentifier,
    UserIdentifier,
)
from identitykit.models import (
    UNSET,
    CreateUserRequest,
    ExportedUserRecord,
    ListUsersOptions,
    ListUsersPage,
    UpdateUserRequest,
    UserInfo,
    UserMetadata,
    UserRecord,
)
from identitykit.results import DeleteUsersResult, ErrorInfo, GetUsersResult
from identitykit.verifier import VerifiedToken

__all__ = [
    "AuthError",
    "CreateUserRequest",
    "DeleteUsersResult",
    "EmailIdentifier",
    "ErrorInfo",
    "ExportedUserRecord",
    "GetUsersResult",
    "IdentityAuth",
    "InvalidArgumentError",
    "ListUsersOptions",
    "ListUsersPage",
    "OperationCancelledError",
    "PhoneIdentifier",
    "ProviderIdentifier",
    "RemoteServiceError",
    "ServiceAccount",
    "SigningError",
    "TokenVerificationError",
    "UNSET",
    "UidIdentifier",
    "UpdateUserRequest",
    "UserIdentifier",
    "UserInfo",
    "UserMetadata",
    "UserNotFoundError",
    "UserRecord",
    "VerifiedToken",
]
