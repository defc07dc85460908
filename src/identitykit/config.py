"""identitykit configuration — dataclasses for credentials and remote endpoints."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

JWT_ALGORITHM = "RS256"

MAX_UID_LENGTH = 128
MAX_CLAIMS_PAYLOAD_SIZE = 1000
MAX_GET_USERS_IDENTIFIERS = 100
MAX_DELETE_USERS_UIDS = 1000
MAX_LIST_USERS_RESULTS = 1000

CUSTOM_TOKEN_AUDIENCE = (
    "https://identitytoolkit.googleapis.com/google.identity.identitytoolkit.v1.IdentityToolkit"
)
ID_TOKEN_ISSUER_PREFIX = "https://securetoken.google.com/"
ID_TOKEN_CERTS_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)

RESERVED_CLAIMS = frozenset({
    "acr", "amr", "at_hash", "aud", "auth_time", "azp", "cnf", "c_hash",
    "exp", "firebase", "iat", "iss", "jti", "nbf", "nonce", "sub",
})


@dataclass(frozen=True, slots=True)
class ServiceAccount:
    """A service-account credential that carries its own private key."""

    client_email: str
    private_key: str
    private_key_id: str | None = None
    project_id: str | None = None

    @classmethod
    def from_info(cls, info: dict) -> ServiceAccount:
        """Build from a parsed service-account JSON document.

        Raises:
            ValueError: If the document is not a service-account key.
        """
        if info.get("type") != "service_account":
            raise ValueError("Credential is not a service account key")
        try:
            return cls(
                client_email=info["client_email"],
                private_key=info["private_key"],
                private_key_id=info.get("private_key_id"),
                project_id=info.get("project_id"),
            )
        except KeyError as e:
            raise ValueError(f"Service account key is missing field {e.args[0]!r}") from e

    @classmethod
    def from_file(cls, path: str | Path) -> ServiceAccount:
        """Load a service-account JSON key file."""
        with open(path, encoding="utf-8") as fp:
            return cls.from_info(json.load(fp))


@dataclass(frozen=True, slots=True)
class AuthConfig:
    """Internal config built by the IdentityAuth constructor. Not user-facing."""

    project_id: str
    service_account: ServiceAccount | None = None
    service_account_id: str | None = None
    identity_toolkit_url: str = "https://identitytoolkit.googleapis.com/v1"
    iam_url: str = "https://iamcredentials.googleapis.com/v1"
    metadata_url: str = "http://metadata.google.internal/computeMetadata/v1"
    id_token_certs_url: str = ID_TOKEN_CERTS_URL
    custom_token_audience: str = CUSTOM_TOKEN_AUDIENCE
    custom_token_ttl_seconds: int = 3600  # 1 hour
    clock_skew_seconds: int = 5
    public_keys_cache_ttl: float = 3600.0
    http_timeout: float = 10.0

    @property
    def id_token_issuer(self) -> str:
        return f"{ID_TOKEN_ISSUER_PREFIX}{self.project_id}"

    @property
    def project_url(self) -> str:
        return f"{self.identity_toolkit_url.rstrip('/')}/projects/{self.project_id}"
