"""Test fixtures for identitykit tests.

All tests are network-free — they generate RSA keys and certificates, create
JWTs manually, and fake every remote endpoint with httpx MockTransport.
"""

import base64
import json
import time
import uuid
from datetime import UTC, datetime, timedelta

import httpx
import jwt
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from identitykit.config import AuthConfig, ServiceAccount

PROJECT_ID = "test-project"
CLIENT_EMAIL = "signer@test-project.iam.gserviceaccount.com"
IDENTITY_URL = "http://identity.test/v1"
CERTS_URL = "http://certs.test/securetoken"


@pytest.fixture
def rsa_key_pair():
    """Generate a test RSA key pair."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
    return private_pem, public_pem


@pytest.fixture
def test_kid():
    return f"test-key-{uuid.uuid4().hex[:8]}"


@pytest.fixture
def service_account(rsa_key_pair):
    private_pem, _ = rsa_key_pair
    return ServiceAccount(client_email=CLIENT_EMAIL, private_key=private_pem)


@pytest.fixture
def config():
    return AuthConfig(
        project_id=PROJECT_ID,
        identity_toolkit_url=IDENTITY_URL,
        id_token_certs_url=CERTS_URL,
    )


@pytest.fixture
def cert_map(rsa_key_pair, test_kid):
    """A {kid: PEM certificate} map, as served by the ID token certificate endpoint."""
    private_pem, _ = rsa_key_pair
    private_key = serialization.load_pem_private_key(private_pem.encode("utf-8"), password=None)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "securetoken.test")])
    now = datetime.now(UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=1))
        .sign(private_key, hashes.SHA256())
    )
    return {test_kid: cert.public_bytes(serialization.Encoding.PEM).decode("utf-8")}


@pytest.fixture
def jwks_response(rsa_key_pair, test_kid):
    """A JWKS response body with one key."""
    from cryptography.hazmat.primitives.serialization import load_pem_public_key

    _, public_pem = rsa_key_pair
    public_numbers = load_pem_public_key(public_pem.encode("utf-8")).public_numbers()

    def _int_to_b64url(value: int) -> str:
        byte_length = (value.bit_length() + 7) // 8
        value_bytes = value.to_bytes(byte_length, byteorder="big")
        return base64.urlsafe_b64encode(value_bytes).rstrip(b"=").decode("ascii")

    return {"keys": [{
        "kty": "RSA",
        "kid": test_kid,
        "use": "sig",
        "alg": "RS256",
        "n": _int_to_b64url(public_numbers.n),
        "e": _int_to_b64url(public_numbers.e),
    }]}


def create_id_token(
    private_key_pem: str,
    kid: str | None,
    *,
    uid: str = "user-1",
    project_id: str = PROJECT_ID,
    issuer: str | None = None,
    audience: str | list[str] | None = None,
    issued_at: int | None = None,
    expires_in: int = 3600,
    extra: dict | None = None,
) -> str:
    """Create a test ID token signed with the given private key."""
    now = issued_at if issued_at is not None else int(time.time())
    payload = {
        "iss": issuer or f"https://securetoken.google.com/{project_id}",
        "aud": audience or project_id,
        "sub": uid,
        "iat": now,
        "exp": now + expires_in,
        "auth_time": now,
        "firebase": {"sign_in_provider": "password"},
    }
    payload.update(extra or {})
    headers = {"kid": kid} if kid else None
    return jwt.encode(payload, private_key_pem, algorithm="RS256", headers=headers)


def user_json(uid: str, **fields) -> dict:
    """A remote account object, as returned by the identity service."""
    data = {"localId": uid, "createdAt": "1600000000000", "lastLoginAt": "1600000500000"}
    data.update(fields)
    return data


class FakeIdentityService:
    """In-memory stand-in for the identity service's account endpoints."""

    def __init__(self, users: list[dict] | None = None, *, page_size_cap: int | None = None):
        self.users: dict[str, dict] = {u["localId"]: u for u in users or []}
        self.requests: list[httpx.Request] = []
        self.page_size_cap = page_size_cap

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def _error(self, code: str, status: int = 400) -> httpx.Response:
        return httpx.Response(status, json={"error": {"code": status, "message": code}})

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        action = request.url.path.rsplit("/", 1)[-1]
        body = json.loads(request.content) if request.content else {}

        if action == "accounts":
            uid = body.get("localId") or uuid.uuid4().hex
            if uid in self.users:
                return self._error("DUPLICATE_LOCAL_ID")
            self.users[uid] = user_json(uid, **{k: v for k, v in body.items() if k != "localId"})
            return httpx.Response(200, json={"localId": uid})

        if action == "accounts:lookup":
            found = []
            for user in self.users.values():
                if (
                    user["localId"] in body.get("localId", [])
                    or user.get("email") in body.get("email", [])
                    or user.get("phoneNumber") in body.get("phoneNumber", [])
                    or any(
                        {"providerId": p.get("providerId"), "rawId": p.get("rawId")} in
                        body.get("federatedUserId", [])
                        for p in user.get("providerUserInfo", [])
                    )
                ):
                    found.append(user)
            # No ordering guarantee: return in reverse insertion order.
            found.reverse()
            return httpx.Response(200, json={"users": found} if found else {})

        if action == "accounts:update":
            user = self.users.get(body["localId"])
            if user is None:
                return self._error("USER_NOT_FOUND")
            if "customAttributes" in body:
                user["customAttributes"] = body["customAttributes"]
            if "validSince" in body:
                user["validSince"] = str(body["validSince"])
            if "disableUser" in body:
                user["disabled"] = body["disableUser"]
            for key in ("email", "displayName", "photoUrl", "phoneNumber", "emailVerified"):
                if key in body:
                    user[key] = body[key]
            for attr in body.get("deleteAttribute", []):
                user.pop({"DISPLAY_NAME": "displayName", "PHOTO_URL": "photoUrl"}[attr], None)
            if "phone" in body.get("deleteProvider", []):
                user.pop("phoneNumber", None)
            return httpx.Response(200, json={"localId": body["localId"]})

        if action == "accounts:delete":
            if self.users.pop(body["localId"], None) is None:
                return self._error("USER_NOT_FOUND")
            return httpx.Response(200, json={})

        if action == "accounts:batchDelete":
            for uid in body["localIds"]:
                self.users.pop(uid, None)
            return httpx.Response(200, json={})

        if action == "accounts:batchGet":
            ordered = sorted(self.users)
            size = int(request.url.params["maxResults"])
            if self.page_size_cap:
                size = min(size, self.page_size_cap)
            token = request.url.params.get("nextPageToken")
            start = ordered.index(token) + 1 if token else 0
            chunk = ordered[start:start + size]
            response: dict = {"users": [self.users[uid] for uid in chunk]}
            if start + size < len(ordered):
                response["nextPageToken"] = chunk[-1]
            return httpx.Response(200, json=response)

        return httpx.Response(404, json={"error": {"message": "NOT_FOUND"}})
