"""Tests for signer discovery — service account, IAM and metadata server."""

import base64
import json

import httpx
import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from identitykit.config import AuthConfig
from identitykit.errors import SigningError
from identitykit.http import IdentityHttpClient
from identitykit.signer import (
    IAMSigner,
    MetadataServerSigner,
    ServiceAccountSigner,
    SignerResolver,
)
from conftest import CLIENT_EMAIL, PROJECT_ID

pytestmark = pytest.mark.asyncio

METADATA_EMAIL = "default@test-project.iam.gserviceaccount.com"


def _no_network(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request to {request.url}")


def _iam_and_metadata_transport(captured: list, *, metadata_up: dict | None = None):
    """MockTransport serving the metadata email endpoint and IAM signBlob."""
    state = metadata_up if metadata_up is not None else {"up": True}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        if request.url.host == "metadata.google.internal":
            if not state["up"]:
                raise httpx.ConnectError("metadata server unreachable")
            return httpx.Response(200, text=METADATA_EMAIL)
        if request.url.path.endswith(":signBlob"):
            payload = base64.b64decode(json.loads(request.content)["payload"])
            return httpx.Response(200, json={
                "keyId": "k1",
                "signedBlob": base64.b64encode(b"signed:" + payload).decode("ascii"),
            })
        return httpx.Response(404)

    return httpx.MockTransport(handler)


class TestServiceAccountSigner:
    async def test_signature_verifies_with_public_key(self, service_account, rsa_key_pair):
        _, public_pem = rsa_key_pair
        signer = ServiceAccountSigner(service_account)

        signature = await signer.sign(b"payload")

        public_key = serialization.load_pem_public_key(public_pem.encode("utf-8"))
        public_key.verify(signature, b"payload", padding.PKCS1v15(), hashes.SHA256())
        assert await signer.key_id() == CLIENT_EMAIL

    async def test_invalid_private_key_rejected(self, service_account):
        from dataclasses import replace

        with pytest.raises(SigningError) as exc_info:
            ServiceAccountSigner(replace(service_account, private_key="not a key"))
        assert exc_info.value.code == "no_credential_available"


class TestIAMSigner:
    async def test_sign_blob_request(self):
        captured: list[httpx.Request] = []
        http = IdentityHttpClient(
            credential="access-token", _transport=_iam_and_metadata_transport(captured),
        )
        signer = IAMSigner(http, "http://iam.test/v1", "sa@example.com")

        signature = await signer.sign(b"data")

        assert signature == b"signed:data"
        assert captured[0].url.path == "/v1/projects/-/serviceAccounts/sa@example.com:signBlob"
        assert captured[0].headers["Authorization"] == "Bearer access-token"

    async def test_remote_failure_is_signing_failed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"error": {"message": "Permission denied"}})

        http = IdentityHttpClient(_transport=httpx.MockTransport(handler))
        signer = IAMSigner(http, "http://iam.test/v1", "sa@example.com")

        with pytest.raises(SigningError) as exc_info:
            await signer.sign(b"data")
        assert exc_info.value.code == "signing_failed"


class TestMetadataServerSigner:
    async def test_discovers_email_and_signs_via_iam(self):
        captured: list[httpx.Request] = []
        transport = _iam_and_metadata_transport(captured)
        metadata_http = IdentityHttpClient(
            headers={"Metadata-Flavor": "Google"}, _transport=transport,
        )
        iam_http = IdentityHttpClient(_transport=transport)
        signer = MetadataServerSigner(
            metadata_http, "http://metadata.google.internal/computeMetadata/v1",
            iam_http, "http://iam.test/v1",
        )

        assert await signer.key_id() == METADATA_EMAIL
        assert await signer.sign(b"x") == b"signed:x"
        assert captured[0].headers["Metadata-Flavor"] == "Google"
        # Email is discovered once.
        metadata_calls = [r for r in captured if r.url.host == "metadata.google.internal"]
        assert len(metadata_calls) == 1


class TestSignerResolver:
    async def test_service_account_wins(self, service_account):
        config = AuthConfig(
            project_id=PROJECT_ID,
            service_account=service_account,
            service_account_id="ignored@example.com",
        )
        resolver = SignerResolver(
            config, IdentityHttpClient(_transport=httpx.MockTransport(_no_network)),
        )

        signer = await resolver.resolve()

        assert isinstance(signer, ServiceAccountSigner)
        assert await signer.key_id() == CLIENT_EMAIL

    async def test_service_account_id_uses_iam(self):
        config = AuthConfig(project_id=PROJECT_ID, service_account_id="sa@example.com")
        resolver = SignerResolver(
            config, IdentityHttpClient(_transport=httpx.MockTransport(_no_network)),
        )

        signer = await resolver.resolve()

        assert isinstance(signer, IAMSigner)
        assert await signer.key_id() == "sa@example.com"

    async def test_falls_back_to_metadata_server(self):
        captured: list[httpx.Request] = []
        config = AuthConfig(project_id=PROJECT_ID)
        resolver = SignerResolver(
            config, IdentityHttpClient(_transport=_iam_and_metadata_transport(captured)),
        )

        signer = await resolver.resolve()

        assert isinstance(signer, MetadataServerSigner)
        assert await signer.key_id() == METADATA_EMAIL
        assert captured[0].headers["Metadata-Flavor"] == "Google"
        assert "Authorization" not in captured[0].headers

    async def test_resolved_signer_is_cached(self, service_account):
        config = AuthConfig(project_id=PROJECT_ID, service_account=service_account)
        resolver = SignerResolver(config, IdentityHttpClient())

        assert await resolver.resolve() is await resolver.resolve()

    async def test_construction_does_no_io(self):
        captured: list[httpx.Request] = []
        SignerResolver(
            AuthConfig(project_id=PROJECT_ID),
            IdentityHttpClient(_transport=_iam_and_metadata_transport(captured)),
        )
        assert captured == []

    async def test_no_credential_available_and_not_cached(self):
        captured: list[httpx.Request] = []
        state = {"up": False}
        resolver = SignerResolver(
            AuthConfig(project_id=PROJECT_ID),
            IdentityHttpClient(_transport=_iam_and_metadata_transport(captured, metadata_up=state)),
        )

        with pytest.raises(SigningError) as exc_info:
            await resolver.resolve()
        assert exc_info.value.code == "no_credential_available"

        # The metadata server comes up later; the next call succeeds.
        state["up"] = True
        signer = await resolver.resolve()
        assert await signer.key_id() == METADATA_EMAIL
