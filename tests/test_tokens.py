"""Tests for custom token creation."""

import httpx
import jwt
import pytest

from identitykit.config import CUSTOM_TOKEN_AUDIENCE, AuthConfig
from identitykit.errors import InvalidArgumentError, SigningError
from identitykit.http import IdentityHttpClient
from identitykit.signer import SignerResolver
from identitykit.tokens import CustomTokenFactory
from conftest import CLIENT_EMAIL, PROJECT_ID

pytestmark = pytest.mark.asyncio


def _factory(service_account, **kwargs) -> CustomTokenFactory:
    config = AuthConfig(project_id=PROJECT_ID, service_account=service_account)
    return CustomTokenFactory(SignerResolver(config, IdentityHttpClient()), config, **kwargs)


def _decode(token: str, public_pem: str, **kwargs) -> dict:
    return jwt.decode(
        token, public_pem, algorithms=["RS256"], audience=CUSTOM_TOKEN_AUDIENCE, **kwargs,
    )


class TestCreateCustomToken:
    async def test_round_trip(self, service_account, rsa_key_pair):
        _, public_pem = rsa_key_pair
        claims = {"premium": True, "level": 3, "groups": ["a", "b"], "meta": {"k": None}}

        token = await _factory(service_account).create_custom_token("user-1", claims)
        payload = _decode(token, public_pem)

        assert payload["uid"] == "user-1"
        assert payload["claims"] == claims
        assert payload["iss"] == CLIENT_EMAIL
        assert payload["sub"] == CLIENT_EMAIL
        assert payload["aud"] == CUSTOM_TOKEN_AUDIENCE
        assert payload["exp"] - payload["iat"] == 3600

    async def test_header(self, service_account):
        token = await _factory(service_account).create_custom_token("user-1")
        assert jwt.get_unverified_header(token) == {"alg": "RS256", "typ": "JWT"}

    async def test_no_claims_omitted(self, service_account, rsa_key_pair):
        _, public_pem = rsa_key_pair
        token = await _factory(service_account).create_custom_token("user-1")
        assert "claims" not in _decode(token, public_pem)

    async def test_tenant_id(self, service_account, rsa_key_pair):
        _, public_pem = rsa_key_pair
        token = await _factory(service_account).create_custom_token("u", tenant_id="tenant-1")
        assert _decode(token, public_pem)["tenant_id"] == "tenant-1"

    async def test_uses_clock(self, service_account, rsa_key_pair):
        _, public_pem = rsa_key_pair
        factory = _factory(service_account, clock=lambda: 1_700_000_000.7)

        token = await factory.create_custom_token("user-1")
        payload = _decode(token, public_pem, options={"verify_exp": False, "verify_iat": False})

        assert payload["iat"] == 1_700_000_000
        assert payload["exp"] == 1_700_003_600

    @pytest.mark.parametrize("uid", ["", "x" * 129, None, 42])
    async def test_invalid_uid(self, service_account, uid):
        with pytest.raises(InvalidArgumentError):
            await _factory(service_account).create_custom_token(uid)

    async def test_max_length_uid_accepted(self, service_account, rsa_key_pair):
        _, public_pem = rsa_key_pair
        token = await _factory(service_account).create_custom_token("x" * 128)
        assert _decode(token, public_pem)["uid"] == "x" * 128

    @pytest.mark.parametrize("name", ["iss", "sub", "aud", "exp", "iat", "nbf", "firebase"])
    async def test_reserved_claim_rejected(self, service_account, name):
        with pytest.raises(InvalidArgumentError, match=name):
            await _factory(service_account).create_custom_token("user-1", {name: "x"})

    async def test_non_serializable_claims(self, service_account):
        with pytest.raises(InvalidArgumentError):
            await _factory(service_account).create_custom_token("user-1", {"obj": object()})

    async def test_no_credential_is_signing_failed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no metadata server here")

        config = AuthConfig(project_id=PROJECT_ID)
        http = IdentityHttpClient(_transport=httpx.MockTransport(handler))
        factory = CustomTokenFactory(SignerResolver(config, http), config)

        with pytest.raises(SigningError) as exc_info:
            await factory.create_custom_token("user-1")
        assert exc_info.value.code == "signing_failed"
        assert exc_info.value.extra["cause_code"] == "no_credential_available"

    async def test_validation_before_signer_resolution(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        config = AuthConfig(project_id=PROJECT_ID)
        http = IdentityHttpClient(_transport=httpx.MockTransport(handler))
        factory = CustomTokenFactory(SignerResolver(config, http), config)

        with pytest.raises(InvalidArgumentError):
            await factory.create_custom_token("")
