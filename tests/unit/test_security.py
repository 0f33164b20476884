"""
Unit tests for Clerk session token verification.
"""

import json
from unittest.mock import AsyncMock

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import HTTPException
from jwt.algorithms import RSAAlgorithm

from app.core.security import ClerkAuthenticator

CLAIMS = {"sub": "user_2abc", "email": "ada@example.com"}


@pytest.fixture(scope="module")
def signing_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def jwks(signing_key):
    jwk = json.loads(RSAAlgorithm.to_jwk(signing_key.public_key()))
    jwk.update({"kid": "key-1", "use": "sig", "alg": "RS256"})
    return {"keys": [jwk]}


def signed(signing_key, kid="key-1", **claims):
    return jwt.encode({**CLAIMS, **claims}, signing_key, algorithm="RS256", headers={"kid": kid})


class TestUnverifiedDecoding:
    @pytest.mark.asyncio
    async def test_decodes_without_signature_check(self):
        token = jwt.encode(CLAIMS, "any-secret", algorithm="HS256")

        payload = await ClerkAuthenticator(verify_signature=False).verify_token(token)

        assert payload == CLAIMS

    @pytest.mark.asyncio
    async def test_garbage_token(self):
        with pytest.raises(HTTPException) as exc_info:
            await ClerkAuthenticator(verify_signature=False).verify_token("not-a-jwt")

        assert exc_info.value.status_code == 401


class TestVerifiedDecoding:
    """Test cases for RS256 verification against the JWKS."""

    @pytest.mark.asyncio
    async def test_valid_signature(self, signing_key, jwks):
        authenticator = ClerkAuthenticator(verify_signature=True, jwks_url="https://clerk.test/v1/jwks")
        authenticator.get_jwks = AsyncMock(return_value=jwks)

        payload = await authenticator.verify_token(signed(signing_key))

        assert payload["sub"] == "user_2abc"
        # The key set is reused for later tokens.
        await authenticator.verify_token(signed(signing_key))
        assert authenticator.get_jwks.await_count == 1

    @pytest.mark.asyncio
    async def test_unknown_key_refreshes_once(self, signing_key, jwks):
        authenticator = ClerkAuthenticator(verify_signature=True, jwks_url="https://clerk.test/v1/jwks")
        authenticator.get_jwks = AsyncMock(return_value=jwks)

        with pytest.raises(HTTPException) as exc_info:
            await authenticator.verify_token(signed(signing_key, kid="rotated"))

        assert exc_info.value.status_code == 401
        assert authenticator.get_jwks.await_count == 2

    @pytest.mark.asyncio
    async def test_foreign_signature(self, jwks):
        other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        authenticator = ClerkAuthenticator(verify_signature=True, jwks_url="https://clerk.test/v1/jwks")
        authenticator.get_jwks = AsyncMock(return_value=jwks)

        with pytest.raises(HTTPException):
            await authenticator.verify_token(signed(other_key))

    @pytest.mark.asyncio
    async def test_expired_token(self, signing_key, jwks):
        authenticator = ClerkAuthenticator(verify_signature=True, jwks_url="https://clerk.test/v1/jwks")
        authenticator.get_jwks = AsyncMock(return_value=jwks)

        with pytest.raises(HTTPException) as exc_info:
            await authenticator.verify_token(signed(signing_key, exp=1))

        assert "expired" in exc_info.value.detail.lower()

    @pytest.mark.asyncio
    async def test_jwks_unreachable(self, signing_key):
        authenticator = ClerkAuthenticator(verify_signature=True, jwks_url="https://clerk.test/v1/jwks")
        authenticator.get_jwks = AsyncMock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(HTTPException) as exc_info:
            await authenticator.verify_token(signed(signing_key))

        assert exc_info.value.status_code == 401
