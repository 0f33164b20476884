"""Security related functions."""

import logging

import httpx
import jwt
from fastapi import HTTPException, status
from jwt import InvalidTokenError, PyJWKSet

from app.core.config import settings

logger = logging.getLogger(__name__)


class ClerkAuthenticator:
    """
    Verifies Clerk session tokens.

    With ``AUTH_VERIFY_SIGNATURE`` enabled, tokens are checked against the
    RS256 keys published at the Clerk JWKS endpoint; the key set is fetched
    once and refreshed when a token names an unknown key id. Otherwise the
    token is only decoded, which is how local development and the test suite
    run.

    :ivar jwks_url: Where the signing keys are published.
    :type jwks_url: str
    :ivar secret_key: Clerk secret key, sent when fetching the key set.
    :type secret_key: str
    """

    def __init__(self, verify_signature: bool | None = None, jwks_url: str | None = None):
        self.verify_signature = (
            settings.auth_verify_signature if verify_signature is None else verify_signature
        )
        self.jwks_url = jwks_url or settings.clerk_jwks_url
        self.secret_key = settings.clerk_secret_key
        self._keys: PyJWKSet | None = None

    async def get_jwks(self) -> dict:
        """Get JWKS from Clerk for token verification."""
        headers = {"Authorization": f"Bearer {self.secret_key}"} if self.secret_key else {}
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(self.jwks_url, headers=headers)
            response.raise_for_status()
            return response.json()

    async def _signing_key(self, token: str):
        kid = jwt.get_unverified_header(token).get("kid")
        for refresh in (False, True):
            if self._keys is None or refresh:
                self._keys = PyJWKSet.from_dict(await self.get_jwks())
            for key in self._keys.keys:
                if key.key_id == kid:
                    return key.key
        raise InvalidTokenError(f"No signing key found for kid {kid}")

    async def verify_token(self, token: str) -> dict:
        """
        Decode a Clerk session token and return its claims.

        :param token: The JWT token to be verified.
        :return: The decoded payload.
        :raises HTTPException: 401 when the token cannot be verified.
        """
        try:
            if not self.verify_signature:
                return jwt.decode(
                    token,
                    options={"verify_signature": False, "verify_aud": False, "verify_exp": False},
                )
            return jwt.decode(
                token,
                key=await self._signing_key(token),
                algorithms=["RS256"],
                options={"verify_aud": False},
            )
        except (InvalidTokenError, httpx.HTTPError) as e:
            logger.warning(f"Rejected session token: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Invalid authentication token: {str(e)}",
            ) from e
