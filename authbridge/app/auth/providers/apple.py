"""
Sign in with Apple adapter.

Apple differs from a plain OAuth2 provider in three ways:

- the client secret is an ES256 JWT signed with the team's private key
- the callback is a cross-site form POST, so correlation cookies must be
  ``SameSite=None; Secure``
- the identity comes from verifying the returned ``id_token`` against Apple's
  JWKS; there is no profile endpoint. Name and email are only sent once, in
  the ``user`` form field of the first authorization.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx
from jose import jwt
from jose.exceptions import JOSEError

from ...models import CallbackParams, FirstAccessProfile, TokenSet
from ..errors import IdentityVerificationError, ProviderConfigurationError
from ..jwks import JWKSCache
from .base import OAuth2ProviderAdapter, parse_first_access_user

logger = logging.getLogger("authbridge.auth.providers.apple")

APPLE_ISSUER = "https://appleid.apple.com"
APPLE_AUTHORIZE_URL = "https://appleid.apple.com/auth/authorize"
APPLE_TOKEN_URL = "https://appleid.apple.com/auth/token"
APPLE_JWKS_URL = "https://appleid.apple.com/auth/keys"

# Refresh the client secret this long before it expires
CLIENT_SECRET_RENEW_MARGIN_SECONDS = 60


def generate_client_secret(
    client_id: str,
    team_id: str,
    key_id: str,
    private_key: str,
    expires_in: int,
    now: Optional[int] = None,
) -> str:
    """
    Sign the client secret JWT Apple expects at the token endpoint.

    Raises:
        ProviderConfigurationError: If the private key cannot sign ES256
    """
    issued_at = int(now if now is not None else time.time())
    claims = {
        "iss": team_id,
        "iat": issued_at,
        "exp": issued_at + expires_in,
        "aud": APPLE_ISSUER,
        "sub": client_id,
    }
    try:
        return jwt.encode(claims, private_key, algorithm="ES256", headers={"kid": key_id})
    except (JOSEError, ValueError, TypeError) as e:
        raise ProviderConfigurationError(f"Invalid Apple private key: {e}")


class AppleAdapter(OAuth2ProviderAdapter):
    """Sign in with Apple; verified id token claims become ``UserData.data``."""

    name = "apple"
    profile_field = "data"
    callback_methods = ["GET", "POST"]
    cookie_same_site = "none"

    authorize_url = APPLE_AUTHORIZE_URL
    token_url = APPLE_TOKEN_URL
    extra_authorize_params = {"response_mode": "form_post"}

    def __init__(
        self,
        client_id: str,
        team_id: str,
        key_id: str,
        private_key: str,
        redirect_uri: str,
        scopes: List[str],
        cookie_path: str = "/",
        timeout: float = 10.0,
        client_secret_ttl: int = 15777000,
        jwks_cache_seconds: int = 3600,
    ) -> None:
        self.team_id = team_id
        self.key_id = key_id
        self._private_key = private_key
        self.client_secret_ttl = client_secret_ttl
        self._secret_expires_at = 0.0
        super().__init__(
            client_id=client_id,
            client_secret="",
            redirect_uri=redirect_uri,
            scopes=scopes,
            cookie_path=cookie_path,
            timeout=timeout,
        )
        self.jwks = JWKSCache(APPLE_JWKS_URL, ttl_seconds=jwks_cache_seconds, timeout=timeout)
        # Fails start-up on a malformed key instead of on the first callback
        self._renew_client_secret()

    def _renew_client_secret(self) -> None:
        now = int(time.time())
        self._client_secret = generate_client_secret(
            client_id=self.client_id,
            team_id=self.team_id,
            key_id=self.key_id,
            private_key=self._private_key,
            expires_in=self.client_secret_ttl,
            now=now,
        )
        self._secret_expires_at = now + self.client_secret_ttl
        logger.debug("Generated Apple client secret", extra={"expires_at": self._secret_expires_at})

    @property
    def client_secret(self) -> str:
        if time.time() >= self._secret_expires_at - CLIENT_SECRET_RENEW_MARGIN_SECONDS:
            self._renew_client_secret()
        return self._client_secret

    def first_access_profile(self, params: CallbackParams) -> Optional[FirstAccessProfile]:
        return parse_first_access_user(params.user)

    async def fetch_identity(self, token: TokenSet) -> Optional[Dict[str, Any]]:
        if not token.id_token:
            return None
        try:
            return await self.jwks.verify(
                token.id_token,
                audience=self.client_id,
                issuer=APPLE_ISSUER,
            )
        except (JOSEError, ValueError) as e:
            raise IdentityVerificationError(str(e))
        except httpx.HTTPError as e:
            raise IdentityVerificationError(f"Unable to fetch Apple signing keys: {e}")
