"""
Identity token verification utilities.

This module handles:
- Fetching and caching a provider's JWKS (JSON Web Key Set)
- Selecting the signing key for a token by its kid
- Verifying identity token signature and standard claims
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx
from jose import JWTError, jwk, jwt

logger = logging.getLogger("authbridge.auth.jwks")


def get_signing_key(token: str, jwks: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Extract the public key from JWKS that matches the token's kid.

    Returns:
        Matching key from JWKS, or None if not found

    Raises:
        JWTError: If token header is malformed or has no kid
    """
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as e:
        raise JWTError(f"Failed to decode token header: {e}")

    kid = unverified_header.get("kid")
    if not kid:
        raise JWTError("Token header missing 'kid' (Key ID)")

    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key

    return None


class JWKSCache:
    """
    JWKS document of one provider, cached for ``ttl_seconds``.

    Keys are refetched once when a token names an unknown kid, in case the
    provider rotated its keys.
    """

    def __init__(self, jwks_uri: str, ttl_seconds: int = 3600, timeout: float = 10.0) -> None:
        self.jwks_uri = jwks_uri
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout
        self._jwks: Optional[Dict[str, Any]] = None
        self._fetched_at: float = 0.0

    async def fetch(self, force_refresh: bool = False) -> Dict[str, Any]:
        """
        Fetch JWKS with caching.

        Raises:
            httpx.HTTPError: If the JWKS endpoint is unreachable
            ValueError: If the response has no keys
        """
        current_time = time.time()
        if not force_refresh and self._jwks and (current_time - self._fetched_at) < self.ttl_seconds:
            return self._jwks

        async with httpx.AsyncClient() as client:
            response = await client.get(self.jwks_uri, timeout=self.timeout)
            response.raise_for_status()
            jwks_data = response.json()

        if "keys" not in jwks_data:
            raise ValueError("Invalid JWKS response: missing 'keys' field")

        self._jwks = jwks_data
        self._fetched_at = current_time
        logger.debug("Fetched JWKS", extra={"jwks_uri": self.jwks_uri, "keys": len(jwks_data["keys"])})
        return jwks_data

    async def verify(
        self,
        id_token: str,
        audience: str,
        issuer: str,
        algorithms: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Verify and decode an identity token.

        Returns:
            Dictionary of verified token claims

        Raises:
            JWTError: If the token is invalid, expired, or its signature
                doesn't match any published key
            httpx.HTTPError: If the JWKS endpoint is unreachable
        """
        jwks = await self.fetch()
        signing_key = get_signing_key(id_token, jwks)
        if not signing_key:
            jwks = await self.fetch(force_refresh=True)
            signing_key = get_signing_key(id_token, jwks)
            if not signing_key:
                raise JWTError("Unable to find matching signing key in JWKS.")

        try:
            public_key = jwk.construct(signing_key)
        except Exception as e:
            raise JWTError(f"Failed to construct public key from JWK: {e}")

        try:
            return jwt.decode(
                id_token,
                public_key.to_pem().decode("utf-8"),
                algorithms=algorithms or ["RS256"],
                audience=audience,
                issuer=issuer,
                options={"verify_at_hash": False, "leeway": 10},
            )
        except jwt.ExpiredSignatureError:
            raise JWTError("ID token has expired")
        except jwt.JWTClaimsError as e:
            raise JWTError(f"Invalid token claims: {e}")
