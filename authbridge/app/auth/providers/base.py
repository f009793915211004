"""
Provider adapter contract and the generic OAuth2 authorization-code adapter.

A provider adapter is everything the flow engine needs to know about one
identity provider:

    - build the authorization URI for a browser redirect
    - read the callback parameters from the provider's redirect back
    - exchange the authorization code for a token
    - fetch or verify the identity behind that token

The engine never talks to a provider directly.
"""

import json
import logging
import secrets
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from fastapi import Request, Response

from ...models import CallbackParams, FirstAccessProfile, TokenSet
from ..errors import TokenExchangeError

logger = logging.getLogger("authbridge.auth.providers")

STATE_COOKIE_NAME = "oauth2-redirect-state"
STATE_COOKIE_MAX_AGE = 600


class ProviderAdapter(ABC):
    """
    Capability set of one identity provider.

    Attributes:
        name: Provider name, used in routes and as UserData.provider
        profile_field: UserData field receiving the raw profile
            ("basicInfo" or "data")
        callback_methods: HTTP methods the provider uses for its redirect back
        cookie_same_site: SameSite policy for cookies that must survive the
            provider's redirect back ("lax", or "none" for cross-site POST)
    """

    name: str = ""
    profile_field: str = "basicInfo"
    callback_methods: List[str] = ["GET"]
    cookie_same_site: str = "lax"

    @property
    def cookie_secure(self) -> bool:
        # Browsers drop SameSite=None cookies that are not Secure
        return self.cookie_same_site == "none"

    @abstractmethod
    async def generate_authorization_uri(self, request: Request, response: Response) -> str:
        """
        Build the provider authorization URI.

        May set cookies on ``response`` that the exchange needs later.
        """

    async def read_callback_params(self, request: Request) -> CallbackParams:
        """
        Extract callback parameters from the query string, or from the form
        body when the provider posts them.
        """
        source: Dict[str, Any] = dict(request.query_params)
        if request.method == "POST":
            form = await request.form()
            if form.get("code") or form.get("error"):
                source = {**source, **dict(form)}
        return CallbackParams(
            code=source.get("code"),
            state=source.get("state"),
            error=source.get("error"),
            user=source.get("user"),
            session_id=source.get("session_id"),
        )

    @abstractmethod
    async def exchange_code(self, params: CallbackParams, request: Request) -> TokenSet:
        """
        Exchange the authorization code for a token.

        Raises:
            TokenExchangeError: If the provider rejects the exchange
            httpx.HTTPError: If the token endpoint is unreachable
        """

    @abstractmethod
    async def fetch_identity(self, token: TokenSet) -> Optional[Dict[str, Any]]:
        """
        Fetch the profile or verify the identity token.

        Returns:
            Raw profile, or None when the token carries no usable identity

        Raises:
            IdentityVerificationError: If verification fails
            httpx.HTTPError: If the provider is unreachable
        """

    def first_access_profile(self, params: CallbackParams) -> Optional[FirstAccessProfile]:
        """Profile sent only on a user's first authorization; most providers never send one."""
        return None


class OAuth2ProviderAdapter(ProviderAdapter):
    """
    Standard OAuth2 authorization-code adapter on httpx.

    A random ``state`` is generated per authorization, stored in a short-lived
    cookie scoped to the cookie path, and checked before the code exchange.
    """

    authorize_url: str = ""
    token_url: str = ""
    extra_authorize_params: Dict[str, str] = {}

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: List[str],
        cookie_path: str = "/",
        timeout: float = 10.0,
    ) -> None:
        self.client_id = client_id
        self._client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes
        self.cookie_path = cookie_path
        self.timeout = timeout

    @property
    def client_secret(self) -> str:
        return self._client_secret

    async def generate_authorization_uri(self, request: Request, response: Response) -> str:
        state = secrets.token_urlsafe(32)
        response.set_cookie(
            STATE_COOKIE_NAME,
            state,
            max_age=STATE_COOKIE_MAX_AGE,
            path=self.cookie_path,
            httponly=True,
            samesite=self.cookie_same_site,
            secure=self.cookie_secure,
        )
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
            **self.extra_authorize_params,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    def verify_state(self, params: CallbackParams, request: Request) -> None:
        expected_state = request.cookies.get(STATE_COOKIE_NAME)
        if not expected_state or params.state != expected_state:
            raise TokenExchangeError("Invalid state")

    def token_request_payload(self, params: CallbackParams) -> Dict[str, str]:
        return {
            "grant_type": "authorization_code",
            "code": params.code or "",
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }

    async def exchange_code(self, params: CallbackParams, request: Request) -> TokenSet:
        self.verify_state(params, request)
        if not params.code:
            raise TokenExchangeError("Missing authorization code")

        async with httpx.AsyncClient() as client:
            response = await client.post(
                self.token_url,
                data=self.token_request_payload(params),
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )

        if not response.is_success:
            error_msg = "Token exchange failed"
            try:
                error_data = response.json()
                error_msg = error_data.get("error_description") or error_data.get("error") or error_msg
            except (ValueError, AttributeError):
                pass
            logger.warning(
                "Token endpoint rejected the exchange",
                extra={"provider": self.name, "status_code": response.status_code},
            )
            raise TokenExchangeError(error_msg)

        return TokenSet(**response.json())


def parse_first_access_user(raw_user: Optional[str]) -> Optional[FirstAccessProfile]:
    """
    Parse a ``user`` JSON payload of the form
    ``{"name": {"firstName": ..., "lastName": ...}, "email": ...}``.

    Raises:
        ValueError: If the payload is not valid JSON
    """
    if not raw_user:
        return None
    parsed = json.loads(raw_user)
    if not isinstance(parsed, dict):
        raise ValueError("First access payload must be a JSON object")
    name = parsed.get("name") or {}
    return FirstAccessProfile(
        first_name=name.get("firstName"),
        last_name=name.get("lastName"),
        email=parsed.get("email"),
    )


__all__ = [
    "OAuth2ProviderAdapter",
    "ProviderAdapter",
    "STATE_COOKIE_NAME",
    "parse_first_access_user",
]
