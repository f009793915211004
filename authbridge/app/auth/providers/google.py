"""Google OAuth2 adapter: authorization-code flow plus the userinfo endpoint."""

import logging
from typing import Any, Dict, Optional

import httpx

from ...models import TokenSet
from ..errors import IdentityVerificationError
from .base import OAuth2ProviderAdapter

logger = logging.getLogger("authbridge.auth.providers.google")

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


class GoogleAdapter(OAuth2ProviderAdapter):
    """Google sign-in; the userinfo profile becomes ``UserData.basicInfo``."""

    name = "google"
    profile_field = "basicInfo"
    callback_methods = ["GET"]
    cookie_same_site = "lax"

    authorize_url = GOOGLE_AUTHORIZE_URL
    token_url = GOOGLE_TOKEN_URL

    async def fetch_identity(self, token: TokenSet) -> Optional[Dict[str, Any]]:
        if not token.access_token:
            raise IdentityVerificationError("No access_token found.")

        async with httpx.AsyncClient() as client:
            response = await client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {token.access_token}"},
                timeout=self.timeout,
            )

        if not response.is_success:
            logger.warning(
                "Userinfo request failed",
                extra={"status_code": response.status_code},
            )
            raise IdentityVerificationError(
                f"Request failed with status code {response.status_code}"
            )

        return response.json()
