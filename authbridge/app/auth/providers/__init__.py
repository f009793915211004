"""
Provider adapters.

Each adapter implements the ProviderAdapter capability set; the flow engine
is identical for all of them.
"""

from typing import Dict, List

from ...config import Settings
from .apple import AppleAdapter
from .base import OAuth2ProviderAdapter, ProviderAdapter
from .google import GoogleAdapter


def callback_uri(settings: Settings, provider: str) -> str:
    return f"{settings.application_url}{settings.OAUTH2_PATH_PREFIX}/{provider}/callback"


def build_providers_from_settings(settings: Settings) -> List[ProviderAdapter]:
    """
    Instantiate every provider whose credentials are configured.

    Raises:
        ProviderConfigurationError: If configured credentials are unusable
    """
    providers: List[ProviderAdapter] = []

    if settings.google_configured:
        providers.append(GoogleAdapter(
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=callback_uri(settings, GoogleAdapter.name),
            scopes=settings.GOOGLE_SCOPES.split(),
            cookie_path=settings.cookie_path,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        ))

    if settings.apple_configured:
        providers.append(AppleAdapter(
            client_id=settings.APPLE_CLIENT_ID,
            team_id=settings.APPLE_TEAM_ID,
            key_id=settings.APPLE_KEY_ID,
            private_key=settings.APPLE_PRIVATE_KEY.replace("\\n", "\n"),
            redirect_uri=callback_uri(settings, AppleAdapter.name),
            scopes=settings.APPLE_SCOPES.split(),
            cookie_path=settings.cookie_path,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            client_secret_ttl=settings.APPLE_CLIENT_SECRET_TTL_SECONDS,
            jwks_cache_seconds=settings.JWKS_CACHE_SECONDS,
        ))

    return providers


def index_providers(providers: List[ProviderAdapter]) -> Dict[str, ProviderAdapter]:
    """Map provider name to adapter, rejecting duplicate names."""
    indexed: Dict[str, ProviderAdapter] = {}
    for provider in providers:
        if not provider.name:
            raise ValueError(f"{type(provider).__name__} has no provider name")
        if provider.name in indexed:
            raise ValueError(f"Provider '{provider.name}' registered twice")
        indexed[provider.name] = provider
    return indexed


__all__ = [
    "AppleAdapter",
    "GoogleAdapter",
    "OAuth2ProviderAdapter",
    "ProviderAdapter",
    "build_providers_from_settings",
    "callback_uri",
    "index_providers",
]
