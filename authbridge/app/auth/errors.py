"""Exceptions raised by provider adapters."""


class ProviderError(Exception):
    """Base exception for provider adapter failures"""
    pass


class ProviderConfigurationError(ProviderError):
    """Adapter credentials are unusable; raised at construction time"""
    pass


class TokenExchangeError(ProviderError):
    """The authorization code could not be exchanged for a token"""
    pass


class IdentityVerificationError(ProviderError):
    """No usable identity could be fetched or verified from the token"""
    pass
