"""Session-bridged OAuth2 authorization service."""

__version__ = "1.0.0"
