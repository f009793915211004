"""
Configuration module for the AuthBridge service.

This module uses Pydantic Settings to load and validate environment variables
for route layout, the correlator cookie, the status channel origin policy,
and the OAuth2 provider credentials.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Providers are optional: an adapter is only registered when its
    credentials are complete.
    """

    # =========================================================================
    # Service Configuration
    # =========================================================================

    APPLICATION_URL: str = Field(
        default="http://127.0.0.1:8080",
        description="Public base URL of this service, used to build provider callback URIs",
        min_length=1,
    )

    HOST: str = Field(default="0.0.0.0", description="Host to bind the server")

    PORT: int = Field(default=8080, description="Port to bind the server", ge=1, le=65535)

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # =========================================================================
    # Route and Cookie Layout
    # =========================================================================

    OAUTH2_PATH_PREFIX: str = Field(
        default="/oauth2",
        description="Prefix for status, login, callback and feedback routes",
    )

    COOKIE_PATH: Optional[str] = Field(
        None,
        description="Path scope of the correlator cookie (defaults to OAUTH2_PATH_PREFIX)",
    )

    SESSION_COOKIE_NAME: str = Field(
        default="session_id",
        description="Name of the correlator cookie carrying the session id",
        min_length=1,
    )

    ADD_FEEDBACK_ROUTES: bool = Field(
        default=True,
        description="Register <prefix>/success and <prefix>/failure and redirect there",
    )

    # =========================================================================
    # Status Channel CORS
    # =========================================================================

    SSE_CORS_ORIGIN: str = Field(
        default="*",
        description="'*', a single origin, or a comma-separated list of origins",
    )

    # =========================================================================
    # Google Provider
    # =========================================================================

    GOOGLE_CLIENT_ID: Optional[str] = Field(None, description="Google OAuth2 client id")

    GOOGLE_CLIENT_SECRET: Optional[str] = Field(None, description="Google OAuth2 client secret")

    GOOGLE_SCOPES: str = Field(default="profile", description="Space-separated Google scopes")

    # =========================================================================
    # Apple Provider
    # =========================================================================

    APPLE_CLIENT_ID: Optional[str] = Field(None, description="Apple Services ID")

    APPLE_TEAM_ID: Optional[str] = Field(None, description="Apple developer team id")

    APPLE_KEY_ID: Optional[str] = Field(None, description="Key id of the Sign in with Apple key")

    APPLE_PRIVATE_KEY: Optional[str] = Field(
        None,
        description="PEM encoded ES256 private key used to sign the client secret",
    )

    APPLE_CLIENT_SECRET_TTL_SECONDS: int = Field(
        default=15777000,
        description="Lifetime of the generated Apple client secret (max ~6 months)",
        ge=60,
        le=15777000,
    )

    APPLE_SCOPES: str = Field(default="name email", description="Space-separated Apple scopes")

    # =========================================================================
    # Outbound HTTP
    # =========================================================================

    HTTP_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for provider token, userinfo and JWKS requests",
        gt=0,
    )

    JWKS_CACHE_SECONDS: int = Field(
        default=3600,
        description="Time to cache provider JWKS keys in seconds",
        ge=60,
        le=86400,
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def cookie_path(self) -> str:
        return self.COOKIE_PATH or self.OAUTH2_PATH_PREFIX

    @property
    def application_url(self) -> str:
        """Base URL without trailing slash."""
        return self.APPLICATION_URL.rstrip("/")

    @property
    def sse_cors_origin_policy(self) -> Union[str, List[str]]:
        """
        Parse SSE_CORS_ORIGIN into an origin policy.

        Returns:
            "*" or a single origin string, or a list when several
            comma-separated origins are configured.
        """
        origins = [
            origin.strip()
            for origin in self.SSE_CORS_ORIGIN.split(",")
            if origin.strip()
        ]
        if not origins:
            return "*"
        if len(origins) == 1:
            return origins[0]
        return origins

    @property
    def google_configured(self) -> bool:
        return bool(self.GOOGLE_CLIENT_ID and self.GOOGLE_CLIENT_SECRET)

    @property
    def apple_configured(self) -> bool:
        return all([
            self.APPLE_CLIENT_ID,
            self.APPLE_TEAM_ID,
            self.APPLE_KEY_ID,
            self.APPLE_PRIVATE_KEY,
        ])

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("OAUTH2_PATH_PREFIX", "COOKIE_PATH")
    @classmethod
    def validate_path(cls, v: Optional[str]) -> Optional[str]:
        """
        Validate that route prefixes are absolute paths.

        Raises:
            ValueError: If the path does not start with '/'
        """
        if v is None:
            return v
        if not v.startswith("/"):
            raise ValueError(f"Path must start with '/', got: {v}")
        if len(v) > 1:
            v = v.rstrip("/")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = v.upper()
        if level not in allowed_levels:
            raise ValueError(f"LOG_LEVEL must be one of {allowed_levels}, got: {v}")
        return level


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If environment variables are invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Validate configuration settings and return a status report.

    Called during application startup; errors are logged, not raised.

    Returns:
        Dictionary with validation status and any warnings.

    Example:
        >>> status = validate_configuration(Settings())
        >>> status["warnings"]
        ['No OAuth2 provider is configured']
    """
    errors = []
    warnings = []

    if not settings.google_configured and not settings.apple_configured:
        warnings.append("No OAuth2 provider is configured")

    apple_fields = [
        settings.APPLE_CLIENT_ID,
        settings.APPLE_TEAM_ID,
        settings.APPLE_KEY_ID,
        settings.APPLE_PRIVATE_KEY,
    ]
    if any(apple_fields) and not all(apple_fields):
        errors.append(
            "Apple credentials are incomplete "
            "(APPLE_CLIENT_ID, APPLE_TEAM_ID, APPLE_KEY_ID and APPLE_PRIVATE_KEY are required)"
        )

    if bool(settings.GOOGLE_CLIENT_ID) != bool(settings.GOOGLE_CLIENT_SECRET):
        errors.append("Google credentials are incomplete (GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET)")

    if not settings.cookie_path or not settings.OAUTH2_PATH_PREFIX.startswith(settings.cookie_path):
        warnings.append(
            f"COOKIE_PATH {settings.cookie_path} does not cover {settings.OAUTH2_PATH_PREFIX}; "
            "the callback will not receive the session cookie"
        )

    if settings.application_url.startswith("http://") and settings.apple_configured:
        warnings.append("Apple requires an https APPLICATION_URL for form_post callbacks")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
    }
