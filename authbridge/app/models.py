"""
Data Models Module

This module defines Pydantic models and outcome types used throughout the
authorization bridge.

Models are organized by functional area:
- Identity models (user data, first-access profile, provider tokens)
- Flow outcome models (typed failures, delivered/failed results)
- HTTP response models (session allocation, errors, health)
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Identity Models
# ============================================================================

class UserData(BaseModel):
    """
    Identity produced by a successful callback.

    Google profiles are carried in ``basicInfo``, verified Apple id token
    claims in ``data``.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    provider: str = Field(..., description="Provider name (google, apple, ...)")
    basic_info: Optional[Dict[str, Any]] = Field(
        None, alias="basicInfo", description="Profile fetched from the provider API"
    )
    data: Optional[Dict[str, Any]] = Field(
        None, description="Claims from a verified identity token"
    )

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the JSON shape pushed over the status channel."""
        return self.model_dump(by_alias=True, exclude_none=True)


class FirstAccessProfile(BaseModel):
    """Profile fields a provider sends only on the very first authorization."""
    first_name: Optional[str] = Field(None, description="Given name")
    last_name: Optional[str] = Field(None, description="Family name")
    email: Optional[str] = Field(None, description="Email address")


class TokenSet(BaseModel):
    """Token endpoint response; unknown fields are preserved."""
    model_config = ConfigDict(extra="allow")

    access_token: Optional[str] = None
    id_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None


class CallbackParams(BaseModel):
    """Parameters of the provider's redirect back to the callback endpoint."""
    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    user: Optional[str] = Field(None, description="Raw first-access payload (JSON string)")
    session_id: Optional[str] = Field(None, description="Session id round-tripped in the query")


# ============================================================================
# Flow Outcome Models
# ============================================================================

DEFAULT_FAILURE_MESSAGE = "Failed to get user data"


class FailureKind(str, Enum):
    """Typed failure causes of the flow and the status endpoint."""
    MISSING_STATE = "missing_state"
    PROVIDER_DENIED = "provider_denied"
    TOKEN_EXCHANGE_FAILURE = "token_exchange_failure"
    IDENTITY_VERIFICATION_FAILURE = "identity_verification_failure"
    UNKNOWN_ERROR = "unknown_error"
    CORS_REJECTED = "cors_rejected"
    MISSING_SESSION_ID = "missing_session_id"


class Failure(BaseModel):
    """A failure cause together with its user-facing message."""
    model_config = ConfigDict(frozen=True)

    kind: FailureKind
    message: str

    @classmethod
    def missing_state(cls) -> "Failure":
        return cls(kind=FailureKind.MISSING_STATE, message="Illegal invoking of endpoint.")

    @classmethod
    def provider_denied(cls, error: str) -> "Failure":
        return cls(kind=FailureKind.PROVIDER_DENIED, message=error)

    @classmethod
    def token_exchange(cls, cause: BaseException) -> "Failure":
        return cls(
            kind=FailureKind.TOKEN_EXCHANGE_FAILURE,
            message=str(cause) or DEFAULT_FAILURE_MESSAGE,
        )

    @classmethod
    def identity_verification(cls, message: str = "No id_token found.") -> "Failure":
        return cls(kind=FailureKind.IDENTITY_VERIFICATION_FAILURE, message=message)

    @classmethod
    def unknown(cls, cause: Optional[BaseException] = None) -> "Failure":
        message = str(cause) if cause is not None else ""
        return cls(kind=FailureKind.UNKNOWN_ERROR, message=message or DEFAULT_FAILURE_MESSAGE)

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message}


class Delivered(BaseModel):
    """Successful outcome of one callback request."""
    model_config = ConfigDict(frozen=True)

    data: UserData
    raw: Any = Field(None, description="Profile exactly as returned by the provider")


class Failed(BaseModel):
    """Failed outcome of one callback request."""
    model_config = ConfigDict(frozen=True)

    failure: Failure


Outcome = Union[Delivered, Failed]


# ============================================================================
# HTTP Response Models
# ============================================================================

class SessionCreatedResponse(BaseModel):
    """Response of POST <prefix>/status."""
    sessionId: str = Field(..., description="Opaque session identifier")


class ErrorResponse(BaseModel):
    """Error body returned by the bridge endpoints."""
    error: str = Field(..., description="Human-readable error message")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    providers: List[str] = Field(default_factory=list, description="Registered providers")
    open_sessions: int = Field(0, description="Status channels currently open")
