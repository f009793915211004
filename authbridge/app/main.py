"""
FastAPI Application Factory
===========================

Entry point of the AuthBridge service, which lets a browser complete a
third-party OAuth2 authorization-code flow while a separate client observes
the outcome over Server-Sent Events.

Architecture:
    Observer  -> POST /oauth2/status, GET /oauth2/status/{id} (SSE)
    Browser   -> /oauth2/<provider>/login/{id} -> Provider -> /oauth2/<provider>/callback
    Callback  -> outcome pushed to the observer, browser redirected or answered

Routes (default prefix /oauth2):
    - POST /oauth2/status                      : allocate a session id
    - GET  /oauth2/status/{session_id}         : open the status channel
    - GET  /oauth2/<provider>/login/{session}  : redirect to the provider
    - GET|POST /oauth2/<provider>/callback     : finish the flow
    - GET  /oauth2/success, /oauth2/failure    : feedback pages (optional)
    - GET  /health                             : health check

Environment Variables:
    See authbridge/app/config.py. Providers are enabled by their credentials:
    GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET, APPLE_CLIENT_ID/APPLE_TEAM_ID/
    APPLE_KEY_ID/APPLE_PRIVATE_KEY.

Running the Service:
    Development:
        uvicorn authbridge.app.main:app --reload --host 0.0.0.0 --port 8080

    With custom log level:
        LOG_LEVEL=DEBUG uvicorn authbridge.app.main:app --reload
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from authbridge import __version__
from authbridge.app.auth.dispatch import DefaultResultHandler, ResultHandler
from authbridge.app.auth.feedback import FailureNotices, build_feedback_router
from authbridge.app.auth.flow import AuthorizationFlow, FirstAccessHook
from authbridge.app.auth.providers import (
    ProviderAdapter,
    build_providers_from_settings,
    index_providers,
)
from authbridge.app.config import Settings, get_settings, validate_configuration
from authbridge.app.models import HealthResponse
from authbridge.app.realtime.cors import OriginGate, OriginPolicy
from authbridge.app.realtime.sessions import SessionRegistry
from authbridge.app.realtime.status import build_status_router

SERVICE_NAME = "authbridge"

_DEFAULT = object()


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


class AppState:
    """
    Per-application state container.

    Holds the session registry, the registered flows and the failure notices
    shared by the result handler and the failure page.
    """
    def __init__(self, settings: Settings, registry: SessionRegistry, notices: FailureNotices):
        self.settings = settings
        self.registry = registry
        self.notices = notices
        self.flows: Dict[str, AuthorizationFlow] = {}


def _build_lifespan(state: AppState):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Startup:
            - Configure logging
            - Log configuration problems and registered providers

        Shutdown:
            - Close every open status channel
        """
        settings = state.settings
        setup_logging(settings.LOG_LEVEL)
        logger = logging.getLogger("authbridge.main")

        status = validate_configuration(settings)
        for error in status["errors"]:
            logger.error(f"Configuration error: {error}")
        for warning in status["warnings"]:
            logger.warning(f"Configuration warning: {warning}")

        logger.info(
            "AuthBridge service started",
            extra={
                "service": SERVICE_NAME,
                "version": __version__,
                "providers": sorted(state.flows),
                "path_prefix": settings.OAUTH2_PATH_PREFIX,
            },
        )

        yield

        closed = state.registry.close_all()
        logger.info(
            "AuthBridge service shutdown complete",
            extra={"closed_channels": closed},
        )

    return lifespan


def create_app(
    settings: Optional[Settings] = None,
    *,
    providers: Optional[List[ProviderAdapter]] = None,
    result_handler: Optional[ResultHandler] = None,
    origin_policy: Any = _DEFAULT,
    first_access_hook: Optional[FirstAccessHook] = None,
    registry: Optional[SessionRegistry] = None,
) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: Settings to use (defaults to get_settings())
        providers: Provider adapters (defaults to those configured in settings)
        result_handler: Custom success/failure strategy (defaults to the
            push-then-redirect fallback chain)
        origin_policy: Status channel origin policy: "*", a string, a list of
            strings or a predicate (defaults to SSE_CORS_ORIGIN)
        first_access_hook: Receives (provider, FirstAccessProfile)
        registry: Session registry (a new one per app by default)

    Returns:
        FastAPI: Configured application instance

    Raises:
        ProviderConfigurationError: If configured provider credentials are unusable
    """
    settings = settings or get_settings()
    if providers is None:
        providers = build_providers_from_settings(settings)
    if origin_policy is _DEFAULT:
        origin_policy = settings.sse_cors_origin_policy

    state = AppState(
        settings=settings,
        registry=registry if registry is not None else SessionRegistry(),
        notices=FailureNotices(),
    )
    prefix = settings.OAUTH2_PATH_PREFIX.rstrip("/")
    success_path = f"{prefix}/success" if settings.ADD_FEEDBACK_ROUTES else None
    failure_path = f"{prefix}/failure" if settings.ADD_FEEDBACK_ROUTES else None

    if result_handler is None:
        result_handler = DefaultResultHandler(
            success_redirect_path=success_path,
            failure_redirect_path=failure_path,
            notices=state.notices,
        )

    app = FastAPI(
        title="AuthBridge",
        description="Session-bridged OAuth2 authorization with Server-Sent Events status",
        version=__version__,
        lifespan=_build_lifespan(state),
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.app_state = state
    app.state.session_registry = state.registry

    app.include_router(
        build_status_router(state.registry, OriginGate(origin_policy)),
        prefix=prefix,
    )

    for name, adapter in index_providers(providers).items():
        flow = AuthorizationFlow(
            adapter=adapter,
            registry=state.registry,
            result_handler=result_handler,
            path_prefix=prefix,
            cookie_path=settings.cookie_path,
            cookie_name=settings.SESSION_COOKIE_NAME,
            first_access_hook=first_access_hook,
        )
        state.flows[name] = flow
        app.include_router(flow.router())

    if settings.ADD_FEEDBACK_ROUTES:
        app.include_router(build_feedback_router(
            state.notices,
            success_path=success_path,
            failure_path=failure_path,
            cookie_name=settings.SESSION_COOKIE_NAME,
        ))

    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Service status, registered providers and open status channels."""
        return HealthResponse(
            status="ok",
            service=SERVICE_NAME,
            version=__version__,
            providers=sorted(state.flows),
            open_sessions=len(state.registry),
        )

    @app.get("/", tags=["System"])
    async def root() -> Dict[str, Any]:
        """Service metadata and the routes of every registered provider."""
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "endpoints": {
                "health": "/health",
                "docs": "/docs",
                "status": f"{prefix}/status",
                "providers": {
                    name: {
                        "login": f"{flow.login_path}/{{session_id}}",
                        "callback": flow.callback_path,
                    }
                    for name, flow in sorted(state.flows.items())
                },
            },
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Callback failures never reach this handler; it covers adapter
        failures while building the authorization URI.
        """
        logger = logging.getLogger("authbridge.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
            },
            exc_info=True,
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "detail": str(exc) if settings.LOG_LEVEL == "DEBUG" else None,
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "authbridge.app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower(),
    )
