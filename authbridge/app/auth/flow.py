"""
Authorization flow engine.

One AuthorizationFlow serves one provider adapter:

    GET  <prefix>/<provider>/login/{session_id}
        sets the correlator cookie and redirects to the provider
    GET|POST <prefix>/<provider>/callback
        runs the callback state machine and hands the outcome to the
        result handler

Callback state machine (one attempt per request, never retried):

    PENDING -> VALIDATING -> EXCHANGING -> VERIFYING -> DELIVERED
                    \\             \\            \\
                     +-------------+------------+--> FAILED

A client disconnect on the status channel does not cancel a running
callback; its final dispatch simply finds no channel.
"""

import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse, Response

from ..models import (
    CallbackParams,
    Delivered,
    Failed,
    Failure,
    FirstAccessProfile,
    Outcome,
    TokenSet,
    UserData,
)
from ..realtime.sessions import SessionRegistry
from .dispatch import (
    FailureContext,
    ResultHandler,
    SuccessContext,
    make_sse_dispatcher,
)
from .errors import ProviderError
from .providers.base import ProviderAdapter

logger = logging.getLogger("authbridge.auth.flow")

FirstAccessHook = Callable[[str, FirstAccessProfile], Union[None, Awaitable[None]]]


class FlowState(str, Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    EXCHANGING = "exchanging"
    VERIFYING = "verifying"
    DELIVERED = "delivered"
    FAILED = "failed"


def validate_callback_params(params: CallbackParams) -> Optional[Failed]:
    """
    Reject callbacks that cannot be legitimate.

    A missing state is checked first: a well-formed callback always carries
    one, with or without an error.
    """
    if not params.state:
        return Failed(failure=Failure.missing_state())
    if params.error:
        return Failed(failure=Failure.provider_denied(params.error))
    return None


def append_session_id(uri: str, session_id: str) -> str:
    separator = "&" if "?" in uri else "?"
    return f"{uri}{separator}{urlencode({'session_id': session_id})}"


class AuthorizationFlow:
    """
    Session-bridged authorization-code flow for one provider.

    Args:
        adapter: Provider capability set
        registry: Session registry shared with the status endpoint
        result_handler: Strategy turning outcomes into HTTP responses
        path_prefix: Route prefix, e.g. "/oauth2"
        cookie_path: Path scope of the correlator cookie
        cookie_name: Name of the correlator cookie
        first_access_hook: Called with (provider, profile) when the provider
            sends a first-access payload; failures are logged and ignored
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        registry: SessionRegistry,
        result_handler: ResultHandler,
        path_prefix: str = "/oauth2",
        cookie_path: Optional[str] = None,
        cookie_name: str = "session_id",
        first_access_hook: Optional[FirstAccessHook] = None,
    ) -> None:
        self.adapter = adapter
        self.registry = registry
        self.result_handler = result_handler
        self.path_prefix = path_prefix.rstrip("/")
        self.cookie_path = cookie_path or self.path_prefix or "/"
        self.cookie_name = cookie_name
        self.first_access_hook = first_access_hook

    @property
    def provider(self) -> str:
        return self.adapter.name

    @property
    def login_path(self) -> str:
        return f"{self.path_prefix}/{self.provider}/login"

    @property
    def callback_path(self) -> str:
        return f"{self.path_prefix}/{self.provider}/callback"

    # =========================================================================
    # Start redirect
    # =========================================================================

    async def start(self, request: Request, session_id: str) -> RedirectResponse:
        """
        Redirect the browser to the provider.

        The session id travels both in the correlator cookie and in the
        redirect query. Adapter errors propagate: they are configuration
        problems, not user-recoverable.
        """
        response = RedirectResponse(url="/", status_code=302)
        uri = await self.adapter.generate_authorization_uri(request, response)
        response.headers["location"] = append_session_id(uri, session_id)
        response.set_cookie(
            self.cookie_name,
            session_id,
            path=self.cookie_path,
            httponly=True,
            samesite=self.adapter.cookie_same_site,
            secure=self.adapter.cookie_secure,
        )
        logger.info(
            "Redirecting to provider",
            extra={"provider": self.provider, "session_id": session_id},
        )
        return response

    # =========================================================================
    # Callback state machine
    # =========================================================================

    def read_session_id(self, request: Request, params: Optional[CallbackParams] = None) -> Optional[str]:
        session_id = request.cookies.get(self.cookie_name)
        if not session_id and params is not None:
            session_id = params.session_id
        return session_id or None

    async def _notify_first_access(self, params: CallbackParams) -> None:
        if not params.user or self.first_access_hook is None:
            return
        try:
            profile = self.adapter.first_access_profile(params)
            if profile is None:
                return
            result = self.first_access_hook(self.provider, profile)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.error(
                "First access hook failed",
                extra={"provider": self.provider},
                exc_info=True,
            )
            logger.debug("First access payload: %s", params.user)

    async def _exchange(self, params: CallbackParams, request: Request) -> Union[TokenSet, Failed]:
        try:
            return await self.adapter.exchange_code(params, request)
        except (ProviderError, httpx.HTTPError) as e:
            logger.warning(
                "Token exchange failed",
                extra={"provider": self.provider, "error": str(e)},
            )
            return Failed(failure=Failure.token_exchange(e))

    async def _verify(self, token: TokenSet) -> Union[Any, Failed]:
        try:
            profile = await self.adapter.fetch_identity(token)
        except (ProviderError, httpx.HTTPError) as e:
            logger.warning(
                "Identity verification failed",
                extra={"provider": self.provider, "error": str(e)},
            )
            return Failed(failure=Failure.identity_verification(str(e) or "No id_token found."))
        if not profile:
            return Failed(failure=Failure.identity_verification())
        return profile

    async def run(self, request: Request, params: Optional[CallbackParams] = None) -> Outcome:
        """
        Drive one callback request to an outcome.

        Never raises: unexpected exceptions become an unknown_error failure.
        """
        state = FlowState.PENDING
        try:
            state = FlowState.VALIDATING
            if params is None:
                params = await self.adapter.read_callback_params(request)
            await self._notify_first_access(params)
            rejected = validate_callback_params(params)
            if rejected is not None:
                return rejected

            state = FlowState.EXCHANGING
            token = await self._exchange(params, request)
            if isinstance(token, Failed):
                return token

            state = FlowState.VERIFYING
            profile = await self._verify(token)
            if isinstance(profile, Failed):
                return profile

            data = UserData(provider=self.provider, **{self.adapter.profile_field: profile})
            state = FlowState.DELIVERED
            return Delivered(data=data, raw=profile)
        except Exception as e:
            logger.error(
                "Unexpected error in callback",
                extra={"provider": self.provider, "state": state.value},
                exc_info=True,
            )
            return Failed(failure=Failure.unknown(e))

    async def handle_callback(self, request: Request) -> Response:
        """Run the state machine and produce exactly one HTTP response."""
        params: Optional[CallbackParams] = None
        try:
            params = await self.adapter.read_callback_params(request)
        except Exception as e:
            logger.error(
                "Unable to read callback parameters",
                extra={"provider": self.provider},
                exc_info=True,
            )
            outcome: Outcome = Failed(failure=Failure.unknown(e))
        else:
            outcome = await self.run(request, params)

        session_id = self.read_session_id(request, params)
        sse_dispatcher = make_sse_dispatcher(self.registry, session_id)

        if isinstance(outcome, Delivered):
            logger.info(
                "Authorization flow delivered",
                extra={"provider": self.provider, "session_id": session_id},
            )
            response = await self.result_handler.on_success(SuccessContext(
                data=outcome.data,
                raw=outcome.raw,
                request=request,
                session_id=session_id,
                sse_dispatcher=sse_dispatcher,
            ))
        else:
            logger.warning(
                "Authorization flow failed",
                extra={
                    "provider": self.provider,
                    "session_id": session_id,
                    "failure": outcome.failure.kind.value,
                },
            )
            response = await self.result_handler.on_failure(FailureContext(
                failure=outcome.failure,
                request=request,
                session_id=session_id,
                sse_dispatcher=sse_dispatcher,
            ))

        if response is None:
            logger.warning(
                "Result handler produced no response",
                extra={"provider": self.provider},
            )
            return Response(status_code=204)
        return response

    # =========================================================================
    # Routes
    # =========================================================================

    def router(self) -> APIRouter:
        router = APIRouter(tags=[f"oauth2:{self.provider}"])

        @router.get(self.login_path + "/{session_id}")
        async def login(request: Request, session_id: str) -> RedirectResponse:
            return await self.start(request, session_id)

        router.add_api_route(
            self.callback_path,
            self.handle_callback,
            methods=list(self.adapter.callback_methods),
            name=f"{self.provider}_callback",
        )

        return router
