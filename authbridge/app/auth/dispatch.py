"""
Result dispatch: how a flow outcome reaches the browser and the observer.

A ResultHandler receives the outcome of one callback request and returns the
HTTP response for it. The default handler implements the fallback chain:

    success: push the user data and close the channel, then redirect to the
             success page if configured, else return the raw profile
    failure: push the error and close the channel, then record the message
             and redirect to the failure page if configured (carrying the
             session id the message is recorded under), else return
             400 {"error": message}

Custom handlers decide themselves whether and when to push through
``sse_dispatcher`` and what HTTP response to produce.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from ..models import Failure, UserData
from ..realtime.sessions import SessionRegistry
from .feedback import FailureNotices

logger = logging.getLogger("authbridge.auth.dispatch")

SseDispatcher = Callable[..., bool]


def make_sse_dispatcher(registry: SessionRegistry, session_id: Optional[str]) -> SseDispatcher:
    """
    Bind a registry dispatch to one session.

    The returned callable takes ``(payload, close=True)`` and is a no-op when
    the session has no open channel.
    """

    def sse_dispatcher(payload: Dict[str, Any], close: bool = True) -> bool:
        return registry.dispatch(session_id, payload, close=close)

    return sse_dispatcher


@dataclass(frozen=True)
class SuccessContext:
    data: UserData
    raw: Any
    request: Request
    session_id: Optional[str]
    sse_dispatcher: SseDispatcher


@dataclass(frozen=True)
class FailureContext:
    failure: Failure
    request: Request
    session_id: Optional[str]
    sse_dispatcher: SseDispatcher


class ResultHandler(ABC):
    """Strategy producing the HTTP response for a flow outcome."""

    @abstractmethod
    async def on_success(self, context: SuccessContext) -> Optional[Response]:
        ...

    @abstractmethod
    async def on_failure(self, context: FailureContext) -> Optional[Response]:
        ...


class DefaultResultHandler(ResultHandler):
    """
    Push-then-respond fallback chain.

    Args:
        success_redirect_path: Page to redirect to on success, if any
        failure_redirect_path: Page to redirect to on failure, if any
        notices: Store for the failure page's one-shot message
    """

    def __init__(
        self,
        success_redirect_path: Optional[str] = None,
        failure_redirect_path: Optional[str] = None,
        notices: Optional[FailureNotices] = None,
    ) -> None:
        self.success_redirect_path = success_redirect_path
        self.failure_redirect_path = failure_redirect_path
        self.notices = notices if notices is not None else FailureNotices()

    async def on_success(self, context: SuccessContext) -> Response:
        context.sse_dispatcher(context.data.to_payload(), close=True)
        if self.success_redirect_path:
            return RedirectResponse(url=self.success_redirect_path, status_code=302)
        return JSONResponse(content=context.raw)

    async def on_failure(self, context: FailureContext) -> Response:
        payload = context.failure.to_payload()
        context.sse_dispatcher(payload, close=True)
        if self.failure_redirect_path:
            self.notices.record(context.session_id, context.failure.message)
            url = self.failure_redirect_path
            if context.session_id:
                # The page may not receive the cookie when the id came from the query
                url = f"{url}?{urlencode({'session_id': context.session_id})}"
            return RedirectResponse(url=url, status_code=302)
        return JSONResponse(status_code=400, content=payload)
