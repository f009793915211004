"""
Origin gate for the status channel.

The status channel is opened by a page on another origin, so its
Access-Control-Allow-Origin value is decided per request from the configured
origin policy. Policies are evaluated every time and never cached.
"""

import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Union

logger = logging.getLogger("authbridge.realtime.cors")

OriginCallback = Callable[[Optional[Exception], bool], None]
OriginPredicate = Callable[[str, OriginCallback], Union[None, Awaitable[None]]]
OriginPolicy = Union[str, Sequence[str], OriginPredicate, None]


class OriginGate:
    """
    Resolve the allowed origin for one status-channel request.

    Policies:
        - None or "*": every origin, header "*"
        - exact string: header is always the configured origin; the browser
          enforces the match
        - sequence of strings: header echoes the request origin when listed,
          unlisted origins are rejected
        - predicate ``(origin, callback)``: the predicate reports
          ``callback(error, allow)``; it may return an awaitable, which is
          awaited first. A predicate that never calls back, or raises,
          rejects.

    Requests without an Origin header are not cross-origin and open with "*"
    under list and predicate policies.
    """

    def __init__(self, policy: OriginPolicy = "*") -> None:
        if isinstance(policy, (bytes, bytearray)):
            raise TypeError("Origin policy must be str, a sequence of str or a callable")
        self._policy = policy

    @property
    def policy(self) -> OriginPolicy:
        return self._policy

    async def resolve(self, request_origin: Optional[str]) -> Optional[str]:
        """
        Decide the Access-Control-Allow-Origin value.

        Args:
            request_origin: Value of the request's Origin header, if any

        Returns:
            Header value to send, or None when the request must be rejected
        """
        policy = self._policy

        if policy is None or policy == "*":
            return "*"

        if isinstance(policy, str):
            return policy

        if callable(policy):
            if not request_origin:
                return "*"
            return await self._ask_predicate(policy, request_origin)

        allowed: List[str] = list(policy)
        if not request_origin:
            return "*"
        if "*" in allowed or request_origin in allowed:
            return request_origin
        logger.warning(
            "Origin not in allowed list",
            extra={"origin": request_origin},
        )
        return None

    async def _ask_predicate(self, predicate: OriginPredicate, origin: str) -> Optional[str]:
        decision = {"called": False, "error": None, "allow": False}

        def callback(error: Optional[Exception], allow: bool = False) -> None:
            decision["called"] = True
            decision["error"] = error
            decision["allow"] = bool(allow)

        try:
            result = predicate(origin, callback)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.error("Origin predicate raised", extra={"origin": origin}, exc_info=True)
            return None

        if not decision["called"]:
            logger.warning("Origin predicate did not report a decision", extra={"origin": origin})
            return None
        if decision["error"] is not None or not decision["allow"]:
            logger.warning(
                "Origin rejected by predicate",
                extra={"origin": origin, "error": str(decision["error"] or "")},
            )
            return None
        return origin
