"""
Authentication Package

This package drives the browser side of the session-bridged OAuth2 flow.

Key responsibilities:
- Redirecting the browser to the provider with a correlator cookie
- Running the callback state machine against a provider adapter
- Delivering the outcome to the observing client and the browser
- Serving the success and failure feedback pages

Modules:
- flow: AuthorizationFlow engine (start redirect and callback state machine)
- dispatch: ResultHandler strategies and the default fallback chain
- feedback: localized feedback pages and one-shot failure notices
- jwks: JWKS caching and identity token verification
- providers: Google and Apple adapters on a generic OAuth2 adapter
- errors: adapter exception hierarchy

The authentication flow:
1. Observer allocates a session id and opens the status channel
2. Browser is sent to <prefix>/<provider>/login/<session id>
3. Provider redirects back to <prefix>/<provider>/callback
4. The flow exchanges the code and verifies the identity
5. The result handler pushes the outcome and answers the browser
"""

from .dispatch import (
    DefaultResultHandler,
    FailureContext,
    ResultHandler,
    SuccessContext,
)
from .flow import AuthorizationFlow, FirstAccessHook, FlowState

__all__ = [
    "AuthorizationFlow",
    "DefaultResultHandler",
    "FailureContext",
    "FirstAccessHook",
    "FlowState",
    "ResultHandler",
    "SuccessContext",
]
