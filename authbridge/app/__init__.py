"""
AuthBridge Application Package
==============================

FastAPI application that lets a browser complete a third-party OAuth2
authorization-code flow while a separate, long-lived client observes the
outcome over a Server-Sent Events channel keyed by an opaque session id.

Sub-packages:
    - auth:     authorization flow engine, result dispatch, provider adapters,
                feedback pages
    - realtime: session registry, SSE sinks, origin gate and status endpoint
"""
