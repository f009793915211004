"""
Realtime Package

This package contains the push-channel side of the authorization bridge.

Modules:
- sessions: SessionRegistry and the SSE sink backing each channel
- cors: origin policy evaluation for the status channel
- status: session allocation and channel endpoints

The realtime package enables:
- Allocation of opaque session ids for an observing client
- One Server-Sent Events channel per session id
- Delivery of the flow outcome as a single terminal event
"""

from .cors import OriginGate, OriginPolicy
from .sessions import EventSink, SessionRegistry
from .status import build_status_router

__all__ = [
    "EventSink",
    "OriginGate",
    "OriginPolicy",
    "SessionRegistry",
    "build_status_router",
]
