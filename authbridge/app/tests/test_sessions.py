"""
Unit Tests for the Session Registry
===================================

Tests for authbridge/app/realtime/sessions.py

Test Coverage:
--------------
1. create() allocates unique ids without registering anything
2. attach/dispatch/detach lifecycle and the one-sink-per-id invariant
3. SSE wire format of data and terminal events
4. Dispatch to unknown, closed or detached sessions is a silent no-op
"""

import asyncio
import json

import pytest

from authbridge.app.realtime.sessions import (
    CLOSE_EVENT,
    EventSink,
    SessionRegistry,
    format_sse_data,
)

from .conftest import RecordingSink


def test_create_returns_unique_ids_without_registering(registry):
    ids = {registry.create() for _ in range(100)}

    assert len(ids) == 100
    assert len(registry) == 0


def test_attach_registers_exactly_one_sink(registry):
    first = RecordingSink()
    second = RecordingSink()

    registry.attach("abc", first)
    registry.attach("abc", second)

    assert len(registry) == 1
    assert registry.get("abc") is second


def test_attach_closes_replaced_sink(registry):
    first = RecordingSink()
    second = RecordingSink()
    registry.attach("abc", first)
    registry.attach("abc", second)

    assert first.closed
    assert first.chunks == [CLOSE_EVENT]
    assert not second.closed

    registry.detach("abc", first)
    assert registry.get("abc") is second


def test_attach_same_sink_twice_keeps_it_open(registry):
    sink = RecordingSink()
    registry.attach("abc", sink)
    registry.attach("abc", sink)

    assert not sink.closed
    assert sink.chunks == []


def test_dispatch_without_close_keeps_channel_open(registry):
    sink = RecordingSink()
    registry.attach("abc", sink)

    assert registry.dispatch("abc", {"step": 1}, close=False) is True

    assert sink.chunks == ['data: {"step": 1}\n\n']
    assert "abc" in registry
    assert not sink.closed


def test_dispatch_with_close_sends_terminal_marker_and_removes_session(registry):
    sink = RecordingSink()
    registry.attach("abc", sink)

    registry.dispatch("abc", {"provider": "google"}, close=True)

    assert sink.chunks == [format_sse_data({"provider": "google"}), CLOSE_EVENT]
    assert sink.closed
    assert "abc" not in registry


def test_dispatch_closes_by_default(registry):
    sink = RecordingSink()
    registry.attach("abc", sink)

    registry.dispatch("abc", {"ok": True})

    assert "abc" not in registry


def test_stale_dispatch_is_noop(registry):
    sink = RecordingSink()
    registry.attach("abc", sink)
    registry.dispatch("abc", {"first": True})

    assert registry.dispatch("abc", {"second": True}) is False
    assert registry.dispatch("never-attached", {"x": 1}) is False
    assert registry.dispatch(None, {"x": 1}) is False
    assert len(sink.chunks) == 2


def test_detach_removes_mapping_silently(registry):
    sink = RecordingSink()
    registry.attach("abc", sink)

    registry.detach("abc")

    assert "abc" not in registry
    assert sink.chunks == []
    assert registry.dispatch("abc", {"late": True}) is False


def test_detach_with_stale_sink_keeps_newer_channel(registry):
    old = RecordingSink()
    new = RecordingSink()
    registry.attach("abc", old)
    registry.attach("abc", new)

    registry.detach("abc", old)

    assert registry.get("abc") is new


def test_detach_unknown_session_does_not_raise(registry):
    registry.detach("missing")
    assert len(registry) == 0


def test_close_all_closes_every_channel(registry):
    sinks = [RecordingSink() for _ in range(3)]
    for index, sink in enumerate(sinks):
        registry.attach(f"s{index}", sink)

    assert registry.close_all() == 3

    assert len(registry) == 0
    assert all(sink.closed and sink.chunks == [CLOSE_EVENT] for sink in sinks)


def test_format_sse_data_serializes_json():
    chunk = format_sse_data({"error": "access_denied"})

    assert chunk.startswith("data: ")
    assert chunk.endswith("\n\n")
    assert json.loads(chunk[len("data: "):]) == {"error": "access_denied"}


@pytest.mark.asyncio
async def test_sink_stream_yields_until_closed():
    sink = EventSink()
    sink.write("data: 1\n\n")
    sink.write("data: 2\n\n")
    sink.close()

    assert sink.write("data: 3\n\n") is False

    chunks = [chunk async for chunk in sink.stream()]
    assert chunks == ["data: 1\n\n", "data: 2\n\n"]


@pytest.mark.asyncio
async def test_sink_stream_waits_for_late_writes():
    sink = EventSink()
    received = []

    async def consume():
        async for chunk in sink.stream():
            received.append(chunk)

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0)
    sink.write("data: late\n\n")
    sink.close()
    await asyncio.wait_for(consumer, timeout=1)

    assert received == ["data: late\n\n"]
