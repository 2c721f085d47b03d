"""Tests for the client-side recorder, its session context and delivery."""
from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from conftest import make_event, make_snapshot

from improver.capture.lifecycle import Lifecycle, LifecycleEvent, VisibilityState
from improver.capture.recorder import PageInfo, Recorder
from improver.capture.session_context import SESSION_STORAGE_KEY, SessionContext, SessionState
from improver.capture.transport import DeliveryTransport
from improver.capture.user_agent import parse_user_agent

INGEST_URL = "https://api.example.com/api/recordings/ingest"
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


class FakeTransport:
    """Records every batch; the first `failures` sends are refused."""

    def __init__(self, failures: int = 0):
        self.sent = []
        self.failures = failures

    async def send(self, session_id, batch, metadata, on_failure):
        if self.failures:
            self.failures -= 1
            on_failure(batch)
            return False
        self.sent.append((session_id, list(batch), metadata))
        return True


def timestamps(batch):
    return [event["timestamp"] for event in batch]


class TestRecorder:
    """Tests for batching and flush triggers."""

    def test_timer_flush_sends_once_in_order(self):
        transport = FakeTransport()

        async def scenario():
            recorder = Recorder(transport, flush_interval=0.05)
            session_id = recorder.init()
            recorder.record(make_snapshot(1))
            recorder.record(make_event(3, 2))
            await asyncio.sleep(0.2)
            await recorder.force_stop()
            return session_id

        session_id = asyncio.run(scenario())
        assert len(transport.sent) == 1
        sent_id, batch, _ = transport.sent[0]
        assert sent_id == session_id
        assert timestamps(batch) == [1, 2]

    def test_batch_size_triggers_flush(self):
        transport = FakeTransport()

        async def scenario():
            recorder = Recorder(transport, batch_size=3, flush_interval=60)
            recorder.init()
            for ts in (1, 2, 3):
                recorder.record(make_event(3, ts))
            await recorder.settle()
            assert recorder.pending == []
            recorder.record(make_event(3, 4))
            await recorder.settle()
            assert timestamps(recorder.pending) == [4]
            await recorder.force_stop()

        asyncio.run(scenario())
        assert [timestamps(batch) for _, batch, _ in transport.sent] == [[1, 2, 3], [4]]

    def test_failed_batch_is_resent_before_newer_events(self):
        transport = FakeTransport(failures=1)

        async def scenario():
            recorder = Recorder(transport, flush_interval=60)
            recorder.init()
            recorder.record(make_event(3, 1))
            recorder.record(make_event(3, 2))
            assert await recorder.flush() is False
            recorder.record(make_event(3, 3))
            assert await recorder.flush() is True
            await recorder.force_stop()

        asyncio.run(scenario())
        assert [timestamps(batch) for _, batch, _ in transport.sent] == [[1, 2, 3]]

    def test_flush_with_empty_queue_sends_nothing(self):
        transport = FakeTransport()

        async def scenario():
            recorder = Recorder(transport, flush_interval=60)
            recorder.init()
            result = await recorder.flush()
            await recorder.force_stop()
            return result

        assert asyncio.run(scenario()) is False
        assert transport.sent == []

    def test_malformed_and_stopped_events_dropped(self):
        transport = FakeTransport()

        async def scenario():
            recorder = Recorder(transport, flush_interval=60)
            recorder.record(make_event(3, 1))  # not started yet
            recorder.init()
            recorder.record({"type": "x", "timestamp": 2})
            recorder.record({"type": 3})
            recorder.record(make_event(3, 3))
            recorder.stop()
            recorder.record(make_event(3, 4))
            pending = recorder.pending
            await recorder.force_stop()
            return pending

        assert timestamps(asyncio.run(scenario())) == [3]

    def test_init_is_idempotent(self):
        lifecycle = Lifecycle()
        storage = {}

        async def scenario():
            recorder = Recorder(FakeTransport(), context=SessionContext(storage), flush_interval=60)
            first = recorder.init(lifecycle)
            second = recorder.init(lifecycle)
            recorder.stop()
            third = recorder.init(lifecycle, mask_all_inputs=False)
            timer = recorder._timer
            await recorder.force_stop()
            return first, second, third, timer, recorder.options

        first, second, third, timer, options = asyncio.run(scenario())
        assert first == second == third
        assert timer is not None
        assert options.mask_all_inputs is False
        for name in (LifecycleEvent.BEFORE_UNLOAD, LifecycleEvent.PAGE_HIDE, LifecycleEvent.VISIBILITY_CHANGE):
            assert lifecycle.listener_count(name) == 1

    def test_reinit_after_force_stop_gets_new_session_without_new_listeners(self):
        lifecycle = Lifecycle()

        async def scenario():
            recorder = Recorder(FakeTransport(), flush_interval=60)
            first = recorder.init(lifecycle)
            await recorder.force_stop()
            second = recorder.init(lifecycle)
            await recorder.force_stop()
            return first, second

        first, second = asyncio.run(scenario())
        assert first != second
        assert lifecycle.listener_count(LifecycleEvent.PAGE_HIDE) == 1

    def test_visibility_hidden_flushes_visible_does_not(self):
        transport = FakeTransport()
        lifecycle = Lifecycle()

        async def scenario():
            recorder = Recorder(transport, flush_interval=60)
            recorder.init(lifecycle)
            recorder.record(make_event(3, 1))
            lifecycle.dispatch(LifecycleEvent.VISIBILITY_CHANGE, VisibilityState.VISIBLE)
            await recorder.settle()
            assert transport.sent == []
            lifecycle.dispatch(LifecycleEvent.VISIBILITY_CHANGE, VisibilityState.HIDDEN)
            await recorder.settle()
            assert len(transport.sent) == 1
            recorder.record(make_event(3, 2))
            lifecycle.dispatch(LifecycleEvent.PAGE_HIDE)
            await recorder.settle()
            await recorder.force_stop()

        asyncio.run(scenario())
        assert [timestamps(batch) for _, batch, _ in transport.sent] == [[1], [2]]

    def test_force_stop_flushes_and_forgets_session(self):
        transport = FakeTransport()
        storage = {}

        async def scenario():
            context = SessionContext(storage)
            recorder = Recorder(transport, context=context, flush_interval=60)
            recorder.init()
            assert SESSION_STORAGE_KEY in storage
            recorder.record(make_event(3, 1))
            await recorder.force_stop()
            return context, recorder

        context, recorder = asyncio.run(scenario())
        assert SESSION_STORAGE_KEY not in storage
        assert context.state == SessionState.ENDED
        assert not recorder.recording
        assert len(transport.sent) == 1

    def test_failed_teardown_flush_does_not_leak_into_later_flushes(self):
        transport = FakeTransport(failures=1)

        async def scenario():
            recorder = Recorder(transport, flush_interval=60)
            recorder.init()
            recorder.record(make_event(3, 1))
            await recorder.force_stop()
            pending_after_stop = recorder.pending
            flushed = await recorder.flush()
            return pending_after_stop, flushed

        pending_after_stop, flushed = asyncio.run(scenario())
        assert pending_after_stop == []
        assert flushed is False
        assert transport.sent == []

    def test_events_of_ended_session_never_sent_under_next_session(self):
        transport = FakeTransport(failures=1)

        async def scenario():
            recorder = Recorder(transport, flush_interval=60)
            recorder.init()
            recorder.record(make_event(3, 1))
            await recorder.force_stop()
            second = recorder.init()
            recorder.record(make_event(3, 2))
            await recorder.flush()
            await recorder.force_stop()
            return second

        second = asyncio.run(scenario())
        assert [(sid, timestamps(batch)) for sid, batch, _ in transport.sent] == [(second, [2])]

    def test_flush_without_active_session_keeps_queue(self):
        transport = FakeTransport()

        async def scenario():
            recorder = Recorder(transport, flush_interval=60)
            recorder.init()
            recorder.record(make_event(3, 1))
            recorder.context.end()
            flushed = await recorder.flush()
            pending = recorder.pending
            recorder._timer.cancel()
            return flushed, pending

        flushed, pending = asyncio.run(scenario())
        assert flushed is False
        assert timestamps(pending) == [1]
        assert transport.sent == []

    def test_metadata_describes_page_and_device(self):
        page = PageInfo(url="https://shop.example.com", user_agent=IPHONE_UA, screen_width=390, screen_height=844)

        async def scenario():
            recorder = Recorder(FakeTransport(), page=page, flush_interval=60)
            recorder.init()
            metadata = recorder.metadata()
            await recorder.force_stop()
            return metadata, recorder.context.started_at

        metadata, started_at = asyncio.run(scenario())
        assert metadata["pageUrl"] == "https://shop.example.com"
        assert metadata["startTime"] == started_at
        assert (metadata["screenWidth"], metadata["screenHeight"]) == (390, 844)
        assert (metadata["deviceType"], metadata["browser"], metadata["os"]) == ("mobile", "Safari", "iOS")


class TestDeliveryTransport:
    """Tests for the beacon/POST delivery channel."""

    def test_at_least_once_over_flaky_network(self):
        """Every other POST fails; all events still arrive once, in order."""
        delivered = []
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) % 2 == 1:
                return httpx.Response(503)
            delivered.extend(json.loads(request.content)["events"])
            return httpx.Response(200, json={"success": True})

        async def scenario():
            client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            transport = DeliveryTransport(INGEST_URL, client=client)
            recorder = Recorder(transport, flush_interval=60)
            recorder.init()
            ts = 0
            for _ in range(4):
                for _ in range(3):
                    ts += 1
                    recorder.record(make_event(3, ts))
                await recorder.flush()
            while recorder.pending:
                await recorder.flush()
            await recorder.force_stop()
            await transport.aclose()
            return ts

        total = asyncio.run(scenario())
        assert timestamps(delivered) == list(range(1, total + 1))

    def test_network_error_requeues(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        requeued = []

        async def scenario():
            client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            transport = DeliveryTransport(INGEST_URL, client=client)
            result = await transport.send("s", [make_event(3, 1)], {}, on_failure=requeued.append)
            await transport.aclose()
            return result

        assert asyncio.run(scenario()) is False
        assert requeued == [[make_event(3, 1)]]

    def test_beacon_preferred_and_encodes_payload(self):
        bodies = []

        def beacon(url: str, body: bytes) -> bool:
            bodies.append((url, json.loads(body)))
            return True

        transport = DeliveryTransport(INGEST_URL, beacon=beacon)
        ok = asyncio.run(transport.send("sess-1", [make_event(3, 1)], {"pageUrl": "x"}, on_failure=pytest.fail))
        assert ok is True
        url, payload = bodies[0]
        assert url == INGEST_URL
        assert payload == {"sessionId": "sess-1", "events": [make_event(3, 1)], "metadata": {"pageUrl": "x"}}

    def test_beacon_refusal_requeues_in_recorder(self):
        async def scenario():
            transport = DeliveryTransport(INGEST_URL, beacon=lambda url, body: False)
            recorder = Recorder(transport, flush_interval=60)
            recorder.init()
            recorder.record(make_event(3, 1))
            recorder.record(make_event(3, 2))
            result = await recorder.flush()
            pending = recorder.pending
            recorder.stop()
            recorder._timer.cancel()
            return result, pending

        result, pending = asyncio.run(scenario())
        assert result is False
        assert timestamps(pending) == [1, 2]

    def test_beacon_exception_counts_as_refusal(self):
        def beacon(url, body):
            raise RuntimeError("quota exceeded")

        requeued = []
        transport = DeliveryTransport(INGEST_URL, beacon=beacon)
        assert asyncio.run(transport.send("s", [make_event(3, 1)], {}, on_failure=requeued.append)) is False
        assert len(requeued) == 1


class TestSessionContext:
    """Tests for the session id state machine."""

    def test_persisted_id_is_reused(self):
        storage = {SESSION_STORAGE_KEY: "existing-id"}
        assert SessionContext(storage).start() == "existing-id"

    def test_new_id_is_persisted(self):
        storage = {}
        session_id = SessionContext(storage).start()
        assert storage[SESSION_STORAGE_KEY] == session_id
        assert SessionContext(storage).start() == session_id

    def test_idle_context_has_no_session_id(self):
        context = SessionContext()
        assert context.state == SessionState.IDLE
        with pytest.raises(RuntimeError):
            _ = context.session_id

    def test_end_then_start_creates_fresh_id(self):
        context = SessionContext()
        first = context.start()
        context.end()
        assert context.state == SessionState.ENDED
        assert not context.active
        second = context.start()
        assert second != first
        assert context.session_id == second


class TestUserAgent:
    """Tests for device/browser/OS classification."""

    @pytest.mark.parametrize("user_agent,expected", [
        (IPHONE_UA, ("mobile", "Safari", "iOS")),
        (
            "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
            "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1",
            ("tablet", "Safari", "iOS"),
        ),
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            ("desktop", "Chrome", "Windows"),
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/605.1.15 "
            "(KHTML, like Gecko) Version/17.0 Safari/605.1.15",
            ("desktop", "Safari", "macOS"),
        ),
        ("Mozilla/5.0 (Android 14; Mobile; rv:121.0) Gecko/121.0 Firefox/121.0", ("mobile", "Firefox", "Android")),
        ("Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0", ("desktop", "Firefox", "Linux")),
        ("", ("desktop", "Unknown", "Unknown")),
    ])
    def test_classification(self, user_agent, expected):
        info = parse_user_agent(user_agent)
        assert (info.device_type, info.browser, info.os) == expected
