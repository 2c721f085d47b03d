"""Tests for the remote import background jobs."""
from __future__ import annotations

import asyncio

import httpx

from conftest import make_event, make_snapshot, ndjson

from improver.services.recording_store import IngestContext, RecordingStore
from improver.services.remote_client import RemoteRecordingClient
from improver.workers.config import startup, sync_minutes
from improver.workers.tasks import import_remote_recording, iso_to_ms, sync_remote_recordings


class FakeRedis:
    """Mimics arq: an enqueue with a job id that already exists returns None."""

    def __init__(self):
        self.jobs = []
        self.job_ids = set()

    async def enqueue_job(self, name, *args, _job_id=None):
        if _job_id is not None:
            if _job_id in self.job_ids:
                return None
            self.job_ids.add(_job_id)
        self.jobs.append((name, args))
        return object()


def snapshots_handler(events):
    def handler(request: httpx.Request) -> httpx.Response:
        if "source" not in request.url.params:
            return httpx.Response(200, json={"sources": [{"source": "blob_v2", "blob_key": "0"}]})
        return httpx.Response(200, text=ndjson(*[["w", e] for e in events]))
    return handler


def test_iso_to_ms():
    assert iso_to_ms("2024-01-01T00:00:00Z") == 1_704_067_200_000
    assert iso_to_ms("not a date") is None
    assert iso_to_ms(None) is None


def test_import_stores_reconstructed_stream(db, remote_factory):
    events = [make_event(3, 1_500), make_snapshot(1_000)]
    ctx = {"remote_client_factory": lambda: remote_factory(snapshots_handler(events))}
    summary = {"start_url": "https://shop.example.com", "start_time": "2024-01-01T00:00:00Z"}

    result = asyncio.run(import_remote_recording(ctx, "rec-1", summary))

    assert result["success"] is True
    assert result["event_count"] == 2
    recording = RecordingStore(db).get_by_session_id("rec-1")
    assert [e["timestamp"] for e in recording.events] == [1_000, 1_500]
    assert recording.page_url == "https://shop.example.com"
    assert recording.start_time == 1_704_067_200_000


def test_import_without_summary_uses_first_event(db, remote_factory):
    ctx = {"remote_client_factory": lambda: remote_factory(snapshots_handler([make_snapshot(7_000)]))}
    asyncio.run(import_remote_recording(ctx, "rec-1"))
    assert RecordingStore(db).get_by_session_id("rec-1").start_time == 7_000


def test_import_skips_existing(db, remote_factory):
    RecordingStore(db).create("rec-1", [make_event(3, 1)], IngestContext(start_time=1))

    def unreachable(request):
        raise AssertionError("remote should not be contacted")

    ctx = {"remote_client_factory": lambda: remote_factory(unreachable)}
    assert asyncio.run(import_remote_recording(ctx, "rec-1"))["skipped"] is True


def test_import_empty_recording_fails_softly(db, remote_factory):
    ctx = {"remote_client_factory": lambda: remote_factory(lambda request: httpx.Response(200, json={"sources": []}))}
    result = asyncio.run(import_remote_recording(ctx, "rec-1"))
    assert result["success"] is False
    assert RecordingStore(db).get_by_session_id("rec-1") is None


def test_import_manifest_failure_reported(db, remote_factory):
    ctx = {"remote_client_factory": lambda: remote_factory(lambda request: httpx.Response(502))}
    result = asyncio.run(import_remote_recording(ctx, "rec-1"))
    assert result["success"] is False
    assert "502" in result["error"]


def test_sync_queues_missing_recordings(db, remote_factory):
    RecordingStore(db).create("known", [make_event(3, 1)], IngestContext(start_time=1))
    listing = [
        {"id": "known", "start_url": "https://a"},
        {"id": "new-1", "start_url": "https://b"},
        {"start_url": "https://no-id"},
        {"id": "new-2"},
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/session_recordings/")
        return httpx.Response(200, json={"results": listing})

    redis = FakeRedis()
    ctx = {"redis": redis, "remote_client_factory": lambda: remote_factory(handler)}
    result = asyncio.run(sync_remote_recordings(ctx))

    assert result == {"success": True, "recordings_seen": 4, "imports_queued": 2}
    assert [args[0] for _, args in redis.jobs] == ["new-1", "new-2"]
    assert all(name == "import_remote_recording" for name, _ in redis.jobs)
    assert redis.job_ids == {"import:new-1", "import:new-2"}


def test_repeated_sync_does_not_requeue_pending_imports(db, remote_factory):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"results": [{"id": "empty-remote"}]})

    redis = FakeRedis()
    ctx = {"redis": redis, "remote_client_factory": lambda: remote_factory(handler)}
    first = asyncio.run(sync_remote_recordings(ctx))
    second = asyncio.run(sync_remote_recordings(ctx))

    assert first["imports_queued"] == 1
    assert second["imports_queued"] == 0
    assert len(redis.jobs) == 1


def test_sync_listing_failure(db, remote_factory):
    ctx = {"redis": FakeRedis(), "remote_client_factory": lambda: remote_factory(lambda request: httpx.Response(401))}
    assert asyncio.run(sync_remote_recordings(ctx))["success"] is False


def test_sync_cron_minutes():
    assert sync_minutes(5) == {0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55}
    assert sync_minutes(0) == set(range(60))
    assert sync_minutes(90) == {0}


def test_startup_installs_client_factory():
    ctx = {}
    asyncio.run(startup(ctx))
    assert ctx["remote_client_factory"] == RemoteRecordingClient.from_settings
