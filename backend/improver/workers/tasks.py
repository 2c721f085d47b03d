"""ARQ background tasks for importing remote recordings."""
from datetime import datetime
from typing import Dict, Any, Optional

from improver.config import settings
from improver.database import SessionLocal
from improver.services.reconstructor import Reconstructor
from improver.services.recording_store import IngestContext, RecordingStore
from improver.services.remote_client import RemoteRecordingClient
from improver.utils.exceptions import RemoteFetchError
from improver.utils.logger import logger


def iso_to_ms(value: Optional[str]) -> Optional[int]:
    """Convert an ISO-8601 timestamp to epoch milliseconds."""
    if not value:
        return None
    try:
        return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)
    except ValueError:
        return None


def import_job_id(recording_id: str) -> str:
    return f"import:{recording_id}"


def _client_factory(ctx: Dict[str, Any]):
    return ctx.get("remote_client_factory", RemoteRecordingClient.from_settings)


async def import_remote_recording(
    ctx: Dict[str, Any],
    recording_id: str,
    summary: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Reconstruct a remote recording and store it locally.

    Args:
        ctx: ARQ context
        recording_id: Remote recording ID, also used as the local session ID
        summary: Optional listing entry (start_url, start_time) for metadata

    Returns:
        Dict with success status and details
    """
    db = SessionLocal()

    try:
        store = RecordingStore(db)
        if store.get_by_session_id(recording_id):
            return {"success": True, "skipped": True, "session_id": recording_id}

        async with _client_factory(ctx)() as client:
            reconstruction = await Reconstructor(client).reconstruct(recording_id)

        if reconstruction.empty:
            return {"success": False, "error": "No recording available", "session_id": recording_id}

        summary = summary or {}
        context = IngestContext(
            page_url=summary.get("start_url") or "unknown",
            start_time=iso_to_ms(summary.get("start_time")) or int(reconstruction.events[0]["timestamp"]),
        )
        recording = store.create(recording_id, reconstruction.events, context)

        logger.info(
            f"Imported remote recording {recording_id}: {recording.event_count} events"
            f"{' (degraded)' if reconstruction.degraded else ''}"
        )
        return {
            "success": True,
            "session_id": recording_id,
            "event_count": recording.event_count,
            "degraded": reconstruction.degraded,
        }

    except RemoteFetchError as e:
        logger.error(f"Failed to import remote recording {recording_id}: {e}")
        return {"success": False, "error": str(e), "session_id": recording_id}

    except Exception as e:
        db.rollback()
        logger.error(f"Error importing remote recording {recording_id}: {e}", exc_info=True)
        return {"success": False, "error": str(e), "session_id": recording_id}

    finally:
        db.close()


async def sync_remote_recordings(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """
    List recent remote recordings and queue imports for the ones missing locally.

    Returns:
        Dict with counts of recordings seen and imports queued
    """
    db = SessionLocal()

    try:
        async with _client_factory(ctx)() as client:
            remote = await client.list_recordings(limit=settings.remote_sync_limit)

        store = RecordingStore(db)
        queued = 0
        for entry in remote:
            recording_id = entry.get("id")
            if not recording_id or store.get_by_session_id(recording_id):
                continue
            # Stable id: arq skips the enqueue while an import for this recording is queued or recent
            job = await ctx["redis"].enqueue_job(
                "import_remote_recording", recording_id, entry, _job_id=import_job_id(recording_id)
            )
            if job is not None:
                queued += 1

        return {"success": True, "recordings_seen": len(remote), "imports_queued": queued}

    except Exception as e:
        logger.error(f"Remote recording sync failed: {e}", exc_info=True)
        return {"success": False, "error": str(e)}

    finally:
        db.close()
