"""Replay endpoints for recordings held by the remote recording service."""
from fastapi import APIRouter, Depends, HTTPException, status

from improver.schemas.recording import RemoteImportResponse, ReplayResponse
from improver.services.reconstructor import Reconstructor
from improver.services.remote_client import RemoteRecordingClient
from improver.services.sanitizer import prepare_replay
from improver.utils.exceptions import RemoteFetchError, bad_gateway_error
from improver.utils.logger import logger
from improver.utils.remote_queue import queue_remote_import
from improver.utils.url import decode_session_id

router = APIRouter(prefix="/api/remote-recordings", tags=["remote"])


def get_remote_client() -> RemoteRecordingClient:
    """Dependency for the configured remote recording client."""
    try:
        return RemoteRecordingClient.from_settings()
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.get("/{recording_id}/replay", response_model=ReplayResponse)
async def get_remote_replay(
    recording_id: str,
    client: RemoteRecordingClient = Depends(get_remote_client),
) -> ReplayResponse:
    """
    Reconstruct a remote recording and return it ready for playback.

    Status "no_recording" means the service had nothing usable; a manifest
    failure answers 502 so the viewer can show "failed to load" instead.
    """
    decoded_id = decode_session_id(recording_id)
    try:
        async with client:
            reconstruction = await Reconstructor(client).reconstruct(decoded_id)
    except RemoteFetchError as e:
        raise bad_gateway_error(f"Failed to load recording {decoded_id}: {e}")

    if reconstruction.degraded:
        logger.warning(
            f"Recording {decoded_id} reconstructed with {reconstruction.fragments_failed} "
            f"of {reconstruction.fragments_requested} fragments missing"
        )

    result = prepare_replay(reconstruction.events)
    return ReplayResponse(
        session_id=decoded_id,
        status=result.status,
        event_count=len(result.events),
        events=result.events,
    )


@router.post("/{recording_id}/import", response_model=RemoteImportResponse)
async def import_remote_recording(recording_id: str) -> RemoteImportResponse:
    """Queue a background import of a remote recording into the local store."""
    decoded_id = decode_session_id(recording_id)
    queued = await queue_remote_import(decoded_id)
    return RemoteImportResponse(
        success=queued,
        message="Import queued" if queued else "Failed to queue import",
        job_queued=queued,
    )
