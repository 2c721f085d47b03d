"""Recording read, replay and analysis-attachment endpoints."""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from improver.database import get_db
from improver.schemas.recording import (
    AnalysisAck,
    AnalysisPayload,
    RecordingDetail,
    RecordingListItem,
    ReplayResponse,
)
from improver.services.recording_store import RecordingStore
from improver.services.sanitizer import prepare_replay
from improver.utils.exceptions import NotFoundError, not_found_error
from improver.utils.logger import logger
from improver.utils.url import decode_session_id

router = APIRouter(prefix="/api/recordings", tags=["recordings"])


@router.get("", response_model=List[RecordingListItem])
async def list_recordings(
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
) -> List[RecordingListItem]:
    """List the most recent recordings (without events)."""
    try:
        recordings = RecordingStore(db).list_recent(limit)
        return [RecordingListItem.from_orm(r) for r in recordings]
    except Exception as e:
        logger.error(f"Failed to list recordings: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to list recordings: {str(e)}",
        )


@router.get("/pending-analysis", response_model=List[RecordingDetail])
async def list_pending_analysis(
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
) -> List[RecordingDetail]:
    """Recordings the analysis collaborator still has to process."""
    recordings = RecordingStore(db).pending_analysis(limit)
    return [RecordingDetail.from_orm(r) for r in recordings]


@router.get("/by-ip/{ip_address}", response_model=List[RecordingListItem])
async def list_recordings_by_ip(
    ip_address: str,
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
) -> List[RecordingListItem]:
    """List recordings captured from one client IP."""
    recordings = RecordingStore(db).list_by_ip(ip_address, limit)
    return [RecordingListItem.from_orm(r) for r in recordings]


@router.get("/{session_id}", response_model=RecordingDetail)
async def get_recording(
    session_id: str,
    db: Session = Depends(get_db),
) -> RecordingDetail:
    """
    Get a recording with its full accumulated event list.

    Args:
        session_id: Recorder session ID (may be URL-encoded)
        db: Database session

    Returns:
        Recording detail
    """
    decoded_session_id = decode_session_id(session_id)
    recording = RecordingStore(db).get_by_session_id(decoded_session_id)
    if not recording:
        raise not_found_error("Recording", decoded_session_id)
    return RecordingDetail.from_orm(recording)


@router.get("/{session_id}/replay", response_model=ReplayResponse)
async def get_recording_replay(
    session_id: str,
    db: Session = Depends(get_db),
) -> ReplayResponse:
    """
    Get the sanitized, time-ordered event stream for playback.

    A recording without a full snapshot answers 200 with status "incomplete";
    the record itself stays readable through GET /api/recordings/{session_id}.
    """
    try:
        decoded_session_id = decode_session_id(session_id)
        recording = RecordingStore(db).get_by_session_id(decoded_session_id)
        if not recording:
            raise not_found_error("Recording", decoded_session_id)

        ordered = sorted(recording.events or [], key=lambda e: e.get("timestamp", 0))
        result = prepare_replay(ordered)
        return ReplayResponse(
            session_id=decoded_session_id,
            status=result.status,
            event_count=len(result.events),
            events=result.events,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to prepare replay for {session_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to prepare replay: {str(e)}",
        )


@router.post("/{session_id}/analyzed", response_model=AnalysisAck)
async def mark_recording_analyzed(
    session_id: str,
    db: Session = Depends(get_db),
) -> AnalysisAck:
    """Flag a recording as analyzed without attaching a result."""
    decoded_session_id = decode_session_id(session_id)
    try:
        recording = RecordingStore(db).mark_analyzed(decoded_session_id)
    except NotFoundError:
        raise not_found_error("Recording", decoded_session_id)
    return AnalysisAck(success=True, session_id=recording.session_id, analyzed=recording.analyzed)


@router.post("/{session_id}/analysis", response_model=AnalysisAck)
async def save_recording_analysis(
    session_id: str,
    analysis: AnalysisPayload,
    db: Session = Depends(get_db),
) -> AnalysisAck:
    """Attach the analysis collaborator's result to a recording."""
    decoded_session_id = decode_session_id(session_id)
    try:
        recording = RecordingStore(db).save_analysis(decoded_session_id, analysis.model_dump())
    except NotFoundError:
        raise not_found_error("Recording", decoded_session_id)
    logger.info(f"Saved analysis for recording {decoded_session_id}")
    return AnalysisAck(success=True, session_id=recording.session_id, analyzed=recording.analyzed)
