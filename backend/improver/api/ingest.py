"""Recording ingestion endpoint."""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from improver.database import get_db
from improver.schemas.ingest import IngestRequest, IngestResponse
from improver.services.recording_store import IngestContext, RecordingStore
from improver.utils.events import split_valid_events
from improver.utils.exceptions import WriteConflictError, conflict_error, validation_error
from improver.utils.logger import logger
from improver.utils.url import client_ip

router = APIRouter(prefix="/api/recordings", tags=["ingest"])


@router.post("/ingest", response_model=IngestResponse)
async def ingest_events(
    payload: IngestRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> IngestResponse:
    """
    Ingest a batch of rrweb events from the recorder.

    The first batch for a session creates the recording; later batches (and
    duplicate creates from retried deliveries) are appended. Events without a
    numeric type/timestamp are dropped before anything is stored.

    Args:
        payload: Batch with session ID, events and page metadata
        request: Raw request, used for the client IP
        db: Database session

    Returns:
        Ingest response with accepted and dropped counts
    """
    if not payload.sessionId or payload.events is None:
        raise validation_error("Missing sessionId or events")

    events, dropped = split_valid_events(payload.events)
    if dropped:
        logger.debug(f"Dropped {dropped} malformed events for session {payload.sessionId}")

    try:
        store = RecordingStore(db)
        metadata = payload.metadata
        context = IngestContext(ip_address=client_ip(request.headers))
        if metadata:
            context.start_time = metadata.startTime
            context.page_url = metadata.pageUrl or "unknown"
            context.user_agent = metadata.userAgent or "unknown"
            context.screen_width = metadata.screenWidth or 0
            context.screen_height = metadata.screenHeight or 0
            context.device_type = metadata.deviceType
            context.browser = metadata.browser
            context.os = metadata.os

        store.create(payload.sessionId, events, context)

        return IngestResponse(
            success=True,
            message="Events ingested successfully",
            eventsReceived=len(events),
            eventsDropped=dropped,
        )

    except HTTPException:
        raise
    except WriteConflictError as e:
        logger.warning(str(e))
        raise conflict_error("Recording is being written concurrently, retry later")
    except Exception as e:
        db.rollback()
        logger.error(
            f"Failed to ingest events for session {payload.sessionId}: {e}",
            exc_info=True
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to ingest recording",
        )
