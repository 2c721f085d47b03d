"""Ingest & merge store: one growing record per recorder session."""
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from improver.config import settings
from improver.constants import PENDING_ANALYSIS_SCAN, PENDING_ANALYSIS_MIN_EVENTS
from improver.models.recording import Recording
from improver.utils.exceptions import NotFoundError, WriteConflictError
from improver.utils.logger import logger


def now_ms() -> int:
    """Return current time in milliseconds since epoch."""
    return int(time.time() * 1000)


@dataclass
class IngestContext:
    """First-seen metadata captured when a recording is created."""
    page_url: str = "unknown"
    user_agent: str = "unknown"
    start_time: Optional[int] = None
    ip_address: Optional[str] = None
    screen_width: Optional[int] = None
    screen_height: Optional[int] = None
    device_type: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None


class RecordingStore:
    """
    Persist and grow per-session recordings.

    Appends are compare-and-swap on the row's version column: a write that
    lost a race raises StaleDataError on flush, is rolled back, and is
    re-applied to the freshly loaded row.
    """

    def __init__(self, db: Session, clock: Callable[[], int] = now_ms, max_attempts: Optional[int] = None):
        self.db = db
        self.clock = clock
        self.max_attempts = max_attempts or settings.store_max_write_attempts

    def get_by_session_id(self, session_id: str) -> Optional[Recording]:
        return self.db.query(Recording).filter(Recording.session_id == session_id).first()

    def _require(self, session_id: str) -> Recording:
        recording = self.get_by_session_id(session_id)
        if not recording:
            raise NotFoundError(f"Recording not found: {session_id}")
        return recording

    def _write(self, session_id: str, mutate: Callable[[Recording], None]) -> Recording:
        """Apply `mutate` to the current row and commit, retrying on version conflicts."""
        for attempt in range(1, self.max_attempts + 1):
            recording = self._require(session_id)
            mutate(recording)
            try:
                self.db.commit()
                return recording
            except StaleDataError:
                self.db.rollback()
                logger.warning(
                    f"Concurrent write on recording {session_id}, retrying "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
        raise WriteConflictError(
            f"Recording {session_id} kept changing; gave up after {self.max_attempts} attempts"
        )

    def append(self, session_id: str, events: List[Dict[str, Any]]) -> Recording:
        """
        Concatenate events onto an existing recording.

        Args:
            session_id: Recorder session ID
            events: Validated events, in delivery order

        Returns:
            The updated recording

        Raises:
            NotFoundError: If no recording exists for the session yet
        """
        def mutate(recording: Recording) -> None:
            now = self.clock()
            # Assign a new list so the JSON column is marked dirty
            recording.events = list(recording.events or []) + list(events)
            recording.end_time = now
            recording.duration = now - recording.start_time

        recording = self._write(session_id, mutate)
        logger.debug(f"Appended {len(events)} events to recording {session_id}")
        return recording

    def create(self, session_id: str, events: List[Dict[str, Any]], context: IngestContext) -> Recording:
        """
        Create a recording, or append when one already exists for the session.

        Args:
            session_id: Recorder session ID
            events: First batch of validated events
            context: First-seen page/device metadata

        Returns:
            The created or updated recording
        """
        if self.get_by_session_id(session_id):
            return self.append(session_id, events)

        recording = Recording(
            session_id=session_id,
            ip_address=context.ip_address,
            events=list(events),
            start_time=context.start_time or self.clock(),
            page_url=context.page_url or "unknown",
            user_agent=context.user_agent or "unknown",
            screen_width=context.screen_width,
            screen_height=context.screen_height,
            device_type=context.device_type,
            browser=context.browser,
            os=context.os,
            analyzed=False,
        )
        try:
            self.db.add(recording)
            self.db.commit()
        except IntegrityError:
            # Another request created the session first - fall back to append
            self.db.rollback()
            logger.info(f"Recording {session_id} created concurrently, appending instead")
            return self.append(session_id, events)

        logger.info(f"Created recording {session_id} with {len(events)} events")
        return recording

    def mark_analyzed(self, session_id: str) -> Recording:
        def mutate(recording: Recording) -> None:
            recording.analyzed = True

        return self._write(session_id, mutate)

    def save_analysis(self, session_id: str, analysis: Dict[str, Any]) -> Recording:
        """Attach an analysis result and flag the recording as analyzed."""
        def mutate(recording: Recording) -> None:
            recording.analyzed = True
            recording.analysis = analysis

        return self._write(session_id, mutate)

    def list_recent(self, limit: int = 20) -> List[Recording]:
        return self.db.query(Recording).order_by(Recording.start_time.desc()).limit(limit).all()

    def list_by_ip(self, ip_address: str, limit: int = 20) -> List[Recording]:
        return (
            self.db.query(Recording)
            .filter(Recording.ip_address == ip_address)
            .order_by(Recording.start_time.desc())
            .limit(limit)
            .all()
        )

    def pending_analysis(self, limit: int = 5) -> List[Recording]:
        """Recent recordings with enough events that still lack an analysis."""
        recent = self.list_recent(PENDING_ANALYSIS_SCAN)
        pending = [
            r for r in recent
            if (not r.analyzed or not r.analysis) and r.event_count > PENDING_ANALYSIS_MIN_EVENTS
        ]
        return pending[:limit]
