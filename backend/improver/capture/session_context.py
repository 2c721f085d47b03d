"""Recorder session identity and its lifecycle."""
import logging
import time
import uuid
from typing import MutableMapping, Optional

logger = logging.getLogger("improver.capture")

# sessionStorage key the browser recorder uses; kept for parity across hosts
SESSION_STORAGE_KEY = "_improverSessionId"


class SessionState:
    """Session context states."""
    IDLE = "idle"
    ACTIVE = "active"
    ENDED = "ended"


class SessionContext:
    """
    Explicit holder of the current recording session id.

    The id is persisted in a sessionStorage-like mapping so that a recorder
    re-created within the same browsing session (remounts) reuses it.

    Transitions: idle -> active (start), active -> active (start is a no-op),
    active -> ended (end), ended -> active (start with a fresh id).
    """

    def __init__(self, storage: Optional[MutableMapping[str, str]] = None):
        self.storage = storage if storage is not None else {}
        self.state = SessionState.IDLE
        self._session_id: Optional[str] = None
        self.started_at: Optional[int] = None

    @property
    def session_id(self) -> str:
        if self.state != SessionState.ACTIVE or not self._session_id:
            raise RuntimeError(f"No active recording session (state: {self.state})")
        return self._session_id

    @property
    def active(self) -> bool:
        return self.state == SessionState.ACTIVE

    def start(self) -> str:
        """Activate the context, reusing a persisted id when one exists."""
        if self.state == SessionState.ACTIVE:
            return self._session_id

        session_id = self.storage.get(SESSION_STORAGE_KEY)
        if not session_id:
            session_id = str(uuid.uuid4())
            self.storage[SESSION_STORAGE_KEY] = session_id
            logger.info(f"Starting session recording: {session_id}")
        else:
            logger.debug(f"Resuming session recording: {session_id}")

        self._session_id = session_id
        self.started_at = int(time.time() * 1000)
        self.state = SessionState.ACTIVE
        return session_id

    def end(self) -> None:
        """End the session and forget the persisted id (explicit logout/teardown)."""
        self.storage.pop(SESSION_STORAGE_KEY, None)
        self.state = SessionState.ENDED
        self._session_id = None
