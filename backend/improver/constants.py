"""Application-wide constants."""


class EventType:
    """rrweb event type codes."""
    DOM_CONTENT_LOADED = 0
    LOAD = 1
    FULL_SNAPSHOT = 2
    INCREMENTAL_SNAPSHOT = 3
    META = 4
    CUSTOM = 5
    PLUGIN = 6

    MIN = DOM_CONTENT_LOADED
    MAX = PLUGIN


class IncrementalSource:
    """rrweb incremental snapshot sources (only the ones we repair)."""
    MUTATION = 0


class ReplayStatus:
    """Playback readiness of a sanitized event stream."""
    READY = "ready"
    INCOMPLETE = "incomplete"  # Events exist but no full snapshot baseline
    NO_RECORDING = "no_recording"


class SourceKind:
    """Fragment kinds listed in a remote snapshot manifest."""
    CHUNK = "chunk"
    CHUNK_V2 = "chunk_v2"
    INLINE = "inline"

    # Upstream (PostHog) names for the same kinds
    ALIASES = {
        "blob": CHUNK,
        "blob_v2": CHUNK_V2,
        "realtime": INLINE,
    }


PENDING_ANALYSIS_SCAN = 50  # Most recent recordings examined for pending analysis
PENDING_ANALYSIS_MIN_EVENTS = 5

# gzip magic marker
GZIP_MAGIC = b"\x1f\x8b"
