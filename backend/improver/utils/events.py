"""rrweb event shape checks shared by ingest, reconstruction and capture."""
from typing import Any, Iterable, List, Tuple

from improver.constants import EventType


def is_number(value: Any) -> bool:
    """True for int/float values; bools are rejected even though they subclass int."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_valid_event(event: Any) -> bool:
    """
    Check that an event carries a numeric rrweb type and a numeric timestamp.

    Args:
        event: Candidate event (any decoded JSON value)

    Returns:
        True if the event may be stored or replayed
    """
    if not isinstance(event, dict):
        return False
    event_type = event.get("type")
    if not is_number(event_type) or not is_number(event.get("timestamp")):
        return False
    # Types are integral codes; 2.0 passes, 2.5 does not
    if not float(event_type).is_integer():
        return False
    return EventType.MIN <= event_type <= EventType.MAX


def split_valid_events(events: Iterable[Any]) -> Tuple[List[dict], int]:
    """Return the valid events in their original order and the number dropped."""
    valid = []
    dropped = 0
    for event in events:
        if is_valid_event(event):
            valid.append(event)
        else:
            dropped += 1
    return valid, dropped
