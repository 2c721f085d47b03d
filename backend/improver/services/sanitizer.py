"""Make reconstructed rrweb streams safe for a replay engine.

Two passes run over every event: compressed payloads are expanded, then DOM
node trees in full snapshots and mutation adds are validated and pruned.
A node without a numeric ``id`` or ``type`` is removed together with its
whole subtree, since the replayer indexes nodes by id.
"""
import gzip
import json
import zlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from improver.constants import EventType, IncrementalSource, ReplayStatus, GZIP_MAGIC
from improver.utils.events import is_number
from improver.utils.logger import logger

CHILD_KEYS = ("childNodes", "children")
MUTATION_COMPRESSED_FIELDS = ("adds", "removes", "texts", "attributes")


@dataclass
class ReplayResult:
    """Sanitized events plus their playback readiness."""
    status: str
    events: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def playable(self) -> bool:
        return self.status == ReplayStatus.READY


def _as_gzip_bytes(value: Any) -> Optional[bytes]:
    """Return raw bytes when the value carries the gzip magic marker, else None."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str) and value[:2] == GZIP_MAGIC.decode("latin-1"):
        # Compressed payloads travel through JSON as latin-1 "binary strings"
        try:
            raw = value.encode("latin-1")
        except UnicodeEncodeError:
            return None
    else:
        return None
    return raw if raw[:2] == GZIP_MAGIC else None


def decompress_value(value: Any, context: str = "") -> Any:
    """
    Expand a gzip-compressed JSON value.

    Args:
        value: Candidate payload
        context: Description used in the warning if expansion fails

    Returns:
        The decoded JSON value, or the original value when it is not compressed
        or cannot be expanded
    """
    raw = _as_gzip_bytes(value)
    if raw is None:
        return value
    try:
        return json.loads(gzip.decompress(raw).decode("utf-8"))
    except (OSError, EOFError, zlib.error, UnicodeDecodeError, ValueError) as e:
        logger.warning(f"Failed to decompress payload{f' ({context})' if context else ''}: {e}")
        return value


def decompress_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """Expand a compressed event payload and compressed mutation fields."""
    data = event.get("data")
    expanded = decompress_value(data, f"type={event.get('type')} ts={event.get('timestamp')}")
    if expanded is not data:
        event = {**event, "data": expanded}
        data = expanded

    if event.get("type") == EventType.INCREMENTAL_SNAPSHOT and isinstance(data, dict):
        if data.get("source") == IncrementalSource.MUTATION:
            patched = {}
            for key in MUTATION_COMPRESSED_FIELDS:
                if key in data:
                    value = decompress_value(data[key], f"mutation {key}")
                    if value is not data[key]:
                        patched[key] = value
            if patched:
                event = {**event, "data": {**data, **patched}}
    return event


def is_valid_node(node: Any) -> bool:
    return isinstance(node, dict) and is_number(node.get("id")) and is_number(node.get("type"))


def prune_node(node: Any) -> Optional[Dict[str, Any]]:
    """
    Validate a DOM node tree and drop every invalid subtree.

    Args:
        node: Serialized rrweb node

    Returns:
        A pruned copy of the node, or None if the node itself is invalid
    """
    if not is_valid_node(node):
        return None

    pruned = dict(node)
    for key in CHILD_KEYS:
        children = node.get(key)
        if isinstance(children, list):
            kept = []
            for child in children:
                clean = prune_node(child)
                if clean is not None:
                    kept.append(clean)
            pruned[key] = kept
    return pruned


def repair_event(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Prune node trees inside a full snapshot or mutation event. None drops the event."""
    data = event.get("data")
    event_type = event.get("type")
    if not isinstance(data, dict):
        if event_type == EventType.FULL_SNAPSHOT:
            # Undecodable payload: cannot serve as a playback baseline
            logger.warning(f"Dropping full snapshot at {event.get('timestamp')}: unreadable payload")
            return None
        return event

    if event_type == EventType.FULL_SNAPSHOT:
        root = prune_node(data.get("node"))
        if root is None:
            logger.warning(f"Dropping full snapshot at {event.get('timestamp')}: invalid root node")
            return None
        return {**event, "data": {**data, "node": root}}

    if event_type == EventType.INCREMENTAL_SNAPSHOT and data.get("source") == IncrementalSource.MUTATION:
        adds = data.get("adds")
        if isinstance(adds, list):
            kept = []
            for add in adds:
                if not isinstance(add, dict):
                    continue
                node = prune_node(add.get("node"))
                if node is not None:
                    kept.append({**add, "node": node})
            return {**event, "data": {**data, "adds": kept}}

    return event


def sanitize_events(events: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Decompress then repair every event, preserving order."""
    sanitized = []
    for event in events:
        if not isinstance(event, dict):
            continue
        repaired = repair_event(decompress_event(event))
        if repaired is not None:
            sanitized.append(repaired)
    return sanitized


def playback_status(events: List[Dict[str, Any]]) -> str:
    """Classify a sanitized stream: ready needs at least one full snapshot."""
    if not events:
        return ReplayStatus.NO_RECORDING
    if any(e.get("type") == EventType.FULL_SNAPSHOT for e in events):
        return ReplayStatus.READY
    return ReplayStatus.INCOMPLETE


def prepare_replay(events: List[Dict[str, Any]]) -> ReplayResult:
    """Sanitize a stream and attach its playback status."""
    sanitized = sanitize_events(events)
    status = playback_status(sanitized)
    if status == ReplayStatus.INCOMPLETE:
        logger.info(f"Recording has {len(sanitized)} events but no full snapshot")
    return ReplayResult(status=status, events=sanitized)
