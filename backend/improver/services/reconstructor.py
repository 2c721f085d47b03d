"""Rebuild one ordered rrweb stream from a remote recording's fragments."""
import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from improver.config import settings
from improver.constants import SourceKind
from improver.services.remote_client import RemoteRecordingClient
from improver.utils.events import is_valid_event
from improver.utils.logger import logger

WINDOWED_PAYLOAD_KEY = "snapshot_data_by_window_id"


@dataclass
class Reconstruction:
    """Outcome of one reconstruction attempt."""
    recording_id: str
    events: List[Dict[str, Any]] = field(default_factory=list)
    fragments_requested: int = 0
    fragments_failed: int = 0

    @property
    def degraded(self) -> bool:
        """True when some fragments could not be fetched and the stream may have gaps."""
        return self.fragments_failed > 0

    @property
    def empty(self) -> bool:
        return not self.events


# Per-line decoders, tried in order. Each returns the candidate events or None
# when the value is not of its shape.

def _decode_window_tuple(value: Any) -> Optional[List[Any]]:
    if isinstance(value, list) and len(value) == 2 and isinstance(value[0], str):
        return [value[1]]
    return None


def _decode_window_object(value: Any) -> Optional[List[Any]]:
    if not isinstance(value, dict):
        return None
    if ("windowId" in value or "window_id" in value) and isinstance(value.get("data"), list):
        return value["data"]
    return None


def _decode_bare_event(value: Any) -> Optional[List[Any]]:
    if isinstance(value, dict) and "type" in value:
        return [value]
    return None


LINE_DECODERS: Tuple[Callable[[Any], Optional[List[Any]]], ...] = (
    _decode_window_tuple,
    _decode_window_object,
    _decode_bare_event,
)


def decode_value(value: Any) -> List[Dict[str, Any]]:
    """Decode one parsed NDJSON value; the first matching shape wins."""
    for decoder in LINE_DECODERS:
        candidates = decoder(value)
        if candidates is not None:
            return [event for event in candidates if is_valid_event(event)]
    return []


def decode_line(line: str) -> List[Dict[str, Any]]:
    """Decode one NDJSON line; unparseable or malformed lines yield no events."""
    line = line.strip()
    if not line:
        return []
    try:
        parsed = json.loads(line)
    except ValueError:
        return []
    return decode_value(parsed)


def decode_ndjson(text: str) -> List[Dict[str, Any]]:
    events = []
    for line in text.splitlines():
        events.extend(decode_line(line))
    return events


def decode_chunk_payload(payload: Any) -> List[Dict[str, Any]]:
    """
    Decode a legacy chunk or inline payload.

    Accepts a flat event array, an object keyed by window id whose values are
    event arrays (optionally wrapped in ``snapshot_data_by_window_id``), or
    NDJSON text.
    """
    if isinstance(payload, str):
        return decode_ndjson(payload)
    if isinstance(payload, list):
        return [event for event in payload if is_valid_event(event)]
    if isinstance(payload, dict):
        windows = payload.get(WINDOWED_PAYLOAD_KEY, payload)
        if not isinstance(windows, dict):
            return []
        events = []
        for window_events in windows.values():
            if isinstance(window_events, list):
                events.extend(event for event in window_events if is_valid_event(event))
        return events
    return []


def plan_windows(keys: Iterable[int], window_size: int) -> List[Tuple[int, int]]:
    """
    Split chunk keys into inclusive (start, end) ranges of at most window_size keys.

    Args:
        keys: Chunk keys in any order, duplicates allowed
        window_size: Upstream ceiling on keys per range request

    Returns:
        Ranges ordered by key
    """
    if window_size < 1:
        raise ValueError("window_size must be at least 1")
    ordered = sorted(set(keys))
    return [
        (ordered[i], ordered[min(i + window_size, len(ordered)) - 1])
        for i in range(0, len(ordered), window_size)
    ]


def merge_events(fragments: Iterable[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Concatenate fragments, drop exact duplicates and sort globally by timestamp."""
    seen = set()
    merged = []
    for fragment in fragments:
        for event in fragment:
            fingerprint = json.dumps(event, sort_keys=True, default=str)
            if fingerprint in seen:
                continue
            seen.add(fingerprint)
            merged.append(event)
    # Stable: ties keep fragment order
    merged.sort(key=lambda event: event["timestamp"])
    return merged


def _parse_key(source: Dict[str, Any]) -> Optional[int]:
    key = source.get("key", source.get("blob_key"))
    try:
        return int(key)
    except (TypeError, ValueError):
        logger.warning(f"Skipping manifest source with unusable key: {key!r}")
        return None


class Reconstructor:
    """
    Fetch every fragment of a remote recording and merge them into one stream.

    A manifest failure propagates as RemoteFetchError. A chunk or window
    failure is logged and skipped; the stream is then marked degraded.
    """

    def __init__(
        self,
        client: RemoteRecordingClient,
        window_size: Optional[int] = None,
        concurrency: Optional[int] = None,
    ):
        self.client = client
        self.window_size = window_size or settings.remote_chunk_window
        self.concurrency = concurrency or settings.remote_fetch_concurrency

    async def reconstruct(self, recording_id: str) -> Reconstruction:
        manifest = await self.client.fetch_manifest(recording_id)
        result = Reconstruction(recording_id=recording_id)

        if isinstance(manifest, list):
            result.events = merge_events([decode_chunk_payload(manifest)])
            return result
        if not isinstance(manifest, dict):
            return result

        sources = manifest.get("sources")
        if isinstance(sources, list) and sources:
            fragments = await self._fetch_sources(recording_id, sources, result)
        elif WINDOWED_PAYLOAD_KEY in manifest:
            fragments = [decode_chunk_payload(manifest)]
        else:
            fragments = []

        result.events = merge_events(fragments)
        logger.info(
            f"Reconstructed recording {recording_id}: {len(result.events)} events from "
            f"{result.fragments_requested} fragment requests ({result.fragments_failed} failed)"
        )
        return result

    async def _fetch_sources(
        self,
        recording_id: str,
        sources: List[Any],
        result: Reconstruction,
    ) -> List[List[Dict[str, Any]]]:
        inline_fragments = []
        v2_keys = []
        legacy_keys = []
        for source in sources:
            if not isinstance(source, dict):
                continue
            kind = source.get("source")
            kind = SourceKind.ALIASES.get(kind, kind)
            if kind == SourceKind.INLINE:
                inline_fragments.append(decode_chunk_payload(source.get("data")))
            elif kind in (SourceKind.CHUNK_V2, SourceKind.CHUNK):
                key = _parse_key(source)
                if key is None:
                    continue
                (v2_keys if kind == SourceKind.CHUNK_V2 else legacy_keys).append(key)
            else:
                logger.debug(f"Ignoring unknown snapshot source {kind!r} for {recording_id}")

        semaphore = asyncio.Semaphore(self.concurrency)
        jobs = [
            self._guarded(semaphore, f"window {start}-{end}", self._fetch_window(recording_id, start, end))
            for start, end in plan_windows(v2_keys, self.window_size)
        ] + [
            self._guarded(semaphore, f"chunk {key}", self._fetch_legacy(recording_id, key))
            for key in sorted(set(legacy_keys))
        ]
        result.fragments_requested = len(jobs)

        # Barrier: merge only after every fetch has settled
        fetched = await asyncio.gather(*jobs)
        for fragment in fetched:
            if fragment is None:
                result.fragments_failed += 1
        return inline_fragments + [fragment for fragment in fetched if fragment is not None]

    async def _guarded(self, semaphore: asyncio.Semaphore, label: str, fetch) -> Optional[List[Dict[str, Any]]]:
        async with semaphore:
            try:
                return await fetch
            except Exception as e:
                logger.warning(f"Skipping {label} after fetch failure: {e}")
                return None

    async def _fetch_window(self, recording_id: str, start: int, end: int) -> List[Dict[str, Any]]:
        text = await self.client.fetch_chunk_range(recording_id, start, end)
        return decode_ndjson(text)

    async def _fetch_legacy(self, recording_id: str, key: int) -> List[Dict[str, Any]]:
        payload = await self.client.fetch_chunk(recording_id, key)
        return decode_chunk_payload(payload)
