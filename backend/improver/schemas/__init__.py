"""Pydantic schemas for request/response validation."""
from improver.schemas.ingest import IngestRequest, IngestResponse, IngestMetadata
from improver.schemas.recording import (
    AnalysisPayload,
    RecordingListItem,
    RecordingDetail,
    ReplayResponse,
)

__all__ = [
    "IngestRequest",
    "IngestResponse",
    "IngestMetadata",
    "AnalysisPayload",
    "RecordingListItem",
    "RecordingDetail",
    "ReplayResponse",
]
