"""Schemas for event ingestion."""
from pydantic import BaseModel, Field
from typing import List, Any, Optional


class IngestMetadata(BaseModel):
    """Page and device context sent by the recorder with every batch."""
    startTime: Optional[int] = None
    userAgent: Optional[str] = None
    screenWidth: Optional[int] = None
    screenHeight: Optional[int] = None
    pageUrl: Optional[str] = None
    deviceType: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None


class IngestRequest(BaseModel):
    """Request schema for /api/recordings/ingest endpoint.

    Fields are optional so a missing sessionId/events answers 400 rather than 422,
    and events are untyped so malformed ones can be dropped instead of rejecting the batch.
    """
    sessionId: Optional[str] = Field(None, description="Session ID from the recorder")
    events: Optional[List[Any]] = Field(None, description="Array of rrweb events")
    metadata: Optional[IngestMetadata] = None


class IngestResponse(BaseModel):
    """Response schema for /api/recordings/ingest endpoint."""
    success: bool
    message: str
    eventsReceived: int
    eventsDropped: int = 0
