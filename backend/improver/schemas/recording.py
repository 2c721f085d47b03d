"""Schemas for recordings, analysis attachment and replay."""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List, Literal


class KeyMoment(BaseModel):
    timestamp: int
    description: str


class AnalysisPayload(BaseModel):
    """Analysis produced by the external collaborator for one recording."""
    overview: str
    userIntent: str
    painPoints: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    sentiment: Literal["positive", "neutral", "negative", "frustrated"]
    engagementScore: float
    keyMoments: List[KeyMoment] = Field(default_factory=list)
    analyzedAt: Optional[int] = None


class RecordingListItem(BaseModel):
    """Recording list item response (no events)."""
    id: str
    session_id: str
    page_url: str
    ip_address: Optional[str] = None
    start_time: int
    end_time: Optional[int] = None
    duration: Optional[int] = None
    event_count: int
    device_type: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    analyzed: bool

    class Config:
        from_attributes = True

    @classmethod
    def from_orm(cls, obj) -> "RecordingListItem":
        """Convert SQLAlchemy model to response model."""
        return cls(
            id=str(obj.id),
            session_id=obj.session_id,
            page_url=obj.page_url,
            ip_address=obj.ip_address,
            start_time=obj.start_time,
            end_time=obj.end_time,
            duration=obj.duration,
            event_count=obj.event_count,
            device_type=obj.device_type,
            browser=obj.browser,
            os=obj.os,
            analyzed=bool(obj.analyzed),
        )


class RecordingDetail(RecordingListItem):
    """Full recording including the accumulated event list."""
    user_agent: str
    screen_width: Optional[int] = None
    screen_height: Optional[int] = None
    analysis: Optional[Dict[str, Any]] = None
    events: List[Dict[str, Any]]

    @classmethod
    def from_orm(cls, obj) -> "RecordingDetail":
        """Convert SQLAlchemy model to response model."""
        item = RecordingListItem.from_orm(obj)
        return cls(
            **item.model_dump(),
            user_agent=obj.user_agent,
            screen_width=obj.screen_width,
            screen_height=obj.screen_height,
            analysis=obj.analysis,
            events=list(obj.events or []),
        )


class ReplayResponse(BaseModel):
    """Sanitized, ordered event stream ready for a replay engine."""
    session_id: str
    status: Literal["ready", "incomplete", "no_recording"]
    event_count: int
    events: List[Dict[str, Any]]


class AnalysisAck(BaseModel):
    success: bool
    session_id: str
    analyzed: bool


class RemoteImportResponse(BaseModel):
    success: bool
    message: str
    job_queued: bool
