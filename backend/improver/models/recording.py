"""Recording model holding one session's accumulated rrweb events."""
from sqlalchemy import Column, String, Integer, BigInteger, Boolean, DateTime, JSON, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
import uuid
from improver.database import Base

# JSONB on PostgreSQL, plain JSON on SQLite (tests, local runs)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Recording(Base):
    """Recording model; one row per client session id."""
    __tablename__ = "recordings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id = Column(String, unique=True, nullable=False, index=True)  # From recorder
    ip_address = Column(String, nullable=True, index=True)
    events = Column(JSONType, nullable=False, default=list)  # Ordered rrweb events
    start_time = Column(BigInteger, nullable=False, index=True)  # Milliseconds since epoch
    end_time = Column(BigInteger, nullable=True)  # Last flush, milliseconds since epoch
    duration = Column(BigInteger, nullable=True)  # Milliseconds
    page_url = Column(String, nullable=False)
    user_agent = Column(String, nullable=False)
    screen_width = Column(Integer, nullable=True)
    screen_height = Column(Integer, nullable=True)
    device_type = Column(String(20), nullable=True)  # desktop|mobile|tablet
    browser = Column(String, nullable=True)
    os = Column(String, nullable=True)
    analyzed = Column(Boolean, default=False, nullable=False)
    analysis = Column(JSONType, nullable=True)
    version = Column(Integer, nullable=False)  # Compare-and-swap guard for appends
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}

    @property
    def event_count(self) -> int:
        return len(self.events or [])
