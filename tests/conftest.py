"""Shared pytest fixtures."""
from __future__ import annotations

import os

# Settings are read at import time, so configure the environment first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

import json
from typing import Any, Callable

import httpx
import pytest

import improver.models  # noqa: F401  (registers tables on Base)
from improver.database import Base, SessionLocal, engine
from improver.services.remote_client import RemoteRecordingClient

REMOTE_API_URL = "https://remote.test/api"
REMOTE_PROJECT_ID = "42"


def make_event(event_type: int, timestamp: int, data: Any = None) -> dict:
    return {"type": event_type, "timestamp": timestamp, "data": data if data is not None else {}}


def make_snapshot(timestamp: int, node: dict | None = None) -> dict:
    """Full snapshot event with a small valid document tree."""
    if node is None:
        node = {
            "id": 1,
            "type": 0,
            "childNodes": [
                {"id": 2, "type": 2, "tagName": "html", "childNodes": [
                    {"id": 3, "type": 2, "tagName": "body", "childNodes": []},
                ]},
            ],
        }
    return make_event(2, timestamp, {"node": node, "initialOffset": {"top": 0, "left": 0}})


def ndjson(*values: Any) -> str:
    return "\n".join(v if isinstance(v, str) else json.dumps(v) for v in values)


@pytest.fixture
def db():
    """Fresh schema per test on the shared in-memory engine."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def remote_factory() -> Callable[[Callable[[httpx.Request], httpx.Response]], RemoteRecordingClient]:
    """Build remote clients whose HTTP traffic is answered by a handler function."""
    def build(handler: Callable[[httpx.Request], httpx.Response]) -> RemoteRecordingClient:
        return RemoteRecordingClient(
            api_url=REMOTE_API_URL,
            project_id=REMOTE_PROJECT_ID,
            api_key="test-key",
            transport=httpx.MockTransport(handler),
        )
    return build
