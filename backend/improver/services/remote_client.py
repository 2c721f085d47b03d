"""HTTP client for the remote recording-storage service (PostHog-compatible API)."""
from typing import Any, Dict, List, Optional

import httpx

from improver.config import settings
from improver.utils.exceptions import RemoteFetchError
from improver.utils.logger import logger


class RemoteRecordingClient:
    """
    Thin async wrapper over the remote snapshots API.

    Use as an async context manager so one connection pool serves every
    manifest/chunk request of a reconstruction. Every method raises on
    failure; callers decide which failures are fatal.
    """

    def __init__(
        self,
        api_url: str,
        project_id: str,
        api_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_url or not project_id or not api_key:
            raise ValueError(
                "Remote recording storage must be configured. "
                "Set REMOTE_API_URL, REMOTE_PROJECT_ID and REMOTE_API_KEY environment variables."
            )
        self.api_url = api_url.rstrip("/")
        self.project_id = project_id
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls) -> "RemoteRecordingClient":
        return cls(
            api_url=settings.remote_api_url,
            project_id=settings.remote_project_id,
            api_key=settings.remote_api_key,
            timeout=settings.remote_timeout_seconds,
        )

    async def __aenter__(self) -> "RemoteRecordingClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                # The snapshots endpoint rejects GETs without an explicit length
                "Content-Length": "0",
            },
        )
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def recordings_url(self) -> str:
        return f"{self.api_url}/projects/{self.project_id}/session_recordings"

    def snapshots_url(self, recording_id: str) -> str:
        return f"{self.recordings_url}/{recording_id}/snapshots"

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        if self._client is None:
            raise RuntimeError("RemoteRecordingClient must be used as an async context manager")
        response = await self._client.get(url, params=params)
        response.raise_for_status()
        return response

    async def fetch_manifest(self, recording_id: str) -> Any:
        """
        Fetch the snapshot manifest for a recording.

        Raises:
            RemoteFetchError: On transport errors, non-2xx responses or a non-JSON body
        """
        try:
            response = await self._get(self.snapshots_url(recording_id))
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Manifest fetch failed for recording {recording_id}: "
                f"{e.response.status_code} - {e.response.text[:200]}"
            )
            raise RemoteFetchError(
                f"Failed to fetch snapshots: {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Manifest fetch failed for recording {recording_id}: {e}")
            raise RemoteFetchError(f"Failed to fetch snapshots: {e}") from e

    async def fetch_chunk_range(self, recording_id: str, start_key: int, end_key: int) -> str:
        """Fetch a range of v2 chunks as newline-delimited JSON text."""
        response = await self._get(
            self.snapshots_url(recording_id),
            params={"source": "blob_v2", "start_blob_key": start_key, "end_blob_key": end_key},
        )
        return response.text

    async def fetch_chunk(self, recording_id: str, key: Any) -> Any:
        """Fetch a single legacy chunk as decoded JSON."""
        response = await self._get(
            self.snapshots_url(recording_id),
            params={"source": "blob", "blob_key": key},
        )
        return response.json()

    async def list_recordings(self, limit: int = 20) -> List[Dict[str, Any]]:
        """List the most recent remote recordings."""
        try:
            response = await self._get(f"{self.recordings_url}/", params={"limit": limit})
            return list(response.json().get("results") or [])
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.error(f"Failed to list remote recordings: {e}")
            raise RemoteFetchError(f"Failed to list recordings: {e}") from e
