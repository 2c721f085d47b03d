"""Deliver recorder batches to the ingest endpoint."""
import json
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

logger = logging.getLogger("improver.capture")

# (url, body) -> True when the channel accepted the payload for delivery,
# mirroring navigator.sendBeacon
Beacon = Callable[[str, bytes], bool]
Requeue = Callable[[List[Dict[str, Any]]], None]


class DeliveryTransport:
    """
    Ship one batch per call with best-effort reliability.

    A configured beacon channel (fire-and-forget, survives page teardown) is
    preferred; without one a regular POST is made. Any failure hands the
    batch back through ``on_failure`` so the next flush resends it ahead of
    newer events. There is no retry loop here.
    """

    def __init__(
        self,
        endpoint: str,
        beacon: Optional[Beacon] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.endpoint = endpoint
        self.beacon = beacon
        self.timeout = timeout
        self._client = client

    @staticmethod
    def encode(session_id: str, batch: List[Dict[str, Any]], metadata: Dict[str, Any]) -> bytes:
        return json.dumps({
            "sessionId": session_id,
            "events": batch,
            "metadata": metadata,
        }).encode("utf-8")

    async def send(
        self,
        session_id: str,
        batch: List[Dict[str, Any]],
        metadata: Dict[str, Any],
        on_failure: Requeue,
    ) -> bool:
        """
        Deliver a batch.

        Args:
            session_id: Active recorder session ID
            batch: Events drained from the recorder queue
            metadata: Page/device metadata for the ingest endpoint
            on_failure: Called with the batch when delivery fails

        Returns:
            True if the batch was delivered (or accepted by the beacon)
        """
        body = self.encode(session_id, batch, metadata)
        logger.debug(f"Sending {len(batch)} events for session {session_id}")

        if self.beacon is not None:
            try:
                accepted = self.beacon(self.endpoint, body)
            except Exception as e:
                logger.warning(f"Beacon delivery raised: {e}")
                accepted = False
            if not accepted:
                logger.warning(f"Beacon refused {len(batch)} events, re-queueing")
                on_failure(batch)
            return bool(accepted)

        try:
            response = await self._post(body)
        except httpx.HTTPError as e:
            logger.warning(f"Error sending events: {e}")
            on_failure(batch)
            return False

        if not response.is_success:
            logger.warning(f"Failed to send events: {response.status_code} {response.reason_phrase}")
            on_failure(batch)
            return False

        logger.debug("Events sent successfully")
        return True

    async def _post(self, body: bytes) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if self._client is not None:
            return await self._client.post(self.endpoint, content=body, headers=headers)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(self.endpoint, content=body, headers=headers)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
