"""HTTP client for a remote NLU service.

POSTs the request envelope to ``{base_url}/nlu/classify`` and validates the
reply. Timeouts, connection errors, non-2xx statuses and malformed bodies all
degrade to ``NLUResponse.fallback()``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from voice_booking.models.nlu import NLURequest, NLUResponse
from voice_booking.nlu.base import NLUClassifier

log = logging.getLogger("voice_booking.nlu.client")


class RemoteNLUClient(NLUClassifier):
    """Classifier that delegates to an NLU service over HTTP."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self._base_url, timeout=timeout, transport=transport,
        )

    async def classify(self, request: NLURequest) -> NLUResponse:
        try:
            resp = await asyncio.wait_for(
                self._client.post("/nlu/classify", json=request.model_dump(mode="json")),
                timeout=self._timeout,
            )
            resp.raise_for_status()
            result = NLUResponse.model_validate(resp.json())
        except asyncio.TimeoutError:
            log.warning("NLU request timed out after %.1fs", self._timeout)
            return NLUResponse.fallback()
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            log.warning("NLU request failed: %s", exc)
            return NLUResponse.fallback()

        log.info("NLU result: intent=%s action=%s confidence=%.2f",
                 result.intent, result.action.type, result.confidence)
        return result

    async def clear_session(self, session_id: str) -> None:
        try:
            await self._client.delete(f"/nlu/sessions/{session_id}")
        except httpx.HTTPError as exc:
            log.debug("NLU session clear failed for %s: %s", session_id, exc)

    async def close(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()
