"""FastAPI application: HTTP endpoints for the NLU fallback service.

Endpoints:

  GET    /health                     Health check
  POST   /nlu/classify               Classify one utterance in context
  DELETE /nlu/sessions/{session_id}  Forget a conversation's history
  GET    /nlu/sessions               Count and ids of live conversations

The voice assistant talks to this service through ``RemoteNLUClient`` when
``NLU_SERVICE_URL`` is set; otherwise it runs the same classifier in-process.
"""

from __future__ import annotations

# Load .env into os.environ before settings are read.
from dotenv import load_dotenv
load_dotenv()

import logging
import time
from typing import Optional

# Configure root logger early so all voice_booking loggers have a handler
# when run via `uvicorn voice_booking.app:app`.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from voice_booking import __version__
from voice_booking.config import settings
from voice_booking.models.nlu import NLURequest, NLUResponse
from voice_booking.nlu.llm import LLMClient
from voice_booking.nlu.service import NLUService
from voice_booking.nlu.store import SessionStore

log = logging.getLogger("voice_booking.app")

_START_TIME = time.time()


def create_app(service: Optional[NLUService] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if service is None:
        service = NLUService(
            llm=LLMClient.from_settings(settings),
            store=SessionStore(
                ttl_seconds=settings.session_ttl_seconds,
                max_entries=settings.session_max_entries,
            ),
        )

    app = FastAPI(
        title="Voice Booking NLU",
        description="Natural-language fallback for the voice booking assistant",
        version=__version__,
    )
    app.state.nlu = service

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check: confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({
            "status": "ok",
            "uptime": uptime,
            "llm": service.llm.provider if service.llm.available else "fallback",
        })

    # ── NLU ────────────────────────────────────────────────────

    @app.post("/nlu/classify", response_model=NLUResponse)
    async def classify(request: NLURequest) -> NLUResponse:
        """Classify one utterance. Always answers; failures use the fallback."""
        return await service.classify(request)

    @app.delete("/nlu/sessions/{session_id}")
    async def clear_session(session_id: str) -> JSONResponse:
        existed = session_id in service.store
        await service.clear_session(session_id)
        return JSONResponse({"session_id": session_id, "cleared": existed})

    @app.get("/nlu/sessions")
    async def list_sessions() -> JSONResponse:
        ids = service.store.session_ids()
        return JSONResponse({"count": len(ids), "sessions": ids})

    return app


app = create_app()
