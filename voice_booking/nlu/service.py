"""Server-side NLU classifier backed by a language model.

For each request the service:
  1. Looks up (or creates) the session's message history in a bounded store
  2. Renders a system prompt with the page, booking step and form snapshot
  3. Asks the LLM for a JSON envelope (intent, action, response, confidence)
  4. Parses the envelope; on any LLM or parse failure answers from the
     rule-based fallback instead
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from pydantic import ValidationError

from voice_booking.models.nlu import NLURequest, NLUResponse
from voice_booking.nlu.base import NLUClassifier
from voice_booking.nlu.fallback import smart_fallback
from voice_booking.nlu.llm import LLMClient, LLMError
from voice_booking.nlu.store import SessionStore

log = logging.getLogger("voice_booking.nlu.service")

SYSTEM_PROMPT = """You are Tracy, a friendly voice assistant for a Pakistani courier and delivery service.

CURRENT CONTEXT:
- Current page: {page}
- Current booking step: {step}
- Form data: {form}
{booking_note}
Check what you said last: if it was a question, the user's reply answers it,
even when the reply is a single word.

You can navigate (/booking, /tracking, /, /profile, /payment, /chat), guide a
booking one field at a time, extract booking data from natural speech and
answer general questions about the service.

Reply with JSON only, in this shape:
{{
  "intent": "navigate|booking_start|booking_collect|provide_info|general_chat|confirm_booking",
  "action": {{
    "type": "navigate|start_booking|extract_data|confirm|reset|none",
    "navigateTo": "/booking",
    "extractedData": {{"senderName": null, "senderPhone": null, "pickupCity": null,
      "pickupAddress": null, "receiverName": null, "receiverPhone": null,
      "dropoffCity": null, "dropoffAddress": null, "packageType": null,
      "weight": null, "deliverySpeed": null, "pickupDate": null, "pickupTime": null}},
    "nextStep": "ask-name|ask-phone|ask-pickup-city|ask-pickup-address|ask-receiver-name|ask-receiver-phone|ask-delivery-city|ask-delivery-address|ask-package-type|ask-weight|ask-delivery-speed|ask-pickup-time|confirm|complete"
  }},
  "response": "short spoken reply in English",
  "confidence": 0.95
}}
Phone numbers are digits only, weights are numbers in kilograms, times are HH:MM."""

BOOKING_NOTE = "\nBOOKING INTERVIEW MODE: you are filling the booking form step by step.\n"


class NLUService(NLUClassifier):
    """LLM-backed classifier with per-session history and a rule-based fallback."""

    def __init__(self, llm: LLMClient, store: Optional[SessionStore] = None) -> None:
        self._llm = llm
        self._store = store or SessionStore()

    @property
    def llm(self) -> LLMClient:
        return self._llm

    @property
    def store(self) -> SessionStore:
        return self._store

    async def classify(self, request: NLURequest) -> NLUResponse:
        session_id = request.sessionId or "default"
        entry = self._store.get(session_id)
        if entry is None or not request.conversationHistory:
            seed = [
                {"role": "assistant" if t.speaker == "assistant" else "user", "content": t.text}
                for t in request.conversationHistory
            ]
            entry = self._store.create(session_id, seed)

        system = self._render_system_prompt(request)
        messages = entry.messages + [{"role": "user", "content": request.userText}]

        try:
            reply = await self._llm.complete(system, messages)
            data = extract_json_object(reply)
            if data is None:
                raise ValueError("no JSON object in LLM reply")
            result = NLUResponse.model_validate(normalize_envelope(data))
        except (LLMError, ValueError, ValidationError) as exc:
            log.warning("NLU classification failed for session %s: %s", session_id, exc)
            return smart_fallback(request)

        entry.append("user", request.userText)
        entry.append("assistant", reply)
        log.info("NLU session %s: intent=%s confidence=%.2f",
                 session_id, result.intent, result.confidence)
        return result

    async def clear_session(self, session_id: str) -> None:
        self._store.evict(session_id or "default")

    # ── Internal ─────────────────────────────────────────────

    @staticmethod
    def _render_system_prompt(request: NLURequest) -> str:
        return SYSTEM_PROMPT.format(
            page=request.currentPage,
            step=request.currentStep,
            form=json.dumps(request.formDataSnapshot, default=str),
            booking_note=BOOKING_NOTE if request.currentStep != "idle" else "",
        )


def extract_json_object(text: str) -> dict | None:
    """Pull the JSON envelope out of an LLM reply.

    Accepts a whole-text JSON object, a fenced ```json block, or a bare JSON
    object on its own line. Returns ``None`` if none parses.
    """
    stripped = text.strip()
    if stripped.startswith("{"):
        try:
            data = json.loads(stripped)
            if isinstance(data, dict):
                return data
        except json.JSONDecodeError:
            pass

    match = re.search(r"```(?:json)?\s*\n?({.*?})\s*\n?```", text, re.DOTALL)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass

    for line in text.split("\n"):
        line = line.strip()
        if line.startswith("{") and line.endswith("}"):
            try:
                return json.loads(line)
            except json.JSONDecodeError:
                continue

    return None


def normalize_envelope(data: dict[str, Any]) -> dict[str, Any]:
    """Fill defaults and flatten older ``action.data`` payloads."""
    action = data.get("action") or {}
    if not isinstance(action, dict):
        action = {"type": str(action)}
    nested = action.pop("data", None)
    if isinstance(nested, dict):
        if nested.get("navigateTo") and not action.get("navigateTo"):
            action["navigateTo"] = nested["navigateTo"]
        if nested.get("collectField") and nested.get("extractedValue"):
            action.setdefault("extractedData", {})[nested["collectField"]] = nested["extractedValue"]
    if not isinstance(action.get("extractedData"), dict):
        action["extractedData"] = {}
    action.setdefault("type", "none")

    return {
        "intent": data.get("intent") or "general_chat",
        "action": action,
        "response": data.get("response") or "Something went wrong. Could you say that again?",
        "confidence": data.get("confidence") if data.get("confidence") is not None else 0.9,
        "needsMoreInfo": bool(data.get("needsMoreInfo", False)),
    }
