"""Request / response envelope of the remote NLU fallback."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from .session import Turn


class NLURequest(BaseModel):
    userText: str
    currentStep: str = "idle"
    conversationHistory: list[Turn] = []
    formDataSnapshot: dict[str, Any] = {}
    currentPage: str = "/"
    sessionId: str = "default"


class NLUAction(BaseModel):
    type: str = "none"
    navigateTo: Optional[str] = None
    extractedData: dict[str, Any] = {}
    nextStep: Optional[str] = None


class NLUResponse(BaseModel):
    intent: str = "unclear"
    action: NLUAction = Field(default_factory=NLUAction)
    response: str = ""
    confidence: float = 0.5
    needsMoreInfo: bool = False

    @classmethod
    def fallback(cls) -> "NLUResponse":
        """Canned low-confidence answer used whenever classification fails."""
        return cls(
            intent="unclear",
            action=NLUAction(type="none"),
            response="Sorry, could you repeat that?",
            confidence=0.3,
        )

    @property
    def extracted(self) -> dict[str, str]:
        """Non-empty extracted fields only."""
        return {
            k: str(v).strip()
            for k, v in self.action.extractedData.items()
            if v is not None and str(v).strip()
        }
