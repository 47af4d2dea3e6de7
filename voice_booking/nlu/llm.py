"""Minimal chat-completion transport for the NLU service.

Speaks the Anthropic Messages API or a local Ollama server over httpx and
returns the model's text. Transport and HTTP failures surface as ``LLMError``
so the service can switch to its rule-based fallback.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

log = logging.getLogger("voice_booking.nlu.llm")

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


class LLMError(Exception):
    """The language model could not produce a reply."""


class LLMClient:
    """One provider, one model; a fresh httpx client per call."""

    def __init__(
        self,
        provider: str = "claude",
        *,
        api_key: str = "",
        model: str = "",
        base_url: str = "",
        max_tokens: int = 800,
        temperature: float = 0.7,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.provider = provider
        self._api_key = api_key
        self.model = model
        self._base_url = base_url.rstrip("/")
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, config: Any) -> "LLMClient":
        if config.llm_provider == "ollama":
            return cls(
                "ollama",
                model=config.ollama_model,
                base_url=config.ollama_url,
                max_tokens=config.llm_max_tokens,
                temperature=config.llm_temperature,
                timeout=config.nlu_timeout_seconds,
            )
        return cls(
            config.llm_provider,
            api_key=config.anthropic_api_key,
            model=config.anthropic_model,
            max_tokens=config.llm_max_tokens,
            temperature=config.llm_temperature,
            timeout=config.nlu_timeout_seconds,
        )

    @property
    def available(self) -> bool:
        if self.provider == "claude":
            return bool(self._api_key)
        return self.provider == "ollama"

    async def complete(self, system: str, messages: list[dict[str, str]]) -> str:
        """Send ``messages`` (user/assistant turns) under ``system``; return text."""
        if not self.available:
            raise LLMError(f"LLM provider {self.provider!r} is not configured")

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                if self.provider == "ollama":
                    return await self._ollama(client, system, messages)
                return await self._anthropic(client, system, messages)
        except httpx.HTTPStatusError as exc:
            raise LLMError(f"LLM returned status {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise LLMError(f"LLM request failed: {exc}") from exc
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise LLMError(f"Unexpected LLM response shape: {exc}") from exc

    async def _anthropic(
        self, client: httpx.AsyncClient, system: str, messages: list[dict[str, str]],
    ) -> str:
        resp = await client.post(
            ANTHROPIC_URL,
            headers={
                "x-api-key": self._api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            json={
                "model": self.model,
                "max_tokens": self._max_tokens,
                "temperature": self._temperature,
                "system": system,
                "messages": alternate_roles(messages),
            },
        )
        resp.raise_for_status()
        data = resp.json()
        return "".join(
            block.get("text", "") for block in data["content"] if block.get("type") == "text"
        )

    async def _ollama(
        self, client: httpx.AsyncClient, system: str, messages: list[dict[str, str]],
    ) -> str:
        resp = await client.post(
            f"{self._base_url}/api/chat",
            json={
                "model": self.model,
                "stream": False,
                "format": "json",
                "options": {"temperature": self._temperature, "num_predict": self._max_tokens},
                "messages": [{"role": "system", "content": system}, *messages],
            },
        )
        resp.raise_for_status()
        return resp.json()["message"]["content"]


def alternate_roles(messages: list[dict[str, str]]) -> list[dict[str, str]]:
    """Coerce history into strict user/assistant alternation starting with user."""
    result: list[dict[str, str]] = []
    for msg in messages:
        role = "assistant" if msg.get("role") == "assistant" else "user"
        content = msg.get("content", "")
        if not content:
            continue
        if not result and role == "assistant":
            continue
        if result and result[-1]["role"] == role:
            result[-1] = {"role": role, "content": result[-1]["content"] + "\n" + content}
        else:
            result.append({"role": role, "content": content})
    return result
