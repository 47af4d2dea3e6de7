"""Application configuration via environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

log = logging.getLogger("voice_booking.config")


DEFAULT_CITIES = [
    "Karachi",
    "Lahore",
    "Islamabad",
    "Rawalpindi",
    "Faisalabad",
    "Multan",
    "Peshawar",
    "Quetta",
    "Hyderabad",
    "Sialkot",
    "Gujranwala",
]


class Settings(BaseSettings):
    # LLM
    llm_provider: str = "claude"  # "claude", "ollama" or "none"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-haiku-latest"
    ollama_model: str = "qwen2.5:7b"
    ollama_url: str = "http://localhost:11434"
    llm_max_tokens: int = 800
    llm_temperature: float = 0.7

    # NLU fallback
    nlu_service_url: str = ""  # empty → classify in-process
    nlu_timeout_seconds: float = 10.0
    nlu_history_turns: int = 6
    intent_resolver: str = "hybrid"  # "hybrid", "pattern" or "llm"

    # Dialogue
    wake_phrase: str = "hey tracy"
    booking_style: str = "guided"  # "guided" or "conversational"
    min_phone_digits: int = 10
    known_cities: list[str] = DEFAULT_CITIES

    # Speech adapter
    restart_initial_backoff: float = 0.25
    restart_max_backoff: float = 2.5
    interim_settle_seconds: float = 1.2

    # NLU session store
    session_ttl_seconds: float = 1800.0
    session_max_entries: int = 500

    # Server
    host: str = "127.0.0.1"
    port: int = 8090
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []
        _placeholders = {"sk-ant-...", "changeme"}

        if self.llm_provider not in ("claude", "ollama", "none"):
            raise ValueError(
                f"LLM_PROVIDER must be claude, ollama or none (got {self.llm_provider!r})."
            )

        # LLM key: required for claude
        if self.llm_provider == "claude":
            if not self.anthropic_api_key or self.anthropic_api_key in _placeholders:
                raise ValueError(
                    "ANTHROPIC_API_KEY is missing or still a placeholder. "
                    "Set it in .env to use Claude, or set LLM_PROVIDER=none."
                )

        if self.intent_resolver not in ("hybrid", "pattern", "llm"):
            raise ValueError(
                f"INTENT_RESOLVER must be hybrid, pattern or llm (got {self.intent_resolver!r})."
            )

        if self.booking_style not in ("guided", "conversational"):
            raise ValueError(
                f"BOOKING_STYLE must be guided or conversational (got {self.booking_style!r})."
            )

        if self.llm_provider == "none" and self.intent_resolver == "llm":
            warnings.append(
                "INTENT_RESOLVER=llm with LLM_PROVIDER=none: every utterance "
                "will get the rule-based fallback answer."
            )

        if self.restart_initial_backoff > self.restart_max_backoff:
            warnings.append(
                "RESTART_INITIAL_BACKOFF exceeds RESTART_MAX_BACKOFF; the maximum wins."
            )

        return warnings


settings = Settings()
