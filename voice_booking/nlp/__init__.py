"""Local, rule-based language handling: normalization, extraction, intents."""
