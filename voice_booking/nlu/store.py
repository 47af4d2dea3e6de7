"""Bounded per-session history store for the NLU service.

Sessions are created explicitly, looked up by id and evicted either
explicitly, when idle longer than the TTL, or least-recently-used first once
the store is full.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable

log = logging.getLogger("voice_booking.nlu.store")

MAX_MESSAGES = 30
TRIMMED_MESSAGES = 20


@dataclass
class SessionEntry:
    session_id: str
    messages: list[dict[str, str]] = field(default_factory=list)
    created_at: float = 0.0
    last_used: float = 0.0

    def append(self, role: str, content: str) -> None:
        self.messages.append({"role": role, "content": content})
        # Trim history to avoid context overflow
        if len(self.messages) > MAX_MESSAGES:
            self.messages = self.messages[-TRIMMED_MESSAGES:]


class SessionStore:
    """LRU + TTL map of session id -> ``SessionEntry``."""

    def __init__(
        self,
        ttl_seconds: float = 1800.0,
        max_entries: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max = max(1, max_entries)
        self._clock = clock
        self._entries: OrderedDict[str, SessionEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    def session_ids(self) -> list[str]:
        self.evict_expired()
        return list(self._entries)

    def create(self, session_id: str, messages: list[dict[str, str]] | None = None) -> SessionEntry:
        """Create (or replace) the entry for ``session_id``."""
        self.evict_expired()
        now = self._clock()
        entry = SessionEntry(
            session_id=session_id,
            messages=list(messages or []),
            created_at=now,
            last_used=now,
        )
        self._entries[session_id] = entry
        self._entries.move_to_end(session_id)
        while len(self._entries) > self._max:
            evicted, _ = self._entries.popitem(last=False)
            log.info("NLU session evicted (capacity): %s", evicted)
        return entry

    def get(self, session_id: str) -> SessionEntry | None:
        """Return the live entry and mark it recently used, or ``None``."""
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        if self._expired(entry):
            self.evict(session_id)
            return None
        entry.last_used = self._clock()
        self._entries.move_to_end(session_id)
        return entry

    def evict(self, session_id: str) -> bool:
        if self._entries.pop(session_id, None) is None:
            return False
        log.info("NLU session evicted: %s", session_id)
        return True

    def evict_expired(self) -> int:
        expired = [sid for sid, entry in self._entries.items() if self._expired(entry)]
        for sid in expired:
            self._entries.pop(sid, None)
        if expired:
            log.info("Evicted %d idle NLU sessions", len(expired))
        return len(expired)

    def _expired(self, entry: SessionEntry) -> bool:
        return self._ttl > 0 and self._clock() - entry.last_used > self._ttl
