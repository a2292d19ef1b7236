"""
Session store for grounded chat conversations.

Maps a caller-chosen session id to a live provider chat. Sessions are created
lazily, bounded by pluggable eviction policies, and each one carries an
asyncio.Lock so that turns on one conversation run one at a time.
"""
import asyncio
import time
import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Iterable, List, Optional

logger = logging.getLogger("streekx")


@dataclass
class SessionEntry:
    """A live chat plus the bookkeeping the store needs to evict it."""
    session: Any
    created_at: float
    last_used: float
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


# ============ Eviction Policies ============

class EvictionPolicy:
    """Decides which session ids to drop. Entries are ordered least recently used first."""

    def select(self, entries: "OrderedDict[str, SessionEntry]", now: float) -> List[str]:
        raise NotImplementedError


class LRUEviction(EvictionPolicy):
    """Keep at most `max_sessions` entries, dropping the least recently used."""

    def __init__(self, max_sessions: int):
        if max_sessions < 1:
            raise ValueError("max_sessions must be >= 1")
        self.max_sessions = max_sessions

    def select(self, entries, now):
        overflow = len(entries) - self.max_sessions
        if overflow <= 0:
            return []
        return list(entries.keys())[:overflow]


class TTLEviction(EvictionPolicy):
    """Drop entries idle for longer than `ttl_seconds`."""

    def __init__(self, ttl_seconds: float):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self.ttl_seconds = ttl_seconds

    def select(self, entries, now):
        return [
            session_id for session_id, entry in entries.items()
            if now - entry.last_used > self.ttl_seconds
        ]


# ============ Session Store ============

class SessionStore:
    """
    Session registry injected into the search engine.

    - `factory` builds a new provider chat (called with no arguments)
    - `policies` are applied on every access; entries with a running or queued turn are never evicted
    - `clock` is monotonic seconds, overridable in tests
    """

    def __init__(self, factory: Callable[[], Any],
                 policies: Optional[Iterable[EvictionPolicy]] = None,
                 clock: Callable[[], float] = time.monotonic):
        self._factory = factory
        self._policies = list(policies or [])
        self._clock = clock
        self._entries: "OrderedDict[str, SessionEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._entries

    def _entry(self, session_id: str) -> SessionEntry:
        now = self._clock()

        entry = self._entries.get(session_id)
        if entry is None:
            entry = SessionEntry(session=None, created_at=now, last_used=now)
            self._entries[session_id] = entry
        else:
            entry.last_used = now
            self._entries.move_to_end(session_id)

        self._evict(now, keep=session_id)
        return entry

    def resolve(self, session_id: str, entry: SessionEntry) -> Any:
        """Chat held by `entry`, built on first use."""
        if entry.session is None:
            entry.session = self._factory()
            logger.info(f"💬 New session {session_id} ({len(self._entries)} active)")
        return entry.session

    def get_or_create(self, session_id: str) -> Any:
        """Return the chat for `session_id`, creating it on first use."""
        return self.resolve(session_id, self._entry(session_id))

    @asynccontextmanager
    async def turn(self, session_id: str) -> AsyncIterator[SessionEntry]:
        """
        Run one turn on `session_id` exclusively.

        The entry is pinned from the moment the caller starts waiting until the
        lock is released, so eviction and discard cannot swap it out from
        under queued turns.
        """
        entry = self._entry(session_id)
        entry.users += 1
        try:
            async with entry.lock:
                yield entry
        finally:
            entry.users -= 1
            entry.last_used = self._clock()

    def in_use(self, session_id: str) -> bool:
        entry = self._entries.get(session_id)
        return entry is not None and entry.users > 0

    def discard(self, session_id: str) -> bool:
        """
        Forget a session. Returns False if it was unknown.
        A pinned entry keeps its lock and only loses its chat, so queued turns
        start a fresh conversation one after another.
        """
        entry = self._entries.get(session_id)
        if entry is None:
            return False
        if entry.users > 0:
            entry.session = None
        else:
            del self._entries[session_id]
        return True

    def _evict(self, now: float, keep: str) -> None:
        if not self._policies:
            return

        expired = set()
        for policy in self._policies:
            expired.update(policy.select(self._entries, now))
        expired.discard(keep)

        for session_id in expired:
            entry = self._entries.get(session_id)
            if entry is None or entry.users > 0 or entry.lock.locked():
                continue
            del self._entries[session_id]
            logger.debug(f"Evicted session {session_id}")


def build_policies(max_sessions: int = 0, ttl_seconds: float = 0) -> List[EvictionPolicy]:
    """Eviction policies from configuration values; 0 disables a policy."""
    policies: List[EvictionPolicy] = []
    if max_sessions:
        policies.append(LRUEviction(max_sessions))
    if ttl_seconds:
        policies.append(TTLEviction(ttl_seconds))
    return policies
