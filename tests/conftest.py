"""
Shared pytest configuration.

Puts the project root on sys.path so the flat modules (`core`, `utils`, ...)
import the same way they do when the app runs, and provides fake transports
so no test talks to Gemini.
"""
import asyncio
import os
import sys
import tempfile
from pathlib import Path

import pytest

# Keep the log file out of the working tree.
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "streekx-tests.log"))

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from models import StreamChunk  # noqa: E402
from transport import TransportError  # noqa: E402


class FakeSession:
    """Stands in for a provider chat: remembers its system instruction and turns."""

    def __init__(self, system_instruction):
        self.system_instruction = system_instruction
        self.history = []


class FakeTransport:
    model = "fake-gemini"

    def __init__(self, chunks=None, fallback_chunks=None,
                 fail_primary=False, fail_fallback=False, delay=0.0):
        self.chunks = chunks or []
        self.fallback_chunks = fallback_chunks or []
        self.fail_primary = fail_primary
        self.fail_fallback = fail_fallback
        self.delay = delay

        self.sessions = []
        self.requests = []
        self.single_turn_requests = []
        self.active = 0
        self.max_active = 0

    def start_session(self, system_instruction):
        session = FakeSession(system_instruction)
        self.sessions.append(session)
        return session

    async def stream(self, session, prompt):
        self.requests.append((session, prompt, list(session.history)))
        if self.fail_primary:
            raise TransportError("403 PERMISSION_DENIED: search tool unavailable")

        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            session.history.append(prompt)
            for chunk in self.chunks:
                await asyncio.sleep(self.delay)
                yield chunk
        finally:
            self.active -= 1

    async def stream_single_turn(self, prompt, system_instruction):
        self.single_turn_requests.append((prompt, system_instruction))
        if self.fail_fallback:
            raise ConnectionError("network unreachable")
        for chunk in self.fallback_chunks:
            yield chunk


def text_chunks(*parts):
    return [StreamChunk(text=part) for part in parts]


def web_chunk(title, uri):
    return {"web": {"title": title, "uri": uri}}


@pytest.fixture
def fake_transport():
    return FakeTransport(chunks=text_chunks("Hel", "lo", " world"))
