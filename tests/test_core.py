import asyncio

from core import (
    CONNECTION_ERROR_TEXT,
    OFFLINE_NOTICE,
    OFFLINE_SYSTEM_INSTRUCTION,
    SEARCH_SYSTEM_INSTRUCTION,
    SearchEngine,
)
from models import GenerationStatus, Source, StreamChunk

from conftest import FakeTransport, text_chunks, web_chunk


def _generate(engine, prompt="latest news", session_id="s1"):
    received = []
    result = asyncio.run(engine.generate(prompt, session_id, received.append))
    return result, received


def test_streams_increments_in_order(fake_transport):
    engine = SearchEngine(transport=fake_transport)

    result, received = _generate(engine)

    assert received == ["Hel", "lo", " world"]
    assert result.text == "Hello world"
    assert result.sources == []
    assert result.status == GenerationStatus.GROUNDED
    assert result.is_grounded
    assert result.error is None


def test_new_session_uses_grounded_instruction(fake_transport):
    engine = SearchEngine(transport=fake_transport)
    _generate(engine)

    assert fake_transport.sessions[0].system_instruction == SEARCH_SYSTEM_INSTRUCTION


def test_collects_and_dedupes_sources():
    transport = FakeTransport(chunks=[
        StreamChunk(text="Rates rose ", grounding_metadata={"groundingChunks": [
            web_chunk("A", "u1"), web_chunk("B", "u2"),
        ]}),
        StreamChunk(text="again.", grounding_metadata={"groundingChunks": [
            web_chunk("C", "u1"), {"web": {}},
        ]}),
        StreamChunk(grounding_metadata={"groundingChunks": [{"retrievedContext": {"uri": "u9"}}]}),
    ])
    engine = SearchEngine(transport=transport)

    result, received = _generate(engine)

    assert received == ["Rates rose ", "again."]
    assert result.text == "Rates rose again."
    assert result.sources == [
        Source(title="A", uri="u1"),
        Source(title="B", uri="u2"),
        Source(title="Source", uri="#"),
    ]


def test_same_session_id_reuses_context(fake_transport):
    engine = SearchEngine(transport=fake_transport)

    async def scenario():
        await engine.generate("who won the final?", "s1")
        await engine.generate("and the year before?", "s1")

    asyncio.run(scenario())

    assert len(fake_transport.sessions) == 1
    (first_session, _, first_history), (second_session, prompt, second_history) = fake_transport.requests
    assert first_session is second_session
    assert first_history == []
    assert prompt == "and the year before?"
    assert second_history == ["who won the final?"]


def test_distinct_session_ids_do_not_share_context(fake_transport):
    engine = SearchEngine(transport=fake_transport)

    async def scenario():
        await engine.generate("first", "s1")
        await engine.generate("second", "s2")

    asyncio.run(scenario())

    assert len(fake_transport.sessions) == 2
    assert fake_transport.requests[1][2] == []


def test_reset_session_starts_over(fake_transport):
    engine = SearchEngine(transport=fake_transport)

    async def scenario():
        await engine.generate("first", "s1")
        assert engine.reset_session("s1") is True
        await engine.generate("second", "s1")

    asyncio.run(scenario())

    assert len(fake_transport.sessions) == 2
    assert engine.reset_session("unknown") is False


def test_primary_failure_falls_back_with_notice():
    transport = FakeTransport(fail_primary=True, fallback_chunks=text_chunks("Paris is ", "the capital."))
    engine = SearchEngine(transport=transport)

    result, received = _generate(engine, prompt="capital of France")

    assert received == [OFFLINE_NOTICE, "Paris is ", "the capital."]
    assert result.text == OFFLINE_NOTICE + "Paris is the capital."
    assert result.text.startswith(OFFLINE_NOTICE)
    assert result.sources == []
    assert result.status == GenerationStatus.DEGRADED
    assert "PERMISSION_DENIED" in result.error
    assert transport.single_turn_requests == [("capital of France", OFFLINE_SYSTEM_INSTRUCTION)]


def test_fallback_ignores_grounding_metadata():
    transport = FakeTransport(fail_primary=True, fallback_chunks=[
        StreamChunk(text="offline", grounding_metadata={"groundingChunks": [web_chunk("A", "u1")]}),
    ])
    engine = SearchEngine(transport=transport)

    result, _ = _generate(engine)

    assert result.sources == []


def test_both_paths_failing_returns_error_text():
    transport = FakeTransport(fail_primary=True, fail_fallback=True)
    engine = SearchEngine(transport=transport)

    result, received = _generate(engine)

    assert result.text == CONNECTION_ERROR_TEXT
    assert result.sources == []
    assert result.status == GenerationStatus.FAILED
    assert received[-1] == CONNECTION_ERROR_TEXT


def test_callback_error_triggers_fallback(fake_transport):
    engine = SearchEngine(transport=fake_transport)
    calls = []

    def on_chunk(text):
        calls.append(text)
        if len(calls) == 1:
            raise RuntimeError("client disconnected")

    result = asyncio.run(engine.generate("q", "s1", on_chunk))

    assert result.status == GenerationStatus.DEGRADED
    assert calls[1] == OFFLINE_NOTICE


def test_async_callback_is_awaited(fake_transport):
    engine = SearchEngine(transport=fake_transport)
    received = []

    async def on_chunk(text):
        await asyncio.sleep(0)
        received.append(text)

    result = asyncio.run(engine.generate("q", "s1", on_chunk))

    assert received == ["Hel", "lo", " world"]
    assert result.text == "Hello world"


def test_generate_without_callback(fake_transport):
    engine = SearchEngine(transport=fake_transport)

    result = asyncio.run(engine.generate("q", "s1"))

    assert result.text == "Hello world"


def test_same_session_calls_are_serialized():
    transport = FakeTransport(chunks=text_chunks("a", "b", "c"), delay=0.01)
    engine = SearchEngine(transport=transport)

    async def scenario():
        return await asyncio.gather(
            engine.generate("one", "shared"),
            engine.generate("two", "shared"),
        )

    results = asyncio.run(scenario())

    assert transport.max_active == 1
    assert [r.text for r in results] == ["abc", "abc"]
    assert transport.requests[1][2] == [transport.requests[0][1]]


def test_different_sessions_run_concurrently():
    transport = FakeTransport(chunks=text_chunks("a", "b", "c"), delay=0.01)
    engine = SearchEngine(transport=transport)

    async def scenario():
        await asyncio.gather(
            engine.generate("one", "s1"),
            engine.generate("two", "s2"),
        )

    asyncio.run(scenario())

    assert transport.max_active == 2


def test_stream_yields_deltas_then_result(fake_transport):
    engine = SearchEngine(transport=fake_transport)

    async def scenario():
        return [event async for event in engine.stream("q", "s1")]

    events = asyncio.run(scenario())

    assert [e.type for e in events] == ["delta", "delta", "delta", "done"]
    assert [e.text for e in events[:3]] == ["Hel", "lo", " world"]
    assert events[-1].result.text == "Hello world"


def test_stream_reports_degraded_result():
    transport = FakeTransport(fail_primary=True, fallback_chunks=text_chunks("offline answer"))
    engine = SearchEngine(transport=transport)

    async def scenario():
        return [event async for event in engine.stream("q", "s1")]

    events = asyncio.run(scenario())

    assert events[0].text == OFFLINE_NOTICE
    assert events[-1].type == "done"
    assert events[-1].result.status == GenerationStatus.DEGRADED


def test_closing_stream_early_releases_session():
    transport = FakeTransport(chunks=text_chunks("a", "b", "c"), delay=0.01)
    engine = SearchEngine(transport=transport)

    async def scenario():
        events = engine.stream("q", "s1")
        async for event in events:
            assert event.text == "a"
            break
        await events.aclose()

        assert not engine.store.in_use("s1")
        return await asyncio.wait_for(engine.generate("again", "s1"), timeout=1)

    result = asyncio.run(scenario())

    assert result.text == "abc"


def test_default_store_applies_configured_session_limit(monkeypatch, fake_transport):
    import core

    monkeypatch.setattr(core, "SESSION_MAX_ENTRIES", 1)
    monkeypatch.setattr(core, "SESSION_TTL_SECONDS", 0)
    engine = SearchEngine(transport=fake_transport)

    async def scenario():
        await engine.generate("first", "s1")
        await engine.generate("second", "s2")

    asyncio.run(scenario())

    assert "s2" in engine.store
    assert "s1" not in engine.store


def test_terminal_node_is_documented():
    assert SearchEngine._terminal_node.__doc__
