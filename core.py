"""
StreekX Search Core
Grounded Gemini chat sessions + streamed answers + graceful degradation
"""
import asyncio
import inspect
import logging
from typing import AsyncIterator, Awaitable, Callable, List, Optional, TypedDict, Union

from langchain_core.runnables import RunnableConfig
from langgraph.graph import StateGraph, END

from config import SESSION_MAX_ENTRIES, SESSION_TTL_SECONDS
import utils
from models import GenerationResult, GenerationStatus, Source, StreamEvent
from sessions import SessionStore, build_policies
from transport import GeminiTransport

logger = logging.getLogger("streekx")

ChunkCallback = Callable[[str], Union[None, Awaitable[None]]]

SEARCH_SYSTEM_INSTRUCTION = """You are StreekX, a real-time AI search engine.
RULES:
- NEVER answer from your own knowledge.
- ALWAYS use the Google Search tool for every query to get the latest information.
- If the search tool returns no results, state that you cannot find the information.
- Provide concise, accurate answers in markdown.
- Do not guess or hallucinate.
- Always cite your sources inline using the provided grounding metadata."""

OFFLINE_SYSTEM_INSTRUCTION = (
    "You are StreekX. The live search tool is temporarily unavailable. "
    "Provide a helpful response based on your training data. "
    "Briefly mention that this is an offline response."
)

OFFLINE_NOTICE = "\n(Live search unavailable. Using offline knowledge.)\n\n"
CONNECTION_ERROR_TEXT = "\n\n(Error: Unable to connect to AI service. Please check your connection.)\n"


# ============ LangGraph State ============

class GenerationState(TypedDict):
    """State for one generate() call."""
    prompt: str
    session_id: str

    text: str
    sources: List[Source]
    status: Optional[str]
    error: Optional[str]


async def _emit(on_chunk: Optional[ChunkCallback], text: str) -> None:
    """Deliver one increment; async callbacks are awaited before the next chunk is read."""
    if on_chunk is None:
        return
    result = on_chunk(text)
    if inspect.isawaitable(result):
        await result


# ============ Search Engine ============

class SearchEngine:
    """
    Orchestrates a grounded answer:
    - primary: session chat with Google Search grounding, streamed
    - fallback: single-turn offline answer with a disclosure notice
    - terminal: fixed error text
    Never raises; every path ends in a GenerationResult.
    """

    def __init__(self, transport=None, store: Optional[SessionStore] = None):
        self.transport = transport or GeminiTransport()
        self.store = store or SessionStore(
            factory=lambda: self.transport.start_session(SEARCH_SYSTEM_INSTRUCTION),
            policies=build_policies(SESSION_MAX_ENTRIES, SESSION_TTL_SECONDS),
        )

        self.generation_graph = self._build_generation_graph()

        logger.info(f"🔎 Engine: {getattr(self.transport, 'model', 'custom transport')} (grounded search)")

    def _build_generation_graph(self):
        """primary -> (done | fallback -> (done | terminal))"""

        workflow = StateGraph(GenerationState)

        workflow.add_node("primary", self._primary_node)
        workflow.add_node("fallback", self._fallback_node)
        workflow.add_node("terminal", self._terminal_node)

        workflow.set_entry_point("primary")
        workflow.add_conditional_edges(
            "primary",
            self._route,
            {
                "done": END,
                "next": "fallback"
            }
        )
        workflow.add_conditional_edges(
            "fallback",
            self._route,
            {
                "done": END,
                "next": "terminal"
            }
        )
        workflow.add_edge("terminal", END)

        return workflow.compile()

    def _route(self, state: GenerationState) -> str:
        return "next" if state.get("status") is None else "done"

    # ============ Graph Nodes ============

    async def _primary_node(self, state: GenerationState, config: RunnableConfig) -> dict:
        """Grounded answer on the caller's session."""
        on_chunk = config["configurable"].get("on_chunk")
        text = ""
        sources: List[Source] = []

        try:
            entry = config["configurable"]["session_entry"]
            session = self.store.resolve(state["session_id"], entry)

            async for chunk in self.transport.stream(session, state["prompt"]):
                if chunk.text:
                    text += chunk.text
                    await _emit(on_chunk, chunk.text)
                if chunk.grounding_metadata:
                    sources.extend(utils.extract_sources(chunk))
        except Exception as e:
            logger.warning(f"Grounded search failed for session {state['session_id']}: {e!r}")
            return {"error": str(e) or type(e).__name__}

        sources = utils.dedupe_sources(sources)
        logger.info(f"✅ Grounded answer: {len(text)} chars, {len(sources)} sources")
        return {"text": text, "sources": sources, "status": GenerationStatus.GROUNDED.value}

    async def _fallback_node(self, state: GenerationState, config: RunnableConfig) -> dict:
        """Offline single-turn answer, no history and no sources."""
        on_chunk = config["configurable"].get("on_chunk")
        logger.info("🔄 Falling back to offline answer")

        try:
            text = OFFLINE_NOTICE
            await _emit(on_chunk, OFFLINE_NOTICE)

            async for chunk in self.transport.stream_single_turn(state["prompt"], OFFLINE_SYSTEM_INSTRUCTION):
                if chunk.text:
                    text += chunk.text
                    await _emit(on_chunk, chunk.text)
        except Exception as e:
            logger.error(f"Offline fallback failed: {e!r}")
            return {}

        return {"text": text, "sources": [], "status": GenerationStatus.DEGRADED.value}

    async def _terminal_node(self, state: GenerationState, config: RunnableConfig) -> dict:
        """Last resort: report the connection error as the answer."""
        on_chunk = config["configurable"].get("on_chunk")
        try:
            await _emit(on_chunk, CONNECTION_ERROR_TEXT)
        except Exception as e:
            logger.error(f"Chunk callback failed while reporting error: {e!r}")
        return {"text": CONNECTION_ERROR_TEXT, "sources": [], "status": GenerationStatus.FAILED.value}

    # ============ Public Interface ============

    async def generate(self, prompt: str, session_id: str,
                       on_chunk: Optional[ChunkCallback] = None) -> GenerationResult:
        """
        Answer `prompt` in the conversation `session_id`.

        `on_chunk` receives every text increment in order before the next one
        is read. Calls sharing a session id run one at a time.
        """
        initial_state: GenerationState = {
            "prompt": prompt,
            "session_id": session_id,
            "text": "",
            "sources": [],
            "status": None,
            "error": None,
        }

        async with self.store.turn(session_id) as entry:
            try:
                final_state = await self.generation_graph.ainvoke(
                    initial_state,
                    config={"configurable": {"on_chunk": on_chunk, "session_entry": entry}},
                )
            except Exception as e:
                logger.error(f"Generation graph failed: {e!r}")
                return GenerationResult(
                    text=CONNECTION_ERROR_TEXT,
                    status=GenerationStatus.FAILED,
                    error=str(e),
                )

        return GenerationResult(
            text=final_state["text"],
            sources=final_state["sources"],
            status=GenerationStatus(final_state["status"]),
            error=final_state.get("error"),
        )

    async def stream(self, prompt: str, session_id: str) -> AsyncIterator[StreamEvent]:
        """
        Async-iterator form of generate(): yields "delta" events in order, then
        one "done" event with the full result. Each increment waits for the
        consumer; closing the iterator early cancels the generation.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)

        async def produce():
            result = await self.generate(prompt, session_id, queue.put)
            await queue.put(result)

        task = asyncio.create_task(produce())
        try:
            while True:
                item = await queue.get()
                if isinstance(item, GenerationResult):
                    yield StreamEvent(type="done", result=item)
                    break
                yield StreamEvent(type="delta", text=item)
        finally:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    def reset_session(self, session_id: str) -> bool:
        """Start the conversation `session_id` over."""
        return self.store.discard(session_id)
