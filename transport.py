"""
Gemini transport built on the google-genai SDK.

Owns the client, builds grounded chats, and converts provider responses into
StreamChunks so the rest of the code never touches SDK types directly.
"""
import logging
from typing import Any, AsyncIterator, Dict, Optional

from google import genai
from google.genai import errors, types

import config
from models import SearchResponse, StreamChunk

logger = logging.getLogger("streekx")

NO_ANSWER_TEXT = "I couldn't generate an answer based on the search results."


class TransportError(Exception):
    """Raised when the model provider rejects a request or fails mid-stream."""


def _create_client() -> genai.Client:
    config_errors = config.validate_config()
    if config_errors:
        raise ValueError(f"Configuration errors:\n" + "\n".join(f"  - {e}" for e in config_errors))

    if config.GEMINI_API_KEY:
        return genai.Client(api_key=config.GEMINI_API_KEY)
    return genai.Client(vertexai=True, project=config.PROJECT_ID, location=config.LOCATION)


def _dump(obj: Any) -> Optional[Dict[str, Any]]:
    """SDK model -> plain dict in wire (camelCase) form."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj
    return obj.model_dump(mode="json", by_alias=True, exclude_none=True)


def to_stream_chunk(response: types.GenerateContentResponse) -> StreamChunk:
    """Convert one streamed response into a StreamChunk."""
    metadata = None
    candidates = response.candidates or []
    if candidates and candidates[0].grounding_metadata is not None:
        metadata = _dump(candidates[0].grounding_metadata)

    return StreamChunk(text=response.text or None, grounding_metadata=metadata)


class GeminiTransport:
    """
    Streaming access to Gemini:
    - grounded multi-turn chats (Google Search tool enabled)
    - single-turn, tool-less streaming for degraded answers
    - one-shot grounded search for the HTTP proxy
    """

    def __init__(self, client: Optional[genai.Client] = None, model: Optional[str] = None):
        self.client = client or _create_client()
        self.model = model or config.SEARCH_MODEL
        self.search_tool = types.Tool(google_search=types.GoogleSearch())

    def start_session(self, system_instruction: str):
        """New grounded chat; the SDK keeps its turn history."""
        return self.client.aio.chats.create(
            model=self.model,
            config=types.GenerateContentConfig(
                tools=[self.search_tool],
                system_instruction=system_instruction,
            ),
        )

    async def stream(self, session, prompt: str) -> AsyncIterator[StreamChunk]:
        """Send `prompt` as the next turn of `session` and yield chunks as they arrive."""
        try:
            responses = await session.send_message_stream(prompt)
            async for response in responses:
                yield to_stream_chunk(response)
        except errors.APIError as e:
            raise TransportError(f"Gemini chat request failed: {e}") from e

    async def stream_single_turn(self, prompt: str, system_instruction: str) -> AsyncIterator[StreamChunk]:
        """Session-less, tool-less streaming completion."""
        try:
            responses = await self.client.aio.models.generate_content_stream(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(system_instruction=system_instruction),
            )
            async for response in responses:
                yield to_stream_chunk(response)
        except errors.APIError as e:
            raise TransportError(f"Gemini completion failed: {e}") from e

    async def search(self, query: str, system_instruction: str) -> SearchResponse:
        """Single grounded, non-streaming answer with its raw grounding metadata."""
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=query,
                config=types.GenerateContentConfig(
                    tools=[self.search_tool],
                    system_instruction=system_instruction,
                ),
            )
        except errors.APIError as e:
            raise TransportError(e.message or "Failed to generate content from Gemini") from e

        candidate = response.candidates[0] if response.candidates else None
        if candidate is None:
            logger.warning("No candidates in search response")

        metadata = _dump(candidate.grounding_metadata) if candidate is not None else None
        return SearchResponse(answer=response.text or NO_ANSWER_TEXT, grounding_metadata=metadata)
