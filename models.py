"""
Pydantic models for search results, stream chunks and the proxy contract.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal, Optional
from enum import Enum


SOURCE_TITLE_PLACEHOLDER = "Source"
SOURCE_URI_PLACEHOLDER = "#"


class GenerationStatus(str, Enum):
    GROUNDED = "grounded"
    DEGRADED = "degraded"
    FAILED = "failed"


# ============ Citation Models ============

class Source(BaseModel):
    """A web page cited by a grounded answer."""
    title: str = Field(default=SOURCE_TITLE_PLACEHOLDER, description="Display title of the page")
    uri: str = Field(default=SOURCE_URI_PLACEHOLDER, description="Link to the page")


# ============ Streaming Models ============

class StreamChunk(BaseModel):
    """One increment of a provider response stream."""
    text: Optional[str] = Field(default=None, description="Text increment, if any")
    grounding_metadata: Optional[Dict[str, Any]] = Field(
        default=None, description="Provider grounding metadata attached to this chunk"
    )


class GenerationResult(BaseModel):
    """Full answer returned once a generation finishes."""
    text: str = Field(default="", description="Accumulated answer text")
    sources: List[Source] = Field(default_factory=list, description="Cited sources, unique by URI")
    status: GenerationStatus = Field(default=GenerationStatus.GROUNDED)
    error: Optional[str] = Field(default=None, description="Why the grounded path was abandoned")

    @property
    def is_grounded(self) -> bool:
        return self.status == GenerationStatus.GROUNDED


class StreamEvent(BaseModel):
    """Item yielded by SearchEngine.stream: text deltas, then one final result."""
    type: Literal["delta", "done"]
    text: str = ""
    result: Optional[GenerationResult] = None


# ============ Proxy Models ============

class SearchRequest(BaseModel):
    query: Optional[str] = None


class SearchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    answer: str
    grounding_metadata: Optional[Dict[str, Any]] = Field(default=None, alias="groundingMetadata")
