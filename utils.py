import logging
from typing import Any, Dict, Iterable, List, Optional

import config
from models import Source, StreamChunk, SOURCE_TITLE_PLACEHOLDER, SOURCE_URI_PLACEHOLDER

def setup_logging():
    """Configure logging for the application."""
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format=config.LOG_FORMAT,
        datefmt=config.DATE_FORMAT
    )
    logger = logging.getLogger("streekx")

    # File handler (only once, modules may be reloaded by the UI server)
    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        file_handler = logging.FileHandler(config.LOG_FILE)
        file_handler.setLevel(config.LOG_LEVEL)
        file_handler.setFormatter(logging.Formatter(config.LOG_FORMAT))
        logger.addHandler(file_handler)

    return logger

logger = setup_logging()


def _grounding_chunks(metadata: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Grounding chunks from metadata in either wire (camelCase) or snake_case form."""
    if not metadata:
        return []
    chunks = metadata.get("groundingChunks")
    if chunks is None:
        chunks = metadata.get("grounding_chunks")
    return chunks or []


def extract_sources(chunk: StreamChunk) -> List[Source]:
    """
    Map the grounding chunks of a stream chunk to Sources.
    Chunks that do not reference a web page are skipped.
    """
    sources = []
    for grounding_chunk in _grounding_chunks(chunk.grounding_metadata):
        web = grounding_chunk.get("web") if isinstance(grounding_chunk, dict) else None
        if web is None:
            continue
        sources.append(Source(
            title=web.get("title") or SOURCE_TITLE_PLACEHOLDER,
            uri=web.get("uri") or SOURCE_URI_PLACEHOLDER,
        ))
    return sources


def dedupe_sources(sources: Iterable[Source]) -> List[Source]:
    """Keep the first source seen for every URI, in original order."""
    unique = []
    seen_uris = set()

    for source in sources:
        if source.uri not in seen_uris:
            seen_uris.add(source.uri)
            unique.append(source)

    return unique


def format_sources(sources: List[Source]) -> str:
    """Markdown footer listing the sources of an answer."""
    if not sources:
        return ""

    lines = ["\n\n---\n\n**📚 Sources:**"]
    for i, source in enumerate(sources, 1):
        if source.uri == SOURCE_URI_PLACEHOLDER:
            lines.append(f"{i}. {source.title}")
        else:
            lines.append(f"{i}. [{source.title}]({source.uri})")
    return "\n".join(lines)
