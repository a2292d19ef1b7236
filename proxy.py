"""
HTTP search proxy: POST /search {"query": ...} -> {"answer", "groundingMetadata"}.

Session-less and non-streaming. Unlike SearchEngine, failures are reported to
the client as HTTP 500 with {"error": message}.
"""
import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
import utils  # noqa: F401  (configures logging)
from models import SearchRequest
from transport import GeminiTransport

logger = logging.getLogger("streekx")

PROXY_SYSTEM_INSTRUCTION = (
    "You are a professional AI search engine. Provide a detailed, factual answer based on the "
    "search results. Use markdown for formatting and include numbered citations like [1], [2] "
    "next to the facts."
)


def _error(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": message})


def create_app(transport=None) -> FastAPI:
    """Build the proxy app. The Gemini transport is created on first request when not given."""
    app = FastAPI(title="StreekX Search Proxy")
    app.state.transport = transport

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "OPTIONS"],
        allow_headers=config.CORS_ALLOW_HEADERS,
    )

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError):
        return _error("Invalid request body")

    @app.post("/search")
    async def search(payload: SearchRequest, request: Request):
        try:
            if not payload.query:
                raise ValueError("Missing 'query' in request body")

            if request.app.state.transport is None:
                config_errors = config.validate_config()
                if config_errors:
                    raise ValueError(f"Server Misconfiguration: {'; '.join(config_errors)}")
                request.app.state.transport = GeminiTransport()

            result = await request.app.state.transport.search(payload.query, PROXY_SYSTEM_INSTRUCTION)
        except Exception as e:
            logger.error(f"Search proxy error: {e}")
            return _error(str(e) or "Failed to generate content from Gemini")

        return JSONResponse(content=result.model_dump(mode="json", by_alias=True))

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host=config.PROXY_HOST, port=config.PROXY_PORT)
