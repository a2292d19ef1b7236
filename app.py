import gradio as gr
from core import SearchEngine
import config
import utils
import logging

# Initialize engine
engine = SearchEngine()
logger = logging.getLogger("streekx")

async def chat_fn(message, history, request: gr.Request):
    """
    Stream a grounded answer. The browser session is the conversation,
    so follow-up questions keep their context.
    """
    session_id = request.session_hash if request else "default"
    partial_response = ""

    async for event in engine.stream(message, session_id):
        if event.type == "delta":
            partial_response += event.text
            yield partial_response
        else:
            result = event.result
            if not result.is_grounded:
                logger.info(f"Answer for {session_id} was {result.status.value}: {result.error}")
            yield result.text + utils.format_sources(result.sources)

demo = gr.ChatInterface(
    fn=chat_fn,
    title="🔎 StreekX",
    description="**Real-time AI search** — Gemini answers grounded in Google Search, with cited sources",
    examples=[
        "What happened in tech news today?",
        "Compare the latest flagship phones",
        "What is the current state of fusion energy research?"
    ],
)

if __name__ == "__main__":
    demo.launch(server_name=config.UI_HOST, server_port=config.UI_PORT)
