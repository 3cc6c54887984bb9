"""FastAPI application exposing the chat and slide-context routes.

Usage:
    uvicorn slide_tutor.server:app --reload
"""

import json
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from slide_tutor.config import Settings, setup_logging
from slide_tutor.llm_interface import LLMInterface
from slide_tutor.prompts import build_system_prompt
from slide_tutor.slide_context import BUNDLED_CONTEXTS, ContextStore, SlideContext, SlideContextNotFound
from slide_tutor.tools import TOOL_DEFINITIONS, parse_arguments

logger = logging.getLogger(__name__)

# Keys of a chat message accepted by the completions API
MESSAGE_KEYS = ("role", "content", "tool_calls", "tool_call_id", "name")


class SlideContextModel(BaseModel):
    """Slide context as sent by clients (camelCase page fields)."""

    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    content: Optional[str] = None
    explanation: Optional[str] = None
    keywords: Optional[List[str]] = None
    current_page: Optional[int] = Field(None, alias="currentPage")
    total_pages: Optional[int] = Field(None, alias="totalPages")

    def to_context(self) -> SlideContext:
        return SlideContext.from_dict(self.model_dump())


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache
def get_store() -> ContextStore:
    settings = get_settings()
    return ContextStore.from_json(settings.contexts_path or BUNDLED_CONTEXTS)


def get_llm(settings: Settings = Depends(get_settings)) -> LLMInterface:
    return LLMInterface(settings)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging when the server starts."""
    setup_logging(get_settings().log_file)
    logger.info("Starting Slide Tutor API...")
    yield


def _sanitize_messages(messages: List[Any]) -> List[Dict[str, Any]]:
    return [
        {key: m[key] for key in MESSAGE_KEYS if key in m}
        for m in messages
        if isinstance(m, dict)
    ]


def create_app(title: str = "Slide Tutor API", version: str = "0.1.0") -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        title: API title for documentation
        version: API version

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=title,
        version=version,
        description="Chat completions with slide tools and per-page slide context",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/api/chat")
    async def chat(request: Request, llm: LLMInterface = Depends(get_llm)):
        try:
            body = await request.json()
        except json.JSONDecodeError:
            return _error(400, "Invalid message format")

        messages = body.get("messages") if isinstance(body, dict) else None
        if messages is None or not isinstance(messages, list):
            return _error(400, "Invalid message format")

        context = None
        if body.get("context") is not None:
            try:
                context = SlideContextModel.model_validate(body["context"]).to_context()
            except ValidationError as e:
                return _error(400, f"Invalid slide context: {e.errors()[0].get('msg')}")

        try:
            reply = await llm.chat_completion(
                _sanitize_messages(messages),
                system_prompt=build_system_prompt(context),
                tools=TOOL_DEFINITIONS
            )
        except (ValueError, RuntimeError) as e:
            logger.error(f"Chat API error: {e}", exc_info=True)
            return _error(500, str(e) or "Error while the LLM processed the request")

        message: Dict[str, Any] = {"role": "assistant", "content": reply.content}
        if reply.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "name": call.name,
                    "arguments": parse_arguments(call.arguments),
                }
                for call in reply.tool_calls
            ]
        return {"choices": [{"message": message, "finish_reason": reply.finish_reason}]}

    @app.get("/api/context")
    async def context(
        pdf_url: Optional[str] = Query(None, alias="pdfUrl"),
        page: Optional[str] = Query(None),
        store: ContextStore = Depends(get_store),
    ):
        try:
            slide_context = store.lookup(pdf_url, page)
        except ValueError as e:
            return _error(400, str(e))
        except SlideContextNotFound as e:
            logger.info(f"Context lookup failed: {e}")
            return _error(404, "no context data for this page")

        data = slide_context.to_dict()
        data.pop("current_page")
        data.pop("total_pages")
        return data

    return app


app = create_app()
