"""HTTP API: FastAPI app relaying memory-augmented completions.

``POST /api/chat`` is the request path: validate the body, search memories,
prepend them as a system message, dispatch the completion and stream it
back in the AI SDK data stream format. Memory write-back happens after the
stream has finished.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator
from uuid import uuid4

import structlog
import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from memchat.config import MemchatConfig
from memchat.core import tokens
from memchat.core.capabilities import (
    MODEL_CAPABILITIES,
    attachment_error,
    get_model_capabilities,
)
from memchat.core.completion import CompletionClient, CompletionError
from memchat.core.memory.context import ContextAssembler
from memchat.core.types import ChatMessage, Role
from memchat.ui import data_stream
from memchat.ui.schemas import ChatRequest, TokenStatsRequest

logger = structlog.get_logger()


def _error(status: int, error: str, details: str) -> JSONResponse:
    return JSONResponse({"error": error, "details": details}, status_code=status)


class WebServer:
    """FastAPI-based chat API server."""

    def __init__(
        self,
        config: MemchatConfig,
        assembler: ContextAssembler,
        completion: CompletionClient,
    ) -> None:
        self.config = config
        self.assembler = assembler
        self.completion = completion
        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            model = self.config.context.encoding_model
            loaded = await asyncio.to_thread(tokens.load_encoding, model)
            logger.info("tokenizer_loaded", model=model, exact=loaded)
            yield
            # Let in-flight memory writes finish before exiting
            await self.assembler.drain()

        app = FastAPI(title="memchat", docs_url=None, redoc_url=None, lifespan=lifespan)

        async def chat(request: Request):
            return await self._handle_chat(request)

        app.add_api_route("/api/chat", chat, methods=["POST"])
        app.add_api_route("/chat", chat, methods=["POST"])

        @app.post("/api/tokens/stats")
        async def token_stats(request: Request):
            try:
                body = TokenStatsRequest.model_validate(await request.json())
            except (json.JSONDecodeError, ValidationError) as e:
                return _error(400, "Invalid request format", str(e))

            stats = tokens.get_usage_stats(
                [m.to_message() for m in body.messages],
                body.max_tokens or self.config.context.max_tokens,
                model=self.config.context.encoding_model,
            )
            return stats.to_dict()

        @app.get("/api/memories")
        async def list_memories(
            user_id: str = Query(...),
            page: int = Query(1, ge=1),
            page_size: int = Query(50, ge=1, le=200),
        ):
            memories = await self.assembler.memory.get_all(user_id, page, page_size)
            return {"memories": memories, "count": len(memories)}

        @app.delete("/api/memories/{memory_id}")
        async def delete_memory(memory_id: str):
            return {"success": await self.assembler.memory.delete(memory_id)}

        @app.delete("/api/memories")
        async def delete_user_memories(user_id: str = Query(...)):
            return {"success": await self.assembler.memory.delete_all(user_id)}

        @app.get("/api/models")
        async def get_models():
            return {
                "default": self.completion.default_model,
                "capabilities": {
                    name: caps.to_dict() for name, caps in MODEL_CAPABILITIES.items()
                },
            }

        @app.get("/api/status")
        async def get_status():
            return {
                "default_model": self.completion.default_model,
                "memory_enabled": self.assembler.memory.enabled,
                "max_context_tokens": self.config.context.max_tokens,
                "trim_before_dispatch": self.config.context.trim_before_dispatch,
            }

        return app

    async def _handle_chat(self, request: Request) -> Any:
        try:
            body = ChatRequest.model_validate(await request.json())
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            logger.warning("chat_request_invalid", error=str(e))
            return _error(400, "Invalid request format", str(e))

        model = body.model or self.completion.default_model
        messages = body.to_messages()

        caps = get_model_capabilities(model)
        for m in messages:
            for attachment in m.attachments:
                problem = attachment_error(attachment, caps)
                if problem:
                    return _error(400, "Unsupported attachment", f"{attachment.name}: {problem}")

        user_id = (
            body.user_id
            or request.headers.get("x-user-id")
            or self.config.memory.default_user_id
        )
        logger.info(
            "chat_request_received",
            model=model,
            user_id=user_id,
            messages=len(messages),
            attachments=sum(len(m.attachments) for m in messages),
        )

        history = messages
        if self.config.context.trim_before_dispatch:
            history = list(tokens.trim_to_budget(
                messages,
                self.config.context.max_tokens,
                model=self.config.context.encoding_model,
            ))
            if len(history) < len(messages):
                logger.info("history_trimmed", dropped=len(messages) - len(history))

        enhanced = await self.assembler.assemble_request(history, user_id)

        try:
            stream = await self.completion.open_stream(
                [m.to_litellm() for m in enhanced], model=model,
            )
        except CompletionError as e:
            logger.error("completion_failed", model=model, stage="dispatch", error=str(e))
            return _error(500, "Failed to process chat request", str(e))

        return StreamingResponse(
            self._relay(stream, enhanced, messages, user_id, body.conversation_id, model),
            media_type=data_stream.MEDIA_TYPE,
            headers=data_stream.HEADERS,
        )

    async def _relay(
        self,
        stream: AsyncGenerator[str, None],
        enhanced: list[ChatMessage],
        messages: list[ChatMessage],
        user_id: str,
        conversation_id: str | None,
        model: str,
    ) -> AsyncIterator[str]:
        """Forward deltas as they arrive, then schedule memory write-back."""
        reply = ChatMessage(role=Role.ASSISTANT)
        yield data_stream.start_part(uuid4().hex)

        try:
            async for delta in stream:
                reply.append(delta)
                yield data_stream.text_part(delta)
        except CompletionError as e:
            # Partial content already sent stays with the client
            logger.error(
                "completion_failed", model=model, stage="stream",
                partial_length=len(reply.content), error=str(e),
            )
            yield data_stream.error_part(str(e))
            return
        finally:
            # Release the upstream response when the client goes away
            await stream.aclose()

        encoding_model = self.config.context.encoding_model
        yield data_stream.finish_part(
            "stop",
            prompt_tokens=tokens.count_messages_tokens(enhanced, encoding_model),
            completion_tokens=tokens.count_tokens(reply.content, encoding_model),
        )
        logger.info("completion_finished", model=model, length=len(reply.content))

        self.assembler.schedule_persist(
            [*messages, reply], user_id, conversation_id, model=model,
        )

    async def run(self) -> None:
        """Start the uvicorn server."""
        config = uvicorn.Config(
            self.app,
            host=self.config.web_ui.host,
            port=self.config.web_ui.port,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        await server.serve()
