"""Context assembly: inject relevant memories ahead of the conversation.

Per request:
1. Search the memory service with the latest user message.
2. Format the best snippets into a context block.
3. Prepend a system message carrying that block to the untouched history.
4. After a successful completion, store the exchange back (fire-and-forget).

Memory is an enhancement, not a hard dependency: search and persist
failures are logged and absorbed here.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Sequence

import structlog

from memchat.core.memory.client import MemoryClient
from memchat.core.types import ChatMessage, MemorySnippet, Role

logger = structlog.get_logger()

MAX_SNIPPETS = 5

NO_CONTEXT_SENTINEL = "No relevant user context available."
CONTEXT_HEADER = "User Context (from past conversations):"

SYSTEM_PROMPT_TEMPLATE = (
    "You are a helpful AI assistant. Here is relevant context from previous "
    "conversations with this user:\n\n"
    "{memory_context}\n\n"
    "Use this context to provide personalized, contextual responses. If the "
    "context is relevant, acknowledge what you remember about the user. If not "
    "directly relevant, focus on the current question."
)


def _percent(score: float) -> Decimal:
    # Half up on the exact binary value, ties included
    return Decimal(score * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def format_memory_context(snippets: Sequence[MemorySnippet]) -> str:
    """Render up to five snippets as a numbered block, never empty."""
    if not snippets:
        return NO_CONTEXT_SENTINEL

    lines = [
        f"{index}. {s.text} (Relevance: {_percent(s.score)}%)"
        for index, s in enumerate(snippets[:MAX_SNIPPETS], start=1)
    ]
    return CONTEXT_HEADER + "\n" + "\n".join(lines)


def latest_user_content(messages: Sequence[ChatMessage]) -> str:
    """Content of the most recent user message, or "" if there is none."""
    for m in reversed(messages):
        if m.role == Role.USER:
            return m.content
    return ""


class ContextAssembler:
    """Builds the completion input from history plus retrieved memories."""

    def __init__(
        self,
        memory: MemoryClient,
        search_limit: int = MAX_SNIPPETS,
        search_timeout: float = 3.0,
        model: str = "gpt-4o",
    ) -> None:
        self.memory = memory
        self.search_limit = search_limit
        self.search_timeout = search_timeout
        self.model = model
        self._pending: set[asyncio.Task] = set()

    async def search_memories(self, query: str, user_id: str) -> list[MemorySnippet]:
        """Search with a timeout; any failure means no memories."""
        try:
            return await asyncio.wait_for(
                self.memory.search(query, user_id, limit=self.search_limit),
                timeout=self.search_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("memory_search_timeout", user_id=user_id, timeout=self.search_timeout)
        except Exception as e:
            logger.warning("memory_search_failed", user_id=user_id, error=str(e))
        return []

    async def assemble_request(
        self,
        messages: Sequence[ChatMessage],
        user_id: str,
    ) -> list[ChatMessage]:
        """Return ``[memory system message, *messages]``.

        The given messages are neither reordered, trimmed nor mutated.
        """
        query = latest_user_content(messages)
        snippets = await self.search_memories(query, user_id)
        logger.info("memory_searched", user_id=user_id, found=len(snippets))

        memory_context = format_memory_context(snippets)
        logger.debug("context_formatted", length=len(memory_context))

        system = ChatMessage(
            role=Role.SYSTEM,
            content=SYSTEM_PROMPT_TEMPLATE.format(memory_context=memory_context),
        )
        return [system, *messages]

    async def persist_exchange(
        self,
        messages: Sequence[ChatMessage],
        user_id: str,
        conversation_id: str | None = None,
        model: str | None = None,
    ) -> bool:
        """Store the user/assistant turns in the memory service.

        Best-effort: returns False instead of raising.
        """
        exchange = [
            {"role": m.role.value, "content": m.content}
            for m in messages
            if m.role in (Role.USER, Role.ASSISTANT)
        ]
        if not exchange:
            return False

        metadata: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "model": model or self.model,
            "message_count": len(messages),
        }
        if conversation_id:
            metadata["conversation_id"] = conversation_id

        try:
            stored = await self.memory.add(
                exchange, user_id, metadata=metadata, run_id=conversation_id,
            )
        except Exception as e:
            logger.error("memory_persist_failed", user_id=user_id, error=str(e))
            return False

        if stored:
            logger.info("memory_persisted", user_id=user_id, messages=len(exchange))
        return stored

    def schedule_persist(
        self,
        messages: Sequence[ChatMessage],
        user_id: str,
        conversation_id: str | None = None,
        model: str | None = None,
    ) -> asyncio.Task:
        """Run ``persist_exchange`` in the background without awaiting it."""
        task = asyncio.create_task(
            self.persist_exchange(list(messages), user_id, conversation_id, model)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for all scheduled persist tasks (used on shutdown)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
