"""Memory client: thin wrapper over the hosted Mem0 memory service.

Built once at startup and shared across requests. Without an API key the
client is disabled and every call is a no-op.
"""

from __future__ import annotations

from typing import Any

import structlog

from memchat.config import MemoryConfig
from memchat.core.types import MemorySnippet

logger = structlog.get_logger()


class MemoryServiceError(RuntimeError):
    """The memory service answered with something we cannot interpret."""


class MemoryClient:
    """Search, store and manage per-user memories in Mem0."""

    def __init__(self, backend: Any = None, threshold: float = 0.1) -> None:
        """Initialize the client.

        Args:
            backend: A ``mem0.AsyncMemoryClient`` (or compatible object).
                     ``None`` disables the client.
            threshold: Minimum relevance score requested from search.
        """
        self._backend = backend
        self.threshold = threshold

    @classmethod
    def from_config(cls, config: MemoryConfig) -> MemoryClient:
        """Create a client from config; disabled when no API key is set."""
        api_key = config.get_api_key()
        if not api_key:
            logger.warning("memory_disabled", reason="missing_api_key", env=config.api_key_env)
            return cls(None, threshold=config.threshold)

        try:
            from mem0 import AsyncMemoryClient

            backend = AsyncMemoryClient(
                api_key=api_key,
                org_id=config.org_id,
                project_id=config.project_id,
            )
        except Exception as e:
            logger.error("memory_client_init_failed", error=str(e))
            return cls(None, threshold=config.threshold)

        logger.info("memory_client_initialized")
        return cls(backend, threshold=config.threshold)

    @property
    def enabled(self) -> bool:
        return self._backend is not None

    async def search(
        self,
        query: str,
        user_id: str,
        limit: int = 5,
    ) -> list[MemorySnippet]:
        """Search memories relevant to ``query``, best match first.

        Service errors propagate; callers decide how to degrade.
        """
        if not self._backend:
            return []

        raw = await self._backend.search(
            query,
            user_id=user_id,
            limit=limit,
            threshold=self.threshold,
        )
        snippets = self._parse_results(raw)

        logger.debug(
            "memory_search_results",
            user_id=user_id,
            count=len(snippets),
            top_scores=[round(s.score, 3) for s in snippets[:3]],
        )
        return snippets

    @staticmethod
    def _parse_results(raw: Any) -> list[MemorySnippet]:
        """Normalize a search response (bare list or ``{"results": [...]}``)."""
        if raw is None:
            return []
        if isinstance(raw, dict):
            raw = raw.get("results")
        if not isinstance(raw, list):
            raise MemoryServiceError(f"Unexpected search response: {type(raw).__name__}")

        snippets: list[MemorySnippet] = []
        for item in raw:
            if not isinstance(item, dict):
                raise MemoryServiceError(f"Unexpected search result: {type(item).__name__}")
            text = item.get("memory") or item.get("text")
            if not isinstance(text, str):
                raise MemoryServiceError("Search result without memory text")
            score = item.get("score")
            snippets.append(MemorySnippet(
                id=str(item.get("id", "")),
                text=text,
                score=float(score) if score is not None else 1.0,
            ))
        return snippets

    async def add(
        self,
        messages: list[dict[str, str]],
        user_id: str,
        metadata: dict[str, Any] | None = None,
        run_id: str | None = None,
    ) -> bool:
        """Store messages as memories. Returns False on any failure."""
        if not self._backend:
            return False

        kwargs: dict[str, Any] = {"user_id": user_id, "metadata": metadata or {}}
        if run_id:
            kwargs["run_id"] = run_id

        try:
            await self._backend.add(messages, **kwargs)
        except Exception as e:
            logger.error("memory_add_failed", user_id=user_id, error=str(e))
            return False

        logger.info("memory_added", user_id=user_id, messages=len(messages))
        return True

    async def get_all(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 50,
    ) -> list[dict[str, Any]]:
        """List a user's memories (empty on failure)."""
        if not self._backend:
            return []

        try:
            result = await self._backend.get_all(
                user_id=user_id, page=page, page_size=page_size,
            )
        except Exception as e:
            logger.error("memory_list_failed", user_id=user_id, error=str(e))
            return []

        if isinstance(result, dict):
            result = result.get("results", [])
        return result if isinstance(result, list) else []

    async def delete(self, memory_id: str) -> bool:
        """Delete a memory by ID."""
        if not self._backend:
            return False
        try:
            await self._backend.delete(memory_id)
            return True
        except Exception as e:
            logger.error("memory_delete_failed", memory_id=memory_id, error=str(e))
            return False

    async def delete_all(self, user_id: str) -> bool:
        """Delete every memory stored for a user."""
        if not self._backend:
            return False
        try:
            await self._backend.delete_all(user_id=user_id)
            return True
        except Exception as e:
            logger.error("memory_delete_all_failed", user_id=user_id, error=str(e))
            return False
