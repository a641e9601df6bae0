"""In-memory stand-in for the Mem0 async client."""

from __future__ import annotations

import asyncio
from typing import Any


class FakeMem0:
    """Records calls the way ``mem0.AsyncMemoryClient`` would receive them."""

    def __init__(self, results: Any = None, error: Exception | None = None, delay: float = 0) -> None:
        self.results = [] if results is None else results
        self.error = error
        self.delay = delay
        self.search_calls: list[tuple[str, dict[str, Any]]] = []
        self.add_calls: list[tuple[list[dict[str, str]], dict[str, Any]]] = []
        self.deleted: list[str] = []
        self.deleted_users: list[str] = []
        self.stored: list[dict[str, Any]] = []

    async def search(self, query: str, **kwargs: Any) -> Any:
        self.search_calls.append((query, kwargs))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.results

    async def add(self, messages: list[dict[str, str]], **kwargs: Any) -> Any:
        self.add_calls.append((messages, kwargs))
        if self.error:
            raise self.error
        return [{"id": "m-new", "event": "ADD"}]

    async def get_all(self, **kwargs: Any) -> Any:
        if self.error:
            raise self.error
        return self.stored

    async def delete(self, memory_id: str) -> None:
        if self.error:
            raise self.error
        self.deleted.append(memory_id)

    async def delete_all(self, **kwargs: Any) -> None:
        if self.error:
            raise self.error
        self.deleted_users.append(kwargs["user_id"])
