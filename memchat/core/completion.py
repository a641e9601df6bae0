"""Completion client: streamed chat completions via LiteLLM.

The whole call, dispatch plus streaming, runs under one deadline. The
first delta is awaited before the stream is handed out, so failures that
happen before any output reach the caller as a plain exception.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, AsyncGenerator, AsyncIterator

import litellm
import structlog

from memchat.config import MemchatConfig

logger = structlog.get_logger()

# Suppress LiteLLM's verbose logging
litellm.suppress_debug_info = True

_END = object()


class CompletionError(RuntimeError):
    """The completion provider failed or exceeded the deadline."""


class CompletionClient:
    """Dispatches streamed completion requests through LiteLLM."""

    def __init__(self, config: MemchatConfig) -> None:
        self.config = config
        self._setup_provider_keys()

    def _setup_provider_keys(self) -> None:
        """Set up API keys from config into environment variables."""
        for provider_cfg in self.config.models.providers.values():
            if provider_cfg.api_key_env:
                key = provider_cfg.get_api_key()
                if key:
                    # LiteLLM reads keys from env vars
                    os.environ.setdefault(provider_cfg.api_key_env, key)

    @property
    def default_model(self) -> str:
        return self.config.models.default

    @property
    def timeout(self) -> float:
        return self.config.models.timeout

    def _build_kwargs(
        self,
        messages: list[dict[str, Any]],
        model: str,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        models_cfg = self.config.models
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature if temperature is not None else models_cfg.temperature,
            "max_tokens": max_tokens if max_tokens is not None else models_cfg.max_tokens,
            "stream": True,
            "timeout": self.timeout,
        }

        provider = model.split("/")[0] if "/" in model else "openai"
        provider_cfg = models_cfg.providers.get(provider)
        if provider_cfg and provider_cfg.base_url:
            kwargs["api_base"] = provider_cfg.base_url
        return kwargs

    async def open_stream(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncGenerator[str, None]:
        """Dispatch a completion and return an iterator of text deltas.

        Raises CompletionError if the request fails or times out before
        the first delta. Later failures are raised from the iterator.
        """
        target_model = model or self.default_model
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        logger.info("completion_dispatched", model=target_model, messages=len(messages))
        try:
            response = await asyncio.wait_for(
                litellm.acompletion(
                    **self._build_kwargs(messages, target_model, temperature, max_tokens)
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise CompletionError(
                f"Completion timed out after {self.timeout:g}s"
            ) from e
        except Exception as e:
            raise CompletionError(str(e)) from e

        deltas = self._deltas(response)
        try:
            first = await self._next(deltas, deadline)
        except CompletionError:
            await deltas.aclose()
            raise
        return self._relay(first, deltas, deadline)

    @staticmethod
    async def _deltas(response: Any) -> AsyncGenerator[str, None]:
        try:
            async for chunk in response:
                delta = chunk.choices[0].delta if chunk.choices else None
                if delta and delta.content:
                    yield delta.content
        finally:
            close = getattr(response, "aclose", None)
            if close is not None:
                await close()

    async def _next(self, deltas: AsyncIterator[str], deadline: float) -> Any:
        remaining = deadline - asyncio.get_running_loop().time()
        try:
            if remaining <= 0:
                raise asyncio.TimeoutError
            return await asyncio.wait_for(deltas.__anext__(), timeout=remaining)
        except StopAsyncIteration:
            return _END
        except asyncio.TimeoutError as e:
            raise CompletionError(
                f"Completion timed out after {self.timeout:g}s"
            ) from e
        except Exception as e:
            raise CompletionError(str(e)) from e

    async def _relay(
        self,
        first: Any,
        deltas: AsyncGenerator[str, None],
        deadline: float,
    ) -> AsyncGenerator[str, None]:
        item = first
        try:
            while item is not _END:
                yield item
                item = await self._next(deltas, deadline)
        finally:
            await deltas.aclose()
