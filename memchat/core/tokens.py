"""Token accounting: count tokens for messages and trim history to a budget.

Counts use the completion model's tiktoken encoding. Trimming keeps the
most recent messages and evicts the oldest first, stopping at the first
message that does not fit.
"""

from __future__ import annotations

import math
from functools import lru_cache
from typing import Any, Sequence

import structlog
import tiktoken

from memchat.core.types import ChatMessage, UsageStats

logger = structlog.get_logger()

# Framing cost of one message in the chat wire format
MESSAGE_OVERHEAD = 4

# Budget shown by the usage meter when none is configured
DEFAULT_MAX_TOKENS = 3500

DEFAULT_ENCODING_MODEL = "gpt-4o"

# Heuristic when the encoder is unavailable or rejects the text
_CHARS_PER_TOKEN = 4
_FALLBACK_ENCODING = "o200k_base"


@lru_cache(maxsize=None)
def _get_encoding(model: str) -> Any:
    """Load (once per model) the tiktoken encoding, or None if unavailable."""
    try:
        try:
            return tiktoken.encoding_for_model(model)
        except KeyError:
            return tiktoken.get_encoding(_FALLBACK_ENCODING)
    except Exception as e:
        logger.warning("tokenizer_unavailable", model=model, error=str(e))
        return None


def load_encoding(model: str = DEFAULT_ENCODING_MODEL) -> bool:
    """Warm the encoding cache for ``model``.

    The first load may download the BPE file with blocking I/O, so call
    this off the event loop. Returns False when only the estimate is
    available.
    """
    return _get_encoding(model) is not None


def _estimate(text: str) -> int:
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


def count_tokens(text: str, model: str = DEFAULT_ENCODING_MODEL) -> int:
    """Number of tokens ``text`` occupies for ``model``.

    Never raises: falls back to ~4 characters per token.
    """
    if not text:
        return 0

    encoding = _get_encoding(model)
    if encoding is None:
        return _estimate(text)

    try:
        return len(encoding.encode(text))
    except Exception:
        # e.g. text containing reserved special-token strings
        return _estimate(text)


def message_tokens(message: ChatMessage, model: str = DEFAULT_ENCODING_MODEL) -> int:
    """Content + role + per-message framing overhead."""
    return (
        count_tokens(message.content, model)
        + count_tokens(message.role.value, model)
        + MESSAGE_OVERHEAD
    )


def count_messages_tokens(
    messages: Sequence[ChatMessage],
    model: str = DEFAULT_ENCODING_MODEL,
) -> int:
    """Total tokens for a message sequence (0 when empty)."""
    return sum(message_tokens(m, model) for m in messages)


def trim_to_budget(
    messages: Sequence[ChatMessage],
    max_tokens: int = DEFAULT_MAX_TOKENS,
    model: str = DEFAULT_ENCODING_MODEL,
) -> Sequence[ChatMessage]:
    """Keep the longest suffix of ``messages`` that fits in ``max_tokens``.

    Returns the input itself when it already fits. The most recent message
    is always kept, even when it alone exceeds the budget.
    """
    if not messages:
        return messages

    if count_messages_tokens(messages, model) <= max_tokens:
        return messages

    kept: list[ChatMessage] = []
    used = 0
    for message in reversed(messages):
        cost = message_tokens(message, model)
        if used + cost > max_tokens:
            break
        kept.append(message)
        used += cost

    if not kept:
        logger.debug(
            "budget_exceeded_by_last_message",
            tokens=message_tokens(messages[-1], model),
            max_tokens=max_tokens,
        )
        return [messages[-1]]

    kept.reverse()
    return kept


def get_usage_stats(
    messages: Sequence[ChatMessage],
    max_tokens: int = DEFAULT_MAX_TOKENS,
    model: str = DEFAULT_ENCODING_MODEL,
) -> UsageStats:
    """Report how much of the budget the conversation uses after trimming."""
    original = count_messages_tokens(messages, model)
    retained_messages = trim_to_budget(messages, max_tokens, model)
    retained = count_messages_tokens(retained_messages, model)

    return UsageStats(
        original_tokens=original,
        retained_tokens=retained,
        max_tokens=max_tokens,
        messages_dropped=len(messages) - len(retained_messages),
        # Round half up, like the meter does
        utilization_percent=math.floor(retained / max_tokens * 100 + 0.5),
    )
