"""Shared data types for memchat.

The API is stateless per request; ``Conversation`` and ``generate_title`` are
the shape a conversation store persists, and are not used by the server.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

DEFAULT_TITLE = "New Chat"
_TITLE_LENGTH = 30


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Message role in conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Attachment:
    """A file attached to a chat message.

    Either ``data`` (an inline ``data:`` URL) or ``url`` (remote, e.g. CDN)
    must be set.
    """

    name: str
    mime_type: str
    size: int = 0
    data: str | None = None
    url: str | None = None
    id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self) -> None:
        if not self.data and not self.url:
            raise ValueError(f"Attachment '{self.name}' needs inline data or a url")

    @property
    def kind(self) -> str:
        if self.mime_type.startswith("image/"):
            return "image"
        if self.mime_type.startswith(("application/", "text/")):
            return "document"
        return "other"

    @property
    def source(self) -> str:
        return self.url or self.data or ""

    def to_litellm_part(self) -> dict[str, Any]:
        """Convert to a LiteLLM content part."""
        if self.kind == "image":
            return {"type": "image_url", "image_url": {"url": self.source}}
        return {
            "type": "file",
            "file": {"file_data": self.source, "filename": self.name},
        }


@dataclass
class ChatMessage:
    """A single message in the conversation.

    The role is fixed once the message exists; assistant content may grow
    while a completion streams in.
    """

    role: Role
    content: str = ""
    attachments: list[Attachment] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=_now)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "role" and "role" in self.__dict__:
            raise AttributeError("ChatMessage.role cannot be changed")
        super().__setattr__(name, value)

    def append(self, delta: str) -> None:
        """Append a streamed text delta (assistant messages only)."""
        if self.role != Role.ASSISTANT:
            raise ValueError("Only assistant messages can be streamed into")
        self.content += delta

    def to_litellm(self) -> dict[str, Any]:
        """Convert to LiteLLM-compatible message dict."""
        if not self.attachments:
            return {"role": self.role.value, "content": self.content}

        parts: list[dict[str, Any]] = []
        if self.content:
            parts.append({"type": "text", "text": self.content})
        parts.extend(a.to_litellm_part() for a in self.attachments)
        return {"role": self.role.value, "content": parts}


def generate_title(first_message: str) -> str:
    """Derive a conversation title from its first user message."""
    if not first_message or not first_message.strip():
        return DEFAULT_TITLE

    title = first_message.strip()
    return title[:_TITLE_LENGTH] + "..." if len(title) > _TITLE_LENGTH else title


@dataclass
class Conversation:
    """An ordered, append-only sequence of chat messages."""

    id: str = field(default_factory=lambda: str(uuid4()))
    title: str = DEFAULT_TITLE
    messages: list[ChatMessage] = field(default_factory=list)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def add_message(self, msg: ChatMessage) -> None:
        """Append a message, deriving the title from the first user message."""
        if any(m.id == msg.id for m in self.messages):
            raise ValueError(f"Duplicate message id: {msg.id}")

        if (
            msg.role == Role.USER
            and self.title == DEFAULT_TITLE
            and not any(m.role == Role.USER for m in self.messages)
        ):
            self.title = generate_title(msg.content)

        self.messages.append(msg)
        self.updated_at = _now()

    def edit_message(self, message_id: str, content: str) -> ChatMessage:
        """Replace a message's content and drop everything after it.

        Used for edit-and-regenerate: the successors are discarded and the
        edited message becomes the last one.
        """
        for index, m in enumerate(self.messages):
            if m.id == message_id:
                m.content = content
                del self.messages[index + 1:]
                self.updated_at = _now()
                return m
        raise KeyError(message_id)


@dataclass
class MemorySnippet:
    """One memory returned by the memory service, best match first."""

    id: str
    text: str
    score: float = 1.0


@dataclass
class UsageStats:
    """Token usage report for a conversation against a budget."""

    original_tokens: int
    retained_tokens: int
    max_tokens: int
    messages_dropped: int
    utilization_percent: int

    @property
    def was_trimmed(self) -> bool:
        return self.messages_dropped > 0

    def to_dict(self) -> dict[str, Any]:
        """Shape consumed by the usage meter."""
        return {
            "originalTokens": self.original_tokens,
            "retainedTokens": self.retained_tokens,
            "maxTokens": self.max_tokens,
            "messagesDropped": self.messages_dropped,
            "utilizationPercent": self.utilization_percent,
            "wasTrimmed": self.was_trimmed,
        }
