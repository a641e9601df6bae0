"""Request bodies accepted by the HTTP API."""

from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from memchat.core.types import Attachment, ChatMessage, Role


class AttachmentIn(BaseModel):
    """Attachment as sent by the browser client (``data:`` or remote URL)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    name: str = "attachment"
    content_type: str = Field(
        validation_alias=AliasChoices("contentType", "mimeType", "content_type"),
    )
    size: int = Field(default=0, ge=0)
    url: str | None = None
    data: str | None = None

    @model_validator(mode="after")
    def _needs_source(self) -> AttachmentIn:
        if not self.url and not self.data:
            raise ValueError(f"attachment '{self.name}' has neither url nor data")
        return self

    def to_attachment(self) -> Attachment:
        data, url = self.data, self.url
        if url and url.startswith("data:"):
            data, url = url, None
        kwargs = {"id": self.id} if self.id else {}
        return Attachment(
            name=self.name,
            mime_type=self.content_type,
            size=self.size,
            data=data,
            url=url,
            **kwargs,
        )


class MessageIn(BaseModel):
    """One chat message of the inbound history."""

    id: str | None = None
    role: Literal["system", "user", "assistant"]
    content: str
    attachments: list[AttachmentIn] = Field(
        default_factory=list,
        validation_alias=AliasChoices("experimental_attachments", "attachments"),
    )

    def to_message(self) -> ChatMessage:
        kwargs = {"id": self.id} if self.id else {}
        return ChatMessage(
            role=Role(self.role),
            content=self.content,
            attachments=[a.to_attachment() for a in self.attachments],
            **kwargs,
        )


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[MessageIn] = Field(min_length=1)
    model: str | None = None
    user_id: str | None = Field(default=None, alias="userId")
    conversation_id: str | None = Field(default=None, alias="conversationId")

    def to_messages(self) -> list[ChatMessage]:
        return [m.to_message() for m in self.messages]


class TokenStatsRequest(BaseModel):
    """Body of ``POST /api/tokens/stats``."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[MessageIn] = Field(default_factory=list)
    max_tokens: int | None = Field(default=None, gt=0, alias="maxTokens")
