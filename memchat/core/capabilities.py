"""Per-model attachment capabilities and attachment validation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from memchat.core.types import Attachment

_MB = 1024 * 1024

_IMAGE_TYPES = ["image/jpeg", "image/png", "image/gif", "image/webp"]


@dataclass(frozen=True)
class ModelCapabilities:
    """What kinds of attachments a model accepts, and how large."""

    supports_images: bool = False
    supports_documents: bool = False
    max_image_size: int = 0
    max_file_size: int = 0
    supported_image_types: list[str] = field(default_factory=list)
    supported_document_types: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


FALLBACK_MODEL = "gpt-3.5-turbo"

MODEL_CAPABILITIES: dict[str, ModelCapabilities] = {
    "gpt-4-vision-preview": ModelCapabilities(
        supports_images=True,
        max_image_size=20 * _MB,
        max_file_size=10 * _MB,
        supported_image_types=_IMAGE_TYPES,
    ),
    "gpt-4o": ModelCapabilities(
        supports_images=True,
        supports_documents=True,
        max_image_size=20 * _MB,
        max_file_size=25 * _MB,
        supported_image_types=_IMAGE_TYPES,
        supported_document_types=["application/pdf", "text/plain", "text/markdown"],
    ),
    "gpt-4o-mini": ModelCapabilities(
        supports_images=True,
        max_image_size=20 * _MB,
        max_file_size=10 * _MB,
        supported_image_types=_IMAGE_TYPES,
    ),
    FALLBACK_MODEL: ModelCapabilities(),
}


def get_model_capabilities(model: str) -> ModelCapabilities:
    """Capabilities for ``model``; unknown models get the most restrictive set."""
    name = model.split("/", 1)[1] if model.startswith("openai/") else model
    return MODEL_CAPABILITIES.get(name, MODEL_CAPABILITIES[FALLBACK_MODEL])


def attachment_error(attachment: Attachment, caps: ModelCapabilities) -> str | None:
    """Return why ``attachment`` cannot be sent to the model, or None if it can."""
    mime = attachment.mime_type

    if attachment.kind == "image":
        if not caps.supports_images:
            return "Current model does not support images"
        if mime not in caps.supported_image_types:
            return f"Image type {mime} not supported"
        if attachment.size > caps.max_image_size:
            return f"Image size exceeds {round(caps.max_image_size / _MB)}MB limit"
        return None

    if attachment.kind == "document":
        if not caps.supports_documents:
            return "Current model does not support documents"
        if mime not in caps.supported_document_types:
            return f"Document type {mime} not supported"
        if attachment.size > caps.max_file_size:
            return f"File size exceeds {round(caps.max_file_size / _MB)}MB limit"
        return None

    return "File type not supported"
