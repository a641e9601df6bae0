"""Tests for messages, conversations, attachments and model capabilities."""

from __future__ import annotations

import pytest

from memchat.core.capabilities import attachment_error, get_model_capabilities
from memchat.core.types import (
    Attachment,
    ChatMessage,
    Conversation,
    Role,
    generate_title,
)

_MB = 1024 * 1024


# =============================================================
# ChatMessage Tests
# =============================================================

class TestChatMessage:
    def test_role_is_immutable(self):
        msg = ChatMessage(role=Role.USER, content="hi")
        with pytest.raises(AttributeError):
            msg.role = Role.ASSISTANT
        assert msg.role == Role.USER

    def test_content_can_change(self):
        msg = ChatMessage(role=Role.USER, content="hi")
        msg.content = "hello"
        assert msg.content == "hello"

    def test_assistant_append(self):
        msg = ChatMessage(role=Role.ASSISTANT)
        msg.append("Hel")
        msg.append("lo")
        assert msg.content == "Hello"

    def test_append_rejected_for_user(self):
        msg = ChatMessage(role=Role.USER, content="hi")
        with pytest.raises(ValueError):
            msg.append("!")

    def test_to_litellm_plain(self):
        msg = ChatMessage(role=Role.USER, content="hi")
        assert msg.to_litellm() == {"role": "user", "content": "hi"}

    def test_to_litellm_with_attachments(self):
        msg = ChatMessage(
            role=Role.USER,
            content="what is this?",
            attachments=[
                Attachment(name="cat.png", mime_type="image/png", url="https://cdn/cat.png"),
                Attachment(name="doc.pdf", mime_type="application/pdf", data="data:application/pdf;base64,AA=="),
            ],
        )
        wire = msg.to_litellm()
        assert wire["role"] == "user"
        assert wire["content"][0] == {"type": "text", "text": "what is this?"}
        assert wire["content"][1] == {"type": "image_url", "image_url": {"url": "https://cdn/cat.png"}}
        assert wire["content"][2]["type"] == "file"
        assert wire["content"][2]["file"]["filename"] == "doc.pdf"

    def test_unique_ids(self):
        assert ChatMessage(role=Role.USER).id != ChatMessage(role=Role.USER).id


class TestAttachment:
    def test_requires_source(self):
        with pytest.raises(ValueError):
            Attachment(name="x.png", mime_type="image/png")

    def test_kind(self):
        assert Attachment(name="a", mime_type="image/jpeg", url="u").kind == "image"
        assert Attachment(name="a", mime_type="text/plain", url="u").kind == "document"
        assert Attachment(name="a", mime_type="audio/mpeg", url="u").kind == "other"


# =============================================================
# Conversation Tests
# =============================================================

class TestConversation:
    def test_defaults(self):
        conv = Conversation()
        assert conv.title == "New Chat"
        assert conv.messages == []
        assert conv.id

    def test_title_from_first_user_message(self):
        conv = Conversation()
        conv.add_message(ChatMessage(role=Role.SYSTEM, content="setup"))
        conv.add_message(ChatMessage(role=Role.USER, content="  Plan a trip to Kyoto  "))
        conv.add_message(ChatMessage(role=Role.USER, content="Something else"))
        assert conv.title == "Plan a trip to Kyoto"

    def test_explicit_title_kept(self):
        conv = Conversation(title="Mine")
        conv.add_message(ChatMessage(role=Role.USER, content="hello"))
        assert conv.title == "Mine"

    def test_duplicate_id_rejected(self):
        conv = Conversation()
        msg = ChatMessage(role=Role.USER, content="hi")
        conv.add_message(msg)
        with pytest.raises(ValueError):
            conv.add_message(msg)

    def test_add_updates_timestamp(self):
        conv = Conversation()
        before = conv.updated_at
        conv.add_message(ChatMessage(role=Role.USER, content="hi"))
        assert conv.updated_at >= before

    def test_edit_drops_successors(self):
        conv = Conversation()
        first = ChatMessage(role=Role.USER, content="one")
        conv.add_message(first)
        conv.add_message(ChatMessage(role=Role.ASSISTANT, content="reply"))
        conv.add_message(ChatMessage(role=Role.USER, content="two"))

        edited = conv.edit_message(first.id, "uno")
        assert edited is first
        assert [m.content for m in conv.messages] == ["uno"]

    def test_edit_unknown_id(self):
        with pytest.raises(KeyError):
            Conversation().edit_message("missing", "x")


class TestGenerateTitle:
    def test_blank(self):
        assert generate_title("") == "New Chat"
        assert generate_title("   ") == "New Chat"

    def test_short(self):
        assert generate_title("Hello") == "Hello"

    def test_truncated(self):
        text = "a" * 31
        assert generate_title(text) == "a" * 30 + "..."

    def test_exactly_thirty(self):
        assert generate_title("b" * 30) == "b" * 30


# =============================================================
# Model Capabilities Tests
# =============================================================

class TestCapabilities:
    def test_unknown_model_falls_back(self):
        caps = get_model_capabilities("some-new-model")
        assert caps.supports_images is False
        assert caps.supports_documents is False

    def test_provider_prefix(self):
        assert get_model_capabilities("openai/gpt-4o") == get_model_capabilities("gpt-4o")

    def test_image_allowed_on_gpt4o(self):
        att = Attachment(name="a.png", mime_type="image/png", size=1024, url="u")
        assert attachment_error(att, get_model_capabilities("gpt-4o")) is None

    def test_image_rejected_on_text_model(self):
        att = Attachment(name="a.png", mime_type="image/png", size=1024, url="u")
        assert attachment_error(att, get_model_capabilities("gpt-3.5-turbo")) == (
            "Current model does not support images"
        )

    def test_image_type_and_size(self):
        caps = get_model_capabilities("gpt-4o")
        bmp = Attachment(name="a.bmp", mime_type="image/bmp", url="u")
        assert attachment_error(bmp, caps) == "Image type image/bmp not supported"
        huge = Attachment(name="a.png", mime_type="image/png", size=21 * _MB, url="u")
        assert attachment_error(huge, caps) == "Image size exceeds 20MB limit"

    def test_documents(self):
        pdf = Attachment(name="a.pdf", mime_type="application/pdf", size=_MB, url="u")
        assert attachment_error(pdf, get_model_capabilities("gpt-4o")) is None
        assert attachment_error(pdf, get_model_capabilities("gpt-4o-mini")) == (
            "Current model does not support documents"
        )
        zip_ = Attachment(name="a.zip", mime_type="application/zip", url="u")
        assert attachment_error(zip_, get_model_capabilities("gpt-4o")) == (
            "Document type application/zip not supported"
        )
        big = Attachment(name="a.txt", mime_type="text/plain", size=26 * _MB, url="u")
        assert attachment_error(big, get_model_capabilities("gpt-4o")) == (
            "File size exceeds 25MB limit"
        )

    def test_other_types(self):
        att = Attachment(name="a.mp3", mime_type="audio/mpeg", url="u")
        assert attachment_error(att, get_model_capabilities("gpt-4o")) == "File type not supported"
