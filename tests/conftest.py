"""Shared fixtures: in-memory stand-ins for the memory service and tokenizer."""

from __future__ import annotations

import pytest

from fakes import FakeMem0
from memchat.core import tokens


@pytest.fixture
def fake_mem0():
    return FakeMem0()


@pytest.fixture
def offline_tokenizer(monkeypatch):
    """Count with the ~4 chars/token estimate so budgets are predictable."""
    monkeypatch.setattr(tokens, "_get_encoding", lambda model: None)
