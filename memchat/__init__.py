"""Memchat - chat backend with token budgeting and long-term memory context."""

__version__ = "0.1.0"
