"""Configuration management for memchat.

Loads settings from YAML config file with Pydantic validation.
Config file location: ~/.memchat/config.yaml
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field


# === Default paths ===

def get_memchat_home() -> Path:
    """Get the memchat data directory (~/.memchat)."""
    return Path(os.environ.get("MEMCHAT_HOME", Path.home() / ".memchat"))


# === Configuration Models ===


class ProviderConfig(BaseModel):
    """Configuration for a single LLM provider."""

    api_key_env: str | None = None  # Environment variable name for API key
    api_key: str | None = None  # Direct API key (not recommended)
    base_url: str | None = None  # Custom base URL (e.g., an OpenAI-compatible proxy)

    def get_api_key(self) -> str | None:
        """Resolve API key from env var or direct value."""
        if self.api_key_env:
            return os.environ.get(self.api_key_env) or self.api_key
        return self.api_key


class ModelsConfig(BaseModel):
    """Completion model configuration."""

    default: str = "gpt-4o"
    providers: dict[str, ProviderConfig] = Field(default_factory=lambda: {
        "openai": ProviderConfig(api_key_env="OPENAI_API_KEY"),
    })
    temperature: float = 0.7
    max_tokens: int = 1000
    timeout: float = 30.0  # seconds, covers dispatch and the whole stream


class MemoryConfig(BaseModel):
    """Long-term memory service (Mem0) configuration."""

    api_key_env: str = "MEM0_API_KEY"
    api_key: str | None = None
    org_id: str | None = None
    project_id: str | None = None
    search_limit: int = 5
    threshold: float = 0.1
    search_timeout: float = 3.0  # seconds; expiry counts as "no memories"
    default_user_id: str = "server-user"  # Used when the client sends no userId

    def get_api_key(self) -> str | None:
        """Resolve API key from env var or direct value."""
        return os.environ.get(self.api_key_env) or self.api_key


class ContextConfig(BaseModel):
    """Token budget for conversation history."""

    max_tokens: int = Field(default=3500, gt=0)
    encoding_model: str = "gpt-4o"
    # False: the budget only feeds the usage meter and the full history is sent.
    # True: history is trimmed to max_tokens before the completion call.
    trim_before_dispatch: bool = False


class WebUIConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "127.0.0.1"
    port: int = 7860


class MemchatConfig(BaseModel):
    """Root configuration for memchat."""

    models: ModelsConfig = Field(default_factory=ModelsConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    web_ui: WebUIConfig = Field(default_factory=WebUIConfig)


# === Config Loading ===


def load_config(config_path: Path | None = None) -> MemchatConfig:
    """Load configuration from YAML file.

    Falls back to defaults if the config file doesn't exist.
    """
    if config_path is None:
        config_path = get_memchat_home() / "config.yaml"

    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        return MemchatConfig(**raw)

    return MemchatConfig()


def save_default_config(config_path: Path | None = None) -> Path:
    """Save the default configuration to a YAML file.

    Creates parent directories if needed. Returns the path.
    """
    if config_path is None:
        config_path = get_memchat_home() / "config.yaml"

    config_path.parent.mkdir(parents=True, exist_ok=True)

    config = MemchatConfig()
    data = config.model_dump()

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

    return config_path
