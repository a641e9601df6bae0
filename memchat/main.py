"""memchat - memory-augmented chat API.

Entry point for the application.
Usage:
    python -m memchat.main                    # Start the API server
    python -m memchat.main --init             # Initialize default config
    python -m memchat.main --port 8080        # Override the listen port
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

import structlog

from memchat.config import MemchatConfig, get_memchat_home, load_config, save_default_config
from memchat.core.completion import CompletionClient
from memchat.core.memory.client import MemoryClient
from memchat.core.memory.context import ContextAssembler
from memchat.ui.web_server import WebServer

logger = structlog.get_logger()


def setup_logging() -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(20),  # INFO level
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _load_env() -> None:
    """Load .env files from the working directory and ~/.memchat/."""
    from dotenv import load_dotenv

    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)

    home_env = get_memchat_home() / ".env"
    if home_env.exists():
        load_dotenv(home_env)


def build_server(config: MemchatConfig) -> WebServer:
    """Build the web server with its memory and completion clients."""
    _load_env()

    memory = MemoryClient.from_config(config.memory)
    assembler = ContextAssembler(
        memory,
        search_limit=config.memory.search_limit,
        search_timeout=config.memory.search_timeout,
        model=config.models.default,
    )
    completion = CompletionClient(config)
    return WebServer(config, assembler, completion)


async def async_web_main(config: MemchatConfig) -> None:
    """Async entry point for the API server."""
    server = build_server(config)
    host = config.web_ui.host
    port = config.web_ui.port
    print(f"memchat API: http://{host}:{port}")
    print("Press Ctrl+C to stop.")
    await server.run()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="memchat - memory-augmented chat API",
        prog="memchat",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Initialize default configuration",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config file (default: ~/.memchat/config.yaml)",
    )
    parser.add_argument("--host", type=str, default=None, help="Listen address")
    parser.add_argument("--port", type=int, default=None, help="Listen port")
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show memchat version",
    )
    args = parser.parse_args()

    setup_logging()

    if args.version:
        from memchat import __version__

        print(f"memchat v{__version__}")
        return

    if args.init:
        config_path = save_default_config(
            Path(args.config) if args.config else None
        )
        print(f"Default config saved to: {config_path}")
        return

    config = load_config(Path(args.config) if args.config else None)
    if args.host:
        config.web_ui.host = args.host
    if args.port:
        config.web_ui.port = args.port

    try:
        asyncio.run(async_web_main(config))
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    main()
