"""Long-term memory: external memory service client and context assembly.

The memory service is an enhancement, never a hard dependency: every
failure here degrades to "no memory context" or "memory not recorded".
"""

from memchat.core.memory.client import MemoryClient, MemoryServiceError
from memchat.core.memory.context import ContextAssembler, format_memory_context

__all__ = ["MemoryClient", "MemoryServiceError", "ContextAssembler", "format_memory_context"]
