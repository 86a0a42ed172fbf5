"""Index implementations."""

from .memory_index import MemoryIndex

__all__ = ['MemoryIndex']
