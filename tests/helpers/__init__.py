"""Test helper utilities."""

from tests.helpers.in_memory_backend import InMemoryBackend, MemoryKeyringStore

__all__ = [
    "InMemoryBackend",
    "MemoryKeyringStore",
]
