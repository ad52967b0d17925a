"""
The store module holds the ordered manifest of resources declared in a context.

- Resources are identified by name alone, names are unique across kinds.
- Upserts are idempotent and report whether the content changed.
- Writes are atomic and serialized by a per-context state lock.

The abstract interface allows for various implementations (file backed, in-memory).
"""

from .store import ObjectStore
from .in_memory import InMemoryStore
from .manifest_store import ManifestStore
from .lock import StateLock

__all__ = [
    "ObjectStore",
    "InMemoryStore",
    "ManifestStore",
    "StateLock",
]
