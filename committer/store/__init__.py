"""
Store module: Object/versioning store backends and the content cache.
"""

from committer.store.backends import (
    ObjectStore,
    GitObjectStore,
    InMemoryObjectStore,
    CommitRecord,
)
from committer.store.content import ContentStore, selector_for, content_bytes

__all__ = [
    "ObjectStore",
    "GitObjectStore",
    "InMemoryObjectStore",
    "CommitRecord",
    "ContentStore",
    "selector_for",
    "content_bytes",
]
