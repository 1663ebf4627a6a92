from __future__ import annotations

from policysplitter.store.base import EventType, ObjectStore, WatchEvent
from policysplitter.store.kubernetes import KubernetesObjectStore
from policysplitter.store.memory import InMemoryObjectStore

__all__ = [
    "EventType",
    "ObjectStore",
    "WatchEvent",
    "InMemoryObjectStore",
    "KubernetesObjectStore",
]
