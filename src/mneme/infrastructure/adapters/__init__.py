# Card Store Adapters
from .json_store import JsonCardStore
from .memory_store import InMemoryCardStore

__all__ = ["InMemoryCardStore", "JsonCardStore"]
