"""Adapters — bindings for the external tools pubsync drives.

Public re-exports for convenient access.
"""

from pubsync.adapters.base import Adapter, ExecutionContext
from pubsync.adapters.mock import MockAdapter
from pubsync.adapters.registry import AdapterRegistry, build_registry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
    "build_registry",
]
