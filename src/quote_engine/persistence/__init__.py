"""
Persistence layer for quote runs.
"""

from .registry import (
    InMemoryRunRegistry,
    RedisRunRegistry,
    RunRegistry,
    RunState,
    RunStatus,
    create_run_registry,
)

__all__ = [
    "InMemoryRunRegistry",
    "RedisRunRegistry",
    "RunRegistry",
    "RunState",
    "RunStatus",
    "create_run_registry",
]
