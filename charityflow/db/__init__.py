"""Database layer - Models and store collaborators.

Modules:
    - models: Dataclasses and enums for members and workflow records
    - stores: MemberStore / ExecutionLog interfaces and in-memory versions
"""

from charityflow.db.stores import (
    ExecutionLog,
    InMemoryExecutionLog,
    InMemoryMemberStore,
    MemberStore,
)

__all__ = [
    "MemberStore",
    "ExecutionLog",
    "InMemoryMemberStore",
    "InMemoryExecutionLog",
]
