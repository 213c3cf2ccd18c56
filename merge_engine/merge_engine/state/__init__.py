"""Entity persistence: repository contract, in-memory store and SQL store."""

from merge_engine.state.base import RecordRepository, RepositoryScope
from merge_engine.state.database import create_tables, get_engine, get_session
from merge_engine.state.memory import InMemoryEntityRepository, InMemoryEntityStore
from merge_engine.state.repository import EntityRepository, entity_repository_scope

__all__ = [
    "EntityRepository",
    "InMemoryEntityRepository",
    "InMemoryEntityStore",
    "RecordRepository",
    "RepositoryScope",
    "create_tables",
    "entity_repository_scope",
    "get_engine",
    "get_session",
]
