"""Repository contract consumed by the apply orchestrator."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class RecordRepository(Protocol):
    """Async access to the records of a single collection.

    Implementations may set a class attribute
    ``supports_concurrent_writes = True`` when ``create``/``update`` calls can
    safely overlap; without it the orchestrator issues them one at a time.
    """

    async def find_all(self) -> list[dict[str, Any]]:
        """Return every record of the collection, active or not."""
        ...

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Persist a new record; the repository assigns ``id`` and timestamps."""
        ...

    async def update(self, record_id: str, patch: dict[str, Any]) -> dict[str, Any] | None:
        """Shallow-merge *patch* into the record, or return ``None`` if unknown."""
        ...


# Opens the repository of one collection for the duration of its merge.
RepositoryScope = Callable[[str], AbstractAsyncContextManager[RecordRepository]]
