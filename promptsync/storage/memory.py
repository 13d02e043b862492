"""
In-memory prompt cache.

Transactions work on a copy of the current state that replaces it only when
the block exits without an exception.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Optional, Set

from ..models.records import PromptRecord, normalize_tag
from .base import CacheTransaction, PromptCache


class _MemoryTransaction(CacheTransaction):

    def __init__(self, records: Dict[str, PromptRecord], tags: Set[str]):
        self.records = records
        self.tags = tags

    async def put(self, record: PromptRecord) -> None:
        self.records[record.id] = record.model_copy(deep=True)
        await self.upsert_tags(record.tags)

    async def delete(self, record_id: str) -> bool:
        return self.records.pop(record_id, None) is not None

    async def upsert_tags(self, names: Iterable[str]) -> None:
        for name in names:
            normalized = normalize_tag(name)
            if normalized:
                self.tags.add(normalized)

    async def delete_tags(self, names: Iterable[str]) -> None:
        for name in names:
            self.tags.discard(normalize_tag(name))


class InMemoryPromptCache(PromptCache):
    """Process-local cache used for tests and ephemeral sessions"""

    def __init__(self):
        self._records: Dict[str, PromptRecord] = {}
        self._tags: Set[str] = set()
        self._lock = asyncio.Lock()

    async def get(self, record_id: str) -> Optional[PromptRecord]:
        record = self._records.get(record_id)
        return record.model_copy(deep=True) if record else None

    async def list_records(self) -> List[PromptRecord]:
        return [
            self._records[record_id].model_copy(deep=True)
            for record_id in sorted(self._records)
        ]

    async def list_tags(self) -> List[str]:
        return sorted(self._tags)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[CacheTransaction]:
        async with self._lock:
            txn = _MemoryTransaction(dict(self._records), set(self._tags))
            yield txn
            self._records = txn.records
            self._tags = txn.tags
