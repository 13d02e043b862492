"""
Structured cache interface.

The reconciliation engine writes to the cache only through a transaction so
that a failed pass leaves the pre-sync state observable. Simple get/put/delete
operations are used by the application write path outside of sync.
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager, Iterable, List, Optional

from ..models.records import PromptRecord


class CacheTransaction(ABC):
    """Write handle valid inside one ``PromptCache.transaction()`` block"""

    @abstractmethod
    async def put(self, record: PromptRecord) -> None:
        """Insert or replace a record; its tags are added to the tag dictionary"""
        pass

    @abstractmethod
    async def delete(self, record_id: str) -> bool:
        """Remove a record; returns False if it did not exist"""
        pass

    @abstractmethod
    async def upsert_tags(self, names: Iterable[str]) -> None:
        pass

    @abstractmethod
    async def delete_tags(self, names: Iterable[str]) -> None:
        pass


class PromptCache(ABC):
    """
    Abstract prompt cache keyed by record identifier.

    Implementations must make ``transaction()`` all-or-nothing: if the block
    raises, none of its writes are visible afterwards.
    """

    async def initialize(self) -> None:
        """Open underlying resources"""
        pass

    async def close(self) -> None:
        """Release underlying resources"""
        pass

    async def __aenter__(self) -> 'PromptCache':
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @abstractmethod
    async def get(self, record_id: str) -> Optional[PromptRecord]:
        pass

    @abstractmethod
    async def list_records(self) -> List[PromptRecord]:
        """All records ordered by id"""
        pass

    @abstractmethod
    async def list_tags(self) -> List[str]:
        """Tag dictionary, sorted"""
        pass

    @abstractmethod
    def transaction(self) -> AsyncContextManager[CacheTransaction]:
        pass

    async def put(self, record: PromptRecord) -> None:
        async with self.transaction() as txn:
            await txn.put(record)

    async def delete(self, record_id: str) -> bool:
        async with self.transaction() as txn:
            return await txn.delete(record_id)

    async def find_by_file_path(self, file_path: str) -> Optional[PromptRecord]:
        for record in await self.list_records():
            if record.file_path == file_path:
                return record
        return None
