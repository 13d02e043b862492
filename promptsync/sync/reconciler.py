"""
Reconciliation of scanned vault files against the prompt cache.

The full set of cache mutations is computed first (``plan``) without touching
the cache, then written in a single cache transaction (``apply``). A failed
apply rolls back, so either the pre-sync or the post-sync state is visible,
never a mix.

Rename handling is driven only by the ``previous_file_path`` marker set by
the application write path. Identical content hashes on two files are never
used to infer a rename.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from ..models.records import PromptRecord, SyncStats, VaultFile, normalize_tags
from ..storage.base import PromptCache
from ..vault.errors import SyncError

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationPlan:
    """Cache mutations for one pass, computed before any write"""
    found: int = 0
    skipped: int = 0
    renames: List[PromptRecord] = field(default_factory=list)
    updates: List[PromptRecord] = field(default_factory=list)
    creates: List[PromptRecord] = field(default_factory=list)
    deletes: List[str] = field(default_factory=list)
    tag_upserts: List[str] = field(default_factory=list)
    tag_prunes: List[str] = field(default_factory=list)

    @property
    def writes(self) -> List[PromptRecord]:
        return self.renames + self.updates + self.creates

    @property
    def updated(self) -> int:
        return len(self.renames) + len(self.updates) + len(self.creates)

    @property
    def deleted(self) -> int:
        return len(self.deletes)

    @property
    def is_empty(self) -> bool:
        return not (self.writes or self.deletes or self.tag_upserts or self.tag_prunes)

    def to_stats(self) -> SyncStats:
        return SyncStats(
            found=self.found,
            updated=self.updated,
            deleted=self.deleted,
            skipped=self.skipped
        )

    def summary(self) -> Dict[str, int]:
        return {
            "renames": len(self.renames),
            "updates": len(self.updates),
            "creates": len(self.creates),
            "deletes": len(self.deletes),
            "tag_upserts": len(self.tag_upserts),
            "tag_prunes": len(self.tag_prunes),
        }


def _allocate_id(file_path: str, taken: Set[str]) -> str:
    """Seed the id from the file path, suffixing ``#2``, ``#3``... on collision"""
    record_id = file_path
    suffix = 2
    while record_id in taken:
        record_id = f"{file_path}#{suffix}"
        suffix += 1
    return record_id


def plan_reconciliation(
    files: Iterable[VaultFile],
    records: Iterable[PromptRecord],
    existing_tags: Iterable[str] = (),
    skipped: int = 0
) -> ReconciliationPlan:
    """
    Compute the cache mutations that bring ``records`` in line with ``files``.

    Args:
        files: Successfully scanned vault files
        records: Current cache records
        existing_tags: Current tag dictionary
        skipped: Files the scanner could not read, carried into the stats

    Returns:
        ReconciliationPlan; nothing is written
    """
    files = list(files)
    files_by_path: Dict[str, VaultFile] = {f.file_path: f for f in files}
    plan = ReconciliationPlan(found=len(files), skipped=skipped)

    records = sorted(records, key=lambda r: r.id)
    pending = [r for r in records if r.has_pending_rename]
    settled = [r for r in records if not r.has_pending_rename]

    # file_path -> id of the record that owns it after this pass
    claimed: Dict[str, str] = {}
    unchanged: List[PromptRecord] = []

    # Application-driven renames first so they win any path contention
    for record in pending:
        vault_file = files_by_path.get(record.file_path)
        if vault_file is None or record.file_path in claimed:
            plan.deletes.append(record.id)
            continue
        if record.previous_file_path in files_by_path and record.previous_file_path != record.file_path:
            logger.info(
                f"Confirming rename {record.previous_file_path} -> {record.file_path} "
                f"although the old file still exists"
            )
        claimed[record.file_path] = record.id
        plan.renames.append(record.refreshed_from(vault_file))

    for record in settled:
        vault_file = files_by_path.get(record.file_path)
        if vault_file is None:
            plan.deletes.append(record.id)
            continue
        if record.file_path in claimed:
            logger.warning(
                f"Record {record.id} duplicates {record.file_path} "
                f"(owned by {claimed[record.file_path]}), removing it"
            )
            plan.deletes.append(record.id)
            continue

        claimed[record.file_path] = record.id
        if record.file_hash == vault_file.content_hash:
            unchanged.append(record)
        else:
            plan.updates.append(record.refreshed_from(vault_file))

    deleted_ids = set(plan.deletes)
    taken = {r.id for r in records if r.id not in deleted_ids}
    for vault_file in files:
        if vault_file.file_path in claimed:
            continue
        record_id = _allocate_id(vault_file.file_path, taken)
        taken.add(record_id)
        claimed[vault_file.file_path] = record_id
        plan.creates.append(PromptRecord.from_vault_file(vault_file, record_id))

    existing = set(normalize_tags(existing_tags))
    touched: Set[str] = set()
    for record in plan.writes:
        touched.update(record.tags)
    referenced = set(touched)
    for record in unchanged:
        referenced.update(record.tags)

    plan.tag_upserts = sorted(touched - existing)
    plan.tag_prunes = sorted(existing - referenced)

    return plan


async def apply_plan(plan: ReconciliationPlan, cache: PromptCache) -> SyncStats:
    """
    Write a plan inside one cache transaction.

    Raises:
        SyncError: If any cache write fails; the transaction is rolled back
    """
    if plan.is_empty:
        return plan.to_stats()

    try:
        async with cache.transaction() as txn:
            # Deletes first so a freed id can be reused by a create
            for record_id in plan.deletes:
                await txn.delete(record_id)
            for record in plan.writes:
                await txn.put(record)
            if plan.tag_upserts:
                await txn.upsert_tags(plan.tag_upserts)
            if plan.tag_prunes:
                await txn.delete_tags(plan.tag_prunes)
    except Exception as e:
        logger.error(f"Reconciliation apply failed, cache rolled back: {e}")
        raise SyncError(f"Failed to apply reconciliation: {e}") from e

    return plan.to_stats()


class Reconciler:
    """
    Reconciliation engine bound to one cache.

    The only component that writes to the cache during a sync pass.
    """

    def __init__(self, cache: PromptCache):
        """
        Args:
            cache: Cache handle owned by the caller
        """
        self._cache = cache

    async def plan(self, files: Iterable[VaultFile], skipped: int = 0) -> ReconciliationPlan:
        """Read the current cache state and compute a plan without writing"""
        records = await self._cache.list_records()
        tags = await self._cache.list_tags()
        return plan_reconciliation(files, records, tags, skipped=skipped)

    async def reconcile(
        self,
        files: Iterable[VaultFile],
        skipped: int = 0,
        plan: Optional[ReconciliationPlan] = None
    ) -> SyncStats:
        """
        Bring the cache in line with the scanned files.

        Args:
            files: Successfully scanned vault files
            skipped: Scanner skip count for the stats
            plan: Precomputed plan; computed from the cache when omitted

        Returns:
            SyncStats with found/updated/deleted counts
        """
        start_time = time.perf_counter()
        if plan is None:
            plan = await self.plan(files, skipped=skipped)

        stats = await apply_plan(plan, self._cache)

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"Reconciled vault: {stats} {plan.summary()} in {elapsed_ms:.1f}ms")
        return stats
