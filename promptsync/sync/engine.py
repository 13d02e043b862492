"""
Vault Sync Orchestrator.

Owns the single-flight guarantee for reconciliation passes, consumes debounced
triggers from the change watcher, and exposes the direct file operations used
by the application write path.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models.config import PromptSyncConfig
from ..models.records import PromptRecord, SyncStats, VaultFile
from ..storage.base import PromptCache
from ..vault.errors import VaultNotConfiguredError
from ..vault.files import PromptFileStore
from ..vault.scanner import VaultScanner
from .events import SyncCompletedEvent, SyncTrigger
from .reconciler import Reconciler
from .watcher import VaultWatcher

logger = logging.getLogger(__name__)


@dataclass
class SyncMetrics:
    """Counters for the orchestrator."""

    syncs_completed: int = 0
    syncs_failed: int = 0
    syncs_coalesced: int = 0
    triggers_received: int = 0

    total_updated: int = 0
    total_deleted: int = 0

    last_stats: Optional[SyncStats] = None
    last_sync_time: Optional[datetime] = None
    last_duration_ms: float = 0.0

    last_error_message: Optional[str] = None
    last_error_time: Optional[datetime] = None


class SyncOrchestrator:
    """
    Entry point for vault synchronization.

    At most one reconciliation pass runs at a time. Callers that arrive while
    a pass is in flight share its result; the watch trigger consumer instead
    queues a fresh pass behind it. Passes run in their own task, so a caller
    that gets cancelled does not abort an apply that has already begun.
    """

    def __init__(self, cache: PromptCache, config: PromptSyncConfig):
        """
        Initialize the orchestrator.

        Args:
            cache: Cache handle; owned and closed by the caller
            config: Vault location and tuning
        """
        self.cache = cache
        self.config = config
        self.reconciler = Reconciler(cache)

        self.trigger_queue: "asyncio.Queue[SyncTrigger]" = asyncio.Queue()
        self.watcher: Optional[VaultWatcher] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._subscribers: List["asyncio.Queue[SyncCompletedEvent]"] = []

        # Serializes passes
        self._sync_lock = asyncio.Lock()
        # Held from scan to apply by a pass, and across file and cache writes
        # by the application write path
        self.cache_lock = asyncio.Lock()
        self._inflight: Optional[asyncio.Task] = None

        self.metrics = SyncMetrics()

    @property
    def vault_path(self) -> Path:
        if not self.config.vault_path:
            raise VaultNotConfiguredError()
        return self.config.vault_path

    @property
    def is_syncing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def _scanner(self) -> VaultScanner:
        return VaultScanner(
            self.vault_path,
            frontmatter=self.config.frontmatter,
            settings=self.config.scanner
        )

    @property
    def files(self) -> PromptFileStore:
        """File store for the configured vault"""
        return PromptFileStore(
            self.config.vault_path,
            frontmatter=self.config.frontmatter,
            extension=self.config.scanner.extension
        )

    async def scan_vault(self) -> List[VaultFile]:
        """
        Scan the vault without touching the cache.

        Raises:
            VaultNotConfiguredError, VaultPathNotFoundError, VaultIOError
        """
        result = await self._scanner().scan()
        return result.files

    async def sync_now(self, coalesce: bool = True) -> SyncStats:
        """
        Run (or join) a reconciliation pass.

        Args:
            coalesce: Join an in-flight pass instead of queuing a new one

        Returns:
            SyncStats with found/updated/deleted counts

        Raises:
            VaultError: If the vault cannot be scanned; the cache is untouched
            SyncError: If applying changes failed; the cache is rolled back
        """
        if coalesce and self.is_syncing:
            self.metrics.syncs_coalesced += 1
            logger.debug("Joining in-flight sync pass")
            return await asyncio.shield(self._inflight)

        task = asyncio.create_task(self._run_pass())
        task.add_done_callback(self._on_pass_done)
        self._inflight = task
        return await asyncio.shield(task)

    def _on_pass_done(self, task: asyncio.Task) -> None:
        # Retrieve the exception so an abandoned pass is not reported as unhandled
        if not task.cancelled():
            task.exception()

    async def _run_pass(self) -> SyncStats:
        async with self._sync_lock:
            start_time = time.perf_counter()
            try:
                async with self.cache_lock:
                    result = await self._scanner().scan()
                    stats = await self.reconciler.reconcile(result.files, skipped=result.skipped)
            except Exception as e:
                logger.error(f"Sync failed: {e}")
                self.metrics.syncs_failed += 1
                self.metrics.last_error_message = str(e)
                self.metrics.last_error_time = datetime.now()
                raise

            self.metrics.syncs_completed += 1
            self.metrics.total_updated += stats.updated
            self.metrics.total_deleted += stats.deleted
            self.metrics.last_stats = stats
            self.metrics.last_sync_time = datetime.now()
            self.metrics.last_duration_ms = (time.perf_counter() - start_time) * 1000
            return stats

    async def start_watch(self) -> bool:
        """
        Start watching the vault. Safe to call repeatedly.

        Returns:
            True if the watcher is active; False if setup failed (on-demand
            sync keeps working)
        """
        if self.watcher and self.watcher.is_monitoring:
            return True

        try:
            vault_path = self.vault_path
        except VaultNotConfiguredError as e:
            logger.error(f"Cannot start watcher: {e}")
            self.metrics.last_error_message = str(e)
            self.metrics.last_error_time = datetime.now()
            return False

        settings = self.config.watcher
        self.watcher = VaultWatcher(
            vault_path,
            self.trigger_queue,
            debounce_ms=settings.debounce_ms,
            extension=self.config.scanner.extension,
            recursive=settings.recursive,
            shutdown_timeout_s=settings.shutdown_timeout_s
        )
        if not await self.watcher.start_monitoring():
            self.metrics.last_error_message = self.watcher.last_error
            self.metrics.last_error_time = datetime.now()
            return False

        if self._consumer_task is None or self._consumer_task.done():
            self._consumer_task = asyncio.create_task(self._consume_triggers())

        logger.info(f"Watching vault {vault_path}")
        return True

    async def stop_watch(self) -> None:
        """Stop the watcher and the trigger consumer"""
        if self.watcher:
            await self.watcher.stop_monitoring()

        if self._consumer_task and not self._consumer_task.done():
            self._consumer_task.cancel()
            await asyncio.gather(self._consumer_task, return_exceptions=True)
        self._consumer_task = None

    async def _consume_triggers(self) -> None:
        """Run one fresh sync per trigger, publishing the outcome to subscribers"""
        while True:
            trigger = await self.trigger_queue.get()
            self.metrics.triggers_received += 1

            # Triggers that piled up during the previous pass are served by this one
            while not self.trigger_queue.empty():
                self.trigger_queue.get_nowait()
                self.trigger_queue.task_done()
                self.metrics.triggers_received += 1
                self.metrics.syncs_coalesced += 1

            try:
                logger.debug(f"Sync triggered by {trigger}")
                stats = await self.sync_now(coalesce=False)
                self._publish(SyncCompletedEvent(stats=stats))
            except Exception as e:
                logger.error(f"Watch-triggered sync failed: {e}")
                self._publish(SyncCompletedEvent(error=str(e)))
            finally:
                self.trigger_queue.task_done()

    def subscribe(self) -> "asyncio.Queue[SyncCompletedEvent]":
        """Register for ``vault-changed`` notifications after watch-triggered syncs"""
        queue: "asyncio.Queue[SyncCompletedEvent]" = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: "asyncio.Queue[SyncCompletedEvent]") -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def _publish(self, event: SyncCompletedEvent) -> None:
        for queue in list(self._subscribers):
            queue.put_nowait(event)

    async def read_file(self, prompt_id: str) -> VaultFile:
        return await self.files.read_file(prompt_id)

    async def write_file(self, record: PromptRecord) -> str:
        """Write a record to disk; returns the content hash. The cache is not touched."""
        return await self.files.write_file(record)

    async def delete_file(self, prompt_id: str) -> None:
        await self.files.delete_file(prompt_id)

    async def shutdown(self) -> None:
        """Stop watching and let an in-flight pass finish"""
        await self.stop_watch()
        if self.is_syncing:
            logger.info("Waiting for in-flight sync to finish")
            await asyncio.gather(self._inflight, return_exceptions=True)

    def get_status(self) -> Dict[str, Any]:
        """
        Get status information about the orchestrator.

        Returns:
            Dictionary with status information
        """
        return {
            "vault_path": str(self.config.vault_path) if self.config.vault_path else None,
            "is_syncing": self.is_syncing,
            "is_watching": bool(self.watcher and self.watcher.is_monitoring),
            "syncs_completed": self.metrics.syncs_completed,
            "syncs_failed": self.metrics.syncs_failed,
            "syncs_coalesced": self.metrics.syncs_coalesced,
            "triggers_received": self.metrics.triggers_received,
            "total_updated": self.metrics.total_updated,
            "total_deleted": self.metrics.total_deleted,
            "last_stats": self.metrics.last_stats.to_dict() if self.metrics.last_stats else None,
            "last_duration_ms": self.metrics.last_duration_ms,
            "last_error": self.metrics.last_error_message,
            "last_error_time": self.metrics.last_error_time.isoformat() if self.metrics.last_error_time else None,
            "subscribers": len(self._subscribers),
            "watcher": self.watcher.get_status() if self.watcher else None
        }

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
