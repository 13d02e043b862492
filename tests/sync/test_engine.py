"""
Tests for SyncOrchestrator.

Validates sync statistics, the single-flight guarantee, failure isolation,
watch-triggered passes and the direct file operations.
"""

import asyncio
from unittest.mock import patch

import pytest

from promptsync.models.config import PromptSyncConfig
from promptsync.models.records import PromptRecord
from promptsync.storage import InMemoryPromptCache
from promptsync.sync.engine import SyncOrchestrator
from promptsync.sync.events import VAULT_CHANGED_EVENT, SyncTrigger
from promptsync.vault.errors import (
    SyncError,
    VaultNotConfiguredError,
    VaultPathNotFoundError,
)
from promptsync.vault.scanner import VaultScanner

EVENT_TIMEOUT = 5.0


def slow_scan(delay: float, counter: dict):
    """Replacement for VaultScanner.scan that tracks concurrent calls"""
    original = VaultScanner.scan

    async def _scan(self):
        counter["calls"] += 1
        counter["active"] += 1
        counter["max_active"] = max(counter["max_active"], counter["active"])
        try:
            await asyncio.sleep(delay)
            return await original(self)
        finally:
            counter["active"] -= 1

    return _scan


def new_counter() -> dict:
    return {"calls": 0, "active": 0, "max_active": 0}


class TestSyncNow:
    """On-demand reconciliation passes"""

    @pytest.fixture
    def cache(self):
        return InMemoryPromptCache()

    @pytest.mark.asyncio
    async def test_sync_reports_stats(self, cache, sync_config, write_prompt):
        write_prompt("2024-01-01-abc.md", tags=["work"])
        write_prompt("2024-01-02-def.md", tags=["idea"])

        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            stats = await orchestrator.sync_now()

        assert (stats.found, stats.updated, stats.deleted) == (2, 2, 0)
        assert await cache.list_tags() == ["idea", "work"]
        assert orchestrator.metrics.syncs_completed == 1
        assert orchestrator.metrics.last_stats == stats

    @pytest.mark.asyncio
    async def test_repeated_sync_is_idempotent(self, cache, sync_config, write_prompt):
        write_prompt("a.md")

        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            await orchestrator.sync_now()
            before = await cache.list_records()
            stats = await orchestrator.sync_now()

        assert (stats.found, stats.updated, stats.deleted) == (1, 0, 0)
        assert await cache.list_records() == before

    @pytest.mark.asyncio
    async def test_deleted_file_is_removed(self, cache, sync_config, write_prompt):
        abc = write_prompt("2024-01-01-abc.md", tags=["work"])
        write_prompt("2024-01-02-def.md", tags=["idea"])

        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            await orchestrator.sync_now()
            abc.unlink()
            stats = await orchestrator.sync_now()

        assert (stats.found, stats.updated, stats.deleted) == (1, 0, 1)

    @pytest.mark.asyncio
    async def test_broken_file_is_counted_as_skipped(self, cache, sync_config, vault_dir, write_prompt):
        write_prompt("good.md")
        (vault_dir / "broken.md").write_text("---\ntags: [\n---\n")

        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            stats = await orchestrator.sync_now()

        assert (stats.found, stats.skipped) == (1, 1)

    @pytest.mark.asyncio
    async def test_not_configured(self, cache):
        async with SyncOrchestrator(cache, PromptSyncConfig()) as orchestrator:
            with pytest.raises(VaultNotConfiguredError):
                await orchestrator.sync_now()
            assert await orchestrator.start_watch() is False
            assert "not configured" in orchestrator.get_status()["last_error"]

    @pytest.mark.asyncio
    async def test_missing_root_leaves_cache_untouched(self, cache, tmp_path):
        existing = PromptRecord(id="a.md", file_path="a.md", text="kept")
        await cache.put(existing)
        config = PromptSyncConfig(vault_path=tmp_path / "missing")

        async with SyncOrchestrator(cache, config) as orchestrator:
            with pytest.raises(VaultPathNotFoundError):
                await orchestrator.sync_now()

        assert await cache.list_records() == [existing]
        assert orchestrator.metrics.syncs_failed == 1
        assert orchestrator.metrics.last_error_message

    @pytest.mark.asyncio
    async def test_apply_failure_is_sync_error(self, cache, sync_config, write_prompt):
        write_prompt("a.md")

        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            with patch.object(cache, "transaction", side_effect=RuntimeError("locked")):
                with pytest.raises(SyncError):
                    await orchestrator.sync_now()

            assert await cache.list_records() == []
            stats = await orchestrator.sync_now()

        assert stats.updated == 1

    @pytest.mark.asyncio
    async def test_scan_vault_does_not_touch_cache(self, cache, sync_config, write_prompt):
        write_prompt("a.md")

        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            files = await orchestrator.scan_vault()

        assert [f.file_path for f in files] == ["a.md"]
        assert await cache.list_records() == []


class TestSingleFlight:
    """At most one pass is in flight at any time"""

    @pytest.fixture
    def cache(self):
        return InMemoryPromptCache()

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_pass(self, cache, sync_config, write_prompt):
        write_prompt("a.md")
        counter = new_counter()

        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            with patch.object(VaultScanner, "scan", slow_scan(0.1, counter)):
                results = await asyncio.gather(*(orchestrator.sync_now() for _ in range(3)))

        assert counter["calls"] == 1
        assert orchestrator.metrics.syncs_coalesced == 2
        assert all(r == results[0] for r in results)
        assert results[0].updated == 1

    @pytest.mark.asyncio
    async def test_non_coalescing_passes_are_serialized(self, cache, sync_config, write_prompt):
        write_prompt("a.md")
        counter = new_counter()

        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            with patch.object(VaultScanner, "scan", slow_scan(0.05, counter)):
                first, second = await asyncio.gather(
                    orchestrator.sync_now(coalesce=False),
                    orchestrator.sync_now(coalesce=False)
                )

        assert counter["calls"] == 2
        assert counter["max_active"] == 1
        assert first.updated + second.updated == 1

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_abort_pass(self, cache, sync_config, write_prompt):
        write_prompt("a.md")
        counter = new_counter()

        orchestrator = SyncOrchestrator(cache, sync_config)
        with patch.object(VaultScanner, "scan", slow_scan(0.1, counter)):
            caller = asyncio.create_task(orchestrator.sync_now())
            await asyncio.sleep(0.02)
            assert orchestrator.is_syncing

            caller.cancel()
            await asyncio.gather(caller, return_exceptions=True)
            await asyncio.wait_for(orchestrator.shutdown(), EVENT_TIMEOUT)

        assert caller.cancelled()
        assert [r.id for r in await cache.list_records()] == ["a.md"]
        assert orchestrator.metrics.syncs_completed == 1


class TestWatch:
    """Watch-triggered passes and notifications"""

    @pytest.fixture
    def cache(self):
        return InMemoryPromptCache()

    @pytest.mark.asyncio
    async def test_start_watch_is_idempotent(self, cache, sync_config):
        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            assert await orchestrator.start_watch() is True
            watcher = orchestrator.watcher
            assert await orchestrator.start_watch() is True
            assert orchestrator.watcher is watcher
            assert orchestrator.get_status()["is_watching"] is True

        assert orchestrator.get_status()["is_watching"] is False

    @pytest.mark.asyncio
    async def test_watch_failure_keeps_on_demand_sync(self, cache, sync_config, write_prompt):
        write_prompt("a.md")

        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            with patch("promptsync.sync.watcher.Observer", side_effect=OSError("no watches left")):
                assert await orchestrator.start_watch() is False

            stats = await orchestrator.sync_now()

        assert stats.updated == 1
        assert "no watches left" in orchestrator.metrics.last_error_message

    @pytest.mark.asyncio
    async def test_trigger_runs_sync_and_notifies(self, cache, sync_config, write_prompt):
        write_prompt("a.md")

        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            events = orchestrator.subscribe()
            assert await orchestrator.start_watch()

            await orchestrator.trigger_queue.put(SyncTrigger())
            event = await asyncio.wait_for(events.get(), EVENT_TIMEOUT)

        assert event.name == VAULT_CHANGED_EVENT
        assert event.success
        assert event.stats.found == 1
        assert event.stats.updated == 1

    @pytest.mark.asyncio
    async def test_queued_triggers_are_drained_by_one_pass(self, cache, sync_config):
        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            events = orchestrator.subscribe()
            for _ in range(3):
                orchestrator.trigger_queue.put_nowait(SyncTrigger())

            assert await orchestrator.start_watch()
            await asyncio.wait_for(events.get(), EVENT_TIMEOUT)
            await asyncio.sleep(0.1)

            assert events.empty()
            assert orchestrator.metrics.triggers_received == 3
            assert orchestrator.metrics.syncs_completed == 1

    @pytest.mark.asyncio
    async def test_failed_watch_sync_is_published(self, cache, sync_config):
        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            events = orchestrator.subscribe()
            assert await orchestrator.start_watch()

            with patch.object(orchestrator.reconciler, "reconcile", side_effect=SyncError("boom")):
                await orchestrator.trigger_queue.put(SyncTrigger())
                event = await asyncio.wait_for(events.get(), EVENT_TIMEOUT)

            assert not event.success
            assert "boom" in event.error

            # The consumer keeps running after a failure
            await orchestrator.trigger_queue.put(SyncTrigger())
            event = await asyncio.wait_for(events.get(), EVENT_TIMEOUT)
            assert event.success

    @pytest.mark.asyncio
    async def test_file_change_reaches_cache(self, cache, sync_config, vault_dir, write_prompt):
        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            events = orchestrator.subscribe()
            assert await orchestrator.start_watch()

            write_prompt("live.md", tags=["fresh"])

            deadline = asyncio.get_running_loop().time() + EVENT_TIMEOUT
            while await cache.get("live.md") is None:
                remaining = deadline - asyncio.get_running_loop().time()
                await asyncio.wait_for(events.get(), max(remaining, 0.01))

        assert (await cache.get("live.md")).tags == ["fresh"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, cache, sync_config):
        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            events = orchestrator.subscribe()
            orchestrator.unsubscribe(events)
            assert await orchestrator.start_watch()

            await orchestrator.trigger_queue.put(SyncTrigger())
            await asyncio.sleep(0.2)

        assert events.empty()
        assert orchestrator.metrics.syncs_completed == 1


class TestFileOperations:
    """Pass-through file operations never touch the cache"""

    @pytest.mark.asyncio
    async def test_write_read_delete(self, sync_config, vault_dir):
        cache = InMemoryPromptCache()
        record = PromptRecord(id="new.md", file_path="new.md", text="hello", tags=["x"])

        async with SyncOrchestrator(cache, sync_config) as orchestrator:
            file_hash = await orchestrator.write_file(record)
            vault_file = await orchestrator.read_file("new.md")
            assert vault_file.content_hash == file_hash
            assert await cache.list_records() == []

            await orchestrator.delete_file("new.md")

        assert not (vault_dir / "new.md").exists()

    @pytest.mark.asyncio
    async def test_get_status(self, sync_config, write_prompt):
        write_prompt("a.md")

        async with SyncOrchestrator(InMemoryPromptCache(), sync_config) as orchestrator:
            await orchestrator.sync_now()
            status = orchestrator.get_status()

        assert status["vault_path"] == str(sync_config.vault_path)
        assert status["syncs_completed"] == 1
        assert status["last_stats"]["found"] == 1
        assert status["is_syncing"] is False
        assert status["watcher"] is None
