"""
Tests for VaultWatcher filtering and debouncing.

Most tests feed watchdog events to the watcher directly so that timing only
depends on the debounce window; one test exercises the real observer.
"""

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest
from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from promptsync.sync.events import EventType, SyncTrigger
from promptsync.sync.watcher import VaultEventHandler, VaultWatcher

TRIGGER_TIMEOUT = 2.0


class TestVaultWatcher:
    """Test suite for VaultWatcher"""

    @pytest.fixture
    def make_watcher(self, vault_dir):
        def _make(debounce_ms=50, **kwargs):
            return VaultWatcher(vault_dir, asyncio.Queue(), debounce_ms=debounce_ms, **kwargs)
        return _make

    def test_should_monitor_file(self, make_watcher, vault_dir, write_prompt):
        watcher = make_watcher()
        write_prompt("a.md")
        (vault_dir / "notes.txt").write_text("x")
        (vault_dir / ".hidden.md").write_text("x")
        nested = vault_dir / "sub"
        nested.mkdir()
        (nested / "n.md").write_text("x")
        root = vault_dir.resolve()

        assert watcher.should_monitor_file(root / "a.md")
        assert not watcher.should_monitor_file(root / "missing.md")
        assert watcher.should_monitor_file(root / "missing.md", check_existence=False)
        assert not watcher.should_monitor_file(root / "notes.txt")
        assert not watcher.should_monitor_file(root / ".hidden.md")
        assert not watcher.should_monitor_file(root / "sub" / "n.md")

    def test_recursive_accepts_nested(self, make_watcher, vault_dir):
        watcher = make_watcher(recursive=True)
        nested = vault_dir / "sub"
        nested.mkdir()
        (nested / "n.md").write_text("x")

        assert watcher.should_monitor_file(vault_dir.resolve() / "sub" / "n.md")

    @pytest.mark.asyncio
    async def test_burst_collapses_into_one_trigger(self, make_watcher, vault_dir, write_prompt):
        watcher = make_watcher(debounce_ms=50)
        paths = [write_prompt(f"p{i}.md") for i in range(5)]

        for path in paths:
            await watcher.handle_watchdog_event(FileModifiedEvent(str(path)))

        trigger = await asyncio.wait_for(watcher.trigger_queue.get(), TRIGGER_TIMEOUT)
        assert isinstance(trigger, SyncTrigger)
        assert trigger.size == 5
        assert all(e.event_type == EventType.MODIFIED for e in trigger.events)

        await asyncio.sleep(0.15)
        assert watcher.trigger_queue.empty()
        assert watcher.get_status()["triggers_emitted"] == 1

    @pytest.mark.asyncio
    async def test_each_event_restarts_window(self, make_watcher, write_prompt):
        watcher = make_watcher(debounce_ms=200)
        path = write_prompt("a.md")

        await watcher.handle_watchdog_event(FileModifiedEvent(str(path)))
        await asyncio.sleep(0.12)
        await watcher.handle_watchdog_event(FileModifiedEvent(str(path)))
        await asyncio.sleep(0.12)

        assert watcher.trigger_queue.empty()

        trigger = await asyncio.wait_for(watcher.trigger_queue.get(), TRIGGER_TIMEOUT)
        assert trigger.size == 2

    @pytest.mark.asyncio
    async def test_ignored_events_do_not_trigger(self, make_watcher, vault_dir):
        watcher = make_watcher(debounce_ms=20)
        (vault_dir / "notes.txt").write_text("x")
        (vault_dir / "folder").mkdir()

        await watcher.handle_watchdog_event(FileCreatedEvent(str(vault_dir / "notes.txt")))
        await watcher.handle_watchdog_event(DirCreatedEvent(str(vault_dir / "folder")))
        await watcher.handle_watchdog_event(FileCreatedEvent(str(vault_dir / "vanished.md")))
        await asyncio.sleep(0.1)

        assert watcher.trigger_queue.empty()

    @pytest.mark.asyncio
    async def test_deletion_of_missing_file_triggers(self, make_watcher, vault_dir):
        watcher = make_watcher(debounce_ms=20)

        await watcher.handle_watchdog_event(FileDeletedEvent(str(vault_dir / "gone.md")))

        trigger = await asyncio.wait_for(watcher.trigger_queue.get(), TRIGGER_TIMEOUT)
        assert trigger.events[0].event_type == EventType.DELETED

    @pytest.mark.asyncio
    async def test_move_into_prompt_extension_triggers(self, make_watcher, vault_dir, write_prompt):
        watcher = make_watcher(debounce_ms=20)
        new_path = write_prompt("renamed.md")

        await watcher.handle_watchdog_event(FileMovedEvent(str(vault_dir / "draft.txt"), str(new_path)))

        trigger = await asyncio.wait_for(watcher.trigger_queue.get(), TRIGGER_TIMEOUT)
        event = trigger.events[0]
        assert event.event_type == EventType.MOVED
        assert event.old_path.name == "draft.txt"
        assert event.file_path.name == "renamed.md"

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, make_watcher):
        watcher = make_watcher()
        try:
            assert await watcher.start_monitoring() is True
            first_observer = watcher.observer
            assert await watcher.start_monitoring() is True
            assert watcher.observer is first_observer
            assert watcher.is_monitoring
        finally:
            await watcher.stop_monitoring()

        assert not watcher.is_monitoring
        assert watcher.observer is None

    @pytest.mark.asyncio
    async def test_start_on_missing_path_reports_error(self, tmp_path):
        watcher = VaultWatcher(tmp_path / "missing", asyncio.Queue())

        assert await watcher.start_monitoring() is False
        assert not watcher.is_monitoring
        assert "does not exist" in watcher.last_error
        assert watcher.get_status()["error_count"] == 1

    @pytest.mark.asyncio
    async def test_observer_failure_reports_error(self, make_watcher):
        watcher = make_watcher()
        with patch("promptsync.sync.watcher.Observer", side_effect=OSError("inotify limit reached")):
            assert await watcher.start_monitoring() is False
        assert "inotify limit reached" in watcher.last_error

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_trigger(self, make_watcher, write_prompt):
        watcher = make_watcher(debounce_ms=100)
        path = write_prompt("a.md")
        await watcher.start_monitoring()

        await watcher.handle_watchdog_event(FileModifiedEvent(str(path)))
        await watcher.stop_monitoring()
        await asyncio.sleep(0.2)

        assert watcher.trigger_queue.empty()
        assert watcher.get_status()["pending_events"] == 0

    @pytest.mark.asyncio
    async def test_real_file_change_emits_trigger(self, make_watcher, vault_dir):
        watcher = make_watcher(debounce_ms=50)
        async with watcher:
            (vault_dir / "live.md").write_text("---\ntags: [a]\n---\nbody")
            trigger = await asyncio.wait_for(watcher.trigger_queue.get(), 5.0)

        assert trigger.size >= 1
        assert all(e.file_path.name == "live.md" for e in trigger.events)


class TestVaultEventHandler:
    """Bridge from the watchdog thread to the event loop"""

    @pytest.mark.asyncio
    async def test_forwards_event_to_loop(self, vault_dir, write_prompt):
        watcher = VaultWatcher(vault_dir, asyncio.Queue(), debounce_ms=10)
        handler = VaultEventHandler(watcher)
        handler.set_event_loop(asyncio.get_running_loop())
        path = write_prompt("a.md")

        await asyncio.to_thread(handler.on_any_event, FileCreatedEvent(str(path)))

        trigger = await asyncio.wait_for(watcher.trigger_queue.get(), TRIGGER_TIMEOUT)
        assert trigger.events[0].file_path == Path(path).resolve()

    def test_drops_events_without_loop(self, vault_dir):
        watcher = VaultWatcher(vault_dir, asyncio.Queue())
        handler = VaultEventHandler(watcher)

        handler.on_any_event(FileCreatedEvent(str(vault_dir / "a.md")))

        assert watcher.get_status()["pending_events"] == 0
