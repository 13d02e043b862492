"""
Vault Change Watcher.

Observes filesystem notifications for the vault root with watchdog, collapses
bursts into one debounced SyncTrigger and pushes it onto the orchestrator's
trigger queue. The watcher performs no reconciliation itself.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from watchdog.events import FileSystemEventHandler, FileSystemEvent as WatchdogEvent
from watchdog.events import FileCreatedEvent, FileModifiedEvent, FileDeletedEvent, FileMovedEvent
from watchdog.observers import Observer

from .events import EventType, SyncTrigger, VaultChangeEvent

logger = logging.getLogger(__name__)


class VaultWatcher:
    """
    Debounced watcher for a single vault directory.

    Every accepted notification restarts one vault-wide debounce window; when
    the window elapses without further notifications, the collected events
    are delivered as a single trigger.
    """

    def __init__(
        self,
        vault_path: Path,
        trigger_queue: "asyncio.Queue[SyncTrigger]",
        debounce_ms: int = 300,
        extension: str = ".md",
        recursive: bool = False,
        shutdown_timeout_s: float = 3.0
    ):
        """
        Initialize the vault watcher.

        Args:
            vault_path: Vault root to monitor
            trigger_queue: Queue receiving debounced triggers
            debounce_ms: Quiet period before a trigger is emitted
            extension: Prompt file extension to accept
            recursive: Whether to watch subdirectories
            shutdown_timeout_s: Max wait for the observer thread on stop
        """
        self.vault_path = Path(vault_path).resolve()
        self.trigger_queue = trigger_queue
        self.debounce_ms = debounce_ms
        self.extension = extension.lower()
        self.recursive = recursive
        self.shutdown_timeout_s = shutdown_timeout_s

        self.observer: Optional[Observer] = None
        self.event_handler: Optional['VaultEventHandler'] = None

        # Debouncing state
        self._pending_events: List[VaultChangeEvent] = []
        self._debounce_task: Optional[asyncio.Task] = None
        self._debounce_lock = asyncio.Lock()

        self._is_monitoring = False
        self._monitor_start_time: Optional[datetime] = None
        self._trigger_count = 0

        # Error tracking
        self._error_count = 0
        self._last_error: Optional[str] = None
        self._last_error_time: Optional[datetime] = None

        logger.debug(f"Initialized VaultWatcher for {self.vault_path} (debounce {self.debounce_ms}ms)")

    async def start_monitoring(self) -> bool:
        """
        Start filesystem monitoring.

        Returns:
            True if monitoring is active, False if setup failed
        """
        if self._is_monitoring:
            logger.debug("Vault monitoring is already active")
            return True

        try:
            if not self.vault_path.exists():
                raise FileNotFoundError(f"Vault path does not exist: {self.vault_path}")
            if not self.vault_path.is_dir():
                raise NotADirectoryError(f"Vault path is not a directory: {self.vault_path}")

            self.event_handler = VaultEventHandler(self)
            self.event_handler.set_event_loop(asyncio.get_running_loop())

            self.observer = Observer()
            self.observer.schedule(
                self.event_handler,
                str(self.vault_path),
                recursive=self.recursive
            )
            self.observer.start()

            self._is_monitoring = True
            self._monitor_start_time = datetime.now()

            logger.info(f"Started monitoring {self.vault_path} (recursive={self.recursive})")
            return True

        except Exception as e:
            error_msg = f"Failed to start vault monitoring: {e}"
            logger.error(error_msg)
            self._last_error = error_msg
            self._last_error_time = datetime.now()
            self._error_count += 1
            self.observer = None
            self.event_handler = None
            return False

    async def stop_monitoring(self) -> None:
        """Stop monitoring, drop pending notifications and join the observer thread."""
        if not self._is_monitoring:
            return

        self._is_monitoring = False

        if self.event_handler:
            self.event_handler.set_event_loop(None)

        if self.observer:
            try:
                self.observer.stop()
                await asyncio.to_thread(self.observer.join, self.shutdown_timeout_s)
            except RuntimeError as e:
                logger.warning(f"Error stopping observer: {e}")
            finally:
                self.observer = None

        async with self._debounce_lock:
            task = self._debounce_task
            self._debounce_task = None
            self._pending_events.clear()

        if task and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        self.event_handler = None

        logger.info(f"Stopped vault monitoring (duration: {self.monitoring_duration})")

    def should_monitor_file(self, file_path: Path, check_existence: bool = True) -> bool:
        """
        Check whether a path is a prompt file this watcher cares about.

        Args:
            file_path: Path to check
            check_existence: Whether to require the file to exist (False for deletions)
        """
        if check_existence and not file_path.is_file():
            return False
        if file_path.suffix.lower() != self.extension:
            return False
        if file_path.name.startswith('.'):
            return False
        if not self.recursive and file_path.parent != self.vault_path:
            return False
        return True

    async def handle_watchdog_event(self, event: WatchdogEvent) -> None:
        """
        Handle a watchdog event with debouncing.

        Args:
            event: Watchdog filesystem event
        """
        try:
            change = self._convert_watchdog_event(event)
            if change is None:
                return
            await self._debounce_event(change)
        except Exception as e:
            logger.error(f"Error handling watchdog event {event}: {e}")
            self._error_count += 1
            self._last_error = str(e)
            self._last_error_time = datetime.now()

    def _convert_watchdog_event(self, event: WatchdogEvent) -> Optional[VaultChangeEvent]:
        if event.is_directory:
            return None

        if isinstance(event, FileMovedEvent):
            old_path = Path(event.src_path).resolve()
            new_path = Path(event.dest_path).resolve()
            # Accept if either side is a prompt file (rename .txt -> .md)
            if not any(self.should_monitor_file(p, check_existence=False) for p in (old_path, new_path)):
                return None
            return VaultChangeEvent.create_file_moved(old_path, new_path)

        if isinstance(event, FileCreatedEvent):
            event_type = EventType.CREATED
        elif isinstance(event, FileModifiedEvent):
            event_type = EventType.MODIFIED
        elif isinstance(event, FileDeletedEvent):
            event_type = EventType.DELETED
        else:
            return None

        file_path = Path(event.src_path).resolve()
        check_existence = event_type != EventType.DELETED
        if not self.should_monitor_file(file_path, check_existence=check_existence):
            return None
        return VaultChangeEvent(event_type=event_type, file_path=file_path)

    async def _debounce_event(self, event: VaultChangeEvent) -> None:
        """Record a notification and restart the debounce window"""
        async with self._debounce_lock:
            self._pending_events.append(event)

            if self._debounce_task and not self._debounce_task.done():
                self._debounce_task.cancel()

            self._debounce_task = asyncio.create_task(
                self._emit_after_quiet_period(self.debounce_ms / 1000.0)
            )

    async def _emit_after_quiet_period(self, delay_seconds: float) -> None:
        try:
            await asyncio.sleep(delay_seconds)

            async with self._debounce_lock:
                events = self._pending_events
                self._pending_events = []
                if self._debounce_task is asyncio.current_task():
                    self._debounce_task = None

            if not events:
                return

            trigger = SyncTrigger(events=events)
            await self.trigger_queue.put(trigger)
            self._trigger_count += 1
            logger.debug(f"Emitted {trigger}")

        except asyncio.CancelledError:
            # Superseded by a newer notification, or stopped
            return

    @property
    def is_monitoring(self) -> bool:
        return self._is_monitoring

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def monitoring_duration(self) -> Optional[timedelta]:
        if not self._monitor_start_time:
            return None
        return datetime.now() - self._monitor_start_time

    def get_status(self) -> Dict[str, Any]:
        """
        Get status information.

        Returns:
            Dictionary with status information
        """
        return {
            "is_monitoring": self._is_monitoring,
            "vault_path": str(self.vault_path),
            "recursive": self.recursive,
            "debounce_ms": self.debounce_ms,
            "extension": self.extension,
            "monitoring_duration": str(self.monitoring_duration) if self.monitoring_duration else None,
            "pending_events": len(self._pending_events),
            "triggers_emitted": self._trigger_count,
            "error_count": self._error_count,
            "last_error": self._last_error,
            "last_error_time": self._last_error_time.isoformat() if self._last_error_time else None
        }

    async def __aenter__(self):
        await self.start_monitoring()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop_monitoring()


class VaultEventHandler(FileSystemEventHandler):
    """
    Watchdog handler that forwards events to a VaultWatcher.

    Watchdog calls this from its own thread; events are handed to the
    watcher's event loop with call_soon_threadsafe.
    """

    def __init__(self, watcher: VaultWatcher):
        super().__init__()
        self.watcher = watcher
        self._event_loop: Optional[asyncio.AbstractEventLoop] = None

    def set_event_loop(self, loop: Optional[asyncio.AbstractEventLoop]) -> None:
        self._event_loop = loop

    def on_any_event(self, event: WatchdogEvent) -> None:
        loop = self._event_loop
        if loop is None or loop.is_closed():
            logger.debug(f"No event loop available, dropping event: {event}")
            return

        try:
            loop.call_soon_threadsafe(
                lambda: asyncio.create_task(self.watcher.handle_watchdog_event(event))
            )
        except RuntimeError as e:
            # Loop closed between the check and the call
            logger.debug(f"Failed to schedule event on loop: {e}")
