"""
Sync Event Models.

Defines the raw change notifications seen by the watcher, the trigger
pushed to the orchestrator after debouncing, and the completion event
published to subscribers after a watch-triggered sync.
"""

import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.records import SyncStats

VAULT_CHANGED_EVENT = "vault-changed"


class EventType(Enum):
    """Types of file system changes that can trigger a sync"""
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    MOVED = "moved"


class VaultChangeEvent(BaseModel):
    """A single raw change notification for a file in the vault"""

    event_type: EventType
    file_path: Path
    old_path: Optional[Path] = None  # For move events
    timestamp: datetime = Field(default_factory=datetime.now)

    @classmethod
    def create_file_moved(cls, old_path: Path, new_path: Path) -> 'VaultChangeEvent':
        """Create a file move/rename event"""
        return cls(event_type=EventType.MOVED, file_path=new_path, old_path=old_path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "file_path": str(self.file_path),
            "old_path": str(self.old_path) if self.old_path else None,
            "timestamp": self.timestamp.isoformat()
        }

    def __str__(self) -> str:
        old_part = f" (from {self.old_path.name})" if self.old_path else ""
        return f"{self.event_type.value.upper()}: {self.file_path.name}{old_part}"


class SyncTrigger(BaseModel):
    """
    One debounced request for a sync pass.

    Carries the notifications collapsed into it for logging only; the
    orchestrator always rescans the whole vault.
    """

    trigger_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    events: List[VaultChangeEvent] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def size(self) -> int:
        return len(self.events)

    def __str__(self) -> str:
        return f"SyncTrigger({self.trigger_id[:8]}, {self.size} events)"


class SyncCompletedEvent(BaseModel):
    """Published after a watch-triggered sync finishes"""

    name: str = VAULT_CHANGED_EVENT
    stats: Optional[SyncStats] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def success(self) -> bool:
        return self.error is None
