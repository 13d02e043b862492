"""
Core data models for promptsync

Pydantic models for vault files, cached prompt records and configuration.
"""

from .records import (
    VaultFile,
    PromptRecord,
    ScanError,
    ScanResult,
    SyncStats,
    normalize_tag,
    normalize_tags,
)
from .config import (
    FrontmatterSettings,
    ScannerSettings,
    WatcherSettings,
    PromptSyncConfig,
    GlobalSettings,
)

__all__ = [
    # Records
    "VaultFile",
    "PromptRecord",
    "ScanError",
    "ScanResult",
    "SyncStats",
    "normalize_tag",
    "normalize_tags",

    # Configuration
    "FrontmatterSettings",
    "ScannerSettings",
    "WatcherSettings",
    "PromptSyncConfig",
    "GlobalSettings",
]
