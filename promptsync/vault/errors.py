"""
Error types for vault, cache and sync operations.
"""

from typing import Optional


class PromptSyncError(Exception):
    """Base class for all promptsync errors"""


class VaultError(PromptSyncError):
    """Vault operation errors"""


class VaultNotConfiguredError(VaultError):
    def __init__(self, message: str = "Vault path not configured"):
        super().__init__(message)


class VaultPathNotFoundError(VaultError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Vault path does not exist: {path}")


class VaultIOError(VaultError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"IO error on {path}: {reason}")


class PromptNotFoundError(VaultError):
    def __init__(self, prompt_id: str):
        self.prompt_id = prompt_id
        super().__init__(f"Prompt not found: {prompt_id}")


class FrontmatterParseError(VaultError):
    def __init__(self, reason: str, file_path: Optional[str] = None):
        self.reason = reason
        self.file_path = file_path
        where = f" in {file_path}" if file_path else ""
        super().__init__(f"Parse error{where}: {reason}")


class InvalidFilePathError(VaultError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid file path {path!r}: {reason}")


class InvalidContentError(VaultError):
    """Prompt text that cannot be stored inside a fenced prompt block"""


class FileAlreadyExistsError(VaultError):
    def __init__(self, file_path: str):
        self.file_path = file_path
        super().__init__(f"File name already exists: {file_path}")


class CacheError(PromptSyncError):
    """Structured cache read/write failure"""


class SyncError(PromptSyncError):
    """A reconciliation pass failed; the cache keeps its pre-sync state"""
