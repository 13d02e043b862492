"""
Vault access: frontmatter codec, scanner and direct file operations.
"""

from .errors import (
    PromptSyncError,
    VaultError,
    VaultNotConfiguredError,
    VaultPathNotFoundError,
    VaultIOError,
    PromptNotFoundError,
    FrontmatterParseError,
    InvalidFilePathError,
    InvalidContentError,
    FileAlreadyExistsError,
    CacheError,
    SyncError,
)
from .frontmatter import (
    ParsedPrompt,
    parse_prompt_document,
    render_prompt_document,
    compute_content_hash,
    validate_prompt_text,
    to_vault_file,
)
from .paths import normalize_relative_path, generate_unique_file_path
from .scanner import VaultScanner
from .files import PromptFileStore

__all__ = [
    "PromptSyncError",
    "VaultError",
    "VaultNotConfiguredError",
    "VaultPathNotFoundError",
    "VaultIOError",
    "PromptNotFoundError",
    "FrontmatterParseError",
    "InvalidFilePathError",
    "InvalidContentError",
    "FileAlreadyExistsError",
    "CacheError",
    "SyncError",
    "ParsedPrompt",
    "parse_prompt_document",
    "render_prompt_document",
    "compute_content_hash",
    "validate_prompt_text",
    "to_vault_file",
    "normalize_relative_path",
    "generate_unique_file_path",
    "VaultScanner",
    "PromptFileStore",
]
