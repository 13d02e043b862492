"""
Vault-relative path handling.

Prompt identifiers are flat filenames inside the vault root; these helpers
normalize user input into that form and generate fresh names.
"""

import uuid
from datetime import datetime
from pathlib import Path

from .errors import FileAlreadyExistsError, InvalidFilePathError

DEFAULT_EXTENSION = ".md"
UNIQUE_NAME_ATTEMPTS = 20


def normalize_relative_path(path: str, extension: str = DEFAULT_EXTENSION) -> str:
    """
    Normalize a prompt path into a single vault filename.

    Args:
        path: Raw identifier or filename
        extension: Extension appended when missing

    Returns:
        Normalized filename

    Raises:
        InvalidFilePathError: For empty, absolute, traversing or nested paths
    """
    trimmed = (path or "").strip()
    if not trimmed:
        raise InvalidFilePathError(path, "empty path")
    if trimmed.startswith(('/', '\\')):
        raise InvalidFilePathError(path, "absolute path")
    if '/' in trimmed or '\\' in trimmed:
        raise InvalidFilePathError(path, "subfolders are not supported")
    if trimmed in ('.', '..'):
        raise InvalidFilePathError(path, "path traversal")

    if not trimmed.lower().endswith(extension):
        trimmed = f"{trimmed}{extension}"
    return trimmed


def generate_unique_file_path(vault_path: Path, extension: str = DEFAULT_EXTENSION) -> str:
    """
    Generate an unused ``YYYY-MM-DD-xxxxxx`` filename in the vault.

    Raises:
        FileAlreadyExistsError: If no free name was found
    """
    date = datetime.now().strftime("%Y-%m-%d")
    for _ in range(UNIQUE_NAME_ATTEMPTS):
        candidate = f"{date}-{uuid.uuid4().hex[:6]}{extension}"
        if not (vault_path / candidate).exists():
            return candidate
    raise FileAlreadyExistsError("Failed to generate unique filename")
