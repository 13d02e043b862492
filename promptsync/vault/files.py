"""
Direct file operations on the vault.

These are the write path that produces the on-disk state a later sync pass
reconciles. None of them touch the cache.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import aiofiles

from ..models.config import FrontmatterSettings
from ..models.records import PromptRecord, VaultFile
from .errors import (
    FrontmatterParseError,
    PromptNotFoundError,
    VaultNotConfiguredError,
    VaultPathNotFoundError,
)
from .frontmatter import (
    extract_tags,
    parse_prompt_document,
    render_prompt_document,
    split_frontmatter,
    to_vault_file,
    validate_prompt_text,
)
from .paths import DEFAULT_EXTENSION, generate_unique_file_path, normalize_relative_path

logger = logging.getLogger(__name__)

CREATED_FORMAT = "%Y-%m-%dT%H:%M:%S"


def current_timestamp() -> str:
    """UTC timestamp in the format written to new file headers"""
    return datetime.now(timezone.utc).strftime(CREATED_FORMAT)


class PromptFileStore:
    """
    Reads, writes and deletes prompt files under one vault root.

    Args:
        vault_path: Vault root directory (None raises on every operation)
        frontmatter: Header conventions used for parsing and rendering
        extension: File extension appended to bare identifiers
    """

    def __init__(
        self,
        vault_path: Optional[Path],
        frontmatter: Optional[FrontmatterSettings] = None,
        extension: str = DEFAULT_EXTENSION
    ):
        self.vault_path = Path(vault_path) if vault_path else None
        self.frontmatter = frontmatter or FrontmatterSettings()
        self.extension = extension

    def _root(self) -> Path:
        if self.vault_path is None:
            raise VaultNotConfiguredError()
        return self.vault_path

    def resolve(self, prompt_id: str) -> Path:
        """Absolute path for a prompt identifier or filename"""
        return self._root() / normalize_relative_path(prompt_id, self.extension)

    def exists(self, prompt_id: str) -> bool:
        return self.resolve(prompt_id).is_file()

    def generate_unique_file_path(self) -> str:
        return generate_unique_file_path(self._root(), self.extension)

    def _tags_for_header(self, tags: List[str], existing: Optional[str]) -> List[str]:
        """Drop the implicit marker tag unless the file header already lists it"""
        if not self.frontmatter.add_prompts_tag_to_tags:
            return list(tags)

        marker = self.frontmatter.prompts_tag.lower()
        if existing is not None:
            try:
                header, _ = split_frontmatter(existing)
            except FrontmatterParseError:
                header = {}
            on_disk = extract_tags(header, self.frontmatter.prompt_tags_property)
            if marker in {tag.lower() for tag in on_disk}:
                return list(tags)

        return [tag for tag in tags if tag.lower() != marker]

    async def _read_text(self, path: Path) -> str:
        async with aiofiles.open(path, 'r', encoding='utf-8') as f:
            return await f.read()

    async def read_file(self, prompt_id: str) -> VaultFile:
        """
        Read and parse one prompt file.

        Raises:
            PromptNotFoundError: If the file does not exist
            FrontmatterParseError: If the header cannot be parsed
        """
        path = self.resolve(prompt_id)
        if not path.is_file():
            raise PromptNotFoundError(prompt_id)

        content = await self._read_text(path)
        return to_vault_file(path.name, content, self.frontmatter)

    async def write_file(self, record: PromptRecord) -> str:
        """
        Write a record to its file, preserving unrelated header keys and
        Markdown around the prompt block.

        Args:
            record: Record to persist; ``record.file_path`` names the file

        Returns:
            Content hash of the written document

        Raises:
            InvalidContentError: If the text contains fence delimiters
            InvalidFilePathError: If the file path is not a plain filename
        """
        validate_prompt_text(record.text)
        path = self.resolve(record.file_path)

        existing: Optional[str] = None
        if path.is_file():
            existing = await self._read_text(path)

        created = record.created
        if created is None and existing is not None:
            try:
                created = parse_prompt_document(existing, self.frontmatter).created
            except FrontmatterParseError as e:
                logger.debug(f"Ignoring unparseable header in {path.name}: {e}")
        if created is None:
            created = current_timestamp()

        content = render_prompt_document(
            tags=self._tags_for_header(record.tags, existing),
            body=record.text,
            created=created,
            title=record.title,
            description=record.description,
            settings=self.frontmatter,
            existing=existing
        )

        # Hidden, so scanner and watcher never pick it up
        temp_file = path.with_name(f".{path.name}.tmp")
        async with aiofiles.open(temp_file, 'w', encoding='utf-8') as f:
            await f.write(content)
        temp_file.replace(path)

        logger.debug(f"Wrote prompt file {path.name}")
        return to_vault_file(path.name, content, self.frontmatter).content_hash

    async def delete_file(self, prompt_id: str) -> None:
        """
        Remove a prompt file.

        Raises:
            VaultPathNotFoundError: If the file does not exist
        """
        path = self.resolve(prompt_id)
        if not path.exists():
            raise VaultPathNotFoundError(str(path))

        await asyncio.to_thread(path.unlink)
        logger.debug(f"Deleted prompt file {path.name}")
