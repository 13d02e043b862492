"""
Prompt service: cache-backed reads and vault-first writes.

Every write goes to the vault file first and then to the cache. Both steps
run under the orchestrator's cache lock, which a sync pass holds from scan
to apply, so a pass never plans against a half-finished write.
"""

import logging
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models.records import PromptRecord, normalize_tag
from .sync.engine import SyncOrchestrator
from .vault.errors import (
    FileAlreadyExistsError,
    FrontmatterParseError,
    PromptNotFoundError,
    VaultPathNotFoundError,
)
from .vault.files import current_timestamp
from .vault.paths import normalize_relative_path

logger = logging.getLogger(__name__)


class PromptInput(BaseModel):
    """Prompt fields submitted by the editor"""
    model_config = ConfigDict(str_strip_whitespace=False)

    id: Optional[str] = None
    file_path: Optional[str] = None
    previous_file_path: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    text: str = ""
    tags: List[str] = Field(default_factory=list)
    created: Optional[str] = None


class PromptFilter(BaseModel):
    """Tag filter (AND, ``-tag`` excludes) plus case-insensitive text search"""
    tags: List[str] = Field(default_factory=list)
    search: Optional[str] = None


class SortConfig(BaseModel):
    by: Literal["created", "title"] = "created"
    order: Literal["asc", "desc"] = "asc"


def _split_tag_filter(tags: List[str]):
    positive, negative = [], []
    for tag in tags:
        trimmed = tag.strip()
        if trimmed.startswith('-'):
            normalized = normalize_tag(trimmed[1:])
            if normalized:
                negative.append(normalized)
        else:
            normalized = normalize_tag(trimmed)
            if normalized:
                positive.append(normalized)
    return positive, negative


def filter_prompts(prompts: List[PromptRecord], prompt_filter: PromptFilter) -> List[PromptRecord]:
    positive, negative = _split_tag_filter(prompt_filter.tags)
    if positive or negative:
        prompts = [
            p for p in prompts
            if all(t in p.tags for t in positive) and not any(t in p.tags for t in negative)
        ]

    if prompt_filter.search:
        needle = prompt_filter.search.lower()
        prompts = [p for p in prompts if needle in p.text.lower()]

    return prompts


def sort_prompts(prompts: List[PromptRecord], sort: SortConfig) -> List[PromptRecord]:
    """Sort by created or title; missing values sort first in ascending order"""
    def key(prompt: PromptRecord):
        value = getattr(prompt, sort.by)
        if sort.by == "title" and value is not None:
            value = value.lower()
        return (value is not None, value or "")

    return sorted(prompts, key=key, reverse=sort.order == "desc")


class PromptService:
    """
    Application-facing prompt operations.

    Args:
        orchestrator: Sync orchestrator owning the cache and vault config
    """

    def __init__(self, orchestrator: SyncOrchestrator):
        self.orchestrator = orchestrator
        self.cache = orchestrator.cache

    async def get_prompts(
        self,
        prompt_filter: Optional[PromptFilter] = None,
        sort: Optional[SortConfig] = None
    ) -> List[PromptRecord]:
        prompts = await self.cache.list_records()
        if prompt_filter:
            prompts = filter_prompts(prompts, prompt_filter)
        if sort:
            prompts = sort_prompts(prompts, sort)
        return prompts

    async def get_all_tags(self) -> List[str]:
        return await self.cache.list_tags()

    async def save_prompt(self, prompt: PromptInput) -> PromptRecord:
        """
        Write a prompt to the vault, then to the cache.

        A differing ``previous_file_path`` marks an in-app rename: the new file
        is written, the old one removed, and the record keeps its id with the
        marker set until the next sync confirms it.

        Raises:
            FileAlreadyExistsError: If the target file exists and is not the
                prompt being edited
            InvalidFilePathError, InvalidContentError: Before anything is written
        """
        async with self.orchestrator.cache_lock:
            record = await self._save_locked(prompt)

        logger.info(f"Saved prompt {record.id} to {record.file_path}")
        return record

    async def _save_locked(self, prompt: PromptInput) -> PromptRecord:
        files = self.orchestrator.files
        extension = files.extension

        if prompt.file_path and prompt.file_path.strip():
            file_path = normalize_relative_path(prompt.file_path, extension)
        else:
            file_path = files.generate_unique_file_path()

        previous_file_path = None
        if prompt.previous_file_path and prompt.previous_file_path.strip():
            previous_file_path = normalize_relative_path(prompt.previous_file_path, extension)

        is_rename = previous_file_path is not None and previous_file_path != file_path
        if (previous_file_path is None or is_rename) and files.exists(file_path):
            raise FileAlreadyExistsError(file_path)

        record_id = prompt.id
        if record_id is None and previous_file_path is not None:
            existing = await self.cache.find_by_file_path(previous_file_path)
            record_id = existing.id if existing else None

        created = prompt.created
        if created is None and is_rename and files.exists(previous_file_path):
            try:
                created = (await files.read_file(previous_file_path)).created
            except FrontmatterParseError as e:
                logger.debug(f"Not carrying created over from {previous_file_path}: {e}")

        draft = PromptRecord(
            id=record_id or file_path,
            file_path=file_path,
            title=prompt.title,
            description=prompt.description,
            text=prompt.text,
            tags=prompt.tags,
            created=created
        )
        await files.write_file(draft)
        vault_file = await files.read_file(file_path)

        record = draft.refreshed_from(vault_file)
        if is_rename:
            record = record.model_copy(update={'previous_file_path': previous_file_path})

        await self.cache.put(record)

        if is_rename:
            try:
                await files.delete_file(previous_file_path)
            except VaultPathNotFoundError:
                logger.debug(f"Old file {previous_file_path} already gone")

        return record

    async def delete_prompt(self, prompt_id: str) -> None:
        """Remove a prompt's file (missing file tolerated) and its cache record"""
        async with self.orchestrator.cache_lock:
            record = await self.cache.get(prompt_id)
            file_path = record.file_path if record else prompt_id

            try:
                await self.orchestrator.files.delete_file(file_path)
            except VaultPathNotFoundError:
                logger.info(f"File for prompt {prompt_id} not found in vault, removing cache entry")

            await self.cache.delete(prompt_id)

    async def duplicate_prompt(self, prompt_id: str) -> PromptRecord:
        """
        Copy a prompt to a freshly generated file.

        Raises:
            PromptNotFoundError: If no record has this id
        """
        record = await self.cache.get(prompt_id)
        if record is None:
            raise PromptNotFoundError(prompt_id)

        return await self.save_prompt(PromptInput(
            title=record.title,
            description=record.description,
            text=record.text,
            tags=record.tags,
            created=current_timestamp()
        ))
