"""
Record models for vault files and cached prompts.

VaultFile is produced per scan and discarded afterwards. PromptRecord is the
structured cache entry the reconciliation engine keeps in step with the vault.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


def normalize_tag(tag: Any) -> Optional[str]:
    """Normalize a single tag: trim, drop leading '#', lower-case."""
    if tag is None:
        return None
    normalized = str(tag).strip().lstrip('#').strip().lower()
    return normalized or None


def normalize_tags(tags: Iterable[Any]) -> List[str]:
    """Normalize, de-duplicate and sort a tag collection."""
    result = set()
    for tag in tags or []:
        normalized = normalize_tag(tag)
        if normalized:
            result.add(normalized)
    return sorted(result)


def validate_file_name(value: str) -> str:
    """Ensure a vault path is a single, non-traversing path segment."""
    if not value or not value.strip():
        raise ValueError('File path cannot be empty')
    if '/' in value or '\\' in value:
        raise ValueError('File path must be a single filename without separators')
    if value in ('.', '..'):
        raise ValueError('File path cannot be a "." or ".." segment')
    return value


class VaultFile(BaseModel):
    """
    A parsed prompt file found during one scan of the vault.

    The identity is the vault-relative file path; content_hash is computed
    over the parsed fields, never over the raw header bytes.
    """
    model_config = ConfigDict(frozen=True)

    identity: str
    file_path: str
    raw_content: str
    frontmatter_tags: List[str] = Field(default_factory=list)
    created: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    body: str = ""
    content_hash: str

    @field_validator('file_path')
    @classmethod
    def validate_file_path(cls, v: str) -> str:
        return validate_file_name(v)

    @property
    def normalized_tags(self) -> List[str]:
        """Tags as they are stored in the cache"""
        return normalize_tags(self.frontmatter_tags)

    def __str__(self) -> str:
        return f"VaultFile({self.file_path}, hash={self.content_hash[:8]})"


class PromptRecord(BaseModel):
    """Prompt entry persisted in the structured cache"""
    model_config = ConfigDict(
        str_strip_whitespace=False,
        validate_assignment=True
    )

    id: str
    file_path: str
    previous_file_path: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    text: str = ""
    tags: List[str] = Field(default_factory=list)
    created: Optional[str] = None
    file_hash: Optional[str] = None

    @field_validator('id')
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Record id cannot be empty')
        return v

    @field_validator('file_path')
    @classmethod
    def validate_file_path(cls, v: str) -> str:
        return validate_file_name(v)

    @field_validator('previous_file_path')
    @classmethod
    def validate_previous_file_path(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return validate_file_name(v)

    @field_validator('tags', mode='before')
    @classmethod
    def validate_tags(cls, v: Any) -> List[str]:
        return normalize_tags(v or [])

    @property
    def has_pending_rename(self) -> bool:
        """True while an application-driven rename awaits confirmation"""
        return self.previous_file_path is not None

    @classmethod
    def from_vault_file(cls, vault_file: VaultFile, record_id: Optional[str] = None) -> 'PromptRecord':
        """Build a cache record from a scanned file"""
        return cls(
            id=record_id or vault_file.file_path,
            file_path=vault_file.file_path,
            title=vault_file.title,
            description=vault_file.description,
            text=vault_file.body,
            tags=vault_file.frontmatter_tags,
            created=vault_file.created,
            file_hash=vault_file.content_hash
        )

    def refreshed_from(self, vault_file: VaultFile) -> 'PromptRecord':
        """Copy of this record with disk content adopted and the rename marker cleared"""
        return self.model_copy(update={
            'file_path': vault_file.file_path,
            'previous_file_path': None,
            'title': vault_file.title,
            'description': vault_file.description,
            'text': vault_file.body,
            'tags': vault_file.normalized_tags,
            'created': vault_file.created,
            'file_hash': vault_file.content_hash,
        })


class ScanError(BaseModel):
    """A file the scanner had to skip"""
    file_path: str
    message: str


class ScanResult(BaseModel):
    """Outcome of one vault scan"""
    files: List[VaultFile] = Field(default_factory=list)
    skipped: int = 0
    errors: List[ScanError] = Field(default_factory=list)
    scan_time_ms: float = 0.0

    @property
    def found(self) -> int:
        return len(self.files)


class SyncStats(BaseModel):
    """Statistics returned by a reconciliation pass"""
    found: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    completed_at: datetime = Field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization"""
        return {
            "found": self.found,
            "updated": self.updated,
            "deleted": self.deleted,
            "skipped": self.skipped,
            "completed_at": self.completed_at.isoformat()
        }

    def __str__(self) -> str:
        return f"found={self.found} updated={self.updated} deleted={self.deleted} skipped={self.skipped}"
