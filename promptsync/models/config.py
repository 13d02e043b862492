"""
Configuration models for promptsync.

Handles vault location, frontmatter conventions, scanner and watcher tuning,
and global settings sourced from the environment.
"""

from pathlib import Path
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FrontmatterSettings(BaseModel):
    """How tags and metadata are read from the file header"""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True
    )

    prompt_tags_property: str = "tags"
    add_prompts_tag_to_tags: bool = False
    prompts_tag: str = "prompts"

    @field_validator('prompt_tags_property')
    @classmethod
    def validate_tags_property(cls, v: str) -> str:
        """Blank property names fall back to 'tags'"""
        return v.strip() or "tags"

    @field_validator('prompts_tag')
    @classmethod
    def validate_prompts_tag(cls, v: str) -> str:
        normalized = v.strip().lstrip('#').strip()
        if not normalized:
            raise ValueError('Marker tag cannot be empty')
        return normalized


class ScannerSettings(BaseModel):
    """Vault scanning configuration"""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True
    )

    extension: str = ".md"
    max_concurrent_reads: int = Field(default=16, ge=1, le=256)

    @field_validator('extension')
    @classmethod
    def validate_extension(cls, v: str) -> str:
        """Extensions are stored lower-case with a leading dot"""
        v = v.strip().lower()
        if not v:
            raise ValueError('Extension cannot be empty')
        if not v.startswith('.'):
            v = f".{v}"
        return v


class WatcherSettings(BaseModel):
    """Change watcher configuration"""
    model_config = ConfigDict(validate_assignment=True)

    debounce_ms: int = Field(default=300, ge=0, le=60000)
    shutdown_timeout_s: float = Field(default=3.0, gt=0)
    recursive: bool = False


class PromptSyncConfig(BaseModel):
    """Application configuration with validation"""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True
    )

    vault_path: Optional[Path] = None
    cache_path: Optional[Path] = None

    frontmatter: FrontmatterSettings = Field(default_factory=FrontmatterSettings)
    scanner: ScannerSettings = Field(default_factory=ScannerSettings)
    watcher: WatcherSettings = Field(default_factory=WatcherSettings)

    @field_validator('vault_path', 'cache_path', mode='before')
    @classmethod
    def validate_paths(cls, v: Any) -> Optional[Path]:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return Path(v).expanduser()

    @property
    def is_vault_configured(self) -> bool:
        return self.vault_path is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        data = self.model_dump()
        data['vault_path'] = str(self.vault_path) if self.vault_path else None
        data['cache_path'] = str(self.cache_path) if self.cache_path else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PromptSyncConfig':
        return cls(**data)


class GlobalSettings(BaseSettings):
    """Global application settings with environment variable support"""
    model_config = SettingsConfigDict(
        env_prefix="PROMPTSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    config_dir: Path = Field(
        default_factory=lambda: Path.home() / ".promptsync"
    )

    # Logging
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_to_file: bool = False

    @property
    def config_file(self) -> Path:
        return self.config_dir / "config.json"

    @property
    def default_cache_path(self) -> Path:
        return self.config_dir / "cache.db"

    def get_log_file(self) -> Optional[Path]:
        """Get log file path if logging to file is enabled"""
        if not self.log_to_file:
            return None
        log_dir = self.config_dir / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir / "promptsync.log"
