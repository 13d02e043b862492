"""
Shared fixtures for promptsync tests.
"""

from pathlib import Path
from typing import Iterable, Optional

import pytest

from promptsync.models.config import PromptSyncConfig, WatcherSettings


@pytest.fixture
def vault_dir(tmp_path: Path) -> Path:
    """Empty vault directory"""
    vault = tmp_path / "vault"
    vault.mkdir()
    return vault


@pytest.fixture
def write_prompt(vault_dir: Path):
    """Write a prompt file in the shape the application produces"""
    def _write(
        name: str,
        tags: Iterable[str] = ("work",),
        body: str = "Summarize the text below.",
        created: Optional[str] = "2024-01-01T10:00:00",
        title: Optional[str] = None,
        vault: Optional[Path] = None
    ) -> Path:
        lines = ["---", "tags:"]
        lines += [f"- {tag}" for tag in tags]
        if created:
            lines.append(f"created: '{created}'")
        if title:
            lines.append(f"title: {title}")
        lines += ["---", "", "```prompt", body, "```", ""]

        path = (vault or vault_dir) / name
        path.write_text("\n".join(lines), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def sync_config(vault_dir: Path) -> PromptSyncConfig:
    """Configuration pointing at the test vault with a short debounce"""
    return PromptSyncConfig(
        vault_path=vault_dir,
        watcher=WatcherSettings(debounce_ms=50)
    )
