"""
Vault scanning for reconciliation passes.

Enumerates prompt files directly under the vault root with os.scandir, reads
them concurrently with aiofiles and runs the frontmatter codec on each one.
Per-file failures are recorded and skipped; only root-level failures abort
the scan.
"""

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import List, Optional, Tuple, Union

import aiofiles

from ..models.config import FrontmatterSettings, ScannerSettings
from ..models.records import ScanError, ScanResult, VaultFile
from .errors import FrontmatterParseError, VaultIOError, VaultPathNotFoundError
from .frontmatter import to_vault_file

logger = logging.getLogger(__name__)


class VaultScanner:
    """
    Reads every eligible prompt file in a vault.

    The scanner is read-only: it never writes to the vault or the cache.
    """

    def __init__(
        self,
        vault_path: Path,
        frontmatter: Optional[FrontmatterSettings] = None,
        settings: Optional[ScannerSettings] = None
    ):
        self.vault_path = Path(vault_path)
        self.frontmatter = frontmatter or FrontmatterSettings()
        self.settings = settings or ScannerSettings()

    def is_eligible(self, name: str) -> bool:
        """Check a directory entry name against the hidden/extension rules"""
        if name.startswith('.'):
            return False
        return name.lower().endswith(self.settings.extension)

    def list_candidates(self) -> List[str]:
        """
        List eligible file names directly under the vault root.

        Raises:
            VaultPathNotFoundError: If the root is missing or not a directory
            VaultIOError: If the root cannot be listed
        """
        if not self.vault_path.is_dir():
            raise VaultPathNotFoundError(str(self.vault_path))

        candidates = []
        try:
            with os.scandir(str(self.vault_path)) as entries:
                for entry in entries:
                    if not self.is_eligible(entry.name):
                        continue
                    try:
                        if entry.is_file():
                            candidates.append(entry.name)
                    except OSError as e:
                        logger.debug(f"Cannot stat {entry.name}: {e}")
        except OSError as e:
            raise VaultIOError(str(self.vault_path), str(e)) from e

        return sorted(candidates)

    async def _read_one(
        self,
        name: str,
        semaphore: asyncio.Semaphore
    ) -> Union[VaultFile, ScanError]:
        async with semaphore:
            try:
                async with aiofiles.open(self.vault_path / name, 'r', encoding='utf-8') as f:
                    content = await f.read()
                return to_vault_file(name, content, self.frontmatter)
            except (OSError, UnicodeDecodeError, FrontmatterParseError, ValueError) as e:
                logger.warning(f"Skipping {name}: {e}")
                return ScanError(file_path=name, message=str(e))

    async def scan(self) -> ScanResult:
        """
        Scan the vault.

        Returns:
            ScanResult with parsed files sorted by file path, plus the skip
            count and per-file errors
        """
        start_time = time.perf_counter()

        names = await asyncio.to_thread(self.list_candidates)
        semaphore = asyncio.Semaphore(self.settings.max_concurrent_reads)
        outcomes = await asyncio.gather(*(self._read_one(name, semaphore) for name in names))

        files, errors = _partition(outcomes)
        scan_time_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            f"Scanned {self.vault_path}: {len(files)} files, "
            f"{len(errors)} skipped in {scan_time_ms:.1f}ms"
        )
        return ScanResult(
            files=sorted(files, key=lambda f: f.file_path),
            skipped=len(errors),
            errors=errors,
            scan_time_ms=scan_time_ms
        )


def _partition(outcomes) -> Tuple[List[VaultFile], List[ScanError]]:
    files: List[VaultFile] = []
    errors: List[ScanError] = []
    for outcome in outcomes:
        if isinstance(outcome, ScanError):
            errors.append(outcome)
        else:
            files.append(outcome)
    return files, errors
