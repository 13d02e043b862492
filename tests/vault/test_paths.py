"""
Tests for vault-relative path normalization and name generation.
"""

import re
import uuid
from unittest.mock import patch

import pytest

from promptsync.vault.errors import FileAlreadyExistsError, InvalidFilePathError
from promptsync.vault.paths import (
    UNIQUE_NAME_ATTEMPTS,
    generate_unique_file_path,
    normalize_relative_path,
)


class TestNormalizeRelativePath:

    def test_appends_extension(self):
        assert normalize_relative_path("summary") == "summary.md"

    def test_keeps_existing_extension(self):
        assert normalize_relative_path("summary.md") == "summary.md"
        assert normalize_relative_path("Summary.MD") == "Summary.MD"

    def test_trims_whitespace(self):
        assert normalize_relative_path("  notes  ") == "notes.md"

    def test_custom_extension(self):
        assert normalize_relative_path("notes", ".txt") == "notes.txt"

    def test_allows_dots_inside_name(self):
        assert normalize_relative_path("v1..draft") == "v1..draft.md"
        assert normalize_relative_path("..notes.md") == "..notes.md"

    @pytest.mark.parametrize("path", ["", "   ", ".", "..", "../escape", "a/../b", "/abs", "\\abs", "sub/file", "sub\\file"])
    def test_rejects_invalid_paths(self, path):
        with pytest.raises(InvalidFilePathError):
            normalize_relative_path(path)


class TestGenerateUniqueFilePath:

    def test_generated_name_format(self, vault_dir):
        name = generate_unique_file_path(vault_dir)
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}-[0-9a-f]{6}\.md", name)
        assert not (vault_dir / name).exists()

    def test_skips_taken_names(self, vault_dir):
        taken = uuid.UUID(int=0)
        free = uuid.UUID(int=1 << 124)

        with patch("promptsync.vault.paths.uuid.uuid4", side_effect=[taken, free]):
            first = generate_unique_file_path(vault_dir)
        (vault_dir / first).write_text("x")

        with patch("promptsync.vault.paths.uuid.uuid4", side_effect=[taken, free]):
            second = generate_unique_file_path(vault_dir)

        assert second != first
        assert second.endswith("-100000.md")

    def test_gives_up_after_bounded_attempts(self, vault_dir):
        fixed = uuid.UUID(int=0)
        with patch("promptsync.vault.paths.uuid.uuid4", return_value=fixed) as mock_uuid:
            (vault_dir / generate_unique_file_path(vault_dir)).write_text("x")
            mock_uuid.reset_mock()

            with pytest.raises(FileAlreadyExistsError):
                generate_unique_file_path(vault_dir)

        assert mock_uuid.call_count == UNIQUE_NAME_ATTEMPTS
