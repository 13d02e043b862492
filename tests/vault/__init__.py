"""
Tests for vault access: frontmatter codec, paths, scanner and file operations.
"""
