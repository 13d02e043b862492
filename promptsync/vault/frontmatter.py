"""
Frontmatter codec for prompt files.

A prompt file is an optional YAML header delimited by ``---`` lines followed
by Markdown. The prompt text itself lives in a fenced block whose info string
is ``prompt``::

    ---
    tags:
    - work
    created: '2024-01-01T10:00:00'
    ---

    ```prompt
    Summarize the following text...
    ```

Parsing and rendering are inverse operations over (tags, body, created,
title, description). The content hash is computed over those parsed fields
so that cosmetic header changes never look like content changes.
"""

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml

from ..models.config import FrontmatterSettings
from ..models.records import VaultFile, normalize_tags
from .errors import FrontmatterParseError, InvalidContentError

logger = logging.getLogger(__name__)

HEADER_DELIMITER = "---"
PROMPT_FENCES = ("```", "~~~")
PROMPT_INFO_STRING = "prompt"

_TAG_SPLIT_RE = re.compile(r"[,\s]+")


@dataclass
class ParsedPrompt:
    """Structured fields extracted from a prompt file"""
    body: str
    tags: List[str] = field(default_factory=list)
    created: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    header: Dict[str, Any] = field(default_factory=dict)
    markdown: str = ""

    @property
    def content_hash(self) -> str:
        return compute_content_hash(
            self.body, self.tags, self.created, self.title, self.description
        )


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def split_frontmatter(content: str) -> Tuple[Dict[str, Any], str]:
    """
    Split raw file content into the header mapping and the Markdown remainder.

    Raises:
        FrontmatterParseError: On invalid YAML, a non-mapping header, or a
            header without a closing delimiter
    """
    content = _normalize_newlines(content)
    lines = content.split("\n")

    if not lines or lines[0].rstrip() != HEADER_DELIMITER:
        return {}, content

    for index in range(1, len(lines)):
        if lines[index].rstrip() == HEADER_DELIMITER:
            header_text = "\n".join(lines[1:index])
            markdown = "\n".join(lines[index + 1:])
            break
    else:
        raise FrontmatterParseError("unterminated frontmatter header")

    try:
        header = yaml.safe_load(header_text) if header_text.strip() else {}
    except yaml.YAMLError as e:
        raise FrontmatterParseError(f"invalid YAML header: {e}") from e

    if header is None:
        header = {}
    if not isinstance(header, dict):
        raise FrontmatterParseError(
            f"header must be a mapping, got {type(header).__name__}"
        )

    return header, markdown


def _clean_tag(tag: Any) -> Optional[str]:
    cleaned = str(tag).strip().lstrip('#').strip()
    return cleaned or None


def extract_tags(header: Dict[str, Any], key: str) -> List[str]:
    """Read a tag list from the header (YAML list or comma/space separated string)"""
    value = header.get(key)
    if value is None:
        return []

    if isinstance(value, str):
        parts: Iterable[Any] = _TAG_SPLIT_RE.split(value)
    elif isinstance(value, (list, tuple)):
        parts = [
            item for item in value
            if isinstance(item, (str, int, float)) and not isinstance(item, bool)
        ]
    else:
        return []

    tags: List[str] = []
    for part in parts:
        cleaned = _clean_tag(part)
        if cleaned and cleaned not in tags:
            tags.append(cleaned)
    return tags


def _extract_string(header: Dict[str, Any], key: str) -> Optional[str]:
    value = header.get(key)
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return None
    text = str(value)
    return text if text.strip() else None


def _find_prompt_block(lines: List[str]) -> Tuple[Optional[int], Optional[int], str]:
    """Locate the prompt fence; returns (start, end, fence) with end None if unclosed"""
    for start, line in enumerate(lines):
        trimmed = line.lstrip()
        for fence in PROMPT_FENCES:
            if trimmed.startswith(f"{fence}{PROMPT_INFO_STRING}"):
                for end in range(start + 1, len(lines)):
                    if lines[end].lstrip().startswith(fence):
                        return start, end, fence
                return start, None, fence
    return None, None, PROMPT_FENCES[0]


def extract_prompt_block(markdown: str) -> Optional[str]:
    """Return the content of the first prompt block, or None if there is none"""
    lines = _normalize_newlines(markdown).split("\n")
    start, end, _ = _find_prompt_block(lines)
    if start is None:
        return None
    stop = end if end is not None else len(lines)
    return "\n".join(lines[start + 1:stop])


def replace_prompt_block(markdown: str, body: str) -> str:
    """Swap the prompt block content in place, or append a new block"""
    lines = _normalize_newlines(markdown).split("\n")
    body_lines = body.split("\n")
    start, end, fence = _find_prompt_block(lines)

    if start is not None:
        if end is None:
            lines[start + 1:] = body_lines + [fence]
        else:
            lines[start + 1:end] = body_lines
        return "\n".join(lines)

    output = markdown.rstrip()
    if output:
        output += "\n\n"
    return f"{output}```{PROMPT_INFO_STRING}\n{body}\n```\n"


def parse_prompt_document(
    content: str,
    settings: Optional[FrontmatterSettings] = None,
    file_path: Optional[str] = None
) -> ParsedPrompt:
    """
    Parse raw file content into structured prompt fields.

    Args:
        content: Full file text
        settings: Frontmatter conventions (tags property, marker tag)
        file_path: Used for error messages only

    Returns:
        ParsedPrompt with body, tags, created, title and description

    Raises:
        FrontmatterParseError: If the header cannot be parsed
    """
    settings = settings or FrontmatterSettings()

    try:
        header, markdown = split_frontmatter(content)
    except FrontmatterParseError as e:
        raise FrontmatterParseError(e.reason, file_path) from e

    tags = extract_tags(header, settings.prompt_tags_property)
    if settings.add_prompts_tag_to_tags:
        marker = settings.prompts_tag
        if marker.lower() not in {tag.lower() for tag in tags}:
            tags.append(marker)

    body = extract_prompt_block(markdown)
    if body is None:
        body = markdown.strip()

    return ParsedPrompt(
        body=body,
        tags=tags,
        created=_extract_string(header, "created"),
        title=_extract_string(header, "title"),
        description=_extract_string(header, "description"),
        header=header,
        markdown=markdown
    )


def render_prompt_document(
    tags: Iterable[str],
    body: str,
    created: Optional[str] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    settings: Optional[FrontmatterSettings] = None,
    existing: Optional[str] = None
) -> str:
    """
    Serialize prompt fields into file content.

    When ``existing`` content is given, unrelated header keys and Markdown
    outside the prompt block are kept. An existing ``created`` value is kept
    when ``created`` is None.
    """
    settings = settings or FrontmatterSettings()
    header: Dict[str, Any] = {}
    markdown = ""

    if existing:
        try:
            header, markdown = split_frontmatter(existing)
        except FrontmatterParseError as e:
            logger.warning(f"Replacing unparseable document while rendering: {e}")
            header, markdown = {}, ""

    if created is None:
        created = _extract_string(header, "created")

    cleaned_tags: List[str] = []
    for tag in tags or []:
        cleaned = _clean_tag(tag)
        if cleaned and cleaned not in cleaned_tags:
            cleaned_tags.append(cleaned)

    header[settings.prompt_tags_property] = cleaned_tags
    if created is not None:
        header["created"] = created
    else:
        header.pop("created", None)

    for key, value in (("title", title), ("description", description)):
        if value is not None and value.strip():
            header[key] = value
        else:
            header.pop(key, None)

    header.pop("id", None)

    yaml_text = yaml.safe_dump(
        header,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False
    )
    updated_markdown = replace_prompt_block(markdown.lstrip("\n"), body)

    return f"{HEADER_DELIMITER}\n{yaml_text}{HEADER_DELIMITER}\n\n{updated_markdown}"


def compute_content_hash(
    body: str,
    tags: Iterable[str],
    created: Optional[str],
    title: Optional[str] = None,
    description: Optional[str] = None
) -> str:
    """Stable SHA-256 digest over the canonical form of the parsed fields"""
    canonical = json.dumps(
        {
            "body": body,
            "tags": normalize_tags(tags),
            "created": created,
            "title": title,
            "description": description,
        },
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":")
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def validate_prompt_text(text: str) -> None:
    """Reject prompt text that would break out of its fenced block"""
    for fence in PROMPT_FENCES:
        if fence in text:
            raise InvalidContentError(
                f"Prompt content cannot include {PROMPT_FENCES[0]} or {PROMPT_FENCES[1]}"
            )


def to_vault_file(
    file_path: str,
    content: str,
    settings: Optional[FrontmatterSettings] = None
) -> VaultFile:
    """Parse file content into a VaultFile"""
    parsed = parse_prompt_document(content, settings, file_path=file_path)
    return VaultFile(
        identity=file_path,
        file_path=file_path,
        raw_content=content,
        frontmatter_tags=parsed.tags,
        created=parsed.created,
        title=parsed.title,
        description=parsed.description,
        body=parsed.body,
        content_hash=parsed.content_hash
    )
