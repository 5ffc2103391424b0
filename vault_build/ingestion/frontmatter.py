"""
Frontmatter Parsing

Splits a leading `---` YAML block from a markdown body and parses it with
PyYAML's safe loader.
"""

from __future__ import annotations

import datetime as dt
from typing import Any

import yaml

from vault_build.errors import IngestError

_DELIMITER = "---"


def split_frontmatter(text: str) -> tuple[str | None, str]:
    """
    Separate the frontmatter block from the body.

    Returns:
        (yaml_block, body). yaml_block is None when the document has no
        frontmatter. An opening delimiter without a closing one is treated as
        a plain body.
    """
    if not text.startswith(_DELIMITER):
        return None, text

    lines = text.split("\n")
    if lines[0].strip() != _DELIMITER:
        return None, text

    for idx in range(1, len(lines)):
        if lines[idx].strip() in (_DELIMITER, "..."):
            block = "\n".join(lines[1:idx])
            body = "\n".join(lines[idx + 1 :])
            return block, body.lstrip("\n")

    return None, text


def parse_frontmatter(text: str, path: str) -> tuple[dict[str, Any], str]:
    """
    Parse frontmatter into an ordered mapping.

    Args:
        text: Full document text
        path: Vault-relative path, used in error messages

    Returns:
        (frontmatter, body)

    Raises:
        IngestError: If the YAML is malformed or is not a mapping
    """
    block, body = split_frontmatter(text)
    if block is None or not block.strip():
        return {}, body

    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as e:
        raise IngestError(path, f"malformed frontmatter: {e}") from e

    if data is None:
        return {}, body
    if not isinstance(data, dict):
        raise IngestError(
            path, f"frontmatter must be a mapping, got {type(data).__name__}"
        )

    return {str(k): _jsonable(v) for k, v in data.items()}, body


def _jsonable(value: Any) -> Any:
    """Convert YAML scalars (dates, sets) into JSON-serializable values."""
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, set):
        return sorted(_jsonable(v) for v in value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def frontmatter_tags(frontmatter: dict[str, Any]) -> list[str]:
    """Tags from `tags` (list or comma/space separated string)."""
    raw = frontmatter.get("tags")
    if raw is None:
        return []
    if isinstance(raw, str):
        items = raw.replace(",", " ").split()
    elif isinstance(raw, list):
        items = [str(t) for t in raw if t is not None]
    else:
        items = [str(raw)]
    return [t.strip().lstrip("#") for t in items if t.strip().lstrip("#")]


def is_published(frontmatter: dict[str, Any]) -> bool:
    """A document is unpublished when `published: false` or `draft: true`."""
    if frontmatter.get("published") is False:
        return False
    if frontmatter.get("draft") is True:
        return False
    return True
