import logging
from collections.abc import Callable
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore

logger = logging.getLogger(__name__)

# ---------- Frontmatter helpers ----------


def parse_frontmatter(md_text: str) -> tuple[dict[str, Any], str]:
    """Parse YAML frontmatter from markdown text.
    Uses line-by-line parsing instead of regex for reliability.
    """
    # Handle potential BOM (Byte Order Mark)
    md_text = md_text.lstrip("\ufeff")

    lines = md_text.split("\n")

    if not lines or lines[0].strip() != "---":
        return {}, md_text

    yaml_end_line = None
    for i, line in enumerate(lines[1:], start=1):
        if line.strip() == "---":
            yaml_end_line = i
            break

    if yaml_end_line is None:
        return {}, md_text

    raw = "\n".join(lines[1:yaml_end_line])
    body = "\n".join(lines[yaml_end_line + 1 :])

    # Fix tabs (common user error)
    if "\t" in raw:
        raw = raw.replace("\t", "  ")

    try:
        meta = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        return {"__yaml_error__": str(e)}, md_text

    if not isinstance(meta, dict):
        return {}, body
    return meta, body


def normalize_tags(tags: Any) -> list[str]:
    """Frontmatter ``tags`` as a list of strings, without a leading '#'."""
    if tags is None:
        return []
    if isinstance(tags, str):
        items = [t for t in tags.replace(",", " ").split() if t]
    elif isinstance(tags, list):
        items = [str(t) for t in tags if t is not None]
    else:
        items = [str(tags)]
    return [t.lstrip("#") for t in items]


def note_tags(vault_root: Path, note_path: str) -> list[str]:
    """
    Tags declared in a note's frontmatter.

    Missing notes and malformed YAML yield an empty list.
    """
    path = Path(vault_root) / note_path
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.debug(f"[tags] cannot read {path}: {e}")
        return []

    meta, _ = parse_frontmatter(text)
    if "__yaml_error__" in meta:
        logger.warning(f"[tags] bad frontmatter in {path}: {meta['__yaml_error__']}")
        return []
    return normalize_tags(meta.get("tags"))


def make_tag_lookup(vault_root: Path | None) -> Callable[[str], list[str]] | None:
    """A cached note-path -> tags lookup for the Review Selector."""
    if vault_root is None:
        return None

    @lru_cache(maxsize=None)
    def lookup(note_path: str) -> list[str]:
        return note_tags(vault_root, note_path)

    return lookup
