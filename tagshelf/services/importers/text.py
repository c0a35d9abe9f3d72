from __future__ import annotations

import re
from datetime import datetime, timezone
from urllib.parse import urlsplit

from tagshelf.services.importers.types import ParsedBookmark, ParsedTag

TAG_PALETTE = (
    "#3b82f6",
    "#ef4444",
    "#10b981",
    "#f59e0b",
    "#8b5cf6",
    "#06b6d4",
    "#84cc16",
    "#f97316",
    "#ec4899",
    "#6366f1",
    "#14b8a6",
    "#eab308",
)

MAX_TAG_LENGTH = 50

PLACEHOLDER_FOLDERS = {"未分类", "uncategorized", "bookmarks"}

# Applied in this order so "&amp;lt;" decodes one level only.
_ENTITY_TABLE = (
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
)

_TAG_STRIP_RE = re.compile(r"[^\w\u4e00-\u9fff\s-]")
_WHITESPACE_RE = re.compile(r"\s+")
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*$")
_HIERARCHICAL_SCHEMES = {"http", "https", "ftp", "ftps", "ws", "wss"}


def normalize_text(content: str) -> str:
    if not isinstance(content, str):
        raise TypeError(f"expected text content, got {type(content).__name__}")
    if content.startswith("\ufeff"):
        content = content[1:]
    return content.replace("\r\n", "\n").replace("\r", "\n")


def decode_entities(text: str) -> str:
    for entity, char in _ENTITY_TABLE:
        text = text.replace(entity, char)
    return text


def normalize_tag(tag: str) -> str:
    value = _TAG_STRIP_RE.sub("", tag.strip().lower()).strip()
    value = _WHITESPACE_RE.sub("-", value)
    return value[:MAX_TAG_LENGTH]


def normalize_tags(raw_tags) -> list[str]:
    """Normalize and dedupe tags, keeping first-seen order and dropping empties."""
    seen: dict[str, None] = {}
    for raw in raw_tags:
        name = normalize_tag(raw or "")
        if name:
            seen.setdefault(name, None)
    return list(seen)


def is_placeholder_folder(name: str) -> bool:
    return name.strip().lower() in PLACEHOLDER_FOLDERS


def folder_tags(segments: list[str]) -> list[str]:
    return [segment for segment in segments if not is_placeholder_folder(segment)]


def tag_color(name: str) -> str:
    """Pick a palette color from a 32-bit rolling hash of the tag name.

    Pure function of the name, so a tag keeps its color across imports
    without any stored color table.
    """
    value = 0
    for char in name:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return TAG_PALETTE[abs(value) % len(TAG_PALETTE)]


def collect_tags(
    bookmarks: list[ParsedBookmark], colors: dict[str, str] | None = None
) -> list[ParsedTag]:
    colors = colors or {}
    names: dict[str, None] = {}
    for bookmark in bookmarks:
        for name in bookmark.tags:
            names.setdefault(name, None)
    return [
        ParsedTag(name=name, color=colors.get(name) or tag_color(name))
        for name in names
    ]


def is_valid_url(url: str | None) -> bool:
    if not url or not url.strip():
        return False
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return False
    if not parts.scheme or not _SCHEME_RE.match(parts.scheme):
        return False
    if parts.scheme.lower() in _HIERARCHICAL_SCHEMES:
        return bool(parts.hostname)
    return bool(parts.netloc or parts.path)


def utc_isoformat(value: datetime | None = None) -> str:
    return (value or datetime.now(timezone.utc)).isoformat()
