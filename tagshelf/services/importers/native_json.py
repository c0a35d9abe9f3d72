from __future__ import annotations

import json
import logging

from tagshelf.services.importers.base import ImportParser
from tagshelf.services.importers.text import (
    folder_tags,
    normalize_tag,
    normalize_tags,
)
from tagshelf.services.importers.types import (
    ImportData,
    ImportParseError,
    ParsedBookmark,
)

logger = logging.getLogger(__name__)


def _clean_str(value) -> str:
    return str(value).strip() if value is not None else ""


def _split_tags(value) -> list[str]:
    if isinstance(value, list):
        return [
            _clean_str(item.get("name") if isinstance(item, dict) else item)
            for item in value
        ]
    if isinstance(value, str):
        return value.replace(";", ",").split(",")
    return []


class JsonParser(ImportParser):
    """Native JSON export, a ``{"bookmarks": [...]}`` wrapper, or a bare list."""

    format = "json"

    def parse(self, content: str) -> ImportData:
        try:
            document = json.loads(content)
        except (TypeError, ValueError) as exc:
            raise ImportParseError(f"JSON parsing failed: {exc}") from exc

        if isinstance(document, list):
            rows, tag_rows = document, []
        elif isinstance(document, dict) and isinstance(document.get("bookmarks"), list):
            rows = document["bookmarks"]
            tag_rows = document.get("tags") or []
        else:
            raise ImportParseError(
                "JSON parsing failed: expected a list of bookmarks or an object "
                "with a 'bookmarks' list"
            )

        colors = self._tag_colors(tag_rows)
        bookmarks: list[ParsedBookmark] = []
        for index, row in enumerate(rows):
            bookmark = self._bookmark_from_row(row)
            if bookmark is None:
                logger.debug("Skipping JSON entry %d without a usable url", index)
                continue
            bookmarks.append(bookmark)

        logger.info("Parsed %d bookmarks from JSON", len(bookmarks))
        return self._build_import_data(bookmarks, colors)

    def _tag_colors(self, tag_rows) -> dict[str, str]:
        colors: dict[str, str] = {}
        if not isinstance(tag_rows, list):
            return colors
        for row in tag_rows:
            if not isinstance(row, dict):
                continue
            name = normalize_tag(_clean_str(row.get("name")))
            color = _clean_str(row.get("color"))
            if name and color:
                colors[name] = color
        return colors

    def _bookmark_from_row(self, row) -> ParsedBookmark | None:
        if not isinstance(row, dict):
            return None
        url = _clean_str(row.get("url"))
        if not url:
            return None

        folder_parts = [
            normalize_tag(part) for part in _clean_str(row.get("folder")).split("/")
        ]
        folder = "/".join(part for part in folder_parts if part) or None

        raw_tags = _split_tags(row.get("tags"))
        if self.folder_as_tag and folder:
            raw_tags.extend(folder_tags(folder.split("/")))

        return ParsedBookmark(
            title=_clean_str(row.get("title")) or "Untitled",
            url=url,
            description=_clean_str(row.get("description")) or None,
            tags=normalize_tags(raw_tags),
            folder=folder,
            created_at=_clean_str(row.get("created_at")) or None,
        )
