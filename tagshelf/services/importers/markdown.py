from __future__ import annotations

import logging
import re

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

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
_LINK_RE = re.compile(r"^[-*]\s+\[([^\]]+)\]\(([^)]+)\)")


class MarkdownParser(ImportParser):
    """Parse ``- [title](url)`` bullet lists grouped under headings.

    A heading at level N replaces the folder segment at depth N and drops
    everything deeper, so the heading stack is the bookmark's folder path.
    """

    format = "markdown"
    warn_on_limits = False

    def parse(self, content: str) -> ImportData:
        if not isinstance(content, str):
            raise ImportParseError(
                f"Markdown parsing failed: expected text, got {type(content).__name__}"
            )
        try:
            bookmarks = self.parse_bookmarks(content)
        except Exception as exc:
            raise ImportParseError(f"Markdown parsing failed: {exc}") from exc
        logger.info("Parsed %d bookmarks from Markdown", len(bookmarks))
        return self._build_import_data(bookmarks)

    def parse_bookmarks(self, content: str) -> list[ParsedBookmark]:
        bookmarks: list[ParsedBookmark] = []
        headings: list[str | None] = []

        for line in content.splitlines():
            stripped = line.strip()

            heading = _HEADING_RE.match(stripped)
            if heading:
                level = len(heading.group(1))
                headings = headings[: level - 1]
                headings.extend([None] * (level - 1 - len(headings)))
                headings.append(heading.group(2).strip())
                continue

            link = _LINK_RE.match(stripped)
            if not link:
                continue

            title = link.group(1).strip()
            url = link.group(2).strip()
            if url.startswith("#"):
                logger.debug("Skipping anchor link %r", url)
                continue

            segments = [normalize_tag(name) for name in headings if name]
            segments = [segment for segment in segments if segment]
            bookmarks.append(
                ParsedBookmark(
                    title=title,
                    url=url,
                    tags=normalize_tags(folder_tags(segments))
                    if self.folder_as_tag
                    else [],
                    folder="/".join(segments) or None,
                )
            )
        return bookmarks
