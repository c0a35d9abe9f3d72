from __future__ import annotations

from abc import ABC, abstractmethod

from tagshelf.services.importers.text import collect_tags, is_valid_url, utc_isoformat
from tagshelf.services.importers.types import (
    ERROR_INVALID_URL,
    ERROR_MISSING_TITLE,
    ImportData,
    ImportMetadata,
    ParsedBookmark,
    ValidationIssue,
    ValidationResult,
)

MAX_TITLE_LENGTH = 200
MAX_TAGS_PER_BOOKMARK = 20


class ImportParser(ABC):
    format: str = "unknown"
    warn_on_limits: bool = True

    def __init__(self, folder_as_tag: bool = True):
        self.folder_as_tag = folder_as_tag

    @abstractmethod
    def parse(self, content: str) -> ImportData:
        """Turn raw text into flat bookmarks plus their distinct tags."""
        raise NotImplementedError

    def validate(self, data: ImportData) -> ValidationResult:
        result = ValidationResult()
        for index, bookmark in enumerate(data.bookmarks):
            prefix = f"bookmarks[{index}]"
            if not (bookmark.title or "").strip():
                result.errors.append(
                    ValidationIssue(
                        f"{prefix}.title",
                        "Title is required",
                        bookmark.title,
                        ERROR_MISSING_TITLE,
                    )
                )

            if not (bookmark.url or "").strip():
                result.errors.append(
                    ValidationIssue(
                        f"{prefix}.url",
                        "URL is required",
                        bookmark.url,
                        ERROR_INVALID_URL,
                    )
                )
            elif not is_valid_url(bookmark.url):
                result.errors.append(
                    ValidationIssue(
                        f"{prefix}.url",
                        "Invalid URL format",
                        bookmark.url,
                        ERROR_INVALID_URL,
                    )
                )

            if not self.warn_on_limits:
                continue
            if bookmark.title and len(bookmark.title) > MAX_TITLE_LENGTH:
                result.warnings.append(
                    ValidationIssue(
                        f"{prefix}.title",
                        "Title is very long, may be truncated",
                        len(bookmark.title),
                    )
                )
            if len(bookmark.tags) > MAX_TAGS_PER_BOOKMARK:
                result.warnings.append(
                    ValidationIssue(
                        f"{prefix}.tags",
                        "Too many tags, some may be ignored",
                        len(bookmark.tags),
                    )
                )
        return result

    def _build_import_data(
        self,
        bookmarks: list[ParsedBookmark],
        colors: dict[str, str] | None = None,
    ) -> ImportData:
        return ImportData(
            bookmarks=bookmarks,
            tags=collect_tags(bookmarks, colors),
            metadata=ImportMetadata(
                source=self.format,
                total_items=len(bookmarks),
                parsed_at=utc_isoformat(),
            ),
        )
