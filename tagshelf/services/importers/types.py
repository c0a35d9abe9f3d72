from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from tagshelf.services.common import to_bool

ERROR_INVALID_URL = "INVALID_URL"
ERROR_DUPLICATE_URL = "DUPLICATE_URL"
ERROR_MISSING_TITLE = "MISSING_TITLE"
ERROR_BOOKMARK_CREATION_FAILED = "BOOKMARK_CREATION_FAILED"

DEFAULT_TAG_COLOR = "#3b82f6"
DEFAULT_BATCH_SIZE = 50


class ImportParseError(Exception):
    """Raised when content cannot be read as the claimed format at all."""


class UnsupportedFormatError(ValueError):
    pass


class DuplicateBookmarkError(Exception):
    def __init__(self, url: str):
        super().__init__(f"Bookmark with URL already exists: {url}")
        self.url = url


@dataclass
class ParsedBookmark:
    title: str
    url: str
    tags: list[str] = field(default_factory=list)
    description: str | None = None
    folder: str | None = None
    created_at: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ParsedTag:
    name: str
    color: str


@dataclass
class ImportMetadata:
    source: str
    total_items: int
    parsed_at: str


@dataclass
class ImportData:
    bookmarks: list[ParsedBookmark]
    tags: list[ParsedTag]
    metadata: ImportMetadata

    def as_dict(self) -> dict[str, Any]:
        return {
            "bookmarks": [bookmark.as_dict() for bookmark in self.bookmarks],
            "tags": [asdict(tag) for tag in self.tags],
            "metadata": asdict(self.metadata),
        }


def _to_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class ImportOptions:
    skip_duplicates: bool = True
    create_missing_tags: bool = True
    preserve_timestamps: bool = True
    batch_size: int = DEFAULT_BATCH_SIZE
    default_tag_color: str = DEFAULT_TAG_COLOR
    folder_as_tag: bool = True

    def __post_init__(self) -> None:
        self.batch_size = max(1, self.batch_size)

    @classmethod
    def from_dict(
        cls, payload: dict | None, defaults: ImportOptions | None = None
    ) -> ImportOptions:
        """Build options from a loosely typed request payload.

        Missing keys fall back to ``defaults``; unknown keys are ignored.
        """
        base = defaults or cls()
        payload = payload or {}
        color = payload.get("default_tag_color")
        return cls(
            skip_duplicates=to_bool(
                payload.get("skip_duplicates"), base.skip_duplicates
            ),
            create_missing_tags=to_bool(
                payload.get("create_missing_tags"), base.create_missing_tags
            ),
            preserve_timestamps=to_bool(
                payload.get("preserve_timestamps"), base.preserve_timestamps
            ),
            batch_size=_to_int(payload.get("batch_size"), base.batch_size),
            default_tag_color=str(color).strip() if color else base.default_tag_color,
            folder_as_tag=to_bool(payload.get("folder_as_tag"), base.folder_as_tag),
        )


@dataclass
class ImportErrorEntry:
    index: int
    item: ParsedBookmark
    error: str
    code: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "item": self.item.as_dict(),
            "error": self.error,
            "code": self.code,
        }


@dataclass
class ImportResult:
    total: int
    success: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[ImportErrorEntry] = field(default_factory=list)
    created_bookmarks: list[int] = field(default_factory=list)
    created_tags: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "failed": self.failed,
            "skipped": self.skipped,
            "total": self.total,
            "errors": [entry.as_dict() for entry in self.errors],
            "created_bookmarks": list(self.created_bookmarks),
            "created_tags": list(self.created_tags),
        }


@dataclass
class ValidationIssue:
    field: str
    message: str
    value: Any = None
    code: str | None = None

    def as_dict(self) -> dict[str, Any]:
        payload = {"field": self.field, "message": self.message}
        if self.code:
            payload["code"] = self.code
        if self.value is not None:
            payload["value"] = self.value
        return payload


@dataclass
class ValidationResult:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def as_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [issue.as_dict() for issue in self.errors],
            "warnings": [issue.as_dict() for issue in self.warnings],
        }
