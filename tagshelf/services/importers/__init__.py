from __future__ import annotations

from tagshelf.services.importers.base import ImportParser
from tagshelf.services.importers.html import HtmlParser
from tagshelf.services.importers.markdown import MarkdownParser
from tagshelf.services.importers.native_json import JsonParser
from tagshelf.services.importers.types import (
    ImportData,
    ImportOptions,
    ImportParseError,
    ImportResult,
    ParsedBookmark,
    ParsedTag,
    UnsupportedFormatError,
    ValidationResult,
)

PARSERS: dict[str, type[ImportParser]] = {
    "html": HtmlParser,
    "markdown": MarkdownParser,
    "json": JsonParser,
    "tmarks": JsonParser,
}

FORMAT_INFO = {
    "html": {
        "description": "Netscape bookmark format (exported from browsers)",
        "file_extensions": [".html", ".htm"],
    },
    "markdown": {
        "description": "Markdown link lists grouped under headings",
        "file_extensions": [".md", ".markdown"],
    },
    "json": {
        "description": "Generic JSON bookmark format",
        "file_extensions": [".json"],
    },
    "tmarks": {
        "description": "Native JSON export format",
        "file_extensions": [".json"],
    },
}

SUPPORTED_IMPORT_FORMATS = list(PARSERS)


def get_parser(fmt: str, folder_as_tag: bool = True) -> ImportParser:
    parser_cls = PARSERS.get((fmt or "").strip().lower())
    if parser_cls is None:
        raise UnsupportedFormatError(f"Unsupported import format: {fmt}")
    return parser_cls(folder_as_tag=folder_as_tag)


__all__ = [
    "FORMAT_INFO",
    "PARSERS",
    "SUPPORTED_IMPORT_FORMATS",
    "HtmlParser",
    "ImportData",
    "ImportOptions",
    "ImportParseError",
    "ImportParser",
    "ImportResult",
    "JsonParser",
    "MarkdownParser",
    "ParsedBookmark",
    "ParsedTag",
    "UnsupportedFormatError",
    "ValidationResult",
    "get_parser",
]
