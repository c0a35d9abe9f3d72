from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from bs4 import BeautifulSoup, Tag

from tagshelf.services.importers.base import ImportParser
from tagshelf.services.importers.text import (
    decode_entities,
    folder_tags,
    normalize_tag,
    normalize_tags,
    normalize_text,
)
from tagshelf.services.importers.types import (
    ImportData,
    ImportParseError,
    ParsedBookmark,
)

logger = logging.getLogger(__name__)

SEPARATOR_HOSTS = ("separator.mayastudios.com",)
_SEPARATOR_TITLE_RE = re.compile(r"^[─\-—=_]{3,}$")
_PSEUDO_URL_PREFIXES = ("javascript:", "data:")
_BLANK_URLS = {"about:blank", "about:"}
_FOLDER_HEADINGS = ["h3", "h2", "h1"]


def is_separator_link(url: str, title: str) -> bool:
    lowered = url.strip().lower()
    if any(host in lowered for host in SEPARATOR_HOSTS):
        return True
    if _SEPARATOR_TITLE_RE.match(title.strip()):
        return True
    if lowered.startswith(_PSEUDO_URL_PREFIXES):
        return True
    return lowered in _BLANK_URLS


def parse_add_date(value: str | None) -> str | None:
    if not value:
        return None
    try:
        stamp = int(value.strip())
        return datetime.fromtimestamp(stamp, tz=timezone.utc).isoformat()
    except (ValueError, OverflowError, OSError):
        return None


def _attr(tag: Tag, name: str) -> str:
    value = tag.get(name)
    return value.strip() if isinstance(value, str) else ""


def _owning_dt(node: Tag) -> Tag | None:
    owner = node.find_parent(["dt", "dd"])
    if isinstance(owner, Tag) and (owner.name or "").lower() == "dt":
        return owner
    return None


def _find_anchor_in_dt(dt: Tag) -> Tag | None:
    for anchor in dt.find_all("a"):
        if isinstance(anchor, Tag) and _owning_dt(anchor) is dt:
            return anchor
    return None


def _folder_name(dl: Tag) -> str | None:
    """Name of the folder a ``<DL>`` lists, taken from the heading before it.

    Unclosed ``<DT>`` tags make lxml nest entries in odd places, but a
    folder's list always follows its ``<H3>`` in document order with no
    anchor or other list start in between.
    """
    previous = dl.find_previous(_FOLDER_HEADINGS + ["a", "dl"])
    if not isinstance(previous, Tag) or previous.name not in _FOLDER_HEADINGS:
        return None
    if previous.find_parent("dt") is None:
        return None
    return decode_entities(previous.get_text(strip=True)) or None


def _find_description(dt: Tag) -> str | None:
    dd = None
    for candidate in dt.find_all("dd"):
        if isinstance(candidate, Tag) and candidate.find_parent("dt") is dt:
            dd = candidate
            break

    if dd is None:
        sibling = dt.next_sibling
        while sibling is not None:
            if isinstance(sibling, Tag):
                if (sibling.name or "").lower() == "dd":
                    dd = sibling
                break
            sibling = sibling.next_sibling

    if dd is None:
        return None
    text = "".join(dd.find_all(string=True, recursive=False)).strip()
    if not text:
        return None
    return decode_entities(text.split("\n", 1)[0].strip()) or None


class HtmlParser(ImportParser):
    """Netscape bookmark file parser.

    Browsers export nested ``<DL>``/``<DT>`` lists that are rarely valid
    HTML. Every ``<DT>`` anchor in the document is a candidate, wherever
    lxml put it, and its folder path comes from the ``<DL>`` lists that
    enclose it. Junk entries are dropped one at a time; only input that is
    not text at all is fatal.
    """

    format = "html"

    def parse(self, content: str) -> ImportData:
        try:
            bookmarks = self.parse_bookmarks(normalize_text(content))
        except Exception as exc:
            raise ImportParseError(f"HTML parsing failed: {exc}") from exc
        logger.info("Parsed %d bookmarks from HTML export", len(bookmarks))
        return self._build_import_data(bookmarks)

    def parse_bookmarks(self, html: str) -> list[ParsedBookmark]:
        soup = BeautifulSoup(html, "lxml")
        folder_names: dict[int, str | None] = {}
        bookmarks: list[ParsedBookmark] = []

        for dt in soup.find_all("dt"):
            if not isinstance(dt, Tag):
                continue
            anchor = _find_anchor_in_dt(dt)
            if anchor is None:
                continue
            try:
                folder_path = self._folder_path(dt, folder_names)
                bookmark = self._bookmark_from_anchor(dt, anchor, folder_path)
            except Exception:
                logger.debug("Skipping malformed bookmark entry", exc_info=True)
                continue
            if bookmark is not None:
                bookmarks.append(bookmark)
        return bookmarks

    def _folder_path(self, dt: Tag, cache: dict[int, str | None]) -> list[str]:
        path: list[str] = []
        for dl in reversed(dt.find_parents("dl")):
            key = id(dl)
            if key not in cache:
                cache[key] = _folder_name(dl)
            if cache[key]:
                path.append(cache[key])
        return path

    def _bookmark_from_anchor(
        self, dt: Tag, anchor: Tag, folder_path: list[str]
    ) -> ParsedBookmark | None:
        href = decode_entities(_attr(anchor, "href"))
        raw_title = anchor.get_text(strip=True)
        if not href:
            return None
        if is_separator_link(href, raw_title):
            logger.debug("Skipping separator or pseudo link %r", href)
            return None

        segments = [normalize_tag(part) for part in folder_path]
        segments = [segment for segment in segments if segment]
        raw_tags = [part for part in _attr(anchor, "tags").split(",") if part.strip()]
        if self.folder_as_tag:
            raw_tags.extend(folder_tags(segments))

        return ParsedBookmark(
            title=decode_entities(raw_title) or "Untitled",
            url=href,
            description=_find_description(dt),
            tags=normalize_tags(raw_tags),
            folder="/".join(segments) or None,
            created_at=parse_add_date(_attr(anchor, "add_date")),
        )
