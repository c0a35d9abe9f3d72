from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from dateutil import parser as dt_parser

from tagshelf.extensions import db
from tagshelf.models import ImportJob, utcnow
from tagshelf.services.common import chunked
from tagshelf.services.importers import get_parser
from tagshelf.services.importers.types import (
    ERROR_BOOKMARK_CREATION_FAILED,
    ERROR_DUPLICATE_URL,
    DuplicateBookmarkError,
    ImportData,
    ImportErrorEntry,
    ImportOptions,
    ImportResult,
    ParsedBookmark,
    ParsedTag,
    ValidationResult,
)
from tagshelf.services.store import BookmarkFields, BookmarkStore

logger = logging.getLogger(__name__)

UNCATEGORIZED_TAG_NAME = "uncategorized"
UNCATEGORIZED_TAG_COLOR = "#9ca3af"

_DUPLICATE_ERROR_MARKERS = (
    "unique constraint failed",
    "duplicate key",
    "duplicate entry",
)


@dataclass
class _ImportRun:
    store: BookmarkStore
    user_id: int
    options: ImportOptions
    result: ImportResult
    uncategorized_tag: str
    existing_urls: set[str] = field(default_factory=set)
    uncategorized_tag_id: int | None = None
    pending_tag_ids: list[int] = field(default_factory=list)

    def commit(self) -> None:
        self.store.commit()
        self.result.created_tags.extend(self.pending_tag_ids)
        self.pending_tag_ids.clear()

    def rollback(self) -> None:
        self.store.rollback()
        if self.uncategorized_tag_id in self.pending_tag_ids:
            self.uncategorized_tag_id = None
        self.pending_tag_ids.clear()


def default_import_options(config) -> ImportOptions:
    return ImportOptions(
        skip_duplicates=bool(config.get("IMPORT_SKIP_DUPLICATES", True)),
        create_missing_tags=bool(config.get("IMPORT_CREATE_MISSING_TAGS", True)),
        preserve_timestamps=bool(config.get("IMPORT_PRESERVE_TIMESTAMPS", True)),
        batch_size=int(config.get("IMPORT_BATCH_SIZE", 50)),
        default_tag_color=config.get("IMPORT_DEFAULT_TAG_COLOR", "#3b82f6"),
        folder_as_tag=bool(config.get("IMPORT_FOLDER_AS_TAG", True)),
    )


def parse_import_content(
    fmt: str, content: str, options: ImportOptions | None = None
) -> ImportData:
    options = options or ImportOptions()
    return get_parser(fmt, folder_as_tag=options.folder_as_tag).parse(content)


def validate_import_data(fmt: str, data: ImportData) -> ValidationResult:
    return get_parser(fmt).validate(data)


def import_content(
    store: BookmarkStore,
    user_id: int,
    fmt: str,
    content: str,
    options: ImportOptions | None = None,
    uncategorized_tag: str = UNCATEGORIZED_TAG_NAME,
) -> ImportResult:
    options = options or ImportOptions()
    data = parse_import_content(fmt, content, options)
    return perform_import(store, user_id, data, options, uncategorized_tag)


def perform_import(
    store: BookmarkStore,
    user_id: int,
    data: ImportData,
    options: ImportOptions | None = None,
    uncategorized_tag: str = UNCATEGORIZED_TAG_NAME,
) -> ImportResult:
    """Persist parsed bookmarks one at a time.

    A failing item is rolled back and recorded in ``errors``; it never
    aborts the run, so ``success + failed + skipped == total`` always holds.
    """
    options = options or ImportOptions()
    run = _ImportRun(
        store=store,
        user_id=user_id,
        options=options,
        result=ImportResult(total=len(data.bookmarks)),
        uncategorized_tag=uncategorized_tag,
    )

    if options.create_missing_tags:
        _create_missing_tags(run, data.tags)

    if options.skip_duplicates:
        run.existing_urls = set(store.list_bookmark_urls(user_id))

    for start, batch in chunked(data.bookmarks, options.batch_size):
        for offset, bookmark in enumerate(batch):
            _import_bookmark(run, start + offset, bookmark)

    result = run.result
    logger.info(
        "Import for user %s finished: %d created, %d skipped, %d failed of %d",
        user_id,
        result.success,
        result.skipped,
        result.failed,
        result.total,
    )
    return result


def _create_missing_tags(run: _ImportRun, tags: list[ParsedTag]) -> None:
    existing = set(run.store.list_tag_names(run.user_id))
    for tag in tags:
        if tag.name in existing:
            continue
        try:
            tag_id = run.store.insert_tag(
                run.user_id, tag.name, tag.color or run.options.default_tag_color
            )
            run.store.commit()
        except Exception:
            run.store.rollback()
            logger.warning("Failed to create tag %r", tag.name, exc_info=True)
            continue
        existing.add(tag.name)
        run.result.created_tags.append(tag_id)


def _import_bookmark(run: _ImportRun, index: int, bookmark: ParsedBookmark) -> None:
    result = run.result
    if run.options.skip_duplicates and bookmark.url in run.existing_urls:
        result.skipped += 1
        return

    try:
        bookmark_id = _create_bookmark(run, bookmark)
        if bookmark_id is None:
            result.skipped += 1
            return
        _associate_tags(run, bookmark_id, bookmark.tags)
        run.commit()
    except Exception as exc:
        run.rollback()
        duplicate = isinstance(exc, DuplicateBookmarkError) or _is_duplicate_error(exc)
        if duplicate and run.options.skip_duplicates:
            logger.info("Duplicate URL detected via constraint: %s", bookmark.url)
            result.skipped += 1
            return
        code = ERROR_DUPLICATE_URL if duplicate else ERROR_BOOKMARK_CREATION_FAILED
        logger.warning("Failed to import bookmark %s: %s", bookmark.url, exc)
        result.failed += 1
        result.errors.append(
            ImportErrorEntry(
                index=index, item=bookmark, error=_normalize_error(exc), code=code
            )
        )
        return

    result.success += 1
    result.created_bookmarks.append(bookmark_id)
    run.existing_urls.add(bookmark.url)


def _create_bookmark(run: _ImportRun, bookmark: ParsedBookmark) -> int | None:
    store = run.store
    existing = store.find_bookmark_by_url(run.user_id, bookmark.url)

    now = utcnow()
    fields = BookmarkFields(
        user_id=run.user_id,
        url=bookmark.url,
        title=bookmark.title,
        description=bookmark.description or None,
        created_at=_created_at(bookmark, run.options, now),
        updated_at=now,
    )

    if existing is None:
        return store.insert_bookmark(fields)

    if not existing.is_deleted:
        if run.options.skip_duplicates:
            logger.debug("Skipping duplicate URL: %s", bookmark.url)
            return None
        raise DuplicateBookmarkError(bookmark.url)

    store.revive_bookmark(existing.id, fields)
    store.clear_bookmark_tags(existing.id)
    return existing.id


def _associate_tags(run: _ImportRun, bookmark_id: int, tag_names: list[str]) -> None:
    """Attach tags to a saved bookmark without ever failing it.

    Each step runs in its own savepoint, so a broken tag leaves the bookmark
    and its other tags in place.
    """
    tags = []
    if tag_names:
        try:
            with run.store.savepoint():
                tags = run.store.find_tags_by_name(run.user_id, tag_names)
        except Exception:
            logger.warning("Failed to resolve tags %r", tag_names, exc_info=True)

    attached = 0
    for tag in tags:
        try:
            with run.store.savepoint():
                run.store.associate_bookmark_tag(bookmark_id, tag.id)
        except Exception:
            logger.warning(
                "Failed to attach tag %r to bookmark %s",
                tag.name,
                bookmark_id,
                exc_info=True,
            )
            continue
        attached += 1

    if not attached:
        _associate_uncategorized(run, bookmark_id)


def _associate_uncategorized(run: _ImportRun, bookmark_id: int) -> None:
    known_id = run.uncategorized_tag_id
    try:
        with run.store.savepoint():
            run.store.associate_bookmark_tag(bookmark_id, _uncategorized_tag_id(run))
    except Exception:
        # The savepoint also discarded a tag created inside it.
        created_id = run.uncategorized_tag_id
        if created_id != known_id:
            if created_id in run.pending_tag_ids:
                run.pending_tag_ids.remove(created_id)
            run.uncategorized_tag_id = known_id
        logger.warning(
            "Failed to attach %r tag to bookmark %s",
            run.uncategorized_tag,
            bookmark_id,
            exc_info=True,
        )


def _uncategorized_tag_id(run: _ImportRun) -> int:
    if run.uncategorized_tag_id is not None:
        return run.uncategorized_tag_id

    existing = run.store.find_tag_by_name(run.user_id, run.uncategorized_tag)
    if existing:
        run.uncategorized_tag_id = existing.id
    else:
        tag_id = run.store.insert_tag(
            run.user_id, run.uncategorized_tag, UNCATEGORIZED_TAG_COLOR
        )
        run.uncategorized_tag_id = tag_id
        run.pending_tag_ids.append(tag_id)
    return run.uncategorized_tag_id


def _created_at(
    bookmark: ParsedBookmark, options: ImportOptions, now: datetime
) -> datetime:
    if not options.preserve_timestamps or not bookmark.created_at:
        return now
    try:
        value = dt_parser.isoparse(bookmark.created_at)
    except (ValueError, OverflowError):
        return now
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _is_duplicate_error(exc: Exception) -> bool:
    lowered = str(exc).lower()
    return any(marker in lowered for marker in _DUPLICATE_ERROR_MARKERS)


def _normalize_error(exc: Exception) -> str:
    message = str(exc).strip()
    if message:
        return message
    return exc.__class__.__name__


def create_import_job(user_id: int, fmt: str) -> ImportJob:
    job = ImportJob(user_id=user_id, format=fmt, status="running", progress=0)
    db.session.add(job)
    db.session.commit()
    return job


def finish_import_job(job: ImportJob, result: ImportResult) -> ImportJob:
    job.status = "done"
    job.progress = 100
    job.total_items = result.total
    job.total_created = result.success
    job.total_failed = result.failed
    job.total_skipped = result.skipped
    job.errors = [entry.as_dict() for entry in result.errors]
    job.error_message = (
        f"{result.failed} bookmarks failed to import." if result.failed else None
    )
    db.session.commit()
    return job


def fail_import_job(job: ImportJob, message: str) -> ImportJob:
    db.session.rollback()
    job.status = "failed"
    job.error_message = message
    db.session.commit()
    return job


def get_import_job_details(job: ImportJob) -> dict:
    payload = job.as_dict()
    payload["errors"] = list(job.errors or [])
    payload["processed_items"] = (
        payload["total_created"] + payload["total_failed"] + payload["total_skipped"]
    )
    return payload
