from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime

from tagshelf.extensions import db
from tagshelf.models import Bookmark, Tag


@dataclass(frozen=True)
class ExistingBookmark:
    id: int
    is_deleted: bool


@dataclass(frozen=True)
class TagRef:
    id: int
    name: str


@dataclass
class BookmarkFields:
    user_id: int
    url: str
    title: str
    description: str | None
    created_at: datetime
    updated_at: datetime


class BookmarkStore(ABC):
    """Persistence boundary used by the import pipeline.

    Implementations own every id. ``associate_bookmark_tag`` must be
    idempotent, and ``commit``/``rollback`` bound one unit of work.
    """

    @abstractmethod
    def find_bookmark_by_url(self, user_id: int, url: str) -> ExistingBookmark | None:
        """Look up a bookmark by exact url, soft-deleted rows included."""

    @abstractmethod
    def insert_bookmark(self, fields: BookmarkFields) -> int: ...

    @abstractmethod
    def revive_bookmark(self, bookmark_id: int, fields: BookmarkFields) -> None: ...

    @abstractmethod
    def clear_bookmark_tags(self, bookmark_id: int) -> None: ...

    @abstractmethod
    def find_tags_by_name(self, user_id: int, names: list[str]) -> list[TagRef]: ...

    @abstractmethod
    def find_tag_by_name(self, user_id: int, name: str) -> TagRef | None: ...

    @abstractmethod
    def insert_tag(self, user_id: int, name: str, color: str) -> int: ...

    @abstractmethod
    def associate_bookmark_tag(self, bookmark_id: int, tag_id: int) -> None: ...

    @abstractmethod
    def list_tag_names(self, user_id: int) -> set[str]: ...

    @abstractmethod
    def list_bookmark_urls(self, user_id: int) -> set[str]: ...

    @abstractmethod
    def savepoint(self) -> AbstractContextManager:
        """Nested unit of work that rolls back alone when its block raises."""

    @abstractmethod
    def commit(self) -> None: ...

    @abstractmethod
    def rollback(self) -> None: ...


class SqlAlchemyBookmarkStore(BookmarkStore):
    def find_bookmark_by_url(self, user_id: int, url: str) -> ExistingBookmark | None:
        row = Bookmark.query.filter_by(user_id=user_id, url=url).first()
        if not row:
            return None
        return ExistingBookmark(id=row.id, is_deleted=row.deleted_at is not None)

    def insert_bookmark(self, fields: BookmarkFields) -> int:
        bookmark = Bookmark(
            user_id=fields.user_id,
            url=fields.url,
            title=fields.title or None,
            description=fields.description,
            created_at=fields.created_at,
            updated_at=fields.updated_at,
        )
        db.session.add(bookmark)
        db.session.flush()
        return bookmark.id

    def revive_bookmark(self, bookmark_id: int, fields: BookmarkFields) -> None:
        bookmark = self._get_bookmark(bookmark_id)
        bookmark.deleted_at = None
        bookmark.title = fields.title or bookmark.title
        bookmark.description = fields.description
        bookmark.updated_at = fields.updated_at
        db.session.flush()

    def clear_bookmark_tags(self, bookmark_id: int) -> None:
        bookmark = self._get_bookmark(bookmark_id)
        bookmark.tags.clear()
        db.session.flush()

    def find_tags_by_name(self, user_id: int, names: list[str]) -> list[TagRef]:
        unique_names = [name for name in dict.fromkeys(names) if name]
        if not unique_names:
            return []
        rows = (
            Tag.query.filter_by(user_id=user_id)
            .filter(Tag.name.in_(unique_names), Tag.deleted_at.is_(None))
            .all()
        )
        return [TagRef(id=row.id, name=row.name) for row in rows]

    def find_tag_by_name(self, user_id: int, name: str) -> TagRef | None:
        row = (
            Tag.query.filter_by(user_id=user_id, name=name)
            .filter(Tag.deleted_at.is_(None))
            .first()
        )
        return TagRef(id=row.id, name=row.name) if row else None

    def insert_tag(self, user_id: int, name: str, color: str) -> int:
        # A soft-deleted tag still holds the (user_id, name) unique slot.
        tag = Tag.query.filter_by(user_id=user_id, name=name).first()
        if tag and tag.deleted_at is not None:
            tag.deleted_at = None
            tag.color = color
        elif not tag:
            tag = Tag(user_id=user_id, name=name, color=color)
            db.session.add(tag)
        db.session.flush()
        return tag.id

    def associate_bookmark_tag(self, bookmark_id: int, tag_id: int) -> None:
        bookmark = self._get_bookmark(bookmark_id)
        tag = db.session.get(Tag, tag_id)
        if tag is None:
            raise LookupError(f"tag {tag_id} not found")
        if tag not in bookmark.tags:
            bookmark.tags.append(tag)
            db.session.flush()

    def list_tag_names(self, user_id: int) -> set[str]:
        rows = (
            db.session.query(Tag.name)
            .filter(Tag.user_id == user_id, Tag.deleted_at.is_(None))
            .all()
        )
        return {row.name for row in rows}

    def list_bookmark_urls(self, user_id: int) -> set[str]:
        rows = (
            db.session.query(Bookmark.url)
            .filter(Bookmark.user_id == user_id, Bookmark.deleted_at.is_(None))
            .all()
        )
        return {row.url for row in rows}

    def savepoint(self) -> AbstractContextManager:
        return db.session.begin_nested()

    def commit(self) -> None:
        db.session.commit()

    def rollback(self) -> None:
        db.session.rollback()

    def _get_bookmark(self, bookmark_id: int) -> Bookmark:
        bookmark = db.session.get(Bookmark, bookmark_id)
        if bookmark is None:
            raise LookupError(f"bookmark {bookmark_id} not found")
        return bookmark
