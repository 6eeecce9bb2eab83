from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from .channel import ChangeHub
from .log import get_logger
from .model import Bookmark, ChangeEvent, UserProfile

log = get_logger(__name__)


class StoreError(RuntimeError):
    """A backend request failed (network, auth, constraint, ...)."""


class BookmarkStore:
    """Durable bookmark storage scoped by owner."""

    def list_bookmarks(self, owner_id: str) -> List[Bookmark]:
        """All of the owner's bookmarks, newest first."""
        raise NotImplementedError

    def insert_bookmark(self, owner_id: str, url: str, title: str) -> Bookmark:
        raise NotImplementedError

    def delete_bookmark(self, bookmark_id: str, owner_id: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class IdentityProvider:
    def current_user(self) -> Optional[UserProfile]:
        raise NotImplementedError

    def sign_out(self) -> None:
        raise NotImplementedError


class StaticIdentity(IdentityProvider):
    """Identity fixed by configuration (local mode)."""

    def __init__(self, user: Optional[UserProfile]):
        self._user = user

    def current_user(self) -> Optional[UserProfile]:
        return self._user

    def sign_out(self) -> None:
        self._user = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class SqliteStore(BookmarkStore):
    """Bookmarks in a local SQLite file.

    Writes are published to `hub` (when given) so other sessions in the same
    process see them live; sessions in other processes pick them up through a
    PollingChannel.
    """

    def __init__(
        self,
        db_path: Path | str,
        *,
        hub: Optional[ChangeHub] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.db_path = Path(db_path)
        self.hub = hub
        self._clock = clock
        self.init_schema()

    def init_schema(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS bookmarks (
                        id TEXT PRIMARY KEY,
                        owner_id TEXT NOT NULL,
                        url TEXT NOT NULL,
                        title TEXT NOT NULL DEFAULT '',
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_bookmarks_owner_created ON bookmarks(owner_id, created_at)"
                )
        except sqlite3.Error as e:
            raise StoreError(f"cannot open bookmark database {self.db_path}: {e}") from e

    def list_bookmarks(self, owner_id: str) -> List[Bookmark]:
        query = (
            "SELECT id, owner_id, url, title, created_at, updated_at FROM bookmarks "
            "WHERE owner_id = ? ORDER BY created_at DESC, rowid DESC"
        )
        try:
            with sqlite3.connect(self.db_path) as conn:
                rows = conn.execute(query, (owner_id,)).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"list failed: {e}") from e
        return [_row_to_bookmark(r) for r in rows]

    def insert_bookmark(self, owner_id: str, url: str, title: str) -> Bookmark:
        # Stored as UTC ISO text so ORDER BY created_at sorts chronologically.
        now = self._clock().astimezone(timezone.utc)
        b = Bookmark(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            url=url,
            title=title,
            created_at=now,
            updated_at=now,
        )
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO bookmarks (id, owner_id, url, title, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (b.id, b.owner_id, b.url, b.title, b.created_at.isoformat(), b.updated_at.isoformat()),
                )
        except sqlite3.Error as e:
            raise StoreError(f"insert failed: {e}") from e
        log.debug("Inserted bookmark %s for owner %s", b.id, owner_id)
        if self.hub is not None:
            self.hub.publish(ChangeEvent.inserted(b))
        return b

    def delete_bookmark(self, bookmark_id: str, owner_id: str) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                cur = conn.execute(
                    "DELETE FROM bookmarks WHERE id = ? AND owner_id = ?",
                    (bookmark_id, owner_id),
                )
                deleted = cur.rowcount
        except sqlite3.Error as e:
            raise StoreError(f"delete failed: {e}") from e
        log.debug("Deleted %d row(s) for bookmark %s", deleted, bookmark_id)
        if deleted and self.hub is not None:
            self.hub.publish(ChangeEvent.deleted(bookmark_id, owner_id))


def _row_to_bookmark(row) -> Bookmark:
    return Bookmark(
        id=row[0],
        owner_id=row[1],
        url=row[2],
        title=row[3] or "",
        created_at=_parse_ts(row[4]),
        updated_at=_parse_ts(row[5]),
    )
