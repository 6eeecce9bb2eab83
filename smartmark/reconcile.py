"""Optimistic bookmark list for one signed-in owner.

Three sources feed the list: local mutations (applied before the backend
answers), backend confirmations/rejections, and change notifications from
other sessions. The record id is the only de-duplication key and the first
writer for an id wins.

The lock guards each state change, never a backend call. Readers and change
events go ahead while `add()` or `delete()` waits on the backend, and the
confirmation step copes with the record having arrived (or the provisional
entry having gone) in the meantime.
"""

from __future__ import annotations

import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from .log import get_logger
from .model import DELETE, INSERT, Bookmark, ChangeEvent, Confirmed, Entry, Provisional
from .notify import ERROR, INFO, SUCCESS, Notifier
from .store import BookmarkStore, StoreError
from .url_norm import is_valid_url

log = get_logger(__name__)

TEMP_PREFIX = "temp-"

Listener = Callable[[], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _temp_id() -> str:
    return f"{TEMP_PREFIX}{uuid.uuid4().hex}"


class BookmarkList:
    def __init__(
        self,
        store: BookmarkStore,
        owner_id: str,
        *,
        notifier: Optional[Notifier] = None,
        highlight_s: float = 1.8,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.owner_id = owner_id
        self.notifier = notifier or Notifier()
        self.highlight_s = highlight_s
        self._clock = clock
        self._now = now
        self._lock = threading.RLock()
        self._entries: List[Entry] = []
        self._arrived: Dict[str, float] = {}
        self._listeners: List[Listener] = []

    # Views

    @property
    def entries(self) -> List[Entry]:
        with self._lock:
            return list(self._entries)

    @property
    def bookmarks(self) -> List[Bookmark]:
        with self._lock:
            return [e.bookmark for e in self._entries]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> Optional[Entry]:
        with self._lock:
            return self._find(key)

    def search(self, query: str) -> List[Bookmark]:
        """Case-insensitive substring match on title or url, in list order."""
        q = (query or "").lower()
        with self._lock:
            items = [e.bookmark for e in self._entries]
        if not q:
            return items
        return [b for b in items if q in (b.title or "").lower() or q in (b.url or "").lower()]

    def is_new(self, bookmark_id: str) -> bool:
        """True inside the highlight window after a bookmark arrived."""
        with self._lock:
            at = self._arrived.get(bookmark_id)
            if at is None:
                return False
            if self._clock() - at >= self.highlight_s:
                del self._arrived[bookmark_id]
                return False
            return True

    def listen(self, fn: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(fn)

        def _remove() -> None:
            with self._lock:
                if fn in self._listeners:
                    self._listeners.remove(fn)

        return _remove

    # Loading

    def load(self, records: Iterable[Bookmark]) -> None:
        """Replace the list with authoritative records (already newest first)."""
        with self._lock:
            seen = set()
            entries: List[Entry] = []
            for b in records:
                if b.id in seen:
                    continue
                seen.add(b.id)
                entries.append(Entry(state=Confirmed(b.id), bookmark=b))
            self._entries = entries
            self._arrived = {k: v for k, v in self._arrived.items() if k in seen}
            self._changed()

    def refresh(self) -> bool:
        """Full resynchronization from the store; keeps the list on failure."""
        try:
            records = self.store.list_bookmarks(self.owner_id)
        except StoreError as e:
            log.warning("Refresh failed for owner %s: %s", self.owner_id, e)
            return False
        self.load(records)
        log.debug("Refreshed %d bookmarks for owner %s", len(self), self.owner_id)
        return True

    # Local mutations

    def add(self, url: str, title: str) -> bool:
        if not url or not is_valid_url(url):
            raise ValueError(f"invalid url: {url!r}")

        with self._lock:
            temp_id = _temp_id()
            now = self._now()
            provisional = Bookmark(
                id=temp_id,
                owner_id=self.owner_id,
                url=url,
                title=title,
                created_at=now,
                updated_at=now,
            )
            self._entries.insert(0, Entry(state=Provisional(temp_id), bookmark=provisional))
            self._changed()

        try:
            record = self.store.insert_bookmark(self.owner_id, url, title)
        except StoreError as e:
            log.warning("Create failed for %s: %s", url, e)
            with self._lock:
                self._drop(temp_id)
                self._changed()
            self.notifier.show("Failed to add bookmark", ERROR, "✕")
            return False

        with self._lock:
            self._confirm(temp_id, record)
            self._mark_arrived(record.id)
            self._changed()
        self.notifier.show("Bookmark saved!", SUCCESS, "🔖")
        return True

    def delete(self, bookmark_id: str) -> None:
        with self._lock:
            entry = self._find(bookmark_id)
            if entry is None:
                log.debug("Delete of unknown bookmark %s ignored", bookmark_id)
                return
            self._drop(bookmark_id)
            self._arrived.pop(bookmark_id, None)
            self._changed()

        if entry.provisional:
            # Never reached the backend; nothing to delete there.
            return

        try:
            self.store.delete_bookmark(bookmark_id, self.owner_id)
        except StoreError as e:
            log.warning("Delete failed for %s: %s", bookmark_id, e)
            self.notifier.show("Failed to delete bookmark", ERROR, "✕")
            # Local state may no longer merge cleanly with concurrent changes.
            self.refresh()
            return

        self.notifier.show("Bookmark removed", INFO, "🗑")

    # Remote changes

    def apply(self, event: ChangeEvent) -> None:
        if event.owner_id != self.owner_id:
            return
        if event.kind == INSERT and event.record is not None:
            self.on_remote_insert(event.record)
        elif event.kind == DELETE:
            self.on_remote_delete(event.record_id)
        else:
            log.debug("Ignoring change event %s for %s", event.kind, event.record_id)

    def on_remote_insert(self, record: Bookmark) -> None:
        with self._lock:
            if self._find(record.id) is not None:
                return
            self._entries.insert(0, Entry(state=Confirmed(record.id), bookmark=record))
            self._mark_arrived(record.id)
            self._changed()

    def on_remote_delete(self, bookmark_id: str) -> None:
        with self._lock:
            if self._drop(bookmark_id):
                self._arrived.pop(bookmark_id, None)
                self._changed()

    # Internals (lock held)

    def _find(self, key: str) -> Optional[Entry]:
        for e in self._entries:
            if e.key == key:
                return e
        return None

    def _drop(self, key: str) -> bool:
        before = len(self._entries)
        self._entries = [e for e in self._entries if e.key != key]
        return len(self._entries) != before

    def _confirm(self, temp_id: str, record: Bookmark) -> None:
        if self._find(record.id) is not None:
            # The change feed delivered this record first.
            self._drop(temp_id)
            return
        for i, e in enumerate(self._entries):
            if e.key == temp_id:
                self._entries[i] = Entry(state=Confirmed(record.id), bookmark=record)
                return
        # Provisional entry vanished (e.g. a refresh ran meanwhile); the
        # confirmed record still belongs in the list.
        self._entries.insert(0, Entry(state=Confirmed(record.id), bookmark=record))

    def _mark_arrived(self, bookmark_id: str) -> None:
        self._arrived[bookmark_id] = self._clock()

    def _changed(self) -> None:
        for fn in list(self._listeners):
            try:
                fn()
            except Exception as e:
                log.warning("List listener failed: %s", e)
