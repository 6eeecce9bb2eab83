import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Allow `import smartmark` without installing the package.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from smartmark.model import Bookmark  # noqa: E402
from smartmark.store import BookmarkStore, StoreError  # noqa: E402

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Tests must never pick up a developer's SMARTMARK_* settings."""
    for name in list(os.environ):
        if name.startswith("SMARTMARK_"):
            monkeypatch.delenv(name, raising=False)


def bm(bid: str, *, t: int = 0, title: str = "", url: str = "", owner: str = "u1") -> Bookmark:
    ts = T0 + timedelta(seconds=t)
    return Bookmark(
        id=bid,
        owner_id=owner,
        url=url or f"https://{bid.lower()}.example.com/",
        title=title or bid,
        created_at=ts,
        updated_at=ts,
    )


class FakeStore(BookmarkStore):
    """In-memory store with switchable failures and an optional insert hook."""

    def __init__(self, rows=None):
        self.rows = list(rows or [])
        self.fail_insert = False
        self.fail_delete = False
        self.fail_list = False
        self.next_id = 100
        self.next_t = 1000
        self.on_insert = None
        self.calls = []

    def list_bookmarks(self, owner_id):
        self.calls.append(("list", owner_id))
        if self.fail_list:
            raise StoreError("list failed: boom")
        rows = [b for b in self.rows if b.owner_id == owner_id]
        return sorted(rows, key=lambda b: b.created_at, reverse=True)

    def insert_bookmark(self, owner_id, url, title):
        self.calls.append(("insert", owner_id, url, title))
        if self.fail_insert:
            raise StoreError("insert failed: HTTP 500")
        self.next_id += 1
        self.next_t += 1
        rec = bm(f"srv-{self.next_id}", t=self.next_t, title=title, url=url, owner=owner_id)
        self.rows.append(rec)
        if self.on_insert is not None:
            self.on_insert(rec)
        return rec

    def delete_bookmark(self, bookmark_id, owner_id):
        self.calls.append(("delete", bookmark_id, owner_id))
        if self.fail_delete:
            raise StoreError("delete failed: HTTP 503")
        self.rows = [b for b in self.rows if not (b.id == bookmark_id and b.owner_id == owner_id)]


class FakeClock:
    def __init__(self, t: float = 0.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def clock():
    return FakeClock()
