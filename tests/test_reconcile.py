import threading

import pytest

from conftest import FakeClock, FakeStore, bm
from smartmark.model import ChangeEvent, Confirmed, Provisional
from smartmark.notify import ERROR, INFO, SUCCESS, Notifier
from smartmark.reconcile import TEMP_PREFIX, BookmarkList


def _list(store, *, clock=None, rows=None):
    clock = clock or FakeClock()
    bl = BookmarkList(store, "u1", notifier=Notifier(clock=clock), highlight_s=1.8, clock=clock)
    if rows is not None:
        bl.load(rows)
    return bl


def _ids(bl):
    return [b.id for b in bl.bookmarks]


def test_add_success_swaps_temp_id_for_server_id():
    store = FakeStore()
    bl = _list(store, rows=[bm("A", t=2)])
    snapshots = []
    bl.listen(lambda: snapshots.append([e.state for e in bl.entries]))

    assert bl.add("https://github.com/", "GitHub") is True

    ids = _ids(bl)
    assert ids == ["srv-101", "A"]
    assert not any(i.startswith(TEMP_PREFIX) for i in ids)
    assert isinstance(bl.entries[0].state, Confirmed)
    # The provisional record was visible before the backend answered.
    assert isinstance(snapshots[0][0], Provisional)
    assert bl.notifier.current().kind == SUCCESS
    assert bl.notifier.current().message == "Bookmark saved!"


def test_add_failure_restores_previous_list_and_notifies():
    store = FakeStore()
    store.fail_insert = True
    bl = _list(store, rows=[bm("A", t=2), bm("B", t=1)])
    before = list(bl.bookmarks)

    assert bl.add("https://example.com/", "Example") is False

    assert bl.bookmarks == before
    toast = bl.notifier.current()
    assert toast is not None and toast.kind == ERROR
    assert toast.message == "Failed to add bookmark"


def test_add_rejects_invalid_url_without_calling_backend():
    store = FakeStore()
    bl = _list(store, rows=[])
    with pytest.raises(ValueError):
        bl.add("localhost", "x")
    with pytest.raises(ValueError):
        bl.add("", "x")
    assert not [c for c in store.calls if c[0] == "insert"]
    assert len(bl) == 0


def test_change_echo_before_confirmation_does_not_duplicate():
    store = FakeStore()
    bl = _list(store, rows=[bm("A", t=2)])
    # The change feed delivers the new row while the create request is still in flight.
    store.on_insert = lambda rec: bl.apply(ChangeEvent.inserted(rec))

    assert bl.add("https://example.com/", "Example") is True

    assert _ids(bl) == ["srv-101", "A"]
    assert [e.provisional for e in bl.entries] == [False, False]


def test_remote_insert_for_confirmed_id_is_ignored():
    store = FakeStore()
    bl = _list(store, rows=[bm("A", t=2)])
    bl.add("https://example.com/", "Example")
    confirmed = bl.bookmarks[0]

    bl.on_remote_insert(confirmed)

    assert _ids(bl).count(confirmed.id) == 1
    assert len(bl) == 2


def test_remote_insert_goes_to_head_and_is_highlighted_for_a_while():
    clock = FakeClock()
    bl = _list(FakeStore(), clock=clock, rows=[bm("A", t=2)])

    bl.on_remote_insert(bm("C", t=3))

    assert _ids(bl) == ["C", "A"]
    assert bl.is_new("C") is True
    assert bl.is_new("A") is False
    clock.advance(1.79)
    assert bl.is_new("C") is True
    clock.advance(0.02)
    assert bl.is_new("C") is False


def test_remote_delete_removes_present_and_ignores_unknown():
    bl = _list(FakeStore(), rows=[bm("A", t=2), bm("B", t=1)])
    seen = []
    bl.listen(lambda: seen.append(1))

    bl.on_remote_delete("missing")
    assert _ids(bl) == ["A", "B"]
    assert seen == []

    bl.on_remote_delete("A")
    assert _ids(bl) == ["B"]
    assert seen == [1]


def test_delete_of_unknown_id_is_a_noop():
    store = FakeStore([bm("A", t=2)])
    bl = _list(store, rows=[bm("A", t=2)])

    bl.delete("nope")
    bl.delete("nope")

    assert _ids(bl) == ["A"]
    assert not [c for c in store.calls if c[0] == "delete"]
    assert bl.notifier.current() is None


def test_delete_success_is_scoped_to_owner_and_notifies():
    store = FakeStore([bm("A", t=2), bm("B", t=1)])
    bl = _list(store, rows=store.list_bookmarks("u1"))

    bl.delete("B")

    assert _ids(bl) == ["A"]
    assert ("delete", "B", "u1") in store.calls
    toast = bl.notifier.current()
    assert toast.kind == INFO and toast.message == "Bookmark removed"


def test_delete_failure_notifies_and_refetches_authoritative_list():
    a, b = bm("A", t=2), bm("B", t=1)
    store = FakeStore([a, b])
    bl = _list(store, rows=[a, b])
    store.fail_delete = True
    # Something else changed meanwhile; the refresh must pick it up.
    store.rows.append(bm("Z", t=5))

    bl.delete("B")

    assert _ids(bl) == ["Z", "A", "B"]
    assert bl.notifier.current().message == "Failed to delete bookmark"
    assert store.calls[-1] == ("list", "u1")


def test_delete_failure_keeps_local_state_when_refresh_also_fails():
    store = FakeStore([bm("A", t=2), bm("B", t=1)])
    bl = _list(store, rows=store.list_bookmarks("u1"))
    store.fail_delete = True
    store.fail_list = True

    bl.delete("B")

    assert _ids(bl) == ["A"]
    assert bl.notifier.current().kind == ERROR


def test_search_is_case_insensitive_and_pure():
    bl = _list(FakeStore(), rows=[
        bm("1", t=2, title="GitHub", url="https://github.com/"),
        bm("2", t=1, title="Example", url="https://example.com/"),
    ])

    got = bl.search("git")

    assert [b.title for b in got] == ["GitHub"]
    assert [b.title for b in bl.search("EXAMPLE.COM")] == ["Example"]
    assert [b.title for b in bl.search("")] == ["GitHub", "Example"]
    assert len(bl) == 2
    assert bl.search("git") == got


def test_end_to_end_ordering():
    bl = _list(FakeStore(), rows=[bm("A", t=2), bm("B", t=1)])
    assert _ids(bl) == ["A", "B"]

    bl.apply(ChangeEvent.inserted(bm("C", t=3)))
    assert _ids(bl) == ["C", "A", "B"]

    bl.apply(ChangeEvent.deleted("B", "u1"))
    assert _ids(bl) == ["C", "A"]


def test_events_for_other_owners_are_ignored():
    bl = _list(FakeStore(), rows=[bm("A", t=2)])
    bl.apply(ChangeEvent.inserted(bm("X", t=9, owner="u2")))
    bl.apply(ChangeEvent.deleted("A", "u2"))
    assert _ids(bl) == ["A"]


def test_load_drops_duplicate_ids():
    bl = _list(FakeStore(), rows=[bm("A", t=2), bm("A", t=2), bm("B", t=1)])
    assert _ids(bl) == ["A", "B"]


def test_listener_can_be_removed():
    bl = _list(FakeStore(), rows=[])
    calls = []
    remove = bl.listen(lambda: calls.append(1))
    bl.on_remote_insert(bm("A"))
    remove()
    bl.on_remote_insert(bm("B"))
    assert calls == [1]


def test_list_stays_readable_while_create_is_in_flight():
    store = FakeStore()
    bl = _list(store, rows=[bm("A", t=2)])
    started, release = threading.Event(), threading.Event()

    def slow_insert(rec):
        started.set()
        release.wait(5)

    store.on_insert = slow_insert
    worker = threading.Thread(target=bl.add, args=("https://example.com/", "Example"))
    worker.start()
    try:
        assert started.wait(5)
        # Neither reads nor feed events wait for the backend.
        seen = bl.search("")
        bl.apply(ChangeEvent.inserted(bm("R", t=9)))
        assert [b.id.startswith(TEMP_PREFIX) for b in seen] == [True, False]
        assert _ids(bl)[0] == "R"
    finally:
        release.set()
        worker.join(5)

    assert _ids(bl) == ["R", "srv-101", "A"]
    assert not any(e.provisional for e in bl.entries)


def test_local_delete_clears_the_highlight():
    clock = FakeClock()
    bl = _list(FakeStore([bm("A", t=2)]), clock=clock, rows=[])
    bl.on_remote_insert(bm("A", t=2))
    assert bl.is_new("A")

    bl.delete("A")

    assert bl.is_new("A") is False
