from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from .log import get_logger
from .model import Bookmark, ChangeEvent

if TYPE_CHECKING:
    from .store import BookmarkStore

log = get_logger(__name__)

Handler = Callable[[ChangeEvent], None]


class ChangeChannel:
    """Change notifications for one owner.

    Events are delivered only between subscribe() and unsubscribe(); nothing
    is buffered outside that window.
    """

    def subscribe(self, owner_id: str, handler: Handler) -> None:
        raise NotImplementedError

    def unsubscribe(self) -> None:
        raise NotImplementedError


class ChangeHub:
    """In-process fan-out of change events, scoped by owner."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subs: Dict[int, tuple[str, Handler]] = {}
        self._next = 0

    def channel(self) -> "HubChannel":
        return HubChannel(self)

    def publish(self, event: ChangeEvent) -> int:
        with self._lock:
            targets = [h for owner, h in self._subs.values() if owner == event.owner_id]
        for handler in targets:
            try:
                handler(event)
            except Exception as e:
                log.warning("Change handler failed for %s %s: %s", event.kind, event.record_id, e)
        return len(targets)

    def _add(self, owner_id: str, handler: Handler) -> int:
        with self._lock:
            self._next += 1
            self._subs[self._next] = (owner_id, handler)
            return self._next

    def _remove(self, token: int) -> None:
        with self._lock:
            self._subs.pop(token, None)

    def subscriber_count(self, owner_id: Optional[str] = None) -> int:
        with self._lock:
            if owner_id is None:
                return len(self._subs)
            return sum(1 for owner, _h in self._subs.values() if owner == owner_id)


class HubChannel(ChangeChannel):
    def __init__(self, hub: ChangeHub):
        self.hub = hub
        self._token: Optional[int] = None

    def subscribe(self, owner_id: str, handler: Handler) -> None:
        if self._token is not None:
            raise RuntimeError("channel already subscribed")
        self._token = self.hub._add(owner_id, handler)
        log.debug("Subscribed to in-process changes for owner %s", owner_id)

    def unsubscribe(self) -> None:
        if self._token is None:
            return
        self.hub._remove(self._token)
        self._token = None


class PollingChannel(ChangeChannel):
    """Cross-process change feed: diffs periodic list snapshots into events."""

    def __init__(self, store: "BookmarkStore", *, interval_s: float = 2.0):
        self.store = store
        self.interval_s = max(0.1, float(interval_s))
        self._owner_id: Optional[str] = None
        self._handler: Optional[Handler] = None
        self._known: Dict[str, Bookmark] = {}
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def subscribe(self, owner_id: str, handler: Handler) -> None:
        if self._handler is not None:
            raise RuntimeError("channel already subscribed")
        self._owner_id = owner_id
        self._handler = handler
        self._known = {b.id: b for b in self.store.list_bookmarks(owner_id)}
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=f"smartmark-poll-{owner_id}", daemon=True)
        self._thread.start()
        log.debug("Polling changes for owner %s every %.1fs", owner_id, self.interval_s)

    def unsubscribe(self) -> None:
        self._stop.set()
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout=self.interval_s + 5)
        self._thread = None
        self._handler = None
        self._owner_id = None
        self._known = {}

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            try:
                self.poll_once()
            except Exception as e:
                log.warning("Change handler failed during poll: %s", e)

    def poll_once(self) -> List[ChangeEvent]:
        owner_id, handler = self._owner_id, self._handler
        if owner_id is None or handler is None:
            return []
        try:
            rows = self.store.list_bookmarks(owner_id)
        except Exception as e:
            log.warning("Change poll failed for owner %s: %s", owner_id, e)
            return []

        current = {b.id: b for b in rows}
        events: List[ChangeEvent] = []
        for rid in self._known:
            if rid not in current:
                events.append(ChangeEvent.deleted(rid, owner_id))
        # Oldest first, so head insertion leaves the newest on top.
        for b in reversed(rows):
            if b.id not in self._known:
                events.append(ChangeEvent.inserted(b))
        self._known = current

        for ev in events:
            if self._stop.is_set():
                break
            handler(ev)
        return events
