from __future__ import annotations

from typing import Optional

from .channel import ChangeChannel, ChangeHub, PollingChannel
from .config import Settings
from .log import get_logger
from .model import UserProfile
from .notify import Notifier
from .reconcile import BookmarkList
from .rest import RestBackend
from .store import BookmarkStore, IdentityProvider, SqliteStore, StaticIdentity, StoreError

log = get_logger(__name__)


class NotSignedIn(RuntimeError):
    """No authenticated user; callers go back to the signed-out view."""


class Session:
    """One open bookmark view: identity, store, change feed and the live list.

    Constructed explicitly and owned by whoever opened it; open() and close()
    bracket the change subscription. Events outside that window are lost and
    the initial fetch on open() covers the gap.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        store: BookmarkStore,
        channel: Optional[ChangeChannel] = None,
        *,
        settings: Optional[Settings] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.identity = identity
        self.store = store
        self.channel = channel
        self.settings = settings or Settings()
        self.notifier = notifier or Notifier(duration_s=self.settings.toast_s)
        self.user: Optional[UserProfile] = None
        self._list: Optional[BookmarkList] = None
        self._subscribed = False

    def __enter__(self) -> "Session":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def bookmarks(self) -> BookmarkList:
        if self._list is None:
            raise RuntimeError("session is not open")
        return self._list

    @property
    def is_open(self) -> bool:
        return self._list is not None

    def open(self) -> "Session":
        if self._list is not None:
            return self
        try:
            user = self.identity.current_user()
        except StoreError as e:
            raise NotSignedIn(f"could not resolve the signed-in user: {e}") from e
        if user is None:
            raise NotSignedIn("not signed in")
        self.user = user

        bl = BookmarkList(
            self.store,
            user.id,
            notifier=self.notifier,
            highlight_s=self.settings.highlight_s,
        )
        bl.load(self.store.list_bookmarks(user.id))
        self._list = bl
        log.info("Loaded %d bookmarks for %s", len(bl), user.display_name)

        if self.channel is not None:
            self.channel.subscribe(user.id, bl.apply)
            self._subscribed = True
        return self

    def close(self) -> None:
        if self.channel is not None and self._subscribed:
            self.channel.unsubscribe()
            self._subscribed = False
        self._list = None
        self.store.close()

    def sign_out(self) -> None:
        self.identity.sign_out()
        log.info("Signed out")
        self.close()


def build_session(settings: Settings, *, hub: Optional[ChangeHub] = None, live: bool = True) -> Session:
    """Wire identity, store and change feed for the configured backend.

    With a `hub`, local sessions share in-process change fan-out; otherwise
    changes are picked up by polling the store. One-shot commands pass
    `live=False` and get no change feed at all.
    """
    backend = (settings.backend or "sqlite").lower()
    if backend == "sqlite":
        store = SqliteStore(settings.db_file, hub=hub)
        metadata = {"full_name": settings.user_name} if settings.user_name else {}
        user = UserProfile(id=settings.user_id, email=settings.user_email or None, user_metadata=metadata)
        identity: IdentityProvider = StaticIdentity(user if settings.user_id else None)
        channel: Optional[ChangeChannel] = None
        if live:
            channel = hub.channel() if hub is not None else PollingChannel(store, interval_s=settings.poll_interval_s)
        return Session(identity, store, channel, settings=settings)
    if backend == "rest":
        rest = RestBackend(
            settings.api_url,
            settings.api_key,
            settings.access_token,
            timeout_s=settings.http_timeout_s,
        )
        feed = PollingChannel(rest, interval_s=settings.poll_interval_s) if live else None
        return Session(rest, rest, feed, settings=settings)
    raise ValueError(f"unknown backend: {settings.backend!r} (expected sqlite or rest)")
