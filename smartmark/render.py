from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Iterable, Optional
from urllib.parse import quote

from rich.console import Group
from rich.table import Table
from rich.text import Text

from .model import Bookmark, UserProfile
from .notify import ERROR, INFO, Toast
from .url_norm import domain_of, origin_of

DEFAULT_FAVICON_SERVICE = "https://www.google.com/s2/favicons?domain={origin}&sz={size}"

_TOAST_STYLES = {ERROR: "bold red", INFO: "cyan"}


def favicon_url(url: str, *, service: str = DEFAULT_FAVICON_SERVICE, size: int = 32) -> Optional[str]:
    origin = origin_of(url)
    if origin is None:
        return None
    return service.format(origin=quote(origin, safe=":/"), size=size)


def initials(title: str) -> str:
    words = [w for w in (title or "").split(" ") if w]
    return "".join(w[0].upper() for w in words[:2])


def format_relative(ts: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    secs = (now - ts).total_seconds()
    mins = int(secs // 60)
    hours = int(secs // 3600)
    days = int(secs // 86400)
    if mins < 1:
        return "just now"
    if mins < 60:
        return f"{mins}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return f"{ts.strftime('%b')} {ts.day}"


def greeting(user: UserProfile, count: int) -> Text:
    t = Text()
    t.append("Good to see you, ")
    t.append(user.display_name, style="bold")
    t.append("\nYou have ")
    t.append(str(count), style="bold magenta")
    t.append(f" bookmark{'' if count == 1 else 's'} saved")
    return t


def bookmark_table(
    bookmarks: Iterable[Bookmark],
    *,
    is_new: Callable[[str], bool] = lambda _id: False,
    now: Optional[datetime] = None,
    show_favicons: bool = False,
    favicon_service: str = DEFAULT_FAVICON_SERVICE,
    favicon_size: int = 32,
) -> Table:
    table = Table(show_header=True, header_style="bold", expand=True, pad_edge=False)
    table.add_column("", width=3, no_wrap=True)
    table.add_column("Title", ratio=3, overflow="ellipsis")
    table.add_column("Domain", ratio=2, overflow="ellipsis", style="dim")
    table.add_column("Added", no_wrap=True, justify="right")
    table.add_column("ID", no_wrap=True, style="dim")
    if show_favicons:
        table.add_column("Icon", overflow="fold", style="dim")

    for b in bookmarks:
        domain = domain_of(b.url)
        label = b.title or domain
        title = Text(label, style=f"link {b.url}")
        row = [
            initials(label) or "🔗",
            title,
            domain,
            format_relative(b.created_at, now),
            b.id,
        ]
        if show_favicons:
            row.append(favicon_url(b.url, service=favicon_service, size=favicon_size) or "")
        table.add_row(*row, style="bold green" if is_new(b.id) else None)
    return table


def toast_text(toast: Optional[Toast]) -> Text:
    if toast is None:
        return Text("")
    return Text(f"{toast.icon} {toast.message}", style=_TOAST_STYLES.get(toast.kind, "green"))


def dashboard(
    user: UserProfile,
    bookmarks: list[Bookmark],
    *,
    total: int,
    query: str = "",
    is_new: Callable[[str], bool] = lambda _id: False,
    toast: Optional[Toast] = None,
    now: Optional[datetime] = None,
    show_favicons: bool = False,
    favicon_service: str = DEFAULT_FAVICON_SERVICE,
    favicon_size: int = 32,
) -> Group:
    parts = [greeting(user, total)]
    if query:
        parts.append(Text(f"Search: {query!r} ({len(bookmarks)} of {total})", style="dim"))
    if bookmarks:
        parts.append(
            bookmark_table(
                bookmarks,
                is_new=is_new,
                now=now,
                show_favicons=show_favicons,
                favicon_service=favicon_service,
                favicon_size=favicon_size,
            )
        )
    elif total:
        parts.append(Text("No bookmarks match your search.", style="dim"))
    else:
        parts.append(Text("No bookmarks yet. Add one with `smartmark add URL`.", style="dim"))
    parts.append(toast_text(toast))
    return Group(*parts)
