from __future__ import annotations

import argparse
import json
import time
from typing import List

from rich.console import Console
from rich.live import Live

from . import __version__
from .config import Settings, load_settings
from .form import prepare_submission, suggest_title
from .log import LogConfig, get_logger, setup_logging
from .notify import ERROR
from .render import bookmark_table, dashboard, greeting
from .session import NotSignedIn, Session, build_session
from .store import StoreError

log = get_logger(__name__)


def main(argv: List[str] | None = None) -> int:
    p = argparse.ArgumentParser(
        prog="smartmark",
        description="Personal bookmark manager with live updates across open sessions.",
    )
    p.add_argument("-V", "--version", action="version", version=f"smartmark {__version__}")
    p.add_argument("--config", default=None, help="YAML config file (optional). Env vars override defaults.")
    p.add_argument("--backend", default=None, choices=["sqlite", "rest"], help="Bookmark backend (overrides env/config).")
    p.add_argument("--db", default=None, help="SQLite database path for the sqlite backend.")
    p.add_argument("--log-level", default=None, help="DEBUG/INFO/WARN/ERROR (overrides env/config).")
    p.add_argument("--no-color", action="store_true", help="Disable colored logging and output.")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("whoami", help="Show the signed-in user.")

    ls = sub.add_parser("list", help="List bookmarks, newest first.")
    ls.add_argument("--search", default="", help="Case-insensitive filter on title and url.")
    ls.add_argument("--json", action="store_true", help="Print JSON lines instead of a table.")
    ls.add_argument("--favicons", action="store_true", help="Include favicon urls.")

    add = sub.add_parser("add", help="Add a bookmark.")
    add.add_argument("url", help="URL, with or without https://")
    add.add_argument("--title", default="", help="Custom title (default: derived from the domain).")

    rm = sub.add_parser("delete", help="Delete a bookmark by id.")
    rm.add_argument("id", help="Bookmark id (see `smartmark list`).")

    watch = sub.add_parser("watch", help="Live view that follows changes from other sessions.")
    watch.add_argument("--search", default="", help="Case-insensitive filter on title and url.")
    watch.add_argument("--favicons", action="store_true", help="Include favicon urls.")
    watch.add_argument("--refresh-s", type=float, default=0.25, help="Screen refresh interval.")

    sub.add_parser("signout", help="End the backend session.")

    args = p.parse_args(argv)
    cfg = load_settings(args.config)
    if args.backend:
        cfg.backend = args.backend
    if args.db:
        cfg.db_path = args.db
    if args.log_level:
        cfg.log_level = args.log_level
    if args.no_color:
        cfg.no_color = True
    setup_logging(LogConfig(level=cfg.log_level, no_color=cfg.no_color))

    console = Console(no_color=cfg.no_color, highlight=False)
    handlers = {
        "whoami": _cmd_whoami,
        "list": _cmd_list,
        "add": _cmd_add,
        "delete": _cmd_delete,
        "watch": _cmd_watch,
        "signout": _cmd_signout,
    }
    handler = handlers.get(args.cmd)
    if handler is None:
        return 2

    try:
        session = build_session(cfg, live=(args.cmd == "watch"))
    except (ValueError, StoreError) as e:
        log.error("Cannot set up backend: %s", e)
        return 2

    try:
        with session:
            return handler(args, cfg, session, console)
    except NotSignedIn as e:
        log.error("Not signed in (%s). Sign in and set SMARTMARK_ACCESS_TOKEN.", e)
        return 2
    except StoreError as e:
        log.error("Backend request failed: %s", e)
        return 2


def _cmd_whoami(args, cfg: Settings, session: Session, console: Console) -> int:
    user = session.user
    assert user is not None
    console.print(greeting(user, len(session.bookmarks)))
    if user.email:
        console.print(f"Email: {user.email}")
    console.print(f"User id: {user.id}")
    if user.avatar_url:
        console.print(f"Avatar: {user.avatar_url}")
    return 0


def _cmd_list(args, cfg: Settings, session: Session, console: Console) -> int:
    items = session.bookmarks.search(args.search)
    if args.json:
        for b in items:
            print(
                json.dumps(
                    {
                        "id": b.id,
                        "url": b.url,
                        "title": b.title,
                        "created_at": b.created_at.isoformat(),
                        "updated_at": b.updated_at.isoformat(),
                    },
                    ensure_ascii=False,
                )
            )
        return 0
    if not items:
        console.print("No bookmarks match your search." if args.search else "No bookmarks yet.")
        return 0
    console.print(
        bookmark_table(
            items,
            show_favicons=args.favicons,
            favicon_service=cfg.favicon_service,
            favicon_size=cfg.favicon_size,
        )
    )
    return 0


def _cmd_add(args, cfg: Settings, session: Session, console: Console) -> int:
    form = prepare_submission(args.url, args.title, title_max_chars=cfg.title_max_chars)
    if not form.ok:
        log.error("%s: %r", form.error, args.url)
        return 2
    sub = form.submission
    assert sub is not None
    if not (args.title or "").strip():
        log.info("No title given, using %r", suggest_title(args.url.strip()) or sub.title)
    if not session.bookmarks.add(sub.url, sub.title):
        return 2
    added = session.bookmarks.bookmarks[0]
    print(f"{added.id}\t{added.title}\t{added.url}")
    return 0


def _cmd_delete(args, cfg: Settings, session: Session, console: Console) -> int:
    bl = session.bookmarks
    if bl.get(args.id) is None:
        log.warning("No bookmark with id %s; nothing to delete.", args.id)
        return 0
    bl.delete(args.id)
    toast = session.notifier.current()
    if toast is not None and toast.kind == ERROR:
        return 2
    return 0


def _cmd_watch(args, cfg: Settings, session: Session, console: Console) -> int:
    bl = session.bookmarks
    user = session.user
    assert user is not None

    def _view():
        return dashboard(
            user,
            bl.search(args.search),
            total=len(bl),
            query=args.search,
            is_new=bl.is_new,
            toast=session.notifier.current(),
            show_favicons=args.favicons,
            favicon_service=cfg.favicon_service,
            favicon_size=cfg.favicon_size,
        )

    log.info("Watching for changes (Ctrl-C to stop)...")
    try:
        with Live(_view(), console=console, auto_refresh=False) as live:
            while True:
                time.sleep(max(0.05, args.refresh_s))
                live.update(_view(), refresh=True)
    except KeyboardInterrupt:
        pass
    return 0


def _cmd_signout(args, cfg: Settings, session: Session, console: Console) -> int:
    session.sign_out()
    console.print("Signed out.")
    return 0
