from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .log import get_logger

log = get_logger(__name__)

SUCCESS = "success"
ERROR = "error"
INFO = "info"


@dataclass(frozen=True)
class Toast:
    id: int
    message: str
    kind: str
    icon: str
    shown_at: float


class Notifier:
    """Holds the single visible toast; a new toast replaces the previous one."""

    def __init__(self, *, duration_s: float = 3.5, clock: Callable[[], float] = time.monotonic):
        self.duration_s = duration_s
        self._clock = clock
        self._lock = threading.Lock()
        self._seq = 0
        self._toast: Optional[Toast] = None

    def show(self, message: str, kind: str = SUCCESS, icon: str = "✓") -> Toast:
        with self._lock:
            self._seq += 1
            toast = Toast(id=self._seq, message=message, kind=kind, icon=icon, shown_at=self._clock())
            self._toast = toast
        log.log(logging.WARNING if kind == ERROR else logging.INFO, "%s %s", icon, message)
        return toast

    def current(self) -> Optional[Toast]:
        with self._lock:
            t = self._toast
            if t is None:
                return None
            if self._clock() - t.shown_at >= self.duration_s:
                self._toast = None
                return None
            return t

    def dismiss(self) -> None:
        with self._lock:
            self._toast = None
