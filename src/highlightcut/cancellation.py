"""Cooperative cancellation.

A ``CancellationToken`` is threaded through every stage call and checked at
entry and after each network or media round trip.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from .errors import ExecutionCancelled


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._listeners: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            listeners = list(self._listeners)
        for fn in listeners:
            fn()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExecutionCancelled()

    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    @contextmanager
    def on_cancel(self, fn: Callable[[], None]) -> Iterator[None]:
        """Register ``fn`` for the duration of the block.

        If the token is already cancelled ``fn`` runs immediately.
        """
        with self._lock:
            already = self._event.is_set()
            if not already:
                self._listeners.append(fn)
        if already:
            fn()
        try:
            yield
        finally:
            with self._lock:
                if fn in self._listeners:
                    self._listeners.remove(fn)


def check_cancel(token: Optional[CancellationToken]) -> None:
    if token is not None:
        token.raise_if_cancelled()
