"""Registry of known chat ids, shared by the poll loop and the control API."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from tgrelay.utils.logging import get_logger

log = get_logger(__name__)


class ReadWriteLock:
    """Many concurrent readers or a single writer.

    Writers are preferred: once a writer is waiting, new readers block until
    it has finished, so a steady stream of snapshots cannot starve inserts.
    The lock is blocking and must never be held across an ``await``.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ChatRegistry:
    """Set of chat ids seen during this process lifetime.

    Membership only grows. Nothing is persisted; a restarted process starts
    empty and relearns chats from new inbound events.
    """

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._chat_ids: set[int] = set()

    def record(self, chat_id: int) -> bool:
        """Insert ``chat_id`` if absent. Returns True when it was new."""
        with self._lock.write():
            if chat_id in self._chat_ids:
                return False
            self._chat_ids.add(chat_id)
        log.debug("chat_recorded", chat_id=chat_id)
        return True

    def snapshot(self) -> tuple[int, ...]:
        """Return every known chat id, in no particular order."""
        with self._lock.read():
            return tuple(self._chat_ids)

    def __contains__(self, chat_id: object) -> bool:
        with self._lock.read():
            return chat_id in self._chat_ids

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._chat_ids)
