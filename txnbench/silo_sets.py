"""Per-transaction bookkeeping for optimistic concurrency control.

Holds the tuple-id words stamped on index entries, the index entries
themselves, and the read/write and write sets a transaction builds up
before it validates and commits.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Any, Hashable


class ReadWriteType(Enum):
    """What a transaction has done to a key so far."""

    READ = 0
    UPDATE = 1
    INSERT = 2
    DELETE = 3


class IndexResult(Enum):
    """Outcome of an index operation."""

    OK = auto()
    NOT_FOUND = auto()
    NOT_INSERTED = auto()
    BAD_INSERT = auto()
    BAD_SCAN = auto()


@dataclass(frozen=True)
class TidWord:
    """Version stamp of an index entry: epoch, tuple id and status bits."""

    epoch: int = 0
    tid: int = 0
    latest: bool = False
    absent: bool = False
    lock: bool = False

    def is_readable(self) -> bool:
        """True if the entry holds a visible, current record."""
        return self.latest and not self.absent

    def is_valid_against(self, expected: TidWord) -> bool:
        """True if this word carries the expected epoch and tid and is readable."""
        return (
            self.epoch == expected.epoch
            and self.tid == expected.tid
            and self.is_readable()
        )


class IndexValue:
    """An index entry: a record and the tid word guarding it."""

    def __init__(self, rec: Any = None, tidword: TidWord | None = None) -> None:
        self.rec = rec
        # A fresh entry exists in the index but cannot be seen by others yet.
        self._tidword = tidword if tidword is not None else TidWord(latest=True, absent=True)
        self._cond = threading.Condition()

    @property
    def tidword(self) -> TidWord:
        return self._tidword

    @tidword.setter
    def tidword(self, value: TidWord) -> None:
        with self._cond:
            self._tidword = value
            self._cond.notify_all()

    def snapshot(self) -> tuple[Any, TidWord]:
        """Wait until the entry is unlocked and return its record and tid word."""
        with self._cond:
            self._cond.wait_for(lambda: not self._tidword.lock)
            return self.rec, self._tidword

    def lock(self) -> None:
        """Wait for the entry to be free, then set its lock bit."""
        with self._cond:
            self._cond.wait_for(lambda: not self._tidword.lock)
            self._tidword = replace(self._tidword, lock=True)

    def unlock(self) -> None:
        """Clear the lock bit; the entry must be locked."""
        with self._cond:
            if not self._tidword.lock:
                raise RuntimeError("entry is not locked")
            self._tidword = replace(self._tidword, lock=False)
            self._cond.notify_all()

    def __repr__(self) -> str:
        return f"IndexValue(rec={self.rec!r}, tidword={self._tidword!r})"


@dataclass
class ReadWriteElement:
    """A key's entry in the read/write set.

    ``rec`` is None for reads and deletes and the transaction's private copy
    for updates and inserts; ``tw`` is the tid word seen on first access.
    """

    rec: Any
    tw: TidWord
    rwt: ReadWriteType = ReadWriteType.READ
    is_new: bool = False
    val: IndexValue | None = None


class ReadWriteSet:
    """Read/write elements of a transaction, one mapping per table."""

    def __init__(self) -> None:
        self._tables: dict[Hashable, dict[Any, ReadWriteElement]] = {}

    def table(self, table_id: Hashable) -> dict[Any, ReadWriteElement]:
        """Return the key-to-element mapping of a table, creating it if needed."""
        return self._tables.setdefault(table_id, {})


class WriteSet:
    """Keys a transaction writes, in the order written, one list per table."""

    def __init__(self) -> None:
        self._tables: dict[Hashable, list[tuple[Any, ReadWriteElement]]] = {}

    def table(self, table_id: Hashable) -> list[tuple[Any, ReadWriteElement]]:
        """Return the list of (key, element) pairs of a table, creating it if needed."""
        return self._tables.setdefault(table_id, [])