"""Optimistic (Silo-style) transactions: range scans, validation and commit.

A transaction collects reads and writes privately, then commits in three
phases: lock the write set in key order, validate the read set and the
index leaves it relied on, and finally install the new records with a
fresh tuple-id word.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Hashable, Mapping, Protocol

from txnbench.silo_ops import NodeMap, SiloBase
from txnbench.silo_sets import (
    IndexResult,
    IndexValue,
    ReadWriteElement,
    ReadWriteType,
    TidWord,
)

log = logging.getLogger(__name__)


class _ScanIndex(Protocol):
    """Index operations used by scans and commit, on top of point operations."""

    def find(
        self, table_id: Hashable, key: Any, node_map: NodeMap | None = None
    ) -> tuple[IndexResult, IndexValue | None]: ...

    def insert(
        self, table_id: Hashable, key: Any, value: IndexValue, node_map: NodeMap | None = None
    ) -> IndexResult: ...

    def remove(self, table_id: Hashable, key: Any) -> Any: ...

    def get_kv_in_range(
        self, table_id: Hashable, lkey: Any, rkey: Any, count: int, node_map: NodeMap
    ) -> tuple[IndexResult, Mapping[Any, IndexValue]]: ...

    def get_kv_in_rev_range(
        self, table_id: Hashable, lkey: Any, rkey: Any, count: int, node_map: NodeMap
    ) -> tuple[IndexResult, Mapping[Any, IndexValue]]: ...

    def get_version_value(self, table_id: Hashable, node: Any) -> int: ...


class Silo(SiloBase):
    """A complete optimistic transaction.

    ``epoch_source`` returns the current global epoch, read at the
    serialisation point of a commit; by default the starting epoch is used.
    """

    def __init__(
        self,
        index: _ScanIndex,
        schema: Mapping[Hashable, Callable[[], Any]],
        txid: int = 0,
        epoch: int = 0,
        epoch_source: Callable[[], int] | None = None,
    ) -> None:
        super().__init__(index, schema, txid, epoch)
        self._epoch_source = epoch_source if epoch_source is not None else (lambda: epoch)

    def _scan_index(
        self, table_id: Hashable, lkey: Any, rkey: Any, count: int, reverse: bool
    ) -> Mapping[Any, IndexValue] | None:
        self.tables.add(table_id)
        node_map = self._node_map(table_id)
        if reverse:
            res, kv = self.index.get_kv_in_rev_range(table_id, lkey, rkey, count, node_map)
        else:
            res, kv = self.index.get_kv_in_range(table_id, lkey, rkey, count, node_map)
        if res is IndexResult.BAD_SCAN:
            return None
        return kv

    def read_scan(
        self, table_id: Hashable, lkey: Any, rkey: Any, count: int = -1, reverse: bool = False
    ) -> dict[Any, Any] | None:
        """Read every record in the range; return {key: record} in key order, or None to abort."""
        log.debug("read_scan t=%s lk=%s rk=%s c=%s", table_id, lkey, rkey, count)
        kv = self._scan_index(table_id, lkey, rkey, count, reverse)
        if kv is None:
            return None
        rw_table = self.rws.table(table_id)
        result: dict[Any, Any] = {}

        for key in sorted(kv):
            val = kv[key]
            element = rw_table.get(key)
            if element is None:
                rec, tw = val.snapshot()
                if not tw.is_readable():
                    return None
                rw_table[key] = ReadWriteElement(None, tw, ReadWriteType.READ, False, val)
                result[key] = rec
            elif element.rwt is ReadWriteType.READ:
                rec, tw = element.val.snapshot()
                if tw != element.tw:
                    return None
                result[key] = rec
            elif element.rwt in (ReadWriteType.UPDATE, ReadWriteType.INSERT):
                if not self._is_latest(element):
                    return None
                result[key] = element.rec
            else:
                return None
        return result

    def update_scan(
        self, table_id: Hashable, lkey: Any, rkey: Any, count: int = -1, reverse: bool = False
    ) -> dict[Any, Any] | None:
        """Return private copies of every record in the range for update, or None to abort."""
        log.debug("update_scan t=%s lk=%s rk=%s c=%s", table_id, lkey, rkey, count)
        kv = self._scan_index(table_id, lkey, rkey, count, reverse)
        if kv is None:
            return None
        rw_table = self.rws.table(table_id)
        result: dict[Any, Any] = {}

        for key in sorted(kv):
            val = kv[key]
            element = rw_table.get(key)
            if element is None:
                rec, tw = self._copy_from_index(table_id, val)
                if not tw.is_readable():
                    return None
                element = ReadWriteElement(rec, tw, ReadWriteType.UPDATE, False, val)
                rw_table[key] = element
                self._record_write(table_id, key, element)
                result[key] = rec
            elif element.rwt is ReadWriteType.READ:
                rec = self._promote_read(table_id, key, element)
                if rec is None:
                    return None
                result[key] = rec
            elif element.rwt in (ReadWriteType.UPDATE, ReadWriteType.INSERT):
                if not self._is_latest(element):
                    return None
                result[key] = element.rec
            else:
                return None
        return result

    def _unlock_writeset(self, end: tuple[Hashable, Any] | None = None) -> None:
        for table_id in sorted(self.tables):
            for key, element in self.ws.table(table_id):
                element.val.unlock()
                if end is not None and (table_id, key) == end:
                    return

    def precommit(self) -> bool:
        """Validate and install the transaction's writes; False means it must abort."""
        log.debug("precommit at epoch %s", self.starting_epoch)
        tables = sorted(self.tables)
        max_tid = 0

        # Phase 1: lock the write set in key order.
        for table_id in tables:
            w_table = self.ws.table(table_id)
            w_table.sort(key=lambda pair: pair[0])
            for key, element in w_table:
                element.val.lock()
                current = element.val.tidword
                if not element.is_new and not current.is_readable():
                    log.debug("unreadable t=%s k=%s", table_id, key)
                    self._unlock_writeset((table_id, key))
                    return False
                max_tid = max(max_tid, current.tid)

        commit_epoch = self._epoch_source()

        # Phase 2.1: validate the read set.
        for table_id in tables:
            for element in self.rws.table(table_id).values():
                if element.rwt is ReadWriteType.INSERT:
                    continue
                current = element.val.tidword
                if not current.is_valid_against(element.tw) or (
                    current.lock and element.rwt is ReadWriteType.READ
                ):
                    self._unlock_writeset()
                    return False
                max_tid = max(max_tid, current.tid)

        commit_tid = max_tid + 1

        # Phase 2.2: validate the leaves the transaction relied on.
        for table_id in tables:
            for node, version in self._node_map(table_id).items():
                current_version = self.index.get_version_value(table_id, node)
                if current_version != version:
                    log.debug(
                        "node check failed t=%s old=%s new=%s", table_id, version, current_version
                    )
                    self._unlock_writeset()
                    return False

        # Phase 3: install the writes.
        for table_id in tables:
            for key, element in self.ws.table(table_id):
                deleted = element.rwt is ReadWriteType.DELETE
                element.val.rec = element.rec
                element.val.tidword = TidWord(
                    epoch=commit_epoch,
                    tid=commit_tid,
                    latest=not deleted,
                    absent=deleted,
                    lock=False,
                )
                if deleted:
                    self.index.remove(table_id, key)

        log.debug("precommit succeeded with tid %s", commit_tid)
        return True

    def abort(self) -> None:
        """Undo provisional inserts and forget everything the transaction touched."""
        for table_id in sorted(self.tables):
            w_table = self.ws.table(table_id)
            for key, element in w_table:
                if element.is_new:
                    val = element.val
                    val.lock()
                    val.tidword = replace(val.tidword, absent=True, latest=False, lock=False)
                    self.index.remove(table_id, key)
                element.rec = None
            w_table.clear()
            self.rws.table(table_id).clear()
            self._node_map(table_id).clear()
        self.tables.clear()