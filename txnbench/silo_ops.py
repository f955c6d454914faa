"""Record-level operations of an optimistic (Silo-style) transaction.

Every operation first consults the transaction's read/write set and falls
back to the shared index on a miss. A result of ``None`` means the
transaction has seen a conflict or a missing record and must abort.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Hashable, Mapping, Protocol

from txnbench.silo_sets import (
    IndexResult,
    IndexValue,
    ReadWriteElement,
    ReadWriteSet,
    ReadWriteType,
    TidWord,
    WriteSet,
)

log = logging.getLogger(__name__)

NodeMap = dict


class _Index(Protocol):
    """What a transaction needs from the shared index.

    ``node_map`` arguments collect ``{node: version}`` pairs of the leaves an
    operation relied on, so that phantoms can be detected at commit.
    """

    def find(
        self, table_id: Hashable, key: Any, node_map: NodeMap | None = None
    ) -> tuple[IndexResult, IndexValue | None]: ...

    def insert(
        self, table_id: Hashable, key: Any, value: IndexValue, node_map: NodeMap | None = None
    ) -> IndexResult: ...

    def remove(self, table_id: Hashable, key: Any) -> Any: ...


class SiloBase:
    """Read, insert, update, write, upsert and remove for one transaction.

    ``schema`` maps each table id to a zero-argument factory that builds a
    blank record of that table.
    """

    def __init__(
        self,
        index: _Index,
        schema: Mapping[Hashable, Callable[[], Any]],
        txid: int = 0,
        epoch: int = 0,
    ) -> None:
        self.index = index
        self.schema = schema
        self.txid = txid
        self.starting_epoch = epoch
        self.tables: set = set()
        self.rws = ReadWriteSet()
        self.ws = WriteSet()
        self._node_maps: dict[Hashable, NodeMap] = {}
        log.debug("start tx %s at epoch %s", txid, epoch)

    def _node_map(self, table_id: Hashable) -> NodeMap:
        return self._node_maps.setdefault(table_id, {})

    def _blank(self, table_id: Hashable) -> Any:
        try:
            factory = self.schema[table_id]
        except KeyError:
            raise KeyError(f"no record type registered for table {table_id!r}") from None
        return factory()

    def _copy_from_index(self, table_id: Hashable, val: IndexValue) -> tuple[Any, TidWord]:
        rec, tw = val.snapshot()
        private = self._blank(table_id) if rec is None else copy.deepcopy(rec)
        return private, tw

    @staticmethod
    def _is_latest(element: ReadWriteElement) -> bool:
        _, tw = element.val.snapshot()
        return tw == element.tw

    def _begin(self, table_id: Hashable, key: Any) -> tuple[dict, ReadWriteElement | None]:
        self.tables.add(table_id)
        rw_table = self.rws.table(table_id)
        return rw_table, rw_table.get(key)

    def _record_write(self, table_id: Hashable, key: Any, element: ReadWriteElement) -> None:
        self.ws.table(table_id).append((key, element))

    def _insert_new(self, table_id: Hashable, key: Any, rw_table: dict) -> Any:
        new_val = IndexValue()
        res = self.index.insert(table_id, key, new_val, self._node_map(table_id))
        if res is IndexResult.NOT_INSERTED:
            return None
        rec = self._blank(table_id)
        element = ReadWriteElement(rec, new_val.tidword, ReadWriteType.INSERT, True, new_val)
        rw_table[key] = element
        self._record_write(table_id, key, element)
        if res is IndexResult.BAD_INSERT:
            return None
        return rec

    def _promote_read(self, table_id: Hashable, key: Any, element: ReadWriteElement) -> Any:
        rec, tw = self._copy_from_index(table_id, element.val)
        if tw != element.tw:
            return None
        element.rec = rec
        element.rwt = ReadWriteType.UPDATE
        self._record_write(table_id, key, element)
        return rec

    def _revive_deleted(self, table_id: Hashable, element: ReadWriteElement) -> Any:
        if not self._is_latest(element):
            return None
        rec = self._blank(table_id)
        element.rec = rec
        element.rwt = ReadWriteType.UPDATE
        return rec

    def read(self, table_id: Hashable, key: Any) -> Any:
        """Return the record under key for reading, or None to abort."""
        log.debug("read t=%s k=%s", table_id, key)
        rw_table, element = self._begin(table_id, key)

        if element is None:
            res, val = self.index.find(table_id, key, self._node_map(table_id))
            if res is IndexResult.NOT_FOUND:
                return None
            rec, tw = val.snapshot()
            if not tw.is_readable():
                return None
            rw_table[key] = ReadWriteElement(None, tw, ReadWriteType.READ, False, val)
            return rec

        if element.rwt is ReadWriteType.READ:
            rec, tw = element.val.snapshot()
            return rec if tw == element.tw else None
        if element.rwt in (ReadWriteType.UPDATE, ReadWriteType.INSERT):
            return element.rec if self._is_latest(element) else None
        return None

    def insert(self, table_id: Hashable, key: Any) -> Any:
        """Return a blank private record to insert under key, or None to abort."""
        log.debug("insert t=%s k=%s", table_id, key)
        rw_table, element = self._begin(table_id, key)

        if element is None:
            res, _ = self.index.find(table_id, key)
            if res is IndexResult.OK:
                return None
            return self._insert_new(table_id, key, rw_table)

        if element.rwt is ReadWriteType.DELETE:
            return self._revive_deleted(table_id, element)
        return None

    def update(self, table_id: Hashable, key: Any) -> Any:
        """Return a private copy of the record under key to modify, or None to abort."""
        log.debug("update t=%s k=%s", table_id, key)
        rw_table, element = self._begin(table_id, key)

        if element is None:
            res, val = self.index.find(table_id, key)
            if res is IndexResult.NOT_FOUND:
                return None
            rec, tw = self._copy_from_index(table_id, val)
            if not tw.is_readable():
                return None
            element = ReadWriteElement(rec, tw, ReadWriteType.UPDATE, False, val)
            rw_table[key] = element
            self._record_write(table_id, key, element)
            return rec

        if element.rwt is ReadWriteType.READ:
            return self._promote_read(table_id, key, element)
        if element.rwt in (ReadWriteType.UPDATE, ReadWriteType.INSERT):
            return element.rec if self._is_latest(element) else None
        return None

    def _write_or_upsert(self, table_id: Hashable, key: Any, found_rwt: ReadWriteType) -> Any:
        rw_table, element = self._begin(table_id, key)

        if element is None:
            res, val = self.index.find(table_id, key)
            if res is IndexResult.NOT_FOUND:
                return self._insert_new(table_id, key, rw_table)
            if res is not IndexResult.OK:
                raise RuntimeError("invalid state")
            rec, tw = self._copy_from_index(table_id, val)
            if not tw.is_readable():
                return None
            element = ReadWriteElement(rec, tw, found_rwt, False, val)
            rw_table[key] = element
            self._record_write(table_id, key, element)
            return rec

        if element.rwt is ReadWriteType.READ:
            return self._promote_read(table_id, key, element)
        if element.rwt in (ReadWriteType.UPDATE, ReadWriteType.INSERT):
            return element.rec if self._is_latest(element) else None
        return self._revive_deleted(table_id, element)

    def write(self, table_id: Hashable, key: Any) -> Any:
        """Return a private record to write under key, inserting if absent.

        An existing record is copied and logged as an insert.
        """
        log.debug("write t=%s k=%s", table_id, key)
        return self._write_or_upsert(table_id, key, ReadWriteType.INSERT)

    def upsert(self, table_id: Hashable, key: Any) -> Any:
        """Return a private record to write under key, inserting if absent.

        An existing record is copied and logged as an update.
        """
        log.debug("upsert t=%s k=%s", table_id, key)
        return self._write_or_upsert(table_id, key, ReadWriteType.UPDATE)

    def remove(self, table_id: Hashable, key: Any) -> Any:
        """Mark the record under key for deletion and return it, or None to abort."""
        log.debug("remove t=%s k=%s", table_id, key)
        rw_table, element = self._begin(table_id, key)

        if element is None:
            res, val = self.index.find(table_id, key)
            if res is IndexResult.NOT_FOUND:
                return None
            rec, tw = val.snapshot()
            if not tw.is_readable():
                return None
            element = ReadWriteElement(None, tw, ReadWriteType.DELETE, False, val)
            rw_table[key] = element
            self._record_write(table_id, key, element)
            return rec

        if element.rwt is ReadWriteType.READ:
            rec, tw = element.val.snapshot()
            if tw != element.tw:
                return None
            self._record_write(table_id, key, element)
            element.rwt = ReadWriteType.DELETE
            return rec
        if element.rwt in (ReadWriteType.UPDATE, ReadWriteType.INSERT):
            rec, tw = element.val.snapshot()
            if tw != element.tw:
                return None
            element.rec = None
            element.rwt = ReadWriteType.DELETE
            return rec
        return None