"""An ordered byte-string key/value table with versioned leaf nodes.

Leaves carry a version number that changes whenever the set of keys they
hold changes (insert, remove, split or removal of the leaf). Callers record
a leaf and its version during a lookup or scan and later compare it with
``version_of`` to detect phantoms.
"""

from __future__ import annotations

import threading
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

LEAF_CAPACITY = 15

PerKv = Callable[[bytes, Any], Optional[bool]]
PerNode = Callable[[Any, int], Optional[bool]]


@dataclass(eq=False)
class _Leaf:
    keys: list = field(default_factory=list)
    values: list = field(default_factory=list)
    version: int = 0
    deleted: bool = False


@dataclass(frozen=True)
class NodeInfo:
    """A leaf seen by an operation and its version before and after it."""

    node: Any
    old_version: int
    new_version: int


def _as_key(key: Any) -> bytes:
    if not isinstance(key, (bytes, bytearray, memoryview)):
        raise TypeError(f"keys must be bytes-like, not {type(key).__name__}")
    return bytes(key)


class _ScanVisitor:
    """Applies the limit, end-bound and stop rules of a scan."""

    def __init__(
        self,
        per_kv: PerKv | None,
        per_node: PerNode | None,
        max_scan_num: int | None,
        in_range: Callable[[bytes], bool],
    ) -> None:
        self.per_kv = per_kv
        self.per_node = per_node
        self.limit = None if max_scan_num is None or max_scan_num < 0 else max_scan_num
        self.in_range = in_range
        self.keep_going = True
        self.visited = 0
        self.delivered = 0

    def enter(self, leaf: _Leaf) -> None:
        if self.per_node is not None and self.per_node(leaf, leaf.version) is False:
            self.keep_going = False

    def visit(self, key: bytes, value: Any) -> bool:
        if not self.keep_going or (self.limit is not None and self.visited >= self.limit):
            return False
        self.visited += 1
        if not self.in_range(key):
            return False
        self.delivered += 1
        if self.per_kv is not None and self.per_kv(key, value) is False:
            self.keep_going = False
        return True


class OrderedTable:
    """Ordered map from byte strings to values, split into versioned leaves."""

    def __init__(self) -> None:
        self._leaves: list[_Leaf] = [_Leaf()]
        self._lows: list[bytes] = [b""]
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(leaf.keys) for leaf in self._leaves)

    def _locate(self, key: bytes) -> tuple[int, _Leaf, int, bool]:
        index = bisect_right(self._lows, key) - 1
        leaf = self._leaves[index]
        pos = bisect_left(leaf.keys, key)
        found = pos < len(leaf.keys) and leaf.keys[pos] == key
        return index, leaf, pos, found

    def _split(self, index: int) -> None:
        leaf = self._leaves[index]
        mid = len(leaf.keys) // 2
        right = _Leaf(keys=leaf.keys[mid:], values=leaf.values[mid:])
        del leaf.keys[mid:]
        del leaf.values[mid:]
        leaf.version += 1
        self._leaves.insert(index + 1, right)
        self._lows.insert(index + 1, right.keys[0])

    def _drop_if_empty(self, index: int) -> None:
        leaf = self._leaves[index]
        if leaf.keys or len(self._leaves) == 1:
            return
        leaf.deleted = True
        leaf.version += 1
        del self._leaves[index]
        del self._lows[index]
        self._lows[0] = b""

    def insert_with_node_info(self, key: bytes, value: Any) -> tuple[bool, NodeInfo | None]:
        """Insert a new key; on success also return the leaf it went into."""
        k = _as_key(key)
        with self._lock:
            index, leaf, pos, found = self._locate(k)
            if found:
                return False, None
            old_version = leaf.version
            leaf.keys.insert(pos, k)
            leaf.values.insert(pos, value)
            leaf.version += 1
            if len(leaf.keys) > LEAF_CAPACITY:
                self._split(index)
            return True, NodeInfo(leaf, old_version, leaf.version)

    def insert(self, key: bytes, value: Any) -> bool:
        """Insert a new key; return False if it is already present."""
        return self.insert_with_node_info(key, value)[0]

    def get_with_node_info(self, key: bytes) -> tuple[Any, NodeInfo | None]:
        """Look up a key; on a miss also return the leaf that would hold it."""
        k = _as_key(key)
        with self._lock:
            _, leaf, pos, found = self._locate(k)
            if found:
                return leaf.values[pos], None
            return None, NodeInfo(leaf, leaf.version, leaf.version)

    def get(self, key: bytes) -> Any:
        """Return the value stored under key, or None."""
        return self.get_with_node_info(key)[0]

    def update_with_node_info(self, key: bytes, value: Any) -> tuple[bool, NodeInfo | None]:
        """Replace the value of an existing key; on a miss return the leaf searched."""
        k = _as_key(key)
        with self._lock:
            _, leaf, pos, found = self._locate(k)
            if found:
                leaf.values[pos] = value
                return True, None
            return False, NodeInfo(leaf, leaf.version, leaf.version)

    def update(self, key: bytes, value: Any) -> bool:
        """Replace the value of an existing key; return False if it is absent."""
        return self.update_with_node_info(key, value)[0]

    def remove_with_node_info(self, key: bytes) -> tuple[bool, NodeInfo | None]:
        """Remove a key; on a miss return the leaf searched."""
        k = _as_key(key)
        with self._lock:
            index, leaf, pos, found = self._locate(k)
            if found:
                del leaf.keys[pos]
                del leaf.values[pos]
                leaf.version += 1
                self._drop_if_empty(index)
                return True, None
            return False, NodeInfo(leaf, leaf.version, leaf.version)

    def remove(self, key: bytes) -> bool:
        """Remove a key; return False if it is absent."""
        return self.remove_with_node_info(key)[0]

    def scan(
        self,
        lkey: bytes | None = None,
        l_exclusive: bool = False,
        rkey: bytes | None = None,
        r_exclusive: bool = False,
        per_kv: PerKv | None = None,
        per_node: PerNode | None = None,
        max_scan_num: int | None = None,
    ) -> int:
        """Visit entries in ascending order from lkey towards rkey.

        ``None`` bounds are open. ``per_node`` sees each leaf entered with its
        version; ``per_kv`` sees each entry in range. Either callback stops the
        scan by returning False. ``max_scan_num`` caps the number of entries
        examined. Returns the number of entries handed to ``per_kv``.
        """
        low = None if lkey is None else _as_key(lkey)
        high = None if rkey is None else _as_key(rkey)

        def in_range(key: bytes) -> bool:
            return high is None or key < high or (key == high and not r_exclusive)

        visitor = _ScanVisitor(per_kv, per_node, max_scan_num, in_range)
        with self._lock:
            start = 0 if low is None else bisect_right(self._lows, low) - 1
            first = True
            for leaf in self._leaves[start:]:
                visitor.enter(leaf)
                pos = 0
                if first and low is not None:
                    pos = (bisect_right if l_exclusive else bisect_left)(leaf.keys, low)
                first = False
                for key, value in zip(leaf.keys[pos:], leaf.values[pos:]):
                    if not visitor.visit(key, value):
                        return visitor.delivered
        return visitor.delivered

    def rscan(
        self,
        lkey: bytes | None = None,
        l_exclusive: bool = False,
        rkey: bytes | None = None,
        r_exclusive: bool = False,
        per_kv: PerKv | None = None,
        per_node: PerNode | None = None,
        max_scan_num: int | None = None,
    ) -> int:
        """Visit entries in descending order from rkey towards lkey.

        Callbacks, limits and the return value behave as in ``scan``.
        """
        low = None if lkey is None else _as_key(lkey)
        high = None if rkey is None else _as_key(rkey)

        def in_range(key: bytes) -> bool:
            return low is None or key > low or (key == low and not l_exclusive)

        visitor = _ScanVisitor(per_kv, per_node, max_scan_num, in_range)
        with self._lock:
            start = len(self._leaves) - 1 if high is None else bisect_right(self._lows, high) - 1
            first = True
            for leaf in self._leaves[start::-1]:
                visitor.enter(leaf)
                end = len(leaf.keys)
                if first and high is not None:
                    end = (bisect_left if r_exclusive else bisect_right)(leaf.keys, high)
                first = False
                for key, value in zip(reversed(leaf.keys[:end]), reversed(leaf.values[:end])):
                    if not visitor.visit(key, value):
                        return visitor.delivered
        return visitor.delivered

    def version_of(self, node: Any) -> int:
        """Return the current version of a leaf handed out earlier."""
        return node.version