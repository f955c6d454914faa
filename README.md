# txnbench

In-memory building blocks for experimenting with transaction processing on
TPC-C style workloads. The package has no dependencies outside the standard
library.

## Modules

- **`txnbench.config`**: the `Config` dataclass (`num_threads`,
  `num_warehouses`, `random_abort`, `fixed_warehouse_per_thread`) with
  `enable_random_abort()` and `enable_fixed_warehouse_per_thread()`.
  `get_config()` returns the one shared instance.
- **`txnbench.record_key`**: packed integer keys for the TPC-C tables:
  `ItemKey`, `WarehouseKey`, `StockKey`, `DistrictKey`, `CustomerKey`,
  `OrderKey`, `OrderLineKey`, `NewOrderKey`. Each key can be built from its
  fields (`create_key`), from a record object with the matching attributes
  (`from_record`), or from its raw integer (`from_raw`). Fields out of range
  raise `ValueError`. Keys compare, order and hash by their raw value, and
  `int(key)` gives that value.
- **`txnbench.ordered_table`**: `OrderedTable`, an ordered map from byte
  strings to values, split into leaves of at most 15 entries. It offers
  `insert`, `get`, `update`, `remove` and their `*_with_node_info` variants,
  which also return a `NodeInfo` (leaf, old version, new version). `scan` and
  `rscan` walk a range forwards or backwards with optional `per_kv` and
  `per_node` callbacks (either stops the scan by returning `False`) and an
  optional `max_scan_num`, and return the number of entries handed to
  `per_kv`. `version_of(node)` gives a leaf's current version, so that a
  change in the keys a leaf holds can be detected.
- **`txnbench.silo_sets`**: the bookkeeping behind optimistic transactions:
  `ReadWriteType`, `IndexResult`, the immutable `TidWord` (epoch, tid and
  `latest`/`absent`/`lock` bits), `IndexValue` (a record guarded by a tid word,
  with `snapshot`, `lock` and `unlock`), `ReadWriteElement`, `ReadWriteSet`
  and `WriteSet`.
- **`txnbench.silo_ops`**: `SiloBase`, the point operations of a transaction:
  `read`, `insert`, `update`, `write`, `upsert` and `remove`.
- **`txnbench.silo`**: `Silo`, a complete transaction that adds `read_scan`,
  `update_scan`, `precommit` (lock the write set, validate the read set and
  the index leaves relied on, install the writes) and `abort`.

## Install

```
pip install .
pip install ".[test]"   # with the test tools
```

## Examples

Keys:

```python
from txnbench.record_key import OrderKey

key = OrderKey.create_key(w_id=1, d_id=3, o_id=42)
assert OrderKey.from_raw(key.raw) == key
assert (key.w_id, key.d_id, key.o_id) == (1, 3, 42)
```

Ordered table:

```python
from txnbench.ordered_table import OrderedTable

table = OrderedTable()
for k in (b"a", b"b", b"c"):
    table.insert(k, k.upper())

seen = []
table.scan(b"a", False, b"c", True, per_kv=lambda k, v: seen.append(k))
assert seen == [b"a", b"b"]
```

Transactions: every operation returns a record, or `None` to tell the caller
to abort:

```python
from txnbench.silo import Silo

tx = Silo(index, schema, txid=1, epoch=epoch)
rec = tx.update(table_id, key)
if rec is None or not tx.precommit():
    tx.abort()
```

`schema` maps each table id to a zero-argument factory that builds a blank
record of that table. `epoch_source`, if given, is called at commit to read
the global epoch; otherwise the starting epoch is used.

## What the package does not do

- It has no storage engine or shared index of its own for transactions. `Silo`
  is given an index object that provides `find`, `insert`, `remove`,
  `get_kv_in_range`, `get_kv_in_rev_range` and `get_version_value`, working
  on `IndexValue` entries. `OrderedTable` is a building block for such an
  index, not one that `Silo` can use directly.
- It has no TPC-C record types, data loader, transaction mix or workload
  runner, and it installs no command.
- It keeps no epoch manager or garbage collector. Epochs come from the caller,
  and replaced records are simply dropped.

## Tests

```
pytest
```