from dataclasses import dataclass, replace

import pytest

from txnbench.silo_ops import SiloBase
from txnbench.silo_sets import IndexResult, IndexValue, ReadWriteType, TidWord

TABLE = 1


@dataclass
class Row:
    balance: int = 0
    name: str = ""


class DictIndex:
    def __init__(self):
        self.tables = {}
        self.insert_result = None
        self.find_result = None
        self.find_node_maps = []

    def find(self, table_id, key, node_map=None):
        self.find_node_maps.append(node_map)
        if self.find_result is not None:
            return self.find_result, None
        val = self.tables.setdefault(table_id, {}).get(key)
        if val is None:
            return IndexResult.NOT_FOUND, None
        return IndexResult.OK, val

    def insert(self, table_id, key, value, node_map=None):
        if self.insert_result is IndexResult.NOT_INSERTED:
            return IndexResult.NOT_INSERTED
        table = self.tables.setdefault(table_id, {})
        if key in table:
            return IndexResult.NOT_INSERTED
        table[key] = value
        return self.insert_result or IndexResult.OK

    def remove(self, table_id, key):
        return self.tables.get(table_id, {}).pop(key, None)


def committed(rec):
    return IndexValue(rec=rec, tidword=TidWord(epoch=1, tid=1, latest=True))


@pytest.fixture
def index():
    idx = DictIndex()
    idx.tables[TABLE] = {10: committed(Row(5, "a")), 20: committed(Row(7, "b"))}
    return idx


@pytest.fixture
def tx(index):
    return SiloBase(index, {TABLE: Row})


def test_read_returns_index_record_and_logs_read(tx, index):
    rec = tx.read(TABLE, 10)
    assert rec is index.tables[TABLE][10].rec
    element = tx.rws.table(TABLE)[10]
    assert element.rwt is ReadWriteType.READ
    assert element.rec is None
    assert tx.ws.table(TABLE) == []
    assert tx.tables == {TABLE}


def test_read_miss_passes_node_map(tx, index):
    assert tx.read(TABLE, 99) is None
    assert index.find_node_maps[-1] is tx._node_map(TABLE)


def test_read_unreadable_entry_aborts(tx, index):
    index.tables[TABLE][30] = IndexValue()
    assert tx.read(TABLE, 30) is None
    assert 30 not in tx.rws.table(TABLE)


def test_repeated_read_detects_concurrent_change(tx, index):
    first = tx.read(TABLE, 10)
    assert tx.read(TABLE, 10) is first
    val = index.tables[TABLE][10]
    val.tidword = replace(val.tidword, tid=2)
    assert tx.read(TABLE, 10) is None


def test_update_returns_private_copy(tx, index):
    rec = tx.update(TABLE, 10)
    original = index.tables[TABLE][10].rec
    assert rec == original
    assert rec is not original
    rec.balance = 100
    assert original.balance == 5
    element = tx.rws.table(TABLE)[10]
    assert element.rwt is ReadWriteType.UPDATE
    assert tx.ws.table(TABLE) == [(10, element)]


def test_update_missing_aborts(tx):
    assert tx.update(TABLE, 99) is None
    assert tx.ws.table(TABLE) == []


def test_update_twice_returns_same_copy(tx):
    rec = tx.update(TABLE, 10)
    assert tx.update(TABLE, 10) is rec
    assert len(tx.ws.table(TABLE)) == 1


def test_update_after_read_promotes(tx):
    tx.read(TABLE, 20)
    rec = tx.update(TABLE, 20)
    assert rec == Row(7, "b")
    assert tx.rws.table(TABLE)[20].rwt is ReadWriteType.UPDATE
    assert [k for k, _ in tx.ws.table(TABLE)] == [20]


def test_update_after_read_with_changed_tidword_aborts(tx, index):
    tx.read(TABLE, 20)
    val = index.tables[TABLE][20]
    val.tidword = replace(val.tidword, tid=9)
    assert tx.update(TABLE, 20) is None
    assert tx.rws.table(TABLE)[20].rwt is ReadWriteType.READ


def test_update_copies_null_record_as_blank(tx, index):
    index.tables[TABLE][40] = committed(None)
    assert tx.update(TABLE, 40) == Row()


def test_insert_new_key(tx, index):
    rec = tx.insert(TABLE, 50)
    assert rec == Row()
    val = index.tables[TABLE][50]
    assert val.tidword.absent and val.tidword.latest
    element = tx.rws.table(TABLE)[50]
    assert element.is_new
    assert element.rwt is ReadWriteType.INSERT
    assert element.val is val
    assert element.rec is rec
    assert tx.ws.table(TABLE) == [(50, element)]


def test_insert_existing_aborts(tx):
    assert tx.insert(TABLE, 10) is None


def test_insert_after_read_aborts(tx):
    tx.read(TABLE, 10)
    assert tx.insert(TABLE, 10) is None


def test_insert_not_inserted_leaves_sets_untouched(tx, index):
    index.insert_result = IndexResult.NOT_INSERTED
    assert tx.insert(TABLE, 60) is None
    assert 60 not in tx.rws.table(TABLE)
    assert tx.ws.table(TABLE) == []


def test_insert_bad_insert_aborts_but_records_entry(tx, index):
    index.insert_result = IndexResult.BAD_INSERT
    assert tx.insert(TABLE, 61) is None
    assert [k for k, _ in tx.ws.table(TABLE)] == [61]
    assert tx.rws.table(TABLE)[61].is_new


def test_insert_after_remove_revives_as_update(tx):
    tx.remove(TABLE, 10)
    rec = tx.insert(TABLE, 10)
    assert rec == Row()
    assert tx.rws.table(TABLE)[10].rwt is ReadWriteType.UPDATE
    assert len(tx.ws.table(TABLE)) == 1


def test_write_missing_inserts(tx, index):
    rec = tx.write(TABLE, 70)
    assert rec == Row()
    assert 70 in index.tables[TABLE]
    assert tx.rws.table(TABLE)[70].is_new


def test_write_existing_logs_insert(tx, index):
    rec = tx.write(TABLE, 10)
    assert rec == index.tables[TABLE][10].rec
    element = tx.rws.table(TABLE)[10]
    assert element.rwt is ReadWriteType.INSERT
    assert not element.is_new


def test_upsert_existing_logs_update(tx):
    rec = tx.upsert(TABLE, 20)
    assert rec == Row(7, "b")
    element = tx.rws.table(TABLE)[20]
    assert element.rwt is ReadWriteType.UPDATE
    assert not element.is_new


def test_write_after_remove_gives_blank_update(tx):
    tx.remove(TABLE, 20)
    rec = tx.write(TABLE, 20)
    assert rec == Row()
    assert tx.rws.table(TABLE)[20].rwt is ReadWriteType.UPDATE


def test_write_with_unexpected_index_result_raises(tx, index):
    index.find_result = IndexResult.BAD_SCAN
    with pytest.raises(RuntimeError):
        tx.write(TABLE, 10)


def test_remove_existing(tx, index):
    rec = tx.remove(TABLE, 10)
    assert rec is index.tables[TABLE][10].rec
    element = tx.rws.table(TABLE)[10]
    assert element.rwt is ReadWriteType.DELETE
    assert element.rec is None
    assert tx.ws.table(TABLE) == [(10, element)]


def test_operations_after_remove_abort(tx):
    tx.remove(TABLE, 10)
    assert tx.remove(TABLE, 10) is None
    assert tx.read(TABLE, 10) is None
    assert tx.update(TABLE, 10) is None


def test_remove_missing_aborts(tx):
    assert tx.remove(TABLE, 99) is None


def test_remove_after_read_moves_to_writeset(tx):
    tx.read(TABLE, 20)
    assert tx.remove(TABLE, 20) == Row(7, "b")
    assert tx.rws.table(TABLE)[20].rwt is ReadWriteType.DELETE
    assert [k for k, _ in tx.ws.table(TABLE)] == [20]


def test_remove_after_update_drops_private_copy(tx, index):
    tx.update(TABLE, 10)
    rec = tx.remove(TABLE, 10)
    assert rec is index.tables[TABLE][10].rec
    element = tx.rws.table(TABLE)[10]
    assert element.rec is None
    assert element.rwt is ReadWriteType.DELETE
    assert len(tx.ws.table(TABLE)) == 1


def test_unknown_table_record_type_raises(index):
    tx = SiloBase(index, {})
    with pytest.raises(KeyError):
        tx.insert(TABLE, 80)