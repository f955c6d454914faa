import threading

import pytest
from hypothesis import given
from hypothesis import strategies as st

from txnbench.silo_sets import (
    IndexValue,
    ReadWriteElement,
    ReadWriteSet,
    ReadWriteType,
    TidWord,
    WriteSet,
)


@pytest.mark.parametrize(
    "latest,absent,expected",
    [(True, False, True), (True, True, False), (False, False, False), (False, True, False)],
)
def test_is_readable(latest, absent, expected):
    assert TidWord(latest=latest, absent=absent).is_readable() is expected


def test_is_valid_against_matches_epoch_and_tid():
    current = TidWord(epoch=3, tid=7, latest=True)
    assert current.is_valid_against(TidWord(epoch=3, tid=7))
    assert not current.is_valid_against(TidWord(epoch=4, tid=7))
    assert not current.is_valid_against(TidWord(epoch=3, tid=8))


def test_is_valid_against_requires_readable():
    current = TidWord(epoch=3, tid=7, latest=True, absent=True)
    assert not current.is_valid_against(TidWord(epoch=3, tid=7))


@given(st.integers(0, 2**32), st.integers(0, 2**40))
def test_valid_ignores_lock_bit(epoch, tid):
    current = TidWord(epoch=epoch, tid=tid, latest=True, lock=True)
    assert current.is_valid_against(TidWord(epoch=epoch, tid=tid, latest=True))


@pytest.mark.parametrize(
    "value,name",
    [(0, "READ"), (1, "UPDATE"), (2, "INSERT"), (3, "DELETE")],
)
def test_element_keeps_type_looked_up_by_value(value, name):
    element = ReadWriteElement(None, TidWord(), ReadWriteType(value))
    assert element.rwt.name == name


def test_fresh_index_value_is_invisible():
    val = IndexValue()
    rec, tw = val.snapshot()
    assert rec is None
    assert tw.latest and tw.absent
    assert not tw.is_readable()


def test_snapshot_returns_record_and_word():
    word = TidWord(epoch=1, tid=2, latest=True)
    val = IndexValue("row", word)
    assert val.snapshot() == ("row", word)


def test_lock_and_unlock_toggle_bit():
    word = TidWord(epoch=1, tid=2, latest=True)
    val = IndexValue("row", word)
    val.lock()
    assert val.tidword.lock
    assert val.tidword.tid == 2
    val.unlock()
    assert val.tidword == word


def test_unlock_without_lock_raises():
    val = IndexValue()
    with pytest.raises(RuntimeError):
        val.unlock()


def test_snapshot_waits_for_unlock():
    val = IndexValue("row", TidWord(latest=True))
    val.lock()
    seen = []
    reader = threading.Thread(target=lambda: seen.append(val.snapshot()))
    reader.start()
    reader.join(0.1)
    assert reader.is_alive()
    assert seen == []
    val.unlock()
    reader.join(5)
    assert not reader.is_alive()
    assert seen[0][0] == "row"
    assert not seen[0][1].lock


def test_assigning_tidword_wakes_waiters():
    val = IndexValue("old", TidWord(latest=True))
    val.lock()
    seen = []
    reader = threading.Thread(target=lambda: seen.append(val.snapshot()))
    reader.start()
    reader.join(0.05)
    val.rec = "new"
    val.tidword = TidWord(epoch=2, tid=5, latest=True)
    reader.join(5)
    assert seen == [("new", TidWord(epoch=2, tid=5, latest=True))]


def test_read_write_set_tables_are_separate_and_stable():
    rws = ReadWriteSet()
    element = ReadWriteElement(None, TidWord(), ReadWriteType.READ, False, IndexValue())
    rws.table(1)["k"] = element
    assert rws.table(1)["k"] is element
    assert rws.table(2) == {}


def test_write_set_keeps_order():
    ws = WriteSet()
    first = ReadWriteElement("a", TidWord(), ReadWriteType.UPDATE)
    second = ReadWriteElement("b", TidWord(), ReadWriteType.INSERT)
    ws.table("t").append((5, first))
    ws.table("t").append((1, second))
    assert [k for k, _ in ws.table("t")] == [5, 1]
    assert ws.table("u") == []


def test_element_defaults():
    element = ReadWriteElement(None, TidWord())
    assert element.rwt is ReadWriteType.READ
    assert element.is_new is False
    assert element.val is None