"""Packed integer keys for the TPC-C tables.

Each key packs its components into one unsigned integer, lowest field in
the lowest bits, so that comparing raw values orders keys by warehouse,
then district, then the per-table identifiers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


class _BitField:
    """A component stored in a fixed bit range of the raw key."""

    def __init__(self, shift: int, width: int) -> None:
        self.shift = shift
        self.width = width
        self.mask = (1 << width) - 1
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return (instance.raw >> self.shift) & self.mask


@dataclass(frozen=True, order=True)
class _PackedKey:
    raw: int = 0

    _BITS: ClassVar[int] = 64
    _FIELDS: ClassVar[dict[str, _BitField]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._FIELDS = {
            name: attr for name, attr in vars(cls).items() if isinstance(attr, _BitField)
        }

    def __post_init__(self) -> None:
        if not isinstance(self.raw, int):
            raise TypeError(f"raw key must be an int, not {type(self.raw).__name__}")
        if not 0 <= self.raw < (1 << self._BITS):
            raise ValueError(f"raw key {self.raw} does not fit in {self._BITS} bits")

    @classmethod
    def _pack(cls, **components: int) -> Any:
        raw = 0
        for name, value in components.items():
            bit_field = cls._FIELDS[name]
            if not isinstance(value, int):
                raise TypeError(f"{name} must be an int, not {type(value).__name__}")
            if not 0 <= value <= bit_field.mask:
                raise ValueError(f"{name}={value} does not fit in {bit_field.width} bits")
            raw |= value << bit_field.shift
        return cls(raw)

    def __int__(self) -> int:
        return self.raw

    def __repr__(self) -> str:
        parts = ", ".join(f"{name}={getattr(self, name)}" for name in self._FIELDS)
        return f"{type(self).__name__}({parts})"


class ItemKey(_PackedKey):
    """Key of the ITEM table."""

    _BITS = 32
    i_key = _BitField(0, 32)

    @classmethod
    def create_key(cls, i_id: int) -> ItemKey:
        return cls._pack(i_key=i_id)

    @classmethod
    def from_record(cls, record: Any) -> ItemKey:
        return cls.create_key(record.i_id)

    @classmethod
    def from_raw(cls, raw: int) -> ItemKey:
        """Build a key from its packed integer value."""
        return cls(raw)


class WarehouseKey(_PackedKey):
    """Key of the WAREHOUSE table."""

    _BITS = 16
    w_key = _BitField(0, 16)

    @classmethod
    def create_key(cls, w_id: int) -> WarehouseKey:
        return cls._pack(w_key=w_id)

    @classmethod
    def from_record(cls, record: Any) -> WarehouseKey:
        return cls.create_key(record.w_id)

    @classmethod
    def from_raw(cls, raw: int) -> WarehouseKey:
        """Build a key from its packed integer value."""
        return cls(raw)


class StockKey(_PackedKey):
    """Key of the STOCK table."""

    w_id = _BitField(32, 16)
    i_id = _BitField(0, 32)

    @classmethod
    def create_key(cls, w_id: int, i_id: int) -> StockKey:
        return cls._pack(w_id=w_id, i_id=i_id)

    @classmethod
    def from_record(cls, record: Any) -> StockKey:
        return cls.create_key(record.s_w_id, record.s_i_id)

    @classmethod
    def from_raw(cls, raw: int) -> StockKey:
        """Build a key from its packed integer value."""
        return cls(raw)


class DistrictKey(_PackedKey):
    """Key of the DISTRICT table."""

    _BITS = 32
    w_id = _BitField(8, 16)
    d_id = _BitField(0, 8)

    @classmethod
    def create_key(cls, w_id: int, d_id: int) -> DistrictKey:
        return cls._pack(w_id=w_id, d_id=d_id)

    @classmethod
    def from_record(cls, record: Any) -> DistrictKey:
        return cls.create_key(record.d_w_id, record.d_id)

    @classmethod
    def from_raw(cls, raw: int) -> DistrictKey:
        """Build a key from its packed integer value."""
        return cls(raw)


class CustomerKey(_PackedKey):
    """Key of the CUSTOMER table."""

    w_id = _BitField(40, 16)
    d_id = _BitField(32, 8)
    c_id = _BitField(0, 32)

    @classmethod
    def create_key(cls, w_id: int, d_id: int, c_id: int) -> CustomerKey:
        return cls._pack(w_id=w_id, d_id=d_id, c_id=c_id)

    @classmethod
    def from_record(cls, record: Any) -> CustomerKey:
        return cls.create_key(record.c_w_id, record.c_d_id, record.c_id)

    @classmethod
    def from_raw(cls, raw: int) -> CustomerKey:
        """Build a key from its packed integer value."""
        return cls(raw)


class OrderKey(_PackedKey):
    """Key of the ORDER table."""

    w_id = _BitField(40, 16)
    d_id = _BitField(32, 8)
    o_id = _BitField(0, 32)

    @classmethod
    def create_key(cls, w_id: int, d_id: int, o_id: int) -> OrderKey:
        return cls._pack(w_id=w_id, d_id=d_id, o_id=o_id)

    @classmethod
    def from_record(cls, record: Any) -> OrderKey:
        return cls.create_key(record.o_w_id, record.o_d_id, record.o_id)

    @classmethod
    def from_raw(cls, raw: int) -> OrderKey:
        """Build a key from its packed integer value."""
        return cls(raw)


class OrderLineKey(_PackedKey):
    """Key of the ORDER-LINE table."""

    w_id = _BitField(48, 16)
    d_id = _BitField(40, 8)
    o_id = _BitField(8, 32)
    ol_number = _BitField(0, 8)

    @classmethod
    def create_key(cls, w_id: int, d_id: int, o_id: int, ol_number: int) -> OrderLineKey:
        return cls._pack(w_id=w_id, d_id=d_id, o_id=o_id, ol_number=ol_number)

    @classmethod
    def from_record(cls, record: Any) -> OrderLineKey:
        return cls.create_key(record.ol_w_id, record.ol_d_id, record.ol_o_id, record.ol_number)

    @classmethod
    def from_raw(cls, raw: int) -> OrderLineKey:
        """Build a key from its packed integer value."""
        return cls(raw)


class NewOrderKey(_PackedKey):
    """Key of the NEW-ORDER table."""

    w_id = _BitField(40, 16)
    d_id = _BitField(32, 8)
    o_id = _BitField(0, 32)

    @classmethod
    def create_key(cls, w_id: int, d_id: int, o_id: int) -> NewOrderKey:
        return cls._pack(w_id=w_id, d_id=d_id, o_id=o_id)

    @classmethod
    def from_record(cls, record: Any) -> NewOrderKey:
        return cls.create_key(record.no_w_id, record.no_d_id, record.no_o_id)

    @classmethod
    def from_raw(cls, raw: int) -> NewOrderKey:
        """Build a key from its packed integer value."""
        return cls(raw)