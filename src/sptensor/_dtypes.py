"""
sptensor DTypes - Overhead, Value and Level Type Definitions

Defines the runtime type tags used to select an engine specialization:
overhead widths for positions/coordinates, primary (value) types, and the
per-level storage annotations.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Union

import ml_dtypes
import numpy as np

from ._errors import SPT_ERROR_OVERFLOW, SPT_ERROR_TYPE_ERROR, check


# =============================================================================
# Overhead Types
# =============================================================================

class OverheadType(IntEnum):
    """
    Unsigned integer widths for position and coordinate arrays.

    ``INDEX`` is the host's native index width; the dispatcher rewrites it
    to ``U64`` before matching.
    """
    INDEX = 0
    U64 = 1
    U32 = 2
    U16 = 3
    U8 = 4

    @property
    def dtype(self) -> np.dtype:
        """Corresponding numpy dtype."""
        return _OVERHEAD_INFO[self]

    @property
    def itemsize(self) -> int:
        return self.dtype.itemsize

    @property
    def max_value(self) -> int:
        """Largest representable value."""
        return int(np.iinfo(self.dtype).max)

    @classmethod
    def from_name(cls, name: str) -> "OverheadType":
        """Get OverheadType from string name (``"u32"``, ``"index"``, ...)."""
        key = name.strip().upper()
        aliases = {"UINT64": "U64", "UINT32": "U32", "UINT16": "U16", "UINT8": "U8"}
        key = aliases.get(key, key)
        try:
            return cls[key]
        except KeyError:
            raise ValueError(f"Unknown overhead type name: {name}") from None


_OVERHEAD_INFO: Dict[OverheadType, np.dtype] = {
    OverheadType.INDEX: np.dtype(np.uint64),
    OverheadType.U64: np.dtype(np.uint64),
    OverheadType.U32: np.dtype(np.uint32),
    OverheadType.U16: np.dtype(np.uint16),
    OverheadType.U8: np.dtype(np.uint8),
}


# =============================================================================
# Primary (Value) Types
# =============================================================================

class PrimaryType(IntEnum):
    """
    Element types of the values array.

    ``C64`` is a pair of doubles and ``C32`` a pair of floats, matching the
    width of each component rather than numpy's total-width naming.
    """
    F64 = 1
    F32 = 2
    F16 = 3
    BF16 = 4
    I64 = 5
    I32 = 6
    I16 = 7
    I8 = 8
    C64 = 9
    C32 = 10

    @property
    def dtype(self) -> np.dtype:
        """Corresponding numpy dtype."""
        return _PRIMARY_INFO[self]["dtype"]

    @property
    def itemsize(self) -> int:
        return self.dtype.itemsize

    @property
    def is_complex(self) -> bool:
        return self in (PrimaryType.C64, PrimaryType.C32)

    @property
    def is_integral(self) -> bool:
        return self in (PrimaryType.I64, PrimaryType.I32, PrimaryType.I16, PrimaryType.I8)

    @property
    def is_floating(self) -> bool:
        return not (self.is_complex or self.is_integral)

    @classmethod
    def from_dtype(cls, dtype: Any) -> "PrimaryType":
        """Get PrimaryType from a numpy dtype (or anything ``np.dtype`` accepts)."""
        dt = np.dtype(dtype)
        for ptype, info in _PRIMARY_INFO.items():
            if info["dtype"] == dt:
                return ptype
        raise ValueError(f"Unsupported value dtype: {dt}")

    @classmethod
    def from_name(cls, name: str) -> "PrimaryType":
        """Get PrimaryType from string name."""
        key = name.strip().upper()
        if key in cls.__members__:
            return cls[key]
        aliases = {
            "DOUBLE": cls.F64,
            "FLOAT": cls.F32,
            "FLOAT64": cls.F64,
            "FLOAT32": cls.F32,
            "FLOAT16": cls.F16,
            "BFLOAT16": cls.BF16,
            "INT64": cls.I64,
            "INT32": cls.I32,
            "INT16": cls.I16,
            "INT8": cls.I8,
        }
        if key in aliases:
            return aliases[key]
        raise ValueError(f"Unknown value type name: {name}")


_PRIMARY_INFO: Dict[PrimaryType, Dict[str, Any]] = {
    PrimaryType.F64: {"dtype": np.dtype(np.float64)},
    PrimaryType.F32: {"dtype": np.dtype(np.float32)},
    PrimaryType.F16: {"dtype": np.dtype(np.float16)},
    PrimaryType.BF16: {"dtype": np.dtype(ml_dtypes.bfloat16)},
    PrimaryType.I64: {"dtype": np.dtype(np.int64)},
    PrimaryType.I32: {"dtype": np.dtype(np.int32)},
    PrimaryType.I16: {"dtype": np.dtype(np.int16)},
    PrimaryType.I8: {"dtype": np.dtype(np.int8)},
    PrimaryType.C64: {"dtype": np.dtype(np.complex128)},
    PrimaryType.C32: {"dtype": np.dtype(np.complex64)},
}


# =============================================================================
# Level Types
# =============================================================================

_NOT_UNIQUE = 1
_NOT_ORDERED = 2


class LevelType(IntEnum):
    """
    Per-level storage annotation.

    The format lives in the high bits (dense=4, compressed=8, singleton=16);
    bit 0 marks a non-unique level and bit 1 a non-ordered level.
    """
    DENSE = 4
    COMPRESSED = 8
    COMPRESSED_NU = 9
    COMPRESSED_NO = 10
    COMPRESSED_NU_NO = 11
    SINGLETON = 16
    SINGLETON_NU = 17
    SINGLETON_NO = 18
    SINGLETON_NU_NO = 19

    @property
    def is_dense(self) -> bool:
        return self is LevelType.DENSE

    @property
    def is_compressed(self) -> bool:
        return (self & ~3) == LevelType.COMPRESSED

    @property
    def is_singleton(self) -> bool:
        return (self & ~3) == LevelType.SINGLETON

    @property
    def is_unique(self) -> bool:
        return not (self & _NOT_UNIQUE)

    @property
    def is_ordered(self) -> bool:
        return not (self & _NOT_ORDERED)

    @classmethod
    def from_name(cls, name: str) -> "LevelType":
        """Parse names like ``"compressed"`` or ``"singleton-nu-no"``."""
        key = name.strip().upper().replace("-", "_").replace("(", "_").replace(")", "")
        key = key.replace(",", "_").replace(" ", "")
        try:
            return cls[key]
        except KeyError:
            raise ValueError(f"Unknown level type: {name}") from None


# =============================================================================
# Type Triple
# =============================================================================

@dataclass(frozen=True)
class TypeTriple:
    """Position width, coordinate width and value type of one specialization."""
    pos: OverheadType
    crd: OverheadType
    val: PrimaryType

    def __str__(self) -> str:
        return f"<P={self.pos.name}, C={self.crd.name}, V={self.val.name}>"


# =============================================================================
# Type Validation
# =============================================================================

def validate_overhead(tp: Union[OverheadType, str, int]) -> OverheadType:
    """Normalize an overhead specification to ``OverheadType``."""
    if isinstance(tp, OverheadType):
        return tp
    if isinstance(tp, str):
        return OverheadType.from_name(tp)
    return OverheadType(int(tp))


def validate_primary(tp: Union[PrimaryType, str, int, np.dtype]) -> PrimaryType:
    """Normalize a value-type specification to ``PrimaryType``."""
    if isinstance(tp, PrimaryType):
        return tp
    if isinstance(tp, str):
        try:
            return PrimaryType.from_name(tp)
        except ValueError:
            return PrimaryType.from_dtype(tp)
    if isinstance(tp, int):
        return PrimaryType(tp)
    return PrimaryType.from_dtype(tp)


def validate_level_type(tp: Union[LevelType, str, int]) -> LevelType:
    """Normalize a level-type specification to ``LevelType``."""
    if isinstance(tp, LevelType):
        return tp
    if isinstance(tp, str):
        return LevelType.from_name(tp)
    return LevelType(int(tp))


def check_overflow_cast(value: int, tp: OverheadType) -> int:
    """Check that ``value`` fits the overhead width without truncation."""
    value = int(value)
    check(
        0 <= value <= tp.max_value,
        SPT_ERROR_OVERFLOW,
        f"value {value} does not fit overhead type {tp.name}",
    )
    return value


def check_value_kind(value: Any, tp: PrimaryType) -> None:
    """Reject complex values destined for a real-valued store."""
    check(
        tp.is_complex or not np.iscomplexobj(value),
        SPT_ERROR_TYPE_ERROR,
        f"complex value cannot be stored as {tp.name}",
    )


__all__ = [
    "OverheadType",
    "PrimaryType",
    "LevelType",
    "TypeTriple",
    "validate_overhead",
    "validate_primary",
    "validate_level_type",
    "check_overflow_cast",
    "check_value_kind",
]
