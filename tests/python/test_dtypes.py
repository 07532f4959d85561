"""
Tests for the overhead, value and level type system.
"""

import ml_dtypes
import numpy as np
import pytest

from sptensor import SparseTensorError
from sptensor._dtypes import (
    LevelType,
    OverheadType,
    PrimaryType,
    TypeTriple,
    check_overflow_cast,
    check_value_kind,
    validate_level_type,
    validate_overhead,
    validate_primary,
)
from sptensor._errors import SPT_ERROR_OVERFLOW, SPT_ERROR_TYPE_ERROR


class TestOverheadType:
    """Test overhead width tags."""

    def test_enum_values(self):
        assert OverheadType.INDEX == 0
        assert OverheadType.U64 == 1
        assert OverheadType.U32 == 2
        assert OverheadType.U16 == 3
        assert OverheadType.U8 == 4

    def test_dtypes(self):
        assert OverheadType.U64.dtype == np.uint64
        assert OverheadType.U32.dtype == np.uint32
        assert OverheadType.U16.dtype == np.uint16
        assert OverheadType.U8.dtype == np.uint8
        # host index width is 64 bits
        assert OverheadType.INDEX.dtype == np.uint64

    def test_max_value(self):
        assert OverheadType.U8.max_value == 255
        assert OverheadType.U16.max_value == 65535
        assert OverheadType.U32.itemsize == 4

    def test_from_name(self):
        assert OverheadType.from_name("u32") is OverheadType.U32
        assert OverheadType.from_name("uint16") is OverheadType.U16
        assert OverheadType.from_name("index") is OverheadType.INDEX

    def test_from_name_unknown(self):
        with pytest.raises(ValueError, match="Unknown overhead type"):
            OverheadType.from_name("u128")


class TestPrimaryType:
    """Test value type tags."""

    def test_enum_values(self):
        assert [int(t) for t in PrimaryType] == list(range(1, 11))

    def test_dtypes(self):
        assert PrimaryType.F64.dtype == np.float64
        assert PrimaryType.F32.dtype == np.float32
        assert PrimaryType.F16.dtype == np.float16
        assert PrimaryType.BF16.dtype == np.dtype(ml_dtypes.bfloat16)
        assert PrimaryType.I8.dtype == np.int8

    def test_complex_naming_follows_component_width(self):
        """C64 is a pair of doubles, C32 a pair of floats."""
        assert PrimaryType.C64.dtype == np.complex128
        assert PrimaryType.C32.dtype == np.complex64

    def test_kind_predicates(self):
        assert PrimaryType.C32.is_complex
        assert not PrimaryType.F64.is_complex
        assert PrimaryType.I16.is_integral
        assert PrimaryType.BF16.is_floating
        assert not PrimaryType.I64.is_floating

    def test_from_dtype(self):
        assert PrimaryType.from_dtype(np.float32) is PrimaryType.F32
        assert PrimaryType.from_dtype(ml_dtypes.bfloat16) is PrimaryType.BF16
        assert PrimaryType.from_dtype("complex128") is PrimaryType.C64

    def test_from_dtype_unsupported(self):
        with pytest.raises(ValueError, match="Unsupported value dtype"):
            PrimaryType.from_dtype(np.uint32)

    def test_from_name_aliases(self):
        assert PrimaryType.from_name("double") is PrimaryType.F64
        assert PrimaryType.from_name("bfloat16") is PrimaryType.BF16
        assert PrimaryType.from_name("i32") is PrimaryType.I32


class TestLevelType:
    """Test level annotations and their property bits."""

    def test_formats(self):
        assert LevelType.DENSE.is_dense
        assert LevelType.COMPRESSED_NU.is_compressed
        assert LevelType.SINGLETON_NU_NO.is_singleton
        assert not LevelType.COMPRESSED.is_singleton

    def test_properties(self):
        assert LevelType.COMPRESSED.is_unique
        assert LevelType.COMPRESSED.is_ordered
        assert not LevelType.COMPRESSED_NU.is_unique
        assert LevelType.COMPRESSED_NU.is_ordered
        assert LevelType.SINGLETON_NO.is_unique
        assert not LevelType.SINGLETON_NO.is_ordered

    def test_from_name(self):
        assert LevelType.from_name("dense") is LevelType.DENSE
        assert LevelType.from_name("compressed-nu") is LevelType.COMPRESSED_NU
        assert LevelType.from_name("singleton_nu_no") is LevelType.SINGLETON_NU_NO

    def test_from_name_unknown(self):
        with pytest.raises(ValueError):
            LevelType.from_name("blocked")


class TestTypeTriple:
    """Test the specialization key."""

    def test_str(self):
        t = TypeTriple(OverheadType.U64, OverheadType.U32, PrimaryType.F64)
        assert str(t) == "<P=U64, C=U32, V=F64>"

    def test_hashable(self):
        a = TypeTriple(OverheadType.U8, OverheadType.U8, PrimaryType.I8)
        b = TypeTriple(OverheadType.U8, OverheadType.U8, PrimaryType.I8)
        assert a == b
        assert len({a, b}) == 1


class TestValidation:
    """Test normalization helpers."""

    def test_validate_overhead(self):
        assert validate_overhead(OverheadType.U16) is OverheadType.U16
        assert validate_overhead("u8") is OverheadType.U8
        assert validate_overhead(2) is OverheadType.U32

    def test_validate_overhead_invalid(self):
        with pytest.raises(ValueError):
            validate_overhead(9)

    def test_validate_primary(self):
        assert validate_primary("f32") is PrimaryType.F32
        assert validate_primary("float64") is PrimaryType.F64
        assert validate_primary(np.dtype(np.int16)) is PrimaryType.I16
        assert validate_primary(9) is PrimaryType.C64

    def test_validate_level_type(self):
        assert validate_level_type(8) is LevelType.COMPRESSED
        assert validate_level_type("singleton") is LevelType.SINGLETON

    def test_overflow_cast(self):
        assert check_overflow_cast(255, OverheadType.U8) == 255
        with pytest.raises(SparseTensorError) as exc_info:
            check_overflow_cast(256, OverheadType.U8)
        assert exc_info.value.code == SPT_ERROR_OVERFLOW

    def test_value_kind(self):
        check_value_kind(1 + 2j, PrimaryType.C32)
        check_value_kind(3.0, PrimaryType.F64)
        with pytest.raises(SparseTensorError) as exc_info:
            check_value_kind(1 + 2j, PrimaryType.F64)
        assert exc_info.value.code == SPT_ERROR_TYPE_ERROR
