"""
Tests for the handle-based runtime entry points.
"""

import numpy as np
import pytest

from conftest import C, D, coo_to_dict
from sptensor import (
    Action,
    LevelType,
    OverheadType,
    PrimaryType,
    SparseTensorCOO,
    SparseTensorError,
    SparseTensorIterator,
)
from sptensor import runtime as rt
from sptensor._errors import (
    SPT_ERROR_DIMENSION_MISMATCH,
    SPT_ERROR_INVALID_ARGUMENT,
    SPT_ERROR_NON_UNIT_STRIDE,
    SPT_ERROR_NULL_HANDLE,
    SPT_ERROR_TYPE_MISMATCH,
    SPT_ERROR_USE_AFTER_RELEASE,
)

INDEX = OverheadType.INDEX
F64 = PrimaryType.F64


def new_tensor(action=Action.EMPTY, ptr=None, sizes=(2, 3), lvl_types=(D, C), dim2lvl=(0, 1)):
    lvl2dim = np.argsort(dim2lvl)
    lvl_sizes = np.asarray(sizes)[lvl2dim]
    return rt.new_sparse_tensor(
        np.asarray(sizes, dtype=np.uint64),
        lvl_sizes.astype(np.uint64),
        np.asarray([int(t) for t in lvl_types], dtype=np.uint8),
        np.asarray(dim2lvl, dtype=np.uint64),
        lvl2dim.astype(np.uint64),
        INDEX, INDEX, F64, action, ptr,
    )


def filled_tensor():
    t = new_tensor()
    rt.lex_insert(t, np.array([0, 1], dtype=np.uint64), 5.0)
    rt.lex_insert(t, np.array([1, 2], dtype=np.uint64), 7.0)
    rt.end_insert(t)
    return t


# =============================================================================
# Buffer Checks
# =============================================================================

class TestBuffers:
    """Test rank, stride and pairing checks on caller buffers."""

    def test_non_unit_stride(self):
        sizes = np.array([2, 0, 3, 0], dtype=np.uint64)[::2]
        with pytest.raises(SparseTensorError) as exc_info:
            rt.new_sparse_tensor(sizes, [2, 3], [D, C], [0, 1], [0, 1], INDEX, INDEX, F64, Action.EMPTY)
        assert exc_info.value.code == SPT_ERROR_NON_UNIT_STRIDE

    def test_two_dimensional_buffer(self):
        with pytest.raises(SparseTensorError) as exc_info:
            rt.new_sparse_tensor([[2, 3]], [2, 3], [D, C], [0, 1], [0, 1], INDEX, INDEX, F64, Action.EMPTY)
        assert exc_info.value.code == SPT_ERROR_DIMENSION_MISMATCH

    def test_level_types_size_mismatch(self):
        with pytest.raises(SparseTensorError) as exc_info:
            rt.new_sparse_tensor([2, 3], [2, 3], [D], [0, 1], [0, 1], INDEX, INDEX, F64, Action.EMPTY)
        assert exc_info.value.code == SPT_ERROR_DIMENSION_MISMATCH

    def test_dim2lvl_size_mismatch(self):
        with pytest.raises(SparseTensorError) as exc_info:
            rt.new_sparse_tensor([2, 3], [2, 3], [D, C], [0], [0, 1], INDEX, INDEX, F64, Action.EMPTY)
        assert exc_info.value.code == SPT_ERROR_DIMENSION_MISMATCH

    def test_array_likes_accepted(self):
        t = rt.new_sparse_tensor([2, 3], [2, 3], [D, C], [0, 1], [0, 1], INDEX, INDEX, F64, Action.EMPTY)
        rt.end_insert(t)
        assert rt.sparse_lvl_size(t, 1) == 3


# =============================================================================
# Accessors
# =============================================================================

class TestAccessors:
    """Test aliasing accessors and size queries."""

    def test_values_alias_storage(self):
        t = filled_tensor()
        values = rt.sparse_values(t)
        np.testing.assert_array_equal(values, [5.0, 7.0])
        assert np.shares_memory(values, t.get_values())

    def test_positions_and_coordinates(self):
        t = filled_tensor()
        np.testing.assert_array_equal(rt.sparse_positions(t, 1), [0, 1, 2])
        np.testing.assert_array_equal(rt.sparse_coordinates(t, 1), [1, 2])
        assert rt.sparse_positions(t, 0).size == 0

    def test_typed_access(self):
        t = filled_tensor()
        rt.sparse_values(t, F64)
        rt.sparse_positions(t, 1, OverheadType.U64)
        rt.sparse_coordinates(t, 1, INDEX)

    def test_typed_access_mismatch(self):
        t = filled_tensor()
        with pytest.raises(SparseTensorError) as exc_info:
            rt.sparse_values(t, PrimaryType.F32)
        assert exc_info.value.code == SPT_ERROR_TYPE_MISMATCH
        with pytest.raises(SparseTensorError):
            rt.sparse_coordinates(t, 1, OverheadType.U32)

    def test_sizes(self):
        t = new_tensor(sizes=(3, 4), dim2lvl=(1, 0))
        assert rt.sparse_dim_size(t, 0) == 3
        assert rt.sparse_lvl_size(t, 0) == 4

    def test_null_handle(self):
        with pytest.raises(SparseTensorError) as exc_info:
            rt.sparse_values(None)
        assert exc_info.value.code == SPT_ERROR_NULL_HANDLE

    def test_wrong_handle_kind(self, coo_2x3):
        with pytest.raises(SparseTensorError) as exc_info:
            rt.sparse_values(coo_2x3)
        assert exc_info.value.code == SPT_ERROR_TYPE_MISMATCH


# =============================================================================
# COO and Iterator
# =============================================================================

class TestCOOEntryPoints:
    """Test add_elt and get_next."""

    def test_add_elt_scatters_coordinates(self):
        coo = new_tensor(Action.EMPTY_COO, sizes=(3, 4), dim2lvl=(1, 0))
        assert rt.add_elt(coo, 2.5, np.array([2, 3]), np.array([1, 0])) is coo
        assert coo.elements[0].coords == (3, 2)
        assert coo.elements[0].value == 2.5

    def test_add_elt_rank_mismatch(self):
        coo = SparseTensorCOO([3, 4])
        with pytest.raises(SparseTensorError) as exc_info:
            rt.add_elt(coo, 1.0, np.array([2, 3]), np.array([0]))
        assert exc_info.value.code == SPT_ERROR_DIMENSION_MISMATCH

    def test_build_from_added_elements(self):
        coo = new_tensor(Action.EMPTY_COO)
        rt.add_elt(coo, 7.0, [1, 2], [0, 1])
        rt.add_elt(coo, 5.0, [0, 1], [0, 1])
        t = new_tensor(Action.FROM_COO, coo)
        np.testing.assert_array_equal(rt.sparse_values(t), [5.0, 7.0])

    def test_get_next(self):
        t = filled_tensor()
        it = new_tensor(Action.TO_ITERATOR, t)
        assert isinstance(it, SparseTensorIterator)
        coords = np.zeros(2, dtype=np.uint64)
        value = np.zeros(1)
        assert rt.get_next(it, coords, value)
        np.testing.assert_array_equal(coords, [0, 1])
        assert value[0] == 5.0
        assert rt.get_next(it, coords, value)
        np.testing.assert_array_equal(coords, [1, 2])
        assert value[0] == 7.0
        assert not rt.get_next(it, coords, value)
        # exhausted: buffers untouched
        np.testing.assert_array_equal(coords, [1, 2])
        rt.del_sparse_tensor_iterator(it)

    def test_get_next_requires_arrays(self, coo_2x3):
        it = SparseTensorIterator(coo_2x3)
        with pytest.raises(SparseTensorError) as exc_info:
            rt.get_next(it, [0, 0], np.zeros(1))
        assert exc_info.value.code == SPT_ERROR_INVALID_ARGUMENT
        it.release()


# =============================================================================
# Insertion
# =============================================================================

class TestInsertion:
    """Test insertion entry points."""

    def test_exp_insert(self):
        t = new_tensor()
        values = np.array([0.0, 4.0, 6.0])
        filled = np.array([False, True, True])
        added = np.array([2, 1], dtype=np.uint64)
        rt.exp_insert(t, np.array([1, 0], dtype=np.uint64), values, filled, added, 2)
        rt.end_insert(t)
        assert coo_to_dict(t.to_coo()) == {(1, 1): 4.0, (1, 2): 6.0}
        assert not filled.any()

    def test_exp_insert_paired_sizes(self):
        t = new_tensor()
        with pytest.raises(SparseTensorError) as exc_info:
            rt.exp_insert(t, np.array([0, 0]), np.zeros(3), np.zeros(2, dtype=bool),
                          np.zeros(3, dtype=np.uint64), 0)
        assert exc_info.value.code == SPT_ERROR_DIMENSION_MISMATCH

    def test_lex_insert_strided_coordinates(self):
        t = new_tensor()
        coords = np.array([0, 9, 1, 9], dtype=np.uint64)[::2]
        with pytest.raises(SparseTensorError) as exc_info:
            rt.lex_insert(t, coords, 1.0)
        assert exc_info.value.code == SPT_ERROR_NON_UNIT_STRIDE


# =============================================================================
# Release and Output
# =============================================================================

class TestRelease:
    """Test release entry points."""

    def test_del_sparse_tensor(self):
        t = filled_tensor()
        rt.del_sparse_tensor(t)
        with pytest.raises(SparseTensorError) as exc_info:
            rt.sparse_values(t)
        assert exc_info.value.code == SPT_ERROR_USE_AFTER_RELEASE

    def test_del_coo(self, coo_2x3):
        rt.del_sparse_tensor_coo(coo_2x3)
        with pytest.raises(SparseTensorError):
            rt.del_sparse_tensor_coo(coo_2x3)

    def test_del_consumed_coo_rejected(self, coo_2x3):
        new_tensor(Action.FROM_COO, coo_2x3)
        with pytest.raises(SparseTensorError):
            rt.del_sparse_tensor_coo(coo_2x3)

    def test_out_sparse_tensor(self, tmp_path):
        coo = SparseTensorCOO([2, 3])
        coo.add((1, 2), 7.0)
        coo.add((0, 1), 5.0)
        dest = tmp_path / "out.tns"
        rt.out_sparse_tensor(coo, dest, True)
        lines = dest.read_text().splitlines()
        assert lines == [
            "; extended FROSTT format",
            "2 2",
            "2 3",
            "1 2 5.0",
            "2 3 7.0",
        ]

    def test_out_sparse_tensor_unsorted(self, tmp_path):
        coo = SparseTensorCOO([2, 3])
        coo.add((1, 2), 7.0)
        coo.add((0, 1), 5.0)
        dest = tmp_path / "out.tns"
        rt.out_sparse_tensor(coo, dest, False)
        assert dest.read_text().splitlines()[3] == "2 3 7.0"

    def test_level_types_as_names(self):
        t = rt.new_sparse_tensor(
            [2, 3], [2, 3], [LevelType.DENSE, LevelType.COMPRESSED], [0, 1], [0, 1],
            "index", "u32", "f64", Action.EMPTY,
        )
        assert t.triple.crd is OverheadType.U32
