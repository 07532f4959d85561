"""
Tests for coordinate lists and their iterators.
"""

import numpy as np
import pytest

from sptensor import (
    CheckConfig,
    Element,
    Ownership,
    PrimaryType,
    SparseTensorCOO,
    SparseTensorError,
    SparseTensorIterator,
    config,
)
from sptensor._errors import (
    SPT_ERROR_DIMENSION_MISMATCH,
    SPT_ERROR_DOUBLE_CONSUME,
    SPT_ERROR_INDEX_OUT_OF_BOUNDS,
    SPT_ERROR_TYPE_ERROR,
    SPT_ERROR_USE_AFTER_RELEASE,
)


# =============================================================================
# SparseTensorCOO
# =============================================================================

class TestCOOBuilding:
    """Test adding and sorting elements."""

    def test_empty(self):
        coo = SparseTensorCOO([4, 5])
        assert coo.rank == 2
        assert coo.lvl_sizes == (4, 5)
        assert coo.nse == 0
        assert coo.is_sorted
        assert coo.val_type is PrimaryType.F64

    def test_add_in_order_stays_sorted(self, coo_2x3):
        assert coo_2x3.nse == 2
        assert coo_2x3.is_sorted

    def test_add_out_of_order(self):
        coo = SparseTensorCOO([2, 3])
        coo.add((1, 2), 7.0)
        coo.add((0, 1), 5.0)
        assert not coo.is_sorted
        coo.sort()
        assert coo.is_sorted
        assert [e.coords for e in coo] == [(0, 1), (1, 2)]
        assert [e.value for e in coo] == [5.0, 7.0]

    def test_sort_is_stable_for_repeats(self):
        coo = SparseTensorCOO([2, 2])
        coo.add((1, 0), 1.0)
        coo.add((0, 0), 2.0)
        coo.add((0, 0), 3.0)
        coo.sort()
        assert [e.value for e in coo] == [2.0, 3.0, 1.0]

    def test_values_converted(self):
        coo = SparseTensorCOO([3], PrimaryType.F32)
        coo.add((2,), 1.5)
        assert coo.values().dtype == np.float32
        assert isinstance(coo.elements[0].value, np.float32)

    def test_out_of_bounds(self):
        coo = SparseTensorCOO([2, 3])
        with pytest.raises(SparseTensorError) as exc_info:
            coo.add((2, 0), 1.0)
        assert exc_info.value.code == SPT_ERROR_INDEX_OUT_OF_BOUNDS

    def test_out_of_bounds_unchecked(self):
        coo = SparseTensorCOO([2, 3])
        with config.local(checks=CheckConfig(enabled=False)):
            coo.add((2, 0), 1.0)
        assert coo.nse == 1

    def test_rank_mismatch(self):
        coo = SparseTensorCOO([2, 3])
        with pytest.raises(SparseTensorError) as exc_info:
            coo.add((1,), 1.0)
        assert exc_info.value.code == SPT_ERROR_DIMENSION_MISMATCH

    def test_complex_into_real(self):
        coo = SparseTensorCOO([2])
        with pytest.raises(SparseTensorError) as exc_info:
            coo.add((0,), 1 + 1j)
        assert exc_info.value.code == SPT_ERROR_TYPE_ERROR

    def test_zero_rank_rejected(self):
        with pytest.raises(SparseTensorError):
            SparseTensorCOO([])


class TestCOOExport:
    """Test array and scipy views of a COO."""

    def test_from_arrays(self):
        coo = SparseTensorCOO.from_arrays([[0, 1], [1, 2]], np.array([5.0, 7.0]), [2, 3])
        assert coo.val_type is PrimaryType.F64
        assert coo.elements == (Element((0, 1), 5.0), Element((1, 2), 7.0))

    def test_coordinates_and_values(self, coo_2x3):
        np.testing.assert_array_equal(coo_2x3.coordinates(), [[0, 1], [1, 2]])
        np.testing.assert_array_equal(coo_2x3.values(), [5.0, 7.0])

    def test_empty_coordinates_shape(self):
        assert SparseTensorCOO([2, 3, 4]).coordinates().shape == (0, 3)

    def test_to_scipy(self, matrix_3x4_entries, dense_matrix_3x4):
        from conftest import make_coo

        coo = make_coo(matrix_3x4_entries, [3, 4])
        np.testing.assert_array_equal(coo.to_scipy().toarray(), dense_matrix_3x4)

    def test_to_scipy_requires_rank_2(self):
        with pytest.raises(ValueError):
            SparseTensorCOO([2, 2, 2]).to_scipy()


class TestCOOLifetime:
    """Test release semantics."""

    def test_release(self, coo_2x3):
        coo_2x3.release()
        assert not coo_2x3.is_alive
        with pytest.raises(SparseTensorError) as exc_info:
            coo_2x3.add((0, 0), 1.0)
        assert exc_info.value.code == SPT_ERROR_USE_AFTER_RELEASE

    def test_double_release(self, coo_2x3):
        coo_2x3.release()
        with pytest.raises(SparseTensorError) as exc_info:
            coo_2x3.release()
        assert exc_info.value.code == SPT_ERROR_USE_AFTER_RELEASE

    def test_repr(self, coo_2x3):
        assert "nse=2" in repr(coo_2x3)
        coo_2x3.release()
        assert "released" in repr(coo_2x3)


# =============================================================================
# SparseTensorIterator
# =============================================================================

class TestIterator:
    """Test the single-owner cursor."""

    def test_yields_in_order_then_none(self, coo_2x3):
        it = SparseTensorIterator(coo_2x3)
        assert it.get_next() == Element((0, 1), 5.0)
        assert it.get_next() == Element((1, 2), 7.0)
        assert it.get_next() is None
        assert it.get_next() is None
        it.release()

    def test_metadata(self, coo_2x3):
        it = SparseTensorIterator(coo_2x3)
        assert it.rank == 2
        assert it.lvl_sizes == (2, 3)
        assert it.val_type is PrimaryType.F64
        it.release()

    def test_python_iteration(self, coo_2x3):
        with SparseTensorIterator(coo_2x3) as it:
            assert [e.coords for e in it] == [(0, 1), (1, 2)]

    def test_takes_ownership(self, coo_2x3):
        it = SparseTensorIterator(coo_2x3)
        assert not coo_2x3.is_alive
        with pytest.raises(SparseTensorError) as exc_info:
            coo_2x3.add((0, 0), 1.0)
        assert exc_info.value.code == SPT_ERROR_USE_AFTER_RELEASE
        # the caller may not release a consumed list
        with pytest.raises(SparseTensorError):
            coo_2x3.release()
        it.release()

    def test_double_consume(self, coo_2x3):
        it = SparseTensorIterator(coo_2x3)
        with pytest.raises(SparseTensorError) as exc_info:
            SparseTensorIterator(coo_2x3)
        assert exc_info.value.code == SPT_ERROR_DOUBLE_CONSUME
        it.release()

    def test_release_frees_coo(self, coo_2x3):
        it = SparseTensorIterator(coo_2x3)
        it.release()
        assert coo_2x3._ownership.state is Ownership.RELEASED
        with pytest.raises(SparseTensorError) as exc_info:
            it.get_next()
        assert exc_info.value.code == SPT_ERROR_USE_AFTER_RELEASE

    def test_context_manager_releases_once(self, coo_2x3):
        with SparseTensorIterator(coo_2x3) as it:
            it.release()
        assert coo_2x3._ownership.state is Ownership.RELEASED
