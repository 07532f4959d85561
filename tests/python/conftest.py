"""
Pytest configuration and shared fixtures for sptensor tests.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add src to path for imports
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root / "src"))

from sptensor import (  # noqa: E402
    Action,
    DimLevelMap,
    LevelType,
    OverheadType,
    PrimaryType,
    SparseTensorCOO,
    SparseTensorStorage,
    TypeTriple,
    config,
    new_sparse_tensor,
)

D = LevelType.DENSE
C = LevelType.COMPRESSED
S = LevelType.SINGLETON
F64_TRIPLE = TypeTriple(OverheadType.U64, OverheadType.U64, PrimaryType.F64)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def reset_config():
    """Restore default configuration after every test."""
    yield
    config.reset()


@pytest.fixture
def coo_2x3():
    """Pre-sorted COO of the 2x3 matrix

    [[0, 5, 0],
     [0, 0, 7]]
    """
    coo = SparseTensorCOO([2, 3], PrimaryType.F64)
    coo.add((0, 1), 5.0)
    coo.add((1, 2), 7.0)
    return coo


@pytest.fixture
def csr_2x3(coo_2x3):
    """Finalized CSR storage (dense, compressed) of ``coo_2x3``."""
    return SparseTensorStorage.new_from_coo(
        [2, 3], [D, C], DimLevelMap.identity(2), F64_TRIPLE, coo_2x3
    )


@pytest.fixture
def matrix_3x4_entries():
    """Entries of the 3x4 matrix

    [[1, 0, 2, 0],
     [0, 3, 0, 4],
     [5, 0, 0, 6]]
    """
    return {
        (0, 0): 1.0, (0, 2): 2.0,
        (1, 1): 3.0, (1, 3): 4.0,
        (2, 0): 5.0, (2, 3): 6.0,
    }


@pytest.fixture
def dense_matrix_3x4():
    return np.array([
        [1, 0, 2, 0],
        [0, 3, 0, 4],
        [5, 0, 0, 6]
    ], dtype=np.float64)


# =============================================================================
# Helper Functions
# =============================================================================

def make_coo(entries, sizes, val_type=PrimaryType.F64):
    """Build a COO from a ``{coords: value}`` mapping (insertion order kept)."""
    coo = SparseTensorCOO(sizes, val_type)
    for coords, value in entries.items():
        coo.add(coords, value)
    return coo


def coo_to_dict(coo, drop_zeros=True):
    """Collect a COO into ``{coords: value}``."""
    out = {}
    for elem in coo:
        if drop_zeros and elem.value == 0:
            continue
        out[elem.coords] = elem.value
    return out


def build(entries, sizes, lvl_types, dim2lvl=None, triple=F64_TRIPLE):
    """Finalized storage from dimension-space entries through the dispatcher."""
    rank = len(sizes)
    dim_map = DimLevelMap(dim2lvl if dim2lvl is not None else range(rank))
    lvl_sizes = dim_map.lvl_sizes(sizes)
    coo = SparseTensorCOO(lvl_sizes, triple.val)
    for coords, value in entries.items():
        coo.add(dim_map.to_lvl(coords), value)
    return new_sparse_tensor(
        sizes, lvl_sizes, lvl_types, dim_map.dim2lvl, dim_map.lvl2dim,
        triple.pos, triple.crd, triple.val, Action.FROM_COO, coo,
    )


def accessor_snapshot(storage):
    """Copies of every accessor output, for before/after comparisons."""
    return (
        [storage.get_positions(l).copy() for l in range(storage.lvl_rank)],
        [storage.get_coordinates(l).copy() for l in range(storage.lvl_rank)],
        storage.get_values().copy(),
    )


def assert_snapshots_equal(a, b):
    for pa, pb in zip(a[0], b[0]):
        np.testing.assert_array_equal(pa, pb)
    for ca, cb in zip(a[1], b[1]):
        np.testing.assert_array_equal(ca, cb)
    np.testing.assert_array_equal(a[2], b[2])
