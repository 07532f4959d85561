"""
Coordinate List (COO)

An ordered collection of ``(coordinates, value)`` elements over a declared
level-size vector. COO lists are the intermediate representation used to
build storage (``FromCOO``), export it (``ToCOO``) and feed iterators.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from ._dtypes import PrimaryType, check_value_kind, validate_primary
from ._errors import (
    SPT_ERROR_DIMENSION_MISMATCH,
    SPT_ERROR_INDEX_OUT_OF_BOUNDS,
    SPT_ERROR_INVALID_ARGUMENT,
    SparseTensorError,
    check,
)
from ._ownership import OwnershipTracker

logger = logging.getLogger("sptensor.coo")

__all__ = ['Element', 'SparseTensorCOO']


@dataclass(frozen=True)
class Element:
    """One stored entry: a coordinate tuple and its value."""
    coords: Tuple[int, ...]
    value: Any


class SparseTensorCOO:
    """
    Coordinate list for one level space.

    Parameters
    ----------
    lvl_sizes : sequence of int
        Size of every level; coordinates added later must lie inside.
    val_type : PrimaryType or str or numpy dtype, optional
        Value type, defaults to ``F64``. Values are converted on ``add``.

    Notes
    -----
    Elements may be appended in any order. ``sort()`` orders them
    lexicographically by coordinate tuple, first level most significant.
    The list tracks whether it is already sorted, so sorting pre-sorted
    input costs nothing.

    Examples
    --------
    >>> coo = SparseTensorCOO([2, 3])
    >>> coo.add((1, 2), 7.0)
    >>> coo.add((0, 1), 5.0)
    >>> coo.is_sorted
    False
    >>> coo.sort()
    >>> [e.coords for e in coo]
    [(0, 1), (1, 2)]
    """

    def __init__(
        self,
        lvl_sizes: Sequence[int],
        val_type: Union[PrimaryType, str, Any] = PrimaryType.F64,
    ):
        self._lvl_sizes = tuple(int(s) for s in lvl_sizes)
        if not self._lvl_sizes:
            raise SparseTensorError(SPT_ERROR_INVALID_ARGUMENT, "COO rank must be >= 1")
        check(
            all(s > 0 for s in self._lvl_sizes),
            SPT_ERROR_INVALID_ARGUMENT,
            f"level sizes must be positive, got {self._lvl_sizes}",
        )
        self._val_type = validate_primary(val_type)
        self._scalar = self._val_type.dtype.type
        self._elements: List[Element] = []
        self._is_sorted = True
        self._ownership = OwnershipTracker("COO")

    @classmethod
    def from_arrays(
        cls,
        coords: Any,
        values: Any,
        lvl_sizes: Sequence[int],
        val_type: Optional[Union[PrimaryType, str, Any]] = None,
    ) -> 'SparseTensorCOO':
        """Build a COO from an ``(nse, rank)`` coordinate array and values."""
        values = np.asarray(values)
        coords = np.asarray(coords, dtype=np.int64).reshape(len(values), len(lvl_sizes))
        if val_type is None:
            val_type = PrimaryType.from_dtype(values.dtype)
        coo = cls(lvl_sizes, val_type)
        for row, value in zip(coords, values):
            coo.add(tuple(int(c) for c in row), value)
        return coo

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def rank(self) -> int:
        return len(self._lvl_sizes)

    @property
    def lvl_sizes(self) -> Tuple[int, ...]:
        return self._lvl_sizes

    @property
    def val_type(self) -> PrimaryType:
        return self._val_type

    @property
    def nse(self) -> int:
        """Number of stored elements."""
        self._ownership.ensure_valid()
        return len(self._elements)

    @property
    def is_sorted(self) -> bool:
        return self._is_sorted

    @property
    def elements(self) -> Tuple[Element, ...]:
        """Snapshot of the elements in current order."""
        self._ownership.ensure_valid()
        return tuple(self._elements)

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def add(self, lvl_coords: Sequence[int], value: Any) -> None:
        """Append one element; no ordering is required."""
        self._ownership.ensure_valid()
        coords = tuple(int(c) for c in lvl_coords)
        check(
            len(coords) == self.rank,
            SPT_ERROR_DIMENSION_MISMATCH,
            f"expected {self.rank} coordinates, got {len(coords)}",
        )
        check(
            all(0 <= c < s for c, s in zip(coords, self._lvl_sizes)),
            SPT_ERROR_INDEX_OUT_OF_BOUNDS,
            f"coordinates {coords} outside level sizes {self._lvl_sizes}",
        )
        check_value_kind(value, self._val_type)
        if self._is_sorted and self._elements:
            self._is_sorted = self._elements[-1].coords < coords
        self._elements.append(Element(coords, self._scalar(value)))

    def sort(self) -> None:
        """Sort lexicographically by coordinate tuple (stable)."""
        self._ownership.ensure_valid()
        if self._is_sorted:
            return
        self._elements.sort(key=lambda e: e.coords)
        self._is_sorted = True

    # -------------------------------------------------------------------------
    # Iteration and export
    # -------------------------------------------------------------------------

    def __iter__(self) -> Iterator[Element]:
        self._ownership.ensure_valid()
        return iter(self._elements)

    def __len__(self) -> int:
        return self.nse

    def coordinates(self) -> np.ndarray:
        """Coordinates as an ``(nse, rank)`` int64 array."""
        self._ownership.ensure_valid()
        if not self._elements:
            return np.zeros((0, self.rank), dtype=np.int64)
        return np.array([e.coords for e in self._elements], dtype=np.int64)

    def values(self) -> np.ndarray:
        """Values in current order."""
        self._ownership.ensure_valid()
        return np.array([e.value for e in self._elements], dtype=self._val_type.dtype)

    def to_scipy(self):
        """Convert a rank-2 list to ``scipy.sparse.coo_array``."""
        import scipy.sparse as sp

        if self.rank != 2:
            raise ValueError(f"to_scipy requires rank 2, got {self.rank}")
        coords = self.coordinates()
        return sp.coo_array(
            (self.values(), (coords[:, 0], coords[:, 1])), shape=self._lvl_sizes
        )

    # -------------------------------------------------------------------------
    # Lifetime
    # -------------------------------------------------------------------------

    @property
    def is_alive(self) -> bool:
        return self._ownership.is_valid

    def release(self) -> None:
        """Free the elements. The COO cannot be used afterwards."""
        self._ownership.release()
        self._elements = []
        logger.debug("released COO with level sizes %s", self._lvl_sizes)

    def _take(self, holder: Any) -> List[Element]:
        """Transfer ownership of the element list to ``holder``."""
        self._ownership.consume(holder)
        return self._elements

    def _free_from(self, holder: Any) -> None:
        self._ownership.release_from_holder(holder)
        self._elements = []

    def __repr__(self) -> str:
        if not self._ownership.is_valid:
            return f"SparseTensorCOO(lvl_sizes={self._lvl_sizes}, {self._ownership.state.name.lower()})"
        return (f"SparseTensorCOO(lvl_sizes={self._lvl_sizes}, nse={len(self._elements)}, "
                f"val_type={self._val_type.name})")
