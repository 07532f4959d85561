"""
Sparse Tensor Storage Base Class

This module defines the narrow capability interface shared by every engine
specialization. Callers holding an opaque handle only ever see this surface;
the width-specialized engine behind it is chosen by the type-matrix
dispatcher.

Type Hierarchy:

    SparseTensorStorageBase (ABC)
    └── SparseTensorStorage - one instance per (pos, crd, val) triple

Lifecycle:

    construction action ──> INSERTING ──end_insert()──> READY ──release()──> gone
                       └──────────────────────────────> READY  (FromCOO, Pack,
                                                                SparseToSparse)

Insertion (``lex_insert``/``exp_insert``) is allowed only while inserting;
the read accessors are valid only once ready.
"""

from abc import ABC, abstractmethod
from enum import IntEnum
from typing import TYPE_CHECKING, Any, Optional, Sequence, Tuple

import numpy as np

from ._dtypes import LevelType, TypeTriple, validate_level_type
from ._errors import (
    SPT_ERROR_DIMENSION_MISMATCH,
    SPT_ERROR_INDEX_OUT_OF_BOUNDS,
    SPT_ERROR_INVALID_ARGUMENT,
    SPT_ERROR_INVALID_STATE,
    SparseTensorError,
    check,
)
from ._mapping import DimLevelMap
from ._ownership import OwnershipTracker

if TYPE_CHECKING:
    from ._coo import SparseTensorCOO

__all__ = [
    'StorageState',
    'SparseTensorStorageBase',
]


class StorageState(IntEnum):
    """Construction state of a storage handle."""
    INSERTING = 0
    READY = 1


class SparseTensorStorageBase(ABC):
    """
    Abstract base class for all storage specializations.

    Holds the shape metadata common to every specialization: dimension
    sizes, level sizes, level types and the dimension/level map.

    Required Methods (subclasses must implement):
        get_positions(l), get_coordinates(l), get_values()
        lex_insert(coords, value), exp_insert(...), end_insert()
        to_coo(target, val_type)
    """

    def __init__(
        self,
        dim_sizes: Sequence[int],
        lvl_sizes: Sequence[int],
        lvl_types: Sequence[Any],
        dim_map: DimLevelMap,
        triple: TypeTriple,
    ):
        self._dim_sizes = tuple(int(s) for s in dim_sizes)
        self._lvl_sizes = tuple(int(s) for s in lvl_sizes)
        self._lvl_types = tuple(validate_level_type(t) for t in lvl_types)
        self._map = dim_map
        self._triple = triple
        self._state = StorageState.INSERTING
        self._ownership = OwnershipTracker("storage")

        if not self._dim_sizes:
            raise SparseTensorError(SPT_ERROR_INVALID_ARGUMENT, "trivial shape is unsupported")
        if not self._lvl_sizes:
            raise SparseTensorError(SPT_ERROR_INVALID_ARGUMENT, "level rank must be >= 1")
        check(
            all(s > 0 for s in self._dim_sizes),
            SPT_ERROR_INVALID_ARGUMENT,
            "dimension size zero has trivial storage",
        )
        check(
            all(s > 0 for s in self._lvl_sizes),
            SPT_ERROR_INVALID_ARGUMENT,
            "level size zero has trivial storage",
        )
        check(
            len(self._lvl_types) == len(self._lvl_sizes),
            SPT_ERROR_DIMENSION_MISMATCH,
            f"{len(self._lvl_types)} level types for level rank {len(self._lvl_sizes)}",
        )
        check(
            dim_map.dim_rank == len(self._dim_sizes) and dim_map.lvl_rank == len(self._lvl_sizes),
            SPT_ERROR_DIMENSION_MISMATCH,
            f"map ranks ({dim_map.dim_rank}, {dim_map.lvl_rank}) do not match "
            f"sizes ({len(self._dim_sizes)}, {len(self._lvl_sizes)})",
        )
        if dim_map.is_bijective:
            check(
                dim_map.lvl_sizes(self._dim_sizes) == self._lvl_sizes,
                SPT_ERROR_DIMENSION_MISMATCH,
                f"level sizes {self._lvl_sizes} inconsistent with dimension sizes "
                f"{self._dim_sizes} under {dim_map}",
            )

    # =========================================================================
    # Shape Metadata
    # =========================================================================

    @property
    def triple(self) -> TypeTriple:
        """Type triple of this specialization."""
        return self._triple

    @property
    def dim_rank(self) -> int:
        return len(self._dim_sizes)

    @property
    def lvl_rank(self) -> int:
        return len(self._lvl_sizes)

    @property
    def dim_sizes(self) -> Tuple[int, ...]:
        return self._dim_sizes

    @property
    def lvl_sizes(self) -> Tuple[int, ...]:
        return self._lvl_sizes

    @property
    def lvl_types(self) -> Tuple[LevelType, ...]:
        return self._lvl_types

    @property
    def dim_map(self) -> DimLevelMap:
        return self._map

    @property
    def state(self) -> StorageState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is StorageState.READY

    def get_dim_size(self, d: int) -> int:
        """Size of dimension ``d``."""
        check(0 <= d < self.dim_rank, SPT_ERROR_INDEX_OUT_OF_BOUNDS, f"dimension {d} out of range")
        return self._dim_sizes[d]

    def get_lvl_size(self, l: int) -> int:
        """Size of level ``l``."""
        check(0 <= l < self.lvl_rank, SPT_ERROR_INDEX_OUT_OF_BOUNDS, f"level {l} out of range")
        return self._lvl_sizes[l]

    def get_lvl_type(self, l: int) -> LevelType:
        check(0 <= l < self.lvl_rank, SPT_ERROR_INDEX_OUT_OF_BOUNDS, f"level {l} out of range")
        return self._lvl_types[l]

    def is_dense_lvl(self, l: int) -> bool:
        return self.get_lvl_type(l).is_dense

    def is_compressed_lvl(self, l: int) -> bool:
        return self.get_lvl_type(l).is_compressed

    def is_singleton_lvl(self, l: int) -> bool:
        return self.get_lvl_type(l).is_singleton

    def is_unique_lvl(self, l: int) -> bool:
        return self.get_lvl_type(l).is_unique

    def is_ordered_lvl(self, l: int) -> bool:
        return self.get_lvl_type(l).is_ordered

    # =========================================================================
    # State Guards
    # =========================================================================

    def _ensure_alive(self) -> None:
        self._ownership.ensure_valid()

    def _ensure_ready(self, what: str) -> None:
        self._ownership.ensure_valid()
        check(self.is_ready, SPT_ERROR_INVALID_STATE, f"{what} requires end_insert() first")

    def _ensure_inserting(self, what: str) -> None:
        self._ownership.ensure_valid()
        check(
            not self.is_ready,
            SPT_ERROR_INVALID_STATE,
            f"{what} is not allowed after the storage was finalized",
        )

    # =========================================================================
    # Abstract Methods - Accessors
    # =========================================================================

    @abstractmethod
    def get_positions(self, l: int) -> np.ndarray:
        """Positions array of level ``l`` (empty unless compressed)."""
        ...

    @abstractmethod
    def get_coordinates(self, l: int) -> np.ndarray:
        """Coordinates array of level ``l`` (empty for dense levels)."""
        ...

    @abstractmethod
    def get_values(self) -> np.ndarray:
        """Values array."""
        ...

    # =========================================================================
    # Abstract Methods - Insertion
    # =========================================================================

    @abstractmethod
    def lex_insert(self, lvl_coords: Sequence[int], value: Any) -> None:
        """Insert one element; calls must arrive in lexicographic order."""
        ...

    @abstractmethod
    def exp_insert(
        self,
        lvl_coords: np.ndarray,
        values: np.ndarray,
        filled: np.ndarray,
        added: np.ndarray,
        count: int,
        expsz: Optional[int] = None,
    ) -> None:
        """Compress one expanded innermost segment into storage."""
        ...

    @abstractmethod
    def end_insert(self) -> None:
        """Finalize insertion."""
        ...

    # =========================================================================
    # Abstract Methods - Export
    # =========================================================================

    @abstractmethod
    def to_coo(self, target: Optional[DimLevelMap] = None, val_type: Any = None) -> 'SparseTensorCOO':
        """Materialize all stored entries into a new COO."""
        ...

    # =========================================================================
    # Lifetime
    # =========================================================================

    @property
    def is_alive(self) -> bool:
        return self._ownership.is_valid

    def release(self) -> None:
        """Free the storage. Every later call on the handle is rejected."""
        self._ownership.release()
        self._release_buffers()

    def _release_buffers(self) -> None:
        pass

    # =========================================================================
    # Magic Methods
    # =========================================================================

    def __repr__(self) -> str:
        types = ", ".join(t.name.lower() for t in self._lvl_types)
        return (f"{self.__class__.__name__}("
                f"dim_sizes={self._dim_sizes}, lvl_types=[{types}], "
                f"triple={self._triple}, state={self._state.name.lower()})")

    def __str__(self) -> str:
        return self.__repr__()
