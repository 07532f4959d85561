"""
Dimension/Level Mapping

Validated index maps between a tensor's logical dimension space and the
engine's physical level space.
"""

from typing import Iterable, Optional, Sequence, Tuple

import numpy as np

from ._errors import SPT_ERROR_DIMENSION_MISMATCH, SPT_ERROR_INVALID_MAP, SparseTensorError, check

__all__ = ['DimLevelMap']


def _as_index_tuple(values: Iterable[int]) -> Tuple[int, ...]:
    arr = np.asarray(values)
    if arr.ndim != 1:
        raise SparseTensorError(SPT_ERROR_INVALID_MAP, "map arrays must be one-dimensional")
    if arr.size and not np.issubdtype(arr.dtype, np.integer):
        raise SparseTensorError(SPT_ERROR_INVALID_MAP, f"map arrays must be integral, got {arr.dtype}")
    return tuple(int(x) for x in arr)


class DimLevelMap:
    """
    Pair of index arrays translating coordinates between spaces.

    ``dim2lvl[d]`` names the level that dimension ``d`` is scattered into,
    ``lvl2dim[l]`` the dimension that level ``l`` reads from. Maps are value
    objects, validated once at construction.

    Parameters
    ----------
    dim2lvl : sequence of int
        Forward map, length ``dim_rank``.
    lvl2dim : sequence of int, optional
        Inverse map, length ``lvl_rank``. Computed from ``dim2lvl`` when
        omitted, which requires a permutation.
    dim_rank, lvl_rank : int, optional
        Declared ranks; when given, the array lengths must agree.
    bijective : bool, optional
        Require the two arrays to be mutually inverse permutations. Only
        bijective maps are used for coordinate translation; non-bijective
        maps are accepted for bookkeeping so that many-to-one level
        mappings can be layered on later.

    Raises
    ------
    SparseTensorError
        If lengths disagree with the declared ranks, entries are out of
        range, or a bijective map is not a permutation pair.

    Examples
    --------
    >>> m = DimLevelMap([1, 0])          # CSC-style ordering of a matrix
    >>> m.to_lvl((2, 5))
    (5, 2)
    >>> m.to_dim((5, 2))
    (2, 5)
    """

    __slots__ = ('_dim2lvl', '_lvl2dim', '_bijective')

    def __init__(
        self,
        dim2lvl: Sequence[int],
        lvl2dim: Optional[Sequence[int]] = None,
        dim_rank: Optional[int] = None,
        lvl_rank: Optional[int] = None,
        bijective: bool = True,
    ):
        d2l = _as_index_tuple(dim2lvl)
        if lvl2dim is None:
            if not bijective:
                raise SparseTensorError(
                    SPT_ERROR_INVALID_MAP, "a non-bijective map needs an explicit lvl2dim"
                )
            l2d = self._invert(d2l)
        else:
            l2d = _as_index_tuple(lvl2dim)

        if dim_rank is not None and len(d2l) != dim_rank:
            raise SparseTensorError(
                SPT_ERROR_DIMENSION_MISMATCH,
                f"dim2lvl has length {len(d2l)}, expected dimension rank {dim_rank}",
            )
        if lvl_rank is not None and len(l2d) != lvl_rank:
            raise SparseTensorError(
                SPT_ERROR_DIMENSION_MISMATCH,
                f"lvl2dim has length {len(l2d)}, expected level rank {lvl_rank}",
            )
        if not d2l or not l2d:
            raise SparseTensorError(SPT_ERROR_INVALID_MAP, "maps must have rank >= 1")
        if any(l < 0 or l >= len(l2d) for l in d2l):
            raise SparseTensorError(SPT_ERROR_INVALID_MAP, f"dim2lvl {d2l} has out-of-range levels")
        if any(d < 0 or d >= len(d2l) for d in l2d):
            raise SparseTensorError(SPT_ERROR_INVALID_MAP, f"lvl2dim {l2d} has out-of-range dimensions")

        if bijective:
            if len(d2l) != len(l2d):
                raise SparseTensorError(
                    SPT_ERROR_INVALID_MAP,
                    f"bijective map needs equal ranks, got {len(d2l)} and {len(l2d)}",
                )
            if any(l2d[d2l[d]] != d for d in range(len(d2l))):
                raise SparseTensorError(
                    SPT_ERROR_INVALID_MAP,
                    f"dim2lvl {d2l} and lvl2dim {l2d} are not mutual inverses",
                )

        self._dim2lvl = d2l
        self._lvl2dim = l2d
        self._bijective = bijective

    @staticmethod
    def _invert(perm: Tuple[int, ...]) -> Tuple[int, ...]:
        if sorted(perm) != list(range(len(perm))):
            raise SparseTensorError(SPT_ERROR_INVALID_MAP, f"{perm} is not a permutation")
        inv = [0] * len(perm)
        for i, p in enumerate(perm):
            inv[p] = i
        return tuple(inv)

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def identity(cls, rank: int) -> 'DimLevelMap':
        """Identity map of the given rank."""
        return cls(range(rank))

    @classmethod
    def from_permutation(cls, dim2lvl: Sequence[int]) -> 'DimLevelMap':
        """Permutation map; the inverse is derived."""
        return cls(dim2lvl)

    def inverse(self) -> 'DimLevelMap':
        """Map with the roles of the two arrays swapped."""
        return DimLevelMap(self._lvl2dim, self._dim2lvl, bijective=self._bijective)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def dim2lvl(self) -> Tuple[int, ...]:
        return self._dim2lvl

    @property
    def lvl2dim(self) -> Tuple[int, ...]:
        return self._lvl2dim

    @property
    def dim_rank(self) -> int:
        return len(self._dim2lvl)

    @property
    def lvl_rank(self) -> int:
        return len(self._lvl2dim)

    @property
    def is_bijective(self) -> bool:
        return self._bijective

    @property
    def is_identity(self) -> bool:
        return self._bijective and all(l == d for d, l in enumerate(self._dim2lvl))

    # -------------------------------------------------------------------------
    # Translation
    # -------------------------------------------------------------------------

    def to_lvl(self, dim_coords: Sequence[int]) -> Tuple[int, ...]:
        """Scatter dimension coordinates into level slots."""
        check(
            len(dim_coords) == self.dim_rank,
            SPT_ERROR_DIMENSION_MISMATCH,
            f"expected {self.dim_rank} dimension coordinates, got {len(dim_coords)}",
        )
        lvl = [0] * self.lvl_rank
        for d, l in enumerate(self._dim2lvl):
            lvl[l] = int(dim_coords[d])
        return tuple(lvl)

    def to_dim(self, lvl_coords: Sequence[int]) -> Tuple[int, ...]:
        """Scatter level coordinates back into dimension slots."""
        check(
            len(lvl_coords) == self.lvl_rank,
            SPT_ERROR_DIMENSION_MISMATCH,
            f"expected {self.lvl_rank} level coordinates, got {len(lvl_coords)}",
        )
        dim = [0] * self.dim_rank
        for l, d in enumerate(self._lvl2dim):
            dim[d] = int(lvl_coords[l])
        return tuple(dim)

    def lvl_sizes(self, dim_sizes: Sequence[int]) -> Tuple[int, ...]:
        """Level sizes induced by dimension sizes under this map."""
        return tuple(int(dim_sizes[d]) for d in self._lvl2dim)

    # -------------------------------------------------------------------------
    # Value semantics
    # -------------------------------------------------------------------------

    def __eq__(self, other) -> bool:
        if not isinstance(other, DimLevelMap):
            return NotImplemented
        return self._dim2lvl == other._dim2lvl and self._lvl2dim == other._lvl2dim

    def __hash__(self) -> int:
        return hash((self._dim2lvl, self._lvl2dim))

    def __repr__(self) -> str:
        return f"DimLevelMap(dim2lvl={list(self._dim2lvl)}, lvl2dim={list(self._lvl2dim)})"
