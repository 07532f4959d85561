"""
Sparse Tensor Storage Engine

Per-level storage of a sparse tensor, parameterized by a type triple
(position width, coordinate width, value type).

Physical Layout:

    For every level ``l`` of type
        dense       - nothing stored; the level is implied by its size
        compressed  - positions[l] (segment boundaries) and coordinates[l]
        singleton   - coordinates[l] only (one entry per parent position)

    values holds one entry per stored position of the last level.

    Example: CSR of [[0, 5, 0], [0, 0, 7]] with level types (dense, compressed)

        positions[1]   = [0, 1, 2]
        coordinates[1] = [1, 2]
        values         = [5.0, 7.0]

Construction Paths:

    new_empty                 - INSERTING; fill with lex_insert / exp_insert
    new_from_coo              - READY; consumes a COO
    new_from_sparse_tensor    - READY; re-expresses another storage
    pack_from_lvl_buffers     - READY; copies caller-provided level buffers

All-dense storage created empty is pre-sized with zeros so that insertion
writes in place and may arrive in any order.
"""

import logging
from typing import Any, List, Optional, Sequence

import numpy as np

from ._base import SparseTensorStorageBase, StorageState
from ._coo import Element, SparseTensorCOO
from ._dtypes import PrimaryType, TypeTriple, check_value_kind, validate_primary
from ._errors import (
    SPT_ERROR_DIMENSION_MISMATCH,
    SPT_ERROR_DUPLICATE,
    SPT_ERROR_INDEX_OUT_OF_BOUNDS,
    SPT_ERROR_INSUFFICIENT_CAPACITY,
    SPT_ERROR_INVALID_ARGUMENT,
    SPT_ERROR_INVALID_MAP,
    SPT_ERROR_NON_LEXICOGRAPHIC,
    SPT_ERROR_OVERFLOW,
    check,
)
from ._mapping import DimLevelMap
from ._vector import Vector

logger = logging.getLogger("sptensor.storage")

__all__ = ['SparseTensorStorage']


class SparseTensorStorage(SparseTensorStorageBase):
    """
    Storage engine for one type triple.

    Instances are normally obtained through ``new_sparse_tensor``, which
    picks the triple from runtime type tags. The classmethods below are the
    typed entry points used by the dispatcher.

    Attributes:
        triple (TypeTriple): Widths of positions/coordinates and value type
        dim_sizes, lvl_sizes (tuple): Shape in both index spaces
        lvl_types (tuple): Per-level storage annotation
    """

    def __init__(
        self,
        dim_sizes: Sequence[int],
        lvl_sizes: Sequence[int],
        lvl_types: Sequence[Any],
        dim_map: DimLevelMap,
        triple: TypeTriple,
        presize_dense: bool = True,
    ):
        super().__init__(dim_sizes, lvl_sizes, lvl_types, dim_map, triple)
        rank = self.lvl_rank
        pos_t, crd_t = triple.pos, triple.crd
        self._positions: List[Vector] = [Vector(pos_t.dtype, overhead=pos_t) for _ in range(rank)]
        self._coordinates: List[Vector] = [Vector(crd_t.dtype, overhead=crd_t) for _ in range(rank)]
        self._values = Vector(triple.val.dtype)
        self._lvl_cursor = [0] * rank

        sz = 1
        all_dense = True
        for l, lt in enumerate(self._lvl_types):
            if lt.is_compressed or lt.is_singleton:
                check(
                    self._lvl_sizes[l] - 1 <= crd_t.max_value,
                    SPT_ERROR_OVERFLOW,
                    f"level {l} of size {self._lvl_sizes[l]} does not fit coordinate type {crd_t.name}",
                )
            if lt.is_compressed:
                self._positions[l].reserve(sz + 1)
                self._positions[l].push_back(0)
                self._coordinates[l].reserve(sz)
                sz = 1
                all_dense = False
            elif lt.is_singleton:
                self._coordinates[l].reserve(sz)
                sz = 1
                all_dense = False
            else:
                sz *= self._lvl_sizes[l]
        self._all_dense = all_dense
        if all_dense and presize_dense:
            self._values.resize(sz, 0)

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def new_empty(
        cls,
        dim_sizes: Sequence[int],
        lvl_sizes: Sequence[int],
        lvl_types: Sequence[Any],
        dim_map: DimLevelMap,
        triple: TypeTriple,
    ) -> 'SparseTensorStorage':
        """Empty storage ready for insertion."""
        storage = cls(dim_sizes, lvl_sizes, lvl_types, dim_map, triple)
        logger.debug("new empty storage %s", storage)
        return storage

    @classmethod
    def new_from_coo(
        cls,
        dim_sizes: Sequence[int],
        lvl_types: Sequence[Any],
        dim_map: DimLevelMap,
        triple: TypeTriple,
        coo: SparseTensorCOO,
    ) -> 'SparseTensorStorage':
        """
        Build finalized storage from a level-space COO and consume it.

        The COO is sorted first when it is not already in lexicographic
        order. On success it is released; the caller must not touch it.
        """
        storage = cls(dim_sizes, coo.lvl_sizes, lvl_types, dim_map, triple, presize_dense=False)
        sorted_input = coo.is_sorted
        elements = coo._take(storage)
        try:
            if not sorted_input:
                elements.sort(key=lambda e: e.coords)
            storage._check_unique_elements(elements)
            storage._values.reserve(len(elements))
            if elements:
                storage._from_coo_segment(elements, 0, len(elements), 0)
            else:
                storage._finalize_segment(0)
        finally:
            coo._free_from(storage)
        storage._state = StorageState.READY
        logger.debug("built storage from %d COO elements: %s", len(elements), storage)
        return storage

    @classmethod
    def new_from_sparse_tensor(
        cls,
        dim_sizes: Sequence[int],
        lvl_sizes: Sequence[int],
        lvl_types: Sequence[Any],
        dim_map: DimLevelMap,
        triple: TypeTriple,
        source: SparseTensorStorageBase,
    ) -> 'SparseTensorStorage':
        """
        Re-express ``source`` with new level types, map or widths.

        Both storages share the same dimension space. ``source`` stays
        owned by the caller.
        """
        check(
            tuple(int(s) for s in dim_sizes) == source.dim_sizes,
            SPT_ERROR_DIMENSION_MISMATCH,
            f"dimension sizes {tuple(dim_sizes)} do not match source {source.dim_sizes}",
        )
        src_map = source.dim_map
        check(
            src_map.is_bijective and dim_map.is_bijective,
            SPT_ERROR_INVALID_MAP,
            "sparse-to-sparse conversion requires bijective maps",
        )
        src2dst = DimLevelMap([dim_map.dim2lvl[d] for d in src_map.lvl2dim])
        check(
            src2dst.lvl_sizes(source.lvl_sizes) == tuple(int(s) for s in lvl_sizes),
            SPT_ERROR_DIMENSION_MISMATCH,
            f"level sizes {tuple(lvl_sizes)} inconsistent with map {dim_map}",
        )
        coo = source.to_coo(src2dst, triple.val)
        return cls.new_from_coo(dim_sizes, lvl_types, dim_map, triple, coo)

    @classmethod
    def pack_from_lvl_buffers(
        cls,
        dim_sizes: Sequence[int],
        lvl_sizes: Sequence[int],
        lvl_types: Sequence[Any],
        dim_map: DimLevelMap,
        triple: TypeTriple,
        buffers: Sequence[Any],
    ) -> 'SparseTensorStorage':
        """
        Build finalized storage by copying externally provided buffers.

        ``buffers`` lists, level by level, a positions and a coordinates
        buffer for each compressed level (nothing for dense levels). A
        trailing COO region, starting at the first non-unique compressed
        level, is given as its positions buffer followed by one
        array-of-structs coordinate buffer holding every trailing level.
        The values buffer comes last. Buffers are copied, never aliased.
        """
        storage = cls(dim_sizes, lvl_sizes, lvl_types, dim_map, triple, presize_dense=False)
        rank = storage.lvl_rank
        bufs = [np.asarray(b) for b in buffers]

        def take(idx: int) -> np.ndarray:
            check(
                idx < len(bufs),
                SPT_ERROR_INVALID_ARGUMENT,
                f"expected more than {len(bufs)} level buffers",
            )
            return bufs[idx].reshape(-1)

        trail_start = rank
        parent_sz = 1
        buf_idx = 0
        for l, lt in enumerate(storage._lvl_types):
            if lt.is_compressed and not lt.is_unique:
                trail_start = l
                break
            check(
                not lt.is_singleton,
                SPT_ERROR_INVALID_ARGUMENT,
                f"singleton level {l} outside a trailing COO region",
            )
            if lt.is_compressed:
                pos, crd = take(buf_idx), take(buf_idx + 1)
                buf_idx += 2
                storage._assign_positions(l, pos, parent_sz)
                storage._assign_coordinates(l, crd, int(storage._positions[l][parent_sz]))
            parent_sz = storage._assembled_size(parent_sz, l)

        if trail_start < rank:
            trail = rank - trail_start
            pos, aos = take(buf_idx), take(buf_idx + 1)
            buf_idx += 2
            storage._assign_positions(trail_start, pos, parent_sz)
            crd_len = int(storage._positions[trail_start][parent_sz])
            check(
                aos.size >= crd_len * trail,
                SPT_ERROR_INSUFFICIENT_CAPACITY,
                f"trailing COO buffer holds {aos.size} coordinates, need {crd_len * trail}",
            )
            aos = aos[:crd_len * trail].reshape(crd_len, trail)
            for l in range(trail_start, rank):
                if l > trail_start:
                    check(
                        storage._lvl_types[l].is_singleton,
                        SPT_ERROR_INVALID_ARGUMENT,
                        f"level {l} inside the trailing COO region must be singleton",
                    )
                storage._coordinates[l].assign(aos[:, l - trail_start])
            parent_sz = storage._assembled_size(parent_sz, trail_start)

        values = take(buf_idx)
        check(
            values.size >= parent_sz,
            SPT_ERROR_INSUFFICIENT_CAPACITY,
            f"values buffer holds {values.size} entries, need {parent_sz}",
        )
        storage._values.assign(values[:parent_sz])
        storage._state = StorageState.READY
        logger.debug("packed storage from %d buffers: %s", len(bufs), storage)
        return storage

    def _assign_positions(self, l: int, pos: np.ndarray, parent_sz: int) -> None:
        check(
            pos.size >= parent_sz + 1,
            SPT_ERROR_INSUFFICIENT_CAPACITY,
            f"positions buffer of level {l} holds {pos.size} entries, need {parent_sz + 1}",
        )
        self._positions[l].assign(pos[:parent_sz + 1])

    def _assign_coordinates(self, l: int, crd: np.ndarray, count: int) -> None:
        check(
            crd.size >= count,
            SPT_ERROR_INSUFFICIENT_CAPACITY,
            f"coordinates buffer of level {l} holds {crd.size} entries, need {count}",
        )
        self._coordinates[l].assign(crd[:count])

    def _assembled_size(self, parent_sz: int, l: int) -> int:
        """Number of positions in level ``l`` given its parent's count."""
        lt = self._lvl_types[l]
        if lt.is_compressed:
            return int(self._positions[l][parent_sz])
        if lt.is_singleton:
            return len(self._coordinates[l])
        return parent_sz * self._lvl_sizes[l]

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def nse(self) -> int:
        """Number of entries in the values array (explicit zeros included)."""
        self._ensure_alive()
        return len(self._values)

    def get_positions(self, l: int) -> np.ndarray:
        self._ensure_ready("get_positions")
        check(0 <= l < self.lvl_rank, SPT_ERROR_INDEX_OUT_OF_BOUNDS, f"level {l} out of range")
        return self._positions[l].view()

    def get_coordinates(self, l: int) -> np.ndarray:
        self._ensure_ready("get_coordinates")
        check(0 <= l < self.lvl_rank, SPT_ERROR_INDEX_OUT_OF_BOUNDS, f"level {l} out of range")
        return self._coordinates[l].view()

    def get_values(self) -> np.ndarray:
        self._ensure_ready("get_values")
        return self._values.view()

    # =========================================================================
    # Lexicographic Insertion
    # =========================================================================

    def lex_insert(self, lvl_coords: Sequence[int], value: Any) -> None:
        """
        Insert one element at level coordinates ``lvl_coords``.

        Calls must arrive in strictly increasing lexicographic order, except
        that equal coordinates may repeat on non-unique levels and decrease on
        non-ordered levels. All-dense storage accepts any order and
        overwrites in place.
        """
        self._ensure_inserting("lex_insert")
        coords = self._checked_coords(lvl_coords)
        check_value_kind(value, self._triple.val)

        if self._all_dense:
            idx = 0
            for l, c in enumerate(coords):
                idx = idx * self._lvl_sizes[l] + c
            self._values[idx] = value
            return

        diff_lvl = 0
        full = 0
        if len(self._values) > 0:
            diff_lvl = self._lex_diff(coords)
            self._end_path(diff_lvl + 1)
            full = self._lvl_cursor[diff_lvl] + 1
        self._ins_path(coords, diff_lvl, full, value)

    def _checked_coords(self, lvl_coords: Sequence[int]) -> tuple:
        coords = tuple(int(c) for c in lvl_coords)
        check(
            len(coords) == self.lvl_rank,
            SPT_ERROR_DIMENSION_MISMATCH,
            f"expected {self.lvl_rank} level coordinates, got {len(coords)}",
        )
        check(
            all(0 <= c < s for c, s in zip(coords, self._lvl_sizes)),
            SPT_ERROR_INDEX_OUT_OF_BOUNDS,
            f"coordinates {coords} outside level sizes {self._lvl_sizes}",
        )
        return coords

    def _lex_diff(self, coords: tuple) -> int:
        """First level at which ``coords`` departs from the insertion cursor."""
        for l in range(self.lvl_rank):
            crd, cur = coords[l], self._lvl_cursor[l]
            lt = self._lvl_types[l]
            if crd > cur or (crd == cur and not lt.is_unique) or (crd < cur and not lt.is_ordered):
                return l
            if crd < cur:
                check(
                    False,
                    SPT_ERROR_NON_LEXICOGRAPHIC,
                    f"coordinates {coords} inserted after {tuple(self._lvl_cursor)}",
                )
                return l
        check(False, SPT_ERROR_DUPLICATE, f"duplicate insertion at {coords}")
        return self.lvl_rank - 1

    def _append_pos(self, l: int, pos: int, count: int = 1) -> None:
        self._positions[l].extend_fill(count, pos)

    def _append_crd(self, l: int, full: int, crd: int) -> None:
        """Append coordinate ``crd`` at level ``l``; dense levels zero-fill the gap."""
        lt = self._lvl_types[l]
        if not lt.is_dense:
            self._coordinates[l].push_back(crd)
            return
        check(crd >= full, SPT_ERROR_NON_LEXICOGRAPHIC, f"dense coordinate {crd} before {full}")
        if crd > full:
            if l + 1 == self.lvl_rank:
                self._values.extend_fill(crd - full, 0)
            else:
                self._finalize_segment(l + 1, 0, crd - full)

    def _finalize_segment(self, l: int, full: int = 0, count: int = 1) -> None:
        """Close ``count`` segments of level ``l`` whose first ``full`` entries exist."""
        if count == 0:
            return
        lt = self._lvl_types[l]
        if lt.is_compressed:
            self._append_pos(l, len(self._coordinates[l]), count)
        elif lt.is_singleton:
            return
        else:
            sz = self._lvl_sizes[l]
            check(sz >= full, SPT_ERROR_INDEX_OUT_OF_BOUNDS, f"segment overflow at level {l}")
            count *= sz - full
            if l + 1 == self.lvl_rank:
                self._values.extend_fill(count, 0)
            else:
                self._finalize_segment(l + 1, 0, count)

    def _end_path(self, diff_lvl: int) -> None:
        """Close the open segments of every level at or below ``diff_lvl``."""
        for l in range(self.lvl_rank - 1, diff_lvl - 1, -1):
            self._finalize_segment(l, self._lvl_cursor[l] + 1)

    def _ins_path(self, coords: Sequence[int], diff_lvl: int, full: int, value: Any) -> None:
        """Append the path from ``diff_lvl`` down to the value."""
        for l in range(diff_lvl, self.lvl_rank):
            c = int(coords[l])
            self._append_crd(l, full, c)
            full = 0
            self._lvl_cursor[l] = c
        self._values.push_back(value)

    # =========================================================================
    # Expanded Insertion
    # =========================================================================

    def exp_insert(
        self,
        lvl_coords: np.ndarray,
        values: np.ndarray,
        filled: np.ndarray,
        added: np.ndarray,
        count: int,
        expsz: Optional[int] = None,
    ) -> None:
        """
        Insert one dense-expanded innermost segment.

        ``lvl_coords`` holds the outer coordinates; its last slot is
        overwritten. The first ``count`` entries of ``added`` name the
        innermost coordinates set in ``values``/``filled``; they are sorted
        in place. Every consumed slot is reset (value zero, filled false) so
        the scratch arrays can be reused for the next segment.
        """
        self._ensure_inserting("exp_insert")
        count = int(count)
        if expsz is not None:
            check(
                count <= expsz and len(values) >= expsz and len(filled) >= expsz,
                SPT_ERROR_INSUFFICIENT_CAPACITY,
                f"expanded access pattern of size {expsz} cannot hold {count} entries",
            )
        check(
            0 <= count <= len(added),
            SPT_ERROR_INSUFFICIENT_CAPACITY,
            f"count {count} exceeds added buffer of length {len(added)}",
        )
        if count == 0:
            return

        added[:count] = sorted(int(a) for a in added[:count])
        last = self.lvl_rank - 1
        prev = -1
        for i in range(count):
            c = int(added[i])
            check(c > prev, SPT_ERROR_DUPLICATE, f"expanded coordinate {c} added twice")
            check(
                c < self._lvl_sizes[last],
                SPT_ERROR_INDEX_OUT_OF_BOUNDS,
                f"expanded coordinate {c} outside level size {self._lvl_sizes[last]}",
            )
            check(bool(filled[c]), SPT_ERROR_INVALID_ARGUMENT, f"expanded slot {c} is not filled")
            lvl_coords[last] = c
            if i == 0 or self._all_dense:
                self.lex_insert(lvl_coords, values[c])
            else:
                check_value_kind(values[c], self._triple.val)
                self._ins_path(lvl_coords, last, prev + 1, values[c])
            values[c] = 0
            filled[c] = False
            prev = c

    # =========================================================================
    # Finalization
    # =========================================================================

    def end_insert(self) -> None:
        """Close every open segment. Calling it again has no effect."""
        self._ensure_alive()
        if self._state is StorageState.READY:
            return
        if not self._all_dense:
            if len(self._values) == 0:
                self._finalize_segment(0)
            else:
                self._end_path(0)
        self._state = StorageState.READY
        logger.debug("finalized storage with %d values", len(self._values))

    # =========================================================================
    # Building from sorted COO
    # =========================================================================

    def _check_unique_elements(self, elements: List[Element]) -> None:
        if not all(lt.is_unique for lt in self._lvl_types):
            return
        for prev, cur in zip(elements, elements[1:]):
            check(prev.coords != cur.coords, SPT_ERROR_DUPLICATE, f"duplicate COO element at {cur.coords}")

    def _from_coo_segment(self, elements: List[Element], lo: int, hi: int, l: int) -> None:
        """Append the sorted elements ``[lo, hi)`` which agree on levels before ``l``."""
        if l == self.lvl_rank:
            self._values.push_back(elements[lo].value)
            return
        unique = self._lvl_types[l].is_unique
        full = 0
        while lo < hi:
            c = elements[lo].coords[l]
            seg_hi = lo + 1
            if unique:
                while seg_hi < hi and elements[seg_hi].coords[l] == c:
                    seg_hi += 1
            self._append_crd(l, full, c)
            full = c + 1
            self._from_coo_segment(elements, lo, seg_hi, l + 1)
            lo = seg_hi
        self._finalize_segment(l, full)

    # =========================================================================
    # Export
    # =========================================================================

    def to_coo(self, target: Optional[DimLevelMap] = None, val_type: Any = None) -> SparseTensorCOO:
        """
        Materialize every stored entry into a new COO.

        ``target`` maps this storage's levels onto the output space: level
        ``l`` is scattered into output slot ``target.dim2lvl[l]``. Passing
        ``dim_map.inverse()`` therefore recovers dimension coordinates, and
        omitting ``target`` does the same through the storage's own map.
        Dense levels contribute every coordinate, explicit zeros included.
        """
        self._ensure_ready("to_coo")
        if target is not None:
            check(
                target.is_bijective and target.dim_rank == self.lvl_rank,
                SPT_ERROR_DIMENSION_MISMATCH,
                f"target {target} is not a bijection over {self.lvl_rank} levels",
            )
            out_sizes = target.lvl_sizes(self._lvl_sizes)
        else:
            check(
                self._map.is_bijective,
                SPT_ERROR_INVALID_MAP,
                "coordinate translation requires a bijective map",
            )
            out_sizes = self._dim_sizes
        val_t = self._triple.val if val_type is None else validate_primary(val_type)
        coo = SparseTensorCOO(out_sizes, val_t)
        cursor = [0] * self.lvl_rank
        self._to_coo_walk(coo, target, cursor, 0, 0)
        logger.debug("exported %d elements to COO", coo.nse)
        return coo

    def _to_coo_walk(
        self,
        coo: SparseTensorCOO,
        target: Optional[DimLevelMap],
        cursor: List[int],
        l: int,
        parent_pos: int,
    ) -> None:
        if l == self.lvl_rank:
            out = target.to_lvl(cursor) if target is not None else self._map.to_dim(cursor)
            value = self._values[parent_pos]
            if coo.val_type is not self._triple.val:
                value = _cast_value(value, coo.val_type)
            coo.add(out, value)
            return
        lt = self._lvl_types[l]
        if lt.is_compressed:
            crd = self._coordinates[l]
            pstart = int(self._positions[l][parent_pos])
            pstop = int(self._positions[l][parent_pos + 1])
            for pos in range(pstart, pstop):
                cursor[l] = int(crd[pos])
                self._to_coo_walk(coo, target, cursor, l + 1, pos)
        elif lt.is_singleton:
            cursor[l] = int(self._coordinates[l][parent_pos])
            self._to_coo_walk(coo, target, cursor, l + 1, parent_pos)
        else:
            sz = self._lvl_sizes[l]
            pstart = parent_pos * sz
            for c in range(sz):
                cursor[l] = c
                self._to_coo_walk(coo, target, cursor, l + 1, pstart + c)

    # =========================================================================
    # Lifetime
    # =========================================================================

    def _release_buffers(self) -> None:
        self._positions = []
        self._coordinates = []
        self._values = Vector(self._triple.val.dtype)
        logger.debug("released storage %s", self._triple)


def _cast_value(value: Any, val_type: PrimaryType) -> Any:
    """Convert one scalar to ``val_type``; complex to real keeps the real part."""
    if np.iscomplexobj(value) and not val_type.is_complex:
        value = np.real(value)
    return val_type.dtype.type(value)
