"""
Sparse Tensor File Reader

Reads Matrix Market (``.mtx``) and extended FROSTT (``.tns``) files.

Matrix Market:
    %%MatrixMarket matrix coordinate <real|integer|complex|pattern> <general|symmetric>
    % comments
    <rows> <cols> <nse>
    <i> <j> [value]          one-based, one entry per line

Extended FROSTT:
    # comments (also ``;`` or ``%``)
    <rank> <nse>
    <size_0> ... <size_{rank-1}>
    <i_0> ... <i_{rank-1}> <value>

Header problems and shape/type incompatibilities are fatal.
"""

import logging
from enum import IntEnum
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence, TextIO, Tuple, Union

import numpy as np
import scipy.io

from .._coo import SparseTensorCOO
from .._dtypes import PrimaryType, validate_primary
from .._errors import (
    SPT_ERROR_DIMENSION_MISMATCH,
    SPT_ERROR_FILE_NOT_FOUND,
    SPT_ERROR_INDEX_OUT_OF_BOUNDS,
    SPT_ERROR_INSUFFICIENT_CAPACITY,
    SPT_ERROR_IO_ERROR,
    SPT_ERROR_MALFORMED_HEADER,
    SPT_ERROR_TYPE_ERROR,
    SPT_ERROR_UNKNOWN_FORMAT,
    check,
    fatal,
)
from .._mapping import DimLevelMap
from .._ownership import OwnershipTracker

logger = logging.getLogger("sptensor.io")

__all__ = ['ValueKind', 'SparseTensorReader']

_COMMENT_CHARS = ('%', '#', ';')


class ValueKind(IntEnum):
    """Kind of values declared by the file header."""
    INVALID = 0
    PATTERN = 1
    REAL = 2
    INTEGER = 3
    COMPLEX = 4


_MTX_FIELDS = {
    'pattern': ValueKind.PATTERN,
    'real': ValueKind.REAL,
    'integer': ValueKind.INTEGER,
    'complex': ValueKind.COMPLEX,
}


class SparseTensorReader:
    """
    Header and element reader for one tensor file.

    The header is parsed by ``read_header()``; the elements are read once,
    either into a level-space COO (``read_coo``) or into flat buffers
    (``read_to_buffers``). Reading the body closes the file.

    Example:
        >>> reader = SparseTensorReader.create("a.mtx", [0, 0], PrimaryType.F64)
        >>> reader.rank, reader.dim_sizes, reader.nse
        (2, (4, 5), 7)
        >>> coo = reader.read_coo(reader.dim_sizes, DimLevelMap.identity(2), PrimaryType.F64)
        >>> reader.release()
    """

    def __init__(self, filename: Union[str, Path]):
        self._filename = str(filename)
        self._file: Optional[TextIO] = None
        self._dim_sizes: Tuple[int, ...] = ()
        self._nse = 0
        self._is_symmetric = False
        self._value_kind = ValueKind.INVALID
        self._ownership = OwnershipTracker("reader")

    @classmethod
    def create(
        cls,
        filename: Union[str, Path],
        dim_shape: Optional[Sequence[int]],
        val_type: Any,
    ) -> 'SparseTensorReader':
        """
        Open ``filename``, read its header and check it against the caller.

        A zero entry in ``dim_shape`` accepts any size for that dimension.
        Incompatible value types or shapes are fatal.
        """
        reader = cls(filename)
        reader.open_file()
        reader.read_header()
        val = validate_primary(val_type)
        if not reader.can_read_as(val):
            fatal(
                SPT_ERROR_TYPE_ERROR,
                f"Tensor element type {val.name} not compatible with values in file {filename}",
            )
        if dim_shape is not None:
            reader.assert_matches_shape(dim_shape)
        return reader

    # =========================================================================
    # Header
    # =========================================================================

    def open_file(self) -> None:
        self._ownership.ensure_valid()
        if self._file is not None:
            fatal(SPT_ERROR_IO_ERROR, f"Already opened file {self._filename}")
        try:
            self._file = open(self._filename, 'r')
        except OSError:
            fatal(SPT_ERROR_FILE_NOT_FOUND, f"Cannot find file {self._filename}")

    def close_file(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def read_header(self) -> None:
        """Dispatch on the file extension and parse the header."""
        self._ownership.ensure_valid()
        suffix = Path(self._filename).suffix.lower()
        if suffix == '.mtx':
            self._read_mme_header()
        elif suffix == '.tns':
            self._read_ext_frostt_header()
        else:
            fatal(SPT_ERROR_UNKNOWN_FORMAT, f"Unknown format {self._filename}")
        logger.debug(
            "read header of %s: rank=%d sizes=%s nse=%d symmetric=%s",
            self._filename, self.rank, self._dim_sizes, self._nse, self._is_symmetric,
        )

    def _read_line(self) -> str:
        if self._file is None:
            fatal(SPT_ERROR_IO_ERROR, f"File {self._filename} is not open")
        line = self._file.readline()
        if not line:
            fatal(SPT_ERROR_IO_ERROR, f"Cannot read next line of {self._filename}")
        return line

    def _next_data_line(self) -> str:
        while True:
            line = self._read_line()
            stripped = line.strip()
            if stripped and not stripped.startswith(_COMMENT_CHARS):
                return stripped

    def _read_mme_header(self) -> None:
        try:
            rows, cols, entries, fmt, field, symmetry = scipy.io.mminfo(self._filename)
        except (ValueError, OSError) as e:
            fatal(SPT_ERROR_MALFORMED_HEADER, f"Corrupt header in {self._filename}: {e}")
        if fmt != 'coordinate':
            fatal(SPT_ERROR_MALFORMED_HEADER, f"Cannot find coordinate format in {self._filename}")
        if field not in _MTX_FIELDS:
            fatal(SPT_ERROR_MALFORMED_HEADER, f"Unexpected value kind {field!r} in {self._filename}")
        if symmetry not in ('general', 'symmetric'):
            fatal(SPT_ERROR_MALFORMED_HEADER, f"Cannot handle {symmetry} matrices in {self._filename}")
        self._value_kind = _MTX_FIELDS[field]
        self._is_symmetric = symmetry == 'symmetric'
        self._dim_sizes = (int(rows), int(cols))
        self._nse = int(entries)
        # position the stream after the size line
        self._next_data_line()

    def _read_ext_frostt_header(self) -> None:
        meta = self._next_data_line().split()
        try:
            rank, nse = int(meta[0]), int(meta[1])
        except (IndexError, ValueError):
            fatal(SPT_ERROR_MALFORMED_HEADER, f"Cannot find metadata in {self._filename}")
        sizes = self._next_data_line().split()
        if len(sizes) != rank:
            fatal(
                SPT_ERROR_MALFORMED_HEADER,
                f"Cannot find dimension sizes in {self._filename}: expected {rank}, got {len(sizes)}",
            )
        try:
            self._dim_sizes = tuple(int(s) for s in sizes)
        except ValueError:
            fatal(SPT_ERROR_MALFORMED_HEADER, f"Cannot parse dimension sizes in {self._filename}")
        self._nse = nse
        self._value_kind = ValueKind.REAL

    # =========================================================================
    # Header Queries
    # =========================================================================

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def rank(self) -> int:
        return len(self._dim_sizes)

    @property
    def dim_sizes(self) -> Tuple[int, ...]:
        return self._dim_sizes

    def get_dim_size(self, d: int) -> int:
        check(0 <= d < self.rank, SPT_ERROR_INDEX_OUT_OF_BOUNDS, f"dimension {d} out of range")
        return self._dim_sizes[d]

    @property
    def nse(self) -> int:
        return self._nse

    @property
    def is_symmetric(self) -> bool:
        return self._is_symmetric

    @property
    def is_pattern(self) -> bool:
        return self._value_kind is ValueKind.PATTERN

    @property
    def value_kind(self) -> ValueKind:
        return self._value_kind

    def can_read_as(self, val_type: PrimaryType) -> bool:
        """Whether the file's values can be stored as ``val_type``."""
        kind = self._value_kind
        if kind is ValueKind.PATTERN or kind is ValueKind.INTEGER:
            return True
        if kind is ValueKind.REAL:
            return not val_type.is_integral
        if kind is ValueKind.COMPLEX:
            return val_type.is_complex
        return False

    def assert_matches_shape(self, dim_shape: Sequence[int]) -> None:
        if len(dim_shape) != self.rank:
            fatal(
                SPT_ERROR_DIMENSION_MISMATCH,
                f"Rank mismatch: expected {len(dim_shape)}, file {self._filename} has {self.rank}",
            )
        for d, (want, have) in enumerate(zip(dim_shape, self._dim_sizes)):
            if int(want) != 0 and int(want) != have:
                fatal(
                    SPT_ERROR_DIMENSION_MISMATCH,
                    f"Dimension size mismatch at {d}: expected {want}, file has {have}",
                )

    # =========================================================================
    # Elements
    # =========================================================================

    def _parse_value(self, tokens: Sequence[str]) -> Any:
        kind = self._value_kind
        if kind is ValueKind.PATTERN:
            return 1
        if kind is ValueKind.COMPLEX:
            return complex(float(tokens[0]), float(tokens[1]))
        if kind is ValueKind.INTEGER:
            return int(tokens[0])
        return float(tokens[0])

    def _elements(self) -> Iterator[Tuple[Tuple[int, ...], Any]]:
        """Yield ``(zero-based dim coords, value)`` for every stored line."""
        self._ownership.ensure_valid()
        rank = self.rank
        try:
            for _ in range(self._nse):
                tokens = self._next_data_line().split()
                try:
                    coords = tuple(int(t) - 1 for t in tokens[:rank])
                    value = self._parse_value(tokens[rank:])
                except (IndexError, ValueError):
                    fatal(SPT_ERROR_IO_ERROR, f"Cannot parse element {tokens} in {self._filename}")
                check(
                    len(coords) == rank and all(0 <= c < s for c, s in zip(coords, self._dim_sizes)),
                    SPT_ERROR_INDEX_OUT_OF_BOUNDS,
                    f"element {tokens} outside dimension sizes {self._dim_sizes}",
                )
                yield coords, value
        finally:
            self.close_file()

    def read_coo(
        self,
        lvl_sizes: Sequence[int],
        dim_map: DimLevelMap,
        val_type: Any = PrimaryType.F64,
    ) -> SparseTensorCOO:
        """
        Read every element into a new level-space COO.

        Symmetric matrices are expanded: each off-diagonal entry is also
        added at its transposed position.
        """
        check(
            dim_map.dim_rank == self.rank and dim_map.lvl_rank == len(lvl_sizes),
            SPT_ERROR_DIMENSION_MISMATCH,
            f"map {dim_map} does not fit rank {self.rank} and level rank {len(lvl_sizes)}",
        )
        expand = self._is_symmetric and self.rank == 2
        coo = SparseTensorCOO(lvl_sizes, val_type)
        for dim_coords, value in self._elements():
            coo.add(dim_map.to_lvl(dim_coords), value)
            if expand and dim_coords[0] != dim_coords[1]:
                coo.add(dim_map.to_lvl((dim_coords[1], dim_coords[0])), value)
        logger.debug("read %d elements from %s", coo.nse, self._filename)
        return coo

    def read_to_buffers(
        self,
        lvl_rank: int,
        dim2lvl: Sequence[int],
        lvl2dim: Optional[Sequence[int]],
        lvl_coordinates: np.ndarray,
        values: np.ndarray,
    ) -> bool:
        """
        Read every element into caller-provided flat buffers.

        ``lvl_coordinates`` receives ``nse`` rows of ``lvl_rank`` level
        coordinates back to back; ``values`` receives the values. Returns
        True when the elements arrived in lexicographic level order, so
        the caller may skip sorting.
        """
        dim_map = DimLevelMap(dim2lvl, lvl2dim, dim_rank=self.rank, lvl_rank=lvl_rank)
        check(
            values.shape[0] >= self._nse,
            SPT_ERROR_INSUFFICIENT_CAPACITY,
            f"values buffer holds {values.shape[0]} entries, need {self._nse}",
        )
        check(
            lvl_coordinates.shape[0] >= lvl_rank * self._nse,
            SPT_ERROR_INSUFFICIENT_CAPACITY,
            f"coordinate buffer holds {lvl_coordinates.shape[0]} entries, "
            f"need {lvl_rank * self._nse}",
        )
        is_sorted = True
        prev: Optional[Tuple[int, ...]] = None
        for n, (dim_coords, value) in enumerate(self._elements()):
            lvl = dim_map.to_lvl(dim_coords)
            lvl_coordinates[n * lvl_rank:(n + 1) * lvl_rank] = lvl
            values[n] = value
            if is_sorted and prev is not None and not prev < lvl:
                is_sorted = False
            prev = lvl
        return is_sorted

    # =========================================================================
    # Lifetime
    # =========================================================================

    def release(self) -> None:
        self._ownership.release()
        self.close_file()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._ownership.is_valid:
            self.release()
        return False

    def __repr__(self) -> str:
        return (f"SparseTensorReader({self._filename!r}, rank={self.rank}, "
                f"nse={self._nse}, kind={self._value_kind.name.lower()})")
