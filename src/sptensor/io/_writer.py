"""Extended FROSTT writers."""

import logging
import sys
from pathlib import Path
from typing import Any, Sequence, TextIO, Union

import numpy as np

from .._coo import SparseTensorCOO
from .._errors import SPT_ERROR_DIMENSION_MISMATCH, SPT_ERROR_INVALID_ARGUMENT, check
from .._ownership import OwnershipTracker

logger = logging.getLogger("sptensor.io")

__all__ = ['SparseTensorWriter', 'format_value', 'write_ext_frostt']


def format_value(value: Any) -> str:
    """Render one value the way the readers parse it back."""
    if np.iscomplexobj(value):
        value = complex(value)
        return f"{value.real!r} {value.imag!r}"
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    return repr(float(value))


class SparseTensorWriter:
    """
    Streaming writer: one metadata record, then one record per element.

    An empty filename writes to standard output.

    Example:
        >>> with SparseTensorWriter("out.tns") as w:
        ...     w.write_meta_data(2, 1, [2, 3])
        ...     w.write_next([1, 2], 7.0)
    """

    def __init__(self, filename: Union[str, Path] = ""):
        self._filename = str(filename)
        if self._filename:
            self._file: TextIO = open(self._filename, 'w')
        else:
            self._file = sys.stdout
        self._file.write("# extended FROSTT format\n")
        self._dim_rank = 0
        self._ownership = OwnershipTracker("writer")

    def write_meta_data(self, dim_rank: int, nse: int, dim_sizes: Sequence[int]) -> None:
        """Write the ``rank nse`` line and the dimension sizes."""
        self._ownership.ensure_valid()
        check(dim_rank > 0, SPT_ERROR_INVALID_ARGUMENT, "dimension rank must be positive")
        check(
            len(dim_sizes) >= dim_rank,
            SPT_ERROR_DIMENSION_MISMATCH,
            f"{len(dim_sizes)} dimension sizes for rank {dim_rank}",
        )
        self._dim_rank = int(dim_rank)
        self._file.write(f"{dim_rank} {nse}\n")
        self._file.write(" ".join(str(int(s)) for s in dim_sizes[:dim_rank]) + "\n")

    def write_next(self, dim_coords: Sequence[int], value: Any) -> None:
        """Write one element with one-based coordinates."""
        self._ownership.ensure_valid()
        rank = self._dim_rank or len(dim_coords)
        check(
            len(dim_coords) >= rank,
            SPT_ERROR_DIMENSION_MISMATCH,
            f"{len(dim_coords)} coordinates for rank {rank}",
        )
        coords = " ".join(str(int(c) + 1) for c in dim_coords[:rank])
        self._file.write(f"{coords} {format_value(value)}\n")

    def release(self) -> None:
        """Flush and close (standard output is only flushed)."""
        self._ownership.release()
        self._file.flush()
        if self._file is not sys.stdout:
            self._file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._ownership.is_valid:
            self.release()
        return False


def write_ext_frostt(coo: SparseTensorCOO, filename: Union[str, Path]) -> None:
    """Write a whole COO in extended FROSTT format."""
    sizes = coo.lvl_sizes
    with open(filename, 'w') as f:
        f.write("; extended FROSTT format\n")
        f.write(f"{coo.rank} {coo.nse}\n")
        f.write(" ".join(str(s) for s in sizes) + "\n")
        for elem in coo:
            coords = " ".join(str(c + 1) for c in elem.coords)
            f.write(f"{coords} {format_value(elem.value)}\n")
    logger.debug("wrote %d elements to %s", coo.nse, filename)
