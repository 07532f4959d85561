"""
sptensor Runtime - Handle-Based Entry Points

One function per entry point of the compiled-caller contract. Handles are
the engine objects themselves; buffers are one-dimensional numpy arrays
(array-likes are accepted for inputs). Every buffer must have unit stride
and paired buffers must agree in size; both are checked in debug mode.

Accessors alias the engine's arrays: the returned views stay valid until
the handle is released and must be treated as read-only.

Example:
    >>> from sptensor import runtime as rt
    >>> t = rt.new_sparse_tensor([2, 3], [2, 3], [LevelType.DENSE, LevelType.COMPRESSED],
    ...                          [0, 1], [0, 1], OverheadType.INDEX, OverheadType.INDEX,
    ...                          PrimaryType.F64, Action.EMPTY)
    >>> rt.lex_insert(t, [0, 1], 5.0)
    >>> rt.end_insert(t)
    >>> rt.sparse_values(t)
    array([5.])
    >>> rt.del_sparse_tensor(t)
"""

import logging
from pathlib import Path
from typing import Any, Union

import numpy as np

from ._base import SparseTensorStorageBase
from ._coo import SparseTensorCOO
from ._dispatch import Action, lookup, new_sparse_tensor as _dispatch_new, resolve_triple
from ._dtypes import validate_overhead, validate_primary
from ._errors import (
    SPT_ERROR_DIMENSION_MISMATCH,
    SPT_ERROR_INVALID_ARGUMENT,
    SPT_ERROR_NON_UNIT_STRIDE,
    SPT_ERROR_TYPE_MISMATCH,
    check,
)
from ._iterator import SparseTensorIterator
from ._mapping import DimLevelMap
from ._ownership import ensure_alive
from .io import SparseTensorReader, SparseTensorWriter, write_ext_frostt
from .io import get_tensor_filename, read_sparse_tensor_shape

logger = logging.getLogger("sptensor.runtime")

__all__ = [
    # Construction
    "new_sparse_tensor",
    # Accessors
    "sparse_values",
    "sparse_positions",
    "sparse_coordinates",
    "sparse_lvl_size",
    "sparse_dim_size",
    # COO / iterator
    "add_elt",
    "get_next",
    # Insertion
    "lex_insert",
    "exp_insert",
    "end_insert",
    # Output
    "out_sparse_tensor",
    # Release
    "del_sparse_tensor",
    "del_sparse_tensor_coo",
    "del_sparse_tensor_iterator",
    # Reader
    "create_checked_sparse_tensor_reader",
    "get_sparse_tensor_reader_dim_sizes",
    "get_sparse_tensor_reader_read_to_buffers",
    "get_sparse_tensor_reader_rank",
    "get_sparse_tensor_reader_is_symmetric",
    "get_sparse_tensor_reader_nse",
    "get_sparse_tensor_reader_dim_size",
    "new_sparse_tensor_from_reader",
    "del_sparse_tensor_reader",
    # Writer
    "create_sparse_tensor_writer",
    "out_sparse_tensor_writer_meta_data",
    "out_sparse_tensor_writer_next",
    "del_sparse_tensor_writer",
    # Files
    "get_tensor_filename",
    "read_sparse_tensor_shape",
]


# =============================================================================
# Buffer Validation
# =============================================================================

def _as_buffer(buf: Any, name: str) -> np.ndarray:
    """View ``buf`` as a 1-D array, checking rank and unit stride."""
    arr = np.asarray(buf)
    check(arr.ndim == 1, SPT_ERROR_DIMENSION_MISMATCH, f"{name} must be one-dimensional, got {arr.ndim}-D")
    if arr.ndim == 1 and arr.shape[0] > 1:
        check(
            arr.strides[0] == arr.itemsize,
            SPT_ERROR_NON_UNIT_STRIDE,
            f"{name} has non-trivial stride {arr.strides[0] // max(arr.itemsize, 1)}",
        )
    return arr


def _as_out_buffer(buf: Any, name: str) -> np.ndarray:
    check(isinstance(buf, np.ndarray), SPT_ERROR_INVALID_ARGUMENT, f"{name} must be a numpy array")
    return _as_buffer(buf, name)


def _check_size(arr: np.ndarray, size: int, name: str) -> None:
    check(
        arr.shape[0] == size,
        SPT_ERROR_DIMENSION_MISMATCH,
        f"{name} has size {arr.shape[0]}, expected {size}",
    )


def _check_tensor(tensor: Any) -> SparseTensorStorageBase:
    ensure_alive(tensor)
    check(
        isinstance(tensor, SparseTensorStorageBase),
        SPT_ERROR_TYPE_MISMATCH,
        f"expected a storage handle, got {type(tensor).__name__}",
    )
    return tensor


def _check_val_type(handle: Any, val_tp: Any) -> None:
    if val_tp is None:
        return
    val = validate_primary(val_tp)
    have = handle.triple.val if isinstance(handle, SparseTensorStorageBase) else handle.val_type
    check(have is val, SPT_ERROR_TYPE_MISMATCH, f"handle holds {have.name}, accessed as {val.name}")


# =============================================================================
# Construction
# =============================================================================

def new_sparse_tensor(
    dim_sizes: Any,
    lvl_sizes: Any,
    lvl_types: Any,
    dim2lvl: Any,
    lvl2dim: Any,
    pos_tp: Any,
    crd_tp: Any,
    val_tp: Any,
    action: Any,
    ptr: Any = None,
) -> Any:
    """Swiss-army entry point for creation, conversion and export."""
    dim_sizes = _as_buffer(dim_sizes, "dim_sizes")
    lvl_sizes = _as_buffer(lvl_sizes, "lvl_sizes")
    lvl_types = _as_buffer(lvl_types, "lvl_types")
    dim2lvl = _as_buffer(dim2lvl, "dim2lvl")
    lvl2dim = _as_buffer(lvl2dim, "lvl2dim")
    dim_rank, lvl_rank = dim_sizes.shape[0], lvl_sizes.shape[0]
    _check_size(lvl_types, lvl_rank, "lvl_types")
    _check_size(dim2lvl, dim_rank, "dim2lvl")
    _check_size(lvl2dim, lvl_rank, "lvl2dim")
    return _dispatch_new(
        [int(s) for s in dim_sizes],
        [int(s) for s in lvl_sizes],
        [int(t) for t in lvl_types],
        dim2lvl,
        lvl2dim,
        pos_tp,
        crd_tp,
        val_tp,
        action,
        ptr,
    )


# =============================================================================
# Accessors
# =============================================================================

def sparse_values(tensor: Any, val_tp: Any = None) -> np.ndarray:
    """Alias of the values array."""
    tensor = _check_tensor(tensor)
    _check_val_type(tensor, val_tp)
    return tensor.get_values()


def sparse_positions(tensor: Any, lvl: int, pos_tp: Any = None) -> np.ndarray:
    """Alias of the positions array of level ``lvl``."""
    tensor = _check_tensor(tensor)
    if pos_tp is not None:
        pos = validate_overhead(pos_tp)
        check(
            pos.dtype == tensor.triple.pos.dtype,
            SPT_ERROR_TYPE_MISMATCH,
            f"positions are {tensor.triple.pos.name}, accessed as {pos.name}",
        )
    return tensor.get_positions(int(lvl))


def sparse_coordinates(tensor: Any, lvl: int, crd_tp: Any = None) -> np.ndarray:
    """Alias of the coordinates array of level ``lvl``."""
    tensor = _check_tensor(tensor)
    if crd_tp is not None:
        crd = validate_overhead(crd_tp)
        check(
            crd.dtype == tensor.triple.crd.dtype,
            SPT_ERROR_TYPE_MISMATCH,
            f"coordinates are {tensor.triple.crd.name}, accessed as {crd.name}",
        )
    return tensor.get_coordinates(int(lvl))


def sparse_lvl_size(tensor: Any, lvl: int) -> int:
    return _check_tensor(tensor).get_lvl_size(int(lvl))


def sparse_dim_size(tensor: Any, dim: int) -> int:
    return _check_tensor(tensor).get_dim_size(int(dim))


# =============================================================================
# COO and Iterator
# =============================================================================

def add_elt(coo: SparseTensorCOO, value: Any, dim_coords: Any, dim2lvl: Any) -> SparseTensorCOO:
    """Append one element given in dimension coordinates; returns ``coo``."""
    ensure_alive(coo)
    dim_coords = _as_buffer(dim_coords, "dim_coords")
    dim2lvl = _as_buffer(dim2lvl, "dim2lvl")
    rank = dim_coords.shape[0]
    _check_size(dim2lvl, rank, "dim2lvl")
    lvl_coords = [0] * rank
    for d in range(rank):
        lvl_coords[int(dim2lvl[d])] = int(dim_coords[d])
    coo.add(lvl_coords, value)
    return coo


def get_next(iterator: SparseTensorIterator, coords: np.ndarray, value: np.ndarray) -> bool:
    """
    Copy the next element into ``coords`` and ``value[0]``.

    Returns False, leaving the buffers untouched, once exhausted.
    """
    ensure_alive(iterator)
    coords = _as_out_buffer(coords, "coords")
    check(
        isinstance(value, np.ndarray) and value.size >= 1,
        SPT_ERROR_INVALID_ARGUMENT,
        "value must be a numpy array with room for one element",
    )
    elem = iterator.get_next()
    if elem is None:
        return False
    rank = coords.shape[0]
    check(rank <= len(elem.coords), SPT_ERROR_DIMENSION_MISMATCH, f"coords buffer of size {rank} too large")
    coords[:rank] = elem.coords[:rank]
    value.reshape(-1)[0] = elem.value
    return True


# =============================================================================
# Insertion
# =============================================================================

def lex_insert(tensor: Any, lvl_coords: Any, value: Any) -> None:
    tensor = _check_tensor(tensor)
    lvl_coords = _as_buffer(lvl_coords, "lvl_coords")
    tensor.lex_insert(lvl_coords, value)


def exp_insert(
    tensor: Any,
    lvl_coords: np.ndarray,
    values: np.ndarray,
    filled: np.ndarray,
    added: np.ndarray,
    count: int,
) -> None:
    """Expanded insertion; ``values``, ``filled`` and ``added`` are modified in place."""
    tensor = _check_tensor(tensor)
    lvl_coords = _as_out_buffer(lvl_coords, "lvl_coords")
    values = _as_out_buffer(values, "values")
    filled = _as_out_buffer(filled, "filled")
    added = _as_out_buffer(added, "added")
    _check_size(filled, values.shape[0], "filled")
    tensor.exp_insert(lvl_coords, values, filled, added, int(count), expsz=values.shape[0])


def end_insert(tensor: Any) -> None:
    _check_tensor(tensor).end_insert()


# =============================================================================
# Output
# =============================================================================

def out_sparse_tensor(coo: SparseTensorCOO, dest: Union[str, Path], sort: bool) -> None:
    """Write a COO to ``dest`` in extended FROSTT format, sorting first if asked."""
    ensure_alive(coo)
    if sort:
        coo.sort()
    write_ext_frostt(coo, dest)


# =============================================================================
# Release
# =============================================================================

def del_sparse_tensor(tensor: Any) -> None:
    _check_tensor(tensor).release()


def del_sparse_tensor_coo(coo: SparseTensorCOO) -> None:
    ensure_alive(coo)
    coo.release()


def del_sparse_tensor_iterator(iterator: SparseTensorIterator) -> None:
    ensure_alive(iterator)
    iterator.release()


# =============================================================================
# Reader
# =============================================================================

def create_checked_sparse_tensor_reader(
    filename: Union[str, Path],
    dim_shape: Any,
    val_tp: Any,
) -> SparseTensorReader:
    dim_shape = _as_buffer(dim_shape, "dim_shape")
    return SparseTensorReader.create(filename, [int(s) for s in dim_shape], val_tp)


def get_sparse_tensor_reader_dim_sizes(reader: SparseTensorReader) -> np.ndarray:
    ensure_alive(reader)
    return np.asarray(reader.dim_sizes, dtype=np.uint64)


def get_sparse_tensor_reader_read_to_buffers(
    reader: SparseTensorReader,
    dim2lvl: Any,
    lvl2dim: Any,
    lvl_coordinates: np.ndarray,
    values: np.ndarray,
) -> bool:
    """Fill flat coordinate/value buffers; returns whether they came out sorted."""
    ensure_alive(reader)
    dim2lvl = _as_buffer(dim2lvl, "dim2lvl")
    lvl2dim = _as_buffer(lvl2dim, "lvl2dim")
    lvl_coordinates = _as_out_buffer(lvl_coordinates, "lvl_coordinates")
    values = _as_out_buffer(values, "values")
    _check_size(dim2lvl, reader.rank, "dim2lvl")
    return reader.read_to_buffers(lvl2dim.shape[0], dim2lvl, lvl2dim, lvl_coordinates, values)


def get_sparse_tensor_reader_rank(reader: SparseTensorReader) -> int:
    ensure_alive(reader)
    return reader.rank


def get_sparse_tensor_reader_is_symmetric(reader: SparseTensorReader) -> bool:
    ensure_alive(reader)
    return reader.is_symmetric


def get_sparse_tensor_reader_nse(reader: SparseTensorReader) -> int:
    ensure_alive(reader)
    return reader.nse


def get_sparse_tensor_reader_dim_size(reader: SparseTensorReader, dim: int) -> int:
    ensure_alive(reader)
    return reader.get_dim_size(int(dim))


def new_sparse_tensor_from_reader(
    reader: SparseTensorReader,
    lvl_sizes: Any,
    lvl_types: Any,
    dim2lvl: Any,
    lvl2dim: Any,
    pos_tp: Any,
    crd_tp: Any,
    val_tp: Any,
) -> SparseTensorStorageBase:
    """Read the file body into finalized storage, using the same type matrix."""
    ensure_alive(reader)
    lvl_sizes = _as_buffer(lvl_sizes, "lvl_sizes")
    lvl_types = _as_buffer(lvl_types, "lvl_types")
    dim2lvl = _as_buffer(dim2lvl, "dim2lvl")
    lvl2dim = _as_buffer(lvl2dim, "lvl2dim")
    lvl_rank = lvl_sizes.shape[0]
    _check_size(lvl_types, lvl_rank, "lvl_types")
    _check_size(dim2lvl, reader.rank, "dim2lvl")
    _check_size(lvl2dim, lvl_rank, "lvl2dim")

    triple = resolve_triple(pos_tp, crd_tp, val_tp)
    factory = lookup(triple)
    dim_map = DimLevelMap(dim2lvl, lvl2dim, dim_rank=reader.rank, lvl_rank=lvl_rank)
    sizes = [int(s) for s in lvl_sizes]
    coo = reader.read_coo(sizes, dim_map, triple.val)
    logger.debug("building %s storage from %s", triple, reader.filename)
    return factory(Action.FROM_COO, reader.dim_sizes, sizes, [int(t) for t in lvl_types], dim_map, coo)


def del_sparse_tensor_reader(reader: SparseTensorReader) -> None:
    ensure_alive(reader)
    reader.release()


# =============================================================================
# Writer
# =============================================================================

def create_sparse_tensor_writer(filename: Union[str, Path] = "") -> SparseTensorWriter:
    """Open a writer; an empty filename writes to standard output."""
    return SparseTensorWriter(filename)


def out_sparse_tensor_writer_meta_data(
    writer: SparseTensorWriter,
    dim_rank: int,
    nse: int,
    dim_sizes: Any,
) -> None:
    ensure_alive(writer)
    dim_sizes = _as_buffer(dim_sizes, "dim_sizes")
    writer.write_meta_data(int(dim_rank), int(nse), [int(s) for s in dim_sizes])


def out_sparse_tensor_writer_next(
    writer: SparseTensorWriter,
    dim_rank: int,
    dim_coords: Any,
    value: Any,
) -> None:
    ensure_alive(writer)
    dim_coords = _as_buffer(dim_coords, "dim_coords")
    writer.write_next([int(c) for c in dim_coords[:int(dim_rank)]], value)


def del_sparse_tensor_writer(writer: SparseTensorWriter) -> None:
    ensure_alive(writer)
    writer.release()
