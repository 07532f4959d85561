"""Test-harness helpers for locating and inspecting tensor files."""

import os
from typing import Tuple

from .._errors import SPT_ERROR_FILE_NOT_FOUND, fatal
from ._reader import SparseTensorReader

__all__ = ['get_tensor_filename', 'read_sparse_tensor_shape']


def get_tensor_filename(tensor_id: int) -> str:
    """Resolve ``TENSOR<id>`` from the environment; fatal when unset."""
    var = f"TENSOR{int(tensor_id)}"
    filename = os.environ.get(var)
    if filename is None:
        fatal(SPT_ERROR_FILE_NOT_FOUND, f"Environment variable {var} is not set")
    return filename


def read_sparse_tensor_shape(filename: str) -> Tuple[int, ...]:
    """Dimension sizes from the file header."""
    reader = SparseTensorReader(filename)
    try:
        reader.open_file()
        reader.read_header()
    finally:
        reader.close_file()
    sizes = reader.dim_sizes
    reader.release()
    return sizes
