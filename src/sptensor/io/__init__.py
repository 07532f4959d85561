"""
sptensor.io - Tensor Interchange Files

Matrix Market (``.mtx``) and extended FROSTT (``.tns``) reading, extended
FROSTT writing, and environment-based file lookup for test harnesses.
"""

from ._files import get_tensor_filename, read_sparse_tensor_shape
from ._reader import SparseTensorReader, ValueKind
from ._writer import SparseTensorWriter, format_value, write_ext_frostt

__all__ = [
    "SparseTensorReader",
    "ValueKind",
    "SparseTensorWriter",
    "format_value",
    "write_ext_frostt",
    "get_tensor_filename",
    "read_sparse_tensor_shape",
]
