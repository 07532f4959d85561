"""
sptensor - Sparse Tensor Storage Engine

In-memory storage for sparse tensors under per-level sparsity annotations
and a dimension/level map:
- Dense, compressed and singleton levels (with non-unique/non-ordered variants)
- Position/coordinate widths of 8 to 64 bits, chosen per tensor
- Real, integer, half/bfloat16 and complex values
- Coordinate-list (COO) building, export and single-owner iteration

Modules:
- runtime: handle-based entry points mirroring the compiled-caller contract
- io: Matrix Market / extended FROSTT reading and writing

Example:
    >>> import sptensor as spt
    >>> coo = spt.SparseTensorCOO([2, 3])
    >>> coo.add((0, 1), 5.0)
    >>> coo.add((1, 2), 7.0)
    >>> t = spt.new_sparse_tensor(
    ...     [2, 3], [2, 3], [spt.LevelType.DENSE, spt.LevelType.COMPRESSED],
    ...     [0, 1], [0, 1], spt.OverheadType.INDEX, spt.OverheadType.INDEX,
    ...     spt.PrimaryType.F64, spt.Action.FROM_COO, coo)
    >>> t.get_values()
    array([5., 7.])
"""

__version__ = '0.1.0'

from . import io
from . import runtime

from ._base import SparseTensorStorageBase, StorageState
from ._config import CheckConfig, DispatchConfig, SptConfig, config, get_config, set_checks
from ._coo import Element, SparseTensorCOO
from ._dispatch import (
    Action,
    SUPPORTED_TRIPLES,
    is_supported,
    lookup,
    new_sparse_tensor,
    resolve_triple,
)
from ._dtypes import (
    LevelType,
    OverheadType,
    PrimaryType,
    TypeTriple,
    validate_level_type,
    validate_overhead,
    validate_primary,
)
from ._errors import FatalError, SparseTensorError
from ._iterator import SparseTensorIterator
from ._mapping import DimLevelMap
from ._ownership import Ownership
from ._storage import SparseTensorStorage

__all__ = [
    '__version__',
    # Submodules
    'io',
    'runtime',
    # Storage
    'SparseTensorStorageBase',
    'SparseTensorStorage',
    'StorageState',
    # COO and iteration
    'Element',
    'SparseTensorCOO',
    'SparseTensorIterator',
    # Mapping
    'DimLevelMap',
    # Dispatch
    'Action',
    'SUPPORTED_TRIPLES',
    'is_supported',
    'lookup',
    'new_sparse_tensor',
    'resolve_triple',
    # Types
    'LevelType',
    'OverheadType',
    'PrimaryType',
    'TypeTriple',
    'validate_level_type',
    'validate_overhead',
    'validate_primary',
    # Errors
    'SparseTensorError',
    'FatalError',
    'Ownership',
    # Configuration
    'config',
    'get_config',
    'set_checks',
    'SptConfig',
    'CheckConfig',
    'DispatchConfig',
]
