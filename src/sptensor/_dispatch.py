"""
Type-Matrix Dispatch

Maps a runtime type triple (position width, coordinate width, value type)
plus a construction action onto the matching engine specialization.

The support set is closed:

    pos x crd        value types
    ---------------  ------------------------------------
    any x any        F64, F32
    same width       F16, BF16, I64, I32, I16, I8
    U64 x U64        C64, C32

The triple -> factory table is built once at import. A triple outside the
table, or an action tag the factory does not know, is a caller contract
violation and terminates through ``fatal``.
"""

import logging
from enum import IntEnum
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from ._base import SparseTensorStorageBase
from ._config import config
from ._coo import SparseTensorCOO
from ._dtypes import (
    OverheadType,
    PrimaryType,
    TypeTriple,
    validate_overhead,
    validate_primary,
)
from ._errors import (
    SPT_ERROR_DIMENSION_MISMATCH,
    SPT_ERROR_NULL_HANDLE,
    SPT_ERROR_TYPE_MISMATCH,
    SPT_ERROR_UNKNOWN_ACTION,
    SPT_ERROR_UNSUPPORTED_TYPES,
    check,
    fatal,
)
from ._iterator import SparseTensorIterator
from ._mapping import DimLevelMap
from ._ownership import ensure_alive
from ._storage import SparseTensorStorage

logger = logging.getLogger("sptensor.dispatch")

__all__ = [
    'Action',
    'SUPPORTED_TRIPLES',
    'is_supported',
    'lookup',
    'normalize_overhead',
    'resolve_triple',
    'new_sparse_tensor',
]


class Action(IntEnum):
    """Construction action tags. Value 1 is reserved."""
    EMPTY = 0
    FROM_COO = 2
    SPARSE_TO_SPARSE = 3
    EMPTY_COO = 4
    TO_COO = 5
    TO_ITERATOR = 6
    PACK = 7


_WIDTHS = (OverheadType.U64, OverheadType.U32, OverheadType.U16, OverheadType.U8)


def _build_support_set() -> Tuple[TypeTriple, ...]:
    triples = []
    for val in (PrimaryType.F64, PrimaryType.F32):
        for pos in _WIDTHS:
            for crd in _WIDTHS:
                triples.append(TypeTriple(pos, crd, val))
    for val in (PrimaryType.F16, PrimaryType.BF16,
                PrimaryType.I64, PrimaryType.I32, PrimaryType.I16, PrimaryType.I8):
        for width in _WIDTHS:
            triples.append(TypeTriple(width, width, val))
    for val in (PrimaryType.C64, PrimaryType.C32):
        triples.append(TypeTriple(OverheadType.U64, OverheadType.U64, val))
    return tuple(triples)


SUPPORTED_TRIPLES: Tuple[TypeTriple, ...] = _build_support_set()


# =============================================================================
# Factories
# =============================================================================

Factory = Callable[..., Any]


def _check_storage(ptr: Any, triple: TypeTriple) -> SparseTensorStorageBase:
    ensure_alive(ptr)
    check(
        isinstance(ptr, SparseTensorStorageBase),
        SPT_ERROR_TYPE_MISMATCH,
        f"expected a storage handle, got {type(ptr).__name__}",
    )
    check(
        ptr.triple == triple,
        SPT_ERROR_TYPE_MISMATCH,
        f"handle was created as {ptr.triple}, used as {triple}",
    )
    return ptr


def _make_factory(triple: TypeTriple) -> Factory:
    """Bind every construction action to one specialization."""

    def factory(
        action: Action,
        dim_sizes: Sequence[int],
        lvl_sizes: Sequence[int],
        lvl_types: Sequence[Any],
        dim_map: DimLevelMap,
        ptr: Any = None,
    ) -> Any:
        if action == Action.EMPTY:
            return SparseTensorStorage.new_empty(dim_sizes, lvl_sizes, lvl_types, dim_map, triple)

        if action == Action.FROM_COO:
            ensure_alive(ptr)
            check(
                isinstance(ptr, SparseTensorCOO) and ptr.val_type is triple.val,
                SPT_ERROR_TYPE_MISMATCH,
                f"expected a COO of {triple.val.name}, got {ptr!r}",
            )
            check(
                ptr.lvl_sizes == tuple(int(s) for s in lvl_sizes),
                SPT_ERROR_DIMENSION_MISMATCH,
                f"COO level sizes {ptr.lvl_sizes} do not match {tuple(lvl_sizes)}",
            )
            return SparseTensorStorage.new_from_coo(dim_sizes, lvl_types, dim_map, triple, ptr)

        if action == Action.SPARSE_TO_SPARSE:
            ensure_alive(ptr)
            check(
                isinstance(ptr, SparseTensorStorageBase),
                SPT_ERROR_TYPE_MISMATCH,
                f"expected a storage handle, got {type(ptr).__name__}",
            )
            return SparseTensorStorage.new_from_sparse_tensor(
                dim_sizes, lvl_sizes, lvl_types, dim_map, triple, ptr
            )

        if action == Action.EMPTY_COO:
            return SparseTensorCOO(lvl_sizes, triple.val)

        if action == Action.TO_COO or action == Action.TO_ITERATOR:
            storage = _check_storage(ptr, triple)
            check(
                dim_map.dim_rank == storage.lvl_rank,
                SPT_ERROR_DIMENSION_MISMATCH,
                f"target map of rank {dim_map.dim_rank} over {storage.lvl_rank} levels",
            )
            out_sizes = dim_map.lvl_sizes(storage.lvl_sizes)
            check(
                out_sizes == tuple(int(s) for s in lvl_sizes),
                SPT_ERROR_DIMENSION_MISMATCH,
                f"target sizes {tuple(lvl_sizes)} do not match exported sizes {out_sizes}",
            )
            coo = storage.to_coo(dim_map)
            if action == Action.TO_COO:
                return coo
            return SparseTensorIterator(coo)

        if action == Action.PACK:
            check(ptr is not None, SPT_ERROR_NULL_HANDLE, "pack requires level buffers")
            return SparseTensorStorage.pack_from_lvl_buffers(
                dim_sizes, lvl_sizes, lvl_types, dim_map, triple, ptr
            )

        fatal(SPT_ERROR_UNKNOWN_ACTION, f"unknown action: {int(action)}")

    factory.__name__ = f"new_{triple.pos.name}_{triple.crd.name}_{triple.val.name}".lower()
    factory.__qualname__ = factory.__name__
    return factory


_FACTORIES: Dict[TypeTriple, Factory] = {t: _make_factory(t) for t in SUPPORTED_TRIPLES}


# =============================================================================
# Type Resolution
# =============================================================================

def normalize_overhead(tp: OverheadType) -> OverheadType:
    """Rewrite the host ``INDEX`` tag to its fixed width."""
    if tp is not OverheadType.INDEX:
        return tp
    width = config.dispatch.index_width
    if width != 64:
        fatal(SPT_ERROR_UNSUPPORTED_TYPES, f"unsupported index width: {width}")
    return OverheadType.U64


def _tag(tp: Any) -> str:
    return getattr(tp, 'name', str(tp))


def resolve_triple(pos_tp: Any, crd_tp: Any, val_tp: Any) -> TypeTriple:
    """
    Normalize runtime tags into a supported ``TypeTriple``.

    Unknown tags and unsupported combinations are fatal.
    """
    try:
        pos = normalize_overhead(validate_overhead(pos_tp))
        crd = normalize_overhead(validate_overhead(crd_tp))
        val = validate_primary(val_tp)
    except (ValueError, TypeError):
        fatal(
            SPT_ERROR_UNSUPPORTED_TYPES,
            f"unsupported combination of types: "
            f"<P={_tag(pos_tp)}, C={_tag(crd_tp)}, V={_tag(val_tp)}>",
        )
    triple = TypeTriple(pos, crd, val)
    if triple not in _FACTORIES:
        fatal(SPT_ERROR_UNSUPPORTED_TYPES, f"unsupported combination of types: {triple}")
    return triple


def is_supported(pos_tp: Any, crd_tp: Any, val_tp: Any) -> bool:
    """True when the triple is in the support set (never fatal)."""
    try:
        pos = validate_overhead(pos_tp)
        crd = validate_overhead(crd_tp)
        val = validate_primary(val_tp)
    except (ValueError, TypeError):
        return False
    if pos is OverheadType.INDEX:
        pos = OverheadType.U64
    if crd is OverheadType.INDEX:
        crd = OverheadType.U64
    return TypeTriple(pos, crd, val) in _FACTORIES


def lookup(triple: TypeTriple) -> Factory:
    """Factory bound to ``triple``; fatal if the triple is unsupported."""
    factory = _FACTORIES.get(triple)
    if factory is None:
        fatal(SPT_ERROR_UNSUPPORTED_TYPES, f"unsupported combination of types: {triple}")
    return factory


# =============================================================================
# Entry Point
# =============================================================================

def new_sparse_tensor(
    dim_sizes: Sequence[int],
    lvl_sizes: Sequence[int],
    lvl_types: Sequence[Any],
    dim2lvl: Sequence[int],
    lvl2dim: Optional[Sequence[int]],
    pos_tp: Any,
    crd_tp: Any,
    val_tp: Any,
    action: Any,
    ptr: Any = None,
) -> Any:
    """
    Create, convert or export sparse tensor storage.

    Parameters
    ----------
    dim_sizes, lvl_sizes : sequence of int
        Shape in dimension and level space. For ``TO_COO``/``TO_ITERATOR``
        these are the source level sizes and the target sizes.
    lvl_types : sequence of LevelType
        Per-level storage annotation.
    dim2lvl, lvl2dim : sequence of int
        The dimension/level map (``lvl2dim`` may be omitted for a
        permutation). For exports it maps storage levels onto the target.
    pos_tp, crd_tp : OverheadType
        Overhead widths; ``INDEX`` is rewritten to ``U64``.
    val_tp : PrimaryType
        Value type.
    action : Action
        Construction action.
    ptr : object, optional
        The COO, source storage or buffer list the action consumes.

    Returns
    -------
    SparseTensorStorage, SparseTensorCOO or SparseTensorIterator

    Raises
    ------
    FatalError
        Unsupported type triple or unknown action.
    SparseTensorError
        Precondition violations (debug checks, ownership, invalid maps).
    """
    triple = resolve_triple(pos_tp, crd_tp, val_tp)
    factory = _FACTORIES[triple]
    try:
        action = Action(int(action))
    except (ValueError, TypeError):
        fatal(SPT_ERROR_UNKNOWN_ACTION, f"unknown action: {action}")

    dim_map = DimLevelMap(dim2lvl, lvl2dim, dim_rank=len(dim_sizes), lvl_rank=len(lvl_sizes))
    logger.debug("dispatch %s to %s", action.name, triple)
    return factory(action, dim_sizes, lvl_sizes, lvl_types, dim_map, ptr)
