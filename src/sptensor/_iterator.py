"""Single-owner cursor over a coordinate list."""

import logging
from typing import Optional

from ._coo import Element, SparseTensorCOO
from ._ownership import OwnershipTracker

logger = logging.getLogger("sptensor.iterator")

__all__ = ['SparseTensorIterator']


class SparseTensorIterator:
    """
    Lazily yields the elements of a COO it owns.

    The constructor takes ownership of ``coo``: the caller must not use or
    release it afterwards, and releasing the iterator frees the COO. The
    cursor is single-pass; iterating again needs a new iterator.

    Example:
        >>> it = SparseTensorIterator(coo)
        >>> while (elem := it.get_next()) is not None:
        ...     print(elem.coords, elem.value)
        >>> it.release()
    """

    def __init__(self, coo: SparseTensorCOO):
        self._elements = coo._take(self)
        self._coo = coo
        self._pos = 0
        self._ownership = OwnershipTracker("iterator")

    @property
    def rank(self) -> int:
        return self._coo.rank

    @property
    def lvl_sizes(self):
        return self._coo.lvl_sizes

    @property
    def val_type(self):
        return self._coo.val_type

    def get_next(self) -> Optional[Element]:
        """Return the next element, or None once exhausted."""
        self._ownership.ensure_valid()
        if self._pos >= len(self._elements):
            return None
        elem = self._elements[self._pos]
        self._pos += 1
        return elem

    def __iter__(self):
        return self

    def __next__(self) -> Element:
        elem = self.get_next()
        if elem is None:
            raise StopIteration
        return elem

    def release(self) -> None:
        """Free the iterator and the COO it owns."""
        self._ownership.release()
        self._coo._free_from(self)
        self._elements = []
        logger.debug("released iterator after %d elements", self._pos)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._ownership.is_valid:
            self.release()
        return False
