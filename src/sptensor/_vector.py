"""
Growable Typed Buffers

numpy-backed, amortized-growth vectors used for per-level overhead arrays
and the values array. ``view()`` exposes the live prefix without copying.
"""

from typing import Any, Iterable, List, Optional

import numpy as np

from ._dtypes import OverheadType, check_overflow_cast

__all__ = ['Vector']


class Vector:
    """
    Contiguous growable array with a fixed element dtype.

    When constructed with an ``overhead`` type, every stored value is checked
    against that width (debug tier).

    Attributes:
        dtype (np.dtype): Element dtype
        size (int): Number of live elements
        capacity (int): Allocated elements

    Example:
        >>> v = Vector(np.uint32, overhead=OverheadType.U32)
        >>> v.push_back(3)
        >>> v.extend_fill(2, 7)
        >>> v.view().tolist()
        [3, 7, 7]
    """

    def __init__(
        self,
        dtype: Any,
        capacity: int = 0,
        overhead: Optional[OverheadType] = None
    ):
        if capacity < 0:
            raise ValueError(f"Vector capacity must be non-negative, got {capacity}")
        self._dtype = np.dtype(dtype)
        self._overhead = overhead
        self._data = np.zeros(capacity, dtype=self._dtype)
        self._size = 0

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def size(self) -> int:
        return self._size

    @property
    def capacity(self) -> int:
        return int(self._data.shape[0])

    # -------------------------------------------------------------------------
    # Growth
    # -------------------------------------------------------------------------

    def reserve(self, capacity: int) -> None:
        """Grow the allocation to hold at least ``capacity`` elements."""
        if capacity <= self.capacity:
            return
        new_data = np.zeros(capacity, dtype=self._dtype)
        new_data[:self._size] = self._data[:self._size]
        self._data = new_data

    def _grow_for(self, extra: int) -> None:
        needed = self._size + extra
        if needed > self.capacity:
            self.reserve(max(needed, 2 * self.capacity, 8))

    def _checked(self, value):
        if self._overhead is not None:
            return check_overflow_cast(value, self._overhead)
        return value

    def push_back(self, value) -> None:
        """Append one element."""
        value = self._checked(value)
        self._grow_for(1)
        self._data[self._size] = value
        self._size += 1

    def extend_fill(self, count: int, value) -> None:
        """Append ``count`` copies of ``value``."""
        if count <= 0:
            return
        value = self._checked(value)
        self._grow_for(count)
        self._data[self._size:self._size + count] = value
        self._size += count

    def extend(self, values: Iterable) -> None:
        """Append all elements of ``values``."""
        arr = np.asarray(list(values) if not hasattr(values, '__len__') else values)
        if arr.size == 0:
            return
        if self._overhead is not None:
            for v in arr.ravel():
                check_overflow_cast(v, self._overhead)
        self._grow_for(arr.size)
        self._data[self._size:self._size + arr.size] = arr.ravel()
        self._size += arr.size

    def assign(self, values: Any) -> None:
        """Replace the contents with a copy of ``values``."""
        self._size = 0
        self.extend(np.asarray(values))

    def resize(self, size: int, fill=0) -> None:
        """Resize to ``size`` elements, filling new slots with ``fill``."""
        if size <= self._size:
            self._size = size
            return
        self.extend_fill(size - self._size, fill)

    def clear(self) -> None:
        self._size = 0

    # -------------------------------------------------------------------------
    # Element Access
    # -------------------------------------------------------------------------

    def __getitem__(self, idx: int):
        if idx < 0:
            idx += self._size
        if idx < 0 or idx >= self._size:
            raise IndexError(f"Index {idx} out of bounds [0, {self._size})")
        return self._data[idx]

    def __setitem__(self, idx: int, value) -> None:
        if idx < 0:
            idx += self._size
        if idx < 0 or idx >= self._size:
            raise IndexError(f"Index {idx} out of bounds [0, {self._size})")
        self._data[idx] = self._checked(value)

    def __len__(self) -> int:
        return self._size

    def back(self):
        """Last element."""
        return self[self._size - 1]

    def view(self) -> np.ndarray:
        """Zero-copy view of the live elements."""
        return self._data[:self._size]

    def tolist(self) -> List:
        return self.view().tolist()

    def __repr__(self) -> str:
        if self._size <= 6:
            data_str = str(self.tolist())
        else:
            items = self.tolist()
            data_str = str(items[:3] + ['...'] + items[-3:])
        return f"Vector({data_str}, dtype={self._dtype})"
