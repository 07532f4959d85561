"""Ownership and Lifetime Management.

Every opaque handle (storage, COO, iterator, reader, writer) carries an
``OwnershipTracker``. A handle is released exactly once, either explicitly
or by being consumed by another object that takes ownership of it.

Key Concepts:
    - OWNED: the caller holds the handle and may use it.
    - CONSUMED: ownership moved elsewhere (a FromCOO construction or an
      iterator); the caller must not touch it again.
    - RELEASED: storage was freed; every later use is rejected.

Safety Model:
    These checks are always on. Double consumption and use after release
    raise ``SparseTensorError`` instead of corrupting state.
"""

from enum import IntEnum
from typing import Any, Optional

from ._errors import (
    SPT_ERROR_DOUBLE_CONSUME,
    SPT_ERROR_NULL_HANDLE,
    SPT_ERROR_USE_AFTER_RELEASE,
    SparseTensorError,
)

__all__ = [
    'Ownership',
    'OwnershipTracker',
    'ensure_alive',
]


class Ownership(IntEnum):
    """Lifecycle state of a handle."""
    OWNED = 0
    CONSUMED = 1
    RELEASED = 2


class OwnershipTracker:
    """Tracks whether a handle is still usable by its current holder.

    Attributes:
        _state: Current lifecycle state.
        _holder: Object that took ownership (for CONSUMED).
        _label: Handle kind used in diagnostics.

    Example:
        >>> tracker = OwnershipTracker("COO")
        >>> tracker.consume(iterator)
        >>> tracker.ensure_valid()
        Traceback (most recent call last):
        ...
        SparseTensorError: sptensor error 40: COO was consumed by ...
    """

    def __init__(self, label: str):
        self._label = label
        self._state = Ownership.OWNED
        self._holder: Optional[Any] = None

    @property
    def state(self) -> Ownership:
        return self._state

    @property
    def is_valid(self) -> bool:
        """True while the caller still owns the handle."""
        return self._state is Ownership.OWNED

    @property
    def holder(self) -> Optional[Any]:
        """Object that consumed the handle, if any."""
        return self._holder

    def ensure_valid(self) -> None:
        """Raise if the handle was consumed or released.

        Raises:
            SparseTensorError: On use after consumption or release.
        """
        if self._state is Ownership.CONSUMED:
            raise SparseTensorError(
                SPT_ERROR_USE_AFTER_RELEASE,
                f"{self._label} was consumed by {type(self._holder).__name__}",
            )
        if self._state is Ownership.RELEASED:
            raise SparseTensorError(
                SPT_ERROR_USE_AFTER_RELEASE,
                f"{self._label} was already released",
            )

    def consume(self, holder: Any) -> None:
        """Move ownership to ``holder``.

        Raises:
            SparseTensorError: If the handle is no longer owned.
        """
        if self._state is not Ownership.OWNED:
            raise SparseTensorError(
                SPT_ERROR_DOUBLE_CONSUME,
                f"{self._label} cannot be consumed: it is {self._state.name.lower()}",
            )
        self._state = Ownership.CONSUMED
        self._holder = holder

    def release(self) -> None:
        """Mark the handle released.

        Raises:
            SparseTensorError: If the handle was already released or consumed.
        """
        self.ensure_valid()
        self._state = Ownership.RELEASED

    def release_from_holder(self, holder: Any) -> None:
        """Release a consumed handle on behalf of the object owning it."""
        if self._state is not Ownership.CONSUMED or self._holder is not holder:
            raise SparseTensorError(
                SPT_ERROR_DOUBLE_CONSUME,
                f"{self._label} is not owned by {type(holder).__name__}",
            )
        self._state = Ownership.RELEASED
        self._holder = None

    def __repr__(self) -> str:
        if self._state is Ownership.CONSUMED:
            return f"OwnershipTracker({self._label}, consumed by {type(self._holder).__name__})"
        return f"OwnershipTracker({self._label}, {self._state.name.lower()})"


def ensure_alive(obj: Any) -> None:
    """Ensure a handle is non-null and still owned by the caller.

    Args:
        obj: Handle to check.

    Raises:
        SparseTensorError: If ``obj`` is None, consumed or released.
    """
    if obj is None:
        raise SparseTensorError(SPT_ERROR_NULL_HANDLE, "received a null handle")
    tracker = getattr(obj, '_ownership', None)
    if tracker is not None:
        tracker.ensure_valid()
