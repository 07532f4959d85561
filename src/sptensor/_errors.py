"""
Error handling for sptensor.

Two tiers exist:

- Fatal: unsupported type-matrix triples, unknown actions and malformed
  interchange headers. ``fatal()`` logs a CRITICAL record and raises
  ``FatalError``, a ``SystemExit`` subclass, so an uncaught fatal terminates
  the interpreter with the diagnostic and ``except Exception`` cannot hide it.
- Debug checks: precondition assertions (rank mismatches, non-unit strides,
  insufficient capacity). ``check()`` raises ``SparseTensorError`` only while
  ``config.checks.enabled`` is set.
"""

from __future__ import annotations

import logging
from typing import NoReturn, Optional

from ._config import config

logger = logging.getLogger("sptensor.errors")


# =============================================================================
# Error Codes
# =============================================================================

SPT_OK = 0

# General errors (1-9)
SPT_ERROR_NULL_HANDLE = 4

# Argument errors (10-19)
SPT_ERROR_INVALID_ARGUMENT = 10
SPT_ERROR_DIMENSION_MISMATCH = 11
SPT_ERROR_INDEX_OUT_OF_BOUNDS = 14
SPT_ERROR_NON_UNIT_STRIDE = 15
SPT_ERROR_INSUFFICIENT_CAPACITY = 16
SPT_ERROR_INVALID_MAP = 17

# Type errors (20-29)
SPT_ERROR_TYPE_ERROR = 20
SPT_ERROR_TYPE_MISMATCH = 21
SPT_ERROR_UNSUPPORTED_TYPES = 22
SPT_ERROR_UNKNOWN_ACTION = 23

# I/O errors (30-39)
SPT_ERROR_IO_ERROR = 30
SPT_ERROR_FILE_NOT_FOUND = 31
SPT_ERROR_MALFORMED_HEADER = 32
SPT_ERROR_UNKNOWN_FORMAT = 33

# Lifecycle errors (40-49)
SPT_ERROR_USE_AFTER_RELEASE = 40
SPT_ERROR_DOUBLE_CONSUME = 41
SPT_ERROR_INVALID_STATE = 42
SPT_ERROR_NON_LEXICOGRAPHIC = 43
SPT_ERROR_DUPLICATE = 44

# Numerical errors (50-59)
SPT_ERROR_OVERFLOW = 52


_ERROR_MESSAGES = {
    SPT_OK: "Success",
    SPT_ERROR_NULL_HANDLE: "Null handle",
    SPT_ERROR_INVALID_ARGUMENT: "Invalid argument",
    SPT_ERROR_DIMENSION_MISMATCH: "Dimension mismatch",
    SPT_ERROR_INDEX_OUT_OF_BOUNDS: "Index out of bounds",
    SPT_ERROR_NON_UNIT_STRIDE: "Buffer has non-trivial stride",
    SPT_ERROR_INSUFFICIENT_CAPACITY: "Not enough space in buffers",
    SPT_ERROR_INVALID_MAP: "Invalid dimension/level map",
    SPT_ERROR_TYPE_ERROR: "Type error",
    SPT_ERROR_TYPE_MISMATCH: "Type mismatch",
    SPT_ERROR_UNSUPPORTED_TYPES: "Unsupported combination of types",
    SPT_ERROR_UNKNOWN_ACTION: "Unknown action",
    SPT_ERROR_IO_ERROR: "I/O error",
    SPT_ERROR_FILE_NOT_FOUND: "File not found",
    SPT_ERROR_MALFORMED_HEADER: "Malformed header",
    SPT_ERROR_UNKNOWN_FORMAT: "Unknown file format",
    SPT_ERROR_USE_AFTER_RELEASE: "Use after release",
    SPT_ERROR_DOUBLE_CONSUME: "Handle already consumed",
    SPT_ERROR_INVALID_STATE: "Invalid state",
    SPT_ERROR_NON_LEXICOGRAPHIC: "Non-lexicographic insertion",
    SPT_ERROR_DUPLICATE: "Duplicate insertion",
    SPT_ERROR_OVERFLOW: "Overflow",
}


# =============================================================================
# Exception Classes
# =============================================================================

class SparseTensorError(Exception):
    """
    Recoverable precondition failure.

    Raised by debug checks and by ownership/map validation.
    """

    OK = SPT_OK
    ERROR_INVALID_ARGUMENT = SPT_ERROR_INVALID_ARGUMENT
    ERROR_DIMENSION_MISMATCH = SPT_ERROR_DIMENSION_MISMATCH
    ERROR_INDEX_OUT_OF_BOUNDS = SPT_ERROR_INDEX_OUT_OF_BOUNDS
    ERROR_NON_UNIT_STRIDE = SPT_ERROR_NON_UNIT_STRIDE
    ERROR_TYPE_MISMATCH = SPT_ERROR_TYPE_MISMATCH
    ERROR_USE_AFTER_RELEASE = SPT_ERROR_USE_AFTER_RELEASE
    ERROR_DOUBLE_CONSUME = SPT_ERROR_DOUBLE_CONSUME
    ERROR_INVALID_STATE = SPT_ERROR_INVALID_STATE
    ERROR_OVERFLOW = SPT_ERROR_OVERFLOW

    def __init__(self, code: int, message: Optional[str] = None):
        self.code = code
        if message is None:
            message = _ERROR_MESSAGES.get(code, f"Unknown error (code={code})")
        self.message = message
        super().__init__(f"sptensor error {code}: {message}")

    @classmethod
    def from_code(cls, code: int, context: str = "") -> "SparseTensorError":
        """Create exception from error code with optional context."""
        base_msg = _ERROR_MESSAGES.get(code, "Unknown error")
        msg = f"{context}: {base_msg}" if context else base_msg
        return cls(code, msg)


class FatalError(SystemExit):
    """
    Non-recoverable contract violation.

    Subclasses ``SystemExit``: left uncaught, the interpreter exits and
    prints the diagnostic to stderr.
    """

    def __init__(self, code: int, message: str):
        self.error_code = code
        self.message = message
        super().__init__(f"sptensor fatal error {code}: {message}")


# =============================================================================
# Error Raising Helpers
# =============================================================================

def fatal(code: int, message: str) -> NoReturn:
    """Log a diagnostic and terminate via ``FatalError``."""
    logger.critical(message)
    raise FatalError(code, message)


def check(condition: bool, code: int, message: str = "") -> None:
    """
    Debug-tier assertion.

    Does nothing when checks are disabled in the configuration, which
    mirrors assertions compiled out of release builds.
    """
    if condition:
        return
    if not config.checks.enabled:
        return
    raise SparseTensorError.from_code(code, message)


def error_message(code: int) -> str:
    """Human-readable message for an error code."""
    return _ERROR_MESSAGES.get(code, f"Unknown error (code={code})")


__all__ = [
    "SparseTensorError",
    "FatalError",
    "fatal",
    "check",
    "error_message",
]
