"""
sptensor Config - Runtime Configuration

Property-based configuration for the storage engine. Settings can be
changed globally or overridden per thread inside ``config.local(...)``.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, List


# =============================================================================
# Configuration Classes
# =============================================================================

def _checks_enabled_by_env() -> bool:
    return os.environ.get("SPTENSOR_NO_CHECKS", "").lower() not in ("1", "true", "yes")


@dataclass
class CheckConfig:
    """Debug-tier precondition checks (rank agreement, strides, bounds)."""
    enabled: bool = True


@dataclass
class DispatchConfig:
    """Type-matrix dispatch settings."""
    index_width: int = 64          # Host width of the "index" overhead tag


# =============================================================================
# Global Configuration Manager
# =============================================================================

class SptConfig:
    """
    Global configuration manager for sptensor.

    Example:
        # Global configuration
        sptensor.config.checks = CheckConfig(enabled=False)

        # Local configuration (context manager)
        with sptensor.config.local(checks=CheckConfig(enabled=False)):
            storage.lex_insert(coords, 1.0)
        # Back to global config
    """

    def __init__(self):
        self._global_checks = CheckConfig(enabled=_checks_enabled_by_env())
        self._global_dispatch = DispatchConfig()

        # Thread-local storage for context overrides
        self._local = threading.local()

    @property
    def checks(self) -> CheckConfig:
        """Get check configuration."""
        if getattr(self._local, "checks", None) is not None:
            return self._local.checks
        return self._global_checks

    @checks.setter
    def checks(self, value: CheckConfig):
        self._global_checks = value

    @property
    def dispatch(self) -> DispatchConfig:
        """Get dispatch configuration."""
        if getattr(self._local, "dispatch", None) is not None:
            return self._local.dispatch
        return self._global_dispatch

    @dispatch.setter
    def dispatch(self, value: DispatchConfig):
        self._global_dispatch = value

    # -------------------------------------------------------------------------
    # Context Manager Support
    # -------------------------------------------------------------------------

    def local(self, **kwargs) -> "_LocalConfigContext":
        """
        Create a local configuration context.

        Args:
            **kwargs: Configuration overrides (checks, dispatch)
        """
        unknown = set(kwargs) - {"checks", "dispatch"}
        if unknown:
            raise TypeError(f"Unknown configuration sections: {sorted(unknown)}")
        return _LocalConfigContext(self, **kwargs)

    def _set_local(self, **kwargs):
        for key, value in kwargs.items():
            if value is not None:
                setattr(self._local, key, value)

    def _clear_local(self, keys: List[str]):
        for key in keys:
            if hasattr(self._local, key):
                setattr(self._local, key, None)

    def reset(self):
        """Reset all configurations to defaults."""
        self._global_checks = CheckConfig(enabled=_checks_enabled_by_env())
        self._global_dispatch = DispatchConfig()

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary."""
        return {
            "checks": {"enabled": self.checks.enabled},
            "dispatch": {"index_width": self.dispatch.index_width},
        }

    def __repr__(self) -> str:
        return f"SptConfig({self.to_dict()})"


class _LocalConfigContext:
    """Context manager for local configuration override."""

    def __init__(self, config: SptConfig, **kwargs):
        self._config = config
        self._kwargs = kwargs
        self._keys = list(kwargs.keys())

    def __enter__(self):
        self._config._set_local(**self._kwargs)
        return self._config

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._config._clear_local(self._keys)
        return False


# Global configuration instance
config = SptConfig()


def get_config() -> SptConfig:
    """Get the global configuration instance."""
    return config


def set_checks(enabled: bool = True):
    """Enable or disable debug-tier checks globally."""
    config.checks = CheckConfig(enabled=enabled)


__all__ = [
    "CheckConfig",
    "DispatchConfig",
    "SptConfig",
    "config",
    "get_config",
    "set_checks",
]
