"""
Tests for configuration and the error tiers.
"""

import logging

import pytest

from sptensor import (
    CheckConfig,
    DispatchConfig,
    FatalError,
    SparseTensorError,
    config,
    get_config,
    set_checks,
)
from sptensor._errors import (
    SPT_ERROR_DIMENSION_MISMATCH,
    SPT_ERROR_UNSUPPORTED_TYPES,
    check,
    error_message,
    fatal,
)


# =============================================================================
# Configuration
# =============================================================================

class TestConfig:
    """Test the global configuration manager."""

    def test_defaults(self):
        assert config.checks.enabled is True
        assert config.dispatch.index_width == 64
        assert get_config() is config

    def test_to_dict(self):
        assert config.to_dict() == {
            "checks": {"enabled": True},
            "dispatch": {"index_width": 64},
        }

    def test_set_checks(self):
        set_checks(False)
        assert config.checks.enabled is False
        set_checks(True)
        assert config.checks.enabled is True

    def test_local_override_restored(self):
        with config.local(checks=CheckConfig(enabled=False)):
            assert config.checks.enabled is False
        assert config.checks.enabled is True

    def test_local_dispatch_override(self):
        with config.local(dispatch=DispatchConfig(index_width=32)):
            assert config.dispatch.index_width == 32
        assert config.dispatch.index_width == 64

    def test_local_unknown_section(self):
        with pytest.raises(TypeError, match="Unknown configuration sections"):
            config.local(threads=4)

    def test_env_disables_checks(self, monkeypatch):
        monkeypatch.setenv("SPTENSOR_NO_CHECKS", "1")
        config.reset()
        assert config.checks.enabled is False
        monkeypatch.delenv("SPTENSOR_NO_CHECKS")
        config.reset()
        assert config.checks.enabled is True


# =============================================================================
# Error Tiers
# =============================================================================

class TestErrors:
    """Test recoverable and fatal errors."""

    def test_error_carries_code(self):
        err = SparseTensorError(SPT_ERROR_DIMENSION_MISMATCH, "ranks differ")
        assert err.code == SPT_ERROR_DIMENSION_MISMATCH
        assert err.message == "ranks differ"
        assert "11" in str(err)

    def test_default_message(self):
        err = SparseTensorError(SPT_ERROR_DIMENSION_MISMATCH)
        assert err.message == error_message(SPT_ERROR_DIMENSION_MISMATCH)

    def test_unassigned_code_message(self):
        assert error_message(1) == "Unknown error (code=1)"
        assert SparseTensorError(2).message == "Unknown error (code=2)"

    def test_check_raises_when_enabled(self):
        with pytest.raises(SparseTensorError) as exc_info:
            check(False, SPT_ERROR_DIMENSION_MISMATCH, "sizes")
        assert exc_info.value.code == SPT_ERROR_DIMENSION_MISMATCH
        assert "sizes" in exc_info.value.message

    def test_check_silent_when_disabled(self):
        with config.local(checks=CheckConfig(enabled=False)):
            check(False, SPT_ERROR_DIMENSION_MISMATCH, "sizes")

    def test_check_passes(self):
        check(True, SPT_ERROR_DIMENSION_MISMATCH)

    def test_fatal_is_system_exit(self):
        assert issubclass(FatalError, SystemExit)
        assert not issubclass(FatalError, Exception)

    def test_fatal_logs_and_raises(self, caplog):
        with caplog.at_level(logging.CRITICAL, logger="sptensor.errors"):
            with pytest.raises(FatalError) as exc_info:
                fatal(SPT_ERROR_UNSUPPORTED_TYPES, "unsupported combination of types: <P=U8>")
        assert exc_info.value.error_code == SPT_ERROR_UNSUPPORTED_TYPES
        assert "<P=U8>" in exc_info.value.message
        assert any("<P=U8>" in r.getMessage() for r in caplog.records)

    def test_fatal_not_swallowed_by_except_exception(self):
        with pytest.raises(FatalError):
            try:
                fatal(SPT_ERROR_UNSUPPORTED_TYPES, "boom")
            except Exception:
                pytest.fail("FatalError must not be an Exception")
