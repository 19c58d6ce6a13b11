"""Tests for the error hierarchy and reporter."""

import logging

from stashx import (
    ComputationError,
    PersistenceError,
    StashError,
    UnsupportedCapability,
    UnsupportedOperation,
    set_error_handler,
)
from stashx.errors import report


class TestHierarchy:
    def test_all_inherit_from_stash_error(self):
        assert issubclass(UnsupportedOperation, StashError)
        assert issubclass(UnsupportedCapability, StashError)
        assert issubclass(ComputationError, StashError)
        assert issubclass(PersistenceError, StashError)

    def test_recovered_errors_carry_context(self):
        cause = KeyError("name")
        err = PersistenceError(7, "settings", cause)
        assert err.store_id == 7
        assert err.key == "settings"
        assert err.cause is cause
        assert "settings" in str(err)


class TestReporter:
    def test_default_logs_with_cause(self, caplog):
        with caplog.at_level(logging.ERROR, logger="stashx.errors"):
            try:
                raise ValueError("bad input")
            except ValueError as exc:
                report(ComputationError(3, exc))
        assert "store 3" in caplog.text
        assert "ValueError" in caplog.text

    def test_custom_handler_and_reset(self, caplog):
        seen = []
        set_error_handler(seen.append)
        try:
            report(ComputationError(1, RuntimeError("x")))
        finally:
            set_error_handler(None)
        assert len(seen) == 1
        with caplog.at_level(logging.ERROR, logger="stashx.errors"):
            report(ComputationError(2, RuntimeError("y")))
        assert "store 2" in caplog.text

    def test_failing_handler_does_not_raise(self, caplog):
        def broken(error):
            raise RuntimeError("handler broke")

        set_error_handler(broken)
        try:
            report(ComputationError(1, None, "detail only"))
        finally:
            set_error_handler(None)
        assert "Error handler failed" in caplog.text
