"""Tests for FailureDescription and ErrorCode."""

from datetime import UTC, datetime

import pytest

from railway import ErrorCode, FailureDescription


class TestErrorCode:
    def test_all_9_error_codes_exist(self):
        assert len(list(ErrorCode)) == 9

    def test_error_code_values_match_names(self):
        for code in ErrorCode:
            assert code.value == code.name


class TestFailureDescription:
    def test_creation_with_code_and_message(self):
        desc = FailureDescription(ErrorCode.VALIDATION_ERROR, "file is required")
        assert desc.code == ErrorCode.VALIDATION_ERROR
        assert desc.message == "file is required"
        assert desc.exception is None

    def test_timestamp_is_utc(self):
        before = datetime.now(UTC)
        desc = FailureDescription(ErrorCode.DATABASE_ERROR, "x")
        assert before <= desc.timestamp <= datetime.now(UTC)

    def test_is_immutable(self):
        desc = FailureDescription(ErrorCode.NOT_FOUND, "x")
        with pytest.raises(AttributeError):
            desc.message = "y"

    def test_str(self):
        assert str(FailureDescription(ErrorCode.TIMEOUT_ERROR, "registry slow")) == "TIMEOUT_ERROR: registry slow"

    def test_full_stack_trace_without_exception(self):
        assert FailureDescription(ErrorCode.NOT_FOUND, "gone").full_stack_trace() == "gone"

    def test_full_stack_trace_with_exception(self):
        try:
            raise ConnectionError("refused")
        except ConnectionError as e:
            desc = FailureDescription(ErrorCode.DATABASE_ERROR, "write failed", e)
        trace = desc.full_stack_trace()
        assert trace.startswith("write failed\n")
        assert "ConnectionError: refused" in trace
