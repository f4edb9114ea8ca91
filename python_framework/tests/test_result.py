"""
Tests for the Result monad.

Tests cover:
  - Success/Failure creation and introspection
  - map, flat_map, ensure transformations
  - Side effects (peek, peek_failure)
  - Recovery (get_or_else, either)
  - Static factories (from_computation, from_optional, all_of)
  - Pattern matching (match/case)
  - Equality
"""

from __future__ import annotations

import pytest

from railway import ErrorCode, Failure, FailureDescription, Result, Success


# ═══════════════════════════════════════════════════════════════
# 1. Creation & Introspection
# ═══════════════════════════════════════════════════════════════


class TestSuccessCreation:
    def test_success_wraps_value(self):
        result = Result.success(42)
        assert result.is_success()
        assert not result.is_failure()
        assert result.value() == 42

    def test_success_rejects_none(self):
        with pytest.raises(TypeError, match="must not be None"):
            Success(None)

    def test_success_is_truthy(self):
        assert Result.success(0)
        assert bool(Result.success(""))

    def test_error_on_success_raises(self):
        with pytest.raises(ValueError, match="Cannot get error from a Success"):
            Result.success(1).error()


class TestFailureCreation:
    def test_failure_with_code_and_message(self):
        result = Result.failure(ErrorCode.VALIDATION_ERROR, "productId is required")
        assert result.is_failure()
        assert result.error().code == ErrorCode.VALIDATION_ERROR
        assert result.error().message == "productId is required"

    def test_failure_keeps_exception(self):
        cause = OSError("disk full")
        result = Result.failure(ErrorCode.DATABASE_ERROR, "write failed", cause)
        assert result.error().exception is cause

    def test_failure_from_description(self):
        desc = FailureDescription(ErrorCode.NOT_FOUND, "no such product")
        assert Result.failure_from(desc).error() is desc

    def test_failure_is_falsy(self):
        assert not Result.failure(ErrorCode.NOT_FOUND, "x")

    def test_value_on_failure_raises(self):
        with pytest.raises(ValueError, match="Cannot get value from a Failure"):
            Result.failure(ErrorCode.NOT_FOUND, "gone").value()


# ═══════════════════════════════════════════════════════════════
# 2. Transformations
# ═══════════════════════════════════════════════════════════════


class TestMap:
    def test_map_transforms_success(self):
        assert Result.success(21).map(lambda x: x * 2).value() == 42

    def test_map_skips_failure(self):
        called = []
        result = Result.failure(ErrorCode.VALIDATION_ERROR, "bad").map(called.append)
        assert result.is_failure()
        assert called == []


class TestFlatMap:
    def test_flat_map_chains(self):
        result = Result.success("p1").flat_map(lambda pid: Result.success(f"{pid}:loaded"))
        assert result.value() == "p1:loaded"

    def test_flat_map_short_circuits(self):
        calls = []

        def later(v):
            calls.append(v)
            return Result.success(v)

        result = (
            Result.success(1)
            .flat_map(lambda _: Result.failure(ErrorCode.EXTERNAL_SERVICE_ERROR, "registry down"))
            .flat_map(later)
        )
        assert result.error().code == ErrorCode.EXTERNAL_SERVICE_ERROR
        assert calls == []


class TestEnsure:
    def test_ensure_passes(self):
        assert Result.success(5).ensure(lambda v: v > 0, ErrorCode.VALIDATION_ERROR, "neg").value() == 5

    def test_ensure_fails_with_code(self):
        result = Result.success(-1).ensure(lambda v: v > 0, ErrorCode.BUSINESS_RULE_ERROR, "must be positive")
        assert result.error().code == ErrorCode.BUSINESS_RULE_ERROR
        assert result.error().message == "must be positive"

    def test_ensure_with_description(self):
        desc = FailureDescription(ErrorCode.VALIDATION_ERROR, "nope")
        assert Result.success(0).ensure(bool, desc).error() is desc

    def test_ensure_keeps_existing_failure(self):
        result = Result.failure(ErrorCode.TIMEOUT_ERROR, "slow").ensure(lambda v: True, ErrorCode.VALIDATION_ERROR)
        assert result.error().code == ErrorCode.TIMEOUT_ERROR


# ═══════════════════════════════════════════════════════════════
# 3. Side effects & recovery
# ═══════════════════════════════════════════════════════════════


class TestPeek:
    def test_peek_runs_on_success_only(self):
        seen = []
        Result.success(1).peek(seen.append)
        Result.failure(ErrorCode.NOT_FOUND, "x").peek(seen.append)
        assert seen == [1]

    def test_peek_failure_runs_on_failure_only(self):
        seen = []
        Result.success(1).peek_failure(seen.append)
        Result.failure(ErrorCode.NOT_FOUND, "x").peek_failure(lambda e: seen.append(e.code))
        assert seen == [ErrorCode.NOT_FOUND]

    def test_peek_returns_same_result(self):
        result = Result.success(3)
        assert result.peek(lambda _: None) is result


class TestRecovery:
    def test_get_or_else(self):
        assert Result.success(1).get_or_else(0) == 1
        assert Result.failure(ErrorCode.DATABASE_ERROR, "x").get_or_else(0) == 0

    def test_either(self):
        on_success = Result.success(2).either(lambda v: v * 10, lambda e: -1)
        on_failure = Result.failure(ErrorCode.DATABASE_ERROR, "x").either(lambda v: v, lambda e: e.code.value)
        assert on_success == 20
        assert on_failure == "DATABASE_ERROR"


# ═══════════════════════════════════════════════════════════════
# 4. Static factories
# ═══════════════════════════════════════════════════════════════


class TestFromComputation:
    def test_captures_value(self):
        result = Result.from_computation(lambda: 7, ErrorCode.DATABASE_ERROR, "boom")
        assert result.value() == 7

    def test_captures_exception(self):
        def explode():
            raise ConnectionError("refused")

        result = Result.from_computation(explode, ErrorCode.DATABASE_ERROR, "Failed to read product")
        assert result.error().code == ErrorCode.DATABASE_ERROR
        assert result.error().message == "Failed to read product"
        assert isinstance(result.error().exception, ConnectionError)


class TestFromOptional:
    def test_present_value(self):
        assert Result.from_optional("c1", "missing").value() == "c1"

    def test_none_defaults_to_validation_error(self):
        assert Result.from_optional(None, "missing").error().code == ErrorCode.VALIDATION_ERROR

    def test_none_with_custom_code(self):
        result = Result.from_optional(None, "certificate not found", ErrorCode.NOT_FOUND)
        assert result.error().code == ErrorCode.NOT_FOUND


class TestAllOf:
    def test_collects_values(self):
        assert Result.all_of([Result.success(1), Result.success(2)]).value() == [1, 2]

    def test_empty_list(self):
        assert Result.all_of([]).value() == []

    def test_first_failure_wins(self):
        result = Result.all_of(
            [
                Result.success(1),
                Result.failure(ErrorCode.DATABASE_ERROR, "first"),
                Result.failure(ErrorCode.TIMEOUT_ERROR, "second"),
            ]
        )
        assert result.error().message == "first"


# ═══════════════════════════════════════════════════════════════
# 5. Pattern matching & equality
# ═══════════════════════════════════════════════════════════════


class TestPatternMatching:
    def test_match_success(self):
        match Result.success("ok"):
            case Success(value):
                assert value == "ok"
            case _:
                pytest.fail("expected Success")

    def test_match_failure(self):
        match Result.failure(ErrorCode.NOT_FOUND, "gone"):
            case Failure(error):
                assert error.code == ErrorCode.NOT_FOUND
            case _:
                pytest.fail("expected Failure")


class TestEquality:
    def test_successes_compare_by_value(self):
        assert Result.success(1) == Result.success(1)
        assert Result.success(1) != Result.success(2)

    def test_failures_compare_by_code_and_message(self):
        assert Result.failure(ErrorCode.NOT_FOUND, "x") == Result.failure(ErrorCode.NOT_FOUND, "x")
        assert Result.failure(ErrorCode.NOT_FOUND, "x") != Result.failure(ErrorCode.DATABASE_ERROR, "x")

    def test_success_never_equals_failure(self):
        assert Result.success(1) != Result.failure(ErrorCode.NOT_FOUND, "1")
