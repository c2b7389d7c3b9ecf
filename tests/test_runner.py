"""Tests for single-attempt execution."""

from __future__ import annotations

import asyncio

import pytest

from retryharness.bus import CollectingSink, SynchronousMessageBus
from retryharness.cases import DefaultTestCase
from retryharness.messages import (
    TestCaseFinished,
    TestCaseStarting,
    TestFailed,
    TestFinished,
    TestPassed,
    TestSkipped,
    TestStarting,
)
from retryharness.metadata import fact, make_test_method
from retryharness.models import RunSummary


class CalculatorSuite:
    instances: list = []

    def __init__(self, offset: int = 0) -> None:
        self.offset = offset
        self.closed = False
        CalculatorSuite.instances.append(self)

    def close(self) -> None:
        self.closed = True

    @fact
    def adds(self) -> None:
        assert 1 + 1 + self.offset == 2

    @fact
    async def adds_async(self) -> None:
        await asyncio.sleep(0)
        assert 2 + 2 == 4

    @fact(skip="flaky upstream")
    def skipped(self) -> None:
        raise AssertionError("should not run")


class BrokenConstructorSuite:
    def __init__(self) -> None:
        raise RuntimeError("cannot build")

    @fact
    def check(self) -> None:
        pass


class BrokenTeardownSuite:
    def close(self) -> None:
        raise RuntimeError("cannot close")

    @fact
    def check(self) -> None:
        pass


@pytest.fixture(autouse=True)
def _reset_instances():
    CalculatorSuite.instances.clear()
    yield


def _case(cls: type, name: str) -> DefaultTestCase:
    return DefaultTestCase(make_test_method(cls, name, "tests"))


class TestCaseRunner:
    @pytest.mark.asyncio
    async def test_passing_message_sequence(self, run_case, sink) -> None:
        case = _case(CalculatorSuite, "adds")
        summary = await run_case(case)

        assert summary.total == 1
        assert summary.failed == 0
        assert summary.time >= 0
        assert [type(m) for m in sink.messages] == [
            TestCaseStarting,
            TestStarting,
            TestPassed,
            TestFinished,
            TestCaseFinished,
        ]
        assert sink.messages[-1].summary is summary

    @pytest.mark.asyncio
    async def test_async_body_is_awaited(self, run_case, sink) -> None:
        summary = await run_case(_case(CalculatorSuite, "adds_async"))
        assert summary.failed == 0
        assert sink.of_type(TestPassed)

    @pytest.mark.asyncio
    async def test_constructor_arguments_are_passed(self, run_case, sink) -> None:
        summary = await run_case(_case(CalculatorSuite, "adds"), constructor_arguments=(5,))
        assert summary.failed == 1
        failed = sink.of_type(TestFailed)[0]
        assert failed.exception_types == ["builtins.AssertionError"]

    @pytest.mark.asyncio
    async def test_skip_reason_reported(self, run_case, sink) -> None:
        summary = await run_case(_case(CalculatorSuite, "skipped"))
        assert summary == RunSummary(total=1, skipped=1)
        assert sink.of_type(TestSkipped)[0].reason == "flaky upstream"
        assert CalculatorSuite.instances == []

    @pytest.mark.asyncio
    async def test_close_called_after_body(self, run_case) -> None:
        await run_case(_case(CalculatorSuite, "adds"))
        assert CalculatorSuite.instances[0].closed is True

    @pytest.mark.asyncio
    async def test_constructor_fault_goes_to_aggregator(
        self, run_case, aggregator, sink
    ) -> None:
        summary = await run_case(_case(BrokenConstructorSuite, "check"))
        assert summary.failed == 1
        assert aggregator.has_exceptions
        assert sink.of_type(TestFailed)[0].messages == ["cannot build"]

    @pytest.mark.asyncio
    async def test_teardown_fault_goes_to_aggregator(
        self, run_case, aggregator, sink
    ) -> None:
        summary = await run_case(_case(BrokenTeardownSuite, "check"))
        assert summary.failed == 1
        assert aggregator.has_exceptions
        assert sink.of_type(TestFailed)[0].messages == ["cannot close"]

    @pytest.mark.asyncio
    async def test_cancelled_run_does_nothing(
        self, run_case, cancellation, sink
    ) -> None:
        cancellation.cancel()
        summary = await run_case(_case(CalculatorSuite, "adds"))
        assert summary == RunSummary()
        assert sink.messages == []

    @pytest.mark.asyncio
    async def test_bus_stop_request_cancels(
        self, diagnostics, aggregator, cancellation
    ) -> None:
        bus = SynchronousMessageBus(CollectingSink(stop_after=1))
        await _case(CalculatorSuite, "adds").run(
            diagnostics, bus, (), aggregator, cancellation
        )
        assert cancellation.is_cancellation_requested


class TestFailedFromException:
    def test_walks_exception_chain(self) -> None:
        case = _case(CalculatorSuite, "adds")
        try:
            try:
                raise KeyError("inner")
            except KeyError as inner:
                raise ValueError("outer") from inner
        except ValueError as exc:
            failed = TestFailed.from_exception(case, exc, 0.5)

        assert failed.exception_types == ["builtins.ValueError", "builtins.KeyError"]
        assert failed.messages == ["outer", "'inner'"]
        assert len(failed.stack_traces) == 2
        assert failed.execution_time == 0.5
