"""Shared fixtures for retry harness tests."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from retryharness.bus import CollectingSink, SynchronousMessageBus
from retryharness.metadata import fact, make_test_method, retry_class
from retryharness.models import CancellationSource, ExceptionAggregator


@pytest.fixture()
def sink() -> CollectingSink:
    """Sink at the end of the real message bus."""
    return CollectingSink()


@pytest.fixture()
def bus(sink: CollectingSink) -> SynchronousMessageBus:
    return SynchronousMessageBus(sink)


@pytest.fixture()
def diagnostics() -> CollectingSink:
    """Sink collecting diagnostic notices."""
    return CollectingSink()


@pytest.fixture()
def aggregator() -> ExceptionAggregator:
    return ExceptionAggregator()


@pytest.fixture()
def cancellation() -> CancellationSource:
    return CancellationSource()


@pytest.fixture()
def run_case(bus, diagnostics, aggregator, cancellation) -> Callable[..., Any]:
    """Return an async helper running a case against the shared fixtures."""

    async def _run(case: Any, constructor_arguments: tuple = ()) -> Any:
        return await case.run(
            diagnostics, bus, constructor_arguments, aggregator, cancellation
        )

    return _run


def make_scripted_method(failures: int, retry: bool = True, disable_retry: bool = False):
    """Build a test method that fails on its first *failures* invocations.

    Returns:
        ``(test_method, calls)`` where *calls* records one entry per invocation.
    """
    calls: list[int] = []

    class ScriptedSuite:
        @fact
        def check(self) -> None:
            calls.append(len(calls) + 1)
            if len(calls) <= failures:
                raise AssertionError(f"attempt {len(calls)} failed")

    if retry:
        retry_class(ScriptedSuite, disable_retry=disable_retry)
    return make_test_method(ScriptedSuite, "check", "tests"), calls


@pytest.fixture()
def scripted_method() -> Callable[..., Any]:
    return make_scripted_method
