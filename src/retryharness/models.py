"""Core data models shared by the harness and its host.

Defines run summaries, attempt records, the framework-level exception
aggregator, the cancellation source, and discovery options.
"""

from __future__ import annotations

import enum
import inspect
import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")


class MethodDisplay(str, enum.Enum):
    """How discovered test cases render their display names."""

    CLASS_AND_METHOD = "class_and_method"
    METHOD = "method"


@dataclass
class RunSummary:
    """Counts and timing for one execution of a test case.

    Attributes:
        total: Number of tests executed.
        failed: Number of tests that failed.
        skipped: Number of tests that were skipped.
        time: Elapsed execution time in seconds.
    """

    total: int = 0
    failed: int = 0
    skipped: int = 0
    time: float = 0.0

    def aggregate(self, other: RunSummary) -> None:
        """Add *other*'s counts and time into this summary."""
        self.total += other.total
        self.failed += other.failed
        self.skipped += other.skipped
        self.time += other.time


@dataclass
class ExecutionAttempt:
    """One execution of a test case inside a retry loop.

    Attributes:
        index: Zero-based attempt number.
        summary: Outcome of the attempt.
        buffered: Whether the attempt's messages were held back for
            later resolution instead of published live.
    """

    index: int
    summary: RunSummary
    buffered: bool = False


@dataclass
class DiscoveryOptions:
    """Options passed by the host to the discovery walk.

    Attributes:
        method_display: Default display strategy for case names.
    """

    method_display: MethodDisplay = MethodDisplay.CLASS_AND_METHOD


class CancellationSource:
    """Host-provided cancellation flag shared across one run."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def is_cancellation_requested(self) -> bool:
        """Return ``True`` once :meth:`cancel` has been called."""
        return self._event.is_set()


class ExceptionAggregator:
    """Collects framework-level faults raised around test execution.

    Test body failures are never stored here; only faults in the
    machinery (fixture setup, class construction, teardown) are.  A
    non-empty aggregator stops the retry loop immediately.
    """

    def __init__(self, parent: ExceptionAggregator | None = None) -> None:
        self._exceptions: list[Exception] = (
            list(parent.exceptions) if parent is not None else []
        )

    @property
    def exceptions(self) -> list[Exception]:
        """Return a copy of the collected exceptions."""
        return list(self._exceptions)

    @property
    def has_exceptions(self) -> bool:
        """Return ``True`` if any exception has been collected."""
        return bool(self._exceptions)

    def add(self, exc: Exception) -> None:
        """Record *exc*."""
        self._exceptions.append(exc)

    def clear(self) -> None:
        """Forget all collected exceptions."""
        self._exceptions.clear()

    def run(self, func: Callable[[], T]) -> T | None:
        """Call *func*, recording any exception instead of raising it."""
        try:
            return func()
        except Exception as exc:
            self.add(exc)
            return None

    async def run_async(self, func: Callable[[], Awaitable[T] | T]) -> T | None:
        """Call *func* and await its result if needed, recording failures."""
        try:
            result: Any = func()
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as exc:
            self.add(exc)
            return None

    def to_exception(self) -> Exception | None:
        """Return the single collected exception, a group of them, or ``None``."""
        if not self._exceptions:
            return None
        if len(self._exceptions) == 1:
            return self._exceptions[0]
        return ExceptionGroup("multiple framework faults", list(self._exceptions))

