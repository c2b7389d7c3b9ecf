"""Single-attempt execution of a test case.

:class:`CaseRunner` is the host-native behaviour the retry loop invokes
once per attempt.  It constructs the test class, invokes the method with
the case's arguments, and publishes the message sequence::

    TestCaseStarting, TestStarting,
    TestPassed | TestFailed | TestSkipped,
    TestFinished, TestCaseFinished

Faults in class construction or teardown are framework faults: they are
recorded in the :class:`ExceptionAggregator` and reported as a failure.
"""

from __future__ import annotations

import inspect
import logging
import time
from typing import TYPE_CHECKING, Any, Sequence

from retryharness.bus import MessageBus
from retryharness.messages import (
    Message,
    TestCaseFinished,
    TestCaseStarting,
    TestFailed,
    TestFinished,
    TestPassed,
    TestSkipped,
    TestStarting,
)
from retryharness.models import CancellationSource, ExceptionAggregator, RunSummary

if TYPE_CHECKING:
    from retryharness.cases import TestCase

logger = logging.getLogger(__name__)


class CaseRunner:
    """Runs one attempt of *test_case* and reports it on *message_bus*.

    Args:
        test_case: The case reported in every message.
        message_bus: Bus the attempt publishes to.
        constructor_arguments: Positional arguments for the test class.
        aggregator: Framework fault collector.
        cancellation: Host cancellation source.
        arguments: Override for the case's own arguments (runtime theories).
    """

    def __init__(
        self,
        test_case: TestCase,
        message_bus: MessageBus,
        constructor_arguments: Sequence[Any],
        aggregator: ExceptionAggregator,
        cancellation: CancellationSource,
        arguments: Sequence[Any] | None = None,
    ) -> None:
        self._test_case = test_case
        self._bus = message_bus
        self._constructor_arguments = tuple(constructor_arguments)
        self._aggregator = aggregator
        self._cancellation = cancellation
        self._arguments = (
            tuple(arguments)
            if arguments is not None
            else tuple(test_case.arguments or ())
        )

    def _publish(self, message: Message) -> None:
        if not self._bus.queue_message(message):
            self._cancellation.cancel()

    async def run(self) -> RunSummary:
        """Execute the attempt and return its summary."""
        if self._cancellation.is_cancellation_requested:
            return RunSummary()

        case = self._test_case
        self._publish(TestCaseStarting(test_case=case))
        self._publish(TestStarting(test_case=case))

        summary = RunSummary(total=1)
        start = time.perf_counter()

        if case.skip_reason:
            summary.skipped = 1
            self._publish(TestSkipped(test_case=case, reason=case.skip_reason))
        else:
            failure = await self._invoke()
            summary.time = time.perf_counter() - start
            if failure is None:
                self._publish(
                    TestPassed(test_case=case, execution_time=summary.time)
                )
            else:
                summary.failed = 1
                self._publish(
                    TestFailed.from_exception(case, failure, summary.time)
                )

        self._publish(TestFinished(test_case=case, execution_time=summary.time))
        self._publish(TestCaseFinished(test_case=case, summary=summary))
        return summary

    async def _invoke(self) -> BaseException | None:
        """Run the test body; return the exception that failed it, if any."""
        if self._aggregator.has_exceptions:
            return self._aggregator.to_exception()

        test_method = self._test_case.test_method
        cls = test_method.test_class.cls
        instance = self._aggregator.run(lambda: cls(*self._constructor_arguments))
        if self._aggregator.has_exceptions:
            return self._aggregator.to_exception()

        failure: BaseException | None = None
        try:
            result = test_method.method.function(instance, *self._arguments)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.debug("Test '%s' failed: %s", self._test_case.display_name, exc)
            failure = exc

        close = getattr(instance, "close", None)
        if callable(close):
            await self._aggregator.run_async(close)
            if failure is None and self._aggregator.has_exceptions:
                failure = self._aggregator.to_exception()
        return failure
