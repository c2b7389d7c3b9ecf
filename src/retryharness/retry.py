"""Bounded retry loop for a single test case.

The first attempt always runs behind a :class:`DelayedMessageBus` because
its outcome may still be superseded.  Every later attempt publishes live:
its result is the one that will be reported.  Once an attempt is accepted
the first attempt's buffer is resolved, either forwarded as-is or with its
failures downgraded to skips when the series ended in a pass.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from retryharness.bus import DelayedMessageBus, MessageBus, MessageSink
from retryharness.config import DEFAULT_MAX_RETRIES
from retryharness.errors import ConfigurationError
from retryharness.messages import DiagnosticMessage
from retryharness.models import (
    CancellationSource,
    ExceptionAggregator,
    ExecutionAttempt,
    RunSummary,
)

logger = logging.getLogger(__name__)

# Executes one attempt against the given bus.
AttemptFn = Callable[[MessageBus], Awaitable[RunSummary]]


class RetryExecutor:
    """Runs one test case up to ``max_retries`` times.

    An executor is owned by a single case run; create a new one per run.

    Args:
        max_retries: Maximum number of attempts, at least 1.
    """

    def __init__(self, max_retries: int = DEFAULT_MAX_RETRIES) -> None:
        if max_retries < 1:
            raise ConfigurationError(
                f"max_retries must be at least 1, got {max_retries}"
            )
        self._max_retries = max_retries
        self._attempts: list[ExecutionAttempt] = []

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def attempts(self) -> list[ExecutionAttempt]:
        """Return the attempts executed so far, oldest first."""
        return list(self._attempts)

    async def run(
        self,
        attempt: AttemptFn,
        message_bus: MessageBus,
        aggregator: ExceptionAggregator,
        diagnostic_sink: MessageSink,
        display_name: str,
        cancellation: CancellationSource | None = None,
    ) -> RunSummary:
        """Execute attempts until one is accepted and return its summary.

        An attempt is accepted when the aggregator holds a framework
        fault, when nothing failed, or when the retry budget is spent.

        Args:
            attempt: Callable running one attempt against a bus.
            message_bus: The real bus.
            aggregator: Framework fault collector shared by all attempts.
            diagnostic_sink: Receives one notice per retry.
            display_name: Case name used in the retry notice.
            cancellation: When cancelled, no further attempt is started and
                the failed attempt is reported as is.

        Returns:
            The :class:`RunSummary` of the last attempt executed.
        """
        delayed_bus = DelayedMessageBus(message_bus)
        run_count = 0

        while True:
            buffered = run_count == 0
            summary = await attempt(delayed_bus if buffered else message_bus)
            self._attempts.append(
                ExecutionAttempt(index=run_count, summary=summary, buffered=buffered)
            )
            run_count += 1

            if (
                aggregator.has_exceptions
                or summary.failed == 0
                or run_count >= self._max_retries
            ):
                delayed_bus.flush(summary.failed == 0)
                return summary

            if cancellation is not None and cancellation.is_cancellation_requested:
                logger.info(
                    "Execution of '%s' cancelled after attempt #%d",
                    display_name,
                    run_count,
                )
                delayed_bus.flush(False)
                return summary

            notice = (
                f"Execution of '{display_name}' failed "
                f"(attempt #{run_count}), retrying..."
            )
            logger.info(notice)
            diagnostic_sink.on_message(DiagnosticMessage(notice))
