"""retryharness - automatic retry for individual test cases.

Wraps test cases so failed attempts are re-run within a retry budget
while the host's message stream only ever sees the final outcome: the
first attempt's messages are buffered and, if a later attempt passes,
its failures are replayed as skips.
"""

from retryharness.bus import (
    CollectingSink,
    DelayedMessageBus,
    LoggingDiagnosticSink,
    SynchronousMessageBus,
)
from retryharness.cases import (
    DefaultTestCase,
    ExecutionErrorTestCase,
    RetryTestCase,
    TheoryTestCase,
    deserialize_test_case,
)
from retryharness.config import DEFAULT_MAX_RETRIES, HarnessConfig
from retryharness.discovery import DefaultDiscoverer, RetryDiscoverer, discover_module
from retryharness.identity import compute_unique_id
from retryharness.metadata import (
    fact,
    inline_data,
    make_test_method,
    member_data,
    retry_class,
    theory,
)
from retryharness.models import (
    CancellationSource,
    DiscoveryOptions,
    ExceptionAggregator,
    MethodDisplay,
    RunSummary,
)
from retryharness.retry import RetryExecutor

__all__ = [
    "CancellationSource",
    "CollectingSink",
    "DEFAULT_MAX_RETRIES",
    "DefaultDiscoverer",
    "DefaultTestCase",
    "DelayedMessageBus",
    "DiscoveryOptions",
    "ExceptionAggregator",
    "ExecutionErrorTestCase",
    "HarnessConfig",
    "LoggingDiagnosticSink",
    "MethodDisplay",
    "RetryDiscoverer",
    "RetryExecutor",
    "RetryTestCase",
    "RunSummary",
    "SynchronousMessageBus",
    "TheoryTestCase",
    "compute_unique_id",
    "deserialize_test_case",
    "discover_module",
    "fact",
    "inline_data",
    "make_test_method",
    "member_data",
    "retry_class",
    "theory",
]
