"""Reporting messages exchanged between test execution and the host.

Every message produced while running a test case travels over a
:class:`~retryharness.bus.MessageBus`.  The retry machinery relies on
messages keeping their concrete type so buffered failures can later be
recognised and rewritten.
"""

from __future__ import annotations

import enum
import time
import traceback
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from retryharness.cases import TestCase
    from retryharness.models import RunSummary


class MessageKind(str, enum.Enum):
    """Message categories delivered to a message sink."""

    DIAGNOSTIC = "diagnostic"
    TEST_CASE_DISCOVERED = "test_case_discovered"
    TEST_CASE_STARTING = "test_case_starting"
    TEST_STARTING = "test_starting"
    TEST_PASSED = "test_passed"
    TEST_FAILED = "test_failed"
    TEST_SKIPPED = "test_skipped"
    TEST_FINISHED = "test_finished"
    TEST_CASE_FINISHED = "test_case_finished"


@dataclass
class Message:
    """Base class for all messages.

    Attributes:
        timestamp: UNIX epoch when the message was created.
    """

    kind: ClassVar[MessageKind]

    timestamp: float = field(default_factory=time.time, kw_only=True)


@dataclass
class DiagnosticMessage(Message):
    """Free-text diagnostic notice for the host's diagnostic sink."""

    kind: ClassVar[MessageKind] = MessageKind.DIAGNOSTIC

    message: str


@dataclass
class TestMessage(Message):
    """A message about one test case.

    Attributes:
        test_case: The case the message reports on.
    """

    __test__ = False

    test_case: TestCase

    @property
    def display_name(self) -> str:
        """Return the display name of the reported case."""
        return self.test_case.display_name


@dataclass
class TestCaseDiscovered(TestMessage):
    kind: ClassVar[MessageKind] = MessageKind.TEST_CASE_DISCOVERED


@dataclass
class TestCaseStarting(TestMessage):
    kind: ClassVar[MessageKind] = MessageKind.TEST_CASE_STARTING


@dataclass
class TestStarting(TestMessage):
    kind: ClassVar[MessageKind] = MessageKind.TEST_STARTING


@dataclass
class TestPassed(TestMessage):
    """The test body completed without raising."""

    kind: ClassVar[MessageKind] = MessageKind.TEST_PASSED

    execution_time: float = 0.0
    output: str = ""


@dataclass
class TestFailed(TestMessage):
    """The test body raised.

    The three lists are parallel: entry *i* of each describes the *i*-th
    exception in the chain, outermost first.

    Attributes:
        exception_types: Fully qualified exception type names.
        messages: ``str()`` of each exception.
        stack_traces: Formatted traceback of each exception (may be empty).
        execution_time: Elapsed time in seconds.
        output: Captured test output.
    """

    kind: ClassVar[MessageKind] = MessageKind.TEST_FAILED

    exception_types: list[str] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    stack_traces: list[str] = field(default_factory=list)
    execution_time: float = 0.0
    output: str = ""

    @classmethod
    def from_exception(
        cls,
        test_case: TestCase,
        exc: BaseException,
        execution_time: float = 0.0,
        output: str = "",
    ) -> TestFailed:
        """Build a failure message from *exc* and its cause/context chain."""
        types: list[str] = []
        messages: list[str] = []
        traces: list[str] = []
        seen: set[int] = set()
        current: BaseException | None = exc
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            exc_type = type(current)
            types.append(f"{exc_type.__module__}.{exc_type.__qualname__}")
            messages.append(str(current))
            traces.append("".join(traceback.format_tb(current.__traceback__)))
            current = current.__cause__ or current.__context__
        return cls(
            test_case=test_case,
            exception_types=types,
            messages=messages,
            stack_traces=traces,
            execution_time=execution_time,
            output=output,
        )


@dataclass
class TestSkipped(TestMessage):
    """The test did not run, or a superseded failing attempt was resolved."""

    kind: ClassVar[MessageKind] = MessageKind.TEST_SKIPPED

    reason: str = ""


@dataclass
class TestFinished(TestMessage):
    kind: ClassVar[MessageKind] = MessageKind.TEST_FINISHED

    execution_time: float = 0.0
    output: str = ""


@dataclass
class TestCaseFinished(TestMessage):
    kind: ClassVar[MessageKind] = MessageKind.TEST_CASE_FINISHED

    summary: RunSummary | None = None

