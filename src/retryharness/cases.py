"""Test case implementations.

Every case satisfies the :class:`TestCase` protocol.  The host-native
behaviour lives in :class:`DefaultTestCase`; :class:`RetryTestCase`
composes one and adds the retry loop and a display-name based identity.

Cases serialize to a versioned key-value bag (:meth:`TestCase.serialize`)
restored by :func:`deserialize_test_case`.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, ClassVar, Protocol, Sequence, runtime_checkable

from retryharness.bus import MessageBus, MessageSink
from retryharness.config import DEFAULT_MAX_RETRIES
from retryharness.errors import ExecutionError, SerializationError
from retryharness.identity import compute_default_unique_id, compute_unique_id
from retryharness.metadata import TestMethod, iter_data_rows, resolve_test_method
from retryharness.models import (
    CancellationSource,
    ExceptionAggregator,
    MethodDisplay,
    RunSummary,
)
from retryharness.retry import RetryExecutor
from retryharness.runner import CaseRunner

logger = logging.getLogger(__name__)

SERIALIZATION_VERSION = 1

_MAX_VALUE_DISPLAY = 50


@runtime_checkable
class TestCase(Protocol):
    """What the host needs from a schedulable test case."""

    @property
    def unique_id(self) -> str: ...

    @property
    def display_name(self) -> str: ...

    @property
    def test_method(self) -> TestMethod: ...

    @property
    def arguments(self) -> tuple[Any, ...] | None: ...

    @property
    def skip_reason(self) -> str | None: ...

    async def run(
        self,
        diagnostic_sink: MessageSink,
        message_bus: MessageBus,
        constructor_arguments: Sequence[Any],
        aggregator: ExceptionAggregator,
        cancellation: CancellationSource,
    ) -> RunSummary: ...

    def serialize(self) -> dict[str, Any]: ...


def _format_value(value: Any) -> str:
    text = repr(value)
    if len(text) > _MAX_VALUE_DISPLAY:
        text = text[:_MAX_VALUE_DISPLAY] + "..."
    return text


def format_display_name(
    test_method: TestMethod,
    method_display: MethodDisplay = MethodDisplay.CLASS_AND_METHOD,
    arguments: Sequence[Any] | None = None,
) -> str:
    """Render the display name of a case.

    An explicit ``display_name`` on the marker wins over *method_display*.
    Arguments render as ``name: repr`` pairs; surplus values are labelled
    ``???``.
    """
    marker = test_method.method.fact
    if marker is not None and marker.display_name:
        base = marker.display_name
    elif method_display == MethodDisplay.METHOD:
        base = test_method.method_name
    else:
        base = f"{test_method.class_name}.{test_method.method_name}"

    if arguments is None:
        return base

    params = test_method.parameters
    rendered = [
        f"{params[i] if i < len(params) else '???'}: {_format_value(value)}"
        for i, value in enumerate(arguments)
    ]
    return f"{base}({', '.join(rendered)})"


def _identity_fields(test_method: TestMethod) -> dict[str, Any]:
    return {
        "version": SERIALIZATION_VERSION,
        "assembly": test_method.assembly_name,
        "class": test_method.class_name,
        "method": test_method.method_name,
    }


class DefaultTestCase:
    """Host-native test case: one attempt, argument-based identity.

    Args:
        test_method: Method this case executes.
        method_display: Display strategy for the case name.
        arguments: Argument row for parameterized cases, else ``None``.
        display_name: Precomputed display name (restored cases).
        skip_reason: Overrides the marker's skip reason.
    """

    kind: ClassVar[str] = "default"

    def __init__(
        self,
        test_method: TestMethod,
        method_display: MethodDisplay = MethodDisplay.CLASS_AND_METHOD,
        arguments: Sequence[Any] | None = None,
        display_name: str | None = None,
        skip_reason: str | None = None,
    ) -> None:
        self._test_method = test_method
        self._arguments = tuple(arguments) if arguments is not None else None
        self._display_name = display_name or format_display_name(
            test_method, method_display, self._arguments
        )
        marker = test_method.method.fact
        self._skip_reason = skip_reason or (marker.skip if marker else None)
        self._unique_id: str | None = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._display_name!r})"

    @property
    def test_method(self) -> TestMethod:
        return self._test_method

    @property
    def arguments(self) -> tuple[Any, ...] | None:
        return self._arguments

    @property
    def display_name(self) -> str:
        return self._display_name

    @property
    def skip_reason(self) -> str | None:
        return self._skip_reason

    @property
    def unique_id(self) -> str:
        if self._unique_id is None:
            self._unique_id = compute_default_unique_id(
                self._test_method.assembly_name,
                self._test_method.class_name,
                self._test_method.method_name,
                self._arguments,
            )
        return self._unique_id

    async def run(
        self,
        diagnostic_sink: MessageSink,
        message_bus: MessageBus,
        constructor_arguments: Sequence[Any],
        aggregator: ExceptionAggregator,
        cancellation: CancellationSource,
    ) -> RunSummary:
        """Run the case once."""
        runner = CaseRunner(
            self, message_bus, constructor_arguments, aggregator, cancellation
        )
        return await runner.run()

    def serialize(self) -> dict[str, Any]:
        """Return the versioned key-value bag for this case."""
        data = _identity_fields(self._test_method)
        data.update(
            {
                "kind": self.kind,
                "arguments": (
                    list(self._arguments) if self._arguments is not None else None
                ),
                "display_name": self._display_name,
                "skip_reason": self._skip_reason,
                "unique_id": self.unique_id,
            }
        )
        return data

    @classmethod
    def from_serialized(
        cls, data: dict[str, Any], test_method: TestMethod, **_: Any
    ) -> DefaultTestCase:
        case = cls(
            test_method,
            arguments=data.get("arguments"),
            display_name=data["display_name"],
            skip_reason=data.get("skip_reason"),
        )
        case._unique_id = data.get("unique_id")
        return case


class RetryTestCase:
    """Retry-capable test case.

    Wraps a :class:`DefaultTestCase` for naming, arguments and
    serialization.  Identity follows
    :func:`~retryharness.identity.compute_unique_id`; running goes
    through a :class:`~retryharness.retry.RetryExecutor` unless retry is
    disabled.

    Args:
        test_method: Method this case executes.
        method_display: Display strategy for the case name.
        arguments: Argument row for parameterized cases, else ``None``.
        retry_disabled: Run exactly once.  ``None`` derives it from the
            class marker: retry is enabled only when the class opts in
            and does not set ``disable_retry``.
        max_retries: Retry budget for this case.
        delegate: Prebuilt host-native case (restored cases).
    """

    kind: ClassVar[str] = "retry"

    def __init__(
        self,
        test_method: TestMethod,
        method_display: MethodDisplay = MethodDisplay.CLASS_AND_METHOD,
        arguments: Sequence[Any] | None = None,
        retry_disabled: bool | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        delegate: DefaultTestCase | None = None,
    ) -> None:
        self._delegate = delegate or DefaultTestCase(
            test_method, method_display, arguments
        )
        if retry_disabled is None:
            marker = test_method.test_class.retry_marker
            retry_disabled = marker is None or marker.disable_retry
        self._retry_disabled = retry_disabled
        self._max_retries = max_retries
        self._unique_id: str | None = None

    def __repr__(self) -> str:
        return (
            f"RetryTestCase({self.display_name!r}, "
            f"retry_disabled={self._retry_disabled})"
        )

    @property
    def test_method(self) -> TestMethod:
        return self._delegate.test_method

    @property
    def arguments(self) -> tuple[Any, ...] | None:
        return self._delegate.arguments

    @property
    def display_name(self) -> str:
        return self._delegate.display_name

    @property
    def skip_reason(self) -> str | None:
        return self._delegate.skip_reason

    @property
    def retry_disabled(self) -> bool:
        return self._retry_disabled

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def unique_id(self) -> str:
        if self._unique_id is None:
            method = self.test_method
            self._unique_id = compute_unique_id(
                method.assembly_name,
                method.class_name,
                method.method_name,
                self.display_name if self.arguments is not None else None,
            )
        return self._unique_id

    async def run(
        self,
        diagnostic_sink: MessageSink,
        message_bus: MessageBus,
        constructor_arguments: Sequence[Any],
        aggregator: ExceptionAggregator,
        cancellation: CancellationSource,
    ) -> RunSummary:
        """Run the case, retrying failed attempts within the budget."""

        def attempt(bus: MessageBus):
            return CaseRunner(
                self, bus, constructor_arguments, aggregator, cancellation
            ).run()

        if self._retry_disabled:
            return await attempt(message_bus)

        executor = RetryExecutor(self._max_retries)
        return await executor.run(
            attempt,
            message_bus,
            aggregator,
            diagnostic_sink,
            self.display_name,
            cancellation,
        )

    def serialize(self) -> dict[str, Any]:
        data = self._delegate.serialize()
        data["kind"] = self.kind
        data["unique_id"] = self.unique_id
        data["retry_disabled"] = self._retry_disabled
        return data

    @classmethod
    def from_serialized(
        cls,
        data: dict[str, Any],
        test_method: TestMethod,
        max_retries: int = DEFAULT_MAX_RETRIES,
        **_: Any,
    ) -> RetryTestCase:
        if "retry_disabled" not in data:
            raise SerializationError("Retry case is missing 'retry_disabled'", data)
        delegate = DefaultTestCase.from_serialized(data, test_method)
        # The stored id is the retry identity, not the delegate's.
        delegate._unique_id = None
        case = cls(
            test_method,
            retry_disabled=bool(data["retry_disabled"]),
            max_retries=max_retries,
            delegate=delegate,
        )
        case._unique_id = data.get("unique_id")
        return case


class _ExecutionErrorRunner(CaseRunner):
    def __init__(self, error: BaseException, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._error = error

    async def _invoke(self) -> BaseException | None:
        return self._error


class ExecutionErrorTestCase(DefaultTestCase):
    """Placeholder that always fails with *error_message*.

    Surfaces discovery-time problems (such as a theory without data) in
    the report instead of silently dropping the method.
    """

    kind: ClassVar[str] = "execution_error"

    def __init__(
        self,
        test_method: TestMethod,
        error_message: str,
        method_display: MethodDisplay = MethodDisplay.CLASS_AND_METHOD,
        display_name: str | None = None,
    ) -> None:
        super().__init__(test_method, method_display, display_name=display_name)
        self._error_message = error_message
        self._skip_reason = None

    @property
    def error_message(self) -> str:
        return self._error_message

    async def run(
        self,
        diagnostic_sink: MessageSink,
        message_bus: MessageBus,
        constructor_arguments: Sequence[Any],
        aggregator: ExceptionAggregator,
        cancellation: CancellationSource,
    ) -> RunSummary:
        runner = _ExecutionErrorRunner(
            ExecutionError(self._error_message),
            self,
            message_bus,
            constructor_arguments,
            aggregator,
            cancellation,
        )
        return await runner.run()

    def serialize(self) -> dict[str, Any]:
        data = super().serialize()
        data["error_message"] = self._error_message
        return data

    @classmethod
    def from_serialized(
        cls, data: dict[str, Any], test_method: TestMethod, **_: Any
    ) -> ExecutionErrorTestCase:
        if "error_message" not in data:
            raise SerializationError("Execution error case has no 'error_message'", data)
        case = cls(test_method, data["error_message"], display_name=data["display_name"])
        case._unique_id = data.get("unique_id")
        return case


class TheoryTestCase(DefaultTestCase):
    """Host-native theory whose data rows are resolved when it runs.

    Used when rows cannot be serialized at discovery time.  Each row runs
    once as its own :class:`DefaultTestCase`; the summaries are added up.
    """

    kind: ClassVar[str] = "theory"

    def __init__(
        self,
        test_method: TestMethod,
        method_display: MethodDisplay = MethodDisplay.CLASS_AND_METHOD,
        display_name: str | None = None,
    ) -> None:
        super().__init__(test_method, method_display, display_name=display_name)
        self._method_display = method_display

    async def run(
        self,
        diagnostic_sink: MessageSink,
        message_bus: MessageBus,
        constructor_arguments: Sequence[Any],
        aggregator: ExceptionAggregator,
        cancellation: CancellationSource,
    ) -> RunSummary:
        method = self.test_method
        try:
            rows = list(iter_data_rows(method))
        except Exception as exc:
            logger.warning(
                "Data enumeration failed for %s: %s", self.display_name, exc
            )
            rows = []
            error: BaseException | None = exc
        else:
            error = None
            if not rows:
                error = ExecutionError(
                    f"No data found for {method.class_name}.{method.method_name}"
                )

        if error is not None:
            return await _ExecutionErrorRunner(
                error, self, message_bus, constructor_arguments, aggregator, cancellation
            ).run()

        summary = RunSummary()
        for row in rows:
            if cancellation.is_cancellation_requested:
                break
            row_case = DefaultTestCase(method, self._method_display, row)
            summary.aggregate(
                await row_case.run(
                    diagnostic_sink,
                    message_bus,
                    constructor_arguments,
                    aggregator,
                    cancellation,
                )
            )
        return summary

    @classmethod
    def from_serialized(
        cls, data: dict[str, Any], test_method: TestMethod, **_: Any
    ) -> TheoryTestCase:
        case = cls(test_method, display_name=data["display_name"])
        case._unique_id = data.get("unique_id")
        return case


_CASE_TYPES: dict[str, Any] = {
    case_type.kind: case_type
    for case_type in (
        DefaultTestCase,
        RetryTestCase,
        ExecutionErrorTestCase,
        TheoryTestCase,
    )
}

MethodResolver = Callable[[str, str, str], TestMethod]


def deserialize_test_case(
    data: dict[str, Any],
    resolver: MethodResolver = resolve_test_method,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> TestCase:
    """Restore a case from the bag produced by ``serialize()``.

    Args:
        data: The serialized key-value bag.
        resolver: Maps ``(assembly, class, method)`` to a :class:`TestMethod`.
        max_retries: Retry budget for restored retry cases.

    Raises:
        SerializationError: On unknown versions, kinds, or missing fields.
        ResolutionError: If *resolver* cannot find the method.
    """
    version = data.get("version")
    if version != SERIALIZATION_VERSION:
        raise SerializationError(f"Unsupported serialization version: {version!r}", data)

    kind = data.get("kind")
    case_type = _CASE_TYPES.get(kind)  # type: ignore[arg-type]
    if case_type is None:
        raise SerializationError(f"Unknown test case kind: {kind!r}", data)

    try:
        assembly, class_name, method_name = data["assembly"], data["class"], data["method"]
        display_name = data["display_name"]
    except KeyError as exc:
        raise SerializationError(f"Serialized case is missing {exc}", data) from exc

    test_method = resolver(assembly, class_name, method_name)
    logger.debug("Restoring %s case %s", kind, display_name)
    return case_type.from_serialized(data, test_method, max_retries=max_retries)
