"""Discovery hooks deciding how each test method becomes test cases.

:class:`DefaultDiscoverer` is the host-native behaviour.
:class:`RetryDiscoverer` is the eligibility filter: it builds
retry-capable cases where a method qualifies and hands everything else to
the default discoverer it wraps.

Discovered cases are reported on a message bus as
:class:`~retryharness.messages.TestCaseDiscovered`; a ``False`` return from
the bus stops the walk.
"""

from __future__ import annotations

import json
import logging
from types import ModuleType
from typing import Any, Iterable, Protocol, Sequence

from retryharness.bus import MessageBus
from retryharness.cases import (
    DefaultTestCase,
    ExecutionErrorTestCase,
    RetryTestCase,
    TestCase,
    TheoryTestCase,
)
from retryharness.config import HarnessConfig
from retryharness.messages import TestCaseDiscovered
from retryharness.metadata import TestMethod, iter_data_rows, iter_test_methods
from retryharness.models import DiscoveryOptions

logger = logging.getLogger(__name__)


class MethodDiscoverer(Protocol):
    """Hook invoked by the discovery walk once per candidate method."""

    def find_tests_for_method(
        self,
        test_method: TestMethod,
        message_bus: MessageBus,
        options: DiscoveryOptions,
    ) -> bool: ...


def _restored_intact(value: Any, restored: Any) -> bool:
    # Types are compared exactly: tuples come back as lists, int keys as str.
    if type(value) is not type(restored):
        return False
    if isinstance(value, list):
        return len(value) == len(restored) and all(
            _restored_intact(a, b) for a, b in zip(value, restored)
        )
    if isinstance(value, dict):
        return value.keys() == restored.keys() and all(
            _restored_intact(value[key], restored[key]) for key in value
        )
    return value == restored


def is_serializable(row: Sequence[Any]) -> bool:
    """Return ``True`` if *row* survives a JSON round trip unchanged."""
    values = list(row)
    try:
        restored = json.loads(json.dumps(values))
    except (TypeError, ValueError):
        return False
    return _restored_intact(values, restored)


def report_discovered_test_cases(
    cases: Iterable[TestCase], message_bus: MessageBus
) -> bool:
    """Queue a discovery message per case; ``False`` once the bus says stop."""
    for case in cases:
        logger.debug("Discovered %r", case)
        if not message_bus.queue_message(TestCaseDiscovered(test_case=case)):
            return False
    return True


def _no_data_message(test_method: TestMethod) -> str:
    return f"No data found for {test_method.class_name}.{test_method.method_name}"


class TheoryDiscoverer:
    """Host-native theory discovery: one case per serializable data row."""

    def discover(
        self, options: DiscoveryOptions, test_method: TestMethod
    ) -> list[TestCase]:
        display = options.method_display
        marker = test_method.method.fact
        if marker is not None and marker.skip:
            return [DefaultTestCase(test_method, display)]

        try:
            rows = list(iter_data_rows(test_method))
        except Exception as exc:
            logger.warning(
                "Exception during theory discovery on %s.%s; "
                "falling back to a single runtime case: %s",
                test_method.class_name,
                test_method.method_name,
                exc,
            )
            return [TheoryTestCase(test_method, display)]

        if not rows:
            return [ExecutionErrorTestCase(test_method, _no_data_message(test_method), display)]
        if not all(is_serializable(row) for row in rows):
            return [TheoryTestCase(test_method, display)]
        return [DefaultTestCase(test_method, display, row) for row in rows]


class DefaultDiscoverer:
    """Host-native per-method discovery."""

    def __init__(self, theory_discoverer: TheoryDiscoverer | None = None) -> None:
        self.theory_discoverer = theory_discoverer or TheoryDiscoverer()

    def find_tests_for_method(
        self,
        test_method: TestMethod,
        message_bus: MessageBus,
        options: DiscoveryOptions,
    ) -> bool:
        if not test_method.has_fact_marker:
            return True

        display = options.method_display
        cases: list[TestCase]
        if test_method.has_theory_marker:
            cases = self.theory_discoverer.discover(options, test_method)
        elif test_method.parameters:
            cases = [
                ExecutionErrorTestCase(
                    test_method,
                    "[fact] methods are not allowed to have parameters. "
                    "Did you mean to use [theory]?",
                    display,
                )
            ]
        else:
            cases = [DefaultTestCase(test_method, display)]
        return report_discovered_test_cases(cases, message_bus)


class RetryDiscoverer:
    """Eligibility filter producing retry-capable cases.

    Args:
        config: Harness configuration (retry budget).
        fallback: Host-native discoverer for methods that do not qualify.
    """

    def __init__(
        self,
        config: HarnessConfig | None = None,
        fallback: DefaultDiscoverer | None = None,
    ) -> None:
        self._config = config or HarnessConfig()
        self._fallback = fallback or DefaultDiscoverer()

    def find_tests_for_method(
        self,
        test_method: TestMethod,
        message_bus: MessageBus,
        options: DiscoveryOptions,
    ) -> bool:
        """Report the cases for *test_method*.

        Returns:
            ``False`` if the bus asked discovery to stop.
        """
        if not test_method.has_fact_marker:
            return self._fallback.find_tests_for_method(test_method, message_bus, options)

        display = options.method_display
        max_retries = self._config.max_retries

        if not test_method.has_theory_marker:
            # Argument count cannot be matched without data sources.
            if test_method.parameters:
                return self._fallback.find_tests_for_method(
                    test_method, message_bus, options
                )
            case = RetryTestCase(test_method, display, max_retries=max_retries)
            return report_discovered_test_cases([case], message_bus)

        if not test_method.has_retry_class_marker:
            logger.debug(
                "%s has no retry marker; using host theory discovery",
                test_method.class_name,
            )
            cases = self._fallback.theory_discoverer.discover(options, test_method)
        else:
            cases = self._discover_theory(test_method, options)
        return report_discovered_test_cases(cases, message_bus)

    def _discover_theory(
        self, test_method: TestMethod, options: DiscoveryOptions
    ) -> list[TestCase]:
        display = options.method_display
        max_retries = self._config.max_retries
        marker = test_method.method.fact
        if marker is not None and marker.skip:
            return [RetryTestCase(test_method, display, max_retries=max_retries)]

        cases: list[TestCase] = []
        try:
            for row in iter_data_rows(test_method):
                if not is_serializable(row):
                    logger.warning(
                        "Data row for %s.%s is not serializable; "
                        "falling back to a single runtime case",
                        test_method.class_name,
                        test_method.method_name,
                    )
                    return [TheoryTestCase(test_method, display)]
                cases.append(
                    RetryTestCase(test_method, display, row, max_retries=max_retries)
                )
        except Exception as exc:
            logger.warning(
                "Exception during theory discovery on %s.%s; "
                "falling back to a single runtime case: %s",
                test_method.class_name,
                test_method.method_name,
                exc,
            )
            return [TheoryTestCase(test_method, display)]

        if not cases:
            cases.append(
                ExecutionErrorTestCase(test_method, _no_data_message(test_method), display)
            )
        return cases


def discover_module(
    module: ModuleType,
    message_bus: MessageBus,
    options: DiscoveryOptions | None = None,
    discoverer: MethodDiscoverer | None = None,
    assembly_name: str | None = None,
) -> bool:
    """Run *discoverer* over every candidate method of *module*.

    Returns:
        ``False`` if discovery was stopped early by the bus.
    """
    options = options or DiscoveryOptions()
    discoverer = discoverer or RetryDiscoverer()
    for test_method in iter_test_methods(module, assembly_name):
        if not discoverer.find_tests_for_method(test_method, message_bus, options):
            logger.info("Discovery of %s stopped early", module.__name__)
            return False
    return True
