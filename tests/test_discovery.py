"""Tests for the discovery hooks (eligibility filter)."""

from __future__ import annotations

import logging

import pytest

import sample_suite
from retryharness.bus import CollectingSink, SynchronousMessageBus
from retryharness.cases import (
    DefaultTestCase,
    ExecutionErrorTestCase,
    RetryTestCase,
    TheoryTestCase,
)
from retryharness.config import HarnessConfig
from retryharness.discovery import (
    DefaultDiscoverer,
    RetryDiscoverer,
    discover_module,
    is_serializable,
)
from retryharness.messages import TestCaseDiscovered, TestFailed
from retryharness.metadata import make_test_method
from retryharness.models import DiscoveryOptions, MethodDisplay

CLASS_NAME = "sample_suite.RetrySuite"


def _discover(name: str, cls: type = sample_suite.RetrySuite, discoverer=None):
    sink = CollectingSink()
    discoverer = discoverer or RetryDiscoverer()
    result = discoverer.find_tests_for_method(
        make_test_method(cls, name, "samples"),
        SynchronousMessageBus(sink),
        DiscoveryOptions(),
    )
    return result, [m.test_case for m in sink.of_type(TestCaseDiscovered)]


class TestRetryDiscoverer:
    def test_unmarked_method_delegates_and_yields_nothing(self) -> None:
        result, cases = _discover("helper")
        assert result is True
        assert cases == []

    def test_plain_fact_yields_one_retry_case(self) -> None:
        _, cases = _discover("plain")
        assert len(cases) == 1
        assert isinstance(cases[0], RetryTestCase)
        assert cases[0].retry_disabled is False
        assert cases[0].arguments is None

    def test_fact_without_class_marker_has_retry_disabled(self) -> None:
        _, cases = _discover("plain", sample_suite.PlainSuite)
        assert isinstance(cases[0], RetryTestCase)
        assert cases[0].retry_disabled is True

    def test_opt_out_marker_disables_retry(self) -> None:
        _, cases = _discover("plain", sample_suite.OptOutSuite)
        assert cases[0].retry_disabled is True

    def test_fact_with_parameters_delegates(self) -> None:
        _, cases = _discover("needs_args")
        assert len(cases) == 1
        assert type(cases[0]) is ExecutionErrorTestCase
        assert "not allowed to have parameters" in cases[0].error_message

    def test_theory_one_retry_case_per_row(self) -> None:
        _, cases = _discover("rows")
        assert [type(c) for c in cases] == [RetryTestCase, RetryTestCase]
        assert [c.arguments for c in cases] == [(1, "one"), (2, "two")]
        assert all(c.retry_disabled is False for c in cases)
        assert cases[0].unique_id != cases[1].unique_id

    def test_theory_without_class_marker_uses_host_discovery(self) -> None:
        _, cases = _discover("rows", sample_suite.PlainSuite)
        assert [type(c) for c in cases] == [DefaultTestCase]
        assert cases[0].arguments == (3,)

    @pytest.mark.asyncio
    async def test_theory_without_data_yields_failing_placeholder(self, run_case, sink) -> None:
        _, cases = _discover("no_rows")
        assert len(cases) == 1
        placeholder = cases[0]
        assert isinstance(placeholder, ExecutionErrorTestCase)
        assert placeholder.error_message == f"No data found for {CLASS_NAME}.no_rows"

        summary = await run_case(placeholder)
        assert summary.failed == 1
        assert sink.of_type(TestFailed)

    def test_unserializable_rows_fall_back_to_runtime_case(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="retryharness.discovery"):
            _, cases = _discover("opaque_rows")
        assert [type(c) for c in cases] == [TheoryTestCase]
        assert any("not serializable" in r.message for r in caplog.records)

    def test_rows_altered_by_json_fall_back_to_runtime_case(self) -> None:
        _, cases = _discover("shaped_rows")
        assert [type(c) for c in cases] == [TheoryTestCase]

    def test_broken_data_source_falls_back_to_runtime_case(self) -> None:
        _, cases = _discover("broken_source")
        assert [type(c) for c in cases] == [TheoryTestCase]

    def test_skipped_fact_is_one_skipped_case(self) -> None:
        _, cases = _discover("skipped")
        assert cases[0].skip_reason == "not today"

    def test_max_retries_from_config(self) -> None:
        _, cases = _discover("plain", discoverer=RetryDiscoverer(HarnessConfig(max_retries=5)))
        assert cases[0].max_retries == 5

    def test_stop_request_returns_false(self) -> None:
        bus = SynchronousMessageBus(CollectingSink(stop_after=1))
        result = RetryDiscoverer().find_tests_for_method(
            make_test_method(sample_suite.RetrySuite, "rows", "samples"),
            bus,
            DiscoveryOptions(),
        )
        assert result is False

    def test_display_option_applies(self) -> None:
        sink = CollectingSink()
        RetryDiscoverer().find_tests_for_method(
            make_test_method(sample_suite.RetrySuite, "plain", "samples"),
            SynchronousMessageBus(sink),
            DiscoveryOptions(method_display=MethodDisplay.METHOD),
        )
        assert sink.messages[0].test_case.display_name == "plain"


class TestDefaultDiscoverer:
    def test_fact_yields_default_case(self) -> None:
        _, cases = _discover("plain", discoverer=DefaultDiscoverer())
        assert [type(c) for c in cases] == [DefaultTestCase]

    def test_theory_rows(self) -> None:
        _, cases = _discover("rows", discoverer=DefaultDiscoverer())
        assert [c.arguments for c in cases] == [(1, "one"), (2, "two")]

    def test_theory_without_rows(self) -> None:
        _, cases = _discover("no_rows", discoverer=DefaultDiscoverer())
        assert [type(c) for c in cases] == [ExecutionErrorTestCase]


class TestDiscoverModule:
    def test_walks_all_classes(self) -> None:
        sink = CollectingSink()
        assert discover_module(sample_suite, SynchronousMessageBus(sink)) is True
        names = [m.test_case.display_name for m in sink.of_type(TestCaseDiscovered)]
        assert f"{CLASS_NAME}.plain" in names
        assert "sample_suite.PlainSuite.plain" in names
        assert "sample_suite.OptOutSuite.plain" in names
        assert not any("helper" in n for n in names)

    def test_stops_early(self) -> None:
        sink = CollectingSink(stop_after=1)
        assert discover_module(sample_suite, SynchronousMessageBus(sink)) is False
        assert len(sink.messages) == 1


class TestIsSerializable:
    def test_plain_values(self) -> None:
        assert is_serializable((1, "a", None, [1.5]))

    def test_objects(self) -> None:
        assert not is_serializable((object(),))

    def test_int_dict_keys_change_on_restore(self) -> None:
        assert not is_serializable(({1: "a"},))

    def test_nested_tuples_change_on_restore(self) -> None:
        assert not is_serializable(((1, 2),))

    def test_nested_lists_and_str_keys(self) -> None:
        assert is_serializable(([1, 2], {"a": [True, None]}))

    def test_nan_does_not_compare_equal(self) -> None:
        assert not is_serializable((float("nan"),))
