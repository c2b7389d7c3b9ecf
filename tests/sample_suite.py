"""Test classes used as discovery and resolution targets."""

from __future__ import annotations

from retryharness.metadata import fact, inline_data, member_data, retry_class, theory


@retry_class
class RetrySuite:
    empty_rows: list = []

    @staticmethod
    def object_rows() -> list:
        return [object(), object()]

    @fact
    def plain(self) -> None:
        pass

    @fact(skip="not today")
    def skipped(self) -> None:
        pass

    @fact
    def needs_args(self, value) -> None:
        pass

    @theory
    @inline_data(1, "one")
    @inline_data(2, "two")
    def rows(self, number, name) -> None:
        assert number > 0

    @theory
    @member_data("empty_rows")
    def no_rows(self, value) -> None:
        pass

    @theory
    @member_data("object_rows")
    def opaque_rows(self, value) -> None:
        assert value is not None

    @theory
    @inline_data({1: "a"}, (1, 2))
    def shaped_rows(self, mapping, pair) -> None:
        assert mapping[1] == "a"
        assert isinstance(pair, tuple)

    @theory
    @member_data("missing_member")
    def broken_source(self, value) -> None:
        pass

    def helper(self) -> None:
        pass


class PlainSuite:
    @fact
    def plain(self) -> None:
        pass

    @theory
    @inline_data(3)
    def rows(self, number) -> None:
        pass


@retry_class(disable_retry=True)
class OptOutSuite:
    @fact
    def plain(self) -> None:
        pass
