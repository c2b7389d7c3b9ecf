"""Error hierarchy for the retry harness.

Assertion failures inside a test body are never raised out of a run; they
are reported as :class:`~retryharness.messages.TestFailed` messages and
counted in the :class:`~retryharness.models.RunSummary`.  The exceptions
below cover the harness's own failure modes.
"""

from __future__ import annotations


class HarnessError(Exception):
    """Base exception for all retry harness errors."""


class ConfigurationError(HarnessError):
    """Invalid harness configuration (retry budget, display mode, ...)."""


class SerializationError(HarnessError):
    """A serialized test case could not be restored.

    Attributes:
        data: The offending key-value bag, when available.
    """

    def __init__(self, message: str, data: dict | None = None) -> None:
        super().__init__(message)
        self.data = data


class ResolutionError(HarnessError):
    """A test class or method named in a serialized case cannot be found."""


class ExecutionError(Exception):
    """Reported by placeholder cases that surface a discovery-time problem."""
