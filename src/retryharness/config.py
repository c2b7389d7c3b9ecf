"""Process-wide harness configuration.

Values default to constants and may be overridden through environment
variables, optionally loaded from a ``.env`` file:

* ``RETRYHARNESS_MAX_RETRIES`` - maximum attempts per test case.
* ``RETRYHARNESS_METHOD_DISPLAY`` - ``class_and_method`` or ``method``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from retryharness.errors import ConfigurationError
from retryharness.models import MethodDisplay

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3

ENV_MAX_RETRIES = "RETRYHARNESS_MAX_RETRIES"
ENV_METHOD_DISPLAY = "RETRYHARNESS_METHOD_DISPLAY"


@dataclass(frozen=True)
class HarnessConfig:
    """Effective harness settings.

    Attributes:
        max_retries: Maximum attempts for any retry-enabled case.
        method_display: Default display strategy for discovered cases.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    method_display: MethodDisplay = MethodDisplay.CLASS_AND_METHOD

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ConfigurationError(
                f"max_retries must be at least 1, got {self.max_retries}"
            )

    @classmethod
    def from_env(cls, env_file: str | None = ".env") -> HarnessConfig:
        """Build a config from the environment.

        Args:
            env_file: Optional dotenv file loaded first.  Variables already
                set in the process environment take precedence.

        Raises:
            ConfigurationError: If a variable holds an invalid value.
        """
        if env_file:
            load_dotenv(env_file)

        max_retries = DEFAULT_MAX_RETRIES
        raw_retries = os.environ.get(ENV_MAX_RETRIES, "").strip()
        if raw_retries:
            try:
                max_retries = int(raw_retries)
            except ValueError as exc:
                raise ConfigurationError(
                    f"{ENV_MAX_RETRIES} must be an integer, got {raw_retries!r}"
                ) from exc

        method_display = MethodDisplay.CLASS_AND_METHOD
        raw_display = os.environ.get(ENV_METHOD_DISPLAY, "").strip().lower()
        if raw_display:
            try:
                method_display = MethodDisplay(raw_display)
            except ValueError as exc:
                valid = ", ".join(m.value for m in MethodDisplay)
                raise ConfigurationError(
                    f"{ENV_METHOD_DISPLAY} must be one of {valid}, got {raw_display!r}"
                ) from exc

        config = cls(max_retries=max_retries, method_display=method_display)
        logger.debug("Loaded harness config: %s", config)
        return config
