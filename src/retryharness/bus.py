"""Message channels between test execution and the host's consumers.

The host delivers messages to a :class:`MessageSink` through a
:class:`MessageBus`.  :class:`DelayedMessageBus` sits in front of a real
bus during a speculative attempt: it buffers everything, and once the
attempt's fate is known it replays the buffer, downgrading failures to
skips if a later retry succeeded.
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol, runtime_checkable

from retryharness.messages import DiagnosticMessage, Message, TestFailed, TestSkipped

logger = logging.getLogger(__name__)


@runtime_checkable
class MessageSink(Protocol):
    """Final consumer of messages.

    Returns ``False`` from :meth:`on_message` to ask the producer to stop.
    """

    def on_message(self, message: Message) -> bool: ...


@runtime_checkable
class MessageBus(Protocol):
    """Delivery path for messages produced while running tests."""

    def queue_message(self, message: Message) -> bool: ...

    def close(self) -> None: ...


class SynchronousMessageBus:
    """Real channel that hands every message straight to a sink."""

    def __init__(self, sink: MessageSink) -> None:
        self._sink = sink
        self._closed = False

    def queue_message(self, message: Message) -> bool:
        """Deliver *message* and return the sink's continue flag."""
        if self._closed:
            logger.warning("Dropping %s queued on a closed bus", message.kind.value)
            return False
        return self._sink.on_message(message)

    def close(self) -> None:
        """Stop accepting messages."""
        self._closed = True


class CollectingSink:
    """Sink that records messages in arrival order.

    Args:
        stop_after: Return ``False`` once this many messages were received.
    """

    def __init__(self, stop_after: int | None = None) -> None:
        self.messages: list[Message] = []
        self._stop_after = stop_after
        self._lock = threading.Lock()

    def on_message(self, message: Message) -> bool:
        with self._lock:
            self.messages.append(message)
            count = len(self.messages)
        return self._stop_after is None or count < self._stop_after

    def of_type(self, message_type: type[Message]) -> list[Message]:
        """Return the recorded messages that are instances of *message_type*."""
        return [m for m in self.messages if isinstance(m, message_type)]


class LoggingDiagnosticSink:
    """Diagnostic sink that writes notices to the ``logging`` tree."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    def on_message(self, message: Message) -> bool:
        if isinstance(message, DiagnosticMessage):
            logger.log(self._level, "%s", message.message)
        else:
            logger.debug("Ignoring non-diagnostic message %s", message.kind.value)
        return True


def skip_reason_for(failed: TestFailed) -> str:
    """Build the skip reason recorded for a superseded failure.

    Exception types, then messages, then stack traces, each section
    newline-joined.
    """
    return "\n".join(
        [
            "\n".join(failed.exception_types),
            "\n".join(failed.messages),
            "\n".join(trace or "" for trace in failed.stack_traces),
        ]
    )


class DelayedMessageBus:
    """Buffers messages of one attempt until its outcome is resolved.

    :meth:`queue_message` may be called from several tasks or threads of
    the same attempt.  :meth:`flush` must be called once, after the
    attempt completed.

    Args:
        inner_bus: The real bus messages are eventually delivered to.
    """

    def __init__(self, inner_bus: MessageBus) -> None:
        self._inner_bus = inner_bus
        self._messages: list[Message] = []
        self._lock = threading.Lock()

    @property
    def messages(self) -> tuple[Message, ...]:
        """Return a snapshot of the buffered messages."""
        with self._lock:
            return tuple(self._messages)

    def queue_message(self, message: Message) -> bool:
        with self._lock:
            self._messages.append(message)

        # The inner bus cannot be asked whether to cancel without delivering
        # the message, so always continue.
        return True

    def close(self) -> None:
        pass

    def flush(self, retry_succeeded: bool) -> None:
        """Deliver the buffer to the inner bus.

        Args:
            retry_succeeded: When ``True`` every :class:`TestFailed` is
                replaced by a :class:`TestSkipped` for the same case.
        """
        with self._lock:
            messages, self._messages = self._messages, []

        logger.debug(
            "Flushing %d buffered message(s) (retry_succeeded=%s)",
            len(messages),
            retry_succeeded,
        )
        for message in messages:
            if retry_succeeded and isinstance(message, TestFailed):
                message = TestSkipped(
                    test_case=message.test_case,
                    reason=skip_reason_for(message),
                )
            self._inner_bus.queue_message(message)
