"""Deterministic test case identity.

A case's unique id is a SHA-1 fingerprint over its assembly, class and
method names.  Parameterized cases also mix in their display name instead
of their raw argument values, so two data rows that render the same display
name share an id.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Sequence


def _write(buffer: bytearray, value: str) -> None:
    buffer.extend(value.encode("utf-8"))
    buffer.append(0)


def _digest(buffer: bytearray) -> str:
    return hashlib.sha1(bytes(buffer)).hexdigest()


def compute_unique_id(
    assembly_name: str,
    class_name: str,
    method_name: str,
    display_name: str | None = None,
) -> str:
    """Return the retry-capable unique id for a test case.

    Args:
        assembly_name: Name of the assembly (top-level package) owning the test.
        class_name: Fully qualified test class name.
        method_name: Test method name.
        display_name: Display name of a parameterized case, ``None`` when
            the case carries no arguments.

    Returns:
        Lowercase hex SHA-1 digest of the NUL-terminated fields.
    """
    buffer = bytearray()
    _write(buffer, assembly_name)
    _write(buffer, class_name)
    _write(buffer, method_name)
    if display_name is not None:
        _write(buffer, display_name)
    return _digest(buffer)


def compute_default_unique_id(
    assembly_name: str,
    class_name: str,
    method_name: str,
    arguments: Sequence[Any] | None = None,
) -> str:
    """Return the host-native unique id, hashing the JSON form of *arguments*."""
    buffer = bytearray()
    _write(buffer, assembly_name)
    _write(buffer, class_name)
    _write(buffer, method_name)
    if arguments is not None:
        _write(buffer, json.dumps(list(arguments), sort_keys=True, default=repr))
    return _digest(buffer)
