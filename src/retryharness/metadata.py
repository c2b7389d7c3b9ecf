"""Test metadata descriptors and the markers that produce them.

Discovery never introspects test functions directly; it queries the
explicit capabilities of a :class:`TestMethod` descriptor
(``has_fact_marker``, ``has_theory_marker``, ``has_retry_class_marker``,
``data_sources``, ``parameters``).  The decorators in this module attach
the markers that :func:`describe_method` turns into descriptors::

    @retry_class
    class TestUpload:
        @fact
        def test_roundtrip(self): ...

        @theory
        @inline_data(1, "a")
        @inline_data(2, "b")
        def test_rows(self, number, letter): ...
"""

from __future__ import annotations

import importlib
import inspect
import logging
from dataclasses import dataclass, field
from types import ModuleType
from typing import Any, Callable, ClassVar, Iterable, Iterator, Protocol, Sequence

from retryharness.errors import ResolutionError

logger = logging.getLogger(__name__)

_FACT_ATTR = "__retryharness_fact__"
_DATA_ATTR = "__retryharness_data__"
_RETRY_ATTR = "__retryharness_retry__"


# ---------------------------------------------------------------------------
# Markers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FactMarker:
    """Marks a method as a test.

    Attributes:
        skip: Skip reason; the test is reported skipped without running.
        display_name: Explicit display name overriding the default.
    """

    skip: str | None = None
    display_name: str | None = None


@dataclass(frozen=True)
class TheoryMarker(FactMarker):
    """Marks a data-driven test.  A theory is also a fact."""


@dataclass(frozen=True)
class RetryClassMarker:
    """Opts every test of a class into retry.

    Attributes:
        disable_retry: Keep the retry-capable identity but run each case once.
    """

    disable_retry: bool = False


class DataDiscoverer(Protocol):
    """Produces argument rows for one data source."""

    def get_data(
        self, data_source: DataSource, test_method: TestMethod
    ) -> Iterable[Sequence[Any]] | None: ...


@dataclass(frozen=True)
class DataSource:
    """Base class for data sources attached to a theory."""

    discoverer_type: ClassVar[type]

    def get_discoverer(self) -> DataDiscoverer:
        """Return the discoverer that expands this data source."""
        return self.discoverer_type()


class InlineDataDiscoverer:
    """Yields the single row declared inline."""

    def get_data(
        self, data_source: DataSource, test_method: TestMethod
    ) -> Iterable[Sequence[Any]] | None:
        assert isinstance(data_source, InlineData)
        return [data_source.values]


class MemberDataDiscoverer:
    """Yields the rows of a class attribute, property or callable."""

    def get_data(
        self, data_source: DataSource, test_method: TestMethod
    ) -> Iterable[Sequence[Any]] | None:
        assert isinstance(data_source, MemberData)
        cls = test_method.test_class.cls
        if not hasattr(cls, data_source.name):
            raise ResolutionError(
                f"Could not find member '{data_source.name}' on "
                f"{test_method.class_name}"
            )
        member = getattr(cls, data_source.name)
        rows = member(*data_source.arguments) if callable(member) else member
        if rows is None:
            return None
        return [
            tuple(row) if isinstance(row, (list, tuple)) else (row,) for row in rows
        ]


@dataclass(frozen=True)
class InlineData(DataSource):
    """One literal argument row."""

    discoverer_type: ClassVar[type] = InlineDataDiscoverer

    values: tuple[Any, ...] = ()


@dataclass(frozen=True)
class MemberData(DataSource):
    """Rows provided by a member of the test class.

    Attributes:
        name: Attribute name on the test class.
        arguments: Arguments passed when the member is callable.
    """

    discoverer_type: ClassVar[type] = MemberDataDiscoverer

    name: str = ""
    arguments: tuple[Any, ...] = ()


# ---------------------------------------------------------------------------
# Decorators
# ---------------------------------------------------------------------------


def fact(
    func: Callable | None = None,
    *,
    skip: str | None = None,
    display_name: str | None = None,
) -> Any:
    """Mark *func* as a test.  Usable bare or with keyword arguments."""
    marker = FactMarker(skip=skip, display_name=display_name)

    def decorate(f: Callable) -> Callable:
        setattr(f, _FACT_ATTR, marker)
        return f

    return decorate(func) if func is not None else decorate


def theory(
    func: Callable | None = None,
    *,
    skip: str | None = None,
    display_name: str | None = None,
) -> Any:
    """Mark *func* as a data-driven test."""
    marker = TheoryMarker(skip=skip, display_name=display_name)

    def decorate(f: Callable) -> Callable:
        setattr(f, _FACT_ATTR, marker)
        return f

    return decorate(func) if func is not None else decorate


def _add_data_source(func: Callable, source: DataSource) -> Callable:
    # Decorators apply bottom-up; prepend to keep source order.
    existing: tuple[DataSource, ...] = getattr(func, _DATA_ATTR, ())
    setattr(func, _DATA_ATTR, (source, *existing))
    return func


def inline_data(*values: Any) -> Callable[[Callable], Callable]:
    """Attach one literal argument row to a theory."""
    return lambda func: _add_data_source(func, InlineData(values=tuple(values)))


def member_data(name: str, *arguments: Any) -> Callable[[Callable], Callable]:
    """Attach rows provided by the class member *name* to a theory."""
    return lambda func: _add_data_source(
        func, MemberData(name=name, arguments=tuple(arguments))
    )


def retry_class(cls: type | None = None, *, disable_retry: bool = False) -> Any:
    """Opt a test class into retry-capable cases."""
    marker = RetryClassMarker(disable_retry=disable_retry)

    def decorate(c: type) -> type:
        setattr(c, _RETRY_ATTR, marker)
        return c

    return decorate(cls) if cls is not None else decorate


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TestClassInfo:
    """Metadata for a test class.

    Attributes:
        name: Fully qualified class name (``module.QualName``).
        cls: The class object.
        retry_marker: The opt-in retry marker, if any.
    """

    __test__ = False

    name: str
    cls: type
    retry_marker: RetryClassMarker | None = None

    @property
    def has_retry_class_marker(self) -> bool:
        return self.retry_marker is not None


@dataclass(frozen=True)
class TestMethodInfo:
    """Metadata for a test method.

    Attributes:
        name: Method name.
        function: The underlying function (takes the instance first).
        parameters: Names of the declared parameters, ``self`` excluded.
        fact: Fact or theory marker, if any.
        data_sources: Data sources in declaration order.
    """

    __test__ = False

    name: str
    function: Callable[..., Any]
    parameters: tuple[str, ...] = ()
    fact: FactMarker | None = None
    data_sources: tuple[DataSource, ...] = field(default_factory=tuple)

    @property
    def has_fact_marker(self) -> bool:
        return self.fact is not None

    @property
    def has_theory_marker(self) -> bool:
        return isinstance(self.fact, TheoryMarker)


@dataclass(frozen=True)
class TestMethod:
    """A test method within its class and assembly."""

    __test__ = False

    assembly_name: str
    test_class: TestClassInfo
    method: TestMethodInfo

    @property
    def class_name(self) -> str:
        return self.test_class.name

    @property
    def method_name(self) -> str:
        return self.method.name

    @property
    def has_fact_marker(self) -> bool:
        return self.method.has_fact_marker

    @property
    def has_theory_marker(self) -> bool:
        return self.method.has_theory_marker

    @property
    def has_retry_class_marker(self) -> bool:
        return self.test_class.has_retry_class_marker

    @property
    def data_sources(self) -> tuple[DataSource, ...]:
        return self.method.data_sources

    @property
    def parameters(self) -> tuple[str, ...]:
        return self.method.parameters


def describe_class(cls: type) -> TestClassInfo:
    """Build the descriptor for *cls*."""
    return TestClassInfo(
        name=f"{cls.__module__}.{cls.__qualname__}",
        cls=cls,
        retry_marker=getattr(cls, _RETRY_ATTR, None),
    )


def describe_method(func: Callable[..., Any]) -> TestMethodInfo:
    """Build the descriptor for the plain function *func*."""
    params = list(inspect.signature(func).parameters.values())
    if params and params[0].name in ("self", "cls"):
        params = params[1:]
    return TestMethodInfo(
        name=func.__name__,
        function=func,
        parameters=tuple(p.name for p in params),
        fact=getattr(func, _FACT_ATTR, None),
        data_sources=tuple(getattr(func, _DATA_ATTR, ())),
    )


def make_test_method(
    cls: type, method_name: str, assembly_name: str | None = None
) -> TestMethod:
    """Build the descriptor for ``cls.method_name``.

    Args:
        cls: The test class.
        method_name: Name of a function defined on *cls* or its bases.
        assembly_name: Owning assembly; defaults to the top-level package
            of the class's module.
    """
    func = inspect.getattr_static(cls, method_name, None)
    if not inspect.isfunction(func):
        raise ResolutionError(
            f"{cls.__qualname__}.{method_name} is not a plain function"
        )
    return TestMethod(
        assembly_name=assembly_name or cls.__module__.split(".")[0],
        test_class=describe_class(cls),
        method=describe_method(func),
    )


def iter_test_methods(
    module: ModuleType, assembly_name: str | None = None
) -> Iterator[TestMethod]:
    """Yield a descriptor for every public method of the module's classes.

    Only classes defined in *module* are walked, in definition order.
    Methods without markers are yielded too: deciding what to do with
    them is discovery's job.
    """
    assembly = assembly_name or module.__name__.split(".")[0]
    for cls in vars(module).values():
        if not inspect.isclass(cls) or cls.__module__ != module.__name__:
            continue
        seen: set[str] = set()
        for klass in reversed(cls.__mro__[:-1]):
            for name, func in vars(klass).items():
                if name.startswith("_") or name in seen or not inspect.isfunction(func):
                    continue
                seen.add(name)
                yield make_test_method(cls, name, assembly)


def resolve_test_method(
    assembly_name: str, class_name: str, method_name: str
) -> TestMethod:
    """Re-import the test method named by a serialized case.

    Raises:
        ResolutionError: If the module, class or method cannot be found.
    """
    parts = class_name.split(".")
    for split in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:split])
        try:
            target: Any = importlib.import_module(module_name)
        except ModuleNotFoundError:
            continue
        try:
            for attr in parts[split:]:
                target = getattr(target, attr)
        except AttributeError as exc:
            raise ResolutionError(
                f"Class '{class_name}' not found in module '{module_name}'"
            ) from exc
        logger.debug("Resolved %s.%s from %s", class_name, method_name, module_name)
        return make_test_method(target, method_name, assembly_name)
    raise ResolutionError(f"No importable module for class '{class_name}'")


def iter_data_rows(test_method: TestMethod) -> Iterator[tuple[Any, ...]]:
    """Yield every argument row of the method's data sources, in order.

    A discoverer returning ``None`` contributes no rows.  Exceptions raised
    by a discoverer propagate to the caller.
    """
    for data_source in test_method.data_sources:
        rows = data_source.get_discoverer().get_data(data_source, test_method)
        if rows is None:
            logger.debug(
                "%s on %s.%s returned no data",
                type(data_source).__name__,
                test_method.class_name,
                test_method.method_name,
            )
            continue
        for row in rows:
            yield tuple(row)
