"""Selections — a slice of a source's state, delivered only when it changes.

select(source, selector, callback) fires callback immediately with the
current slice, then again only when the selected value is no longer
structurally equal to the last one delivered.
"""

from __future__ import annotations

import dataclasses
import functools
import math
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

T = TypeVar("T")
R = TypeVar("R")

Equality = Callable[[Any, Any], bool]

_UNSET = object()


def _attributes(obj: Any) -> dict[str, Any] | None:
    """Instance fields of a plain object (``__dict__`` plus ``__slots__``)."""
    fields: dict[str, Any] = dict(getattr(obj, "__dict__", {}))
    for cls in type(obj).__mro__:
        slots = getattr(cls, "__slots__", ())
        for name in (slots,) if isinstance(slots, str) else slots:
            if name not in ("__dict__", "__weakref__") and hasattr(obj, name):
                fields[name] = getattr(obj, name)
    if not fields and not hasattr(obj, "__dict__"):
        return None
    return fields


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality.

    Values must share a type (``1`` and ``True`` differ). Mappings compare
    by key, lists and tuples by index, dataclasses by field, and plain
    objects without their own ``__eq__`` by instance attributes. NaN equals
    NaN. Anything else falls back to ``==``.
    """
    if a is b:
        return True
    if type(a) is not type(b):
        return False
    if isinstance(a, float):
        return a == b or (math.isnan(a) and math.isnan(b))
    if isinstance(a, (str, bytes)):
        return a == b
    if isinstance(a, Mapping):
        return a.keys() == b.keys() and all(deep_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)):
        return len(a) == len(b) and all(map(deep_equal, a, b))
    if dataclasses.is_dataclass(a):
        return all(
            deep_equal(getattr(a, f.name), getattr(b, f.name)) for f in dataclasses.fields(a)
        )
    if type(a).__eq__ is object.__eq__ and not callable(a):
        attrs = _attributes(a)
        if attrs is not None:
            return deep_equal(attrs, _attributes(b))
    return a == b


class Selection:
    """Subscriber that remembers the last selected value and gates the callback.

    Any replaying source accepts it: ``source.subscribe(Selection(...))``.
    """

    __slots__ = ("_selector", "_callback", "_equals", "_last", "_initialized")

    def __init__(
        self, selector: Callable, callback: Callable, equals: Equality = deep_equal
    ) -> None:
        self._selector = selector
        self._callback = callback
        self._equals = equals
        self._last = None
        self._initialized = False

    def __call__(self, state) -> None:
        value = self._selector(state)
        if self._initialized and self._equals(self._last, value):
            return
        self._last = value
        self._initialized = True
        self._callback(value)

    def __repr__(self) -> str:
        name = getattr(self._selector, "__name__", "selector")
        return f"Selection({name}, last={self._last!r})"


def select(
    source,
    selector: Callable[[Any], T],
    callback: Callable[[T], None],
    *,
    equals: Equality = deep_equal,
) -> Callable[[], None]:
    """Subscribe to ``selector(state)`` on any replaying source. Returns unsubscribe.

    Usage:
        seen = []
        unsub = select(store, lambda s: s.value, seen.append)
        # seen == [0]
        store.dispatch("tagflux/action/Rename", "x")
        # seen == [0]: value unchanged, callback silent
    """
    return source.subscribe(Selection(selector, callback, equals))


def pluck(path: str) -> Callable[[Any], Any]:
    """Selector reading a key or attribute; dots walk nested values.

    Returns None as soon as a step is missing.
    """
    keys = path.split(".")

    def _pluck(obj):
        for key in keys:
            if obj is None:
                return None
            obj = obj.get(key) if isinstance(obj, Mapping) else getattr(obj, key, None)
        return obj

    _pluck.__name__ = f"pluck({path!r})"
    return _pluck


def combine_selectors(*selectors: Callable[[Any], Any]) -> Callable[[Any], tuple]:
    """One selector returning the tuple of every selector's result."""
    if len(selectors) < 2:
        raise ValueError(f"combine_selectors needs at least 2 selectors, got {len(selectors)}")

    def _combined(state) -> tuple:
        return tuple(selector(state) for selector in selectors)

    return _combined


def memoize(selector: Callable[[T], R]) -> Callable[[T], R]:
    """Cache the last result; a structurally equal input skips the call."""
    last_input: Any = _UNSET
    last_result: Any = None

    @functools.wraps(selector)
    def _memoized(value):
        nonlocal last_input, last_result
        if last_input is not _UNSET and deep_equal(value, last_input):
            return last_result
        last_input = value
        last_result = selector(value)
        return last_result

    return _memoized
