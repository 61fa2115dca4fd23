"""Derived nodes — read-only values computed from several sources.

A DerivedNode computes ``deriver(states)`` eagerly at construction, then
recomputes on every source notification by re-reading *all* sources. Its
own subscribers are notified only when the output is no longer equal to
the cached one, so derived nodes can be chained as sources of others.

A deriver that raises during recomputation does not break the graph: the
error is held as a pending fault, the last good value stays cached, and
the fault is raised once on the next read of ``state_value``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any, Generic, TypeVar

from tagflux.selectors import Equality, deep_equal

logger = logging.getLogger("tagflux.derived")

R = TypeVar("R")

MIN_SOURCES = 2
MAX_SOURCES = 5


class DerivedNode(Generic[R]):
    """A reactive, read-only value over one or more replaying sources."""

    __slots__ = (
        "_sources",
        "_deriver",
        "_equals",
        "_value",
        "_fault",
        "_subscribers",
        "_unsubscribers",
        "_destroyed",
    )

    def __init__(
        self,
        sources: Sequence[Any],
        deriver: Callable[[tuple], R],
        equals: Equality | None = None,
    ) -> None:
        if not sources:
            raise ValueError("a derived node needs at least one source")
        self._sources = tuple(sources)
        self._deriver = deriver
        self._equals = equals if equals is not None else deep_equal
        self._fault: Exception | None = None
        self._subscribers: list[Callable[[R], None]] = []
        self._unsubscribers: list[Callable[[], None]] = []
        self._destroyed = False
        self._value: R = self._compute()
        for source in self._sources:
            self._unsubscribers.append(source.subscribe(self._listener()))

    def _listener(self) -> Callable[[Any], None]:
        # Sources replay their current value on subscribe; that first call
        # is already covered by the eager compute above.
        replayed = False

        def _on_source_change(_state) -> None:
            nonlocal replayed
            if not replayed:
                replayed = True
                return
            self._recompute()

        return _on_source_change

    def _compute(self) -> R:
        return self._deriver(tuple(source.state_value for source in self._sources))

    def _recompute(self) -> None:
        if self._destroyed:
            return
        try:
            value = self._compute()
        except Exception as error:
            logger.debug("Derivation %r failed: %r", self._deriver, error)
            self._fault = error
            return
        self._fault = None
        if self._equals(self._value, value):
            return
        self._value = value
        for callback in list(self._subscribers):
            self._deliver(callback, value)

    def _deliver(self, callback: Callable[[R], None], value: R) -> None:
        try:
            callback(value)
        except Exception:
            logger.exception("Derived subscriber %r failed", callback)

    @property
    def state_value(self) -> R:
        """The cached output. Raises (once) a pending derivation fault."""
        if self._fault is not None:
            fault, self._fault = self._fault, None
            raise fault
        return self._value

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def subscribe(self, callback: Callable[[R], None]) -> Callable[[], None]:
        """Call ``callback`` now with the cached value, then on every change."""
        self._deliver(callback, self._value)
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    def destroy(self) -> None:
        """Release source subscriptions. The last value stays readable."""
        if self._destroyed:
            return
        self._destroyed = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._subscribers.clear()

    def __repr__(self) -> str:
        state = "destroyed" if self._destroyed else f"value={self._value!r}"
        name = getattr(self._deriver, "__name__", "deriver")
        return f"DerivedNode({name}, {state})"


def derive(
    sources: Sequence[Any],
    deriver: Callable[[tuple], R],
    *,
    equals: Equality | None = None,
) -> DerivedNode[R]:
    """Create a DerivedNode over 2 to 5 sources.

    Usage:
        total = derive(
            [cart, discount],
            lambda states: states[0].subtotal * (1 - states[1].rate),
        )
        total.state_value  # 100
        discount.dispatch("tagflux/action/SetRate", 0.2)
        total.state_value  # 80.0

        total.destroy()
    """
    if not MIN_SOURCES <= len(sources) <= MAX_SOURCES:
        raise ValueError(
            f"derive() takes {MIN_SOURCES} to {MAX_SOURCES} sources, got {len(sources)}"
        )
    return DerivedNode(sources, deriver, equals)
