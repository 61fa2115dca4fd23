"""Contexts — scoped views over a store, arranged in a disposable tree.

A ContextNode wraps one store and adds:

- keyed values (provide/get) looked up through the parent chain,
- selections and subscriptions it owns and releases on dispose,
- forks (independent store copies) and derived nodes it owns,
- clones: sibling roots over the same store with their own lifetime.

dispose() cascades to children, forks, and derived nodes exactly once.
Children keep only a weak reference to their parent; the parent owns them.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from tagflux.derived import DerivedNode
from tagflux.errors import DisposedContextError
from tagflux.selectors import Equality, Selection, deep_equal, pluck
from tagflux.store import Store

logger = logging.getLogger("tagflux.context")

S = TypeVar("S")
R = TypeVar("R")

ErrorHandler = Callable[[Exception], None]

_MISSING = object()


def _track(collection: list, item) -> Callable[[], None]:
    """Add item to an owned collection. Returns a remover."""
    collection.append(item)

    def _remove() -> None:
        try:
            collection.remove(item)
        except ValueError:
            pass

    return _remove


class ContextNode(Generic[S]):
    """Hierarchical wrapper over a Store."""

    def __init__(
        self,
        store: Store[S],
        *,
        parent: ContextNode | None = None,
        on_error: ErrorHandler | None = None,
        values: dict | None = None,
        name: str | None = None,
    ) -> None:
        self._store = store
        self._on_error = on_error
        self._values: dict[Any, Any] = dict(values or {})
        self._name = name or store.name
        self._children: list[ContextNode] = []
        self._forks: list[ContextNode] = []
        self._derived: list[DerivedNode] = []
        self._unsubscribers: list[Callable[[], None]] = []
        self._disposed = False
        self._parent_ref = weakref.ref(parent) if parent is not None else None
        self._detach: Callable[[], None] | None = None
        if parent is not None:
            parent._check("add a child to")
            self._detach = _track(parent._children, self)

    def _check(self, operation: str) -> None:
        if self._disposed:
            raise DisposedContextError(context=self._name, operation=operation)

    # --- Introspection ---

    @property
    def name(self) -> str:
        return self._name

    @property
    def store(self) -> Store[S]:
        return self._store

    @property
    def parent(self) -> ContextNode | None:
        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def children(self) -> tuple[ContextNode, ...]:
        return tuple(self._children)

    # --- State access ---

    def get_current(self) -> S:
        self._check("read")
        return self._store.state_value

    def dispatch(self, action_type, payload: Any = None):
        self._check("dispatch on")
        return self._store.dispatch(action_type, payload)

    def _guarded(self, listener: Callable[[Any], None]) -> Callable[[Any], None]:
        if self._on_error is None:
            return listener
        on_error = self._on_error

        def _listener(state) -> None:
            try:
                listener(state)
            except Exception as error:
                on_error(error)

        return _listener

    def _own(self, unsubscribe: Callable[[], None]) -> Callable[[], None]:
        remove = _track(self._unsubscribers, unsubscribe)

        def _release() -> None:
            unsubscribe()
            remove()

        return _release

    def select(
        self,
        selector: Callable[[S], R],
        callback: Callable[[R], None],
        *,
        equals: Equality = deep_equal,
    ) -> Callable[[], None]:
        """Replay ``selector(state)`` now, then only when it changes."""
        self._check("select on")
        listener = self._guarded(Selection(selector, callback, equals))
        return self._own(self._store.subscribe(listener))

    def subscribe_key(
        self,
        key: str,
        callback: Callable[[Any], None],
        *,
        equals: Equality = deep_equal,
    ) -> Callable[[], None]:
        """select() on one field of the state (dotted paths walk nested values)."""
        return self.select(pluck(key), callback, equals=equals)

    def select_async(
        self, selector: Callable[[S], R]
    ) -> tuple[asyncio.Future[R], Callable[[], None]]:
        """Future holding the first selected value, plus the unsubscribe.

        Needs a running event loop. The selection replays on subscribe, so
        the future is normally already resolved when this returns.
        """
        self._check("select on")
        future: asyncio.Future[R] = asyncio.get_running_loop().create_future()

        def _resolve(value: R) -> None:
            if not future.done():
                future.set_result(value)

        return future, self.select(selector, _resolve)

    def subscribe(self, callback: Callable[[S], None]) -> Callable[[], None]:
        """Raw pass-through: current state now, then every change."""
        self._check("subscribe to")
        return self._own(self._store.subscribe(self._guarded(callback)))

    # --- Scoped values ---

    def provide(self, key: Any, value: Any) -> ContextNode[S]:
        """Create a child holding ``key``.

        A callable ``value`` is called once with the current state and its
        result is stored; it does not follow later state changes.
        """
        self._check("provide on")
        resolved = value(self._store.state_value) if callable(value) else value
        return ContextNode(
            self._store,
            parent=self,
            on_error=self._on_error,
            values={key: resolved},
            name=f"{self._name}.{key}",
        )

    def get(self, key: Any, default: Any = None) -> Any:
        """Look ``key`` up here, then through the parent chain."""
        self._check("read from")
        node: ContextNode | None = self
        while node is not None:
            value = node._values.get(key, _MISSING)
            if value is not _MISSING:
                return value
            node = node.parent
        return default

    # --- Clones, forks, merges, derived ---

    def clone(self) -> ContextNode[S]:
        """Root context over the same store.

        The clone shares state but has its own subscriptions and lifetime;
        disposing either one leaves the other usable.
        """
        self._check("clone")
        return ContextNode(self._store, on_error=self._on_error, name=f"{self._name}.clone")

    def fork(self) -> ContextNode[S]:
        """Context over an independent copy of this store."""
        self._check("fork")
        forked = ContextNode(
            self._store.fork(),
            on_error=self._on_error,
            name=f"{self._name}.fork",
        )
        forked._detach = _track(self._forks, forked)
        return forked

    def merge(self, other: ContextNode[S]) -> None:
        """Overwrite this store's state with ``other``'s current state."""
        self._check("merge into")
        self._store.replace_state(other.get_current())

    def derive(
        self,
        deriver: Callable[[tuple], R],
        *others: Any,
        equals: Equality | None = None,
    ) -> DerivedNode[R]:
        """Derived node over this store plus ``others``, owned by this context."""
        self._check("derive from")
        node = DerivedNode((self._store, *others), deriver, equals)
        self._derived.append(node)
        return node

    # --- Disposal ---

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

        for child in list(self._children):
            child.dispose()
        self._children.clear()

        for forked in list(self._forks):
            forked.dispose()
        self._forks.clear()

        for node in self._derived:
            node.destroy()
        self._derived.clear()

        if self._detach is not None:
            self._detach()
            self._detach = None
        logger.debug("Context %r disposed", self._name)

    def __enter__(self) -> ContextNode[S]:
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        return f"ContextNode({self._name!r}, {state})"


def create_context(
    store: Store[S],
    *,
    parent: ContextNode | None = None,
    on_error: ErrorHandler | None = None,
) -> ContextNode[S]:
    """Wrap ``store`` in a context, optionally as a child of ``parent``.

    Usage:
        root = create_context(store)
        themed = root.provide("theme", "dark")
        themed.get("theme")  # "dark"

        root.dispose()  # disposes themed too
    """
    return ContextNode(store, parent=parent, on_error=on_error)
