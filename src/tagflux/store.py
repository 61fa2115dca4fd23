"""Store — a single tagged-state cell driven by registered actions.

Dispatch runs a bound copy of the registered descriptor through the
interception pipeline. The terminal stage executes it:

- Action: ``handler(state, payload)`` runs synchronously. Failures are
  recorded and re-raised; on success the cell is replaced and subscribers
  are notified in registration order.
- AsyncAction: dispatch applies and publishes the pre-effect state before
  it returns, then hands back an awaitable running the effect with retry
  (a scheduled Task inside a running event loop, else a coroutine). Effect
  failures are folded into state through ``on_error`` and recorded, never
  re-raised.

In strict mode every committed transition output, sync or async, must carry
a tag from the store's tag set.

Subscribers receive the current state immediately on subscribe, then every
committed state. A failing subscriber is logged and recorded; the remaining
subscribers are still notified.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
import time
from collections import OrderedDict, deque
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import tenacity

from tagflux.action import Action, AnyAction, AsyncAction, bind, full_type, validate_action
from tagflux.config import StoreConfig
from tagflux.errors import (
    ActionNotFoundError,
    ErrorCategory,
    SnapshotNotFoundError,
    StateTransitionError,
    category_of,
    is_recoverable,
    is_store_error,
)
from tagflux.pipeline import Interceptor, InterceptorContext, build_pipeline
from tagflux.state import TAG_FIELD, tag_of, variant_tags

logger = logging.getLogger("tagflux.store")

S = TypeVar("S")

Subscriber = Callable[[S], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    error: BaseException
    timestamp: float


@dataclass(frozen=True, slots=True)
class Snapshot:
    name: str
    state: Any
    timestamp: float


class _EffectFailed(Exception):
    """Internal: marks an effect failure as retryable."""

    def __init__(self, error: BaseException) -> None:
        super().__init__(error)
        self.error = error


async def _vetoed() -> None:
    return None


def _category(error: object) -> ErrorCategory | None:
    return category_of(error.code) if is_store_error(error) else None


class Store(Generic[S]):
    """Tagged-state container with actions, interceptors and error history."""

    def __init__(
        self,
        initial: S,
        variants: Iterable[object] | None = None,
        *,
        config: StoreConfig | None = None,
        interceptors: Sequence[Interceptor] = (),
    ) -> None:
        self._state = initial
        self._config = config if config is not None else StoreConfig()
        self._tags = variant_tags(initial, variants)
        self._actions: dict[str, AnyAction] = {}
        self._subscribers: list[Subscriber] = []
        self._errors: deque[ErrorRecord] = deque()
        self._error_counts: dict[ErrorCategory, int] = {}
        self._snapshots: OrderedDict[str, Snapshot] = OrderedDict()
        self._tasks: set[asyncio.Task] = set()
        # one slot per in-progress dispatch; the terminal stage drops
        # forwarded async actions into the innermost slot
        self._async_slots: list[list[AsyncAction]] = []
        context = InterceptorContext(
            get_state=lambda: self._state,
            dispatch=self.dispatch,
            subscribe=self.subscribe,
        )
        self._interceptors = tuple(interceptors)
        self._pipeline = build_pipeline(self._interceptors, context, self._execute)

    # --- State ---

    @property
    def state_value(self) -> S:
        return self._state

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def valid_tags(self) -> frozenset[str]:
        return self._tags

    @property
    def registered_actions(self) -> tuple[str, ...]:
        return tuple(self._actions)

    def is_in_state(self, tag: str) -> bool:
        return tag_of(self._state) == tag

    def get_state(self, tag: str) -> S | None:
        """The current state if it carries ``tag``, else None."""
        return self._state if tag_of(self._state) == tag else None

    def select_key(self, key: str) -> Any:
        """Read one field of the current state, or None when it has no such field."""
        if isinstance(self._state, Mapping):
            return self._state.get(key)
        return getattr(self._state, key, None)

    def replace_state(self, state: S) -> None:
        """Commit ``state`` wholesale and notify subscribers."""
        self._commit(state)

    # --- Registration / dispatch ---

    def register(self, type_name: str, action: AnyAction) -> None:
        """Register ``action`` under ``ACTION_TYPE_PREFIX + type_name``.

        Re-registering a type replaces the earlier descriptor.
        """
        validate_action(action)
        key = full_type(type_name)
        if key in self._actions:
            logger.debug("Store %r: replacing action %s", self.name, key)
        self._actions[key] = action

    def register_all(self, actions: Mapping[str, AnyAction] | Iterable[AnyAction]) -> None:
        """Register descriptors under their own ``type`` (e.g. an action_group)."""
        items = actions.values() if isinstance(actions, Mapping) else actions
        for action in items:
            self.register(action.type, action)

    def dispatch(self, action_type: str | AnyAction, payload: Any = None):
        """Run an action. Returns an awaitable for async actions, else None."""
        if isinstance(action_type, (Action, AsyncAction)):
            key = full_type(action_type.type)
        else:
            key = action_type
        descriptor = self._actions.get(key)
        if descriptor is None:
            error = ActionNotFoundError(type=key)
            self._record_error(error)
            raise error

        action = bind(descriptor, payload)
        logger.debug("Store %r: dispatch %s", self.name, key)
        self._async_slots.append([])
        try:
            self._pipeline(action)
        finally:
            forwarded = self._async_slots.pop()

        if not isinstance(action, AsyncAction):
            return None
        if not forwarded:
            logger.debug("Store %r: %s vetoed", self.name, key)
            return self._schedule(_vetoed())

        forwarded_action = forwarded[-1]
        # the first pre-effect state is visible before dispatch returns
        pre_effect = forwarded_action.state(self._state)
        error = self._transition_error(pre_effect, forwarded_action)
        if error is not None:
            self._record_error(error)
            raise error
        self._commit(pre_effect)
        return self._schedule(self._run_async(forwarded_action))

    def _schedule(self, coro):
        """Start ``coro`` as a Task when a loop is running, else hand it back."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return coro
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _transition_error(self, state: Any, action: AnyAction) -> StateTransitionError | None:
        if not self._config.strict:
            return None
        tag = tag_of(state)
        if tag in self._tags:
            return None
        return StateTransitionError(expected=sorted(self._tags), actual=tag, action=action.type)

    def _execute(self, action: AnyAction) -> None:
        """Terminal pipeline stage."""
        if isinstance(action, AsyncAction):
            self._async_slots[-1].append(action)
            return

        try:
            next_state = action.handler(self._state, action.payload)
        except Exception as error:
            self._record_error(error)
            raise

        error = self._transition_error(next_state, action)
        if error is not None:
            self._record_error(error)
            raise error

        self._commit(next_state)

    def _apply(self, state: Any, action: AsyncAction) -> None:
        """Commit an async transition output; strict rejects are recorded, not raised."""
        error = self._transition_error(state, action)
        if error is None:
            self._commit(state)
            return
        logger.warning("Store %r: %s rejected: %s", self.name, action.type, error)
        self._record_error(error)

    async def _run_async(self, action: AsyncAction) -> None:
        attempts = self._config.max_retries + 1
        retryer = tenacity.AsyncRetrying(
            stop=tenacity.stop_after_attempt(attempts),
            wait=tenacity.wait_fixed(self._config.retry_delay),
            retry=tenacity.retry_if_exception_type(_EffectFailed),
            reraise=False,
        )
        try:
            async for attempt in retryer:
                with attempt:
                    number = attempt.retry_state.attempt_number
                    # dispatch already published the first attempt's pre-effect state
                    if number > 1:
                        self._apply(action.state(self._state), action)
                    try:
                        result = action.effect(action.payload)
                        if inspect.isawaitable(result):
                            result = await result
                    except Exception as error:
                        if number < attempts:
                            logger.warning(
                                "Store %r: %s attempt %d/%d failed: %r",
                                self.name, action.type, number, attempts, error,
                            )
                            self._apply(action.on_error(self._state, error), action)
                        raise _EffectFailed(error) from error
                    # reducers read the state current at completion, not at start
                    self._apply(action.on_success(self._state, result), action)
        except tenacity.RetryError as exhausted:
            error = exhausted.last_attempt.exception().error
            logger.warning(
                "Store %r: %s failed after %d attempts", self.name, action.type, attempts
            )
            self._apply(action.on_error(self._state, error), action)
            self._record_error(error)

    # --- Subscription ---

    def subscribe(self, callback: Subscriber) -> Unsubscribe:
        """Call ``callback`` now with the current state, then on every change."""
        self._deliver(callback, self._state)
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    def _commit(self, state: S) -> None:
        self._state = state
        for callback in list(self._subscribers):
            self._deliver(callback, self._state)

    def _deliver(self, callback: Subscriber, state: S) -> None:
        try:
            callback(state)
        except Exception as error:
            logger.exception("Store %r: subscriber %r failed", self.name, callback)
            self._record_error(error)

    # --- Error history ---

    def _record_error(self, error: BaseException) -> None:
        self._errors.append(ErrorRecord(error, time.time()))
        category = _category(error)
        if category is not None:
            self._error_counts[category] = self._error_counts.get(category, 0) + 1

        while len(self._errors) > self._config.max_error_history:
            evicted = self._errors.popleft()
            category = _category(evicted.error)
            if category is None:
                continue
            remaining = self._error_counts.get(category, 1) - 1
            if remaining > 0:
                self._error_counts[category] = remaining
            else:
                self._error_counts.pop(category, None)

    @property
    def last_error(self) -> BaseException | None:
        return self._errors[-1].error if self._errors else None

    @property
    def error_history(self) -> tuple[BaseException, ...]:
        return tuple(record.error for record in self._errors)

    @property
    def error_records(self) -> tuple[ErrorRecord, ...]:
        return tuple(self._errors)

    @property
    def total_error_count(self) -> int:
        return len(self._errors)

    @property
    def last_error_code(self) -> int | None:
        error = self.last_error
        return error.code if is_store_error(error) else None

    @property
    def last_error_category(self) -> ErrorCategory | None:
        code = self.last_error_code
        return category_of(code) if code is not None else None

    @property
    def is_last_error_recoverable(self) -> bool:
        error = self.last_error
        return error is not None and is_recoverable(error)

    def error_counts(self) -> dict[ErrorCategory, int]:
        return dict(self._error_counts)

    def errors_by_category(self, category: ErrorCategory) -> tuple[BaseException, ...]:
        return tuple(r.error for r in self._errors if _category(r.error) is category)

    def has_error_code(self, code: int) -> bool:
        return any(is_store_error(r.error) and r.error.code == code for r in self._errors)

    def clear_error_history(self) -> None:
        self._errors.clear()
        self._error_counts.clear()

    # --- Snapshots ---

    @property
    def snapshots(self) -> tuple[str, ...]:
        """Snapshot names, least recently used first."""
        return tuple(self._snapshots)

    def snapshot(self, name: str) -> None:
        """Save the current state under ``name``, replacing any earlier one.

        Past ``config.max_snapshots`` the least recently saved or restored
        snapshot is evicted.
        """
        is_update = name in self._snapshots
        self._snapshots[name] = Snapshot(name, self._state, time.time())
        self._snapshots.move_to_end(name)
        if not is_update and len(self._snapshots) > self._config.max_snapshots:
            evicted, _ = self._snapshots.popitem(last=False)
            logger.debug("Store %r: evicted snapshot %r", self.name, evicted)

    def restore(self, name: str) -> None:
        """Commit the state saved under ``name`` and notify subscribers."""
        entry = self._snapshots.get(name)
        if entry is None:
            raise SnapshotNotFoundError(name=name, available=list(self._snapshots))
        self._snapshots.move_to_end(name)
        self._commit(entry.state)

    # --- Forking ---

    def fork(self) -> Store[S]:
        """Independent non-strict copy: deep-copied state, same actions, fresh history."""
        config = self._config.model_copy(update={"strict": False, "name": f"{self.name}.fork"})
        forked: Store[S] = Store(copy.deepcopy(self._state), self._tags, config=config)
        forked._actions.update(self._actions)
        return forked

    def __repr__(self) -> str:
        try:
            tag = tag_of(self._state)
        except TypeError:
            tag = "?"
        return f"Store({self.name!r}, {TAG_FIELD}={tag!r})"


def create_store(
    initial: S,
    variants: Iterable[object] | None = None,
    *,
    interceptors: Sequence[Interceptor] = (),
    **overrides: Any,
) -> Store[S]:
    """Build a Store, with ``overrides`` applied on top of the environment config.

    Usage:
        store = create_store(Idle(value=0), [Idle, Ready], name="counter", strict=True)
        store.register("Increment", Action("Increment", increment))
        store.dispatch("tagflux/action/Increment", {"amount": 5})
    """
    return Store(initial, variants, config=StoreConfig(**overrides), interceptors=interceptors)
