"""Action descriptors — the transitions a Store can execute.

A synchronous Action holds a pure ``handler(state, payload) -> state``.
An AsyncAction holds a pre-effect ``state`` transform, an awaitable
``effect(payload)``, and ``on_success`` / ``on_error`` reducers.

Descriptors are plain mutable records: the store binds a copy per dispatch,
and interceptors may reassign its fields before it executes.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from tagflux.errors import InvalidActionError, MissingHandlerError

ACTION_TYPE_PREFIX = "tagflux/action/"


def _keep_state(state, *_):
    return state


@dataclass(slots=True)
class Action:
    """Synchronous transition: ``handler(state, payload) -> state``."""

    type: str
    handler: Callable[[Any, Any], Any]
    payload: Any = None


@dataclass(slots=True)
class AsyncAction:
    """Asynchronous transition executed with bounded retry.

    ``state`` runs before each attempt, ``effect`` is awaited, and the
    reducers fold the outcome into the state current at completion time.
    """

    type: str
    effect: Callable[[Any], Awaitable[Any]]
    state: Callable[[Any], Any] = _keep_state
    on_success: Callable[[Any, Any], Any] = _keep_state
    on_error: Callable[[Any, BaseException], Any] = _keep_state
    payload: Any = None


AnyAction = Action | AsyncAction

_REQUIRED = {
    Action: ("handler",),
    AsyncAction: ("effect", "state", "on_success", "on_error"),
}


def validate_action(action: object) -> AnyAction:
    """Structural check used at registration time."""
    required = next((f for cls, f in _REQUIRED.items() if isinstance(action, cls)), None)
    if required is None:
        raise InvalidActionError(action=type(action).__name__)
    for field in required:
        if not callable(getattr(action, field, None)):
            raise MissingHandlerError(type=action.type, field=field)
    return action


def bind(action: AnyAction, payload: Any) -> AnyAction:
    """Per-dispatch copy carrying the dispatched payload."""
    return dataclasses.replace(action, payload=payload)


def full_type(type_name: str) -> str:
    """Prefix a bare type name; already-prefixed names pass through."""
    if type_name.startswith(ACTION_TYPE_PREFIX):
        return type_name
    return f"{ACTION_TYPE_PREFIX}{type_name}"


def action_group(namespace: str, actions: Mapping[str, AnyAction]) -> dict[str, AnyAction]:
    """Namespace a batch of descriptors under one prefix.

    Returns copies; the originals are untouched.

    Usage:
        login = Action("Login", lambda s, p: LoggedIn(name=p["name"]))
        UserActions = action_group("User", {"login": login})
        UserActions["login"].type  # "tagflux/action/User/Login"

        store.register_all(UserActions)
        store.dispatch(UserActions["login"], {"name": "ada"})
    """
    prefix = namespace if namespace.endswith("/") else f"{namespace}/"
    group: dict[str, AnyAction] = {}
    for key, action in actions.items():
        base = action.type.removeprefix(ACTION_TYPE_PREFIX)
        group[key] = dataclasses.replace(action, type=f"{ACTION_TYPE_PREFIX}{prefix}{base}")
    return group
