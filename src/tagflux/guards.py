"""Guards for use inside action handlers."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar

from tagflux.errors import (
    NonExhaustiveMatchError,
    PayloadValidationError,
    RequiredPayloadError,
    UnexpectedStateError,
)
from tagflux.state import tag_of

P = TypeVar("P")
R = TypeVar("R")

DEFAULT_CASE = "_"


def ensure_state(store, tag: str):
    """Return the store's state if it carries ``tag``, else raise UnexpectedStateError."""
    state = store.state_value
    actual = tag_of(state)
    if actual != tag:
        raise UnexpectedStateError(expected=tag, actual=actual)
    return state


def require_payload(payload: P | None) -> P:
    if payload is None:
        raise RequiredPayloadError()
    return payload


def validate_payload(
    predicate: Callable[[Any], bool], message: str | None = None
) -> Callable[[Any], Any]:
    """Build a checker that returns the payload or raises PayloadValidationError."""

    def _check(payload):
        if not predicate(payload):
            raise PayloadValidationError(message or "payload validation failed")
        return payload

    return _check


def match(
    state: Any,
    handlers: Mapping[str, Callable[[Any], R]],
    *,
    exhaustive: Iterable[str] | None = None,
) -> R:
    """Call the handler registered for the state's tag.

    ``"_"`` is the default case. With ``exhaustive``, every listed tag must
    have a handler (a default does not count) or NonExhaustiveMatchError is
    raised before anything runs.
    """
    if exhaustive is not None:
        missing = sorted(set(exhaustive) - set(handlers))
        if missing:
            raise NonExhaustiveMatchError(missing=missing)
    tag = tag_of(state)
    handler = handlers.get(tag) or handlers.get(DEFAULT_CASE)
    if handler is None:
        raise NonExhaustiveMatchError(state_tag=tag)
    return handler(state)
