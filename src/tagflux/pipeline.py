"""Interception pipeline — wrappers folded around action execution.

An interceptor is called once, at store construction, with an
InterceptorContext and returns a wrapper factory:

    def audit(ctx):
        def wrap(next_stage):
            def stage(action):
                log.append((action.type, ctx.get_state()))
                return next_stage(action)
            return stage
        return wrap

A stage that does not call ``next_stage`` vetoes the action: nothing
executes, no effect runs, and no subscriber is notified. A stage may also
reassign ``action.handler`` / ``action.effect`` / ``action.payload`` before
forwarding; later stages and execution see the new values.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from tagflux.action import AnyAction

Stage = Callable[[AnyAction], Any]
Interceptor = Callable[["InterceptorContext"], Callable[[Stage], Stage]]


@dataclass(frozen=True, slots=True)
class InterceptorContext:
    """Read-only view of a store handed to each interceptor."""

    get_state: Callable[[], Any]
    dispatch: Callable[..., Any]
    subscribe: Callable[[Callable[[Any], None]], Callable[[], None]]


def build_pipeline(
    interceptors: Sequence[Interceptor],
    context: InterceptorContext,
    terminal: Stage,
) -> Stage:
    """Fold interceptors (last first) around ``terminal``.

    The first interceptor in the list is the outermost stage.
    """
    stage = terminal
    for interceptor in reversed(interceptors):
        stage = interceptor(context)(stage)
    return stage
