"""Shared state variants and fixtures."""

from dataclasses import dataclass, replace
from typing import ClassVar

import pytest

from tagflux import Action, create_store

INCREMENT = "tagflux/action/Increment"


@dataclass(frozen=True)
class Idle:
    value: int = 0
    tag: ClassVar[str] = "Idle"


@dataclass(frozen=True)
class Ready:
    value: int = 0
    tag: ClassVar[str] = "Ready"


@dataclass(frozen=True)
class Loading:
    value: int = 0
    tag: ClassVar[str] = "Loading"


@dataclass(frozen=True)
class Failed:
    message: str = ""
    value: int = 0
    tag: ClassVar[str] = "Failed"


COUNTER_VARIANTS = [Idle, Ready, Loading, Failed]


def increment(state, payload):
    return replace(state, value=state.value + payload["amount"])


@pytest.fixture
def store():
    """Counter store at Idle(0) with Increment registered."""
    s = create_store(Idle(0), COUNTER_VARIANTS, name="counter")
    s.register("Increment", Action("Increment", increment))
    return s


@pytest.fixture
def recorder():
    """Subscriber that records every state it receives."""

    class _Recorder(list):
        def __call__(self, value):
            self.append(value)

    return _Recorder()
