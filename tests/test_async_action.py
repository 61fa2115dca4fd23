"""Tests for AsyncAction dispatch — pre-effect publish, retry, fresh-state reads."""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import ClassVar

import pytest

from tagflux import Action, AsyncAction, StateTransitionError, create_store

from conftest import INCREMENT, COUNTER_VARIANTS, Failed, Idle, Loading, increment

FETCH = "tagflux/action/Fetch"


@dataclass(frozen=True)
class Bogus:
    value: int = 0
    tag: ClassVar[str] = "Bogus"


def _store(**overrides):
    s = create_store(Idle(0), COUNTER_VARIANTS, name="async", **overrides)
    s.register("Increment", Action("Increment", increment))
    return s


def _fetch(effect):
    return AsyncAction(
        "Fetch",
        effect,
        state=lambda s: Loading(s.value),
        on_success=lambda s, result: Idle(s.value + result),
        on_error=lambda s, error: Failed(str(error), s.value),
    )


class TestAsyncDispatch:
    @pytest.mark.asyncio
    async def test_returns_awaitable(self):
        async def effect(payload):
            return payload

        s = _store()
        s.register("Fetch", _fetch(effect))
        result = s.dispatch(FETCH, 4)
        assert inspect.isawaitable(result)
        await result
        assert s.state_value == Idle(4)

    def test_pre_effect_published_before_dispatch_returns(self, recorder):
        async def effect(payload):
            return payload

        s = _store()
        s.register("Fetch", _fetch(effect))
        s.subscribe(recorder)

        pending = s.dispatch(FETCH, 1)

        assert s.state_value == Loading(0)
        assert recorder == [Idle(0), Loading(0)]
        assert inspect.iscoroutine(pending)  # no running loop to schedule on
        asyncio.run(pending)
        assert s.state_value == Idle(1)
        assert recorder == [Idle(0), Loading(0), Idle(1)]

    @pytest.mark.asyncio
    async def test_runs_inside_loop_without_being_awaited(self):
        finished = asyncio.Event()

        async def effect(payload):
            return payload

        s = _store()
        s.register("Fetch", _fetch(effect))
        s.subscribe(lambda st: st == Idle(2) and finished.set())

        pending = s.dispatch(FETCH, 2)

        assert isinstance(pending, asyncio.Task)
        assert s.state_value == Loading(0)
        await asyncio.wait_for(finished.wait(), timeout=1)
        assert s.state_value == Idle(2)

    @pytest.mark.asyncio
    async def test_publishes_pre_effect_state_before_effect(self, recorder):
        seen_during_effect = []
        s = _store()

        async def effect(payload):
            seen_during_effect.append(s.state_value)
            return 1

        s.register("Fetch", _fetch(effect))
        s.subscribe(recorder)
        await s.dispatch(FETCH)

        assert seen_during_effect == [Loading(0)]
        assert recorder == [Idle(0), Loading(0), Idle(1)]

    @pytest.mark.asyncio
    async def test_success_reducer_reads_fresh_state(self):
        started = asyncio.Event()
        release = asyncio.Event()

        async def effect(payload):
            started.set()
            await release.wait()
            return 10

        s = _store()
        s.register("Fetch", _fetch(effect))
        task = asyncio.ensure_future(s.dispatch(FETCH))
        await started.wait()

        s.dispatch(INCREMENT, {"amount": 1})
        assert s.state_value == Loading(1)

        release.set()
        await task
        assert s.state_value == Idle(11)

    @pytest.mark.asyncio
    async def test_sync_effect_result_accepted(self):
        s = _store()
        s.register("Fetch", _fetch(lambda payload: 3))
        await s.dispatch(FETCH)
        assert s.state_value == Idle(3)

    @pytest.mark.asyncio
    async def test_defaults_keep_state(self):
        async def effect(payload):
            return "ignored"

        s = _store()
        s.register("Noop", AsyncAction("Noop", effect))
        await s.dispatch("tagflux/action/Noop")
        assert s.state_value == Idle(0)


class TestRetry:
    @pytest.mark.asyncio
    async def test_always_failing_effect_attempted_retries_plus_one(self, recorder):
        calls = []

        async def effect(payload):
            calls.append(payload)
            raise ConnectionError("down")

        s = _store(max_retries=2)
        s.register("Fetch", _fetch(effect))
        s.subscribe(recorder)

        result = await s.dispatch(FETCH, "p")

        assert result is None
        assert calls == ["p", "p", "p"]
        assert s.state_value == Failed("down", 0)
        assert recorder[-1] == Failed("down", 0)

    @pytest.mark.asyncio
    async def test_every_attempt_is_published(self, recorder):
        async def effect(payload):
            raise ConnectionError("down")

        s = _store(max_retries=1)
        s.register("Fetch", _fetch(effect))
        s.subscribe(recorder)
        await s.dispatch(FETCH)

        assert recorder == [
            Idle(0),
            Loading(0),
            Failed("down", 0),
            Loading(0),
            Failed("down", 0),
        ]

    @pytest.mark.asyncio
    async def test_failure_recorded_once_after_exhaustion(self):
        async def effect(payload):
            raise ConnectionError("down")

        s = _store(max_retries=3)
        s.register("Fetch", _fetch(effect))
        await s.dispatch(FETCH)

        assert s.total_error_count == 1
        assert isinstance(s.last_error, ConnectionError)

    @pytest.mark.asyncio
    async def test_recovers_on_later_attempt(self, recorder):
        attempts = []

        async def effect(payload):
            attempts.append(1)
            if len(attempts) < 2:
                raise TimeoutError("slow")
            return 5

        s = _store(max_retries=3)
        s.register("Fetch", _fetch(effect))
        s.subscribe(recorder)
        await s.dispatch(FETCH)

        assert len(attempts) == 2
        assert s.state_value == Idle(5)
        assert recorder == [Idle(0), Loading(0), Failed("slow", 0), Loading(0), Idle(5)]
        assert s.total_error_count == 0

    @pytest.mark.asyncio
    async def test_intermediate_error_state_feeds_next_pre_effect(self):
        pre_inputs = []

        async def effect(payload):
            raise ValueError("nope")

        action = AsyncAction(
            "Fetch",
            effect,
            state=lambda s: pre_inputs.append(s) or Loading(s.value),
            on_error=lambda s, e: Failed("retrying", s.value),
        )
        s = _store(max_retries=1)
        s.register("Fetch", action)
        await s.dispatch(FETCH)

        assert pre_inputs == [Idle(0), Failed("retrying", 0)]

    @pytest.mark.asyncio
    async def test_zero_retries_single_attempt(self):
        calls = []

        async def effect(payload):
            calls.append(payload)
            raise ValueError("nope")

        s = _store(max_retries=0)
        s.register("Fetch", _fetch(effect))
        await s.dispatch(FETCH)
        assert len(calls) == 1
        assert s.state_value == Failed("nope", 0)

    @pytest.mark.asyncio
    async def test_retries_logged(self, caplog):
        async def effect(payload):
            raise ValueError("nope")

        s = _store(max_retries=1)
        s.register("Fetch", _fetch(effect))
        with caplog.at_level(logging.WARNING, logger="tagflux.store"):
            await s.dispatch(FETCH)
        assert "attempt 1/2 failed" in caplog.text
        assert "failed after 2 attempts" in caplog.text

    @pytest.mark.asyncio
    async def test_reducer_failure_propagates(self):
        async def effect(payload):
            return 1

        def bad_success(state, result):
            raise KeyError("reducer")

        s = _store()
        s.register("Fetch", AsyncAction("Fetch", effect, on_success=bad_success))
        with pytest.raises(KeyError):
            await s.dispatch(FETCH)


class TestStrictAsync:
    def _strict_store(self, action):
        s = _store(strict=True, max_retries=0)
        s.register("Fetch", action)
        return s

    @pytest.mark.asyncio
    async def test_success_output_outside_tag_set_is_rejected(self, recorder):
        async def effect(payload):
            return 1

        s = self._strict_store(
            AsyncAction(
                "Fetch",
                effect,
                state=lambda st: Loading(st.value),
                on_success=lambda st, result: Bogus(result),
            )
        )
        s.subscribe(recorder)
        await s.dispatch(FETCH)

        assert s.state_value == Loading(0)
        assert recorder == [Idle(0), Loading(0)]
        assert isinstance(s.last_error, StateTransitionError)
        assert s.last_error.actual == "Bogus"

    @pytest.mark.asyncio
    async def test_error_output_outside_tag_set_is_rejected(self):
        async def effect(payload):
            raise ConnectionError("down")

        s = self._strict_store(
            AsyncAction("Fetch", effect, on_error=lambda st, error: Bogus(st.value))
        )
        await s.dispatch(FETCH)

        assert s.state_value == Idle(0)
        assert [type(e) for e in s.error_history] == [StateTransitionError, ConnectionError]

    def test_pre_effect_outside_tag_set_raises_from_dispatch(self):
        calls = []

        async def effect(payload):
            calls.append(payload)

        s = self._strict_store(
            AsyncAction("Fetch", effect, state=lambda st: Bogus(st.value))
        )
        with pytest.raises(StateTransitionError):
            s.dispatch(FETCH)

        assert s.state_value == Idle(0)
        assert calls == []
        assert s.total_error_count == 1
