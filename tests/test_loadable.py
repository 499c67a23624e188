"""Tests for asynchronous states: Deferred, Loadable and Cancellable."""

import asyncio

import pytest

from stately import Cancellable, Deferred, Kind, StateError, state


async def _later(value, delay=0.01):
    await asyncio.sleep(delay)
    return value


async def _fail(delay=0.01):
    await asyncio.sleep(delay)
    raise ValueError("rejected")


class TestDeferredState:
    @pytest.mark.asyncio
    async def test_async_evaluator_holds_deferred(self):
        s = state(lambda: _later("data"))
        value = s.get()
        assert isinstance(value, Deferred)
        assert s.family().kind is Kind.DEFERRED
        assert await value == "data"
        # Awaitable more than once.
        assert await s.get() == "data"

    @pytest.mark.asyncio
    async def test_async_def_evaluator(self):
        async def load(user_id):
            await asyncio.sleep(0)
            return {"id": user_id}

        users = state(load)
        assert await users.get(7) == {"id": 7}

    @pytest.mark.asyncio
    async def test_rejection_propagates_on_await(self):
        s = state(lambda: _fail())
        with pytest.raises(ValueError, match="rejected"):
            await s.get()

    def test_requires_running_loop(self):
        async def load():
            return 1

        s = state(load)
        with pytest.raises(RuntimeError):
            s.get()

    @pytest.mark.asyncio
    async def test_set_awaitable_is_wrapped(self):
        s = state(0)
        s.set(_later(5))
        assert isinstance(s.get(), Deferred)
        assert await s.get() == 5

    @pytest.mark.asyncio
    async def test_read_before_first_await_is_tracked(self):
        source = state(1)

        async def load():
            value = source.get()
            await asyncio.sleep(0)
            return value * 10

        derived = state(load)
        assert await derived.get() == 10
        assert derived.family().dependencies == [source.family()]
        source.set(2)
        assert derived.family().needs_evaluation
        assert await derived.get() == 20

    @pytest.mark.asyncio
    async def test_read_after_await_is_not_tracked(self):
        source = state(1)

        async def load():
            await asyncio.sleep(0)
            return source.get() * 10

        derived = state(load)
        assert await derived.get() == 10
        assert derived.family().dependencies == []
        source.set(2)
        assert await derived.get() == 10

    @pytest.mark.asyncio
    async def test_error_before_first_await_rejects(self):
        async def load():
            raise KeyError("missing")
            await asyncio.sleep(0)

        s = state(load)
        value = s.get()
        assert isinstance(value, Deferred)
        with pytest.raises(KeyError):
            await value

    @pytest.mark.asyncio
    async def test_cancelling_task_reaches_evaluator(self):
        cleaned = []

        async def load():
            try:
                await asyncio.sleep(10)
            finally:
                cleaned.append(True)

        value = state(load).get()
        await asyncio.sleep(0)
        value.future.cancel()
        with pytest.raises(asyncio.CancelledError):
            await value
        assert cleaned == [True]


class TestLoadable:
    @pytest.mark.asyncio
    async def test_transition_to_value(self):
        s = state(lambda: _later(42))
        loadable = s.loadable
        assert loadable.state == "loading"
        assert loadable.value is None
        notified = []
        loadable.subscribe(lambda lo: notified.append(lo.state))
        await s.get()
        await asyncio.sleep(0)
        assert loadable.state == "hasValue"
        assert loadable.value == 42
        assert notified == ["hasValue"]

    @pytest.mark.asyncio
    async def test_transition_to_error(self):
        s = state(lambda: _fail())
        loadable = s.loadable
        notified = []
        loadable.subscribe(lambda lo: notified.append(lo.state))
        with pytest.raises(ValueError):
            await s.get()
        await asyncio.sleep(0)
        assert loadable.state == "error"
        assert isinstance(loadable.error, ValueError)
        assert notified == ["error"]

    @pytest.mark.asyncio
    async def test_loadable_is_cached(self):
        s = state(lambda: _later(1))
        assert s.loadable is s.loadable

    @pytest.mark.asyncio
    async def test_settled_before_creation_does_not_notify(self):
        s = state(lambda: _later(1, delay=0))
        await s.get()
        loadable = s.loadable
        assert loadable.state == "hasValue"
        notified = []
        loadable.subscribe(lambda lo: notified.append(lo))
        await asyncio.sleep(0.01)
        assert notified == []

    def test_plain_value_has_no_loadable(self):
        assert state(1).loadable is None


class TestMapAfterSettlement:
    @pytest.mark.asyncio
    async def test_map_async_source(self):
        s = state(lambda: _later({"name": "Ada"}))
        name = s.map("name")
        assert await name.get() == "Ada"

    @pytest.mark.asyncio
    async def test_mapper_option_on_async_value(self):
        async def double(value):
            return (await value) * 2

        s = state(lambda: _later(21), map=double)
        assert await s.get() == 42


class TestChanged:
    @pytest.mark.asyncio
    async def test_resolves_on_next_change(self):
        s = state(0)
        waiter = s.changed()
        assert s.changed() is waiter
        assert not waiter.done()
        s.set(0)
        assert not waiter.done()
        s.set(1)
        await asyncio.wait_for(waiter, timeout=1)
        assert s.changed() is not waiter


class TestCancellable:
    @pytest.mark.asyncio
    async def test_cancel_is_advisory(self):
        token = Cancellable(_later("finished"))
        token.cancel()
        assert token.is_cancelled()
        assert await token == "finished"

    @pytest.mark.asyncio
    async def test_child_inherits_cancellation(self):
        parent = Cancellable()
        child = parent.child(_later(1))
        grandchild = child.child()
        assert not grandchild.is_cancelled()
        parent.cancel()
        assert child.is_cancelled()
        assert grandchild.is_cancelled()
        await child

    @pytest.mark.asyncio
    async def test_run_once(self):
        token = Cancellable(_later(1))
        with pytest.raises(StateError):
            token.run(_later(2))
        await token

    def test_await_without_run(self):
        with pytest.raises(StateError, match="nothing to await"):
            Cancellable().future
