"""Loadable and cancellable decoration of pending values.

A state whose evaluator returns an awaitable holds a ``Deferred``: the
awaitable scheduled on the running loop. ``Deferred.loadable`` describes its
lifecycle (loading -> hasValue | error) and notifies subscribers once, from
the loop's done callback.

``Cancellable`` attaches an advisory cancel flag to a running awaitable.
Cancellation is cooperative: code that drains steps checks ``is_cancelled()``
between steps, and an in-flight step always runs to completion.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Coroutine, Generator, Generic, TypeVar

from stately.emitter import Emitter, Unsubscribe
from stately.errors import StateError

T = TypeVar("T")

LOADING = "loading"
HAS_VALUE = "hasValue"
ERROR = "error"

_DONE = "done"


def _schedule(awaitable: Awaitable[T]) -> asyncio.Future[T]:
    if isinstance(awaitable, (Deferred, Cancellable)):
        return awaitable.future
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise
    return asyncio.ensure_future(awaitable, loop=loop)


def start_eagerly(coro: Coroutine[Any, Any, T]) -> Awaitable[T]:
    """Run coro up to its first suspension in the caller's context.

    Reads made before the first ``await`` see the caller's evaluation frame.
    The returned awaitable resumes coro from there; whoever awaits it supplies
    the context for the remaining steps.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        coro.close()
        raise
    return _Started(coro)


class _Started(Generic[T]):
    __slots__ = ("_coro", "_yielded", "_finished", "_result", "_error")

    def __init__(self, coro: Coroutine[Any, Any, T]) -> None:
        self._coro = coro
        self._yielded: Any = None
        self._finished = False
        self._result: T | None = None
        self._error: BaseException | None = None
        try:
            self._yielded = coro.send(None)
        except StopIteration as stop:
            self._finished, self._result = True, stop.value
        except Exception as exc:
            self._finished, self._error = True, exc

    def __await__(self) -> Generator[Any, Any, T]:
        if self._finished:
            if self._error is not None:
                raise self._error
            return self._result
        coro, yielded = self._coro, self._yielded
        while True:
            try:
                sent = yield yielded
            except GeneratorExit:
                coro.close()
                raise
            except BaseException as exc:
                try:
                    yielded = coro.throw(exc)
                except StopIteration as stop:
                    return stop.value
                continue
            try:
                yielded = coro.send(sent)
            except StopIteration as stop:
                return stop.value


class Loadable(Generic[T]):
    """Observable lifecycle of a pending value."""

    __slots__ = ("_state", "_value", "_error", "_emitter")

    def __init__(self, future: asyncio.Future[T]) -> None:
        self._state = LOADING
        self._value: T | None = None
        self._error: BaseException | None = None
        self._emitter = Emitter()
        if future.done():
            # Nobody can have subscribed yet; start settled, silently.
            self._settle(future)
        else:
            future.add_done_callback(self._on_done)

    def _settle(self, future: asyncio.Future[T]) -> None:
        if future.cancelled():
            self._state, self._error = ERROR, asyncio.CancelledError()
        elif future.exception() is not None:
            self._state, self._error = ERROR, future.exception()
        else:
            self._state, self._value = HAS_VALUE, future.result()

    def _on_done(self, future: asyncio.Future[T]) -> None:
        self._settle(future)
        self._emitter.emit(_DONE, self)

    @property
    def state(self) -> str:
        return self._state

    @property
    def value(self) -> T | None:
        return self._value

    @property
    def error(self) -> BaseException | None:
        return self._error

    def subscribe(self, listener: Callable[[Loadable[T]], Any]) -> Unsubscribe:
        """Call listener(loadable) when the pending value settles."""
        return self._emitter.on(_DONE, listener)

    def __repr__(self) -> str:
        if self._state == HAS_VALUE:
            return f"Loadable(hasValue, {self._value!r})"
        if self._state == ERROR:
            return f"Loadable(error, {self._error!r})"
        return "Loadable(loading)"


class Deferred(Generic[T]):
    """A pending value: an awaitable scheduled on the running loop.

    Can be awaited any number of times.
    """

    __slots__ = ("_future", "_loadable")

    def __init__(self, awaitable: Awaitable[T]) -> None:
        self._future = _schedule(awaitable)
        self._loadable: Loadable[T] | None = None

    @property
    def future(self) -> asyncio.Future[T]:
        return self._future

    @property
    def loadable(self) -> Loadable[T]:
        if self._loadable is None:
            self._loadable = Loadable(self._future)
        return self._loadable

    def done(self) -> bool:
        return self._future.done()

    def __await__(self) -> Generator[Any, None, T]:
        return self._future.__await__()

    def __repr__(self) -> str:
        state = "done" if self._future.done() else "pending"
        return f"Deferred({state})"


class Cancellable(Generic[T]):
    """An awaitable carrying a cooperative cancellation token.

    A token is cancelled when it or any ancestor is cancelled. Create the token
    first and ``run()`` the awaitable later when the awaitable needs to consult
    its own token.
    """

    __slots__ = ("_future", "_parent", "_cancelled")

    def __init__(
        self,
        awaitable: Awaitable[T] | None = None,
        *,
        parent: Cancellable | None = None,
    ) -> None:
        self._future: asyncio.Future[T] | None = None
        self._parent = parent
        self._cancelled = False
        if awaitable is not None:
            self.run(awaitable)

    def run(self, awaitable: Awaitable[T]) -> Cancellable[T]:
        if self._future is not None:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise StateError("Cancellable is already running")
        self._future = _schedule(awaitable)
        return self

    def child(self, awaitable: Awaitable[Any] | None = None) -> Cancellable:
        return Cancellable(awaitable, parent=self)

    def cancel(self) -> None:
        """Request cancellation. Work already in flight is not interrupted."""
        self._cancelled = True

    def is_cancelled(self) -> bool:
        if self._cancelled:
            return True
        return self._parent is not None and self._parent.is_cancelled()

    @property
    def future(self) -> asyncio.Future[T]:
        if self._future is None:
            raise StateError("Cancellable has nothing to await; call run() first")
        return self._future

    def done(self) -> bool:
        return self._future is not None and self._future.done()

    def __await__(self) -> Generator[Any, None, T]:
        return self.future.__await__()

    def __repr__(self) -> str:
        state = "cancelled" if self.is_cancelled() else "active"
        return f"Cancellable({state})"
