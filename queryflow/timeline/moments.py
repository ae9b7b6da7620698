"""Dispatch policies for timeline moments.

Each factory returns a dispatch callable with the shape
``dispatch(timeline, observers, *args)``. A timeline declares its moments
as a mapping of name to one of these callables.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from queryflow.timeline.observers import Observer
    from queryflow.timeline.timeline import Timeline

logger = logging.getLogger("timeline")

Moment = Callable[..., Any]

_pending_observer_tasks: set[asyncio.Task[Any]] = set()


def _schedule(result: Awaitable[Any]) -> None:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        if inspect.iscoroutine(result):
            result.close()
        logger.warning(
            "Async observer dropped: no running event loop",
            extra={"service": "timeline"},
        )
        return

    task = asyncio.ensure_future(result, loop=loop)
    _pending_observer_tasks.add(task)
    task.add_done_callback(_pending_observer_tasks.discard)


async def wait_for_observer_tasks() -> None:
    """Await any async observers scheduled by broadcast dispatch."""

    if not _pending_observer_tasks:
        return

    pending = list(_pending_observer_tasks)
    try:
        await asyncio.gather(*pending, return_exceptions=True)
    finally:
        for task in pending:
            _pending_observer_tasks.discard(task)


def broadcast() -> Moment:
    """Call every observer in order and return nothing.

    Async observers are started as tasks in invocation order; their
    completion is not awaited.
    """

    def dispatch(timeline: Timeline, observers: Sequence[Observer], *args: Any) -> None:
        for observer in list(observers):
            result = observer(timeline, *args)
            if inspect.isawaitable(result):
                _schedule(result)

    return dispatch


def request() -> Moment:
    """First-result policy: only the first observer is called."""

    async def dispatch(timeline: Timeline, observers: Sequence[Observer], *args: Any) -> Any:
        if not observers:
            return None
        result = observers[0](timeline, *args)
        if inspect.isawaitable(result):
            result = await result
        return result

    return dispatch


def _as_args(result: Any) -> tuple[Any, ...]:
    if isinstance(result, (tuple, list)):
        return tuple(result)
    raise TypeError(
        f"Reducing observers must return the argument tuple, got {type(result).__name__}"
    )


def reduce() -> Moment:
    """Thread the argument tuple through each observer synchronously."""

    def dispatch(timeline: Timeline, observers: Sequence[Observer], *args: Any) -> tuple[Any, ...]:
        for observer in list(observers):
            args = _as_args(observer(timeline, *args))
        return args

    return dispatch


def async_reduce() -> Moment:
    """Thread the argument tuple through each observer, awaiting each in turn."""

    async def dispatch(timeline: Timeline, observers: Sequence[Observer], *args: Any) -> tuple[Any, ...]:
        for observer in list(observers):
            result = observer(timeline, *args)
            if inspect.isawaitable(result):
                result = await result
            args = _as_args(result)
        return args

    return dispatch


__all__ = [
    "Moment",
    "broadcast",
    "request",
    "reduce",
    "async_reduce",
    "wait_for_observer_tasks",
]
