"""Queryable: the request lifecycle built on a timeline.

Moments, in the order ``execute`` runs them:

    pre(url, init, result)       async_reduce; a non-None result skips to data
    auth(url, init)              async_reduce
    send(url, init) -> response  request (first observer only)
    parse(url, response, result) async_reduce
    post(url, result)            async_reduce
    data(result)                 broadcast
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, TypedDict
from uuid import uuid4

from queryflow.infrastructure.logging import request_id_var
from queryflow.timeline import (
    ERROR_MOMENT,
    LogLevel,
    Moment,
    Timeline,
    async_reduce,
    broadcast,
    request,
)

logger = logging.getLogger("queryable")


class RequestInit(TypedDict, total=False):
    """Transmission parameters handed to the send moment."""

    method: str
    headers: dict[str, str]
    body: str | bytes | None


DEFAULT_MOMENTS: dict[str, Moment] = {
    "pre": async_reduce(),
    "auth": async_reduce(),
    "send": request(),
    "parse": async_reduce(),
    "post": async_reduce(),
    "data": broadcast(),
}


def combine(*parts: str | None) -> str:
    """Join url parts with single slashes, skipping empty parts."""
    cleaned = [p.strip("/") for p in parts[1:] if p and p.strip("/")]
    head = (parts[0] or "").rstrip("/") if parts else ""
    return "/".join([head, *cleaned]) if head else "/".join(cleaned)


class Queryable(Timeline):
    """A request target plus the observers that carry a request to it.

    Built from a url string, a queryable owns a fresh registry. Built from
    another queryable, it shares that queryable's registry until it changes
    its own observers.

    Usage:
        users = Queryable("https://graph.microsoft.com/v1.0", "users")
        users.using(graph_default())
        result = await users.execute()
    """

    moments_definition: dict[str, Moment] = DEFAULT_MOMENTS

    def __init__(self, base: str | Queryable, path: str | None = None) -> None:
        if isinstance(base, Queryable):
            super().__init__(self.moments_definition, base.observers)
            self._url = combine(base.url, path) if path else base.url
        else:
            super().__init__(self.moments_definition)
            self._url = combine(base, path) if path else base
        self._execute_callbacks: list[Callable[[asyncio.Task[Any]], None]] = []

    @property
    def url(self) -> str:
        return self._url

    def to_url(self) -> str:
        return self._url

    def execute(self, init: RequestInit | None = None) -> asyncio.Task[Any]:
        """Start the request lifecycle on the running loop.

        The lifecycle is scheduled, not run inline, so every caller issuing
        requests in the same tick reaches ``send`` before any of them
        completes.

        Args:
            init: Method, headers and body; defaults to a bare GET

        Returns:
            Task resolving to the parsed result
        """
        request_init: RequestInit = {"method": "GET", **(init or {})}
        request_init["headers"] = dict(request_init.get("headers") or {})
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(request_init))
        for callback in list(self._execute_callbacks):
            callback(task)
        return task

    def add_execute_callback(self, callback: Callable[[asyncio.Task[Any]], None]) -> None:
        """Call ``callback(task)`` each time ``execute`` starts a lifecycle task.

        Callbacks belong to this instance only; children built from it do
        not inherit them.
        """
        self._execute_callbacks.append(callback)

    async def _run(self, init: RequestInit) -> Any:
        request_id = str(uuid4())
        token = request_id_var.set(request_id)

        def log(message: str, level: LogLevel = LogLevel.VERBOSE) -> None:
            self.log(f"[id:{request_id}] {message}", level)

        try:
            log("Beginning request")

            url, init, result = await self.invoke("pre", self.to_url(), init, None)

            log(f"Url: {url}", LogLevel.INFO)

            if result is not None:
                log("Result returned from pre, emitting data")
                self.invoke("data", result)
                return result

            log("Emitting auth")
            url, init = await self.invoke("auth", url, init)

            log("Emitting send")
            response = await self.invoke("send", url, init)

            log("Emitting parse")
            url, response, result = await self.invoke("parse", url, response, result)

            log("Emitting post")
            url, result = await self.invoke("post", url, result)

            log("Emitting data")
            self.invoke("data", result)
            return result

        except Exception as exc:
            log(f'Emitting error: "{exc}"', LogLevel.ERROR)
            logger.debug(
                "Request failed",
                extra={"service": "queryable", "url": self._url, "error": str(exc)},
            )
            if self.list_observers(ERROR_MOMENT):
                self.invoke(ERROR_MOMENT, exc)
            raise

        finally:
            log("Finished request")
            request_id_var.reset(token)


__all__ = [
    "DEFAULT_MOMENTS",
    "Queryable",
    "RequestInit",
    "combine",
]
