"""Reusable behaviors for queryables.

A behavior is a function taking a timeline and returning it after
subscribing observers, applied with ``queryable.using(...)``.
"""

from __future__ import annotations

import inspect
import json
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

import httpx

from queryflow.config import get_settings
from queryflow.exceptions import HttpRequestError
from queryflow.queryable.queryable import RequestInit
from queryflow.timeline import AddBehavior, LogLevel, Timeline, TimelinePipe

logger = logging.getLogger("queryable")

ParseImpl = Callable[[httpx.Response], Any]

_LOGGING_LEVELS = {
    LogLevel.VERBOSE: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


def inject_headers(headers: Mapping[str, str], prepend: bool = False) -> TimelinePipe:
    """Merge ``headers`` into every request's init during ``pre``."""

    def pre(timeline: Timeline, url: str, init: RequestInit, result: Any) -> tuple[str, RequestInit, Any]:
        init["headers"] = {**(init.get("headers") or {}), **headers}
        return url, init, result

    def behavior(instance: Timeline) -> Timeline:
        mode = AddBehavior.PREPEND if prepend else AddBehavior.APPEND
        return instance.subscribe("pre", pre, mode)

    return behavior


def httpx_send(client: httpx.AsyncClient | None = None, timeout: float | None = None) -> TimelinePipe:
    """Send requests with httpx.

    Args:
        client: Shared client; when omitted a client is opened per request
        timeout: Per-request timeout, defaults to ``request_timeout_seconds``
    """

    async def send(timeline: Timeline, url: str, init: RequestInit) -> httpx.Response:
        method = init.get("method", "GET")
        effective_timeout = timeout if timeout is not None else get_settings().request_timeout_seconds
        start_time = time.time()

        kwargs: dict[str, Any] = {
            "headers": init.get("headers") or {},
            "content": init.get("body"),
            "timeout": effective_timeout,
        }
        if client is not None:
            response = await client.request(method, str(url), **kwargs)
        else:
            async with httpx.AsyncClient() as http:
                response = await http.request(method, str(url), **kwargs)

        logger.debug(
            "Request sent",
            extra={
                "service": "queryable",
                "method": method,
                "url": str(url),
                "status": response.status_code,
                "duration_ms": int((time.time() - start_time) * 1000),
            },
        )
        return response

    def behavior(instance: Timeline) -> Timeline:
        return instance.subscribe("send", send, AddBehavior.REPLACE)

    return behavior


def parse_binder_with_error_check(impl: ParseImpl) -> TimelinePipe:
    """Replace ``parse`` with a status check followed by ``impl(response)``.

    Raises:
        HttpRequestError: From the parse moment for any non-2xx response
    """

    async def parse(
        timeline: Timeline,
        url: str,
        response: httpx.Response,
        result: Any,
    ) -> tuple[str, httpx.Response, Any]:
        if not response.is_success:
            raise HttpRequestError.from_response(response)
        value = impl(response)
        if inspect.isawaitable(value):
            value = await value
        return url, response, value

    def behavior(instance: Timeline) -> Timeline:
        return instance.subscribe("parse", parse, AddBehavior.REPLACE)

    return behavior


def _json_or_none(response: httpx.Response) -> Any:
    if response.status_code == 204 or not response.content:
        return None
    return response.json()


def default_parse() -> TimelinePipe:
    """JSON body parse; 204 and empty bodies parse to None."""
    return parse_binder_with_error_check(_json_or_none)


def json_body(value: Any, init: RequestInit | None = None) -> RequestInit:
    """Build a request init carrying ``value`` serialized as JSON."""
    request_init: RequestInit = {**(init or {})}
    request_init["body"] = json.dumps(value)
    return request_init


def copy_observers(source: Timeline, mode: AddBehavior = AddBehavior.REPLACE) -> TimelinePipe:
    """Copy every observer of ``source`` onto the instance.

    With ``REPLACE`` each copied moment ends up holding exactly the source's
    observers; ``APPEND`` and ``PREPEND`` keep the instance's own observers
    after or before them.
    """
    mode = AddBehavior(mode)

    def behavior(instance: Timeline) -> Timeline:
        for moment in source.observers:
            if moment not in instance.moments:
                continue
            observers = source.list_observers(moment)
            if not observers:
                continue
            if mode is AddBehavior.PREPEND:
                for observer in reversed(observers):
                    instance.subscribe(moment, observer, AddBehavior.PREPEND)
            else:
                first, *rest = observers
                instance.subscribe(moment, first, mode)
                for observer in rest:
                    instance.subscribe(moment, observer, AddBehavior.APPEND)
        return instance

    return behavior


def log_to_logger(target: logging.Logger | None = None, level: LogLevel = LogLevel.INFO) -> TimelinePipe:
    """Forward ``log`` moment messages at or above ``level`` to a stdlib logger."""
    target = target or logger

    def observer(timeline: Timeline, message: str, message_level: int) -> None:
        if message_level < level or message_level >= LogLevel.OFF:
            return
        if message_level >= LogLevel.ERROR:
            python_level = logging.ERROR
        else:
            python_level = _LOGGING_LEVELS[LogLevel(message_level)]
        target.log(
            python_level,
            message,
            extra={"service": "queryable", "url": getattr(timeline, "url", None)},
        )

    def behavior(instance: Timeline) -> Timeline:
        return instance.subscribe("log", observer)

    return behavior


__all__ = [
    "inject_headers",
    "httpx_send",
    "parse_binder_with_error_check",
    "default_parse",
    "json_body",
    "copy_observers",
    "log_to_logger",
]
