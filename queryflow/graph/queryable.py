"""Graph flavoured queryables and the ``$batch`` endpoint."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit

import httpx

from queryflow.config import get_settings
from queryflow.queryable import (
    Queryable,
    RequestInit,
    copy_observers,
    default_parse,
    httpx_send,
    inject_headers,
    parse_binder_with_error_check,
)
from queryflow.timeline import AddBehavior, TimelinePipe

GRAPH_VERSIONS = ("v1.0", "beta")
DEFAULT_GRAPH_VERSION = "v1.0"


class GraphQueryable(Queryable):
    """Queryable rooted at the Graph endpoint.

    Usage:
        graph = GraphQueryable().using(graph_default())
        me = GraphQueryable(graph, "me")
        profile = await me.execute()
    """

    def __init__(self, base: str | Queryable | None = None, path: str | None = None) -> None:
        if base is None:
            base = get_settings().graph_base_url
        super().__init__(base, path)


def batch_endpoint(url: str) -> str:
    """``$batch`` url for the api version ``url`` belongs to (v1.0 by default)."""
    parts = urlsplit(url)
    segments = [segment for segment in parts.path.split("/") if segment]
    version = DEFAULT_GRAPH_VERSION
    if segments and segments[0].lower() in GRAPH_VERSIONS:
        version = segments[0].lower()
    return f"{parts.scheme}://{parts.netloc}/{version}/$batch"


def batch_parse() -> TimelinePipe:
    """Parse the batch response body as JSON after the status check."""
    return parse_binder_with_error_check(lambda response: response.json())


class BatchQueryable(GraphQueryable):
    """Posts aggregate requests for a batch created from ``base``.

    Carries every observer of ``base`` (auth, send, logging...) but always
    parses with :func:`batch_parse`.
    """

    def __init__(self, base: Queryable) -> None:
        self.request_base_url = batch_endpoint(base.url)
        super().__init__(self.request_base_url)
        self.using(copy_observers(base, AddBehavior.REPLACE), batch_parse())


def graph_default(client: httpx.AsyncClient | None = None, timeout: float | None = None) -> TimelinePipe:
    """Standard JSON headers, httpx transport and JSON parsing."""

    def behavior(instance: Queryable) -> Queryable:
        return instance.using(
            inject_headers({"Accept": "application/json", "Content-Type": "application/json"}),
            httpx_send(client, timeout),
            default_parse(),
        )

    return behavior


async def graph_post(queryable: Queryable, init: RequestInit | None = None) -> Any:
    """Execute ``queryable`` as a POST."""
    request_init: RequestInit = {**(init or {})}
    request_init["method"] = "POST"
    return await queryable.execute(request_init)


__all__ = [
    "BatchQueryable",
    "GraphQueryable",
    "batch_endpoint",
    "batch_parse",
    "graph_default",
    "graph_post",
]
