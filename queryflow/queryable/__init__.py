"""Queryable request pipeline and its standard behaviors."""

from queryflow.queryable.behaviors import (
    copy_observers,
    default_parse,
    httpx_send,
    inject_headers,
    json_body,
    log_to_logger,
    parse_binder_with_error_check,
)
from queryflow.queryable.queryable import DEFAULT_MOMENTS, Queryable, RequestInit, combine

__all__ = [
    # Pipeline
    "DEFAULT_MOMENTS",
    "Queryable",
    "RequestInit",
    "combine",
    # Behaviors
    "copy_observers",
    "default_parse",
    "httpx_send",
    "inject_headers",
    "json_body",
    "log_to_logger",
    "parse_binder_with_error_check",
]
