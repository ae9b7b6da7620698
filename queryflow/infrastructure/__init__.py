"""Infrastructure helpers shared across queryflow."""

from queryflow.infrastructure.logging import (
    NamespaceFilter,
    StructuredFormatter,
    batch_id_var,
    clear_request_context,
    get_logger,
    request_id_var,
    set_request_context,
    setup_logging,
)

__all__ = [
    "StructuredFormatter",
    "NamespaceFilter",
    "setup_logging",
    "get_logger",
    "set_request_context",
    "clear_request_context",
    "request_id_var",
    "batch_id_var",
]
