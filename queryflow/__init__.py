"""queryflow: observer-driven request lifecycles with Graph ``$batch`` support."""

from queryflow.exceptions import (
    BatchProcessingError,
    BatchStateError,
    HttpRequestError,
    QueryflowError,
    UnhandledErrorEvent,
)
from queryflow.graph import GraphBatch, GraphQueryable, create_batch, graph_default
from queryflow.queryable import Queryable
from queryflow.timeline import AddBehavior, LogLevel, Timeline

__version__ = "0.1.0"

__all__ = [
    "AddBehavior",
    "BatchProcessingError",
    "BatchStateError",
    "GraphBatch",
    "GraphQueryable",
    "HttpRequestError",
    "LogLevel",
    "Queryable",
    "QueryflowError",
    "Timeline",
    "UnhandledErrorEvent",
    "create_batch",
    "graph_default",
]
