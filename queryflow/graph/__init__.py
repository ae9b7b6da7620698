"""Graph endpoint queryables and ``$batch`` request batching."""

from queryflow.graph.batch import (
    BatchState,
    BatchTransport,
    GraphBatch,
    PendingOperation,
    QueryableBatchTransport,
    create_batch,
)
from queryflow.graph.codec import (
    BatchCodec,
    DecodedBatch,
    is_no_content,
    is_url_absolute,
    make_url_relative,
)
from queryflow.graph.queryable import (
    BatchQueryable,
    GraphQueryable,
    batch_endpoint,
    batch_parse,
    graph_default,
    graph_post,
)
from queryflow.graph.schemas import (
    BatchErrorDetail,
    BatchRequest,
    BatchRequestFragment,
    BatchResponse,
    BatchResponseFragment,
)

__all__ = [
    # Batching
    "BatchState",
    "BatchTransport",
    "GraphBatch",
    "PendingOperation",
    "QueryableBatchTransport",
    "create_batch",
    # Codec
    "BatchCodec",
    "DecodedBatch",
    "is_no_content",
    "is_url_absolute",
    "make_url_relative",
    # Queryables
    "BatchQueryable",
    "GraphQueryable",
    "batch_endpoint",
    "batch_parse",
    "graph_default",
    "graph_post",
    # Schemas
    "BatchErrorDetail",
    "BatchRequest",
    "BatchRequestFragment",
    "BatchResponse",
    "BatchResponseFragment",
]
