"""Request batching for Graph queryables.

Queryables registered with a batch do not transmit when executed. Their
``send`` moment is replaced by an observer that queues the request and
waits; ``flush()`` then sends the queue in ``$batch`` chunks and settles
every waiting caller in the order the requests were registered.

Usage:
    batch = GraphBatch(graph)
    me = batch.register(GraphQueryable(graph, "me"))
    drive = batch.register(GraphQueryable(graph, "me/drive"))

    me_task, drive_task = me.execute(), drive.execute()
    await batch.flush()
    profile, drive_info = await me_task, await drive_task
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, TypeVar
from uuid import uuid4

import httpx

from queryflow.config import get_settings
from queryflow.exceptions import BatchProcessingError, BatchStateError, HttpRequestError
from queryflow.graph.codec import BatchCodec
from queryflow.graph.queryable import BatchQueryable, graph_post
from queryflow.graph.schemas import BatchRequest
from queryflow.infrastructure.logging import batch_id_var
from queryflow.queryable import Queryable, RequestInit, inject_headers, json_body
from queryflow.timeline import Timeline

logger = logging.getLogger("batch")

Q = TypeVar("Q", bound=Queryable)


@dataclass
class PendingOperation:
    """A request captured at ``send``, waiting for its batch to flush.

    Attributes:
        timeline: The queryable that issued the request
        url: Absolute request url
        init: Method, headers and body
        future: Settled exactly once with the item's response or error
    """

    timeline: Timeline
    url: str
    init: RequestInit
    future: asyncio.Future[httpx.Response]

    def resolve(self, response: httpx.Response) -> None:
        # a caller cancelled before transmission simply never hears back
        if not self.future.done():
            self.future.set_result(response)

    def reject(self, error: BaseException) -> None:
        if not self.future.done():
            self.future.set_exception(error)


class BatchTransport(Protocol):
    """Sends one aggregate request and returns the parsed JSON response."""

    async def send(self, request: BatchRequest) -> Mapping[str, Any]:
        ...


class QueryableBatchTransport:
    """Posts aggregate requests through a :class:`BatchQueryable` of ``base``."""

    def __init__(self, base: Queryable) -> None:
        self._base = base

    async def send(self, request: BatchRequest) -> Mapping[str, Any]:
        query = BatchQueryable(self._base)
        query.using(
            inject_headers({
                "Accept": "application/json",
                "Content-Type": "application/json",
            })
        )
        return await graph_post(query, json_body(request.to_payload()))


class BatchState(str, Enum):
    """Lifecycle of a batch."""

    OPEN = "open"  # accepting registrations
    FLUSHING = "flushing"  # waiting for registered callers to reach send
    DRAINING = "draining"  # sending chunks
    COMPLETE = "complete"


class GraphBatch:
    """Coalesces queryable requests into ``$batch`` calls.

    Chunks are sent one after another; every operation of chunk N is
    settled before chunk N+1 is transmitted. A batch is flushed once.
    """

    def __init__(
        self,
        base: Queryable | None = None,
        max_requests: int | None = None,
        transport: BatchTransport | None = None,
        codec: BatchCodec | None = None,
    ) -> None:
        """Initialize the batch.

        Args:
            base: Queryable whose observers carry the aggregate request
            max_requests: Chunk size, defaults to ``batch_max_requests``
            transport: Sender for aggregate requests; defaults to posting
                through ``base``
            codec: Envelope codec
        """
        if transport is None:
            if base is None:
                raise ValueError("GraphBatch needs a base queryable or a transport")
            transport = QueryableBatchTransport(base)

        self.max_requests = max_requests if max_requests is not None else get_settings().batch_max_requests
        if self.max_requests < 1:
            raise ValueError(f"max_requests must be positive, got {self.max_requests}")

        self.batch_id = str(uuid4())
        self._transport = transport
        self._codec = codec or BatchCodec()
        self._requests: list[PendingOperation] = []
        self._registrations: dict[asyncio.Task[Any], asyncio.Event] = {}
        self._state = BatchState.OPEN

    @property
    def state(self) -> BatchState:
        return self._state

    @property
    def pending_count(self) -> int:
        return len(self._requests)

    def register(self, instance: Q) -> Q:
        """Route ``instance``'s requests through this batch.

        Replaces the instance's ``send`` observer; each later ``execute``
        queues its request here instead of transmitting it. ``flush`` waits
        for every execution started before it, until that execution either
        reaches ``send`` or finishes. Registered instances that are never
        executed do not hold up ``flush``.

        Returns:
            The same instance

        Raises:
            BatchStateError: If the batch has started flushing
        """
        if self._state is not BatchState.OPEN:
            raise BatchStateError(self.batch_id, self._state.value, "register with")

        def track(task: asyncio.Task[Any]) -> None:
            registered = asyncio.Event()
            self._registrations[task] = registered
            # an execution failing before send still releases flush
            task.add_done_callback(lambda _: registered.set())

        async def send(timeline: Timeline, url: str, init: RequestInit) -> httpx.Response:
            if self._state in (BatchState.DRAINING, BatchState.COMPLETE):
                raise BatchStateError(self.batch_id, self._state.value, "queue a request on")

            future: asyncio.Future[httpx.Response] = asyncio.get_running_loop().create_future()
            self._requests.append(PendingOperation(timeline, str(url), init, future))

            registered = self._registrations.get(asyncio.current_task())
            if registered is not None:
                registered.set()
            return await future

        instance.add_execute_callback(track)
        instance.on("send").replace(send)
        return instance

    async def flush(self) -> None:
        """Send every queued request and settle each caller.

        Waits until every started execution has reached ``send`` or ended,
        then sends chunks of ``max_requests`` in registration order.

        Raises:
            BatchStateError: If the batch was already flushed
            json.JSONDecodeError: If a request body is malformed; every
                operation not yet sent is rejected with the same error
        """
        if self._state is not BatchState.OPEN:
            raise BatchStateError(self.batch_id, self._state.value, "flush")

        self._state = BatchState.FLUSHING
        token = batch_id_var.set(self.batch_id)

        try:
            await asyncio.gather(*(registered.wait() for registered in list(self._registrations.values())))
            self._state = BatchState.DRAINING

            if not self._requests:
                logger.debug(
                    "Batch empty, nothing to send",
                    extra={"service": "batch", "batch_id": self.batch_id},
                )
                return

            working = list(self._requests)
            chunk_count = math.ceil(len(working) / self.max_requests)

            logger.info(
                "Flushing batch",
                extra={
                    "service": "batch",
                    "batch_id": self.batch_id,
                    "request_count": len(working),
                    "chunk_size": self.max_requests,
                    "metadata": {"chunk_count": chunk_count},
                },
            )

            for chunk_index, start in enumerate(range(0, len(working), self.max_requests)):
                chunk = working[start : start + self.max_requests]

                try:
                    request = self._codec.encode(chunk, self.batch_id)
                except Exception as exc:
                    for operation in working[start:]:
                        operation.reject(exc)
                    raise

                await self._send_chunk(chunk_index, chunk, request)

        finally:
            self._state = BatchState.COMPLETE
            batch_id_var.reset(token)

    async def _send_chunk(
        self,
        chunk_index: int,
        chunk: list[PendingOperation],
        request: BatchRequest,
    ) -> None:
        start_time = time.time()

        try:
            raw = await self._transport.send(request)
            decoded = self._codec.decode(raw, len(chunk))
        except Exception as exc:
            logger.error(
                "Batch chunk failed",
                extra={
                    "service": "batch",
                    "batch_id": self.batch_id,
                    "chunk_index": chunk_index,
                    "chunk_size": len(chunk),
                    "error": str(exc),
                },
                exc_info=True,
            )
            for operation in chunk:
                operation.reject(exc)
            return

        logger.info(
            "Batch chunk sent",
            extra={
                "service": "batch",
                "batch_id": self.batch_id,
                "chunk_index": chunk_index,
                "chunk_size": len(chunk),
                "duration_ms": int((time.time() - start_time) * 1000),
                "metadata": {"next_link": decoded.next_link} if decoded.next_link else None,
            },
        )

        # settle strictly in registration order
        for position, (operation, response) in enumerate(zip(chunk, decoded.responses), start=1):
            if response is None:
                operation.reject(
                    BatchProcessingError(
                        error_code=None,
                        error_message=f"No response returned for request {position} of the chunk",
                        details={"batch_id": self.batch_id, "chunk_index": chunk_index},
                    )
                )
            elif response.is_success:
                operation.resolve(response)
            else:
                operation.reject(HttpRequestError.from_response(response))


def create_batch(
    base: Queryable,
    max_requests: int | None = None,
    transport: BatchTransport | None = None,
) -> tuple[Callable[[Q], Q], Callable[[], Awaitable[None]]]:
    """Functional form: returns ``(register, flush)`` for a new batch."""
    batch = GraphBatch(base, max_requests=max_requests, transport=transport)
    return batch.register, batch.flush


__all__ = [
    "BatchState",
    "BatchTransport",
    "GraphBatch",
    "PendingOperation",
    "QueryableBatchTransport",
    "create_batch",
]
