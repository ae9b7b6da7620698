"""Encoding and decoding of the JSON batch envelope.

Fragment ids are assigned densely from "1" in registration order, so a
response fragment with id ``n`` belongs to chunk position ``n - 1``
whatever order the server answers in.
"""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import httpx

from queryflow.exceptions import BatchProcessingError
from queryflow.graph.schemas import (
    BatchRequest,
    BatchRequestFragment,
    BatchResponse,
    BatchResponseFragment,
)
from queryflow.timeline import LogLevel

if TYPE_CHECKING:
    from queryflow.graph.batch import PendingOperation

logger = logging.getLogger("batch")

_ABSOLUTE_URL = re.compile(r"^https?://|^//", re.IGNORECASE)
_VERSION_PREFIXES = ("/v1.0/", "/beta/")


def is_url_absolute(url: str) -> bool:
    return bool(_ABSOLUTE_URL.match(url))


def make_url_relative(url: str) -> str:
    """Strip scheme, host and version segment from an absolute url.

    "https://graph.microsoft.com/v1.0/me/drive?$top=5" -> "/me/drive?$top=5"
    """
    if not is_url_absolute(url):
        return url

    for prefix in _VERSION_PREFIXES:
        index = url.find(prefix)
        if index > -1:
            # keep the slash that ends the prefix
            return url[index + len(prefix) - 1 :]

    parts = urlsplit(url)
    path = parts.path or "/"
    return f"{path}?{parts.query}" if parts.query else path


def is_no_content(response: httpx.Response) -> bool:
    """True for the empty-success marker produced for status 204."""
    return response.status_code == 204 and not response.content


@dataclass
class DecodedBatch:
    """Per-item responses in chunk order plus the continuation token.

    A slot is None when the server sent no fragment for that position.
    """

    responses: list[httpx.Response | None] = field(default_factory=list)
    next_link: str | None = None


class BatchCodec:
    """Builds batch requests from pending operations and splits responses."""

    def encode(self, chunk: Sequence[PendingOperation], batch_id: str) -> BatchRequest:
        """Build the aggregate request for one chunk.

        Args:
            chunk: Pending operations in registration order
            batch_id: Identifier of the owning batch (used in log lines)

        Returns:
            BatchRequest whose fragment ids are 1..len(chunk)

        Raises:
            json.JSONDecodeError: If a string body is not valid JSON
        """
        fragments: list[BatchRequestFragment] = []

        for index, operation in enumerate(chunk, start=1):
            init = operation.init
            method = (init.get("method") or "GET").upper()

            operation.timeline.log(
                f"[{batch_id}] ({int(time.time() * 1000)}) Adding request {method} {operation.url} to batch.",
                LogLevel.VERBOSE,
            )

            headers = dict(init.get("headers") or {})
            if method != "GET":
                headers = {key: value for key, value in headers.items() if key.lower() != "content-type"}
                headers["Content-Type"] = "application/json"

            fragment: dict[str, Any] = {
                "id": str(index),
                "method": method,
                "url": make_url_relative(operation.url),
                "headers": headers,
            }

            body = init.get("body")
            if body is not None:
                fragment["body"] = json.loads(body) if isinstance(body, (str, bytes, bytearray)) else body

            fragments.append(BatchRequestFragment(**fragment))

        return BatchRequest(requests=fragments)

    def decode(self, raw: Mapping[str, Any] | BatchResponse, size: int) -> DecodedBatch:
        """Split an aggregate response into per-item responses.

        Args:
            raw: Parsed JSON body of the batch response
            size: Number of operations in the chunk that was sent

        Returns:
            DecodedBatch with ``size`` slots in chunk order

        Raises:
            BatchProcessingError: If the response carries a top-level error
        """
        response = raw if isinstance(raw, BatchResponse) else BatchResponse.model_validate(raw)

        if response.error is not None:
            raise BatchProcessingError(
                error_code=response.error.code,
                error_message=response.error.message,
                inner_error=response.error.inner_error,
            )

        responses: list[httpx.Response | None] = [None] * size

        for fragment in response.responses:
            try:
                position = int(fragment.id) - 1
            except ValueError:
                position = -1

            if not 0 <= position < size:
                logger.warning(
                    "Ignoring batch response fragment outside the chunk",
                    extra={"service": "batch", "metadata": {"id": fragment.id, "chunk_size": size}},
                )
                continue

            responses[position] = self._to_response(fragment)

        return DecodedBatch(responses=responses, next_link=response.next_link)

    @staticmethod
    def _to_response(fragment: BatchResponseFragment) -> httpx.Response:
        headers: dict[str, str] = dict(fragment.headers or {})

        if fragment.status == 204:
            return httpx.Response(204, headers=headers)

        if fragment.body is None:
            return httpx.Response(fragment.status, headers=headers)

        if not any(key.lower() == "content-type" for key in headers):
            headers["Content-Type"] = "application/json"
        return httpx.Response(
            fragment.status,
            headers=headers,
            content=json.dumps(fragment.body).encode("utf-8"),
        )


__all__ = [
    "BatchCodec",
    "DecodedBatch",
    "is_no_content",
    "is_url_absolute",
    "make_url_relative",
]
