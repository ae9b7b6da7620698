"""Pydantic schemas for the JSON batch envelope."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class BatchRequestFragment(BaseModel):
    """One request inside an aggregate batch request."""

    id: str
    method: str
    url: str  # relative to the version root, e.g. "/me/drive"
    headers: dict[str, str] | None = None
    body: Any = None


class BatchRequest(BaseModel):
    """Aggregate request posted to ``$batch``."""

    requests: list[BatchRequestFragment] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        """Wire form; absent headers and bodies are omitted."""
        return self.model_dump(exclude_none=True)


class BatchErrorDetail(BaseModel):
    """Top-level error reported for the whole batch."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    code: str | None = None
    message: str = ""
    inner_error: dict[str, Any] | None = Field(default=None, alias="innerError")


class BatchResponseFragment(BaseModel):
    """One response inside an aggregate batch response."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int | str
    status: int
    status_text: str | None = Field(default=None, alias="statusText")
    headers: dict[str, str] | list[list[str]] | None = None
    body: Any = None


class BatchResponse(BaseModel):
    """Aggregate response returned by ``$batch``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    error: BatchErrorDetail | None = None
    responses: list[BatchResponseFragment] = Field(default_factory=list)
    next_link: str | None = Field(
        default=None,
        validation_alias=AliasChoices("nextLink", "@odata.nextLink", "next_link"),
    )


__all__ = [
    "BatchRequestFragment",
    "BatchRequest",
    "BatchErrorDetail",
    "BatchResponseFragment",
    "BatchResponse",
]
