"""Pydantic request/response schemas for the tagserve API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ClassifyUrlRequest(BaseModel):
    """Request body for URL-based classification."""

    url: str = Field(min_length=1, description="HTTP(S) URL of the image to classify")


class TagResponse(BaseModel):
    """Minimal classification result."""

    tag: str
    probability: float | None


class ClassificationResponse(TagResponse):
    """Classification result with per-stage durations in milliseconds."""

    time_url_fetch: int = Field(default=0, ge=0)
    time_image_load: int = Field(default=0, ge=0)
    time_image_resize: int = Field(default=0, ge=0)
    time_session_run: int = Field(default=0, ge=0)


class HealthResponse(BaseModel):
    """Health check response."""

    model_config = ConfigDict(protected_namespaces=())

    status: str = "ok"
    gpu: bool
    model_path: str
    labels: int | None = Field(description="Number of cached labels, None until first read")
    concurrent_requests: int
    queue_depth: int


class ModelResponse(BaseModel):
    """Information about the loaded model."""

    model_config = ConfigDict(protected_namespaces=())

    model_path: str
    input_name: str
    output_name: str
    graph_inputs: list[str]
    graph_outputs: list[str]
    providers: list[str]
    tags_path: str


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
