"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from tagserve.api.middleware import get_settings_from_request, read_image_body, verify_api_key
from tagserve.api.schemas import (
    ClassificationResponse,
    ClassifyUrlRequest,
    ErrorResponse,
    HealthResponse,
    ModelResponse,
    TagResponse,
)
from tagserve.ml.errors import (
    ClassifyError,
    FetchError,
    InvalidImageError,
)

if TYPE_CHECKING:
    from tagserve.ml.image_classifier import ImageClassifier
    from tagserve.ml.inference import InferencePool

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


def _get_classifier(request: Request) -> ImageClassifier:
    classifier: ImageClassifier = request.app.state.classifier
    return classifier


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _status_for(exc: ClassifyError) -> int:
    if isinstance(exc, InvalidImageError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, FetchError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _failure(exc: ClassifyError) -> JSONResponse:
    code = _status_for(exc)
    logger.warning("Classification failure (%d): %s", code, exc)
    return JSONResponse(status_code=code, content={"detail": f"Classification failure: '{exc}'"})


def _busy() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Inference queue is full, try again later"},
    )


@router.post(
    "/classify",
    response_model=ClassificationResponse,
    responses={**_ERROR_RESPONSES, status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse}},
    summary="Classify raw image bytes",
)
async def classify(
    request: Request,
    body: Annotated[bytes, Depends(read_image_body)],
) -> ClassificationResponse | JSONResponse:
    """Classify the request body, interpreted as an encoded image."""
    classifier = _get_classifier(request)
    pool = _get_inference_pool(request)
    try:
        result = await pool.run(classifier.classify_from_raw, body)
    except TimeoutError:
        return _busy()
    except ClassifyError as exc:
        return _failure(exc)
    return ClassificationResponse(**result.to_dict())


@router.post(
    "/classify-url",
    response_model=TagResponse,
    responses={**_ERROR_RESPONSES, status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse}},
    summary="Fetch an image by URL and classify it",
)
async def classify_url(request: Request, payload: ClassifyUrlRequest) -> TagResponse | JSONResponse:
    """Fetch the image at ``url`` and return its top-1 tag."""
    classifier = _get_classifier(request)
    pool = _get_inference_pool(request)
    try:
        result = await pool.run(classifier.classify_from_url, payload.url)
    except TimeoutError:
        return _busy()
    except ClassifyError as exc:
        return _failure(exc)
    return TagResponse(**result.to_dict(minimal=True))


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = get_settings_from_request(request)
    classifier = _get_classifier(request)
    pool = _get_inference_pool(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        model_path=str(classifier.model.model_path),
        labels=classifier.cached_label_count,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/model",
    response_model=ModelResponse,
    summary="Describe the loaded model",
)
async def model_info(request: Request) -> ModelResponse:
    """Return node names and execution providers of the loaded model."""
    classifier = _get_classifier(request)
    model = classifier.model
    return ModelResponse(
        model_path=str(model.model_path),
        input_name=model.input_name,
        output_name=model.output_name,
        graph_inputs=sorted(model.graph_inputs),
        graph_outputs=sorted(model.graph_outputs),
        providers=model.providers,
        tags_path=str(classifier.tags_path),
    )
