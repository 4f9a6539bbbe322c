"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tagserve.api.routes import router
from tagserve.config import get_settings
from tagserve.logs import configure_logging
from tagserve.ml.image_classifier import ImageClassifier
from tagserve.ml.inference import InferencePool

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: load the model on startup, clean up on shutdown.

    A ModelLoadError propagates out of startup and stops the server.
    """
    settings = get_settings()
    app.state.settings = settings
    configure_logging(settings.log_level)

    logger.info(
        "Starting tagserve (device=%s, max_concurrent=%s, export_dir=%s, tags=%s)",
        settings.device,
        settings.max_concurrent,
        settings.hf_repo_id or settings.export_dir,
        settings.tags_path,
    )

    app.state.classifier = ImageClassifier.from_settings(settings)
    inference_pool = InferencePool(settings)
    app.state.inference_pool = inference_pool

    logger.info("tagserve ready")
    yield

    logger.info("Shutting down tagserve")
    inference_pool.shutdown()
    logger.info("tagserve shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="tagserve",
        description="Image classification over an exported ONNX model",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()
