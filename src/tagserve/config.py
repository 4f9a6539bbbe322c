"""Environment-based configuration for tagserve."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from TAGSERVE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TAGSERVE_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Exported model
    export_dir: str = "/opt/resnet50"
    tags_path: str = "/opt/resnet50/ImageNetLabels.txt"
    model_filename: str = "model.onnx"
    input_name: str = "serving_default_input_1"
    output_name: str = "StatefulPartitionedCall"

    # Optional Hugging Face Hub source for the export directory
    hf_repo_id: str | None = None
    models_dir: str = "/tmp/tagserve_models"  # noqa: S108

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)
    queue_timeout: float = Field(default=5.0, gt=0)

    # Timeouts (seconds, 0 = no limit)
    fetch_timeout: float = Field(default=10.0, ge=0)
    inference_timeout: float = Field(default=30.0, ge=0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=20_971_520, ge=1)

    # Labels
    cache_labels: bool = True

    # Logging
    log_level: str = "INFO"


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
