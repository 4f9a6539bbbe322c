"""Image classification pipeline.

One :class:`ImageClassifier` is built per process. It owns the model handle
and the tags file, and runs each request through::

    (fetch) -> decode -> preprocess -> execute -> select_label

Every stage is timed and the durations are returned with the result.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np

from tagserve.config import Settings
from tagserve.ml.errors import InferenceError
from tagserve.ml.fetch import fetch_bytes
from tagserve.ml.labels import LabelStore
from tagserve.ml.model_manager import ModelLoader
from tagserve.ml.preprocessing import decode_image, to_input_tensor
from tagserve.ml.timing import StageTimings, timed

if TYPE_CHECKING:
    import httpx
    from numpy.typing import NDArray
    from PIL import Image

    from tagserve.ml.model_manager import ModelHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    """Top-1 prediction with per-stage timings."""

    tag: str
    probability: float
    timings: StageTimings = field(default_factory=StageTimings)

    def to_dict(self, *, minimal: bool = False) -> dict[str, Any]:
        """Flat wire representation; ``minimal`` keeps only tag and probability."""
        # NaN and infinities have no JSON form.
        probability = self.probability if math.isfinite(self.probability) else None
        data: dict[str, Any] = {"tag": self.tag, "probability": probability}
        if not minimal:
            data.update(self.timings.as_milliseconds())
        return data

    def to_json(self, *, minimal: bool = False) -> str:
        return json.dumps(self.to_dict(minimal=minimal), allow_nan=False)


def argmax(vector: NDArray[np.floating[Any]]) -> int:
    """Index of the largest value under a total order.

    NaN ranks below every number, including -inf. Infinities compare as
    usual. On ties the first index wins. An all-NaN vector yields 0.

    Raises:
        InferenceError: If the vector is empty.
    """
    values = np.asarray(vector).reshape(-1)
    if values.size == 0:
        raise InferenceError("Model produced an empty output vector")

    candidates = np.flatnonzero(~np.isnan(values))
    if candidates.size == 0:
        return 0
    return int(candidates[np.argmax(values[candidates])])


class ImageClassifier:
    """Shared classification pipeline around one exported model.

    The model is loaded completely in the constructor. After that the
    instance is only read, so one object serves concurrent requests.
    """

    def __init__(
        self,
        export_dir: str | Path,
        tags_path: str | Path,
        settings: Settings | None = None,
        *,
        model: ModelHandle | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Load the model in ``export_dir`` and remember the tags file.

        Raises:
            ModelLoadError: If ``export_dir`` does not hold a loadable model.
        """
        self._settings = settings or Settings()
        self._export_dir = Path(export_dir)
        self._tags_path = Path(tags_path)
        self._http_client = http_client

        if model is None:
            model, elapsed = timed("Loading session", ModelLoader(self._settings).load, self._export_dir)
            logger.info("Model ready in %.3fs", elapsed)
        self._model = model

        self._cached_labels: LabelStore | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> ImageClassifier:
        """Build a classifier from configuration, downloading the export if configured.

        A relative ``tags_path`` is resolved against the export directory.
        """
        loader = ModelLoader(settings)
        export_dir = loader.ensure_downloaded()
        tags_path = Path(settings.tags_path)
        if not tags_path.is_absolute():
            tags_path = export_dir / tags_path
        return cls(export_dir, tags_path, settings, model=loader.load(export_dir))

    # -- Properties ---------------------------------------------------------

    @property
    def model(self) -> ModelHandle:
        return self._model

    @property
    def export_dir(self) -> Path:
        return self._export_dir

    @property
    def tags_path(self) -> Path:
        return self._tags_path

    @property
    def cached_label_count(self) -> int | None:
        """Number of cached labels, or None if the tags file is not cached yet."""
        store = self._cached_labels
        return None if store is None else len(store)

    # -- Stages -------------------------------------------------------------

    def labels(self) -> LabelStore:
        """Return the label store, reading the tags file if not cached."""
        store = self._cached_labels
        if store is None:
            store = LabelStore.load(self._tags_path)
            if self._settings.cache_labels:
                self._cached_labels = store
        return store

    def fetch(self, url: str) -> tuple[bytes, float]:
        """Download image bytes. Raises FetchError."""
        return timed(
            f"Fetching image from {url}",
            fetch_bytes,
            url,
            client=self._http_client,
            timeout=self._settings.fetch_timeout,
            max_bytes=self._settings.max_file_size,
        )

    def decode(self, data: bytes) -> tuple[Image.Image, float]:
        """Decode raw bytes into an image. Raises InvalidImageError."""
        return timed("Load image from memory", decode_image, data, self._settings.max_image_pixels)

    def preprocess(self, image: Image.Image) -> tuple[NDArray[np.float32], float]:
        return timed("Resizing image", to_input_tensor, image)

    def execute(self, tensor: NDArray[np.float32]) -> tuple[NDArray[np.float32], float]:
        """Run the model. Raises InferenceError."""
        return timed("Running session", self._model.run, tensor, self._settings.inference_timeout)

    def select_label(self, vector: NDArray[np.float32]) -> tuple[str, float]:
        """Map the arg-max of ``vector`` to its label.

        Raises:
            InferenceError: If the vector is empty.
            LabelLookupError: If the winning index has no label.
        """
        index = argmax(vector)
        tag = self.labels().lookup(index)
        return tag, float(vector[index])

    # -- Entry points -------------------------------------------------------

    def classify(self, image: Image.Image) -> Classification:
        """Classify an already decoded image."""
        tensor, resize_time = self.preprocess(image)
        vector, run_time = self.execute(tensor)
        tag, probability = self.select_label(vector)
        return Classification(
            tag=tag,
            probability=probability,
            timings=StageTimings(resize=resize_time, session_run=run_time),
        )

    def classify_from_raw(self, data: bytes) -> Classification:
        """Classify raw image bytes (JPEG, PNG, ...)."""
        image, load_time = self.decode(data)
        result = self.classify(image)
        return _with_timing(result, "image_load", load_time)

    def classify_from_url(self, url: str) -> Classification:
        """Fetch an image over HTTP and classify it."""
        data, fetch_time = self.fetch(url)
        result = self.classify_from_raw(data)
        return _with_timing(result, "url_fetch", fetch_time)


def _with_timing(result: Classification, stage: str, seconds: float) -> Classification:
    return Classification(
        tag=result.tag,
        probability=result.probability,
        timings=result.timings.with_stage(stage, seconds),
    )
