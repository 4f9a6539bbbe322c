"""Model manager: locate, download, and load the exported ONNX model.

Resolves the export directory (optionally downloading it from the Hugging
Face Hub), creates one ONNX Runtime InferenceSession for it, and wraps the
session in an immutable :class:`ModelHandle` shared by every request.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from huggingface_hub import snapshot_download
from huggingface_hub.errors import HfHubHTTPError
from onnxruntime import InferenceSession, RunOptions, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from tagserve.ml.errors import InferenceError, ModelLoadError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from tagserve.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Model handle
# ---------------------------------------------------------------------------


class ModelHandle:
    """A loaded inference session bound to known input/output node names.

    ``InferenceSession.run`` may be called from several threads at once, so
    the handle is shared without locking.
    """

    def __init__(
        self,
        session: InferenceSession,
        model_path: Path,
        input_name: str,
        output_name: str,
    ) -> None:
        self._session = session
        self._model_path = model_path
        self._input_name = input_name
        self._output_name = output_name
        self._graph_inputs = frozenset(node.name for node in session.get_inputs())
        self._graph_outputs = frozenset(node.name for node in session.get_outputs())

    @property
    def model_path(self) -> Path:
        return self._model_path

    @property
    def input_name(self) -> str:
        return self._input_name

    @property
    def output_name(self) -> str:
        return self._output_name

    @property
    def graph_inputs(self) -> frozenset[str]:
        return self._graph_inputs

    @property
    def graph_outputs(self) -> frozenset[str]:
        return self._graph_outputs

    @property
    def providers(self) -> list[str]:
        return list(self._session.get_providers())

    def run(self, tensor: NDArray[np.float32], timeout: float | None = None) -> NDArray[np.float32]:
        """Run one forward pass and return the output as a flat vector.

        Args:
            tensor: Input batch, shape (1, 224, 224, 3).
            timeout: Seconds after which the run is terminated, ``None`` or 0 for none.

        Raises:
            InferenceError: If a named node is missing or the run fails.
        """
        if self._input_name not in self._graph_inputs:
            raise InferenceError(f"Input node '{self._input_name}' not found in graph")
        if self._output_name not in self._graph_outputs:
            raise InferenceError(f"Output node '{self._output_name}' not found in graph")

        run_options = RunOptions()
        timer: threading.Timer | None = None
        if timeout:
            timer = threading.Timer(timeout, _terminate, args=(run_options,))
            timer.daemon = True
            timer.start()

        try:
            outputs = self._session.run(
                [self._output_name],
                {self._input_name: tensor},
                run_options=run_options,
            )
        except Exception as exc:  # noqa: BLE001
            if run_options.terminate:
                raise InferenceError(f"Session run exceeded {timeout}s and was terminated") from exc
            raise InferenceError(f"Session run failed: {exc}") from exc
        finally:
            if timer is not None:
                timer.cancel()

        return np.asarray(outputs[0], dtype=np.float32).reshape(-1)


def _terminate(run_options: RunOptions) -> None:
    run_options.terminate = True


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class ModelLoader:
    """Builds a :class:`ModelHandle` from settings."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def ensure_downloaded(self) -> Path:
        """Return the export directory, downloading it from the Hub if configured."""
        repo_id = self._settings.hf_repo_id
        if repo_id is None:
            return Path(self._settings.export_dir)

        local_dir = Path(self._settings.models_dir) / repo_id.replace("/", "--")
        try:
            downloaded = Path(snapshot_download(repo_id=repo_id, local_dir=str(local_dir)))
        except (HfHubHTTPError, OSError) as exc:
            raise ModelLoadError(f"Could not download model export '{repo_id}': {exc}") from exc
        logger.info("Downloaded %s to %s", repo_id, downloaded)
        return downloaded

    def load(self, export_dir: str | Path) -> ModelHandle:
        """Load the exported model in ``export_dir`` into a new session.

        Raises:
            ModelLoadError: If the directory or model file is missing or invalid.
        """
        export_path = Path(export_dir)
        if not export_path.is_dir():
            raise ModelLoadError(f"Export directory not found: {export_path}")

        model_path = export_path / self._settings.model_filename
        if not model_path.is_file():
            raise ModelLoadError(f"No exported model at {model_path}")

        logger.info("Loading session from %s (providers=%s)", model_path, self._providers)
        try:
            session = InferenceSession(
                str(model_path),
                sess_options=self._session_options,
                providers=self._providers,
            )
        except Exception as exc:  # noqa: BLE001
            raise ModelLoadError(f"Could not load model from {model_path}: {exc}") from exc

        handle = ModelHandle(
            session,
            model_path=model_path,
            input_name=self._settings.input_name,
            output_name=self._settings.output_name,
        )
        logger.info(
            "Loaded session for %s (inputs=%s, outputs=%s)",
            model_path,
            sorted(handle.graph_inputs),
            sorted(handle.graph_outputs),
        )
        return handle

    # -- Internal -----------------------------------------------------------

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                ("CUDAExecutionProvider", {"device_id": 0, "arena_extend_strategy": "kSameAsRequested"}),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
