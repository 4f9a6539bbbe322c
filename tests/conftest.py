"""Shared fixtures: tiny ONNX exports, tags files and encoded images."""

from __future__ import annotations

import io
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import onnx
import pytest
from onnx import TensorProto, helper, numpy_helper
from PIL import Image

from tagserve.config import Settings

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

INPUT_NAME = "serving_default_input_1"
OUTPUT_NAME = "StatefulPartitionedCall"


def build_constant_model(
    path: Path,
    probabilities: Sequence[float],
    input_name: str = INPUT_NAME,
    output_name: str = OUTPUT_NAME,
) -> Path:
    """Write an ONNX model mapping any (1, 224, 224, 3) input to ``probabilities``.

    The input still flows through the graph (mean * 0) so ONNX Runtime
    validates its name, dtype and shape.
    """
    x = helper.make_tensor_value_info(input_name, TensorProto.FLOAT, [1, 224, 224, 3])
    y = helper.make_tensor_value_info(output_name, TensorProto.FLOAT, [1, len(probabilities)])
    zero = numpy_helper.from_array(np.array(0.0, dtype=np.float32), name="zero")
    probs = numpy_helper.from_array(np.array([probabilities], dtype=np.float32), name="probs")
    nodes = [
        helper.make_node("ReduceMean", [input_name], ["mean"], axes=[1, 2, 3], keepdims=0),
        helper.make_node("Mul", ["mean", "zero"], ["scaled"]),
        helper.make_node("Add", ["scaled", "probs"], [output_name]),
    ]
    graph = helper.make_graph(nodes, "constant_classifier", [x], [y], initializer=[zero, probs])
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    onnx.save(model, str(path))
    return path


@pytest.fixture()
def make_export(tmp_path: Path) -> Callable[..., Path]:
    """Factory: create an export directory holding a constant-output model."""

    def _make(probabilities: Sequence[float], name: str = "export", **kwargs: str) -> Path:
        export_dir = tmp_path / name
        export_dir.mkdir()
        build_constant_model(export_dir / "model.onnx", probabilities, **kwargs)
        return export_dir

    return _make


@pytest.fixture()
def make_tags(tmp_path: Path) -> Callable[[list[str]], Path]:
    """Factory: write a newline-delimited tags file."""

    def _make(labels: list[str], name: str = "tags.txt") -> Path:
        path = tmp_path / name
        path.write_text("\n".join(labels) + "\n", encoding="utf-8")
        return path

    return _make


def encode_image(fmt: str = "JPEG", size: tuple[int, int] = (64, 48), color: tuple[int, int, int] = (200, 30, 90)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture()
def jpeg_bytes() -> bytes:
    return encode_image("JPEG")


@pytest.fixture()
def png_bytes() -> bytes:
    return encode_image("PNG", size=(300, 200), color=(0, 255, 0))


def make_settings(**overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "device": "cpu",
        "export_dir": "/nonexistent/export",
        "tags_path": "/nonexistent/tags.txt",
        "models_dir": "/tmp/tagserve_test_models",
        "intra_op_threads": 1,
        "inter_op_threads": 1,
        "max_concurrent": 2,
        "fetch_timeout": 5.0,
        "inference_timeout": 0,
        "cache_labels": True,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]
