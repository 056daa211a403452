from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

import onnxbridge.inference.session as session_mod
from onnxbridge.config import SessionConfig
from onnxbridge.inference.runtime import reset_runtime


def node_arg(name, shape, type_="tensor(float)"):
    return SimpleNamespace(name=name, shape=shape, type=type_)


@pytest.fixture
def make_engine():
    """Factory for a fake onnxruntime InferenceSession"""

    def _make(inputs, outputs, results=None, providers=("CPUExecutionProvider",)):
        engine = MagicMock()
        engine.get_inputs.return_value = [node_arg(*spec) for spec in inputs]
        engine.get_outputs.return_value = [node_arg(*spec) for spec in outputs]
        engine.get_providers.return_value = list(providers)
        engine.run.return_value = results if results is not None else []
        return engine

    return _make


@pytest.fixture
def two_input_engine(make_engine):
    """x: float [2,3], y: string [3] -> z: float [2,3]"""
    return make_engine(
        inputs=[("x", [2, 3], "tensor(float)"), ("y", [3], "tensor(string)")],
        outputs=[("z", [2, 3], "tensor(float)")],
        results=[np.arange(6, dtype=np.float32).reshape(2, 3)],
    )


@pytest.fixture
def model_file(tmp_path):
    path = tmp_path / "model.onnx"
    path.write_bytes(b"\x00" * 100)
    return path


@pytest.fixture
def fake_ort(two_input_engine):
    """Patch onnxruntime inside the session module with a MagicMock"""
    ort = MagicMock()
    ort.InferenceSession.return_value = two_input_engine
    ort.get_available_providers.return_value = ["CPUExecutionProvider"]
    with patch.object(session_mod, "ort", ort, create=True), \
            patch.object(session_mod, "ONNX_AVAILABLE", True), \
            patch.object(SessionConfig, "to_session_options", return_value=MagicMock()), \
            patch.object(session_mod, "ensure_initialized", return_value=True):
        yield ort


@pytest.fixture(autouse=True)
def reset_runtime_state():
    """Each test starts with no recorded runtime initialization"""
    reset_runtime()
    yield
    reset_runtime()
