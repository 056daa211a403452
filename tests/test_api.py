from unittest.mock import patch, MagicMock

import numpy as np
import pytest
from fastapi.testclient import TestClient

from onnxbridge.api.main import app
from onnxbridge.inference.errors import (
    InferenceError,
    MissingRequiredInputError,
    ModelLoadError,
    UnknownProviderError,
    UnsupportedTypeError,
)


@pytest.fixture(autouse=True)
def no_startup_model(monkeypatch):
    monkeypatch.delenv("ONNXBRIDGE_MODEL_PATH", raising=False)


def make_manager(session=None):
    manager = MagicMock()
    manager.__len__.return_value = 1 if session is not None else 0
    if session is not None:
        manager.get.return_value = session
        manager.load.return_value = session
        manager.names.return_value = [session.name]
    else:
        manager.get.side_effect = KeyError("missing")
    return manager


def make_session(outputs=None, error=None):
    session = MagicMock()
    session.name = "demo"
    session.describe.return_value = {"name": "demo", "inputs": [], "outputs": []}
    session.performance_stats.return_value = {"runs": 0}
    session.estimate_memory_usage.return_value = 1024
    if error is not None:
        session.run.side_effect = error
    else:
        session.run.return_value = outputs or {}
    return session


@patch('onnxbridge.api.main.get_manager')
def test_health(mock_get_manager):
    mock_get_manager.return_value = make_manager()
    with TestClient(app) as client:
        response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@patch('onnxbridge.api.main.get_manager')
def test_ready_requires_a_model(mock_get_manager):
    mock_get_manager.return_value = make_manager()
    with TestClient(app) as client:
        assert client.get("/ready").status_code == 503

    mock_get_manager.return_value = make_manager(make_session())
    with TestClient(app) as client:
        assert client.get("/ready").json() == {"ready": True}


@patch('onnxbridge.api.main.get_manager')
def test_run_returns_outputs_with_shape(mock_get_manager):
    session = make_session(outputs={"z": np.arange(6, dtype=np.float64).reshape(2, 3)})
    mock_get_manager.return_value = make_manager(session)

    with TestClient(app) as client:
        response = client.post("/models/demo/run", json={
            "inputs": {
                "x": {"data": [1, 2, 3, 4, 5, 6], "shape": [2, 3]},
                "y": ["a", "b", "c"],
            }
        })

    assert response.status_code == 200
    payload = response.json()
    assert payload["outputs"]["z"]["shape"] == [2, 3]
    assert payload["outputs"]["z"]["data"] == [0.0, 1.0, 2.0, 3.0, 4.0, 5.0]

    inputs = session.run.call_args[0][0]
    assert inputs["x"].shape == (2, 3)
    assert inputs["y"] == ["a", "b", "c"]


@pytest.mark.parametrize("error, status", [
    (MissingRequiredInputError("y"), 400),
    (UnsupportedTypeError("z", "int64"), 422),
    (InferenceError("Inference failed: boom"), 500),
])
@patch('onnxbridge.api.main.get_manager')
def test_run_errors_map_to_status(mock_get_manager, error, status):
    mock_get_manager.return_value = make_manager(make_session(error=error))

    with TestClient(app) as client:
        response = client.post("/models/demo/run", json={"inputs": {"x": {"data": [1.0]}}})

    assert response.status_code == status
    detail = response.json()["detail"]
    assert detail["error"] == type(error).__name__
    assert detail["name"] == error.name


@patch('onnxbridge.api.main.get_manager')
def test_run_payload_shape_mismatch(mock_get_manager):
    session = make_session()
    mock_get_manager.return_value = make_manager(session)

    with TestClient(app) as client:
        response = client.post("/models/demo/run", json={
            "inputs": {"x": {"data": [1, 2, 3], "shape": [2, 2]}}
        })

    assert response.status_code == 422
    assert response.json()["detail"]["error"] == "ShapeMismatchError"
    session.run.assert_not_called()


@patch('onnxbridge.api.main.get_manager')
def test_unknown_model_is_404(mock_get_manager):
    mock_get_manager.return_value = make_manager()
    with TestClient(app) as client:
        assert client.post("/models/nope/run", json={"inputs": {}}).status_code == 404
        assert client.get("/models/nope").status_code == 404


@patch('onnxbridge.api.main.get_manager')
def test_load_and_describe(mock_get_manager):
    manager = make_manager(make_session())
    mock_get_manager.return_value = manager

    with TestClient(app) as client:
        response = client.post("/models", json={"path": "models/demo.onnx", "providers": ["cpu"]})
        assert response.status_code == 200
        manager.load.assert_called_once_with("models/demo.onnx", providers=["cpu"], name=None)

        described = client.get("/models/demo").json()
        assert described["estimated_memory_bytes"] == 1024
        assert described["performance"] == {"runs": 0}

        assert client.get("/models").json() == {"models": ["demo"]}


@pytest.mark.parametrize("error, status", [
    (ModelLoadError("Model file not found: x.onnx"), 422),
    (UnknownProviderError("bogus"), 400),
])
@patch('onnxbridge.api.main.get_manager')
def test_load_errors(mock_get_manager, error, status):
    manager = make_manager()
    manager.load.side_effect = error
    mock_get_manager.return_value = manager

    with TestClient(app) as client:
        response = client.post("/models", json={"path": "x.onnx"})

    assert response.status_code == status


@patch('onnxbridge.api.main.get_manager')
def test_unload(mock_get_manager):
    manager = make_manager(make_session())
    manager.unload.side_effect = [True, False]
    mock_get_manager.return_value = manager

    with TestClient(app) as client:
        assert client.delete("/models/demo").json() == {"unloaded": "demo"}
        assert client.delete("/models/demo").status_code == 404


@patch('onnxbridge.api.main.get_manager')
def test_startup_loads_configured_model(mock_get_manager, monkeypatch):
    session = make_session()
    manager = make_manager(session)
    mock_get_manager.return_value = manager
    monkeypatch.setenv("ONNXBRIDGE_MODEL_PATH", "models/demo.onnx")

    with TestClient(app):
        pass

    manager.load.assert_called_once_with("models/demo.onnx")
    session.warmup.assert_called_once()


@patch('onnxbridge.api.main.get_manager')
def test_startup_load_failure_keeps_serving(mock_get_manager, monkeypatch):
    manager = make_manager()
    manager.load.side_effect = ModelLoadError("Model file not found: missing.onnx")
    mock_get_manager.return_value = manager
    monkeypatch.setenv("ONNXBRIDGE_MODEL_PATH", "missing.onnx")

    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
        assert client.get("/ready").status_code == 503


def test_metrics_endpoint():
    with TestClient(app) as client:
        response = client.get("/metrics")
    assert response.status_code == 200
    assert "onnxbridge_requests_total" in response.text


@patch('onnxbridge.api.main.get_manager')
def test_run_non_finite_outputs_become_null(mock_get_manager):
    session = make_session(outputs={"z": np.array([np.inf, np.nan, 1.0, -np.inf])})
    mock_get_manager.return_value = make_manager(session)

    with TestClient(app) as client:
        response = client.post("/models/demo/run", json={"inputs": {"x": {"data": [1.0]}}})

    assert response.status_code == 200
    assert response.json()["outputs"]["z"] == {"data": [None, None, 1.0, None], "shape": [4]}


@patch('onnxbridge.api.main.get_manager')
def test_run_negative_shape_rejected(mock_get_manager):
    session = make_session()
    mock_get_manager.return_value = make_manager(session)

    with TestClient(app) as client:
        response = client.post("/models/demo/run", json={
            "inputs": {"x": {"data": [1, 2, 3, 4, 5, 6], "shape": [-1, -6]}}
        })

    assert response.status_code == 422
    assert response.json()["detail"]["error"] == "ShapeMismatchError"
    assert response.json()["detail"]["name"] == "x"
    session.run.assert_not_called()


@patch('onnxbridge.api.main.get_manager')
def test_startup_warmup_failure_logged_separately(mock_get_manager, monkeypatch, caplog):
    session = make_session()
    session.warmup.side_effect = InferenceError("Inference failed: unexpected input data type")
    manager = make_manager(session)
    mock_get_manager.return_value = manager
    monkeypatch.setenv("ONNXBRIDGE_MODEL_PATH", "models/demo.onnx")

    with caplog.at_level("WARNING", logger="onnxbridge"):
        with TestClient(app) as client:
            assert client.get("/ready").status_code == 200

    messages = [r.getMessage() for r in caplog.records]
    assert any("warmup failed" in m for m in messages)
    assert not any("Startup model load failed" in m for m in messages)
