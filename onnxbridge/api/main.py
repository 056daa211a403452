from fastapi import FastAPI, HTTPException, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Any, Dict, List, Optional, Union
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
import math
import os
import time

import numpy as np

from onnxbridge.inference import get_manager, runtime_info
from onnxbridge.inference.errors import (
    DataConversionError,
    InferenceError,
    ModelLoadError,
    OnnxBridgeError,
    ProviderError,
    ShapeMismatchError,
    ValidationError,
)
from onnxbridge.log import get_logger

logger = get_logger("onnxbridge.api")


# Prometheus metrics
REQUEST_COUNT = Counter(
    'onnxbridge_requests_total',
    'Total number of requests',
    ['endpoint', 'status']
)
REQUEST_DURATION = Histogram(
    'onnxbridge_request_duration_seconds',
    'Request duration in seconds',
    ['endpoint']
)
INFERENCE_ERRORS = Counter(
    'onnxbridge_errors_total',
    'Total number of failed operations by error kind',
    ['kind']
)
MODELS_LOADED = Gauge(
    'onnxbridge_models_loaded',
    'Number of models currently loaded'
)

# Status code per error kind, most specific first
ERROR_STATUS = [
    (ModelLoadError, 422),
    (ProviderError, 400),
    (ValidationError, 400),
    (DataConversionError, 422),
    (InferenceError, 500),
]


class LoadRequest(BaseModel):
    path: str
    providers: Optional[List[str]] = None
    name: Optional[str] = None


class TensorIn(BaseModel):
    data: List[float]
    shape: Optional[List[int]] = None


class RunRequest(BaseModel):
    inputs: Dict[str, Union[TensorIn, List[str]]]


app = FastAPI(
    title="onnxbridge API",
    description="ONNX Runtime inference sessions over HTTP",
    version="0.1.0"
)

_HEALTH_STATE = {
    "startup_time": time.time()
}


def _http_error(e: OnnxBridgeError) -> HTTPException:
    kind = type(e).__name__
    INFERENCE_ERRORS.labels(kind=kind).inc()
    status = 500
    for error_cls, code in ERROR_STATUS:
        if isinstance(e, error_cls):
            status = code
            break
    return HTTPException(
        status_code=status,
        detail={"error": kind, "message": e.message, "name": e.name}
    )


def _to_host_value(name: str, value: Union[TensorIn, List[str]]) -> Any:
    """Turn a request tensor into the value Session.run expects"""
    if not isinstance(value, TensorIn):
        return list(value)

    array = np.asarray(value.data, dtype=np.float64)
    if value.shape is None:
        return array
    if any(dim < 0 for dim in value.shape):
        raise ShapeMismatchError(
            f"Shape for input '{name}' has negative dimensions: {value.shape}",
            name=name,
        )
    expected = math.prod(value.shape)
    if array.size != expected:
        raise ShapeMismatchError(
            f"Shape mismatch for input '{name}': {array.size} elements "
            f"cannot fill shape {value.shape} ({expected} elements)",
            name=name,
        )
    return array.reshape(value.shape)


def _to_json_data(value: np.ndarray) -> List[Optional[float]]:
    """Flatten an output array; NaN and +/-inf become null (JSON has no such numbers)"""
    return [v if math.isfinite(v) else None for v in value.ravel().tolist()]


def _get_session(name: str):
    try:
        return get_manager().get(name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"model '{name}' not loaded")


@app.on_event("startup")
async def startup_event():
    """Load the model named by ONNXBRIDGE_MODEL_PATH, if any"""
    logger.info("Starting onnxbridge API service")
    model_path = os.getenv("ONNXBRIDGE_MODEL_PATH")
    if not model_path:
        return
    manager = get_manager()
    try:
        session = manager.load(model_path)
    except OnnxBridgeError as e:
        logger.error(f"Startup model load failed: {e}", exc_info=True)
        MODELS_LOADED.set(len(manager))
        return
    MODELS_LOADED.set(len(manager))

    try:
        session.warmup()
        logger.info(f"Model {session.name} loaded and warmed up")
    except OnnxBridgeError as e:
        # Session stays registered; only the synthetic run failed
        logger.warning(f"Model {session.name} loaded but warmup failed: {e}", exc_info=True)


@app.get("/health")
async def health_check():
    """Liveness probe: the process is up."""
    return {
        "status": "healthy",
        "uptime": time.time() - _HEALTH_STATE["startup_time"]
    }


@app.get("/ready")
async def readiness_check():
    """
    Readiness probe for container orchestration.
    Returns 200 once at least one model is loaded.
    """
    if len(get_manager()) == 0:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "reason": "no model loaded"}
        )

    return {"ready": True}


@app.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.
    Returns metrics in Prometheus text format.
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


@app.get("/runtime")
async def runtime():
    return runtime_info()


@app.get("/models")
async def list_models():
    return {"models": get_manager().names()}


@app.post("/models")
def load_model(payload: LoadRequest):
    """Load a model file into a new named session."""
    start_time = time.time()
    manager = get_manager()
    try:
        session = manager.load(payload.path, providers=payload.providers, name=payload.name)
    except OnnxBridgeError as e:
        REQUEST_COUNT.labels(endpoint="load", status="error").inc()
        logger.warning(f"Model load failed: {e}")
        raise _http_error(e)

    MODELS_LOADED.set(len(manager))
    REQUEST_DURATION.labels(endpoint="load").observe(time.time() - start_time)
    REQUEST_COUNT.labels(endpoint="load", status="200").inc()
    return session.describe()


@app.get("/models/{name}")
async def describe_model(name: str):
    session = _get_session(name)
    result = session.describe()
    result["performance"] = session.performance_stats()
    result["estimated_memory_bytes"] = session.estimate_memory_usage()
    return result


@app.delete("/models/{name}")
async def unload_model(name: str):
    manager = get_manager()
    if not manager.unload(name):
        raise HTTPException(status_code=404, detail=f"model '{name}' not loaded")
    MODELS_LOADED.set(len(manager))
    return {"unloaded": name}


@app.post("/models/{name}/run")
def run_model(name: str, payload: RunRequest):
    """
    Inference endpoint.
    Inputs are {name: {"data": [...], "shape": [...]}} or {name: ["text", ...]}.
    """
    start_time = time.time()
    session = _get_session(name)

    try:
        inputs = {key: _to_host_value(key, value) for key, value in payload.inputs.items()}
        outputs = session.run(inputs)
    except OnnxBridgeError as e:
        REQUEST_COUNT.labels(endpoint="run", status="error").inc()
        logger.warning(f"Inference failed for model={name}: {e}")
        raise _http_error(e)

    response = {
        "outputs": {
            key: {"data": _to_json_data(value), "shape": list(value.shape)}
            for key, value in outputs.items()
        }
    }

    duration = time.time() - start_time
    REQUEST_DURATION.labels(endpoint="run").observe(duration)
    REQUEST_COUNT.labels(endpoint="run", status="200").inc()
    logger.info(f"Request completed: model={name}, duration={duration:.3f}s")

    response["duration"] = duration
    return response


if __name__ == "__main__":
    # Simple launcher for local runs. Use uvicorn in production.
    import uvicorn

    uvicorn.run("onnxbridge.api.main:app", host="0.0.0.0", port=8000, reload=False)
