"""
Inference sessions over ONNX Runtime.

Provides:
- SessionManager: one-time runtime setup, provider selection, model loading
  and a registry of loaded sessions
- Session: a loaded model with its metadata and the end-to-end run() call
- load_session / get_manager: convenience access to the process-wide manager

Example:
    >>> session = load_session('models/classifier.onnx', providers=['cuda'])
    >>> outputs = session.run({'input': np.random.rand(1, 3).astype('float32')})
    >>> print(outputs['logits'].shape)
"""

import math
import os
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import (
    InferenceError,
    ModelLoadError,
    OnnxBridgeError,
    ProviderError,
    ValidationError,
)
from .marshalling import decode_outputs, encode_inputs
from .providers import (
    ProviderSpec,
    filter_available,
    provider_names,
    provider_options,
    resolve_providers,
)
from .runtime import ensure_initialized
from .tensor_info import (
    DYNAMIC_DIM,
    TensorInfo,
    TensorInfoCache,
)
from .validation import validate_inputs, validate_session
from ..config import SessionConfig
from ..log import get_logger

try:
    import onnxruntime as ort
    ONNX_AVAILABLE = True
except ImportError:
    ONNX_AVAILABLE = False

logger = get_logger(__name__)

PathLike = Union[str, os.PathLike]


class PerformanceStats:
    """Thread-safe latency counters for one session"""

    def __init__(self):
        self.lock = threading.Lock()
        self.runs = 0
        self.failures = 0
        self.total_ms = 0.0
        self.min_ms: Optional[float] = None
        self.max_ms: Optional[float] = None
        self.last_ms: Optional[float] = None

    def record(self, duration_ms: float, ok: bool) -> None:
        with self.lock:
            if not ok:
                self.failures += 1
                return
            self.runs += 1
            self.total_ms += duration_ms
            self.last_ms = duration_ms
            self.min_ms = duration_ms if self.min_ms is None else min(self.min_ms, duration_ms)
            self.max_ms = duration_ms if self.max_ms is None else max(self.max_ms, duration_ms)

    def snapshot(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "runs": self.runs,
                "failures": self.failures,
                "total_ms": self.total_ms,
                "mean_ms": self.total_ms / self.runs if self.runs else 0.0,
                "min_ms": self.min_ms,
                "max_ms": self.max_ms,
                "last_ms": self.last_ms,
            }


def _static_dims(shape: Sequence[int]) -> List[int]:
    return [1 if dim == DYNAMIC_DIM else dim for dim in shape]


def _itemsize(data_type: str) -> int:
    if data_type == "string":
        return np.dtype(object).itemsize
    if data_type == "bfloat16":
        return 2
    try:
        return np.dtype(data_type).itemsize
    except TypeError:
        return 0


class Session:
    """
    A loaded model and its immutable input/output contract.

    Sessions are created by SessionManager.load; the input and output name
    lists recorded at load time define what every run() call must provide
    and what it returns.
    """

    def __init__(
        self,
        engine: Any,
        model_path: PathLike,
        resolved_providers: Sequence[ProviderSpec],
        name: Optional[str] = None,
    ):
        """
        Args:
            engine: onnxruntime InferenceSession (or anything with its interface)
            model_path: File the model was loaded from
            resolved_providers: Provider list that was requested from the engine
            name: Registry name, defaults to the model file stem
        """
        self._engine = engine
        self.model_path = str(model_path)
        self.name = name or Path(self.model_path).stem
        self.resolved_providers = tuple(resolved_providers)

        engine_inputs = engine.get_inputs()
        engine_outputs = engine.get_outputs()
        self.input_names = tuple(arg.name for arg in engine_inputs)
        self.output_names = tuple(arg.name for arg in engine_outputs)

        self._info = TensorInfoCache(engine.get_inputs, engine.get_outputs)
        self._stats = PerformanceStats()

    # Metadata

    def input_info(self) -> List[TensorInfo]:
        return self._info.inputs()

    def output_info(self) -> List[TensorInfo]:
        return self._info.outputs()

    @property
    def input_shapes(self) -> Dict[str, Tuple[int, ...]]:
        return {info.name: info.shape for info in self.input_info()}

    @property
    def output_shapes(self) -> Dict[str, Tuple[int, ...]]:
        return {info.name: info.shape for info in self.output_info()}

    @property
    def providers(self) -> List[str]:
        """Providers the engine actually uses (may differ from the request)"""
        return list(self._engine.get_providers())

    def describe(self) -> Dict[str, Any]:
        """JSON-friendly summary of the session"""
        return {
            "name": self.name,
            "model_path": self.model_path,
            "inputs": [info.to_dict() for info in self.input_info()],
            "outputs": [info.to_dict() for info in self.output_info()],
            "providers": self.providers,
            "resolved_providers": [str(spec) for spec in self.resolved_providers],
        }

    # Inference

    def _execute(self, feed: Dict[str, np.ndarray]) -> Dict[str, Any]:
        try:
            values = self._engine.run(None, feed)
        except Exception as e:
            raise InferenceError(f"Inference failed: {e}") from e

        engine_names = [arg.name for arg in self._engine.get_outputs()]
        return dict(zip(engine_names, values))

    def run(self, inputs: Mapping[str, Any]) -> Dict[str, np.ndarray]:
        """
        Run inference on a named input bag.

        Args:
            inputs: Exactly the model's declared inputs, each a numeric
                array-like or a sequence of strings

        Returns:
            outputs: Declared output name -> float64 array (runtime shape),
                in declared output order

        Raises:
            ValidationError: Malformed session or input bag
            DataConversionError: Unconvertible value, shape mismatch or
                unsupported output type
            InferenceError: Engine failure or missing output
        """
        start = time.perf_counter()
        try:
            validate_session(self)
            validate_inputs(self.input_names, inputs)
            declared = {info.name: info for info in self.input_info()}
            encoded = encode_inputs(declared, inputs)
            results = self._execute(encoded.feed())
            outputs = decode_outputs(self.output_names, results)
        except OnnxBridgeError:
            self._stats.record((time.perf_counter() - start) * 1000.0, ok=False)
            raise

        duration_ms = (time.perf_counter() - start) * 1000.0
        self._stats.record(duration_ms, ok=True)
        logger.debug(
            f"Session {self.name}: ran {len(encoded.numeric)} numeric and "
            f"{len(encoded.text)} text inputs in {duration_ms:.3f}ms"
        )
        return outputs

    def run_batch(
        self,
        items: Sequence[Mapping[str, Any]],
        batch_size: int = 32,
    ) -> List[Dict[str, np.ndarray]]:
        """
        Run inference on many input bags, batch_size at a time.

        Args:
            items: List of input bags
            batch_size: Number of bags processed per chunk

        Returns:
            results: One output bag per item, in order
        """
        if not isinstance(items, (list, tuple)):
            raise ValidationError("items must be a list of input bags")
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size <= 0:
            raise ValidationError(f"batch_size must be a positive integer, got {batch_size!r}")

        results = []
        total = len(items)
        for i in range(0, total, batch_size):
            chunk = items[i:i + batch_size]
            results.extend(self.run(item) for item in chunk)
            logger.debug(f"Session {self.name}: processed {min(i + batch_size, total)}/{total}")
        return results

    def synthetic_inputs(self) -> Dict[str, Any]:
        """Zero-filled inputs matching the declared signature (dynamic dims -> 1)"""
        inputs = {}
        for info in self.input_info():
            dims = _static_dims(info.shape)
            if info.is_text:
                inputs[info.name] = [""] * max(1, math.prod(dims))
            else:
                inputs[info.name] = np.zeros(dims, dtype=np.float32)
        return inputs

    def warmup(self, iterations: int = 1) -> None:
        """Run synthetic inputs through the model so first real calls are not cold"""
        inputs = self.synthetic_inputs()
        for _ in range(iterations):
            self.run(inputs)
        logger.info(f"Session {self.name} warmed up ({iterations} iterations)")

    def performance_stats(self) -> Dict[str, Any]:
        return self._stats.snapshot()

    def estimate_memory_usage(self) -> int:
        """
        Rough memory footprint in bytes.

        Model file size plus one copy of every input and output tensor,
        with dynamic dimensions counted as 1.
        """
        total = os.path.getsize(self.model_path) if os.path.isfile(self.model_path) else 0
        for info in self.input_info() + self.output_info():
            total += math.prod(_static_dims(info.shape)) * _itemsize(info.data_type)
        return total

    def __repr__(self) -> str:
        return f"Session(name={self.name!r}, model_path={self.model_path!r})"

    def __str__(self) -> str:
        """Human-readable string representation"""
        lines = ["ONNX Runtime Session:", f"  Model Path: {self.model_path}"]
        inputs = self.input_info()
        lines.append(f"  Inputs ({len(inputs)}):")
        lines.extend(f"    {info}" for info in inputs)
        outputs = self.output_info()
        lines.append(f"  Outputs ({len(outputs)}):")
        lines.extend(f"    {info}" for info in outputs)
        lines.append(f"  Execution Providers: {', '.join(self.providers)}")
        return "\n".join(lines)


class SessionManager:
    """
    Loads models into Sessions and keeps them by name.

    Example:
        >>> manager = SessionManager(SessionConfig(intra_op_num_threads=2))
        >>> session = manager.load('models/mnist.onnx', providers=['cpu'])
        >>> manager.get('mnist') is session
        True
    """

    def __init__(self, config: Optional[SessionConfig] = None):
        self.config = config or SessionConfig()
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.RLock()

    def _resolve_path(self, model_path: Any) -> Path:
        if not isinstance(model_path, (str, os.PathLike)):
            raise ModelLoadError(
                f"model_path must be a string or path, got {type(model_path).__name__}"
            )
        if not str(model_path).strip():
            raise ModelLoadError("model_path cannot be empty")

        candidate = Path(model_path).expanduser()
        if not candidate.exists() and not candidate.is_absolute() and self.config.model_dir:
            in_model_dir = Path(self.config.model_dir).expanduser() / candidate
            if in_model_dir.exists():
                candidate = in_model_dir

        if not candidate.exists():
            raise ModelLoadError(
                f"Model file not found: {model_path}. "
                f"Please check the file path and ensure the file exists."
            )
        if not candidate.is_file():
            raise ModelLoadError(f"Model path is not a file: {model_path}")

        if candidate.suffix.lower() != ".onnx":
            logger.warning(
                f"Model file {candidate} does not have .onnx extension. "
                f"This may not be a valid ONNX model."
            )
        return candidate

    def _build_engine(self, model_path: Path, specs: Sequence[ProviderSpec]) -> Any:
        if not ONNX_AVAILABLE:
            raise ModelLoadError(
                "ONNX Runtime not installed. Install with: pip install onnxruntime"
            )

        engine_specs = filter_available(specs, ort.get_available_providers())
        try:
            sess_options = self.config.to_session_options()
            return ort.InferenceSession(
                str(model_path),
                sess_options=sess_options,
                providers=provider_names(engine_specs),
                provider_options=provider_options(engine_specs),
            )
        except ValueError as e:
            if "provider" in str(e).lower():
                raise ProviderError(f"Execution providers rejected: {e}") from e
            raise ModelLoadError(f"Failed to create ONNX session: {e}") from e
        except Exception as e:
            raise ModelLoadError(
                f"Failed to load ONNX model. The file may be corrupted or not a "
                f"valid ONNX model. Model path: {model_path}. Original error: {e}"
            ) from e

    def load(
        self,
        model_path: PathLike,
        providers: Optional[Sequence[str]] = None,
        name: Optional[str] = None,
    ) -> Session:
        """
        Load an ONNX model into a new Session and register it.

        Args:
            model_path: Path to the .onnx file (relative paths also searched
                in config.model_dir)
            providers: Provider names, e.g. ['cuda', 'cpu']; None uses
                config.providers, then the platform default
            name: Registry name, defaults to the file stem

        Returns:
            session: The loaded Session

        Raises:
            ModelLoadError: Missing/unreadable/invalid model or engine build failure
            ProviderError: Unknown provider name or provider set rejected
        """
        ensure_initialized(self.config.log_severity_level)

        path = self._resolve_path(model_path)
        if providers is None:
            providers = self.config.providers
        specs = resolve_providers(providers)

        logger.info(f"Loading ONNX model: {path}")
        engine = self._build_engine(path, specs)
        try:
            session = Session(engine, path, specs, name=name)
        except Exception as e:
            raise ModelLoadError(f"Failed to read model metadata from {path}: {e}") from e

        with self._lock:
            if session.name in self._sessions:
                logger.info(f"Replacing loaded session {session.name}")
            self._sessions[session.name] = session

        logger.info(
            f"ONNX model loaded as {session.name}: inputs={list(session.input_names)}, "
            f"outputs={list(session.output_names)}, providers={session.providers}"
        )
        return session

    def get(self, name: str) -> Session:
        """
        Raises:
            KeyError: If no session is registered under ``name``
        """
        with self._lock:
            if name not in self._sessions:
                raise KeyError(f"No session loaded under name '{name}'")
            return self._sessions[name]

    def unload(self, name: str) -> bool:
        with self._lock:
            session = self._sessions.pop(name, None)
        if session is not None:
            logger.info(f"Unloaded session {name}")
        return session is not None

    def names(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


_MANAGER: Optional[SessionManager] = None
_MANAGER_LOCK = threading.Lock()


def get_manager(config: Optional[SessionConfig] = None) -> SessionManager:
    """
    Get or create the process-wide SessionManager.

    Args:
        config: Used only when the manager is first created; defaults to
            SessionConfig.from_env()
    """
    global _MANAGER
    with _MANAGER_LOCK:
        if _MANAGER is None:
            _MANAGER = SessionManager(config or SessionConfig.from_env())
        return _MANAGER


def load_session(
    model_path: PathLike,
    providers: Optional[Sequence[str]] = None,
    **kwargs,
) -> Session:
    """
    Convenience function to load a session through the global manager.

    Example:
        >>> session = load_session('outputs/model.onnx')
        >>> outputs = session.run({'x': [[1.0, 2.0, 3.0]]})
    """
    return get_manager().load(model_path, providers=providers, **kwargs)
