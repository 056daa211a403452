"""Process-wide onnxruntime initialization.

``ensure_initialized()`` runs the native runtime setup at most once per
process. Concurrent first callers block on a lock until that single attempt
resolves; everyone afterwards gets the recorded outcome.

A failed attempt is logged as a warning and never raised: sessions are still
attempted (and fail on their own terms if the runtime is really unusable).

Environment:
    ORT_DYLIB_PATH: Path to an onnxruntime shared library. It is checked and
        loaded with ctypes during initialization and reported by
        runtime_info(), but the Python bindings have already imported their
        bundled library by then, so sessions keep using that one. A missing
        or unloadable file makes initialization fail. Unset or empty means
        the bundled library.
"""

import ctypes
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ..log import get_logger

try:
    import onnxruntime as ort
    ONNX_AVAILABLE = True
except ImportError:
    ONNX_AVAILABLE = False
    ort = None

logger = get_logger(__name__)

DYLIB_ENV_VAR = "ORT_DYLIB_PATH"


@dataclass(frozen=True)
class RuntimeOutcome:
    """Result of the one initialization attempt"""
    initialized: bool
    library_path: Optional[str] = None
    error: Optional[str] = None


_outcome: Optional[RuntimeOutcome] = None
_lock = threading.Lock()


def bundled_library_path() -> Optional[str]:
    """Native extension shipped inside the onnxruntime wheel, if importable"""
    if not ONNX_AVAILABLE:
        return None
    capi_dir = Path(ort.__file__).parent / "capi"
    candidates = sorted(capi_dir.glob("onnxruntime_pybind11_state*"))
    return str(candidates[0]) if candidates else str(capi_dir)


def library_path() -> Optional[str]:
    """ORT_DYLIB_PATH when set and non-empty, else the bundled library"""
    override = os.environ.get(DYLIB_ENV_VAR, "").strip()
    if override:
        return override
    return bundled_library_path()


def _initialize(log_severity_level: int) -> RuntimeOutcome:
    if not ONNX_AVAILABLE:
        raise ImportError(
            "ONNX Runtime not installed. Install with: pip install onnxruntime"
        )

    override = os.environ.get(DYLIB_ENV_VAR, "").strip()
    if override:
        if not os.path.exists(override):
            raise FileNotFoundError(
                f"{DYLIB_ENV_VAR} points to a missing library: {override}"
            )
        ctypes.CDLL(override)
        logger.info(f"Preloaded onnxruntime library from {override}")

    ort.set_default_logger_severity(log_severity_level)
    providers = ort.get_available_providers()
    logger.info(
        f"onnxruntime {ort.__version__} initialized "
        f"(device={ort.get_device()}, providers={providers})"
    )
    return RuntimeOutcome(initialized=True, library_path=library_path())


def ensure_initialized(log_severity_level: int = 3) -> bool:
    """
    Initialize the native runtime once per process.

    Args:
        log_severity_level: onnxruntime default logger severity to apply

    Returns:
        initialized: Whether the (single) attempt succeeded
    """
    global _outcome

    # Fast path: attempt already resolved
    outcome = _outcome
    if outcome is not None:
        return outcome.initialized

    with _lock:
        if _outcome is None:
            try:
                _outcome = _initialize(log_severity_level)
            except Exception as e:
                logger.warning(f"onnxruntime initialization failed: {e}", exc_info=True)
                _outcome = RuntimeOutcome(
                    initialized=False,
                    library_path=library_path(),
                    error=str(e),
                )
        return _outcome.initialized


def reset_runtime() -> None:
    """Forget the recorded outcome so the next call attempts again (tests only)"""
    global _outcome
    with _lock:
        _outcome = None


def runtime_outcome() -> Optional[RuntimeOutcome]:
    return _outcome


def runtime_info() -> Dict[str, Any]:
    """
    Describe the onnxruntime installation.

    Returns:
        info: version, device, available providers, library path,
            initialized flag and the last initialization error
    """
    outcome = _outcome
    info: Dict[str, Any] = {
        "available": ONNX_AVAILABLE,
        "version": ort.__version__ if ONNX_AVAILABLE else None,
        "device": ort.get_device() if ONNX_AVAILABLE else None,
        "providers": ort.get_available_providers() if ONNX_AVAILABLE else [],
        "library_path": library_path(),
        "initialized": bool(outcome and outcome.initialized),
        "error": outcome.error if outcome else None,
    }
    return info


def check_runtime_available() -> bool:
    """True when onnxruntime imports and initialization succeeded"""
    return ONNX_AVAILABLE and ensure_initialized()
