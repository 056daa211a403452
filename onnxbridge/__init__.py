# Expose the inference package so `onnxbridge.inference` resolves during imports
from . import inference  # noqa: F401
from .config import SessionConfig
from .inference import (
    Session,
    SessionManager,
    get_manager,
    load_session,
    resolve_providers,
)

__version__ = "0.1.0"

__all__ = [
    "inference",
    "SessionConfig",
    "Session",
    "SessionManager",
    "get_manager",
    "load_session",
    "resolve_providers",
]
