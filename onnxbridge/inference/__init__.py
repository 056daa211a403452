"""
Inference Module for onnxbridge

Session lifecycle and data marshalling around ONNX Runtime:
- SessionManager / Session: load models and run inference
- resolve_providers: execution provider negotiation
- TensorInfo: input/output metadata
- encode_inputs / decode_outputs: host value <-> tensor conversion
"""

from .errors import (
    DataConversionError,
    EmptyInputError,
    InferenceError,
    MalformedSessionError,
    MissingOutputError,
    MissingRequiredInputError,
    ModelLoadError,
    NotConvertibleError,
    OnnxBridgeError,
    ProviderError,
    ShapeMismatchError,
    UnexpectedInputError,
    UnknownProviderError,
    UnnamedInputError,
    UnsupportedTypeError,
    ValidationError,
)
from .marshalling import NumericValue, TextValue, decode_outputs, encode_inputs
from .providers import ProviderKind, ProviderSpec, resolve_providers
from .runtime import check_runtime_available, ensure_initialized, runtime_info
from .session import Session, SessionManager, get_manager, load_session
from .tensor_info import DYNAMIC_DIM, TensorInfo, TensorInfoCache

__all__ = [
    'Session',
    'SessionManager',
    'get_manager',
    'load_session',
    'ProviderKind',
    'ProviderSpec',
    'resolve_providers',
    'TensorInfo',
    'TensorInfoCache',
    'DYNAMIC_DIM',
    'NumericValue',
    'TextValue',
    'encode_inputs',
    'decode_outputs',
    'ensure_initialized',
    'runtime_info',
    'check_runtime_available',
    'OnnxBridgeError',
    'ModelLoadError',
    'ProviderError',
    'UnknownProviderError',
    'ValidationError',
    'EmptyInputError',
    'UnnamedInputError',
    'MissingRequiredInputError',
    'UnexpectedInputError',
    'MalformedSessionError',
    'DataConversionError',
    'NotConvertibleError',
    'ShapeMismatchError',
    'UnsupportedTypeError',
    'InferenceError',
    'MissingOutputError',
]
