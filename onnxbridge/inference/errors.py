"""
Error taxonomy for session loading and inference.

Every failure inside onnxbridge surfaces as exactly one of five kinds:
ModelLoadError, ProviderError, ValidationError, DataConversionError and
InferenceError. The subclasses below narrow a kind down to a specific
cause and carry the offending tensor or provider name in ``name``.
"""

from typing import Optional


class OnnxBridgeError(Exception):
    """Base class for all onnxbridge errors"""

    def __init__(self, message: str, name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.name = name


class ModelLoadError(OnnxBridgeError):
    """Model file missing, unreadable, unparseable, or the engine failed to build it"""


class ProviderError(OnnxBridgeError):
    """Execution provider could not be resolved or was rejected by the engine"""


class UnknownProviderError(ProviderError):
    def __init__(self, name: str):
        super().__init__(f"Unknown execution provider: '{name}'", name=name)


class ValidationError(OnnxBridgeError):
    """Caller input bag (or the session itself) is malformed"""


class EmptyInputError(ValidationError):
    def __init__(self):
        super().__init__("inputs cannot be empty. At least one input tensor is required.")


class UnnamedInputError(ValidationError):
    def __init__(self, detail: str = "inputs must be a mapping of input name to value"):
        super().__init__(f"All inputs must be named: {detail}")


class MissingRequiredInputError(ValidationError):
    def __init__(self, name: str):
        super().__init__(f"Required input '{name}' not provided", name=name)


class UnexpectedInputError(ValidationError):
    def __init__(self, name: str):
        super().__init__(f"Unexpected input '{name}' provided", name=name)


class MalformedSessionError(ValidationError):
    pass


class DataConversionError(OnnxBridgeError):
    """Value could not be converted between host data and engine tensors"""


class NotConvertibleError(DataConversionError):
    def __init__(self, name: str, type_name: str):
        super().__init__(
            f"Input '{name}' must be numeric or text, got {type_name}", name=name
        )


class ShapeMismatchError(DataConversionError):
    pass


class UnsupportedTypeError(DataConversionError):
    def __init__(self, name: str, dtype: str):
        super().__init__(
            f"Output '{name}' has unsupported element type {dtype} "
            f"(expected float32 or float64)",
            name=name,
        )


class InferenceError(OnnxBridgeError):
    """The engine failed to execute, or its result is incomplete"""


class MissingOutputError(InferenceError):
    def __init__(self, name: str):
        super().__init__(f"Output '{name}' not found in inference result", name=name)
