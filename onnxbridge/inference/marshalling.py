"""
Conversion between host values and onnxruntime tensors.

Inputs are classified once, at the boundary, into NumericValue or TextValue.
Numeric inputs always cross into the engine as float32 (the canonical wire
type) and outputs always come back as float64, whatever the engine produced
(float32 or float64). Round trips therefore widen precision; they are not
identity preserving.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import (
    MissingOutputError,
    NotConvertibleError,
    ShapeMismatchError,
    UnsupportedTypeError,
)
from .tensor_info import DYNAMIC_DIM, TensorInfo
from ..log import get_logger

logger = get_logger(__name__)

# Element type numeric inputs are normalized to before reaching the engine
WIRE_DTYPE = np.float32

# Output extraction order: canonical type first, then the secondary one
OUTPUT_DTYPES = (np.float32, np.float64)

# Representation handed back to callers
HOST_DTYPE = np.float64

_NUMERIC_KINDS = "fiub"


@dataclass(frozen=True)
class NumericValue:
    """Numeric array in caller layout (shape plus row-major data)"""
    array: np.ndarray

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(self.array.shape)

    @property
    def flat(self) -> np.ndarray:
        return self.array.ravel()


@dataclass(frozen=True)
class TextValue:
    """Ordered sequence of strings, always encoded as a 1-D string tensor"""
    values: Tuple[str, ...]

    @property
    def shape(self) -> Tuple[int, ...]:
        return (len(self.values),)


TensorValue = Union[NumericValue, TextValue]


@dataclass
class EncodedInputs:
    """Engine-ready feeds, partitioned by tensor kind"""
    numeric: Dict[str, np.ndarray] = field(default_factory=dict)
    text: Dict[str, np.ndarray] = field(default_factory=dict)

    def feed(self) -> Dict[str, np.ndarray]:
        merged = dict(self.numeric)
        merged.update(self.text)
        return merged


def _all_strings(values: Sequence[Any]) -> bool:
    return len(values) > 0 and all(isinstance(v, str) for v in values)


def to_tensor_value(name: str, value: Any) -> TensorValue:
    """
    Classify a host value as numeric or text.

    Args:
        name: Input name (for error messages)
        value: str, sequence of str, numpy array, number or nested numeric list

    Returns:
        tensor_value: NumericValue or TextValue

    Raises:
        NotConvertibleError: If the value is neither numeric nor text
    """
    if isinstance(value, (NumericValue, TextValue)):
        return value

    if isinstance(value, str):
        return TextValue((value,))

    if isinstance(value, np.ndarray):
        if value.dtype.kind in _NUMERIC_KINDS:
            return NumericValue(value)
        if value.dtype.kind in "US":
            return TextValue(tuple(str(v) for v in value.ravel()))
        if value.dtype.kind == "O" and _all_strings(list(value.ravel())):
            return TextValue(tuple(value.ravel()))
        raise NotConvertibleError(name, f"array of {value.dtype}")

    if isinstance(value, (bool, int, float, np.number, np.bool_)):
        return NumericValue(np.asarray(value))

    if isinstance(value, (list, tuple)):
        if _all_strings(value):
            return TextValue(tuple(value))
        try:
            array = np.asarray(value)
        except (ValueError, TypeError) as e:
            raise NotConvertibleError(name, f"ragged {type(value).__name__}") from e
        if array.dtype.kind in _NUMERIC_KINDS:
            return NumericValue(array)
        if array.dtype.kind in "US":
            # Nested string lists flatten like string arrays; mixed lists do not
            leaves = list(np.asarray(value, dtype=object).ravel())
            if _all_strings(leaves):
                return TextValue(tuple(leaves))
        raise NotConvertibleError(name, f"{type(value).__name__} of {array.dtype}")

    raise NotConvertibleError(name, type(value).__name__)


def effective_shape(
    declared: Optional[Sequence[int]],
    actual: Sequence[int],
) -> Tuple[int, ...]:
    """
    Shape used to interpret a numeric input's data.

    The caller's own shape wins when the model declares a zero or dynamic
    dimension (or nothing at all); otherwise the declared shape is used,
    with any dynamic dimension coerced to 1.
    """
    if declared is None:
        return tuple(actual)
    if any(dim == 0 or dim == DYNAMIC_DIM for dim in declared):
        return tuple(actual)
    return tuple(1 if dim == DYNAMIC_DIM else int(dim) for dim in declared)


def encode_numeric(name: str, value: NumericValue, declared: Optional[Sequence[int]]) -> np.ndarray:
    shape = effective_shape(declared, value.shape)
    expected = int(np.prod(shape, dtype=np.int64))
    if value.array.size != expected:
        raise ShapeMismatchError(
            f"Shape mismatch for input '{name}': {value.array.size} elements "
            f"cannot fill shape {list(shape)} ({expected} elements)",
            name=name,
        )

    array = np.ascontiguousarray(value.array, dtype=WIRE_DTYPE).reshape(shape)
    if not np.all(np.isfinite(array)):
        logger.warning(
            f"Input '{name}' contains NaN or infinite values. "
            f"This may cause inference to fail."
        )
    return array


def encode_text(value: TextValue) -> np.ndarray:
    return np.array(value.values, dtype=object).reshape(value.shape)


def encode_inputs(
    input_info: Mapping[str, TensorInfo],
    inputs: Mapping[str, Any],
) -> EncodedInputs:
    """
    Encode a validated input bag into onnxruntime feeds.

    Args:
        input_info: Declared TensorInfo per input name
        inputs: Caller's input bag

    Returns:
        encoded: Numeric (float32) and text (object) feeds

    Raises:
        DataConversionError: On an unconvertible value or shape mismatch
    """
    encoded = EncodedInputs()
    for name, raw in inputs.items():
        value = to_tensor_value(name, raw)
        if isinstance(value, TextValue):
            encoded.text[name] = encode_text(value)
        else:
            info = input_info.get(name)
            declared = info.shape if info is not None else None
            encoded.numeric[name] = encode_numeric(name, value, declared)
    return encoded


def _extract(name: str, value: Any) -> np.ndarray:
    if not isinstance(value, np.ndarray):
        raise UnsupportedTypeError(name, type(value).__name__)
    for dtype in OUTPUT_DTYPES:
        if value.dtype == dtype:
            return value
    raise UnsupportedTypeError(name, str(value.dtype))


def decode_outputs(
    output_names: Sequence[str],
    results: Mapping[str, Any],
) -> Dict[str, np.ndarray]:
    """
    Decode engine results in the session's declared output order.

    Args:
        output_names: Declared output names
        results: Engine output name -> value

    Returns:
        outputs: Declared name -> float64 array in the runtime shape

    Raises:
        MissingOutputError: If a declared output is absent from ``results``
        UnsupportedTypeError: If an output is neither float32 nor float64
    """
    decoded: Dict[str, np.ndarray] = {}
    for name in output_names:
        if name not in results:
            raise MissingOutputError(name)
        array = _extract(name, results[name])
        decoded[name] = array.astype(HOST_DTYPE).reshape(array.shape)
    return decoded
