"""
Tensor metadata for a loaded model's inputs and outputs.

TensorInfo records are derived from onnxruntime NodeArg objects and cached
per session by TensorInfoCache; the model's signature never changes after
load, so each side is computed at most once.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

# Sentinel for a dimension whose size is only known at inference time
DYNAMIC_DIM = -1

# onnxruntime NodeArg.type -> numpy style tag
ORT_TYPE_TAGS = {
    "tensor(float)": "float32",
    "tensor(double)": "float64",
    "tensor(float16)": "float16",
    "tensor(bfloat16)": "bfloat16",
    "tensor(int8)": "int8",
    "tensor(int16)": "int16",
    "tensor(int32)": "int32",
    "tensor(int64)": "int64",
    "tensor(uint8)": "uint8",
    "tensor(uint16)": "uint16",
    "tensor(uint32)": "uint32",
    "tensor(uint64)": "uint64",
    "tensor(bool)": "bool",
    "tensor(string)": "string",
}


@dataclass(frozen=True)
class TensorInfo:
    """
    Name, declared shape and element type of one model input or output.

    Attributes:
        name: Tensor name as declared by the model
        shape: Dimensions, DYNAMIC_DIM (-1) for dynamic or unknown ones
        data_type: numpy style tag ('float32', 'int64', 'string', ...)
    """
    name: str
    shape: Tuple[int, ...]
    data_type: str

    @property
    def is_dynamic(self) -> bool:
        return any(dim == DYNAMIC_DIM for dim in self.shape)

    @property
    def is_text(self) -> bool:
        return self.data_type == "string"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "name": self.name,
            "shape": list(self.shape),
            "data_type": self.data_type,
        }

    def __str__(self) -> str:
        dims = " x ".join(str(d) for d in self.shape)
        return f"{self.name}: {dims} ({self.data_type})"


def normalize_shape(shape: Optional[Sequence[Any]]) -> Tuple[int, ...]:
    """
    Best-effort static shape from an engine reported shape.

    Symbolic names ('batch'), None and negative dims become DYNAMIC_DIM.
    An unknown rank (None) is recorded as a single dynamic dimension.
    """
    if shape is None:
        return (DYNAMIC_DIM,)
    dims = []
    for dim in shape:
        if isinstance(dim, (int, np.integer)) and dim >= 0:
            dims.append(int(dim))
        else:
            dims.append(DYNAMIC_DIM)
    return tuple(dims)


def type_tag(ort_type: Optional[str]) -> str:
    if ort_type is None:
        return "unknown"
    return ORT_TYPE_TAGS.get(ort_type, ort_type)


def tensor_info_from_node_arg(node_arg: Any) -> TensorInfo:
    """Build TensorInfo from an onnxruntime NodeArg"""
    return TensorInfo(
        name=node_arg.name,
        shape=normalize_shape(node_arg.shape),
        data_type=type_tag(node_arg.type),
    )


class TensorInfoCache:
    """
    Write-once, thread-safe cache of a session's input and output metadata.

    Each side is computed on first access under a lock (double-checked),
    then served without locking.
    """

    def __init__(
        self,
        inputs_loader: Callable[[], Sequence[Any]],
        outputs_loader: Callable[[], Sequence[Any]],
    ):
        """
        Args:
            inputs_loader: Returns the engine's input NodeArgs
            outputs_loader: Returns the engine's output NodeArgs
        """
        self._loaders = {"inputs": inputs_loader, "outputs": outputs_loader}
        self._cells: Dict[str, List[TensorInfo]] = {}
        self._lock = threading.Lock()

    def _get(self, side: str) -> List[TensorInfo]:
        cached = self._cells.get(side)
        if cached is not None:
            return list(cached)

        with self._lock:
            if side not in self._cells:
                self._cells[side] = [
                    tensor_info_from_node_arg(arg) for arg in self._loaders[side]()
                ]
            return list(self._cells[side])

    def inputs(self) -> List[TensorInfo]:
        return self._get("inputs")

    def outputs(self) -> List[TensorInfo]:
        return self._get("outputs")

    def is_populated(self, side: str) -> bool:
        return side in self._cells
