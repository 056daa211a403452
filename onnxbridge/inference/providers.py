"""
Execution provider resolution.

Turns the provider names a caller asks for (or none) into an ordered,
deduplicated list of ProviderSpec that always contains CPU, so a session
can never be built without a usable fallback.

Example:
    >>> resolve_providers(["cuda"])
    [ProviderSpec(kind=<ProviderKind.CUDA: 'cuda'>, ...), ProviderSpec(kind=<ProviderKind.CPU: 'cpu'>, ...)]
"""

import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import UnknownProviderError
from ..log import get_logger

logger = get_logger(__name__)


class ProviderKind(Enum):
    """Execution backends onnxbridge knows how to request"""
    CPU = "cpu"
    CUDA = "cuda"
    TENSORRT = "tensorrt"
    DIRECTML = "directml"
    ONEDNN = "onednn"
    COREML = "coreml"


# onnxruntime provider name for every kind
ORT_PROVIDER_NAMES = {
    ProviderKind.CPU: "CPUExecutionProvider",
    ProviderKind.CUDA: "CUDAExecutionProvider",
    ProviderKind.TENSORRT: "TensorrtExecutionProvider",
    ProviderKind.DIRECTML: "DmlExecutionProvider",
    ProviderKind.ONEDNN: "DnnlExecutionProvider",
    ProviderKind.COREML: "CoreMLExecutionProvider",
}

# Backend specific provider_options passed to InferenceSession
DEFAULT_OPTIONS = {
    ProviderKind.CPU: {},
    ProviderKind.CUDA: {"device_id": 0},
    ProviderKind.TENSORRT: {"device_id": 0},
    ProviderKind.DIRECTML: {"device_id": 0},
    ProviderKind.ONEDNN: {},
    ProviderKind.COREML: {},
}

# Full catalog offered when nothing is requested, CPU last
CATALOG_ORDER = [
    ProviderKind.TENSORRT,
    ProviderKind.CUDA,
    ProviderKind.DIRECTML,
    ProviderKind.ONEDNN,
    ProviderKind.COREML,
    ProviderKind.CPU,
]

# Platform-native accelerator tried first on its platform
PLATFORM_PREFERRED = {
    "darwin": ProviderKind.COREML,
    "win32": ProviderKind.DIRECTML,
}

_ALIASES = {
    "dml": ProviderKind.DIRECTML,
    "dnnl": ProviderKind.ONEDNN,
    "trt": ProviderKind.TENSORRT,
}


@dataclass(frozen=True)
class ProviderSpec:
    """
    A requested execution backend plus its backend specific options.

    Attributes:
        kind: Which backend
        options: provider_options handed to onnxruntime for this backend
    """
    kind: ProviderKind
    options: Dict[str, object] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def default(cls, kind: ProviderKind) -> "ProviderSpec":
        return cls(kind=kind, options=dict(DEFAULT_OPTIONS[kind]))

    @property
    def ort_name(self) -> str:
        return ORT_PROVIDER_NAMES[self.kind]

    def __str__(self) -> str:
        return self.kind.value


def _lookup() -> Dict[str, ProviderKind]:
    table = {kind.value: kind for kind in ProviderKind}
    table.update({name.lower(): kind for kind, name in ORT_PROVIDER_NAMES.items()})
    table.update(_ALIASES)
    return table


_LOOKUP = _lookup()


def parse_provider(name: str) -> ProviderKind:
    """
    Map a provider name (case-insensitive) to its kind.

    Raises:
        UnknownProviderError: If the name matches no known backend
    """
    if not isinstance(name, str):
        raise UnknownProviderError(repr(name))
    kind = _LOOKUP.get(name.strip().lower())
    if kind is None:
        raise UnknownProviderError(name)
    return kind


def default_providers(platform: Optional[str] = None) -> List[ProviderSpec]:
    """
    Platform dependent default ordering.

    The whole catalog is offered so onnxruntime can pick among the
    backends compiled into this build; the platform-native accelerator
    goes first and CPU stays last.
    """
    platform = platform or sys.platform
    order = list(CATALOG_ORDER)
    preferred = PLATFORM_PREFERRED.get(platform)
    if preferred is not None:
        order.remove(preferred)
        order.insert(0, preferred)
    return [ProviderSpec.default(kind) for kind in order]


def resolve_providers(
    requested: Optional[Sequence[str]] = None,
    platform: Optional[str] = None,
) -> List[ProviderSpec]:
    """
    Resolve requested provider names into an ordered list of ProviderSpec.

    Args:
        requested: Provider names such as ["cuda", "cpu"], or None / [] for
            the platform default ordering
        platform: Override for sys.platform (used by the default ordering)

    Returns:
        specs: Deduplicated specs in first-seen order, CPU guaranteed present

    Raises:
        UnknownProviderError: If any requested name is not recognized
    """
    if isinstance(requested, str):
        requested = [requested]
    if not requested:
        return default_providers(platform)

    kinds: List[ProviderKind] = []
    for name in requested:
        kind = parse_provider(name)
        if kind not in kinds:
            kinds.append(kind)

    if ProviderKind.CPU not in kinds:
        kinds.append(ProviderKind.CPU)

    return [ProviderSpec.default(kind) for kind in kinds]


def filter_available(
    specs: Iterable[ProviderSpec],
    available: Iterable[str],
) -> List[ProviderSpec]:
    """
    Keep only the specs this onnxruntime build reports as available.

    CPU is always kept, so the result is never empty.
    """
    available = set(available)
    kept = []
    for spec in specs:
        if spec.kind is ProviderKind.CPU or spec.ort_name in available:
            kept.append(spec)
        else:
            logger.debug(f"Skipping unavailable provider {spec.ort_name}")
    if not any(spec.kind is ProviderKind.CPU for spec in kept):
        kept.append(ProviderSpec.default(ProviderKind.CPU))
    return kept


def provider_names(specs: Iterable[ProviderSpec]) -> List[str]:
    return [spec.ort_name for spec in specs]


def provider_options(specs: Iterable[ProviderSpec]) -> List[Dict[str, object]]:
    return [dict(spec.options) for spec in specs]

