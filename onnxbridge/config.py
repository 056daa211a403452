"""
Session configuration.

Settings come from three places, later ones overriding earlier ones only
when loaded explicitly:
- dataclass defaults
- ONNXBRIDGE_* environment variables (SessionConfig.from_env)
- a YAML file (SessionConfig.from_yaml)

Example YAML:
    graph_optimization_level: all
    execution_mode: sequential
    intra_op_num_threads: 4
    providers: [cuda, cpu]
    model_dir: models/
"""

import os
from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

try:
    import onnxruntime as ort
    ONNX_AVAILABLE = True
except ImportError:
    ONNX_AVAILABLE = False

ENV_PREFIX = "ONNXBRIDGE_"

GRAPH_OPTIMIZATION_LEVELS = ("disabled", "basic", "extended", "all")
EXECUTION_MODES = ("sequential", "parallel")


def _parse_providers(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    names = [name.strip() for name in value.split(",") if name.strip()]
    return names or None


@dataclass
class SessionConfig:
    """
    Engine settings applied to every session a SessionManager loads.

    Attributes:
        graph_optimization_level: 'disabled', 'basic', 'extended' or 'all'
        execution_mode: 'sequential' or 'parallel'
        intra_op_num_threads: Threads inside an operator (0 = engine default)
        inter_op_num_threads: Threads across operators (0 = engine default)
        log_severity_level: onnxruntime log severity (0 verbose .. 4 fatal)
        providers: Default provider request, None for the platform default
        model_dir: Directory searched for relative model paths
    """
    graph_optimization_level: str = "all"
    execution_mode: str = "sequential"
    intra_op_num_threads: int = 0
    inter_op_num_threads: int = 0
    log_severity_level: int = 3
    providers: Optional[List[str]] = None
    model_dir: Optional[str] = None

    def __post_init__(self):
        self.graph_optimization_level = str(self.graph_optimization_level).lower()
        self.execution_mode = str(self.execution_mode).lower()
        if self.graph_optimization_level not in GRAPH_OPTIMIZATION_LEVELS:
            raise ValueError(
                f"Unsupported graph_optimization_level: {self.graph_optimization_level}. "
                f"Use one of {', '.join(GRAPH_OPTIMIZATION_LEVELS)}"
            )
        if self.execution_mode not in EXECUTION_MODES:
            raise ValueError(
                f"Unsupported execution_mode: {self.execution_mode}. "
                f"Use one of {', '.join(EXECUTION_MODES)}"
            )
        for name in ("intra_op_num_threads", "inter_op_num_threads"):
            value = int(getattr(self, name))
            if value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")
            setattr(self, name, value)
        self.log_severity_level = int(self.log_severity_level)
        if not 0 <= self.log_severity_level <= 4:
            raise ValueError(
                f"log_severity_level must be between 0 and 4, got {self.log_severity_level}"
            )
        if isinstance(self.providers, str):
            self.providers = _parse_providers(self.providers)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "SessionConfig":
        """Build a config from ONNXBRIDGE_* environment variables"""
        environ = os.environ if environ is None else environ
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            if f.name == "providers":
                kwargs[f.name] = _parse_providers(raw)
            elif f.name in ("intra_op_num_threads", "inter_op_num_threads", "log_severity_level"):
                kwargs[f.name] = int(raw)
            else:
                kwargs[f.name] = raw
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, config_path: str) -> "SessionConfig":
        """
        Load config from YAML file.

        Args:
            config_path: Path to YAML file

        Returns:
            config: SessionConfig with the file's values over the defaults

        Raises:
            ValueError: If the file holds unknown keys or is not a mapping
        """
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_path} must contain a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys in {config_path}: {', '.join(unknown)}")

        return cls(**data)

    def save_yaml(self, output_path: str) -> None:
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_session_options(self) -> "ort.SessionOptions":
        """Translate this config into onnxruntime SessionOptions"""
        if not ONNX_AVAILABLE:
            raise ImportError(
                "ONNX Runtime not installed. Install with: pip install onnxruntime"
            )

        levels = {
            "disabled": ort.GraphOptimizationLevel.ORT_DISABLE_ALL,
            "basic": ort.GraphOptimizationLevel.ORT_ENABLE_BASIC,
            "extended": ort.GraphOptimizationLevel.ORT_ENABLE_EXTENDED,
            "all": ort.GraphOptimizationLevel.ORT_ENABLE_ALL,
        }
        modes = {
            "sequential": ort.ExecutionMode.ORT_SEQUENTIAL,
            "parallel": ort.ExecutionMode.ORT_PARALLEL,
        }

        sess_options = ort.SessionOptions()
        sess_options.graph_optimization_level = levels[self.graph_optimization_level]
        sess_options.execution_mode = modes[self.execution_mode]
        sess_options.intra_op_num_threads = self.intra_op_num_threads
        sess_options.inter_op_num_threads = self.inter_op_num_threads
        sess_options.log_severity_level = self.log_severity_level
        return sess_options
