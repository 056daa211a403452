"""
SessionConfig tests: defaults, environment, YAML and SessionOptions mapping.
"""

import pytest

from onnxbridge.config import SessionConfig


class TestDefaults:
    def test_defaults(self):
        config = SessionConfig()
        assert config.graph_optimization_level == "all"
        assert config.execution_mode == "sequential"
        assert config.intra_op_num_threads == 0
        assert config.log_severity_level == 3
        assert config.providers is None

    def test_values_are_normalized(self):
        config = SessionConfig(graph_optimization_level="BASIC", providers="cuda, cpu")
        assert config.graph_optimization_level == "basic"
        assert config.providers == ["cuda", "cpu"]

    @pytest.mark.parametrize("kwargs", [
        {"graph_optimization_level": "turbo"},
        {"execution_mode": "async"},
        {"intra_op_num_threads": -1},
        {"log_severity_level": 7},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            SessionConfig(**kwargs)


def test_from_env():
    config = SessionConfig.from_env({
        "ONNXBRIDGE_PROVIDERS": "cuda,cpu",
        "ONNXBRIDGE_INTRA_OP_NUM_THREADS": "4",
        "ONNXBRIDGE_EXECUTION_MODE": "parallel",
        "ONNXBRIDGE_MODEL_DIR": "",
        "UNRELATED": "x",
    })
    assert config.providers == ["cuda", "cpu"]
    assert config.intra_op_num_threads == 4
    assert config.execution_mode == "parallel"
    assert config.model_dir is None


class TestYaml:
    def test_save_and_load(self, tmp_path):
        path = tmp_path / "nested" / "session.yaml"
        original = SessionConfig(intra_op_num_threads=2, providers=["coreml", "cpu"])
        original.save_yaml(str(path))
        assert SessionConfig.from_yaml(str(path)) == original

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert SessionConfig.from_yaml(str(path)) == SessionConfig()

    def test_unknown_keys_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("graph_optimization_level: all\nbatch_size: 8\n")
        with pytest.raises(ValueError, match="batch_size"):
            SessionConfig.from_yaml(str(path))

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- cuda\n- cpu\n")
        with pytest.raises(ValueError):
            SessionConfig.from_yaml(str(path))


def test_to_session_options():
    ort = pytest.importorskip("onnxruntime")
    options = SessionConfig(
        graph_optimization_level="basic",
        execution_mode="parallel",
        intra_op_num_threads=2,
        log_severity_level=4,
    ).to_session_options()
    assert options.graph_optimization_level == ort.GraphOptimizationLevel.ORT_ENABLE_BASIC
    assert options.execution_mode == ort.ExecutionMode.ORT_PARALLEL
    assert options.intra_op_num_threads == 2
    assert options.log_severity_level == 4
