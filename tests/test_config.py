"""
Unit tests for labguard/config.py
"""
from pathlib import Path

import pytest

from labguard.config import (
    DetectionConfig,
    ErrorPolicy,
    Granularity,
    load_config,
)
from labguard.detectors import DataFlowDetector, PatternMatchingDetector, TreeEditDetector
from labguard.errors import ConfigError


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run inside an empty directory so no labguard.yaml is picked up."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestDefaults:
    """Tests for default configuration values."""

    def test_defaults(self, workdir):
        config = load_config()
        assert config.threshold == 0.7
        assert config.granularity == Granularity.CLASS
        assert config.detector == "tree"
        assert config.class_grouping.step == 500
        assert config.method_grouping.step == 150
        assert config.class_grouping.max_length_delta is None
        assert config.error_policy == ErrorPolicy.CONTINUE
        assert config.cache_root == Path("lab_cache")
        assert config.workers >= 1
        assert config.linter.enabled is True
        assert config.max_subproblems == 25_000_000

    def test_build_detector_uses_label_costs(self):
        config = DetectionConfig(label_costs={"Name": 0.25}, max_subproblems=1000)
        detector = config.build_detector()
        assert isinstance(detector, TreeEditDetector)
        assert detector.cost_model.base_cost("Name") == 0.25
        assert detector.engine.max_subproblems == 1000

    def test_pattern_and_dataflow_detectors_selectable(self):
        assert isinstance(DetectionConfig(detector="patterns").build_detector(), PatternMatchingDetector)
        assert isinstance(DetectionConfig(detector="dataflow").build_detector(), DataFlowDetector)

    def test_build_linter(self):
        config = DetectionConfig.model_validate({"linter": {"enabled": False, "timeout": 3}})
        linter = config.build_linter()
        assert linter.enabled is False
        assert linter.timeout == 3


class TestLoadConfig:
    """Tests for load_config function."""

    def test_yaml_values(self, workdir):
        path = workdir / "custom.yaml"
        path.write_text(
            "threshold: 0.85\n"
            "granularity: method\n"
            "error_policy: fail_fast\n"
            "method_grouping:\n"
            "  step: 80\n"
            "  max_length_delta: 40\n",
            encoding="utf-8",
        )
        config = load_config(path)
        assert config.threshold == 0.85
        assert config.granularity == Granularity.METHOD
        assert config.error_policy == ErrorPolicy.FAIL_FAST
        assert config.method_grouping.step == 80
        assert config.method_grouping.max_length_delta == 40

    def test_default_file_picked_up(self, workdir):
        (workdir / "labguard.yaml").write_text("detector: ensemble\n", encoding="utf-8")
        assert load_config().detector == "ensemble"

    def test_empty_file_means_defaults(self, workdir):
        path = workdir / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path).threshold == 0.7

    def test_env_overrides_file(self, workdir, monkeypatch):
        path = workdir / "config.yaml"
        path.write_text("threshold: 0.9\nworkers: 8\n", encoding="utf-8")
        monkeypatch.setenv("LABGUARD_THRESHOLD", "0.6")
        monkeypatch.setenv("LABGUARD_WORKERS", "3")
        monkeypatch.setenv("LABGUARD_CACHE_ROOT", "/tmp/labs")
        config = load_config(path)
        assert config.threshold == 0.6
        assert config.workers == 3
        assert config.cache_root == Path("/tmp/labs")

    def test_keyword_overrides_win(self, workdir, monkeypatch):
        monkeypatch.setenv("LABGUARD_THRESHOLD", "0.6")
        config = load_config(threshold=0.95, granularity=None)
        assert config.threshold == 0.95
        assert config.granularity == Granularity.CLASS

    def test_missing_explicit_file(self, workdir):
        with pytest.raises(ConfigError, match="not found"):
            load_config(workdir / "absent.yaml")

    @pytest.mark.parametrize("content", [
        "threshold: 1.5\n",
        "detector: moss\n",
        "granularity: line\n",
        "workers: 0\n",
        "class_grouping:\n  step: 0\n",
        "label_costs:\n  Name: -2\n",
    ])
    def test_invalid_values(self, workdir, content):
        path = workdir / "bad.yaml"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_not_a_mapping(self, workdir):
        path = workdir / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_malformed_yaml(self, workdir):
        path = workdir / "broken.yaml"
        path.write_text("threshold: [0.5\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path)
