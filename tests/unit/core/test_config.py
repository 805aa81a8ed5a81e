"""
Unit tests for configuration parsing and validation.
"""

import pytest

from outlier_explainer.core.config import (
    CubeColumns,
    ExplanationJobConfig,
    SummarizerConfig,
    parse_quantile,
)
from outlier_explainer.core.exceptions import ConfigError, ConfigValidationError, YAMLSizeError


def _job(**sections):
    job = {
        "name": "Latency",
        "input": {"uri": "inlinecsv", "content": "region,latency\nEU,1\n", "metric": "latency"},
        "attributes": ["region"],
    }
    job.update(sections)
    return {"explanation_job": job}


@pytest.mark.unit
class TestSummarizerConfig:
    """Test validation of summarizer options."""

    def test_defaults(self):
        """Test the default option values."""
        config = SummarizerConfig(attributes=["region", "device"])

        assert config.attributes == ("region", "device")
        assert config.quantile == 0.99
        assert config.ka == 5
        assert config.kb == 0
        assert config.max_order == 3
        assert config.metric_names == ["support", "global_ratio"]

    def test_frozen(self):
        """Test that options cannot change after construction."""
        config = SummarizerConfig(attributes=["region"])
        with pytest.raises(Exception):
            config.ka = 7

    @pytest.mark.parametrize("overrides,field", [
        ({"attributes": []}, "attributes"),
        ({"attributes": ["a", "a"]}, "attributes"),
        ({"ka": -1}, "ka/kb"),
        ({"ka": 0, "kb": 0}, "ka/kb"),
        ({"min_support": 1.5}, "min_support"),
        ({"min_ratio_metric": -0.1}, "min_ratio_metric"),
        ({"quantile": 1.0}, "quantile_cutoff"),
        ({"quantile": 0.0}, "quantile_cutoff"),
        ({"tolerance": 0.0}, "tolerance"),
        ({"use_support": False, "use_global_ratio": False}, "metrics"),
        ({"max_order": 0}, "max_order"),
        ({"max_candidates_per_level": 0}, "max_candidates_per_level"),
        ({"workers": 0}, "workers"),
        ({"chunk_size": 0}, "chunk_size"),
    ])
    def test_invalid_values(self, overrides, field):
        """Test that unusable values are rejected with the field name."""
        options = {"attributes": ["region"]}
        options.update(overrides)

        with pytest.raises(ConfigValidationError) as exc_info:
            SummarizerConfig(**options)
        assert exc_info.value.field == field

    def test_log_only_is_valid(self):
        """Test that ka = 0 is accepted when kb > 0."""
        config = SummarizerConfig(attributes=["region"], ka=0, kb=4)
        assert config.kb == 4

    def test_to_dict(self):
        """Test plain serialization."""
        result = SummarizerConfig(attributes=("region",)).to_dict()

        assert result["attributes"] == ["region"]
        assert result["min_support"] == 0.01


@pytest.mark.unit
class TestCubeColumns:
    """Test cube column declarations."""

    def test_required_columns(self):
        """Test every declared column is required."""
        cube = CubeColumns(power_sums=["n", "s1"], min="lo", max="hi", outlier_count="slow")
        assert cube.required_columns() == ["n", "s1", "lo", "hi", "slow"]

    def test_power_sums_need_extrema(self):
        """Test that standard moments need min and max."""
        with pytest.raises(ConfigValidationError):
            CubeColumns(power_sums=["n"], min="lo")

    def test_log_sums_need_log_extrema(self):
        """Test that log moments need log_min and log_max."""
        with pytest.raises(ConfigValidationError):
            CubeColumns(log_sums=["n"], log_max="hi")


@pytest.mark.unit
class TestQuantile:
    """Test resolving the outlier quantile."""

    def test_default(self):
        assert parse_quantile({}) == 0.99

    def test_percentile(self):
        """Test that percentile is the outlier share in percent."""
        assert parse_quantile({"percentile": 5}) == pytest.approx(0.95)
        assert parse_quantile({"percentile": 1}) == pytest.approx(0.99)

    def test_agreeing_values(self):
        """Test that both keys may be given when they agree."""
        assert parse_quantile({"percentile": 10, "quantile_cutoff": 0.9}) == pytest.approx(0.9)

    def test_conflict(self):
        """Test that disagreeing keys are rejected."""
        with pytest.raises(ConfigValidationError):
            parse_quantile({"percentile": 5, "quantile_cutoff": 0.99})


@pytest.mark.unit
class TestExplanationJobConfig:
    """Test parsing job files."""

    def test_minimal_raw_job(self):
        """Test a raw-mode job with defaults."""
        config = ExplanationJobConfig.from_dict(_job())

        assert config.job_name == "Latency"
        assert config.mode == "raw"
        assert config.metric_column == "latency"
        assert config.cube is None
        assert config.summarizer.attributes == ("region",)
        assert config.json_summary_path is None

    def test_full_job(self):
        """Test that every section reaches the summarizer options."""
        config = ExplanationJobConfig.from_dict(_job(
            thresholds={"min_support": 0.2, "min_ratio_metric": 5},
            percentile=5,
            sketch={"ka": 7, "kb": 3, "tolerance": "1e-8", "use_cascade": False},
            metrics=["global_ratio"],
            search={"max_order": 2, "minimal": True, "workers": 4, "chunk_size": 1000,
                    "max_candidates_per_level": 50},
            output={"json_summary": "out.json", "top": 5},
        ))
        options = config.summarizer

        assert options.min_support == 0.2
        assert options.min_ratio_metric == 5.0
        assert options.quantile == pytest.approx(0.95)
        assert (options.ka, options.kb) == (7, 3)
        assert options.tolerance == 1e-8
        assert not options.use_cascade
        assert options.metric_names == ["global_ratio"]
        assert options.max_order == 2
        assert options.minimal
        assert options.workers == 4
        assert options.chunk_size == 1000
        assert options.max_candidates_per_level == 50
        assert config.json_summary_path == "out.json"
        assert config.top == 5

    def test_cube_job_takes_moment_counts_from_columns(self):
        """Test that cube columns fix ka and kb."""
        config = ExplanationJobConfig.from_dict(_job(input={
            "uri": "csv://cube.csv",
            "mode": "cube",
            "cube": {"min": "lo", "max": "hi", "power_sums": ["n", "s1", "s2"]},
        }))

        assert config.mode == "cube"
        assert config.summarizer.ka == 3
        assert config.summarizer.kb == 0

    def test_cube_job_conflicting_ka(self):
        """Test that an explicit ka must match the cube columns."""
        with pytest.raises(ConfigValidationError):
            ExplanationJobConfig.from_dict(_job(
                input={"uri": "csv://cube.csv", "mode": "cube",
                       "cube": {"min": "lo", "max": "hi", "power_sums": ["n", "s1"]}},
                sketch={"ka": 5},
            ))

    def test_missing_root_key(self):
        """Test that the explanation_job section is required."""
        with pytest.raises(ConfigError):
            ExplanationJobConfig.from_dict({"job": {}})

    def test_missing_input(self):
        """Test that the input section is required."""
        with pytest.raises(ConfigError):
            ExplanationJobConfig.from_dict({"explanation_job": {"attributes": ["a"]}})

    def test_raw_job_needs_metric(self):
        """Test that raw mode names its measured column."""
        with pytest.raises(ConfigError):
            ExplanationJobConfig.from_dict(_job(input={"uri": "inlinecsv", "content": "a\n1\n"}))

    def test_unknown_mode(self):
        """Test that only raw and cube are accepted."""
        with pytest.raises(ConfigValidationError):
            ExplanationJobConfig.from_dict(_job(input={"uri": "csv://x.csv", "mode": "stream"}))

    def test_unknown_metric(self):
        """Test that metric names are validated."""
        with pytest.raises(ConfigValidationError):
            ExplanationJobConfig.from_dict(_job(metrics=["support", "risk_ratio"]))

    def test_attributes_must_be_list(self):
        """Test that a bare string is not accepted as attributes."""
        with pytest.raises(ConfigValidationError):
            ExplanationJobConfig.from_dict(_job(attributes="region"))

    def test_non_integer_option(self):
        """Test that integer options reject other types."""
        with pytest.raises(ConfigValidationError):
            ExplanationJobConfig.from_dict(_job(search={"max_order": "three"}))

    def test_to_dict(self):
        """Test plain serialization."""
        result = ExplanationJobConfig.from_dict(_job()).to_dict()

        assert result["job_name"] == "Latency"
        assert result["summarizer"]["attributes"] == ["region"]


@pytest.mark.unit
class TestYAMLLoading:
    """Test loading job files from disk."""

    def test_from_yaml(self, tmp_path):
        """Test a job file round trip through YAML."""
        path = tmp_path / "job.yaml"
        path.write_text(
            "explanation_job:\n"
            "  name: From file\n"
            "  input:\n"
            "    uri: csv://data.csv\n"
            "    metric: latency\n"
            "  attributes: [region, device]\n"
            "  quantile_cutoff: 0.95\n"
            "  sketch:\n"
            "    tolerance: 1e-9\n"
        )
        config = ExplanationJobConfig.from_yaml(str(path))

        assert config.job_name == "From file"
        assert config.source_path == str(path)
        assert config.summarizer.attributes == ("region", "device")
        assert config.summarizer.tolerance == 1e-9

    def test_missing_file(self, tmp_path):
        """Test that a missing file is a configuration error."""
        with pytest.raises(ConfigError):
            ExplanationJobConfig.from_yaml(str(tmp_path / "absent.yaml"))

    def test_empty_file(self, tmp_path):
        """Test that an empty file is rejected."""
        path = tmp_path / "empty.yaml"
        path.write_text("")

        with pytest.raises(ConfigError):
            ExplanationJobConfig.from_yaml(str(path))

    def test_invalid_yaml(self, tmp_path):
        """Test that a YAML syntax error is reported."""
        path = tmp_path / "broken.yaml"
        path.write_text("explanation_job: [unclosed\n")

        with pytest.raises(ConfigError):
            ExplanationJobConfig.from_yaml(str(path))

    def test_file_size_limit(self, tmp_path, monkeypatch):
        """Test that oversized files are rejected before parsing."""
        path = tmp_path / "big.yaml"
        path.write_text("explanation_job: {}\n" + "#" * 200)
        monkeypatch.setattr(ExplanationJobConfig, "MAX_YAML_FILE_SIZE", 100)

        with pytest.raises(YAMLSizeError):
            ExplanationJobConfig.from_yaml(str(path))

    def test_nesting_limit(self, monkeypatch):
        """Test that deeply nested structures are rejected."""
        monkeypatch.setattr(ExplanationJobConfig, "MAX_YAML_NESTING_DEPTH", 3)
        nested = _job(search={"a": {"b": {"c": {"d": 1}}}})

        with pytest.raises(ConfigValidationError):
            ExplanationJobConfig.from_dict(nested)
