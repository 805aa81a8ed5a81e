"""
Integration tests for ExplanationEngine.

Exercises the full path: YAML job file -> CSV loading -> summarizer ->
ranked result -> JSON summary.
"""

import json

import pytest
import yaml

from outlier_explainer.core.engine import ExplanationEngine
from outlier_explainer.core.exceptions import DataSourceNotFoundError, ReporterError
from outlier_explainer.core.observers import MetricsCollectorObserver
from tests.testsuite.generators.outlier_data import make_cube, make_planted_dataset

ATTRIBUTES = ["region", "device", "app_version"]


def _write_job(path, job):
    path.write_text(yaml.safe_dump({"explanation_job": job}))
    return str(path)


def _raw_job(data_path, **extra):
    job = {
        "name": "Planted latency",
        "input": {"uri": f"csv://{data_path}", "mode": "raw", "metric": "latency_ms"},
        "attributes": ATTRIBUTES,
        "thresholds": {"min_support": 0.05, "min_ratio_metric": 2.0},
        "percentile": 5,
        "sketch": {"ka": 5},
        "search": {"max_order": 3},
    }
    job.update(extra)
    return job


@pytest.fixture(scope="module")
def planted():
    return make_planted_dataset()


@pytest.fixture
def data_file(tmp_path, planted):
    path = tmp_path / "requests.csv"
    planted.to_csv(path, index=False)
    return path


@pytest.mark.integration
class TestExplanationEngine:
    """End-to-end explanation jobs."""

    def test_raw_job_with_json_summary(self, tmp_path, data_file):
        """Test a raw-mode job writing its JSON summary."""
        summary_path = tmp_path / "out" / "summary.json"
        job_path = _write_job(
            tmp_path / "job.yaml",
            _raw_job(data_file, output={"json_summary": str(summary_path)}),
        )

        observer = MetricsCollectorObserver()
        engine = ExplanationEngine.from_config(job_path, observers=[observer])
        result = engine.run()

        top = result.explanations[0].matcher()
        assert top["region"] == "EU" and top["device"] == "mobile"
        assert observer.metrics["job_name"] == "Planted latency"

        payload = json.loads(summary_path.read_text())
        assert payload["job_name"] == "Planted latency"
        assert payload["num_total"] == 6000.0
        assert payload["explanation_count"] == len(result)
        assert payload["config"]["summarizer"]["quantile"] == pytest.approx(0.95)
        first = payload["explanations"][0]
        assert {"attribute": "region", "value": "EU"} in first["predicates"]
        assert "latency_ms^1:sum" in first["aggregates"]

    def test_inline_job(self, tmp_path, planted):
        """Test a job whose rows are embedded in the job file."""
        job = _raw_job("unused")
        job["input"] = {
            "uri": "inlinecsv",
            "content": planted.to_csv(index=False),
            "metric": "latency_ms",
        }
        result = ExplanationEngine.from_config(_write_job(tmp_path / "job.yaml", job)).run()

        assert {"region": "EU", "device": "mobile"} in [e.matcher() for e in result]

    def test_cube_job(self, tmp_path, planted):
        """Test a cube-mode job with exact outlier counts."""
        cube_path = tmp_path / "cube.csv"
        make_cube(planted, ATTRIBUTES, "latency_ms", ka=5, outlier_cutoff=88.0).to_csv(cube_path, index=False)

        job = _raw_job("unused")
        job["input"] = {
            "uri": f"csv://{cube_path}",
            "mode": "cube",
            "cube": {
                "min": "min",
                "max": "max",
                "power_sums": [f"p{i}" for i in range(5)],
                "outlier_count": "outliers",
            },
        }
        result = ExplanationEngine.from_config(_write_job(tmp_path / "job.yaml", job)).run()

        assert result.num_total() == 6000.0
        assert {"region": "EU", "device": "mobile"} in [e.matcher() for e in result]

    def test_missing_input_file(self, tmp_path):
        """Test that a missing input is reported to observers and raised."""
        observer = MetricsCollectorObserver()
        job_path = _write_job(tmp_path / "job.yaml", _raw_job(tmp_path / "absent.csv"))

        with pytest.raises(DataSourceNotFoundError):
            ExplanationEngine.from_config(job_path, observers=[observer]).run()
        assert observer.metrics["errors"][0]["context"]["stage"] == "loading"

    def test_unwritable_summary(self, tmp_path, data_file):
        """Test that a failed JSON write raises ReporterError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        job_path = _write_job(
            tmp_path / "job.yaml",
            _raw_job(data_file, output={"json_summary": str(blocker / "summary.json")}),
        )

        with pytest.raises(ReporterError):
            ExplanationEngine.from_config(job_path).run()
