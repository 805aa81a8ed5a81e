"""
Unit tests for the exception hierarchy.
"""

import pytest

from outlier_explainer.core.exceptions import (
    ColumnNotFoundError,
    ConfigError,
    ConfigValidationError,
    DataLoadError,
    DataSourceNotFoundError,
    ErrorSeverity,
    ExplainerException,
    ReporterError,
    SolverConvergenceError,
    SummarizationError,
    UnsupportedFormatError,
    YAMLSizeError,
)


class TestErrorSeverity:
    """Test error severity enum."""

    def test_severity_values(self):
        """Test that all severity levels exist."""
        assert ErrorSeverity.FATAL.value == "fatal"
        assert ErrorSeverity.CRITICAL.value == "critical"
        assert ErrorSeverity.RECOVERABLE.value == "recoverable"
        assert ErrorSeverity.WARNING.value == "warning"


class TestExplainerException:
    """Test base exception class."""

    def test_basic_exception(self):
        """Test basic exception creation."""
        exc = ExplainerException("Test error")

        assert str(exc) == "Test error"
        assert exc.message == "Test error"
        assert exc.severity == ErrorSeverity.RECOVERABLE
        assert exc.details == {}
        assert exc.original_exception is None

    def test_to_dict(self):
        """Test serialization for logging and reporting."""
        original = ValueError("bad")
        exc = ExplainerException("Wrapped", details={"stage": "search"}, original_exception=original)
        result = exc.to_dict()

        assert result["type"] == "ExplainerException"
        assert result["severity"] == "recoverable"
        assert result["details"] == {"stage": "search"}
        assert result["original_error"] == "bad"


class TestConfigErrors:
    """Test configuration exceptions."""

    def test_config_error_is_fatal(self):
        """Test severity and field of configuration errors."""
        exc = ConfigError("Missing section", field="input")

        assert exc.severity == ErrorSeverity.FATAL
        assert exc.field == "input"
        assert exc.details == {"field": "input"}

    def test_validation_error_details(self):
        """Test expected and actual values."""
        exc = ConfigValidationError("Bad support", field="min_support", expected="0 <= value <= 1", actual="1.5")

        assert isinstance(exc, ConfigError)
        assert exc.details["expected"] == "0 <= value <= 1"
        assert exc.details["actual"] == "1.5"

    def test_yaml_size_error(self):
        """Test size details."""
        exc = YAMLSizeError("Too large", file_size=200, max_size=100)

        assert isinstance(exc, ConfigError)
        assert exc.details["file_size"] == 200
        assert exc.details["max_size"] == 100


class TestDataLoadErrors:
    """Test input loading exceptions."""

    def test_data_load_error_is_critical(self):
        """Test severity and URI."""
        exc = DataLoadError("Cannot parse", uri="csv://x.csv")

        assert exc.severity == ErrorSeverity.CRITICAL
        assert exc.uri == "csv://x.csv"

    def test_source_not_found(self):
        """Test path details."""
        exc = DataSourceNotFoundError("csv://missing.csv", "missing.csv")

        assert isinstance(exc, DataLoadError)
        assert exc.details["path"] == "missing.csv"
        assert "missing.csv" in exc.message

    def test_unsupported_format(self):
        """Test scheme details."""
        exc = UnsupportedFormatError("http://host/data", scheme="http", supported_schemes=["csv", "inlinecsv"])

        assert exc.details["scheme"] == "http"
        assert exc.details["supported_schemes"] == ["csv", "inlinecsv"]

    def test_column_not_found(self):
        """Test column details."""
        exc = ColumnNotFoundError("latency", available_columns=["region", "device"])

        assert exc.column == "latency"
        assert "region, device" in exc.message


class TestRunErrors:
    """Test summarization, solver and reporter exceptions."""

    def test_summarization_error(self):
        """Test that summarization errors stop the run."""
        exc = SummarizationError("Non-positive values", column="latency")

        assert exc.severity == ErrorSeverity.CRITICAL
        assert exc.details["column"] == "latency"

    def test_solver_error_is_recoverable(self):
        """Test solver diagnostics."""
        exc = SolverConvergenceError("No convergence", iterations=200, gradient_norm=0.5)

        assert exc.severity == ErrorSeverity.RECOVERABLE
        assert exc.details["iterations"] == 200

    def test_reporter_error(self):
        """Test output path details."""
        exc = ReporterError("Cannot write", output_path="/tmp/out.json")
        assert exc.details["output_path"] == "/tmp/out.json"

    def test_catch_as_base(self):
        """Test that every error is an ExplainerException."""
        with pytest.raises(ExplainerException):
            raise SummarizationError("boom")
