"""
Outlier Explainer Exception Hierarchy.

Every error raised by the explainer derives from ExplainerException so callers
can catch one type and still inspect how serious the failure was.

Exception Severity Levels:
    - FATAL: Stop before the search starts (bad configuration)
    - CRITICAL: Stop the current run (input cannot be loaded or summarized)
    - RECOVERABLE: Handled inside the core with a documented fallback
    - WARNING: Log and continue
"""

from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorSeverity(Enum):
    """
    Classify error severity for handling decisions.

    Attributes:
        FATAL: Unrecoverable error, nothing is run
        CRITICAL: Run-level error, the current run is aborted
        RECOVERABLE: Numeric or per-candidate error with a fallback
        WARNING: Non-critical issue, log and continue
    """
    FATAL = "fatal"
    CRITICAL = "critical"
    RECOVERABLE = "recoverable"
    WARNING = "warning"


class ExplainerException(Exception):
    """
    Base exception for all explainer errors with enhanced context.

    Attributes:
        message (str): Human-readable error message
        severity (ErrorSeverity): Error severity level
        details (Dict[str, Any]): Additional context (column, option, stage, ...)
        original_exception (Optional[Exception]): Original exception if wrapping

    Example:
        >>> try:
        ...     frame = load_dataframe("csv://cube.csv")
        ... except OSError as e:
        ...     raise ExplainerException(
        ...         "Input could not be read",
        ...         severity=ErrorSeverity.CRITICAL,
        ...         details={'uri': 'csv://cube.csv'},
        ...         original_exception=e
        ...     )
    """

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.RECOVERABLE,
        details: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity
        self.details = details or {}
        self.original_exception = original_exception

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for logging/reporting.

        Returns:
            Dictionary containing exception details suitable for JSON serialization
        """
        return {
            'type': self.__class__.__name__,
            'message': self.message,
            'severity': self.severity.value,
            'details': self.details,
            'original_error': str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Configuration Errors (Fatal)
# ============================================================================

class ConfigError(ExplainerException):
    """
    Configuration errors (fatal - nothing is run).

    Raised when:
    - Job file not found or not valid YAML
    - Required sections missing
    - An option has a value the search cannot work with

    Attributes:
        field (Optional[str]): Specific config field that caused error
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            severity=ErrorSeverity.FATAL,
            details={'field': field} if field else {}
        )
        self.field = field


class YAMLSizeError(ConfigError):
    """Job file exceeds the maximum accepted size."""

    def __init__(self, message: str, file_size: Optional[int] = None, max_size: Optional[int] = None):
        super().__init__(message)
        self.details.update({
            'file_size': file_size,
            'max_size': max_size
        })


class ConfigValidationError(ConfigError):
    """
    Configuration value failed validation.

    Example:
        >>> raise ConfigValidationError(
        ...     "min_support must lie in [0, 1]",
        ...     field="min_support",
        ...     expected="0 <= value <= 1",
        ...     actual="1.5"
        ... )
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[str] = None
    ):
        super().__init__(message, field)
        self.details.update({
            'expected': expected,
            'actual': actual
        })


# ============================================================================
# Data Loading Errors (Critical)
# ============================================================================

class DataLoadError(ExplainerException):
    """
    Input loading errors (critical - the run stops).

    Attributes:
        uri (str): Input URI that failed to load
    """

    def __init__(
        self,
        message: str,
        uri: str,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.CRITICAL,
            details={'uri': uri},
            original_exception=original_exception
        )
        self.uri = uri


class DataSourceNotFoundError(DataLoadError):
    """Input file referenced by a csv:// URI does not exist."""

    def __init__(self, uri: str, path: str):
        super().__init__(f"Input file not found: {path}", uri)
        self.details['path'] = path


class UnsupportedFormatError(DataLoadError):
    """
    Input URI scheme is not supported.

    Example:
        >>> raise UnsupportedFormatError(
        ...     "http://host/cube",
        ...     scheme="http",
        ...     supported_schemes=["csv", "inlinecsv"]
        ... )
    """

    def __init__(self, uri: str, scheme: str, supported_schemes: List[str]):
        super().__init__(
            f"Unsupported input scheme '{scheme}'. Supported: {', '.join(supported_schemes)}",
            uri
        )
        self.details.update({
            'scheme': scheme,
            'supported_schemes': supported_schemes
        })


class ColumnNotFoundError(DataLoadError):
    """A configured attribute or aggregate column is missing from the input."""

    def __init__(self, column: str, available_columns: List[str], uri: str = ""):
        super().__init__(
            f"Column '{column}' not found in data. Available: {', '.join(available_columns)}",
            uri
        )
        self.details.update({
            'column': column,
            'available_columns': available_columns
        })
        self.column = column


# ============================================================================
# Summarization Errors
# ============================================================================

class SummarizationError(ExplainerException):
    """
    The input cannot be summarized (critical - the run stops).

    Raised for data the aggregate layout cannot represent, such as
    non-positive measurements when log-domain moments are requested.
    """

    def __init__(
        self,
        message: str,
        column: Optional[str] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.CRITICAL,
            details={'column': column},
            original_exception=original_exception
        )


class SolverConvergenceError(ExplainerException):
    """
    Maximum-entropy solve did not converge.

    Always recoverable: callers fall back to linear interpolation between the
    sketch extrema.
    """

    def __init__(
        self,
        message: str,
        iterations: Optional[int] = None,
        gradient_norm: Optional[float] = None
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.RECOVERABLE,
            details={
                'iterations': iterations,
                'gradient_norm': gradient_norm
            }
        )


# ============================================================================
# Reporter Errors
# ============================================================================

class ReporterError(ExplainerException):
    """Writing the JSON summary failed."""

    def __init__(
        self,
        message: str,
        output_path: Optional[str] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.RECOVERABLE,
            details={'output_path': output_path},
            original_exception=original_exception
        )
