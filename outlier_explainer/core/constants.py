"""
Outlier Explainer Constants.

This module defines the defaults and numeric limits used throughout the
explainer. Centralizing these values keeps the search, the metrics and the
moment sketch calibrated against the same numbers.
"""

# ============================================================================
# Search / Metric Defaults
# ============================================================================

# Minimum share of the global outlier count a candidate must explain
DEFAULT_MIN_SUPPORT: float = 0.01

# Minimum ratio of candidate outlier rate to global outlier rate
DEFAULT_MIN_RATIO_METRIC: float = 1.0

# Quantile of the measured quantity above which a value is an outlier
DEFAULT_QUANTILE: float = 0.99

# Largest attribute-value combination explored by the search
DEFAULT_MAX_ORDER: int = 3

# Names accepted in the `metrics:` list of a job file
SUPPORT_METRIC_NAME: str = "support"
GLOBAL_RATIO_METRIC_NAME: str = "global_ratio"
KNOWN_METRICS: tuple = (SUPPORT_METRIC_NAME, GLOBAL_RATIO_METRIC_NAME)


# ============================================================================
# Moment Sketch Constants
# ============================================================================

# Number of raw-domain power sums (order 0..ka-1) retained per group
DEFAULT_KA: int = 5

# Number of log-domain power sums (order 0..kb-1) retained per group
DEFAULT_KB: int = 0

# Gradient tolerance of the maximum-entropy solve
DEFAULT_TOLERANCE: float = 1e-9

# Iteration cap for the maximum-entropy solve
MAXENT_MAX_ITERATIONS: int = 200

# A stopped solve is accepted when its gradient norm is within
# max(MAXENT_ACCEPT_FACTOR * tolerance, MAXENT_ACCEPT_FLOOR)
MAXENT_ACCEPT_FACTOR: float = 1e3
MAXENT_ACCEPT_FLOOR: float = 1e-6

# Gauss-Legendre points used to integrate the fitted density
MAXENT_QUADRATURE_POINTS: int = 256

# Grid used to tabulate the fitted CDF on [-1, 1]
CDF_GRID_POINTS: int = 4097

# Exponent clamp when evaluating exp(sum lambda_i T_i)
MAX_EXPONENT: float = 700.0

# Slack added around the tightened bound to absorb rounding
BOUND_SLACK: float = 1e-9

# Smallest Cholesky pivot accepted for the moment Hankel matrix
MIN_HANKEL_PIVOT: float = 1e-7


# ============================================================================
# Data Processing Constants
# ============================================================================

# Rows per partition when building partial aggregates
DEFAULT_CHUNK_SIZE: int = 50_000

# Encoded id for a missing attribute value (never a candidate predicate)
NULL_ATTRIBUTE_CODE: int = -1

# Threads used for per-level cascade evaluation
DEFAULT_WORKERS: int = 1


# ============================================================================
# Configuration Security Limits
# ============================================================================

# Maximum YAML configuration file size (10MB)
MAX_YAML_FILE_SIZE: int = 10 * 1024 * 1024

# Maximum YAML nesting depth
MAX_YAML_NESTING_DEPTH: int = 20

# Maximum number of keys in YAML mapping
MAX_YAML_KEY_COUNT: int = 10_000

# Maximum string length inside a configuration file (inline CSV included)
MAX_STRING_LENGTH: int = 10 * 1024 * 1024
