"""
Configuration parsing and validation.

Two layers:
- SummarizerConfig: immutable options of one summarization run, validated on
  construction and handed to the summarizer as a single value
- ExplanationJobConfig: a whole job file (input, output, summarizer options)
  loaded from YAML with the same structural limits as any other job file
"""

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from outlier_explainer.core.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_KA,
    DEFAULT_KB,
    DEFAULT_MAX_ORDER,
    DEFAULT_MIN_RATIO_METRIC,
    DEFAULT_MIN_SUPPORT,
    DEFAULT_QUANTILE,
    DEFAULT_TOLERANCE,
    DEFAULT_WORKERS,
    GLOBAL_RATIO_METRIC_NAME,
    KNOWN_METRICS,
    MAX_STRING_LENGTH,
    MAX_YAML_FILE_SIZE,
    MAX_YAML_KEY_COUNT,
    MAX_YAML_NESTING_DEPTH,
    SUPPORT_METRIC_NAME,
)
from outlier_explainer.core.exceptions import (
    ConfigError,
    ConfigValidationError,
    YAMLSizeError,
)


# Alias kept for callers matching on structure errors
YAMLStructureError = ConfigValidationError


@dataclass(frozen=True)
class SummarizerConfig:
    """
    Options of one summarization run.

    Attributes:
        attributes: Candidate predicate columns
        min_support: Support threshold, in [0, 1]
        min_ratio_metric: GlobalRatio threshold, >= 0
        quantile: Quantile defining an outlier, in (0, 1)
        ka: Standard-domain power sums retained per group
        kb: Log-domain power sums retained per group
        tolerance: Maximum-entropy solver tolerance
        use_cascade: Run the bound stages before the maximum-entropy estimate
        use_support: Activate the Support metric
        use_global_ratio: Activate the GlobalRatio metric
        max_order: Largest combination explored
        max_candidates_per_level: Optional cap on candidates extended per level
        minimal: Do not extend candidates that are already kept
        workers: Threads for per-level candidate evaluation
        chunk_size: Rows per aggregation partition

    Raises:
        ConfigValidationError: On construction, for any unusable value
    """

    attributes: Tuple[str, ...]
    min_support: float = DEFAULT_MIN_SUPPORT
    min_ratio_metric: float = DEFAULT_MIN_RATIO_METRIC
    quantile: float = DEFAULT_QUANTILE
    ka: int = DEFAULT_KA
    kb: int = DEFAULT_KB
    tolerance: float = DEFAULT_TOLERANCE
    use_cascade: bool = True
    use_support: bool = True
    use_global_ratio: bool = True
    max_order: int = DEFAULT_MAX_ORDER
    max_candidates_per_level: Optional[int] = None
    minimal: bool = False
    workers: int = DEFAULT_WORKERS
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self):
        # Accept any sequence but store a tuple so the value stays hashable
        object.__setattr__(self, "attributes", tuple(self.attributes))
        self._validate()

    def _validate(self) -> None:
        if not self.attributes:
            raise ConfigValidationError(
                "At least one attribute column is required",
                field="attributes", expected="non-empty list", actual="[]"
            )
        if len(set(self.attributes)) != len(self.attributes):
            raise ConfigValidationError(
                "Attribute columns must be distinct",
                field="attributes", actual=str(list(self.attributes))
            )
        if self.ka < 0 or self.kb < 0:
            raise ConfigValidationError(
                "ka and kb must be non-negative",
                field="ka/kb", expected=">= 0", actual=f"ka={self.ka}, kb={self.kb}"
            )
        if self.ka == 0 and self.kb == 0:
            raise ConfigValidationError(
                "At least one of ka or kb must be positive",
                field="ka/kb", expected="ka > 0 or kb > 0", actual="ka=0, kb=0"
            )
        if not 0.0 <= self.min_support <= 1.0:
            raise ConfigValidationError(
                "min_support must lie in [0, 1]",
                field="min_support", expected="0 <= value <= 1", actual=str(self.min_support)
            )
        if self.min_ratio_metric < 0:
            raise ConfigValidationError(
                "min_ratio_metric must be non-negative",
                field="min_ratio_metric", expected=">= 0", actual=str(self.min_ratio_metric)
            )
        if not 0.0 < self.quantile < 1.0:
            raise ConfigValidationError(
                "quantile must lie strictly between 0 and 1",
                field="quantile_cutoff", expected="0 < value < 1", actual=str(self.quantile)
            )
        if self.tolerance <= 0:
            raise ConfigValidationError(
                "tolerance must be positive",
                field="tolerance", expected="> 0", actual=str(self.tolerance)
            )
        if not (self.use_support or self.use_global_ratio):
            raise ConfigValidationError(
                "At least one metric must be active",
                field="metrics", expected=f"subset of {list(KNOWN_METRICS)}", actual="[]"
            )
        if self.max_order < 1:
            raise ConfigValidationError(
                "max_order must be at least 1",
                field="max_order", expected=">= 1", actual=str(self.max_order)
            )
        if self.max_candidates_per_level is not None and self.max_candidates_per_level < 1:
            raise ConfigValidationError(
                "max_candidates_per_level must be at least 1",
                field="max_candidates_per_level", expected=">= 1",
                actual=str(self.max_candidates_per_level)
            )
        if self.workers < 1:
            raise ConfigValidationError(
                "workers must be at least 1",
                field="workers", expected=">= 1", actual=str(self.workers)
            )
        if self.chunk_size < 1:
            raise ConfigValidationError(
                "chunk_size must be at least 1",
                field="chunk_size", expected=">= 1", actual=str(self.chunk_size)
            )

    @property
    def metric_names(self) -> List[str]:
        names = []
        if self.use_support:
            names.append(SUPPORT_METRIC_NAME)
        if self.use_global_ratio:
            names.append(GLOBAL_RATIO_METRIC_NAME)
        return names

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["attributes"] = list(self.attributes)
        return result


@dataclass(frozen=True)
class CubeColumns:
    """
    Column names of a pre-aggregated cube.

    Attributes:
        power_sums: Standard-domain power-sum columns, order 0 first
        log_sums: Log-domain power-sum columns, order 0 first
        min/max: Standard-domain extrema (required when power_sums is set)
        log_min/log_max: Log-domain extrema (required when log_sums is set)
        outlier_count: Optional exact outlier count per cube row
    """

    power_sums: Tuple[str, ...] = ()
    log_sums: Tuple[str, ...] = ()
    min: Optional[str] = None
    max: Optional[str] = None
    log_min: Optional[str] = None
    log_max: Optional[str] = None
    outlier_count: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "power_sums", tuple(self.power_sums))
        object.__setattr__(self, "log_sums", tuple(self.log_sums))
        if self.power_sums and not (self.min and self.max):
            raise ConfigValidationError(
                "Cube power sums need 'min' and 'max' columns", field="input.cube"
            )
        if self.log_sums and not (self.log_min and self.log_max):
            raise ConfigValidationError(
                "Cube log sums need 'log_min' and 'log_max' columns", field="input.cube"
            )

    def required_columns(self) -> List[str]:
        columns = list(self.power_sums) + list(self.log_sums)
        for name in (self.min, self.max, self.log_min, self.log_max, self.outlier_count):
            if name:
                columns.append(name)
        return columns


class ExplanationJobConfig:
    """Configuration for an explanation job file."""

    # Security limits for YAML files
    MAX_YAML_FILE_SIZE = MAX_YAML_FILE_SIZE
    MAX_YAML_NESTING_DEPTH = MAX_YAML_NESTING_DEPTH
    MAX_YAML_KEYS = MAX_YAML_KEY_COUNT

    def __init__(self, config_dict: Dict[str, Any]):
        """
        Initialize from configuration dictionary.

        Args:
            config_dict: Parsed job file
        """
        if not isinstance(config_dict, dict):
            raise ConfigError("Configuration must be a mapping")
        self.raw_config = config_dict
        self._parse_config()

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "ExplanationJobConfig":
        cls._validate_yaml_structure(config_dict)
        return cls(config_dict)

    @classmethod
    def from_yaml(cls, config_path: str) -> "ExplanationJobConfig":
        """
        Load configuration from YAML file with security validations.

        Args:
            config_path: Path to YAML job file

        Returns:
            ExplanationJobConfig instance

        Raises:
            ConfigError: If file not found or invalid
            YAMLSizeError: If file exceeds size limit
            YAMLStructureError: If YAML structure is too complex
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")

        file_size = os.path.getsize(config_file)
        if file_size > cls.MAX_YAML_FILE_SIZE:
            raise YAMLSizeError(
                f"Configuration file too large: {file_size:,} bytes. "
                f"Maximum allowed: {cls.MAX_YAML_FILE_SIZE:,} bytes",
                file_size=file_size,
                max_size=cls.MAX_YAML_FILE_SIZE
            )

        try:
            with open(config_file, "r", encoding="utf-8") as f:
                # Use safe_load to prevent code execution
                config_dict = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML file: {str(e)}")
        except UnicodeDecodeError as e:
            raise ConfigError(f"Invalid file encoding (expected UTF-8): {str(e)}")

        if config_dict is None:
            raise ConfigError(f"Configuration file is empty: {config_path}")

        cls._validate_yaml_structure(config_dict)
        config = cls(config_dict)
        config.source_path = str(config_file)
        return config

    @classmethod
    def _validate_yaml_structure(cls, obj: Any, current_depth: int = 0, total_keys: List[int] = None) -> None:
        """
        Reject structures that are too deep, too wide or hold oversized strings.

        Args:
            obj: Object to validate (dict, list, or primitive)
            current_depth: Current nesting depth
            total_keys: Mutable list with single element tracking total key count

        Raises:
            YAMLStructureError: If structure is too complex
        """
        if total_keys is None:
            total_keys = [0]

        if current_depth > cls.MAX_YAML_NESTING_DEPTH:
            raise YAMLStructureError(
                f"YAML nesting depth exceeds maximum of {cls.MAX_YAML_NESTING_DEPTH} levels."
            )

        if isinstance(obj, dict):
            total_keys[0] += len(obj)
            if total_keys[0] > cls.MAX_YAML_KEYS:
                raise YAMLStructureError(
                    f"YAML structure contains more than {cls.MAX_YAML_KEYS:,} keys/items."
                )
            for key, value in obj.items():
                if isinstance(key, str) and len(key) > 1000:
                    raise YAMLStructureError(
                        f"YAML key exceeds maximum length of 1000 characters: '{key[:50]}...'"
                    )
                cls._validate_yaml_structure(value, current_depth + 1, total_keys)

        elif isinstance(obj, list):
            total_keys[0] += len(obj)
            if total_keys[0] > cls.MAX_YAML_KEYS:
                raise YAMLStructureError(
                    f"YAML structure contains more than {cls.MAX_YAML_KEYS:,} keys/items."
                )
            for item in obj:
                cls._validate_yaml_structure(item, current_depth + 1, total_keys)

        elif isinstance(obj, str):
            if len(obj) > MAX_STRING_LENGTH:
                raise YAMLStructureError(
                    f"YAML contains string exceeding maximum length ({MAX_STRING_LENGTH:,} bytes): '{obj[:50]}...'"
                )

    def _parse_config(self) -> None:
        """Parse and validate configuration."""
        if "explanation_job" not in self.raw_config:
            raise ConfigError("Configuration must have 'explanation_job' key")

        job_config = self.raw_config["explanation_job"] or {}
        self.source_path: Optional[str] = None

        self.job_name: str = job_config.get("name", "Unnamed Explanation Job")
        self.description: Optional[str] = job_config.get("description")

        self._parse_input(job_config.get("input"))

        output_config = job_config.get("output") or {}
        self.json_summary_path: Optional[str] = output_config.get("json_summary")
        self.top: Optional[int] = output_config.get("top")

        cube_ka = len(self.cube.power_sums) if self.cube is not None else None
        cube_kb = len(self.cube.log_sums) if self.cube is not None else None
        self.summarizer = self._parse_summarizer(job_config, cube_ka, cube_kb)

    def _parse_input(self, input_config: Optional[Dict[str, Any]]) -> None:
        if not input_config:
            raise ConfigError("Configuration must have an 'input' section", field="input")

        self.uri: str = input_config.get("uri", "")
        if not self.uri:
            raise ConfigError("Input must specify 'uri'", field="input.uri")
        self.content: Optional[str] = input_config.get("content")
        self.delimiter: Optional[str] = input_config.get("delimiter")
        self.encoding: Optional[str] = input_config.get("encoding")

        self.mode: str = str(input_config.get("mode", "raw")).lower()
        self.metric_column: Optional[str] = None
        self.cube: Optional[CubeColumns] = None

        if self.mode == "raw":
            self.metric_column = input_config.get("metric")
            if not self.metric_column:
                raise ConfigError("Raw input must name the measured column under 'metric'", field="input.metric")
        elif self.mode == "cube":
            cube = input_config.get("cube") or {}
            self.cube = CubeColumns(
                power_sums=cube.get("power_sums") or (),
                log_sums=cube.get("log_sums") or (),
                min=cube.get("min"),
                max=cube.get("max"),
                log_min=cube.get("log_min"),
                log_max=cube.get("log_max"),
                outlier_count=cube.get("outlier_count"),
            )
        else:
            raise ConfigValidationError(
                f"Unknown input mode: {self.mode}",
                field="input.mode", expected="raw or cube", actual=self.mode
            )

    def _parse_summarizer(
        self, job_config: Dict[str, Any], cube_ka: Optional[int], cube_kb: Optional[int]
    ) -> SummarizerConfig:
        thresholds = job_config.get("thresholds") or {}
        sketch = job_config.get("sketch") or {}
        search = job_config.get("search") or {}

        ka = _as_int(sketch.get("ka", DEFAULT_KA), "sketch.ka")
        kb = _as_int(sketch.get("kb", DEFAULT_KB), "sketch.kb")
        if cube_ka is not None:
            # Cube columns fix the moment counts
            if ("ka" in sketch and ka != cube_ka) or ("kb" in sketch and kb != cube_kb):
                raise ConfigValidationError(
                    "sketch.ka/kb disagree with the cube's power-sum columns",
                    field="sketch", expected=f"ka={cube_ka}, kb={cube_kb}", actual=f"ka={ka}, kb={kb}"
                )
            ka, kb = cube_ka, cube_kb

        use_support, use_global_ratio = _parse_metrics(job_config.get("metrics"))

        max_candidates = search.get("max_candidates_per_level")
        return SummarizerConfig(
            attributes=tuple(_as_list(job_config.get("attributes"), "attributes")),
            min_support=_as_float(thresholds.get("min_support", DEFAULT_MIN_SUPPORT), "thresholds.min_support"),
            min_ratio_metric=_as_float(
                thresholds.get("min_ratio_metric", DEFAULT_MIN_RATIO_METRIC), "thresholds.min_ratio_metric"
            ),
            quantile=parse_quantile(job_config),
            ka=ka,
            kb=kb,
            tolerance=_as_float(sketch.get("tolerance", DEFAULT_TOLERANCE), "sketch.tolerance"),
            use_cascade=bool(sketch.get("use_cascade", True)),
            use_support=use_support,
            use_global_ratio=use_global_ratio,
            max_order=_as_int(search.get("max_order", DEFAULT_MAX_ORDER), "search.max_order"),
            max_candidates_per_level=(
                _as_int(max_candidates, "search.max_candidates_per_level") if max_candidates is not None else None
            ),
            minimal=bool(search.get("minimal", False)),
            workers=_as_int(search.get("workers", DEFAULT_WORKERS), "search.workers"),
            chunk_size=_as_int(search.get("chunk_size", DEFAULT_CHUNK_SIZE), "search.chunk_size"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "job_name": self.job_name,
            "uri": self.uri,
            "mode": self.mode,
            "metric_column": self.metric_column,
            "json_summary_path": self.json_summary_path,
            "summarizer": self.summarizer.to_dict(),
        }


def parse_quantile(job_config: Dict[str, Any]) -> float:
    """
    Resolve the outlier quantile from 'quantile_cutoff' or 'percentile'.

    percentile is the outlier share in percent: 5 means the top 5% of values
    are outliers (quantile 0.95). Giving both with different values is an error.
    """
    quantile = job_config.get("quantile_cutoff")
    percentile = job_config.get("percentile")

    if percentile is not None:
        from_percentile = (100.0 - _as_float(percentile, "percentile")) / 100.0
        if quantile is not None and abs(_as_float(quantile, "quantile_cutoff") - from_percentile) > 1e-12:
            raise ConfigValidationError(
                "quantile_cutoff and percentile disagree",
                field="quantile_cutoff",
                expected=f"{from_percentile}",
                actual=f"{quantile}"
            )
        return from_percentile

    if quantile is not None:
        return _as_float(quantile, "quantile_cutoff")
    return DEFAULT_QUANTILE


def _parse_metrics(metrics: Optional[Sequence[str]]) -> Tuple[bool, bool]:
    if metrics is None:
        return True, True
    names = [str(m).lower() for m in _as_list(metrics, "metrics")]
    unknown = [n for n in names if n not in KNOWN_METRICS]
    if unknown:
        raise ConfigValidationError(
            f"Unknown metric(s): {', '.join(unknown)}",
            field="metrics", expected=f"subset of {list(KNOWN_METRICS)}", actual=str(names)
        )
    return SUPPORT_METRIC_NAME in names, GLOBAL_RATIO_METRIC_NAME in names


def _as_list(value: Any, name: str) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ConfigValidationError(f"'{name}' must be a list", field=name, expected="list", actual=repr(value))
    return list(value)


def _as_float(value: Any, name: str) -> float:
    # PyYAML reads exponents without a dot (1e-9) as strings
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigValidationError(f"'{name}' must be a number", field=name, expected="number", actual=repr(value))


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigValidationError(f"'{name}' must be an integer", field=name, expected="integer", actual=repr(value))
    return value
