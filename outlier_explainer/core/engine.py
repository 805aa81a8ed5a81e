"""
Explanation engine - runs one explanation job end to end.

The engine:
1. Loads the job configuration
2. Loads the input rows from the configured URI
3. Runs the moment summarizer in raw or cube mode
4. Optionally writes a JSON summary of the result
"""

import json
from pathlib import Path
from typing import List, Optional

from outlier_explainer.core.config import ExplanationJobConfig
from outlier_explainer.core.exceptions import ExplainerException, ReporterError
from outlier_explainer.core.logging_config import get_logger
from outlier_explainer.core.observers import SearchObserver, notify
from outlier_explainer.loaders.csv_loader import load_dataframe
from outlier_explainer.summary.explanation import ExplanationResult
from outlier_explainer.summary.summarizer import MomentSummarizer

logger = get_logger(__name__)


class ExplanationEngine:
    """
    Main engine that orchestrates one explanation job.

    Example usage:
        engine = ExplanationEngine.from_config('explain.yaml')
        result = engine.run()
        engine.write_json_summary(result, 'summary.json')
    """

    def __init__(
        self,
        config: ExplanationJobConfig,
        observers: Optional[List[SearchObserver]] = None
    ) -> None:
        """
        Initialize the engine.

        Args:
            config: Job configuration
            observers: Observers receiving search events
        """
        self.config = config
        self.observers: List[SearchObserver] = observers if observers is not None else []

    @classmethod
    def from_config(
        cls, config_path: str, observers: Optional[List[SearchObserver]] = None
    ) -> "ExplanationEngine":
        """
        Create engine from YAML configuration file.

        Raises:
            ConfigError: If configuration is invalid
        """
        return cls(ExplanationJobConfig.from_yaml(config_path), observers=observers)

    def run(self) -> ExplanationResult:
        """
        Load the input and run the summarizer.

        Returns:
            The ranked ExplanationResult

        Raises:
            ExplainerException: Loading or summarization failed
        """
        config = self.config
        logger.info(f"Starting explanation job: {config.job_name}")

        required = list(config.summarizer.attributes)
        if config.mode == "raw":
            required.append(config.metric_column)
        else:
            required.extend(config.cube.required_columns())

        try:
            df = load_dataframe(
                config.uri,
                content=config.content,
                required_columns=required,
                delimiter=config.delimiter,
                encoding=config.encoding,
            )
        except ExplainerException as e:
            notify(self.observers, "on_error", e, {"stage": "loading", "uri": config.uri})
            raise

        summarizer = MomentSummarizer(config.summarizer, observers=self.observers, job_name=config.job_name)
        if config.mode == "raw":
            result = summarizer.summarize_raw(df, config.metric_column)
        else:
            result = summarizer.summarize_cube(df, config.cube)

        if config.json_summary_path:
            self.write_json_summary(result, config.json_summary_path)

        logger.info(f"Explanation job completed in {result.duration_seconds:.2f}s")
        return result

    def write_json_summary(self, result: ExplanationResult, output_path: str) -> None:
        """
        Write the result as JSON.

        Args:
            result: Result to serialize
            output_path: Destination file

        Raises:
            ReporterError: If the file cannot be written
        """
        payload = {
            "job_name": self.config.job_name,
            "config": self.config.to_dict(),
            **result.to_dict(),
        }
        try:
            path = Path(output_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, default=str)
        except OSError as e:
            raise ReporterError(
                f"Failed to write JSON summary: {e}",
                output_path=str(output_path),
                original_exception=e
            )
        logger.info(f"JSON summary written to {output_path}")
