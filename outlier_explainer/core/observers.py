"""
Observer Pattern for Search Event Notifications.

Decouples the summarizer from progress reporting. The search notifies
observers about run, calibration and level events; observers print progress,
collect metrics or log. An observer that raises is logged and skipped, it
never aborts a run.

Design Pattern: Observer (Behavioral)
Purpose: Decouple the search from the presentation layer
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterable, List

if TYPE_CHECKING:
    from outlier_explainer.summary.explanation import ExplanationResult, LevelStats

logger = logging.getLogger(__name__)


class SearchObserver(ABC):
    """
    Abstract base class for search event observers.

    All methods are called synchronously from the thread running the search.

    Example:
        >>> class MyObserver(SearchObserver):
        ...     def on_level_complete(self, stats):
        ...         print(f"level {stats.level}: {stats.kept} kept")
        ...
        >>> summarizer = MomentSummarizer(config, observers=[MyObserver()])
    """

    @abstractmethod
    def on_run_start(self, job_name: str, row_count: int, attributes: List[str]) -> None:
        """
        Called when a summarization run starts.

        Args:
            job_name: Name of the run
            row_count: Number of input rows
            attributes: Candidate attribute columns
        """
        pass

    @abstractmethod
    def on_calibrated(self, metric_name: str, cutoff: float, global_outlier_count: float) -> None:
        """
        Called once per metric after calibration on the global aggregate.

        Args:
            metric_name: Metric that was calibrated
            cutoff: Value at the configured quantile
            global_outlier_count: Expected number of outliers in the dataset
        """
        pass

    @abstractmethod
    def on_level_start(self, level: int, candidate_count: int) -> None:
        """
        Called before a search level is evaluated.

        Args:
            level: Number of predicates per candidate
            candidate_count: Candidates generated for this level
        """
        pass

    @abstractmethod
    def on_level_complete(self, stats: 'LevelStats') -> None:
        """Called after a search level is evaluated."""
        pass

    @abstractmethod
    def on_run_complete(self, result: 'ExplanationResult') -> None:
        """Called with the final result of a run."""
        pass

    @abstractmethod
    def on_error(self, error: Exception, context: Dict[str, Any]) -> None:
        """
        Called when a run fails.

        Args:
            error: Exception that occurred
            context: Details (stage, level, ...)
        """
        pass


def notify(observers: Iterable[SearchObserver], event: str, *args) -> None:
    """Deliver one event to every observer, isolating observer failures."""
    for observer in observers:
        try:
            getattr(observer, event)(*args)
        except Exception as e:
            logger.warning(f"Observer {type(observer).__name__}.{event} failed: {e}")


class CLIProgressObserver(SearchObserver):
    """
    Observer for CLI pretty output and progress reporting.

    Attributes:
        verbose (bool): Whether to show per-level progress
        po (PrettyOutput): Pretty output utility class
    """

    def __init__(self, verbose: bool = True):
        self.verbose = verbose

        # Import here to avoid circular dependency
        from outlier_explainer.core.pretty_output import PrettyOutput
        self.po = PrettyOutput

    def on_run_start(self, job_name: str, row_count: int, attributes: List[str]) -> None:
        """Display run banner."""
        self.po.logo()
        self.po.header("OUTLIER EXPLANATION")
        self.po.key_value("Job Name", job_name, indent=2)
        self.po.key_value("Rows", f"{row_count:,}", indent=2)
        self.po.key_value("Attributes", ", ".join(attributes), indent=2)
        self.po.blank_line()

    def on_calibrated(self, metric_name: str, cutoff: float, global_outlier_count: float) -> None:
        if self.verbose:
            self.po.info(f"{metric_name}: cutoff {cutoff:.6g}, ~{global_outlier_count:,.1f} global outliers")

    def on_level_start(self, level: int, candidate_count: int) -> None:
        if self.verbose:
            self.po.section(f"Level {level}")
            self.po.key_value("Candidates", f"{candidate_count:,}", indent=2)

    def on_level_complete(self, stats: 'LevelStats') -> None:
        """Display level outcome."""
        if self.verbose:
            print(
                f"  {self.po.SUCCESS}{self.po.CHECK} kept {stats.kept}{self.po.RESET}  "
                f"{self.po.WARNING}deferred {stats.deferred}{self.po.RESET}  "
                f"{self.po.DIM}pruned {stats.pruned} ({stats.duration_seconds:.2f}s){self.po.RESET}"
            )

    def on_run_complete(self, result: 'ExplanationResult') -> None:
        """Display final summary."""
        self.po.header("SUMMARY")
        summary_items = [
            ("Rows", f"{result.num_total():,.0f}", self.po.INFO),
            ("Levels Searched", len(result.level_stats), self.po.INFO),
            ("Candidates Evaluated", sum(s.evaluated for s in result.level_stats), self.po.INFO),
            ("Explanations", len(result), self.po.SUCCESS if len(result) else self.po.WARNING),
            ("Duration", f"{result.duration_seconds:.2f}s", self.po.DIM),
        ]
        self.po.summary_box("Results", summary_items)

    def on_error(self, error: Exception, context: Dict[str, Any]) -> None:
        stage = context.get('stage', 'unknown')
        self.po.error(f"Error during {stage}: {str(error)}")


class MetricsCollectorObserver(SearchObserver):
    """
    Observer for collecting run statistics.

    Example:
        >>> metrics_observer = MetricsCollectorObserver()
        >>> summarizer = MomentSummarizer(config, observers=[metrics_observer])
        >>> summarizer.summarize_raw(df, "latency")
        >>> metrics_observer.metrics['candidates_evaluated']
        42
    """

    def __init__(self):
        self.metrics: Dict[str, Any] = {
            'job_name': None,
            'start_time': None,
            'end_time': None,
            'row_count': 0,
            'levels': 0,
            'candidates_evaluated': 0,
            'candidates_kept': 0,
            'candidates_pruned': 0,
            'candidates_deferred': 0,
            'stage_counts': {},
            'calibration': {},
            'explanations': 0,
            'total_duration': 0,
            'errors': []
        }

    def on_run_start(self, job_name: str, row_count: int, attributes: List[str]) -> None:
        self.metrics['job_name'] = job_name
        self.metrics['row_count'] = row_count
        self.metrics['start_time'] = datetime.now()

    def on_calibrated(self, metric_name: str, cutoff: float, global_outlier_count: float) -> None:
        self.metrics['calibration'][metric_name] = {
            'cutoff': cutoff,
            'global_outlier_count': global_outlier_count,
        }

    def on_level_start(self, level: int, candidate_count: int) -> None:
        """No action needed for level start."""
        pass

    def on_level_complete(self, stats: 'LevelStats') -> None:
        """Accumulate level counters."""
        self.metrics['levels'] += 1
        self.metrics['candidates_evaluated'] += stats.evaluated
        self.metrics['candidates_kept'] += stats.kept
        self.metrics['candidates_pruned'] += stats.pruned
        self.metrics['candidates_deferred'] += stats.deferred
        for stage, count in stats.stage_counts.items():
            self.metrics['stage_counts'][stage] = self.metrics['stage_counts'].get(stage, 0) + count

    def on_run_complete(self, result: 'ExplanationResult') -> None:
        self.metrics['end_time'] = datetime.now()
        self.metrics['explanations'] = len(result)
        self.metrics['total_duration'] = result.duration_seconds

    def on_error(self, error: Exception, context: Dict[str, Any]) -> None:
        """Record error details."""
        self.metrics['errors'].append({
            'error_type': type(error).__name__,
            'error_message': str(error),
            'context': context,
            'timestamp': datetime.now().isoformat()
        })


class LoggingObserver(SearchObserver):
    """
    Observer for structured logging of search events.

    Example:
        >>> logging.basicConfig(level=logging.INFO)
        >>> summarizer = MomentSummarizer(config, observers=[LoggingObserver()])
    """

    def __init__(self):
        self.logger = logging.getLogger('outlier_explainer.search')

    def on_run_start(self, job_name: str, row_count: int, attributes: List[str]) -> None:
        self.logger.info(
            "Summarization run started",
            extra={'job_name': job_name, 'row_count': row_count, 'attributes': attributes}
        )

    def on_calibrated(self, metric_name: str, cutoff: float, global_outlier_count: float) -> None:
        self.logger.info(
            f"Metric calibrated: {metric_name}",
            extra={'metric': metric_name, 'cutoff': cutoff, 'global_outlier_count': global_outlier_count}
        )

    def on_level_start(self, level: int, candidate_count: int) -> None:
        self.logger.debug(
            f"Level {level} started",
            extra={'level': level, 'candidate_count': candidate_count}
        )

    def on_level_complete(self, stats: 'LevelStats') -> None:
        self.logger.info(
            f"Level {stats.level} completed: {stats.kept} kept, {stats.pruned} pruned",
            extra={'level': stats.level, 'evaluated': stats.evaluated, 'stage_counts': stats.stage_counts}
        )

    def on_run_complete(self, result: 'ExplanationResult') -> None:
        self.logger.info(
            f"Summarization run completed - {len(result)} explanations",
            extra={'explanations': len(result), 'duration_seconds': result.duration_seconds}
        )

    def on_error(self, error: Exception, context: Dict[str, Any]) -> None:
        """Log error with full context."""
        self.logger.error(
            f"Summarization error: {str(error)}",
            extra={'context': context},
            exc_info=True
        )


class QuietObserver(SearchObserver):
    """
    Minimal observer that produces no output.

    Useful for programmatic use where only the returned result matters.
    """

    def on_run_start(self, job_name: str, row_count: int, attributes: List[str]) -> None:
        pass

    def on_calibrated(self, metric_name: str, cutoff: float, global_outlier_count: float) -> None:
        pass

    def on_level_start(self, level: int, candidate_count: int) -> None:
        pass

    def on_level_complete(self, stats: 'LevelStats') -> None:
        pass

    def on_run_complete(self, result: 'ExplanationResult') -> None:
        pass

    def on_error(self, error: Exception, context: Dict[str, Any]) -> None:
        pass
