"""
Command-line interface for the outlier explainer.

Provides commands for:
- Running an explanation job
- Writing a sample job file
- Showing the version
"""

import sys
from pathlib import Path

import click

from outlier_explainer import __version__
from outlier_explainer.core.engine import ExplanationEngine
from outlier_explainer.core.exceptions import ExplainerException
from outlier_explainer.core.logging_config import get_logger, setup_logging
from outlier_explainer.core.observers import CLIProgressObserver, LoggingObserver, QuietObserver
from outlier_explainer.core.pretty_output import PrettyOutput as po

logger = get_logger(__name__)

DEFAULT_TOP = 20


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    Outlier Explainer - find attribute combinations that concentrate outliers.

    Summarizes each candidate group with a moment sketch and searches the
    lattice of attribute-value combinations for groups whose outlier rate is
    far above the global rate.
    """
    pass


@cli.command()
@click.argument('config_file', type=click.Path(exists=True))
@click.option('--json-output', '-j', help='Path for JSON summary output (overrides config)')
@click.option('--top', '-n', type=int, default=None, help='Number of explanations to list (default: 20)')
@click.option('--verbose/--quiet', '-v/-q', default=True, help='Verbose output')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              default='WARNING', help='Logging level')
@click.option('--log-file', type=click.Path(), help='Optional log file path')
def explain(config_file, json_output, top, verbose, log_level, log_file):
    """
    Run an explanation job from a configuration file.

    CONFIG_FILE: Path to YAML job file

    Examples:

    \b
    # Basic run
    outlier-explain explain job.yaml

    \b
    # Write the JSON summary and log verbosely
    outlier-explain explain job.yaml -j summary.json --log-level DEBUG
    """
    setup_logging(level=log_level, log_file=log_file)
    logger.info(f"Starting explanation job: {config_file}")

    observers = [LoggingObserver()]
    observers.append(CLIProgressObserver(verbose=True) if verbose else QuietObserver())

    try:
        engine = ExplanationEngine.from_config(config_file, observers=observers)
        if json_output:
            engine.config.json_summary_path = json_output
        logger.info(f"Configuration loaded: {engine.config.job_name}")

        result = engine.run()

        limit = top if top is not None else (engine.config.top or DEFAULT_TOP)
        if verbose:
            _print_explanations(result, limit)
        else:
            click.echo(result.pretty_print(limit=limit))

        if engine.config.json_summary_path:
            po.output_file("JSON", engine.config.json_summary_path)
        sys.exit(0)

    except ExplainerException as e:
        po.blank_line()
        po.error(f"{type(e).__name__}: {e.message}")
        for key, value in e.details.items():
            if value is not None:
                click.echo(f"   {key}: {value}", err=True)
        sys.exit(1)


def _print_explanations(result, limit):
    if not len(result):
        po.warning("No attribute combination passed the thresholds")
        return

    headers = ["#", "Explanation", "Count"] + list(result.metric_names)
    rows = []
    for rank, explanation in enumerate(result.explanations[:limit], start=1):
        predicates = ", ".join(f"{a}={v}" for a, v in explanation.predicates)
        metrics = [f"{explanation.metrics.get(name, 0.0):.4f}" for name in result.metric_names]
        rows.append([rank, predicates, f"{explanation.count:,.0f}"] + metrics)

    po.section(f"Top explanations ({min(limit, len(result))} of {len(result)})")
    po.compact_table(headers, rows)


SAMPLE_CONFIG = '''# Outlier Explanation Job
# Generated by outlier-explain init-config

explanation_job:
  name: "Latency outliers"

  input:
    # csv://<path> or inlinecsv (with the CSV text under 'content')
    uri: "csv://data/requests.csv"
    mode: raw            # raw: one measured column; cube: pre-aggregated moments
    metric: latency_ms

    # Cube mode instead:
    # mode: cube
    # cube:
    #   min: min_latency
    #   max: max_latency
    #   power_sums: [count, sum, sum_sq, sum_cu, sum_qu]
    #   outlier_count: slow_requests   # optional exact count

  # Columns whose values form candidate predicates
  attributes: [region, device, app_version]

  thresholds:
    min_support: 0.05        # share of all outliers a combination must hold
    min_ratio_metric: 3.0    # outlier rate relative to the global rate

  # Outlier definition: quantile_cutoff (0-1), or percentile as the
  # outlier share in percent (1 -> top 1%, same as quantile_cutoff 0.99)
  quantile_cutoff: 0.99

  sketch:
    ka: 5            # raw power sums
    kb: 0            # log power sums (needs positive values)
    tolerance: 1.0e-9
    use_cascade: true

  metrics: [support, global_ratio]

  search:
    max_order: 3
    minimal: false
    workers: 1
    chunk_size: 50000
    # max_candidates_per_level: 10000

  output:
    json_summary: "explanations.json"
    top: 20
'''


@cli.command()
@click.argument('output_path', type=click.Path())
def init_config(output_path):
    """
    Generate a sample job file.

    OUTPUT_PATH: Path where the sample job should be written

    Example:

    \b
    outlier-explain init-config job.yaml
    """
    try:
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        with open(output_file, 'w', encoding='utf-8') as f:
            f.write(SAMPLE_CONFIG)

        po.success(f"Sample configuration written to: {output_path}")
        click.echo("\nEdit the file to describe your data, then run:")
        click.echo(f"  outlier-explain explain {output_path}")

    except OSError as e:
        click.echo(f"Error creating config file: {str(e)}", err=True)
        sys.exit(1)


@cli.command()
def version():
    """Display version information."""
    click.echo(f"Outlier Explainer v{__version__}")
    click.echo("Moment-sketch explanations of outlier-heavy attribute combinations")


if __name__ == '__main__':
    cli()
