"""
Outlier Explainer Test Suite - Synthetic Latency Data

Builds small datasets with a known outlier-heavy attribute combination, plus
helpers that summarize raw values the same way the summarizer does.

Usage:
    python -m tests.testsuite.generators.outlier_data
"""

from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd

REGIONS = ["NA", "EU", "APAC", "LATAM"]
DEVICES = ["desktop", "mobile", "tablet"]
VERSIONS = ["v1", "v2", "v3", "v4"]

# The planted group: every slow request comes from here
SLOW_REGION = "EU"
SLOW_DEVICE = "mobile"


def aggregates_from_values(
    values: Sequence[float],
    ka: int,
    kb: int = 0,
    outlier_count: Optional[float] = None,
) -> np.ndarray:
    """
    Aggregate vector of a group of values in the summarizer's layout.

    [min, max, log_min, log_max, power sums, log power sums, (outlier_count)]
    """
    x = np.asarray(values, dtype=np.float64)
    logs = np.log(x) if kb > 0 else np.zeros_like(x)
    vector = [x.min(), x.max(), logs.min(), logs.max()]
    vector.extend(np.sum(x ** i) for i in range(ka))
    vector.extend(np.sum(logs ** i) for i in range(kb))
    if outlier_count is not None:
        vector.append(outlier_count)
    return np.array(vector, dtype=np.float64)


def aggregate_rows(values: Sequence[float], ka: int) -> np.ndarray:
    """Per-row aggregate matrix (standard domain only) for AggregateCollector."""
    x = np.asarray(values, dtype=np.float64)
    zeros = np.zeros_like(x)
    columns = [x, x, zeros, zeros] + [x ** i for i in range(ka)]
    return np.column_stack(columns)


def make_planted_dataset(num_rows: int = 6000, seed: int = 42) -> pd.DataFrame:
    """
    Request latencies with one slow (region, device) combination.

    Attribute values are assigned round-robin so every (region, device,
    app_version) cell holds the same number of rows; rows are then shuffled.
    Latencies are uniform on [10, 50] except for EU/mobile, which is uniform
    on [80, 100].
    """
    rng = np.random.default_rng(seed)
    index = np.arange(num_rows)

    df = pd.DataFrame({
        "region": [REGIONS[i % 4] for i in index],
        "device": [DEVICES[(i // 4) % 3] for i in index],
        "app_version": [VERSIONS[(i // 12) % 4] for i in index],
    })

    slow = ((df["region"] == SLOW_REGION) & (df["device"] == SLOW_DEVICE)).to_numpy()
    latency = rng.uniform(10.0, 50.0, num_rows)
    latency[slow] = rng.uniform(80.0, 100.0, int(slow.sum()))
    df["latency_ms"] = np.round(latency, 3)

    return df.iloc[rng.permutation(num_rows)].reset_index(drop=True)


def make_noisy_dataset(num_rows: int = 4000, seed: int = 1) -> pd.DataFrame:
    """
    Exponential values over three random attributes a, b and c.

    Every group straddles any cutoff, and a=a0 / b=b3 are mildly slower, so
    groups land on both sides of the thresholds after estimation.
    """
    rng = np.random.default_rng(seed)
    df = pd.DataFrame({
        "a": rng.choice(["a0", "a1", "a2", "a3"], num_rows),
        "b": rng.choice(["b0", "b1", "b2", "b3"], num_rows),
        "c": rng.choice(["c0", "c1", "c2"], num_rows),
    })
    scale = np.where(df["a"] == "a0", 1.5, 1.0) * np.where(df["b"] == "b3", 1.3, 1.0)
    df["value"] = rng.exponential(scale)
    return df


def make_cube(
    df: pd.DataFrame,
    attributes: Sequence[str],
    metric: str,
    ka: int,
    outlier_cutoff: Optional[float] = None,
) -> pd.DataFrame:
    """
    Pre-aggregate raw rows into a cube.

    Columns: the attributes, min, max, p0..p{ka-1} and, with outlier_cutoff,
    an exact 'outliers' count of values at or above the cutoff.
    """
    work = df[list(attributes)].copy()
    values = df[metric].astype(float)
    work["min"] = values
    work["max"] = values
    for i in range(ka):
        work[f"p{i}"] = values ** i
    if outlier_cutoff is not None:
        work["outliers"] = (values >= outlier_cutoff).astype(float)

    spec = {"min": "min", "max": "max"}
    spec.update({f"p{i}": "sum" for i in range(ka)})
    if outlier_cutoff is not None:
        spec["outliers"] = "sum"
    return work.groupby(list(attributes), sort=True).agg(spec).reset_index()


def generate_latency_csv(output_path: Path, num_rows: int = 6000) -> Path:
    """Write the planted dataset as CSV."""
    print(f"Generating planted latency data ({num_rows} rows)...")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    make_planted_dataset(num_rows).to_csv(output_path, index=False)
    print(f"  ✓ Created {output_path}")
    return output_path


if __name__ == "__main__":
    generate_latency_csv(Path(__file__).parent.parent / "data" / "testsuite_latency.csv")
