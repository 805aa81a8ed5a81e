"""
Outlier Explainer Test Suite - shared synthetic datasets.

This module provides:
- Generators for latency-style datasets with a planted outlier-heavy group
- Helpers that turn raw values into aggregate vectors and cube frames

Directory Structure:
    testsuite/
    └── generators/            # Data generation helpers and script

Usage:
    from tests.testsuite.generators.outlier_data import make_planted_dataset
    df = make_planted_dataset()
"""
