"""Synthetic data generators for the test suite."""
