"""
Outlier Explainer - moment-sketch explanations of outlier-heavy subgroups.
"""

__version__ = "0.1.0"
