"""
Summarization: attribute encoding, aggregate collection, candidate search and
the ranked explanation result.
"""

from .encoder import AttributeEncoder
from .aggregates import AggregateCollector
from .explanation import Explanation, ExplanationResult, LevelStats
from .search import Candidate, CandidateSearch, MetricThreshold, explain_candidates
from .summarizer import MomentSummarizer

__all__ = [
    'AttributeEncoder',
    'AggregateCollector',
    'Explanation',
    'ExplanationResult',
    'LevelStats',
    'Candidate',
    'CandidateSearch',
    'MetricThreshold',
    'explain_candidates',
    'MomentSummarizer',
]
