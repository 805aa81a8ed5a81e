"""
Candidate Search - level-wise exploration of attribute-value conjunctions.

Level 1 holds one candidate per observed (attribute, value) pair. Level k+1
extends every retained level-k candidate by one value of an attribute it does
not constrain yet. A combination is evaluated only when each of its level-k
sub-combinations was retained, and a candidate the monotonic Support metric
PRUNEs is never extended. The search stops at max_order or when a level
retains nothing.

Combinations are tuples of encoded value ids in ascending order. Ids are
assigned attribute by attribute, so ascending id order is also attribute
order and every combination has exactly one representation.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from itertools import combinations as subsets
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from outlier_explainer.core.constants import DEFAULT_MAX_ORDER
from outlier_explainer.core.observers import SearchObserver, notify
from outlier_explainer.metrics.quality import Action, CascadeStage, QualityMetric
from outlier_explainer.summary.aggregates import AggregateCollector, Combination
from outlier_explainer.summary.encoder import AttributeEncoder
from outlier_explainer.summary.explanation import Explanation, LevelStats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricThreshold:
    """An active metric and the threshold it is evaluated at."""
    metric: QualityMetric
    threshold: float


@dataclass
class Candidate:
    """
    An evaluated attribute-value conjunction.

    Attributes:
        codes: Encoded value ids, ascending
        aggregates: Aggregate vector of the matching rows
        actions: Metric name -> action
        stages: Metric name -> cascade stage that decided
    """
    codes: Combination
    aggregates: np.ndarray
    actions: Dict[str, Action] = field(default_factory=dict)
    stages: Dict[str, CascadeStage] = field(default_factory=dict)

    @property
    def order(self) -> int:
        return len(self.codes)

    @property
    def action(self) -> Action:
        """Actions of every metric combined: PRUNE > DEFER > KEEP."""
        combined = Action.KEEP
        for action in self.actions.values():
            combined = Action.combine(combined, action)
        return combined


class CandidateSearch:
    """
    Apriori-style search over the lattice of attribute-value conjunctions.

    Metrics must be calibrated before the search starts; during the search
    they are only read, so a level may be evaluated by several threads.

    Attributes:
        max_order: Maximum number of predicates per candidate
        minimal: Do not extend candidates that are already KEEP
        max_candidates_per_level: Cap on candidates extended from one level
        workers: Threads evaluating candidates of one level
    """

    def __init__(
        self,
        collector: AggregateCollector,
        encoder: AttributeEncoder,
        metrics: Sequence[MetricThreshold],
        max_order: int = DEFAULT_MAX_ORDER,
        minimal: bool = False,
        max_candidates_per_level: Optional[int] = None,
        workers: int = 1,
        observers: Optional[List[SearchObserver]] = None,
    ):
        self.collector = collector
        self.encoder = encoder
        self.metrics = list(metrics)
        self.max_order = max_order
        self.minimal = minimal
        self.max_candidates_per_level = max_candidates_per_level
        self.workers = max(int(workers), 1)
        self.observers = observers or []
        self.level_stats: List[LevelStats] = []

        for entry in self.metrics:
            if not entry.metric.is_initialized:
                raise RuntimeError(f"Metric '{entry.metric.name}' must be initialized before the search")

    def run(self) -> List[Candidate]:
        """
        Run the search.

        Returns:
            Every candidate for which all metrics returned KEEP, in level order
        """
        self.level_stats = []
        attribute_count = len(self.encoder.attributes)
        max_order = min(self.max_order, attribute_count)

        kept: List[Candidate] = []
        frontier: Set[Combination] = set()
        singles: List[int] = []

        for level in range(1, max_order + 1):
            start = time.time()
            stats = LevelStats(level=level)

            if level == 1:
                groups = self._level_one_groups()
            else:
                groups = self._extension_groups(frontier, singles, stats)

            notify(self.observers, "on_level_start", level, len(groups))
            evaluated = self._evaluate_all(groups)

            extend: List[Candidate] = []
            for candidate in evaluated:
                stats.evaluated += 1
                for name, stage in candidate.stages.items():
                    key = f"{name}:{stage.name}"
                    stats.stage_counts[key] = stats.stage_counts.get(key, 0) + 1

                action = candidate.action
                if action is Action.KEEP:
                    stats.kept += 1
                    kept.append(candidate)
                    if not self.minimal:
                        extend.append(candidate)
                elif action is Action.DEFER:
                    stats.deferred += 1
                    extend.append(candidate)
                else:
                    stats.pruned += 1

            extend = self._cap(extend, stats)
            frontier = {c.codes for c in extend}
            if level == 1:
                singles = sorted(c.codes[0] for c in extend)

            stats.duration_seconds = time.time() - start
            self.level_stats.append(stats)
            notify(self.observers, "on_level_complete", stats)
            logger.debug(
                f"Level {level}: {stats.evaluated} evaluated, {stats.kept} kept, "
                f"{stats.deferred} deferred, {stats.pruned} pruned"
            )

            if not frontier:
                break

        return kept

    # ------------------------------------------------------------------
    # Candidate generation
    # ------------------------------------------------------------------

    def _level_one_groups(self) -> Dict[Combination, np.ndarray]:
        groups: Dict[Combination, np.ndarray] = {}
        for position in range(len(self.encoder.attributes)):
            groups.update(self.collector.collect((position,)))
        return groups

    def _extension_groups(
        self, frontier: Set[Combination], singles: List[int], stats: LevelStats
    ) -> Dict[Combination, np.ndarray]:
        """Generate level k+1 combinations and aggregate them, one pass per attribute set."""
        proposed: Set[Combination] = set()
        for codes in frontier:
            constrained = {self.encoder.attribute_index(c) for c in codes}
            for single in singles:
                if self.encoder.attribute_index(single) in constrained:
                    continue
                proposed.add(tuple(sorted(codes + (single,))))

        by_attributes: Dict[Tuple[int, ...], List[Combination]] = {}
        for combination in proposed:
            if not self._all_subsets_retained(combination, frontier):
                stats.skipped_by_subset_check += 1
                continue
            positions = tuple(self.encoder.attribute_index(c) for c in combination)
            by_attributes.setdefault(positions, []).append(combination)

        groups: Dict[Combination, np.ndarray] = {}
        for positions, wanted in sorted(by_attributes.items()):
            collected = self.collector.collect(positions)
            for combination in wanted:
                # Combinations with no matching rows are not candidates
                if combination in collected:
                    groups[combination] = collected[combination]
        return groups

    @staticmethod
    def _all_subsets_retained(combination: Combination, frontier: Set[Combination]) -> bool:
        return all(subset in frontier for subset in subsets(combination, len(combination) - 1))

    def _cap(self, candidates: List[Candidate], stats: LevelStats) -> List[Candidate]:
        limit = self.max_candidates_per_level
        if limit is None or len(candidates) <= limit:
            return candidates
        count_idx = self.metrics[0].metric.layout.count_idx
        ranked = sorted(
            candidates,
            key=lambda c: (-float(c.aggregates[count_idx]), c.codes),
        )
        stats.truncated = len(candidates) - limit
        logger.warning(
            f"Level {stats.level}: {len(candidates)} candidates exceed the per-level cap of {limit}; "
            f"extending the {limit} largest"
        )
        return ranked[:limit]

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _evaluate_all(self, groups: Dict[Combination, np.ndarray]) -> List[Candidate]:
        items = sorted(groups.items())
        if self.workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                return list(executor.map(lambda item: self.evaluate(*item), items))
        return [self.evaluate(codes, aggregates) for codes, aggregates in items]

    def evaluate(self, codes: Combination, aggregates: np.ndarray) -> Candidate:
        """Run every metric's decision procedure on one combination."""
        candidate = Candidate(codes=codes, aggregates=aggregates)
        for entry in self.metrics:
            decision = entry.metric.decide(aggregates, entry.threshold)
            candidate.actions[entry.metric.name] = decision.action
            candidate.stages[entry.metric.name] = decision.stage
        return candidate


def explain_candidates(
    candidates: Iterable[Candidate], encoder: AttributeEncoder, metrics: Sequence[MetricThreshold]
) -> List[Explanation]:
    """Turn KEEP candidates into Explanations carrying each metric's value."""
    layout = metrics[0].metric.layout
    return [
        Explanation(
            predicates=encoder.decode_all(candidate.codes),
            codes=candidate.codes,
            count=layout.count(candidate.aggregates),
            metrics={e.metric.name: e.metric.value(candidate.aggregates) for e in metrics},
            aggregates=candidate.aggregates,
        )
        for candidate in candidates
    ]
