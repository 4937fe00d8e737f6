"""Factor Selector: pick the split factor with the most divergent segment impacts."""

from __future__ import annotations

from typing import Dict, List, Sequence

from loguru import logger

from roi_drivers.config import EXCLUDED_FACTOR_FIELDS
from roi_drivers.domain.models import FactorScore, RecordSet
from roi_drivers.impact import ImpactDecomposer
from roi_drivers.metrics import population_variance


class FactorSelector:
    """Total-impact variance scoring for categorical factors.

    Segment shares are always measured against the full portfolio totals
    passed in as ``previous_total_weight`` / ``current_total_weight``; when
    they are omitted the given records are treated as the full portfolio.
    """

    EXCLUDED_FIELDS: Sequence[str] = EXCLUDED_FACTOR_FIELDS

    def __init__(self, decomposer: ImpactDecomposer | None = None) -> None:
        self.decomposer = decomposer or ImpactDecomposer()

    def detect_candidates(self, previous: RecordSet, current: RecordSet) -> List[str]:
        """Every non-excluded field holding at least one value in either period."""
        columns = previous.columns if not previous.is_empty() else current.columns
        excluded = set(self.EXCLUDED_FIELDS) | {previous.weight_field, previous.rate_field}
        return [
            name
            for name in columns
            if name not in excluded and (previous.has_values(name) or current.has_values(name))
        ]

    def impact_variance(
        self,
        previous: RecordSet,
        current: RecordSet,
        factor: str,
        previous_total_weight: float | None = None,
        current_total_weight: float | None = None,
    ) -> FactorScore:
        if previous_total_weight is None:
            previous_total_weight = self.decomposer.total_weight(previous)
        if current_total_weight is None:
            current_total_weight = self.decomposer.total_weight(current)

        segments = self.decomposer.segment_impacts(
            previous,
            current,
            factor,
            previous_total_weight=previous_total_weight,
            current_total_weight=current_total_weight,
        )
        impacts = [float(value) for value in segments.get_column("total_impact").to_list()]
        return FactorScore(factor=factor, variance=population_variance(impacts), value_count=len(impacts))

    def rank_factors(
        self,
        previous: RecordSet,
        current: RecordSet,
        candidate_factors: Sequence[str],
        previous_total_weight: float | None = None,
        current_total_weight: float | None = None,
    ) -> List[FactorScore]:
        """Score every candidate, keeping candidate order."""
        excluded = set(self.EXCLUDED_FIELDS) | {previous.weight_field, previous.rate_field}
        return [
            self.impact_variance(
                previous,
                current,
                factor,
                previous_total_weight=previous_total_weight,
                current_total_weight=current_total_weight,
            )
            for factor in candidate_factors
            if factor not in excluded
        ]

    def select_best_factor(
        self,
        previous: RecordSet,
        current: RecordSet,
        candidate_factors: Sequence[str],
        previous_total_weight: float | None = None,
        current_total_weight: float | None = None,
    ) -> FactorScore | None:
        """Return the strictly highest-variance factor, or None to stop splitting."""
        scores = self.rank_factors(
            previous,
            current,
            candidate_factors,
            previous_total_weight=previous_total_weight,
            current_total_weight=current_total_weight,
        )
        best: FactorScore | None = None
        for score in scores:
            if score.variance > (best.variance if best is not None else 0.0):
                best = score

        if best is None:
            logger.debug(f"No informative factor among {list(candidate_factors)}")
        else:
            logger.debug(f"Selected factor '{best.factor}' (variance={best.variance:.6e}, values={best.value_count})")
        return best

    def feature_importance(
        self,
        previous: RecordSet,
        current: RecordSet,
        candidate_factors: Sequence[str] | None = None,
    ) -> Dict[str, float]:
        """Normalized root-level impact variance per factor.

        Computed once over the full datasets; it does not follow the
        conditional splits chosen deeper in an auto tree.
        """
        if candidate_factors is None:
            candidate_factors = self.detect_candidates(previous, current)
        if not candidate_factors:
            return {}

        scores = self.rank_factors(previous, current, candidate_factors)
        importance = {score.factor: max(0.0, score.variance) for score in scores}
        total = sum(importance.values())
        if total > 0:
            return {factor: value / total for factor, value in importance.items()}

        if not importance:
            return {}
        equal_weight = 1 / len(importance)
        return {factor: equal_weight for factor in importance}
