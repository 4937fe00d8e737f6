"""Impact Decomposer: weighted rate aggregation + yield/distribution split."""

from __future__ import annotations

from typing import Any, Dict, List

import polars as pl
from loguru import logger

from roi_drivers.domain.models import ImpactDecomposition, RecordSet, common_key_dtype
from roi_drivers.metrics import safe_ratio, safe_ratio_expr, to_float


class ImpactDecomposer:
    """Weighted-average rate and two-factor impact attribution for segments."""

    VALUE_COLUMN = "value"
    SEGMENT_COLUMNS: List[str] = [
        VALUE_COLUMN,
        "previous_weight",
        "current_weight",
        "previous_count",
        "current_count",
        "previous_rate",
        "current_rate",
        "previous_share",
        "current_share",
        "yield_impact",
        "distribution_impact",
        "total_impact",
    ]

    @staticmethod
    def _sum_aggregations(records: RecordSet, prefix: str) -> List[pl.Expr]:
        weight = pl.col(records.weight_field).fill_null(0.0)
        rate = pl.col(records.rate_field).fill_null(0.0)
        return [
            weight.sum().alias(f"{prefix}_weight"),
            (weight * rate).sum().alias(f"{prefix}_weighted_sum"),
            pl.len().cast(pl.Int64).alias(f"{prefix}_count"),
        ]

    def _totals(self, records: RecordSet) -> Dict[str, Any]:
        if records.is_empty():
            return {"period_weight": 0.0, "period_weighted_sum": 0.0, "period_count": 0}
        return records.frame.select(self._sum_aggregations(records, "period")).to_dicts()[0]

    def weighted_rate(self, records: RecordSet) -> float:
        """Return sum(weight * rate) / sum(weight), or 0 when there is no weight."""
        totals = self._totals(records)
        return safe_ratio(to_float(totals["period_weighted_sum"]), to_float(totals["period_weight"]))

    def total_weight(self, records: RecordSet) -> float:
        return to_float(self._totals(records)["period_weight"])

    def decompose(
        self,
        previous: RecordSet,
        current: RecordSet,
        previous_total: RecordSet,
        current_total: RecordSet,
    ) -> ImpactDecomposition:
        """Split a segment's impact using the full portfolio as the share denominator."""
        previous_rate = self.weighted_rate(previous)
        current_rate = self.weighted_rate(current)
        previous_share = safe_ratio(self.total_weight(previous), self.total_weight(previous_total))
        current_share = safe_ratio(self.total_weight(current), self.total_weight(current_total))

        return ImpactDecomposition(
            previous_rate=previous_rate,
            current_rate=current_rate,
            previous_share=previous_share,
            current_share=current_share,
            yield_impact=(current_rate - previous_rate) * previous_share,
            distribution_impact=previous_rate * (current_share - previous_share),
        )

    def _group_totals(self, records: RecordSet, factor: str, prefix: str) -> pl.DataFrame:
        schema = {
            self.VALUE_COLUMN: pl.Null,
            f"{prefix}_weight": pl.Float64,
            f"{prefix}_weighted_sum": pl.Float64,
            f"{prefix}_count": pl.Int64,
        }
        if records.is_empty() or factor not in records.columns:
            return pl.DataFrame(schema=schema)
        return (
            records.frame.filter(pl.col(factor).is_not_null())
            .group_by(factor)
            .agg(self._sum_aggregations(records, prefix))
            .rename({factor: self.VALUE_COLUMN})
        )

    def segment_impacts(
        self,
        previous: RecordSet,
        current: RecordSet,
        factor: str,
        previous_total_weight: float,
        current_total_weight: float,
    ) -> pl.DataFrame:
        """Decompose every distinct value of ``factor`` present in either period.

        Rows are sorted by value. Shares are taken against the supplied
        portfolio totals, not against ``previous``/``current`` themselves.
        """
        prev_agg = self._group_totals(previous, factor, "previous")
        curr_agg = self._group_totals(current, factor, "current")
        if prev_agg.is_empty() and curr_agg.is_empty():
            return pl.DataFrame(schema={name: pl.Float64 for name in self.SEGMENT_COLUMNS})

        key_dtype = common_key_dtype(prev_agg.schema[self.VALUE_COLUMN], curr_agg.schema[self.VALUE_COLUMN])
        prev_agg = prev_agg.with_columns(pl.col(self.VALUE_COLUMN).cast(key_dtype))
        curr_agg = curr_agg.with_columns(pl.col(self.VALUE_COLUMN).cast(key_dtype))

        joined = prev_agg.join(curr_agg, on=self.VALUE_COLUMN, how="full", coalesce=True).with_columns(
            [
                pl.col(name).fill_null(0.0)
                for name in ("previous_weight", "previous_weighted_sum", "current_weight", "current_weighted_sum")
            ]
            + [pl.col(name).fill_null(0) for name in ("previous_count", "current_count")]
        )

        impacts = (
            joined.with_columns(
                [
                    safe_ratio_expr(pl.col("previous_weighted_sum"), pl.col("previous_weight")).alias("previous_rate"),
                    safe_ratio_expr(pl.col("current_weighted_sum"), pl.col("current_weight")).alias("current_rate"),
                    safe_ratio_expr(pl.col("previous_weight"), pl.lit(float(previous_total_weight))).alias(
                        "previous_share"
                    ),
                    safe_ratio_expr(pl.col("current_weight"), pl.lit(float(current_total_weight))).alias(
                        "current_share"
                    ),
                ]
            )
            .with_columns(
                [
                    ((pl.col("current_rate") - pl.col("previous_rate")) * pl.col("previous_share")).alias(
                        "yield_impact"
                    ),
                    (pl.col("previous_rate") * (pl.col("current_share") - pl.col("previous_share"))).alias(
                        "distribution_impact"
                    ),
                ]
            )
            .with_columns((pl.col("yield_impact") + pl.col("distribution_impact")).alias("total_impact"))
            .select(self.SEGMENT_COLUMNS)
            .sort(self.VALUE_COLUMN)
        )

        logger.debug(f"Decomposed {impacts.height} segment(s) for factor '{factor}'")
        return impacts
