"""Domain models for period records and the impact tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

import polars as pl

from roi_drivers.config import (
    BPS_MULTIPLIER,
    EXCLUDED_FACTOR_FIELDS,
    RATE_FIELD,
    ROOT_FACTOR,
    WEIGHT_FIELD,
)
from roi_drivers.exceptions import InvalidInputError


SegmentPath = Tuple[Tuple[str, Any], ...]


@dataclass(frozen=True, eq=False)
class RecordSet:
    """One period's records with typed access to the weight and rate fields.

    The frame is never mutated. ``where`` and ``filter_value`` return new
    record sets over the matching rows.
    """

    frame: pl.DataFrame
    weight_field: str = WEIGHT_FIELD
    rate_field: str = RATE_FIELD

    @classmethod
    def from_frame(
        cls,
        frame: pl.DataFrame,
        weight_field: str = WEIGHT_FIELD,
        rate_field: str = RATE_FIELD,
    ) -> "RecordSet":
        missing = [name for name in (weight_field, rate_field) if name not in frame.columns]
        if missing:
            raise InvalidInputError(f"Missing required fields: {missing}")

        coerced = frame.with_columns(
            [pl.col(name).cast(pl.Float64, strict=False).alias(name) for name in (weight_field, rate_field)]
        )
        for name in (weight_field, rate_field):
            lost = coerced.get_column(name).null_count() - frame.get_column(name).null_count()
            if lost > 0:
                raise InvalidInputError(f"Field '{name}' has {lost} non-numeric value(s)")
        return cls(frame=coerced, weight_field=weight_field, rate_field=rate_field)

    @classmethod
    def from_records(
        cls,
        records: Sequence[Mapping[str, Any]],
        weight_field: str = WEIGHT_FIELD,
        rate_field: str = RATE_FIELD,
    ) -> "RecordSet":
        if not records:
            empty = pl.DataFrame(schema={weight_field: pl.Float64, rate_field: pl.Float64})
            return cls.from_frame(empty, weight_field=weight_field, rate_field=rate_field)
        try:
            frame = pl.DataFrame([dict(row) for row in records], infer_schema_length=None, strict=False)
        except (TypeError, ValueError, pl.exceptions.PolarsError) as exc:
            raise InvalidInputError(f"Records do not form a consistent table: {exc}") from exc
        return cls.from_frame(frame, weight_field=weight_field, rate_field=rate_field)

    @classmethod
    def coerce(
        cls,
        data: Any,
        label: str,
        weight_field: str = WEIGHT_FIELD,
        rate_field: str = RATE_FIELD,
    ) -> "RecordSet":
        """Accept a RecordSet, a polars frame, or a sequence of mappings."""
        if data is None:
            raise InvalidInputError(f"{label} records are required")
        if isinstance(data, RecordSet):
            if data.weight_field == weight_field and data.rate_field == rate_field:
                return data
            return cls.from_frame(data.frame, weight_field=weight_field, rate_field=rate_field)
        if isinstance(data, pl.DataFrame):
            return cls.from_frame(data, weight_field=weight_field, rate_field=rate_field)
        if isinstance(data, (list, tuple)):
            return cls.from_records(data, weight_field=weight_field, rate_field=rate_field)
        raise InvalidInputError(f"{label} records must be a RecordSet, DataFrame or list of mappings")

    @property
    def height(self) -> int:
        return self.frame.height

    @property
    def columns(self) -> List[str]:
        return list(self.frame.columns)

    @property
    def weights(self) -> pl.Series:
        return self.frame.get_column(self.weight_field).fill_null(0.0)

    @property
    def rates(self) -> pl.Series:
        return self.frame.get_column(self.rate_field).fill_null(0.0)

    def is_empty(self) -> bool:
        return self.frame.is_empty()

    def factor_fields(self, excluded: Iterable[str] = EXCLUDED_FACTOR_FIELDS) -> List[str]:
        skip = set(excluded) | {self.weight_field, self.rate_field}
        return [name for name in self.frame.columns if name not in skip]

    def has_values(self, factor: str) -> bool:
        if factor not in self.frame.columns:
            return False
        return self.frame.get_column(factor).null_count() < self.frame.height

    def filter_value(self, factor: str, value: Any) -> "RecordSet":
        if factor not in self.frame.columns:
            return self._with_frame(self.frame.head(0))
        return self._with_frame(self.frame.filter(pl.col(factor) == pl.lit(value)))

    def where(self, path: Iterable[Tuple[str, Any]]) -> "RecordSet":
        scoped = self
        for factor, value in path:
            scoped = scoped.filter_value(factor, value)
        return scoped

    def _with_frame(self, frame: pl.DataFrame) -> "RecordSet":
        return RecordSet(frame=frame, weight_field=self.weight_field, rate_field=self.rate_field)


def common_key_dtype(left: pl.DataType, right: pl.DataType) -> pl.DataType:
    """Dtype both periods' values of one factor are compared in."""
    if left == right or right == pl.Null:
        return left
    if left == pl.Null:
        return right
    if left.is_numeric() and right.is_numeric():
        return pl.Float64
    return pl.Utf8


def align_factor_types(previous: RecordSet, current: RecordSet) -> Tuple[RecordSet, RecordSet]:
    """Cast factors typed differently across the periods to one shared dtype."""
    fixed = {previous.weight_field, previous.rate_field}
    casts: Dict[str, pl.DataType] = {}
    for name, dtype in previous.frame.schema.items():
        other = current.frame.schema.get(name)
        if name in fixed or other is None or other == dtype:
            continue
        casts[name] = common_key_dtype(dtype, other)
    if not casts:
        return previous, current

    def _cast(records: RecordSet) -> RecordSet:
        return records._with_frame(
            records.frame.with_columns([pl.col(name).cast(dtype) for name, dtype in casts.items()])
        )

    return _cast(previous), _cast(current)


@dataclass(frozen=True)
class ImpactDecomposition:
    """Yield/distribution split of one segment's contribution to the ROI change."""

    previous_rate: float
    current_rate: float
    previous_share: float
    current_share: float
    yield_impact: float
    distribution_impact: float

    @property
    def total_impact(self) -> float:
        return self.yield_impact + self.distribution_impact

    @property
    def yield_impact_bps(self) -> float:
        return self.yield_impact * BPS_MULTIPLIER

    @property
    def distribution_impact_bps(self) -> float:
        return self.distribution_impact * BPS_MULTIPLIER

    @property
    def total_impact_bps(self) -> float:
        return self.total_impact * BPS_MULTIPLIER


@dataclass(frozen=True)
class NodeMetrics:
    previous_rate: float
    current_rate: float
    previous_weight: float
    current_weight: float
    previous_count: int
    current_count: int
    previous_share: float
    current_share: float
    yield_impact: float
    distribution_impact: float
    total_impact: float
    percent_on_parent: float | None
    percent_on_root: float

    @property
    def rate_change(self) -> float:
        return self.current_rate - self.previous_rate

    @property
    def rate_change_bps(self) -> float:
        return self.rate_change * BPS_MULTIPLIER

    @property
    def yield_impact_bps(self) -> float:
        return self.yield_impact * BPS_MULTIPLIER

    @property
    def distribution_impact_bps(self) -> float:
        return self.distribution_impact * BPS_MULTIPLIER

    @property
    def total_impact_bps(self) -> float:
        return self.total_impact * BPS_MULTIPLIER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "previous_rate": self.previous_rate,
            "current_rate": self.current_rate,
            "rate_change": self.rate_change,
            "rate_change_bps": self.rate_change_bps,
            "previous_weight": self.previous_weight,
            "current_weight": self.current_weight,
            "previous_count": self.previous_count,
            "current_count": self.current_count,
            "previous_share": self.previous_share,
            "current_share": self.current_share,
            "yield_impact": self.yield_impact,
            "distribution_impact": self.distribution_impact,
            "total_impact": self.total_impact,
            "yield_impact_bps": self.yield_impact_bps,
            "distribution_impact_bps": self.distribution_impact_bps,
            "total_impact_bps": self.total_impact_bps,
            "percent_on_parent": self.percent_on_parent,
            "percent_on_root": self.percent_on_root,
        }


@dataclass(frozen=True)
class TreeNode:
    factor: str
    value: Any
    path: SegmentPath
    metrics: NodeMetrics
    children: Tuple["TreeNode", ...] = ()

    @property
    def filter(self) -> Dict[str, Any]:
        return dict(self.path)

    @property
    def is_root(self) -> bool:
        return self.factor == ROOT_FACTOR and not self.path

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def to_dict(self) -> Dict[str, Any]:
        return {
            "factor": self.factor,
            "value": self.value,
            "filter": self.filter,
            "metrics": self.metrics.to_dict(),
            "children": [child.to_dict() for child in self.children] if self.children else None,
        }


@dataclass(frozen=True)
class FactorScore:
    factor: str
    variance: float
    value_count: int


@dataclass
class FactorContribution:
    yield_impact: float = 0.0
    distribution_impact: float = 0.0
    total_impact: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "yield_impact": self.yield_impact,
            "distribution_impact": self.distribution_impact,
            "total_impact": self.total_impact,
        }


@dataclass(frozen=True)
class ImpactSummary:
    """Impact totals across every non-root node, nested levels included."""

    total_yield_impact: float
    total_distribution_impact: float
    factor_contributions: Dict[str, FactorContribution] = field(default_factory=dict)

    @property
    def total_impact(self) -> float:
        return self.total_yield_impact + self.total_distribution_impact

    @property
    def total_yield_impact_bps(self) -> float:
        return self.total_yield_impact * BPS_MULTIPLIER

    @property
    def total_distribution_impact_bps(self) -> float:
        return self.total_distribution_impact * BPS_MULTIPLIER

    @property
    def total_impact_bps(self) -> float:
        return self.total_impact * BPS_MULTIPLIER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_yield_impact": self.total_yield_impact,
            "total_distribution_impact": self.total_distribution_impact,
            "total_impact": self.total_impact,
            "total_yield_impact_bps": self.total_yield_impact_bps,
            "total_distribution_impact_bps": self.total_distribution_impact_bps,
            "total_impact_bps": self.total_impact_bps,
            "factor_contributions": {name: item.to_dict() for name, item in self.factor_contributions.items()},
        }
