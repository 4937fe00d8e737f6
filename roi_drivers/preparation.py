"""Data preparation: column/value normalization, cleaning, banding, and factor discovery."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Tuple

import polars as pl
from loguru import logger

from roi_drivers.config import (
    COLUMN_ALIASES,
    EXCLUDED_FACTOR_FIELDS,
    NON_CATEGORICAL_FIELDS,
    RATE_FIELD,
    RATE_HEADER_HINTS,
    SCORE_BAND_FIELD,
    SCORE_FIELD,
    WEIGHT_FIELD,
)
from roi_drivers.domain.models import RecordSet
from roi_drivers.exceptions import InvalidInputError
from roi_drivers.impact import ImpactDecomposer
from roi_drivers.metrics import safe_percent, to_bps

CATEGORICAL_UNIQUE_RATIO = 0.5
CATEGORICAL_MAX_UNIQUE = 20
NUMERIC_NOISE_PATTERN = r"[,$%]"


@dataclass(frozen=True)
class CleaningStats:
    original_count: int
    removed_count: int
    standardized_count: int
    clean_count: int

    @property
    def quality_score(self) -> float:
        if self.original_count <= 0:
            return 0.0
        return round(self.clean_count / self.original_count * 100, 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_count": self.original_count,
            "removed_count": self.removed_count,
            "standardized_count": self.standardized_count,
            "clean_count": self.clean_count,
            "quality_score": self.quality_score,
        }


@dataclass(frozen=True, eq=False)
class PreparedData:
    previous: RecordSet
    current: RecordSet
    distinct_values: Dict[str, List[Any]]
    summary: Dict[str, Any]
    has_score: bool
    cleaning_stats: Dict[str, CleaningStats] = field(default_factory=dict)

    @property
    def available_columns(self) -> List[str]:
        return list(self.distinct_values.keys())


def _slug(text: Any) -> str:
    lowered = str(text).strip().lower()
    return re.sub(r"_+", "_", re.sub(r"[^a-z0-9]", "_", lowered)).strip("_")


def _contains_run(tokens: List[str], run: List[str]) -> bool:
    width = len(run)
    return any(tokens[idx : idx + width] == run for idx in range(len(tokens) - width + 1))


def normalize_column_name(name: Any) -> str:
    """Map a raw header to its canonical field name, or to its slug."""
    if name is None or str(name).strip() == "":
        return "unknown_column"
    normalized = _slug(name)
    tokens = normalized.split("_")
    for standard, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            alias_slug = _slug(alias)
            if normalized == alias_slug:
                return standard
            if len(alias_slug) > 1 and _contains_run(tokens, alias_slug.split("_")):
                return standard
    return normalized


def _rename_plan(columns: Sequence[str]) -> List[Tuple[str, str]]:
    plan: List[Tuple[str, str]] = []
    used: set[str] = set()
    for column in columns:
        target = normalize_column_name(column)
        if target == RATE_FIELD and "date" in str(column).lower():
            target = _slug(column)
        if target in used:
            logger.warning(f"Column '{column}' duplicates normalized field '{target}' and is ignored")
            continue
        used.add(target)
        plan.append((column, target))
    return plan


def _is_rate_header(header: str) -> bool:
    lowered = str(header).lower()
    return any(hint in lowered for hint in RATE_HEADER_HINTS)


def _normalize_column(frame: pl.DataFrame, source: str, target: str, keep_text: bool = False) -> pl.Expr:
    dtype = frame.schema[target]
    rate_like = _is_rate_header(source)

    if keep_text and dtype != pl.Utf8:
        return pl.col(target).cast(pl.Utf8).alias(target)

    if dtype == pl.Utf8:
        stripped = pl.col(target).str.strip_chars()
        text = pl.when(stripped == "").then(None).otherwise(pl.col(target))
        if keep_text:
            return text.alias(target)
        parsed = stripped.str.replace_all(NUMERIC_NOISE_PATTERN, "").cast(pl.Float64, strict=False)
        probe = frame.select(
            text.is_not_null().sum().alias("filled"),
            (text.is_not_null() & parsed.is_null()).sum().alias("unparsed"),
        ).row(0, named=True)
        if probe["filled"] > 0 and probe["unparsed"] == 0:
            numeric = pl.when(text.is_null()).then(None).otherwise(parsed)
            return (numeric / 100 if rate_like else numeric).alias(target)
        return text.alias(target)

    if dtype.is_numeric() and rate_like:
        return (pl.col(target).cast(pl.Float64) / 100).alias(target)
    return pl.col(target)


def normalize_frame(
    raw: pl.DataFrame,
    weight_field: str = WEIGHT_FIELD,
    rate_field: str = RATE_FIELD,
    text_columns: Sequence[str] = (),
) -> Tuple[pl.DataFrame, CleaningStats]:
    """Standardize names and types, then drop incomplete rows.

    Rows with any empty cell, or with a zero/missing weight or rate, are
    removed. Text in categorical columns is trimmed and lower-cased.
    Columns named in ``text_columns`` stay text even when every value
    looks numeric.
    """
    original_count = raw.height
    plan = _rename_plan(raw.columns)
    renamed = raw.select([pl.col(source).alias(target) for source, target in plan])

    missing = [name for name in (weight_field, rate_field) if name not in renamed.columns]
    if missing:
        raise InvalidInputError(f"Missing required columns: {missing}")

    keep_text = set(text_columns) - {weight_field, rate_field}
    typed = renamed.with_columns(
        [_normalize_column(renamed, source, target, target in keep_text) for source, target in plan]
    )
    typed = typed.with_columns(
        [pl.col(name).cast(pl.Float64, strict=False).alias(name) for name in (weight_field, rate_field)]
    )

    complete = typed.drop_nulls().filter(
        (pl.col(weight_field) != 0) & (pl.col(rate_field) != 0)
    )
    removed_count = original_count - complete.height
    if removed_count:
        logger.warning(f"Removed {removed_count}/{original_count} incomplete row(s)")

    categorical = [
        name for name, dtype in complete.schema.items() if dtype == pl.Utf8 and name not in NON_CATEGORICAL_FIELDS
    ]
    standardized_count = 0
    if categorical and not complete.is_empty():
        changed = complete.select(
            [
                (pl.col(name) != pl.col(name).str.strip_chars().str.to_lowercase()).sum().alias(name)
                for name in categorical
            ]
        ).row(0)
        standardized_count = int(sum(value or 0 for value in changed))
        complete = complete.with_columns(
            [pl.col(name).str.strip_chars().str.to_lowercase().alias(name) for name in categorical]
        )

    stats = CleaningStats(
        original_count=original_count,
        removed_count=removed_count,
        standardized_count=standardized_count,
        clean_count=complete.height,
    )
    logger.info(
        f"Normalized frame: {stats.clean_count}/{stats.original_count} rows kept, "
        f"{stats.standardized_count} value(s) standardized"
    )
    return complete, stats


def apply_score_banding(frame: pl.DataFrame) -> pl.DataFrame:
    """Add a score band column when the frame carries a V score."""
    if SCORE_FIELD not in frame.columns:
        return frame
    score = (
        pl.col(SCORE_FIELD)
        .cast(pl.Utf8, strict=False)
        .str.replace(r"^[vV]", "")
        .str.strip_chars()
        .cast(pl.Float64, strict=False)
    )
    band = (
        pl.when(score <= 10)
        .then(pl.lit("Low (≤V10)"))
        .when((score >= 11) & (score <= 14))
        .then(pl.lit("Mid (V11-V14)"))
        .when(score >= 15)
        .then(pl.lit("High (≥V15)"))
        .otherwise(pl.lit("Unknown"))
    )
    return frame.with_columns(band.alias(SCORE_BAND_FIELD))


def _present_values(series: pl.Series) -> pl.Series:
    values = series.drop_nulls()
    if values.dtype == pl.Utf8:
        values = values.filter(values != "")
    return values


def is_categorical(series: pl.Series) -> bool:
    values = _present_values(series)
    if values.len() == 0:
        return False
    unique_count = values.n_unique()
    if unique_count / values.len() < CATEGORICAL_UNIQUE_RATIO or unique_count < CATEGORICAL_MAX_UNIQUE:
        return True
    if values.dtype == pl.Utf8:
        return bool(values.cast(pl.Float64, strict=False).is_null().any())
    return False


def distinct_values(frame: pl.DataFrame) -> Dict[str, List[Any]]:
    """Sorted distinct values for every categorical, non-excluded column."""
    result: Dict[str, List[Any]] = {}
    for name in frame.columns:
        if name in EXCLUDED_FACTOR_FIELDS:
            continue
        series = frame.get_column(name)
        if name == SCORE_BAND_FIELD or is_categorical(series):
            result[name] = _present_values(series).unique().sort().to_list()
    return result


def summary_stats(
    previous: RecordSet,
    current: RecordSet,
    decomposer: ImpactDecomposer | None = None,
) -> Dict[str, Any]:
    decomposer = decomposer or ImpactDecomposer()
    previous_rate = decomposer.weighted_rate(previous)
    current_rate = decomposer.weighted_rate(current)
    rate_change = current_rate - previous_rate
    return {
        "previous": {
            "record_count": previous.height,
            "total_weight": decomposer.total_weight(previous),
            "weighted_rate": previous_rate,
        },
        "current": {
            "record_count": current.height,
            "total_weight": decomposer.total_weight(current),
            "weighted_rate": current_rate,
        },
        "change": {
            "rate_change": rate_change,
            "rate_change_bps": to_bps(rate_change),
            "percentage_change": safe_percent(rate_change, previous_rate),
        },
    }


def _as_frame(data: Any, label: str) -> pl.DataFrame:
    if data is None:
        raise InvalidInputError(f"{label} data is required")
    if isinstance(data, pl.DataFrame):
        return data
    if isinstance(data, (list, tuple)):
        if not data:
            raise InvalidInputError(f"{label} data is empty")
        try:
            return pl.DataFrame([dict(row) for row in data], infer_schema_length=None, strict=False)
        except (TypeError, ValueError, pl.exceptions.PolarsError) as exc:
            raise InvalidInputError(f"{label} data does not form a consistent table: {exc}") from exc
    raise InvalidInputError(f"{label} data must be a DataFrame or a list of mappings")


def _mixed_text_columns(previous: pl.DataFrame, current: pl.DataFrame) -> List[str]:
    return [
        name
        for name, dtype in previous.schema.items()
        if name in current.columns
        and name not in EXCLUDED_FACTOR_FIELDS
        and (dtype == pl.Utf8) != (current.schema[name] == pl.Utf8)
    ]


def prepare_for_analysis(
    previous_raw: pl.DataFrame | Sequence[Mapping[str, Any]],
    current_raw: pl.DataFrame | Sequence[Mapping[str, Any]],
) -> PreparedData:
    """Normalize both periods and collect the factors available for splitting.

    A column read as text in either period is kept as text in both, so
    factor values compare alike across the periods.
    """
    previous_input = _as_frame(previous_raw, "Previous period")
    current_input = _as_frame(current_raw, "Current period")
    previous_frame, previous_stats = normalize_frame(previous_input)
    current_frame, current_stats = normalize_frame(current_input)

    mixed = _mixed_text_columns(previous_frame, current_frame)
    if mixed:
        logger.warning(f"Columns typed differently across periods are kept as text: {mixed}")
        previous_frame, previous_stats = normalize_frame(previous_input, text_columns=mixed)
        current_frame, current_stats = normalize_frame(current_input, text_columns=mixed)

    has_score = SCORE_FIELD in previous_frame.columns
    if has_score:
        previous_frame = apply_score_banding(previous_frame)
        current_frame = apply_score_banding(current_frame)

    if set(previous_frame.columns) != set(current_frame.columns):
        logger.warning(
            f"Period field sets differ: {sorted(set(previous_frame.columns) ^ set(current_frame.columns))}"
        )

    previous = RecordSet.from_frame(previous_frame)
    current = RecordSet.from_frame(current_frame)
    combined = pl.concat([previous_frame, current_frame], how="diagonal_relaxed")

    prepared = PreparedData(
        previous=previous,
        current=current,
        distinct_values=distinct_values(combined),
        summary=summary_stats(previous, current),
        has_score=has_score,
        cleaning_stats={"previous": previous_stats, "current": current_stats},
    )
    logger.info(f"Prepared analysis data with factors {prepared.available_columns}")
    return prepared
