"""Shared numeric/formatting utilities."""

from __future__ import annotations

from typing import Any

import polars as pl

from roi_drivers.config import BPS_MULTIPLIER


def to_float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    return float(value)


def safe_ratio(num: float, den: float) -> float:
    if den <= 0:
        return 0.0
    return num / den


def safe_percent(part: float, whole: float) -> float:
    if whole == 0:
        return 0.0
    return part / whole * 100


def to_bps(value: float) -> float:
    return value * BPS_MULTIPLIER


def safe_ratio_expr(num: pl.Expr, den: pl.Expr) -> pl.Expr:
    return pl.when(den > 0).then(num / den).otherwise(0.0)


def fmt_bps(value: float | None) -> str:
    if value is None:
        return "N/A"
    return f"{value:+.2f} bps"


def population_variance(values: list[float]) -> float:
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return sum((value - mean) * (value - mean) for value in values) / len(values)
