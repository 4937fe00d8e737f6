"""Engine constants and environment overrides."""

from __future__ import annotations

import os
from typing import Dict, Tuple


WEIGHT_FIELD = "total_loan_amount"
RATE_FIELD = "roi"
SCORE_FIELD = "v_score"
SCORE_BAND_FIELD = "v_score_band"

EXCLUDED_FACTOR_FIELDS: Tuple[str, ...] = (WEIGHT_FIELD, RATE_FIELD, SCORE_FIELD)
NON_CATEGORICAL_FIELDS: Tuple[str, ...] = (*EXCLUDED_FACTOR_FIELDS, "tenure")
AUTO_EXCLUDED_FIELDS: Tuple[str, ...] = (*EXCLUDED_FACTOR_FIELDS, "application_id")

COLUMN_ALIASES: Dict[str, Tuple[str, ...]] = {
    WEIGHT_FIELD: ("total loan amount", "loan amount", "amount", "total_amount", "loan_amt", "amt"),
    RATE_FIELD: ("roi", "rate of interest", "interest rate", "rate", "yield", "interest_rate"),
    SCORE_FIELD: ("v score", "vscore", "v_score", "score", "v"),
}
RATE_HEADER_HINTS: Tuple[str, ...] = ("roi", "rate", "interest")

BPS_MULTIPLIER = 10_000.0
ROOT_FACTOR = "root"
ROOT_LABEL = "Portfolio ROI"
PATH_SEPARATOR = " → "


def _parse_int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}: {raw}") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _parse_positive_float_env(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}: {raw}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be > 0, got {value}")
    return value


MAX_AUTO_DEPTH = _parse_int_env("ROI_DRIVERS_MAX_DEPTH", 4)
MIN_SPLIT_SAMPLES = _parse_int_env("ROI_DRIVERS_MIN_SAMPLES", 10)
SESSION_TTL_MINUTES = _parse_positive_float_env("ROI_DRIVERS_SESSION_TTL_MINUTES", 30.0)
