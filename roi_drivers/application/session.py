"""Request-scoped analysis sessions held by the calling layer."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Sequence, Tuple

from loguru import logger

from roi_drivers.application.analysis_service import AnalysisResult, run_auto_analysis, run_priority_analysis
from roi_drivers.application.comparison_service import compare_analyses
from roi_drivers.config import AUTO_EXCLUDED_FIELDS, RATE_FIELD, SESSION_TTL_MINUTES
from roi_drivers.exceptions import (
    AnalysisNotFoundError,
    InvalidInputError,
    SessionNotFoundError,
    UnknownFactorError,
)
from roi_drivers.preparation import PreparedData
from roi_drivers.tree import TreeBuilder


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StoredAnalysis:
    result: AnalysisResult
    created_at: datetime


@dataclass
class AnalysisSession:
    """Prepared data plus every analysis run against it.

    The session validates factor names before handing records to the
    engine; the engine itself keeps no state between calls.
    """

    prepared: PreparedData
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)
    builder: TreeBuilder = field(default_factory=TreeBuilder)
    analyses: Dict[str, StoredAnalysis] = field(default_factory=dict)

    def validate_factors(self, factors: Sequence[str]) -> None:
        available = self.prepared.available_columns
        invalid = [factor for factor in factors if factor not in available]
        if invalid:
            raise UnknownFactorError(invalid, available)

    def _store(self, result: AnalysisResult) -> str:
        analysis_id = str(uuid.uuid4())
        self.analyses[analysis_id] = StoredAnalysis(result=result, created_at=_utcnow())
        return analysis_id

    def run_priority(
        self,
        factor_order: Sequence[str],
        target_field: str = RATE_FIELD,
    ) -> Tuple[str, AnalysisResult]:
        if not factor_order or isinstance(factor_order, str):
            raise InvalidInputError("Factor order must be a non-empty list of field names")
        self.validate_factors(factor_order)
        result = run_priority_analysis(
            self.prepared.previous,
            self.prepared.current,
            factor_order,
            target_field=target_field,
            builder=self.builder,
        )
        return self._store(result), result

    def run_auto(
        self,
        target_field: str = RATE_FIELD,
        candidate_factors: Sequence[str] | None = None,
    ) -> Tuple[str, AnalysisResult]:
        if candidate_factors:
            factors = list(candidate_factors)
        else:
            excluded = {name.lower() for name in AUTO_EXCLUDED_FIELDS}
            factors = [name for name in self.prepared.available_columns if name.lower() not in excluded]
        self.validate_factors(factors)
        result = run_auto_analysis(
            self.prepared.previous,
            self.prepared.current,
            target_field=target_field,
            candidate_factors=factors,
            builder=self.builder,
        )
        return self._store(result), result

    def get_analysis(self, analysis_id: str) -> AnalysisResult:
        stored = self.analyses.get(analysis_id)
        if stored is None:
            raise AnalysisNotFoundError(f"Analysis '{analysis_id}' not found in session '{self.session_id}'")
        return stored.result

    def compare(self, priority_id: str, auto_id: str) -> Dict[str, Any]:
        return compare_analyses(self.get_analysis(priority_id), self.get_analysis(auto_id))

    def describe(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "summary": self.prepared.summary,
            "available_columns": self.prepared.available_columns,
            "analysis_count": len(self.analyses),
            "analyses": [
                {
                    "analysis_id": analysis_id,
                    "analysis_type": stored.result.analysis_type,
                    "created_at": stored.created_at.isoformat(),
                }
                for analysis_id, stored in self.analyses.items()
            ],
        }


class SessionStore:
    """Caller-owned registry of analysis sessions with age-based expiry."""

    def __init__(self, ttl_minutes: float = SESSION_TTL_MINUTES, builder: TreeBuilder | None = None) -> None:
        self.ttl = timedelta(minutes=ttl_minutes)
        self.builder = builder
        self._sessions: Dict[str, AnalysisSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, prepared: PreparedData, session_id: str | None = None) -> AnalysisSession:
        session = AnalysisSession(prepared=prepared, builder=self.builder or TreeBuilder())
        if session_id:
            session.session_id = session_id
        self._sessions[session.session_id] = session
        logger.info(f"Session created: {session.session_id}")
        return session

    def has(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> AnalysisSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session '{session_id}' not found")
        return session

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def session_ids(self) -> List[str]:
        return list(self._sessions.keys())

    def clear_expired(self, max_age: timedelta | None = None, now: datetime | None = None) -> int:
        cutoff = (now or _utcnow()) - (max_age if max_age is not None else self.ttl)
        expired = [session_id for session_id, session in self._sessions.items() if session.created_at < cutoff]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logger.info(f"Cleaned up {len(expired)} expired session(s)")
        return len(expired)
