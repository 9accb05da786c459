"""SQLAlchemy persistence store for recommendations and outcome statistics."""

import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from data_models.base import ensure_utc, utc_now
from data_models.dbo_recommendation import OutcomeStatistic, RecommendationRecord
from data_models.recommendation import Recommendation, RecommendationFilters
from nba_engine.errors import InvalidTransition, NotFound

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]

# Columns a state transition may stamp alongside the new state
_TRANSITION_FIELDS = {"executed_at", "outcome", "status_reason"}


def _to_domain(row: RecommendationRecord) -> Recommendation:
    return Recommendation(
        recommendation_id=row.recommendation_id,
        hcp_id=row.hcp_id,
        action_type=row.action_type,
        priority=row.priority,
        channel=row.channel,
        ideal_moment=ensure_utc(row.ideal_moment),
        message=row.message,
        rationale=row.rationale or "",
        products=list(row.products or []),
        approved_content_ids=list(row.approved_content_ids or []),
        restrictions=list(row.restrictions or []),
        reasons=list(row.reasons or []),
        origin=row.origin or "model",
        score=row.score,
        state=row.state,
        status_reason=row.status_reason,
        created_at=ensure_utc(row.created_at),
        executed_at=ensure_utc(row.executed_at),
        outcome=row.outcome,
    )


def _to_row(recommendation: Recommendation) -> RecommendationRecord:
    return RecommendationRecord(
        recommendation_id=recommendation.recommendation_id,
        hcp_id=recommendation.hcp_id,
        action_type=recommendation.action_type,
        channel=recommendation.channel,
        priority=recommendation.priority,
        score=recommendation.score,
        ideal_moment=recommendation.ideal_moment,
        message=recommendation.message,
        rationale=recommendation.rationale,
        products=list(recommendation.products),
        approved_content_ids=list(recommendation.approved_content_ids),
        restrictions=list(recommendation.restrictions),
        reasons=list(recommendation.reasons),
        origin=recommendation.origin,
        state=recommendation.state,
        status_reason=recommendation.status_reason,
        created_at=recommendation.created_at,
        updated_at=recommendation.created_at,
    )


class SQLRecommendationStore:
    """
    Recommendation persistence backed by any SQLAlchemy engine.

    State changes go through `update_state`, a compare-and-swap on the
    `state` column: the UPDATE only matches while the row still holds the
    expected state, so two concurrent transitions cannot both win.
    """

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def create_recommendation(self, recommendation: Recommendation) -> str:
        return self.create_recommendations([recommendation])[0]

    def create_recommendations(self, recommendations: List[Recommendation]) -> List[str]:
        """Store a whole batch in one transaction; nothing is kept if any row fails."""
        with self._session_factory() as session, session.begin():
            for recommendation in recommendations:
                session.add(_to_row(recommendation))
        logger.debug("Stored %d recommendation(s)", len(recommendations))
        return [r.recommendation_id for r in recommendations]

    def get(self, recommendation_id: str) -> Optional[Recommendation]:
        with self._session_factory() as session:
            row = session.execute(
                select(RecommendationRecord).where(RecommendationRecord.recommendation_id == recommendation_id)
            ).scalar_one_or_none()
            return _to_domain(row) if row else None

    def update_state(
        self,
        recommendation_id: str,
        expected_state: str,
        new_state: str,
        fields: Optional[Dict[str, Any]] = None,
    ) -> Recommendation:
        values: Dict[str, Any] = {"state": new_state, "updated_at": utc_now()}
        for name, value in (fields or {}).items():
            if name not in _TRANSITION_FIELDS:
                raise ValueError(f"Field '{name}' cannot be changed by a state transition")
            values[name] = value

        stmt = (
            update(RecommendationRecord)
            .where(
                RecommendationRecord.recommendation_id == recommendation_id,
                RecommendationRecord.state == expected_state,
            )
            .values(**values)
        )

        with self._session_factory() as session, session.begin():
            result = session.execute(stmt)
            if result.rowcount == 1:
                row = session.execute(
                    select(RecommendationRecord).where(RecommendationRecord.recommendation_id == recommendation_id)
                ).scalar_one()
                return _to_domain(row)

            current = session.execute(
                select(RecommendationRecord.state).where(RecommendationRecord.recommendation_id == recommendation_id)
            ).scalar_one_or_none()

        if current is None:
            raise NotFound(f"Recommendation '{recommendation_id}' not found")
        raise InvalidTransition(
            f"Recommendation '{recommendation_id}' is {current}, expected {expected_state}",
            current=current,
            target=new_state,
        )

    def query(self, filters: Optional[RecommendationFilters] = None) -> List[Recommendation]:
        filters = filters or RecommendationFilters()
        stmt = select(RecommendationRecord)

        if filters.hcp_id:
            stmt = stmt.where(RecommendationRecord.hcp_id == filters.hcp_id)
        if filters.action_type:
            stmt = stmt.where(RecommendationRecord.action_type == filters.action_type)
        if filters.channel:
            stmt = stmt.where(RecommendationRecord.channel == filters.channel)
        if filters.priority_min is not None:
            stmt = stmt.where(RecommendationRecord.priority >= filters.priority_min)
        if filters.priority_max is not None:
            stmt = stmt.where(RecommendationRecord.priority <= filters.priority_max)
        if filters.created_from:
            stmt = stmt.where(RecommendationRecord.created_at >= filters.created_from)
        if filters.created_to:
            stmt = stmt.where(RecommendationRecord.created_at <= filters.created_to)
        if filters.state:
            stmt = stmt.where(RecommendationRecord.state == filters.state)

        # Ranking contract: priority, then score, then creation order
        stmt = stmt.order_by(
            RecommendationRecord.priority.desc(),
            RecommendationRecord.score.desc(),
            RecommendationRecord.seq.asc(),
        )

        with self._session_factory() as session:
            return [_to_domain(row) for row in session.execute(stmt).scalars().all()]

    def list_all(self) -> List[Recommendation]:
        return self.query(RecommendationFilters())


class SQLOutcomeStatsRepository:
    """Counters fed by learn-from-outcome, keyed by (dimension, key)."""

    _OUTCOME_COLUMNS = {
        "successful": "successful",
        "partial": "partial",
        "failed": "failed",
        "not-applicable": "not_applicable",
    }

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def increment(self, dimension: str, key: str, outcome: str) -> None:
        column = self._OUTCOME_COLUMNS.get(outcome)
        if column is None:
            raise ValueError(f"Unknown outcome: {outcome}")

        # Counters are bumped inside the UPDATE so concurrent writers never read-modify-write
        bump = (
            update(OutcomeStatistic)
            .where(OutcomeStatistic.dimension == dimension, OutcomeStatistic.key == key)
            .values(total=OutcomeStatistic.total + 1, **{column: getattr(OutcomeStatistic, column) + 1})
            .execution_options(synchronize_session=False)
        )

        # One retry covers the race where two workers insert the same new key
        for attempt in range(2):
            try:
                with self._session_factory() as session, session.begin():
                    if session.execute(bump).rowcount == 0:
                        counts = dict(total=1, successful=0, partial=0, failed=0, not_applicable=0)
                        counts[column] = 1
                        session.add(OutcomeStatistic(dimension=dimension, key=key, **counts))
                return
            except IntegrityError:
                if attempt:
                    raise
                logger.debug("Concurrent insert for %s=%s, retrying", dimension, key)

    def list_stats(self, dimension: Optional[str] = None) -> List[Dict[str, Any]]:
        stmt = select(OutcomeStatistic).order_by(OutcomeStatistic.dimension, OutcomeStatistic.key)
        if dimension:
            stmt = stmt.where(OutcomeStatistic.dimension == dimension)
        with self._session_factory() as session:
            return [
                {
                    "dimension": row.dimension,
                    "key": row.key,
                    "total": row.total,
                    "successful": row.successful,
                    "partial": row.partial,
                    "failed": row.failed,
                    "not_applicable": row.not_applicable,
                }
                for row in session.execute(stmt).scalars().all()
            ]
