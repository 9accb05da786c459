from datetime import datetime

from sqlalchemy import Float, Index, Integer, String, Text, TIMESTAMP, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class RecommendationRecord(Base, TimestampMixin):
    __tablename__ = "nba_recommendations"

    # Autoincrement sequence doubles as the stable creation-order tie breaker
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recommendation_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    hcp_id: Mapped[str] = mapped_column(String, nullable=False)

    action_type: Mapped[str] = mapped_column(String(40), nullable=False)
    channel: Mapped[str] = mapped_column(String(40), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)

    ideal_moment: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True))
    message: Mapped[str] = mapped_column(Text, nullable=False)
    rationale: Mapped[str | None] = mapped_column(Text)

    products: Mapped[list[str]] = mapped_column(default=list)
    approved_content_ids: Mapped[list[str]] = mapped_column(default=list)
    restrictions: Mapped[list[str]] = mapped_column(default=list)
    reasons: Mapped[list[str]] = mapped_column(default=list)
    origin: Mapped[str] = mapped_column(String(20), server_default=text("'model'"))

    state: Mapped[str] = mapped_column(String(20), nullable=False, server_default=text("'PENDING'"))
    status_reason: Mapped[str | None] = mapped_column(Text)
    executed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True))
    outcome: Mapped[str | None] = mapped_column(String(20))

    __table_args__ = (
        Index("idx_nba_recommendations_hcp", "hcp_id"),
        Index("idx_nba_recommendations_state", "state"),
        Index("idx_nba_recommendations_ranking", "priority", "score", "seq"),
    )


class OutcomeStatistic(Base, TimestampMixin):
    """Learn-from-outcome counters, one row per (dimension, key)."""

    __tablename__ = "nba_outcome_statistics"

    stat_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dimension: Mapped[str] = mapped_column(String(40), nullable=False)  # channel | action_type | hour_of_day
    key: Mapped[str] = mapped_column(String(40), nullable=False)

    total: Mapped[int] = mapped_column(Integer, default=0)
    successful: Mapped[int] = mapped_column(Integer, default=0)
    partial: Mapped[int] = mapped_column(Integer, default=0)
    failed: Mapped[int] = mapped_column(Integer, default=0)
    not_applicable: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        UniqueConstraint("dimension", "key", name="uq_outcome_dimension_key"),
    )
