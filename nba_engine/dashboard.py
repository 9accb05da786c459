"""
================================================================================
MODULE: DASHBOARD / STATS AGGREGATOR
================================================================================
PURPOSE:
    Read-side aggregates over persisted recommendations and HCP directory
    data. No writes and no caching: every call recomputes from the sources.

DEFINITIONS:
    - Contacts this month: contacts on/after the first instant of the current
      UTC month.
    - Attributed prescription: its HCP has a COMPLETED recommendation executed
      at or before the prescription, and that recommendation references no
      products or references the prescribed one.
    - Success rate: % of COMPLETED with outcome successful/partial, 1 decimal.
================================================================================
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from data_models.base import ensure_utc, utc_now
from data_models.hcp import Prescription
from data_models.recommendation import (
    DashboardStats,
    HCPRanking,
    ProductRanking,
    Recommendation,
    RecommendationOutcome,
    RecommendationState,
    RecommendationStats,
)
from main_configs import NBAConfigs
from nba_engine.collaborators import HCPDirectory, RecommendationStore

logger = logging.getLogger(__name__)

_POSITIVE_OUTCOMES = {RecommendationOutcome.SUCCESSFUL.value, RecommendationOutcome.PARTIAL.value}


def month_start(now: datetime) -> datetime:
    return ensure_utc(now).replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def success_rate(recommendations: List[Recommendation]) -> float:
    completed = [r for r in recommendations if r.state == RecommendationState.COMPLETED.value]
    if not completed:
        return 0.0
    positive = sum(1 for r in completed if r.outcome in _POSITIVE_OUTCOMES)
    return round(100.0 * positive / len(completed), 1)


def attributed_prescriptions(
    prescriptions: List[Prescription],
    recommendations: List[Recommendation],
) -> List[Prescription]:
    executed: Dict[str, List[Recommendation]] = defaultdict(list)
    for rec in recommendations:
        if rec.state == RecommendationState.COMPLETED.value and rec.executed_at:
            executed[rec.hcp_id].append(rec)

    attributed = []
    for rx in prescriptions:
        for rec in executed.get(rx.hcp_id, ()):
            if rec.executed_at <= rx.prescribed_at and (not rec.products or rx.product_id in rec.products):
                attributed.append(rx)
                break
    return attributed


def compute_dashboard_stats(
    store: RecommendationStore,
    directory: HCPDirectory,
    now: Optional[datetime] = None,
    top_n: Optional[int] = None,
) -> DashboardStats:
    now = now or utc_now()
    top_n = top_n or NBAConfigs.DASHBOARD_TOP_N

    recommendations = store.list_all()
    hcps = directory.list_hcps()
    contacts = directory.list_contacts(month_start(now))
    attributed = attributed_prescriptions(directory.list_prescriptions(), recommendations)

    product_counts = Counter(rx.product_id for rx in attributed)
    top_products = [
        ProductRanking(product_id=product_id, prescriptions=count)
        # most_common keeps first-seen order on ties
        for product_id, count in product_counts.most_common(top_n)
    ]

    active = [h for h in hcps if h.active]
    ranked = sorted(active, key=lambda h: (-h.engagement.response_rate, h.hcp_id))
    top_hcps = [
        HCPRanking(hcp_id=h.hcp_id, name=h.display_name, engagement=h.engagement.response_rate)
        for h in ranked[:top_n]
    ]

    stats = DashboardStats(
        active_hcps=len(active),
        pending_recommendations=sum(1 for r in recommendations if r.state == RecommendationState.PENDING.value),
        contacts_this_month=len(contacts),
        attributed_prescriptions=len(attributed),
        prescription_value=round(sum(rx.value for rx in attributed), 2),
        success_rate=success_rate(recommendations),
        top_products=top_products,
        top_hcps=top_hcps,
    )
    logger.debug("Dashboard stats computed: %s", stats.model_dump(exclude={"top_products", "top_hcps"}))
    return stats


def compute_recommendation_stats(store: RecommendationStore) -> RecommendationStats:
    recommendations = store.list_all()
    total = len(recommendations)
    return RecommendationStats(
        total=total,
        by_state=dict(Counter(r.state for r in recommendations)),
        by_action_type=dict(Counter(r.action_type for r in recommendations)),
        by_channel=dict(Counter(r.channel for r in recommendations)),
        success_rate=success_rate(recommendations),
        average_score=round(sum(r.score for r in recommendations) / total, 1) if total else 0.0,
    )
