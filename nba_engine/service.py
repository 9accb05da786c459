"""
================================================================================
MODULE: NEXT BEST ACTION SERVICE
================================================================================
PURPOSE:
    The outbound surface of the engine. Wires the collaborators (directory,
    catalog, signals, model engine, store) into the generation pipeline and
    the lifecycle operations the HTTP layer and Celery tasks call.

PIPELINE (one HCP):
    assemble context -> invoke model (fallback on failure) -> compliance
    filter (drop failing candidates) -> fallback if the batch emptied ->
    lifecycle create (PENDING)

MAINTENANCE:
    Collaborators are injected; build_default_service() is the only place
    that knows about concrete implementations.
================================================================================
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from functools import partial
from typing import Any, Dict, List, Optional, Sequence

from agentic_models.base import BaseLLMEngine
from data_models.recommendation import (
    BulkResult,
    DashboardStats,
    RawRecommendation,
    Recommendation,
    RecommendationFilters,
    RecommendationStats,
)
from main_configs import NBAConfigs
from nba_engine import bulk, dashboard
from nba_engine.collaborators import CatalogStore, HCPDirectory, RecommendationStore, SignalSource
from nba_engine.compliance import validate_message
from nba_engine.context_assembler import assemble_context
from nba_engine.errors import ComplianceRejected
from nba_engine.lifecycle import RecommendationLifecycle
from nba_engine.model_invoker import fallback_recommendations, generate_raw_recommendations

logger = logging.getLogger(__name__)

# Offloads blocking pipeline calls from the event loop
_DEFAULT_EXECUTOR = ThreadPoolExecutor(max_workers=4, thread_name_prefix="nba-service")


def filter_compliant(candidates: List[RawRecommendation], hcp_id: str) -> List[RawRecommendation]:
    approved = []
    for candidate in candidates:
        result = validate_message(candidate.message)
        if result.approved:
            approved.append(candidate)
            continue
        logger.warning(
            "Dropping %s candidate for HCP %s: %s",
            candidate.action_type, hcp_id, ", ".join(result.violations),
        )
    return approved


class NextBestActionService:
    def __init__(
        self,
        directory: HCPDirectory,
        catalog: CatalogStore,
        signals: SignalSource,
        store: RecommendationStore,
        engine: Optional[BaseLLMEngine] = None,
        learner=None,
        model_timeout: Optional[float] = None,
    ):
        self.directory = directory
        self.catalog = catalog
        self.signals = signals
        self.store = store
        self.engine = engine
        self.learner = learner
        self.model_timeout = model_timeout
        self.lifecycle = RecommendationLifecycle(store, learner)

    # =====================================================
    # GENERATION
    # =====================================================
    def generate_for_hcp(self, hcp_id: str) -> List[Recommendation]:
        context = assemble_context(hcp_id, self.directory, self.catalog, self.signals)

        candidates = generate_raw_recommendations(context, self.engine, self.model_timeout)
        approved = filter_compliant(candidates, hcp_id)

        if not approved:
            logger.warning("Compliance emptied the batch for HCP %s; using fallback", hcp_id)
            fallback = fallback_recommendations(context)
            approved = filter_compliant(fallback, hcp_id)
            if not approved:
                raise ComplianceRejected(f"No compliant recommendation could be produced for HCP '{hcp_id}'")

        return self.lifecycle.create_batch(approved, hcp_id, context.approved_content)

    def generate_bulk(self, hcp_ids: Sequence[str], max_workers: Optional[int] = None) -> BulkResult:
        return bulk.generate_bulk(hcp_ids, self.generate_for_hcp, max_workers)

    async def generate_for_hcp_async(self, hcp_id: str, executor: Optional[ThreadPoolExecutor] = None):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor or _DEFAULT_EXECUTOR, partial(self.generate_for_hcp, hcp_id))

    async def generate_bulk_async(self, hcp_ids: Sequence[str], executor: Optional[ThreadPoolExecutor] = None):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor or _DEFAULT_EXECUTOR, partial(self.generate_bulk, hcp_ids))

    # =====================================================
    # LIFECYCLE
    # =====================================================
    def start(self, recommendation_id: str) -> Recommendation:
        return self.lifecycle.start(recommendation_id)

    def execute(self, recommendation_id: str, outcome) -> Recommendation:
        return self.lifecycle.execute(recommendation_id, outcome)

    def cancel(self, recommendation_id: str, reason: Optional[str] = None) -> Recommendation:
        return self.lifecycle.cancel(recommendation_id, reason)

    def reject(self, recommendation_id: str, reason: Optional[str] = None) -> Recommendation:
        return self.lifecycle.reject(recommendation_id, reason)

    # =====================================================
    # READS
    # =====================================================
    def get_recommendation(self, recommendation_id: str) -> Recommendation:
        return self.lifecycle.get(recommendation_id)

    def query_recommendations(self, filters: Optional[RecommendationFilters] = None) -> List[Recommendation]:
        return self.lifecycle.query(filters)

    def pending(self, hcp_id: Optional[str] = None) -> List[Recommendation]:
        return self.lifecycle.pending(hcp_id)

    def by_priority(self, priority: int) -> List[Recommendation]:
        return self.lifecycle.by_priority(priority)

    def get_dashboard_stats(self, now: Optional[datetime] = None) -> DashboardStats:
        return dashboard.compute_dashboard_stats(self.store, self.directory, now)

    def get_recommendation_stats(self) -> RecommendationStats:
        return dashboard.compute_recommendation_stats(self.store)

    def optimize_recommendations(self) -> Dict[str, Any]:
        """Success patterns from recorded outcomes. Scores are left untouched."""
        if self.learner is None:
            return {"status": "skipped", "message": "No outcome learner configured"}
        return self.learner.success_patterns()


def build_default_service(settings=None, seed_file: Optional[str] = None) -> NextBestActionService:
    """Wires SQL persistence, seeded sources and the configured model engine."""
    from agentic_models.router import get_llm_engine
    from data_utils.db_factory import get_session, init_db
    from data_utils.settings import DatabaseSettings
    from data_workers.memory_sources import load_seed_file
    from data_workers.recommendation_repository import SQLOutcomeStatsRepository, SQLRecommendationStore
    from nba_engine.optimization import OutcomeStatsLearner

    init_db(settings or DatabaseSettings())
    directory, catalog, signals = load_seed_file(seed_file or NBAConfigs.SEED_FILE)

    try:
        engine = get_llm_engine()
    except ValueError as exc:
        # Missing credentials: every generation will use the deterministic fallback
        logger.warning("Model engine unavailable (%s); generation will use fallback", exc)
        engine = None

    return NextBestActionService(
        directory=directory,
        catalog=catalog,
        signals=signals,
        store=SQLRecommendationStore(get_session),
        engine=engine,
        learner=OutcomeStatsLearner(SQLOutcomeStatsRepository(get_session)),
    )
