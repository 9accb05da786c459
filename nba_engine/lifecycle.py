"""
RecommendationLifecycle: creation, scoring and state transitions.

The transition table below is the single source of truth for
`Recommendation.state`. Every change goes through the store's
compare-and-swap, so when two callers race on the same id exactly one wins
and the other observes InvalidTransition.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

import pydantic

from data_models.base import utc_now
from data_models.hcp import ApprovedContent
from data_models.recommendation import (
    RawRecommendation,
    Recommendation,
    RecommendationFilters,
    RecommendationOutcome,
    RecommendationState,
)
from nba_engine.collaborators import RecommendationStore
from nba_engine.errors import InvalidTransition, NotFound, ValidationError
from nba_engine.taxonomy import normalize_action_type, normalize_channel

logger = logging.getLogger(__name__)

PENDING = RecommendationState.PENDING.value
IN_PROCESS = RecommendationState.IN_PROCESS.value
COMPLETED = RecommendationState.COMPLETED.value
CANCELLED = RecommendationState.CANCELLED.value
REJECTED = RecommendationState.REJECTED.value

RECOMMENDATION_STATES: Set[str] = {s.value for s in RecommendationState}

ALLOWED_TRANSITIONS: Dict[str, Set[str]] = {
    PENDING: {IN_PROCESS, COMPLETED, CANCELLED, REJECTED},
    IN_PROCESS: {COMPLETED, CANCELLED},
    # terminal
    COMPLETED: set(),
    CANCELLED: set(),
    REJECTED: set(),
}


@dataclass(frozen=True)
class TransitionResult:
    allowed: bool
    reason: Optional[str] = None


def validate_transition(current: str, target: str) -> TransitionResult:
    current = (current or "").upper()
    target = (target or "").upper()

    if current not in RECOMMENDATION_STATES:
        return TransitionResult(False, f"unknown_current_state:{current}")
    if target not in RECOMMENDATION_STATES:
        return TransitionResult(False, f"unknown_target_state:{target}")
    if target in ALLOWED_TRANSITIONS[current]:
        return TransitionResult(True)
    return TransitionResult(False, f"disallowed_transition:{current}->{target}")


def allowed_targets(current: str) -> List[str]:
    return sorted(ALLOWED_TRANSITIONS.get((current or "").upper(), set()))


def priority_from_score(score: float) -> int:
    """clamp(round(score / 10), 1, 10), rounding halves up."""
    return max(1, min(10, int(math.floor(score / 10 + 0.5))))


def link_approved_content(products: Iterable[str], content: Iterable[ApprovedContent]) -> List[str]:
    wanted = set(products)
    if not wanted:
        return []
    return [c.content_id for c in content if c.active and wanted.intersection(c.product_ids)]


class RecommendationLifecycle:
    """
    Owns every write to the recommendation store.

    `learner` is optional; when present it is fed after each successful
    execute. Its failures are logged and never reach the caller.
    """

    def __init__(self, store: RecommendationStore, learner=None):
        self.store = store
        self.learner = learner

    # --- CREATE ---
    def build(
        self,
        raw: RawRecommendation,
        hcp_id: str,
        approved_content: Iterable[ApprovedContent] = (),
    ) -> Recommendation:
        if not hcp_id:
            raise ValidationError("`hcp_id` is required")

        return Recommendation(
            recommendation_id=uuid.uuid4().hex,
            hcp_id=hcp_id,
            action_type=raw.action_type,
            priority=priority_from_score(raw.score),
            channel=raw.channel,
            ideal_moment=raw.ideal_moment,
            message=raw.message,
            rationale=raw.rationale,
            products=list(raw.products),
            approved_content_ids=link_approved_content(raw.products, approved_content),
            restrictions=list(raw.restrictions),
            reasons=list(raw.reasons),
            origin=raw.origin,
            score=raw.score,
            state=RecommendationState.PENDING,
            created_at=utc_now(),
        )

    def create(
        self,
        raw: RawRecommendation,
        hcp_id: str,
        approved_content: Iterable[ApprovedContent] = (),
    ) -> Recommendation:
        return self.create_batch([raw], hcp_id, approved_content)[0]

    def create_batch(
        self,
        raws: Iterable[RawRecommendation],
        hcp_id: str,
        approved_content: Iterable[ApprovedContent] = (),
    ) -> List[Recommendation]:
        approved_content = list(approved_content)
        recommendations = [self.build(raw, hcp_id, approved_content) for raw in raws]
        self.store.create_recommendations(recommendations)
        for recommendation in recommendations:
            logger.info(
                "Created recommendation %s for HCP %s (%s/%s, priority %d)",
                recommendation.recommendation_id, hcp_id,
                recommendation.action_type, recommendation.channel, recommendation.priority,
            )
        return recommendations

    # --- READS ---
    def get(self, recommendation_id: str) -> Recommendation:
        recommendation = self.store.get(recommendation_id)
        if recommendation is None:
            raise NotFound(f"Recommendation '{recommendation_id}' not found")
        return recommendation

    def query(self, filters: Optional[RecommendationFilters] = None) -> List[Recommendation]:
        return self.store.query(filters or RecommendationFilters())

    def pending(self, hcp_id: Optional[str] = None) -> List[Recommendation]:
        return self.query(RecommendationFilters(hcp_id=hcp_id, state=RecommendationState.PENDING))

    def by_priority(self, priority: int) -> List[Recommendation]:
        if isinstance(priority, bool) or not isinstance(priority, int) or not 1 <= priority <= 10:
            raise ValidationError("`priority` must be an integer between 1 and 10")
        return self.query(RecommendationFilters(priority_min=priority, priority_max=priority))

    # --- TRANSITIONS ---
    def _transition(self, recommendation_id: str, target: str, fields: Optional[dict] = None) -> Recommendation:
        current = self.get(recommendation_id)
        check = validate_transition(current.state, target)
        if not check.allowed:
            raise InvalidTransition(
                f"Cannot move recommendation '{recommendation_id}' from {current.state} to {target}",
                current=current.state,
                target=target,
            )
        # CAS against the state we validated; a concurrent winner makes this raise
        updated = self.store.update_state(recommendation_id, current.state, target, fields)
        logger.info("Recommendation %s: %s -> %s", recommendation_id, current.state, target)
        return updated

    def start(self, recommendation_id: str) -> Recommendation:
        return self._transition(recommendation_id, IN_PROCESS)

    def execute(self, recommendation_id: str, outcome) -> Recommendation:
        try:
            outcome = RecommendationOutcome(outcome).value
        except ValueError as exc:
            allowed = ", ".join(o.value for o in RecommendationOutcome)
            raise ValidationError(f"`outcome` must be one of: {allowed}") from exc

        executed = self._transition(
            recommendation_id,
            COMPLETED,
            {"executed_at": utc_now(), "outcome": outcome},
        )
        self._learn(executed)
        return executed

    def cancel(self, recommendation_id: str, reason: Optional[str] = None) -> Recommendation:
        return self._transition(recommendation_id, CANCELLED, {"status_reason": reason})

    def reject(self, recommendation_id: str, reason: Optional[str] = None) -> Recommendation:
        return self._transition(recommendation_id, REJECTED, {"status_reason": reason})

    def _learn(self, recommendation: Recommendation) -> None:
        if self.learner is None:
            return
        try:
            self.learner.record_outcome(recommendation)
        except Exception:
            # Best effort: the execution is already committed
            logger.exception("Learn-from-outcome failed for recommendation %s", recommendation.recommendation_id)


def validate_filters(**kwargs) -> RecommendationFilters:
    """Builds filters from loose input, turning schema errors into ValidationError."""
    values = {k: v for k, v in kwargs.items() if v is not None}
    if isinstance(values.get("action_type"), str):
        values["action_type"] = normalize_action_type(values["action_type"]) or values["action_type"]
    if isinstance(values.get("channel"), str):
        values["channel"] = normalize_channel(values["channel"]) or values["channel"]
    if isinstance(values.get("state"), str):
        values["state"] = values["state"].strip().upper()
    try:
        return RecommendationFilters(**values)
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Invalid recommendation filters: {exc.error_count()} errors") from exc
