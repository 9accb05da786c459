"""
Outcome learning: the feedback side of the recommendation lifecycle.

`OutcomeLearner` is the extension point. The shipped learner only keeps
counters by channel, action type and hour of day and reports success
patterns from them; it never rewrites scores or priorities.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

from data_models.recommendation import Recommendation

logger = logging.getLogger(__name__)

DIMENSIONS = ("channel", "action_type", "hour_of_day")

# Keys with fewer samples are reported but not ranked as "best"
MIN_SAMPLES = 3


class OutcomeLearner(Protocol):
    def record_outcome(self, recommendation: Recommendation) -> None: ...

    def success_patterns(self) -> Dict[str, Any]: ...


def outcome_keys(recommendation: Recommendation) -> Dict[str, str]:
    moment = recommendation.executed_at or recommendation.ideal_moment or recommendation.created_at
    return {
        "channel": recommendation.channel,
        "action_type": recommendation.action_type,
        "hour_of_day": f"{moment.hour:02d}",
    }


def _rate(row: Dict[str, Any]) -> float:
    total = row.get("total") or 0
    if not total:
        return 0.0
    return round(100.0 * ((row.get("successful") or 0) + (row.get("partial") or 0)) / total, 1)


def build_success_report(rows: List[Dict[str, Any]], min_samples: int = MIN_SAMPLES) -> Dict[str, Any]:
    report: Dict[str, Any] = {"status": "success", "total_outcomes": 0, "patterns": {}}

    for dimension in DIMENSIONS:
        entries = [
            {
                "key": row["key"],
                "total": row["total"],
                "successful": row["successful"],
                "partial": row["partial"],
                "failed": row["failed"],
                "success_rate": _rate(row),
            }
            for row in rows
            if row["dimension"] == dimension
        ]
        entries.sort(key=lambda e: (-e["success_rate"], -e["total"], e["key"]))
        ranked = [e for e in entries if e["total"] >= min_samples]
        report["patterns"][dimension] = {
            "best": ranked[0]["key"] if ranked else None,
            "entries": entries,
        }

    # Every outcome lands once per dimension
    report["total_outcomes"] = sum(e["total"] for e in report["patterns"]["channel"]["entries"])
    return report


class OutcomeStatsLearner:
    """Feeds outcome counters into the statistics repository."""

    def __init__(self, stats_repo, min_samples: int = MIN_SAMPLES):
        self.stats_repo = stats_repo
        self.min_samples = min_samples

    def record_outcome(self, recommendation: Recommendation) -> None:
        if not recommendation.outcome:
            logger.warning("Recommendation %s has no outcome; nothing to learn", recommendation.recommendation_id)
            return
        for dimension, key in outcome_keys(recommendation).items():
            self.stats_repo.increment(dimension, key, recommendation.outcome)
        logger.debug("Recorded outcome %s for %s", recommendation.outcome, recommendation.recommendation_id)

    def success_patterns(self, dimension: Optional[str] = None) -> Dict[str, Any]:
        rows = self.stats_repo.list_stats(dimension)
        return build_success_report(rows, self.min_samples)
