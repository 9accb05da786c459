import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import redis
from celery import shared_task

from main_configs import CELERY_REDIS_URL
from nba_engine.errors import NBAError

# Setup Logger
logger = logging.getLogger(__name__)

# Redis keeps the latest optimization report for dashboards to pick up
redis_client = redis.from_url(CELERY_REDIS_URL)
OPTIMIZATION_REPORT_KEY = "hcp_nba:optimization_report"

_service = None


def get_service():
    """One service per worker process, built on first use."""
    global _service
    if _service is None:
        from nba_engine.service import build_default_service
        _service = build_default_service()
    return _service


@shared_task(name="nba.generate_bulk")
def generate_bulk_task(hcp_ids: List[str]) -> Dict[str, Any]:
    """
    Bulk generation off the request path. Per-HCP failures are already
    folded into the counters; only invalid input fails the task result.
    """
    logger.info("Starting bulk generation for %d HCPs", len(hcp_ids or []))
    try:
        result = get_service().generate_bulk(hcp_ids)
    except NBAError as exc:
        logger.warning("Bulk generation rejected: %s", exc.message)
        return exc.to_dict()

    return {
        "status": "success",
        "successes": result.successes,
        "failures": result.failures,
        "failed": result.failed,
        "recommendation_ids": [r.recommendation_id for r in result.recommendations],
    }


@shared_task(name="nba.optimize_recommendations")
def optimize_recommendations_task() -> Dict[str, Any]:
    """
    Nightly: computes success patterns from recorded outcomes and stores the
    report in Redis.
    """
    report = get_service().optimize_recommendations()
    report["generated_at"] = datetime.now(timezone.utc).isoformat()

    redis_client.set(OPTIMIZATION_REPORT_KEY, json.dumps(report, default=str))
    logger.info("Optimization report stored (%s outcomes)", report.get("total_outcomes", 0))
    return report


def get_latest_optimization_report() -> Optional[Dict[str, Any]]:
    raw = redis_client.get(OPTIMIZATION_REPORT_KEY)
    if not raw:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return json.loads(raw)
