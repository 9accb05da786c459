"""
API Route Handlers for the HCP Next Best Action engine.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request
from pydantic import BaseModel, Field

from data_models.recommendation import (
    BulkResult,
    DashboardStats,
    Recommendation,
    RecommendationStats,
)
from data_workers.tasks import get_latest_optimization_report
from nba_engine.errors import NBAError, NotFound
from nba_engine.lifecycle import validate_filters
from nba_engine.service import NextBestActionService

logger = logging.getLogger("HCP NBA API")

# Error kind -> HTTP status
ERROR_STATUS = {
    "not-found": 404,
    "validation-error": 422,
    "compliance-rejected": 422,
    "invalid-transition": 409,
    "assembly-failure": 502,
    "model-invocation-failure": 502,
}

INTERNAL_ERROR_DETAIL = {
    "status": "error",
    "error_kind": "internal-error",
    "message": "Unexpected server error",
}


# ============================================================
# Data Models (Schemas)
# ============================================================

class BulkRequest(BaseModel):
    hcp_ids: List[str] = Field(..., description="HCP identifiers to generate recommendations for")

class ExecuteRequest(BaseModel):
    outcome: str = Field(..., description="successful | partial | failed | not-applicable")

class ReasonRequest(BaseModel):
    reason: Optional[str] = None


# --- Service Dependency ---
def get_service(request: Request) -> NextBestActionService:
    return request.app.state.nba_service


def _http_error(exc: NBAError) -> HTTPException:
    return HTTPException(status_code=ERROR_STATUS.get(exc.kind, 500), detail=exc.to_dict())


def _run(action: str, fn: Callable, *args, **kwargs) -> Any:
    try:
        return fn(*args, **kwargs)
    except NBAError as exc:
        logger.warning("%s failed: %s (%s)", action, exc.kind, exc.message)
        raise _http_error(exc)
    except Exception:
        logger.exception("%s failed unexpectedly", action)
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR_DETAIL)


def _stored_report() -> Dict[str, Any]:
    report = get_latest_optimization_report()
    if report is None:
        raise NotFound("No optimization report has been stored yet")
    return report


# ============================================================
# Router Setup
# ============================================================

def create_api_router() -> APIRouter:
    router = APIRouter(prefix="/recommendations", tags=["recommendations"])

    # --------------------------------------------------------
    # 1. Generation
    # --------------------------------------------------------
    @router.post("/generate/{hcp_id}", response_model=List[Recommendation])
    async def generate_for_hcp(hcp_id: str, service: NextBestActionService = Depends(get_service)):
        try:
            return await service.generate_for_hcp_async(hcp_id)
        except NBAError as exc:
            logger.warning("Generation failed for HCP %s: %s", hcp_id, exc.kind)
            raise _http_error(exc)
        except Exception:
            logger.exception("Generation failed unexpectedly for HCP %s", hcp_id)
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR_DETAIL)

    @router.post("/bulk", response_model=BulkResult)
    async def generate_bulk(payload: BulkRequest, service: NextBestActionService = Depends(get_service)):
        try:
            return await service.generate_bulk_async(payload.hcp_ids)
        except NBAError as exc:
            raise _http_error(exc)

    # --------------------------------------------------------
    # 2. Reads
    # --------------------------------------------------------
    @router.get("", response_model=List[Recommendation])
    def list_recommendations(
        hcp_id: Optional[str] = Query(None),
        action_type: Optional[str] = Query(None),
        channel: Optional[str] = Query(None),
        priority_min: Optional[int] = Query(None),
        priority_max: Optional[int] = Query(None),
        created_from: Optional[datetime] = Query(None),
        created_to: Optional[datetime] = Query(None),
        state: Optional[str] = Query(None),
        service: NextBestActionService = Depends(get_service),
    ):
        def _query():
            filters = validate_filters(
                hcp_id=hcp_id,
                action_type=action_type,
                channel=channel,
                priority_min=priority_min,
                priority_max=priority_max,
                created_from=created_from,
                created_to=created_to,
                state=state,
            )
            return service.query_recommendations(filters)

        return _run("Query", _query)

    @router.get("/pending", response_model=List[Recommendation])
    def pending(hcp_id: Optional[str] = Query(None), service: NextBestActionService = Depends(get_service)):
        return _run("Pending listing", service.pending, hcp_id)

    @router.get("/priority/{priority}", response_model=List[Recommendation])
    def by_priority(priority: int = Path(...), service: NextBestActionService = Depends(get_service)):
        return _run("Priority listing", service.by_priority, priority)

    @router.get("/dashboard", response_model=DashboardStats)
    def dashboard(service: NextBestActionService = Depends(get_service)):
        return _run("Dashboard", service.get_dashboard_stats)

    @router.get("/statistics", response_model=RecommendationStats)
    def statistics(service: NextBestActionService = Depends(get_service)):
        return _run("Statistics", service.get_recommendation_stats)

    @router.get("/optimize")
    def optimize(service: NextBestActionService = Depends(get_service)) -> Dict[str, Any]:
        return _run("Optimization report", service.optimize_recommendations)

    @router.get("/optimize/latest")
    def latest_optimization() -> Dict[str, Any]:
        """Report stored by the nightly optimization job."""
        return _run("Stored optimization report", _stored_report)

    @router.get("/{recommendation_id}", response_model=Recommendation)
    def get_recommendation(recommendation_id: str, service: NextBestActionService = Depends(get_service)):
        return _run("Lookup", service.get_recommendation, recommendation_id)

    # --------------------------------------------------------
    # 3. Lifecycle
    # --------------------------------------------------------
    @router.post("/{recommendation_id}/start", response_model=Recommendation)
    def start(recommendation_id: str, service: NextBestActionService = Depends(get_service)):
        return _run("Start", service.start, recommendation_id)

    @router.post("/{recommendation_id}/execute", response_model=Recommendation)
    def execute(
        recommendation_id: str,
        payload: ExecuteRequest,
        service: NextBestActionService = Depends(get_service),
    ):
        return _run("Execute", service.execute, recommendation_id, payload.outcome)

    @router.post("/{recommendation_id}/cancel", response_model=Recommendation)
    def cancel(
        recommendation_id: str,
        payload: Optional[ReasonRequest] = None,
        service: NextBestActionService = Depends(get_service),
    ):
        reason = payload.reason if payload else None
        return _run("Cancel", service.cancel, recommendation_id, reason)

    @router.post("/{recommendation_id}/reject", response_model=Recommendation)
    def reject(
        recommendation_id: str,
        payload: Optional[ReasonRequest] = None,
        service: NextBestActionService = Depends(get_service),
    ):
        reason = payload.reason if payload else None
        return _run("Reject", service.reject, recommendation_id, reason)

    return router
