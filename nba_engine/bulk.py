import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Sequence

from data_models.recommendation import BulkResult, Recommendation
from main_configs import NBAConfigs
from nba_engine.errors import NBAError, ValidationError

logger = logging.getLogger(__name__)

GenerateFn = Callable[[str], List[Recommendation]]


def generate_bulk(
    hcp_ids: Sequence[str],
    generate_fn: GenerateFn,
    max_workers: Optional[int] = None,
) -> BulkResult:
    """
    Runs `generate_fn` for every HCP id on a bounded pool.

    Each id is isolated: any failure is counted and the rest keep going, so
    `successes + failures == len(hcp_ids)` always holds. Completion order is
    not preserved; recommendations are concatenated in input order.
    """
    if not hcp_ids or isinstance(hcp_ids, str):
        raise ValidationError("`hcp_ids` must be a non-empty list")

    workers = max(1, min(max_workers or NBAConfigs.BULK_MAX_WORKERS, len(hcp_ids)))
    created: Dict[int, List[Recommendation]] = {}
    failed: Dict[str, str] = {}
    successes = 0
    failures = 0

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="nba-bulk") as pool:
        futures = {pool.submit(generate_fn, hcp_id): (index, hcp_id) for index, hcp_id in enumerate(hcp_ids)}

        for future in as_completed(futures):
            index, hcp_id = futures[future]
            try:
                created[index] = list(future.result())
                successes += 1
            except NBAError as exc:
                failures += 1
                failed[str(hcp_id)] = exc.kind
                logger.warning("Bulk generation failed for HCP %s: %s (%s)", hcp_id, exc.kind, exc.message)
            except Exception:
                failures += 1
                failed[str(hcp_id)] = "internal-error"
                logger.exception("Unexpected bulk generation error for HCP %s", hcp_id)

    recommendations = [rec for index in sorted(created) for rec in created[index]]
    logger.info("Bulk generation finished: %d succeeded, %d failed", successes, failures)

    return BulkResult(
        successes=successes,
        failures=failures,
        recommendations=recommendations,
        failed=failed,
    )
