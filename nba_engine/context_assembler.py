import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Dict, Optional

from data_models.base import utc_now
from data_models.recommendation import DecisionContext
from main_configs import NBAConfigs
from nba_engine.collaborators import CatalogStore, HCPDirectory, SignalSource
from nba_engine.errors import AssemblyFailure, NotFound, ValidationError

logger = logging.getLogger(__name__)

# Global executor for the independent context reads.
# Reads are leaf calls, so sharing it with bulk workers cannot deadlock.
_CONTEXT_EXECUTOR = ThreadPoolExecutor(
    max_workers=max(NBAConfigs.CONTEXT_WORKERS, 1),
    thread_name_prefix="nba-context",
)


def assemble_context(
    hcp_id: str,
    directory: HCPDirectory,
    catalog: CatalogStore,
    signals: SignalSource,
    executor: Optional[ThreadPoolExecutor] = None,
) -> DecisionContext:
    """
    Fan-out / fan-in: every read is issued concurrently and all of them are
    awaited before anything is returned. A missing HCP raises NotFound; any
    other failed read fails the whole assembly with the cause attached.
    """
    if not hcp_id or not isinstance(hcp_id, str):
        raise ValidationError("`hcp_id` must be a non-empty string")

    pool = executor or _CONTEXT_EXECUTOR
    cfg = NBAConfigs

    futures: Dict[str, Future] = {
        "hcp": pool.submit(directory.get_hcp, hcp_id),
        "contacts": pool.submit(directory.get_recent_contacts, hcp_id, cfg.CONTACT_HISTORY_LIMIT),
        "prescriptions": pool.submit(directory.get_recent_prescriptions, hcp_id, cfg.PRESCRIPTION_LIMIT),
        "signals": pool.submit(signals.get_relevant_signals, hcp_id, cfg.SIGNAL_MIN_RELEVANCE),
        "products": pool.submit(catalog.get_active_products),
        "content": pool.submit(catalog.get_active_approved_content),
    }
    wait(futures.values())

    results = {}
    for name, future in futures.items():
        exc = future.exception()
        if exc is None:
            results[name] = future.result()
            if name == "hcp" and results[name] is None:
                raise NotFound(f"HCP '{hcp_id}' not found")
            continue
        if isinstance(exc, NotFound):
            raise exc
        logger.error("Context read '%s' failed for HCP %s: %s", name, hcp_id, exc)
        raise AssemblyFailure(f"Failed to read {name} for HCP '{hcp_id}'", cause=exc) from exc

    contacts = sorted(results["contacts"] or [], key=lambda c: c.contacted_at, reverse=True)
    prescriptions = sorted(results["prescriptions"] or [], key=lambda p: p.prescribed_at, reverse=True)
    relevant = sorted(
        (s for s in results["signals"] or [] if s.relevance >= cfg.SIGNAL_MIN_RELEVANCE),
        key=lambda s: s.published_at,
        reverse=True,
    )

    return DecisionContext(
        hcp=results["hcp"],
        recent_contacts=tuple(contacts[:cfg.CONTACT_HISTORY_LIMIT]),
        recent_prescriptions=tuple(prescriptions[:cfg.PRESCRIPTION_LIMIT]),
        signals=tuple(relevant[:cfg.SIGNAL_LIMIT]),
        products=tuple(p for p in results["products"] or [] if p.active),
        approved_content=tuple(c for c in results["content"] or [] if c.active),
        configuration=NBAConfigs.as_dict(),
        assembled_at=utc_now(),
    )
