"""
================================================================================
MODULE: MODEL INVOKER
================================================================================
PURPOSE:
    Calls the external model once per decision context, parses and
    schema-checks its answer, and falls back to a deterministic rule whenever
    the answer is unusable.

INPUTS:
    - context (DecisionContext)
    - engine (BaseLLMEngine): the only network boundary of the core.

OUTPUTS:
    - 1 to 5 RawRecommendation objects. Never raises for provider problems.

FALLBACK RULE:
    - No contact in the last RECENT_CONTACT_DAYS -> initial-contact, personal,
      7 days out, score 70, reason "no recent contact".
    - Otherwise -> follow-up, email, 3 days out, score 80,
      reason "maintain momentum".
    The reference clock is the context's assembly time, so the same context
    always yields the same fallback.
================================================================================
"""

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pydantic

from agentic_models.base import BaseLLMEngine
from data_models.recommendation import ActionType, Channel, DecisionContext, Origin, RawRecommendation
from main_configs import NBAConfigs
from nba_engine.errors import ModelInvocationFailure
from nba_engine.prompt_builder import SYSTEM_PROMPT, build_prompt
from nba_engine.taxonomy import normalize_action_type, normalize_channel

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 5
DEFAULT_LEAD_DAYS = 3

REASON_NO_RECENT_CONTACT = "no recent contact"
REASON_MAINTAIN_MOMENTUM = "maintain momentum"

# Model calls run here so a hung client can be abandoned after the timeout.
# An abandoned call still holds its worker until the engine's own HTTP timeout
# fires, so the pool keeps spare workers beyond one full bulk batch.
MODEL_POOL_HEADROOM = 4
_MODEL_EXECUTOR = ThreadPoolExecutor(
    max_workers=max(NBAConfigs.BULK_MAX_WORKERS, 1) * MODEL_POOL_HEADROOM,
    thread_name_prefix="nba-model",
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


# --- FALLBACK ---
def fallback_recommendations(context: DecisionContext) -> List[RawRecommendation]:
    now = context.assembled_at
    window_start = now - timedelta(days=NBAConfigs.RECENT_CONTACT_DAYS)
    recent = [c for c in context.recent_contacts if c.contacted_at > window_start]

    hcp = context.hcp
    salutation = f"Dr. {hcp.last_name}" if hcp.last_name else hcp.display_name

    if not recent:
        specialty = hcp.specialty or "your specialty"
        return [RawRecommendation(
            action_type=ActionType.INITIAL_CONTACT,
            channel=Channel.PERSONAL,
            ideal_moment=now + timedelta(days=7),
            message=(
                f"Dear {salutation}, I would like to introduce myself and learn more "
                f"about your practice in {specialty}."
            ),
            rationale="First contact to establish a professional relationship",
            score=70,
            reasons=[REASON_NO_RECENT_CONTACT, "opportunity to establish relationship"],
            restrictions=["approved content only", "no specific claims"],
            origin=Origin.FALLBACK,
        )]

    return [RawRecommendation(
        action_type=ActionType.FOLLOW_UP,
        channel=Channel.EMAIL,
        ideal_moment=now + timedelta(days=3),
        message=(
            f"Dear {salutation}, I hope you are well. I would like to follow up "
            f"on our previous conversation."
        ),
        rationale="Follow-up to keep engagement going",
        score=80,
        reasons=["positive contact history", REASON_MAINTAIN_MOMENTUM],
        restrictions=["respect contact frequency", "approved content only"],
        origin=Origin.FALLBACK,
    )]


# --- PARSING ---
def _extract_items(text: str) -> List[Any]:
    cleaned = _FENCE_RE.sub("", (text or "").strip())
    data = json.loads(cleaned)

    if isinstance(data, dict):
        items = data.get("recommendations")
        if items is None:
            items = data.get("recomendaciones")
    else:
        items = data

    if not isinstance(items, list):
        raise ValueError("Model output has no recommendations list")
    return items


def _normalize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(item)
    action = data.get("action_type", data.get("type"))
    channel = data.get("channel")
    data["action_type"] = normalize_action_type(action) or action
    data["channel"] = normalize_channel(channel) or channel
    data.pop("type", None)
    # The model never decides where a recommendation came from
    data.pop("origin", None)
    return data


def parse_model_output(text: str, reference_time: datetime) -> List[RawRecommendation]:
    """
    Parses the model answer and drops every candidate that fails the schema check.
    Raises ValueError when the answer as a whole is not parseable.
    """
    items = _extract_items(text)
    accepted: List[RawRecommendation] = []

    for index, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning("Dropping model candidate #%d: not an object", index)
            continue
        try:
            candidate = RawRecommendation.model_validate(_normalize_item(item))
        except pydantic.ValidationError as exc:
            logger.warning("Dropping model candidate #%d: %d schema errors", index, exc.error_count())
            continue

        if candidate.ideal_moment is None:
            candidate = candidate.model_copy(
                update={"ideal_moment": reference_time + timedelta(days=DEFAULT_LEAD_DAYS)}
            )
        accepted.append(candidate)

    return accepted[:MAX_RECOMMENDATIONS]


# --- INVOCATION ---
def call_model(engine: BaseLLMEngine, prompt: str, timeout: Optional[float] = None) -> str:
    timeout = timeout or NBAConfigs.MODEL_TIMEOUT_SECONDS
    future = _MODEL_EXECUTOR.submit(engine.complete, prompt, SYSTEM_PROMPT)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeoutError as exc:
        future.cancel()
        raise ModelInvocationFailure(f"Model call exceeded {timeout}s") from exc


def generate_raw_recommendations(
    context: DecisionContext,
    engine: Optional[BaseLLMEngine],
    timeout: Optional[float] = None,
) -> List[RawRecommendation]:
    hcp_id = context.hcp.hcp_id
    if engine is None:
        logger.warning("No model engine configured; using fallback for HCP %s", hcp_id)
        return fallback_recommendations(context)

    prompt = build_prompt(context)

    try:
        answer = call_model(engine, prompt, timeout)
    except ModelInvocationFailure as exc:
        logger.warning("Model invocation failed for HCP %s (%s); using fallback", hcp_id, exc.message)
        return fallback_recommendations(context)
    except Exception:
        # Engines should only raise ModelInvocationFailure; anything else is still recovered
        logger.exception("Unexpected model engine error for HCP %s; using fallback", hcp_id)
        return fallback_recommendations(context)

    try:
        candidates = parse_model_output(answer, context.assembled_at)
    except ValueError as exc:
        # json.JSONDecodeError is a ValueError
        logger.warning("Unparseable model output for HCP %s (%s); using fallback", hcp_id, exc)
        return fallback_recommendations(context)

    if not candidates:
        logger.warning("No model candidate passed the schema check for HCP %s; using fallback", hcp_id)
        return fallback_recommendations(context)

    logger.info("Model proposed %d usable recommendations for HCP %s", len(candidates), hcp_id)
    return candidates
