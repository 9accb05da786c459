"""
================================================================================
MODULE: COMPLIANCE VALIDATOR
================================================================================
PURPOSE:
    Rule-based screening of every outbound message before a recommendation is
    persisted. Deterministic, no external calls.

RULES:
    - Banned phrases   -> unapproved-claim (+ one warning per phrase)
    - Comparatives     -> competitor-comparison
    - Promises         -> unsubstantiated-promise

OUTPUTS:
    ComplianceResult(approved, violations, warnings). `approved` is True iff
    no violation was recorded; warnings alone never block a message.

MAINTENANCE:
    Extend the phrase lists below when regulatory affairs adds wording.
    Phrase lists use a case-insensitive substring test, so keep entries
    specific. Short words that appear inside other words go in
    BANNED_WORDS, which only match whole words.
================================================================================
"""

import logging
import re
from typing import List

from data_models.recommendation import ComplianceResult, ViolationKind

logger = logging.getLogger(__name__)

BANNED_PHRASES = (
    # English
    "cures",
    "100% effective",
    "no side effects",
    "miraculous",
    "revolutionary",
    "unique",
    "better than",
    "superior to",
    # Spanish
    "100% efectivo",
    "sin efectos secundarios",
    "milagroso",
    "revolucionario",
    "único",
    "mejor que",
    "superior a ",
)

# Whole-word matches only ("cura" sits inside "accurate" and "procura")
BANNED_WORDS = ("cura", "curan")
_BANNED_WORD_RE = re.compile(r"\b(?:" + "|".join(BANNED_WORDS) + r")\b")

COMPARATIVE_PHRASES = (
    "better than",
    "superior to",
    "mejor que",
    "superior a ",
)

PROMISE_PHRASES = (
    "guarantees",
    "promises",
    "garantiza",
    "promete",
)

# Soft audit hints: recorded as warnings, never violations
ADVISORY_PHRASES = (
    "guaranteed",
    "always works",
    "off-label",
)


def validate_message(message: str) -> ComplianceResult:
    text = (message or "").lower()
    violations: List[ViolationKind] = []
    warnings: List[str] = []

    def add(kind: ViolationKind):
        if kind not in violations:
            violations.append(kind)

    for phrase in BANNED_PHRASES:
        if phrase in text:
            add(ViolationKind.UNAPPROVED_CLAIM)
            warnings.append(f"Banned phrase detected: '{phrase.strip()}'")

    for word in sorted(set(_BANNED_WORD_RE.findall(text))):
        add(ViolationKind.UNAPPROVED_CLAIM)
        warnings.append(f"Banned phrase detected: '{word}'")

    if any(phrase in text for phrase in COMPARATIVE_PHRASES):
        add(ViolationKind.COMPETITOR_COMPARISON)

    for phrase in PROMISE_PHRASES:
        if phrase in text:
            add(ViolationKind.UNSUBSTANTIATED_PROMISE)
            warnings.append(f"Promise wording detected: '{phrase}'")

    for phrase in ADVISORY_PHRASES:
        if phrase in text:
            warnings.append(f"Review wording for audit: '{phrase}'")

    result = ComplianceResult(approved=not violations, violations=violations, warnings=warnings)
    if not result.approved:
        logger.info("Message failed compliance: %s", ", ".join(result.violations))
    return result
