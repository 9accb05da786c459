import json
import os
import sys
import threading
from datetime import datetime, timedelta, timezone

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from conftest import FakeEngine, candidate, model_answer
from data_models.hcp import ApprovedContent, ContactRecord, HCPProfile, Product
from data_models.recommendation import DecisionContext
from nba_engine import model_invoker
from nba_engine.errors import ModelInvocationFailure
from nba_engine.model_invoker import (
    call_model,
    fallback_recommendations,
    generate_raw_recommendations,
    parse_model_output,
)
from nba_engine.prompt_builder import build_prompt

ASSEMBLED_AT = datetime(2030, 1, 10, 9, 0, tzinfo=timezone.utc)


def _context(contact_days_ago=None):
    contacts = ()
    if contact_days_ago is not None:
        contacts = (ContactRecord(
            contact_id="c-1", hcp_id="hcp-1", contact_type="visit",
            contacted_at=ASSEMBLED_AT - timedelta(days=contact_days_ago),
            notes="x" * 300,
        ),)
    return DecisionContext(
        hcp=HCPProfile(hcp_id="hcp-1", first_name="Ana", last_name="Garcia", specialty="Cardiology"),
        recent_contacts=contacts,
        products=(Product(product_id="prod-1", name="Cardiozen", indications=["hypertension"]),),
        assembled_at=ASSEMBLED_AT,
    )


# --- fallback ---

def test_fallback_without_recent_contact_is_deterministic():
    context = _context(contact_days_ago=45)
    first = fallback_recommendations(context)
    second = fallback_recommendations(context)

    assert first == second
    assert len(first) == 1
    rec = first[0]
    assert rec.action_type == "initial-contact"
    assert rec.channel == "personal"
    assert rec.score == 70
    assert rec.origin == "fallback"
    assert rec.ideal_moment == ASSEMBLED_AT + timedelta(days=7)
    assert "no recent contact" in rec.reasons


def test_fallback_with_recent_contact_follows_up():
    [rec] = fallback_recommendations(_context(contact_days_ago=3))
    assert rec.action_type == "follow-up"
    assert rec.channel == "email"
    assert rec.score == 80
    assert rec.ideal_moment == ASSEMBLED_AT + timedelta(days=3)
    assert "maintain momentum" in rec.reasons


# --- parsing ---

def test_parse_drops_invalid_candidates_and_normalizes():
    text = model_answer(
        candidate(action_type="seguimiento", channel="Telefono"),
        candidate(action_type="teleport"),
        candidate(score=140),
        candidate(message="   "),
        "not an object",
        candidate(ideal_moment="someday", origin="fallback"),
    )
    parsed = parse_model_output(text, ASSEMBLED_AT)

    assert len(parsed) == 2
    assert parsed[0].action_type == "follow-up"
    assert parsed[0].channel == "phone"
    assert parsed[0].ideal_moment == datetime(2030, 1, 15, 10, 0, tzinfo=timezone.utc)
    # unparseable moment gets the default lead time; origin is never taken from the model
    assert parsed[1].ideal_moment == ASSEMBLED_AT + timedelta(days=3)
    assert parsed[1].origin == "model"


def test_parse_accepts_fences_lists_and_caps_at_five():
    text = "```json\n" + model_answer(*[candidate() for _ in range(7)]) + "\n```"
    assert len(parse_model_output(text, ASSEMBLED_AT)) == 5

    bare_list = json.dumps([candidate()])
    assert len(parse_model_output(bare_list, ASSEMBLED_AT)) == 1


def test_parse_rejects_non_json():
    with pytest.raises(ValueError):
        parse_model_output("I cannot help with that", ASSEMBLED_AT)
    with pytest.raises(ValueError):
        parse_model_output('{"answer": 1}', ASSEMBLED_AT)


# --- invocation ---

def test_model_output_is_used_when_valid():
    engine = FakeEngine(model_answer(candidate(), candidate(channel="webinar", action_type="medical_education")))
    recs = generate_raw_recommendations(_context(3), engine)

    assert len(recs) == 2
    assert recs[1].channel == "virtual-event"
    assert all(r.origin == "model" for r in recs)
    system, user = engine.calls[0]
    assert system["role"] == "system"
    assert "Ana Garcia" in user["content"]


@pytest.mark.parametrize("answer", [
    ModelInvocationFailure("HTTP 503"),
    RuntimeError("socket closed"),
    "not json at all",
    model_answer(candidate(action_type="unknown")),
    model_answer(),
])
def test_any_model_problem_falls_back(answer):
    recs = generate_raw_recommendations(_context(45), FakeEngine(answer))
    assert [r.origin for r in recs] == ["fallback"]
    assert recs[0].action_type == "initial-contact"


def test_missing_engine_falls_back():
    recs = generate_raw_recommendations(_context(45), None)
    assert recs[0].origin == "fallback"


def test_model_timeout_is_a_failure():
    release = threading.Event()

    class HungEngine(FakeEngine):
        def generate(self, messages):
            release.wait(5)
            return model_answer(candidate())

    try:
        with pytest.raises(ModelInvocationFailure):
            call_model(HungEngine(None), "prompt", timeout=0.05)
        recs = generate_raw_recommendations(_context(45), HungEngine(None), timeout=0.05)
        assert recs[0].origin == "fallback"
    finally:
        release.set()


def test_hung_calls_do_not_starve_later_calls():
    release = threading.Event()

    class HungEngine(FakeEngine):
        def generate(self, messages):
            release.wait(5)
            return "late"

    try:
        for _ in range(max(model_invoker.NBAConfigs.BULK_MAX_WORKERS, 1)):
            with pytest.raises(ModelInvocationFailure):
                call_model(HungEngine(None), "prompt", timeout=0.05)
        assert call_model(FakeEngine("recovered"), "prompt", timeout=1) == "recovered"
    finally:
        release.set()


def test_call_model_uses_configured_timeout(monkeypatch):
    monkeypatch.setattr(model_invoker.NBAConfigs, "MODEL_TIMEOUT_SECONDS", 2)
    assert call_model(FakeEngine("ok"), "prompt") == "ok"


# --- prompt ---

def test_prompt_contains_context_and_rules():
    prompt = build_prompt(_context(3))

    assert "Ana Garcia" in prompt
    assert "Cardiology" in prompt
    assert "prod-1 | Cardiozen" in prompt
    assert "between 3 and 5" in prompt
    assert "initial-contact" in prompt and "virtual-event" in prompt
    assert "Do NOT compare directly with competitor products" in prompt
    assert '"recommendations"' in prompt
    assert "x" * 121 not in prompt
    assert "No relevant external signals" in prompt


def test_prompt_lists_one_line_per_entry():
    context = DecisionContext(
        hcp=HCPProfile(hcp_id="hcp-1", last_name="Garcia"),
        recent_contacts=(
            ContactRecord(contact_id="c-1", hcp_id="hcp-1", contact_type="visit",
                          contacted_at=ASSEMBLED_AT - timedelta(days=1), notes="asked for data"),
            ContactRecord(contact_id="c-2", hcp_id="hcp-1", contact_type="call",
                          contacted_at=ASSEMBLED_AT - timedelta(days=9)),
        ),
        approved_content=(
            ApprovedContent(content_id="a-1", content_type="brochure", title="Leaflet", product_ids=["prod-1"]),
            ApprovedContent(content_id="a-2", content_type="study", title="Trial summary"),
        ),
        assembled_at=ASSEMBLED_AT,
    )
    lines = build_prompt(context).splitlines()

    contacts = lines[lines.index("CONTACT HISTORY (most recent first):") + 1:]
    assert contacts[0].startswith("- 2030-01-09: visit") and contacts[0].endswith("- asked for data")
    assert contacts[1].startswith("- 2030-01-01: call")
    assert contacts[2] == ""

    content = lines[lines.index("APPROVED CONTENT:") + 1:]
    assert content[0] == "- brochure: Leaflet (v1) [products: prod-1]"
    assert content[1] == "- study: Trial summary (v1)"
    assert content[2] == ""


def test_prompt_is_deterministic():
    assert build_prompt(_context(3)) == build_prompt(_context(3))
