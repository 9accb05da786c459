import asyncio
import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from conftest import FakeEngine, candidate, model_answer
from data_models.hcp import HCPProfile
from data_workers import recommendation_repository
from nba_engine import service as service_module
from nba_engine.errors import ComplianceRejected, NotFound, ValidationError


def test_generate_persists_compliant_model_recommendations(make_service, store):
    engine = FakeEngine(model_answer(
        candidate(score=85),
        candidate(message="This treatment cures diabetes completely", score=99),
        candidate(action_type="follow-up", channel="phone", score=60, products=[]),
    ))
    recs = make_service(engine).generate_for_hcp("hcp-1")

    assert len(recs) == 2
    assert all(r.state == "PENDING" for r in recs)
    assert [r.priority for r in recs] == [9, 6]
    # products intersect the active approved content
    assert recs[0].approved_content_ids == ["cnt-1"]
    assert recs[1].approved_content_ids == []
    assert len(store.list_all()) == 2


def test_compliance_emptying_the_batch_triggers_fallback(make_service):
    engine = FakeEngine(model_answer(
        candidate(message="Our product is superior to every alternative"),
        candidate(message="Guaranteed, it promises results"),
    ))
    recs = make_service(engine).generate_for_hcp("hcp-2")

    assert len(recs) == 1
    assert recs[0].origin == "fallback"
    # hcp-2 has no contacts at all
    assert recs[0].action_type == "initial-contact"
    assert recs[0].priority == 7


def test_non_compliant_fallback_is_surfaced(monkeypatch, make_service):
    monkeypatch.setattr(service_module, "validate_message",
                        lambda message: type("R", (), {"approved": False, "violations": ["unapproved-claim"]})())
    with pytest.raises(ComplianceRejected):
        make_service(FakeEngine(model_answer(candidate()))).generate_for_hcp("hcp-1")


def test_model_failure_never_reaches_the_caller(make_service):
    recs = make_service(FakeEngine(RuntimeError("provider exploded"))).generate_for_hcp("hcp-1")
    assert [r.origin for r in recs] == ["fallback"]
    assert recs[0].action_type == "follow-up"


def test_unknown_hcp_propagates_not_found(make_service, store):
    with pytest.raises(NotFound):
        make_service(FakeEngine(model_answer(candidate()))).generate_for_hcp("missing")
    assert store.list_all() == []


def test_bulk_isolates_failures(make_service, directory):
    directory.add_hcp(HCPProfile(hcp_id="a", last_name="Alpha"))
    directory.add_hcp(HCPProfile(hcp_id="c", last_name="Gamma"))

    result = make_service(FakeEngine(model_answer(candidate(), candidate(score=40)))).generate_bulk(["a", "b", "c"])

    assert result.successes == 2
    assert result.failures == 1
    assert result.successes + result.failures == 3
    assert result.failed == {"b": "not-found"}
    assert {r.hcp_id for r in result.recommendations} == {"a", "c"}
    assert len(result.recommendations) == 4


def test_failed_save_leaves_no_partial_batch(monkeypatch, make_service, store):
    real_to_row = recommendation_repository._to_row
    built = []

    def failing_second_row(recommendation):
        built.append(recommendation.recommendation_id)
        if len(built) == 2:
            raise RuntimeError("disk full")
        return real_to_row(recommendation)

    monkeypatch.setattr(recommendation_repository, "_to_row", failing_second_row)
    svc = make_service(FakeEngine(model_answer(candidate(), candidate(action_type="follow-up", score=60))))

    result = svc.generate_bulk(["hcp-1"])

    assert (result.successes, result.failures) == (0, 1)
    assert result.failed == {"hcp-1": "internal-error"}
    assert result.recommendations == []
    assert store.list_all() == []


def test_bulk_counts_unexpected_errors(make_service):
    svc = make_service()

    def flaky(hcp_id):
        if hcp_id == "boom":
            raise KeyError("bad row")
        return []

    svc.generate_for_hcp = flaky
    result = svc.generate_bulk(["ok-1", "boom", "ok-2"])
    assert (result.successes, result.failures) == (2, 1)
    assert result.failed == {"boom": "internal-error"}


def test_bulk_requires_ids(make_service):
    with pytest.raises(ValidationError):
        make_service().generate_bulk([])


def test_async_generation(make_service):
    svc = make_service(FakeEngine(model_answer(candidate())))
    recs = asyncio.run(svc.generate_for_hcp_async("hcp-1"))
    assert len(recs) == 1


def test_lifecycle_through_service(make_service):
    svc = make_service(FakeEngine(model_answer(candidate(), candidate(score=30))))
    first, second = svc.generate_for_hcp("hcp-1")

    assert [r.recommendation_id for r in svc.pending("hcp-1")] == [first.recommendation_id, second.recommendation_id]
    svc.start(first.recommendation_id)
    svc.execute(first.recommendation_id, "successful")
    svc.reject(second.recommendation_id, "duplicate")

    assert svc.get_recommendation(first.recommendation_id).outcome == "successful"
    assert svc.pending() == []

    report = svc.optimize_recommendations()
    assert report["total_outcomes"] == 1
    assert report["patterns"]["channel"]["best"] == "email"


def test_optimize_without_learner(directory, catalog, signals, store):
    svc = service_module.NextBestActionService(directory, catalog, signals, store)
    assert svc.optimize_recommendations()["status"] == "skipped"
