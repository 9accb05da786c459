import os
import sys

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from conftest import FakeEngine, FakeRedis, candidate, model_answer
from api.app_factory import create_app
from data_workers import tasks


@pytest.fixture
def client(make_service):
    service = make_service(FakeEngine(model_answer(candidate(score=90), candidate(channel="phone", score=55))))
    app = create_app(service=service)
    with TestClient(app) as test_client:
        yield test_client


def test_ping(client):
    assert client.get("/ping").json() == {"status": "ok"}


def test_generate_and_list(client):
    res = client.post("/recommendations/generate/hcp-1")
    assert res.status_code == 200
    body = res.json()
    assert [r["priority"] for r in body] == [9, 6]
    assert all(r["state"] == "PENDING" for r in body)

    listed = client.get("/recommendations", params={"channel": "Telefono"}).json()
    assert [r["channel"] for r in listed] == ["phone"]
    assert len(client.get("/recommendations/pending").json()) == 2
    assert len(client.get("/recommendations/priority/9").json()) == 1


def test_unknown_hcp_is_structured_404(client):
    res = client.post("/recommendations/generate/nobody")
    assert res.status_code == 404
    assert res.json()["detail"]["error_kind"] == "not-found"


def test_lifecycle_endpoints(client):
    rec_id = client.post("/recommendations/generate/hcp-1").json()[0]["recommendation_id"]

    assert client.post(f"/recommendations/{rec_id}/start").json()["state"] == "IN_PROCESS"
    done = client.post(f"/recommendations/{rec_id}/execute", json={"outcome": "successful"})
    assert done.status_code == 200
    assert done.json()["executed_at"]

    again = client.post(f"/recommendations/{rec_id}/cancel", json={"reason": "late"})
    assert again.status_code == 409
    detail = again.json()["detail"]
    assert detail["error_kind"] == "invalid-transition"
    assert detail["current_state"] == "COMPLETED"

    assert client.get(f"/recommendations/{rec_id}").json()["outcome"] == "successful"
    assert client.get("/recommendations/missing").status_code == 404


def test_validation_errors(client):
    rec_id = client.post("/recommendations/generate/hcp-1").json()[0]["recommendation_id"]

    bad_outcome = client.post(f"/recommendations/{rec_id}/execute", json={"outcome": "amazing"})
    assert bad_outcome.status_code == 422
    assert bad_outcome.json()["detail"]["error_kind"] == "validation-error"

    assert client.get("/recommendations/priority/11").status_code == 422
    assert client.get("/recommendations", params={"priority_min": 8, "priority_max": 2}).status_code == 422
    assert client.post("/recommendations/bulk", json={"hcp_ids": []}).status_code == 422


def test_reject_without_body(client):
    rec_id = client.post("/recommendations/generate/hcp-1").json()[0]["recommendation_id"]
    res = client.post(f"/recommendations/{rec_id}/reject")
    assert res.status_code == 200
    assert res.json()["state"] == "REJECTED"


def test_bulk_dashboard_statistics_optimize(client):
    bulk = client.post("/recommendations/bulk", json={"hcp_ids": ["hcp-1", "ghost", "hcp-2"]}).json()
    assert (bulk["successes"], bulk["failures"]) == (2, 1)
    assert bulk["failed"] == {"ghost": "not-found"}

    dashboard = client.get("/recommendations/dashboard").json()
    assert dashboard["pending_recommendations"] == 4
    assert dashboard["active_hcps"] == 2

    stats = client.get("/recommendations/statistics").json()
    assert stats["total"] == 4
    assert stats["by_state"] == {"PENDING": 4}

    report = client.get("/recommendations/optimize").json()
    assert report["status"] == "success"
    assert report["total_outcomes"] == 0


def test_latest_optimization_report_comes_from_nightly_job(client, monkeypatch):
    monkeypatch.setattr(tasks, "redis_client", FakeRedis())
    missing = client.get("/recommendations/optimize/latest")
    assert missing.status_code == 404
    assert missing.json()["detail"]["error_kind"] == "not-found"

    monkeypatch.setattr(tasks, "_service", client.app.state.nba_service)
    stored = tasks.optimize_recommendations_task()

    latest = client.get("/recommendations/optimize/latest")
    assert latest.status_code == 200
    assert latest.json()["generated_at"] == stored["generated_at"]


def test_unexpected_errors_are_generic(client, monkeypatch):
    service = client.app.state.nba_service

    def broken():
        raise RuntimeError("db password is hunter2")

    monkeypatch.setattr(service, "get_recommendation_stats", broken)
    res = client.get("/recommendations/statistics")
    assert res.status_code == 500
    assert "hunter2" not in res.text
