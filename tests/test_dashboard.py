import os
import sys
from datetime import datetime, timedelta, timezone

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from data_models.hcp import ContactRecord, Prescription
from data_models.recommendation import Recommendation
from nba_engine.dashboard import compute_dashboard_stats, compute_recommendation_stats, month_start

NOW = datetime(2030, 3, 15, 12, 0, tzinfo=timezone.utc)


def _rec(rec_id, hcp_id, state="PENDING", outcome=None, executed_at=None, products=(), score=80, channel="email"):
    return Recommendation(
        recommendation_id=rec_id,
        hcp_id=hcp_id,
        action_type="follow-up",
        channel=channel,
        priority=8,
        score=score,
        message="Educational update",
        products=list(products),
        state=state,
        outcome=outcome,
        executed_at=executed_at,
    )


def test_month_start():
    assert month_start(NOW) == datetime(2030, 3, 1, tzinfo=timezone.utc)


def test_empty_store_has_zero_success_rate(store, directory):
    stats = compute_dashboard_stats(store, directory, now=NOW)
    assert stats.success_rate == 0.0
    assert stats.pending_recommendations == 0
    assert stats.attributed_prescriptions == 0


def test_dashboard_aggregates(store, directory):
    directory.add_contact(ContactRecord(contact_id="m-1", hcp_id="hcp-2", contact_type="call",
                                        contacted_at=datetime(2030, 3, 1, tzinfo=timezone.utc)))
    directory.add_contact(ContactRecord(contact_id="m-0", hcp_id="hcp-2", contact_type="call",
                                        contacted_at=datetime(2030, 2, 28, 23, 59, tzinfo=timezone.utc)))
    directory.add_prescription(Prescription(prescription_id="rx-a", hcp_id="hcp-2", product_id="prod-9",
                                            prescribed_at=NOW - timedelta(days=1), value=100.0))
    directory.add_prescription(Prescription(prescription_id="rx-b", hcp_id="hcp-2", product_id="prod-7",
                                            prescribed_at=NOW - timedelta(days=1), value=40.0))
    directory.add_prescription(Prescription(prescription_id="rx-early", hcp_id="hcp-2", product_id="prod-9",
                                            prescribed_at=NOW - timedelta(days=30), value=999.0))

    executed = NOW - timedelta(days=10)
    # hcp-1 fixture prescriptions are dated relative to the real clock
    long_ago = datetime(2020, 1, 1, tzinfo=timezone.utc)
    store.create_recommendation(_rec("r1", "hcp-2", "COMPLETED", "successful", executed, products=["prod-9"]))
    store.create_recommendation(_rec("r2", "hcp-1", "COMPLETED", "partial", long_ago))
    store.create_recommendation(_rec("r3", "hcp-1", "COMPLETED", "failed", long_ago))
    store.create_recommendation(_rec("r4", "hcp-1", "COMPLETED", "not-applicable", long_ago))
    store.create_recommendation(_rec("r5", "hcp-1"))
    store.create_recommendation(_rec("r6", "hcp-2", "CANCELLED"))

    stats = compute_dashboard_stats(store, directory, now=NOW, top_n=2)

    assert stats.active_hcps == 2
    assert stats.pending_recommendations == 1
    assert stats.contacts_this_month == 1
    # rx-1 (hcp-1, any product) and rx-a; rx-b is another product, rx-early predates execution
    assert stats.attributed_prescriptions == 2
    assert stats.prescription_value == 250.0
    assert stats.success_rate == 50.0
    assert [(p.product_id, p.prescriptions) for p in stats.top_products] == [("prod-1", 1), ("prod-9", 1)]
    assert [h.hcp_id for h in stats.top_hcps] == ["hcp-1", "hcp-2"]
    assert stats.top_hcps[0].name == "Ana Garcia"


def test_recommendation_stats(store):
    store.create_recommendation(_rec("r1", "hcp-1", "COMPLETED", "successful", NOW, score=90))
    store.create_recommendation(_rec("r2", "hcp-1", "COMPLETED", "failed", NOW, score=60, channel="phone"))
    store.create_recommendation(_rec("r3", "hcp-2", score=75))

    stats = compute_recommendation_stats(store)
    assert stats.total == 3
    assert stats.by_state == {"COMPLETED": 2, "PENDING": 1}
    assert stats.by_channel == {"email": 2, "phone": 1}
    assert stats.by_action_type == {"follow-up": 3}
    assert stats.success_rate == 50.0
    assert stats.average_score == 75.0
