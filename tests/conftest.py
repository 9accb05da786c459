import json
import os
import sys
from datetime import timedelta

import pytest
from sqlalchemy.orm import sessionmaker

# Ensure project root is on path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from agentic_models.base import BaseLLMEngine
from data_models.base import Base, utc_now
from data_models.hcp import (
    ApprovedContent,
    ContactRecord,
    EngagementMetrics,
    ExternalSignal,
    HCPProfile,
    Prescription,
    Product,
)
from data_utils.db_factory import build_engine
from data_workers.memory_sources import InMemoryCatalog, InMemoryHCPDirectory, InMemorySignalSource
from data_workers.recommendation_repository import SQLOutcomeStatsRepository, SQLRecommendationStore
from nba_engine.optimization import OutcomeStatsLearner
from nba_engine.service import NextBestActionService


class FakeEngine(BaseLLMEngine):
    """Returns a canned answer and remembers what it was asked."""

    def __init__(self, answer):
        self.answer = answer
        self.calls = []

    def generate(self, messages):
        self.calls.append(messages)
        if isinstance(self.answer, Exception):
            raise self.answer
        return self.answer


class FakeRedis:
    def __init__(self):
        self.data = {}

    def set(self, key, value):
        self.data[key] = value.encode("utf-8") if isinstance(value, str) else value

    def get(self, key):
        return self.data.get(key)


def model_answer(*items) -> str:
    return json.dumps({"recommendations": list(items)})


def candidate(**overrides):
    item = {
        "action_type": "product-presentation",
        "channel": "email",
        "ideal_moment": "2030-01-15 10:00",
        "message": "Educational update on hypertension guidelines",
        "rationale": "New guideline published",
        "products": ["prod-1"],
        "score": 85,
        "reasons": ["guideline change"],
        "restrictions": ["approved content only"],
    }
    item.update(overrides)
    return item


@pytest.fixture
def sql_engine(tmp_path):
    # File-backed so worker threads get their own connections
    engine = build_engine(f"sqlite:///{tmp_path / 'nba.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sql_engine):
    return sessionmaker(bind=sql_engine, autocommit=False, autoflush=False)


@pytest.fixture
def store(session_factory):
    return SQLRecommendationStore(session_factory)


@pytest.fixture
def stats_repo(session_factory):
    return SQLOutcomeStatsRepository(session_factory)


@pytest.fixture
def learner(stats_repo):
    return OutcomeStatsLearner(stats_repo, min_samples=1)


@pytest.fixture
def now():
    return utc_now()


@pytest.fixture
def directory(now):
    hcps = [
        HCPProfile(
            hcp_id="hcp-1",
            first_name="Ana",
            last_name="Garcia",
            specialty="Cardiology",
            institution="General Hospital",
            region="North",
            patient_volume=120,
            prescription_decile=8,
            response_level=7,
            clinical_interests=["hypertension"],
            regulatory_restrictions=["no samples"],
            engagement=EngagementMetrics(response_rate=80.0),
        ),
        HCPProfile(
            hcp_id="hcp-2",
            first_name="Luis",
            last_name="Perez",
            specialty="Endocrinology",
            engagement=EngagementMetrics(response_rate=40.0),
        ),
        HCPProfile(hcp_id="hcp-3", last_name="Inactive", active=False,
                   engagement=EngagementMetrics(response_rate=99.0)),
    ]
    contacts = [
        ContactRecord(contact_id="c-1", hcp_id="hcp-1", contact_type="visit",
                      contacted_at=now - timedelta(days=2), outcome="successful",
                      notes="Discussed new hypertension guideline"),
        ContactRecord(contact_id="c-2", hcp_id="hcp-1", contact_type="call",
                      contacted_at=now - timedelta(days=60), outcome="partial", channel="phone"),
    ]
    prescriptions = [
        Prescription(prescription_id="rx-1", hcp_id="hcp-1", product_id="prod-1",
                     prescribed_at=now - timedelta(days=5), value=150.0),
    ]
    return InMemoryHCPDirectory(hcps, contacts, prescriptions)


@pytest.fixture
def catalog():
    return InMemoryCatalog(
        products=[
            Product(product_id="prod-1", name="Cardiozen", active_ingredient="valsartan",
                    indications=["hypertension"]),
            Product(product_id="prod-old", name="Retired", active=False),
        ],
        approved_content=[
            ApprovedContent(content_id="cnt-1", content_type="brochure", title="Cardiozen leaflet",
                            product_ids=["prod-1"]),
            ApprovedContent(content_id="cnt-2", content_type="study", title="Other study",
                            product_ids=["prod-2"]),
        ],
    )


@pytest.fixture
def signals(now):
    return InMemorySignalSource([
        ExternalSignal(signal_id="s-1", source="twitter", content="Great congress talk",
                       published_at=now - timedelta(days=1), relevance=9, mentioned_hcp_ids=["hcp-1"]),
        ExternalSignal(signal_id="s-2", source="news", content="Minor mention",
                       published_at=now - timedelta(days=1), relevance=3, mentioned_hcp_ids=["hcp-1"]),
    ])


@pytest.fixture
def make_service(directory, catalog, signals, store, learner):
    def _make(engine=None, **kwargs):
        return NextBestActionService(
            directory=directory,
            catalog=catalog,
            signals=signals,
            store=store,
            engine=engine,
            learner=learner,
            **kwargs,
        )
    return _make
