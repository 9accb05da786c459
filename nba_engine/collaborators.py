"""Narrow interfaces to the collaborators the engine reads from and writes to."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from data_models.hcp import ApprovedContent, ContactRecord, ExternalSignal, HCPProfile, Prescription, Product
from data_models.recommendation import Recommendation, RecommendationFilters


class HCPDirectory(Protocol):
    def get_hcp(self, hcp_id: str) -> Optional[HCPProfile]:
        """Returns None when the HCP does not exist."""
        ...

    def get_recent_contacts(self, hcp_id: str, limit: int) -> List[ContactRecord]: ...

    def get_recent_prescriptions(self, hcp_id: str, limit: int) -> List[Prescription]: ...

    # Dashboard reads
    def list_hcps(self) -> List[HCPProfile]: ...

    def list_contacts(self, since: datetime) -> List[ContactRecord]: ...

    def list_prescriptions(self) -> List[Prescription]: ...


class CatalogStore(Protocol):
    def get_active_products(self) -> List[Product]: ...

    def get_active_approved_content(self) -> List[ApprovedContent]: ...


class SignalSource(Protocol):
    def get_relevant_signals(self, hcp_id: str, min_relevance: int) -> List[ExternalSignal]: ...


class RecommendationStore(Protocol):
    def create_recommendation(self, recommendation: Recommendation) -> str: ...

    def create_recommendations(self, recommendations: List[Recommendation]) -> List[str]:
        """All-or-nothing: a failure leaves none of the batch stored."""
        ...

    def get(self, recommendation_id: str) -> Optional[Recommendation]: ...

    def update_state(
        self,
        recommendation_id: str,
        expected_state: str,
        new_state: str,
        fields: Optional[Dict[str, Any]] = None,
    ) -> Recommendation:
        """Compare-and-swap; raises InvalidTransition when the state moved on."""
        ...

    def query(self, filters: Optional[RecommendationFilters] = None) -> List[Recommendation]: ...

    def list_all(self) -> List[Recommendation]: ...
