"""Read-only models handed to the engine by the HCP directory, catalog and signal source."""

import enum
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import ensure_utc, utc_now


class BuyerPersona(str, enum.Enum):
    INNOVATOR = "innovator"
    EARLY_ADOPTER = "early-adopter"
    EARLY_MAJORITY = "early-majority"
    LATE_MAJORITY = "late-majority"
    LAGGARD = "laggard"


class AdoptionStage(str, enum.Enum):
    UNAWARE = "unaware"
    EVALUATING = "evaluating"
    USER = "user"
    ADVOCATE = "advocate"


class ContactOutcome(str, enum.Enum):
    SUCCESSFUL = "successful"
    PARTIAL = "partial"
    FAILED = "failed"
    PENDING = "pending"


class Sentiment(str, enum.Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class _ReadOnlyModel(BaseModel):
    model_config = ConfigDict(frozen=True, use_enum_values=True)


class EngagementMetrics(_ReadOnlyModel):
    contact_frequency: float = 0.0
    response_rate: float = 0.0            # percentage 0-100
    response_time_hours: float = 0.0
    interaction_quality: float = 0.0      # 1-10
    prescriptions_generated: int = 0
    prescription_value: float = 0.0
    last_interaction_at: Optional[datetime] = None

    @field_validator("last_interaction_at")
    @classmethod
    def _utc(cls, v):
        return ensure_utc(v)


class HCPProfile(_ReadOnlyModel):
    # =====================================================
    # IDENTITY
    # =====================================================
    hcp_id: str
    first_name: str = ""
    last_name: str = ""
    specialty: str = ""
    institution: str = ""
    region: str = ""
    active: bool = True

    # =====================================================
    # PRESCRIBING PROFILE
    # =====================================================
    patient_volume: int = 0
    prescription_decile: int = Field(default=1, ge=1, le=10)
    response_level: int = Field(default=1, ge=1, le=10)
    buyer_persona: BuyerPersona = BuyerPersona.EARLY_MAJORITY
    adoption_stage: AdoptionStage = AdoptionStage.UNAWARE

    # =====================================================
    # INTERESTS & RESTRICTIONS
    # =====================================================
    clinical_interests: List[str] = Field(default_factory=list)
    regulatory_restrictions: List[str] = Field(default_factory=list)

    engagement: EngagementMetrics = Field(default_factory=EngagementMetrics)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.hcp_id


class ContactRecord(_ReadOnlyModel):
    contact_id: str
    hcp_id: str
    contact_type: str
    contacted_at: datetime
    outcome: ContactOutcome = ContactOutcome.PENDING
    channel: str = "personal"
    notes: str = ""
    product_id: Optional[str] = None

    @field_validator("contacted_at")
    @classmethod
    def _utc(cls, v):
        return ensure_utc(v)


class Prescription(_ReadOnlyModel):
    prescription_id: str
    hcp_id: str
    product_id: str
    prescribed_at: datetime
    quantity: int = 1
    prescription_type: str = "new"
    value: float = 0.0

    @field_validator("prescribed_at")
    @classmethod
    def _utc(cls, v):
        return ensure_utc(v)


class Product(_ReadOnlyModel):
    product_id: str
    name: str
    active_ingredient: str = ""
    indications: List[str] = Field(default_factory=list)
    marketing_restrictions: List[str] = Field(default_factory=list)
    active: bool = True


class ApprovedContent(_ReadOnlyModel):
    content_id: str
    content_type: str
    title: str
    product_ids: List[str] = Field(default_factory=list)
    version: str = "1"
    active: bool = True


class ExternalSignal(_ReadOnlyModel):
    """Signal already enriched by the ingestion/NLP layer."""

    signal_id: str
    source: str
    content: str
    published_at: datetime = Field(default_factory=utc_now)
    topics: List[str] = Field(default_factory=list)
    sentiment: Sentiment = Sentiment.NEUTRAL
    relevance: int = Field(default=1, ge=1, le=10)
    mentioned_hcp_ids: List[str] = Field(default_factory=list)

    @field_validator("published_at")
    @classmethod
    def _utc(cls, v):
        return ensure_utc(v)
