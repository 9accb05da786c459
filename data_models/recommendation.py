"""Recommendation taxonomy, value objects and read-side result schemas."""

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .base import ensure_utc, utc_now
from .hcp import ApprovedContent, ContactRecord, ExternalSignal, HCPProfile, Prescription, Product


# =====================================================
# TAXONOMIES
# =====================================================

class ActionType(str, enum.Enum):
    INITIAL_CONTACT = "initial-contact"
    FOLLOW_UP = "follow-up"
    PRODUCT_PRESENTATION = "product-presentation"
    SAMPLE_DELIVERY = "sample-delivery"
    EVENT_INVITATION = "event-invitation"
    MEDICAL_EDUCATION = "medical-education"
    CLINICAL_SUPPORT = "clinical-support"


class Channel(str, enum.Enum):
    PERSONAL = "personal"
    EMAIL = "email"
    PHONE = "phone"
    WHATSAPP = "whatsapp"
    LINKEDIN = "linkedin"
    TWITTER = "twitter"
    IN_PERSON_EVENT = "in-person-event"
    VIRTUAL_EVENT = "virtual-event"


class RecommendationState(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROCESS = "IN_PROCESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class RecommendationOutcome(str, enum.Enum):
    SUCCESSFUL = "successful"
    PARTIAL = "partial"
    FAILED = "failed"
    NOT_APPLICABLE = "not-applicable"


class Origin(str, enum.Enum):
    MODEL = "model"
    FALLBACK = "fallback"


class ViolationKind(str, enum.Enum):
    UNAPPROVED_CLAIM = "unapproved-claim"
    COMPETITOR_COMPARISON = "competitor-comparison"
    UNSUBSTANTIATED_PROMISE = "unsubstantiated-promise"


# =====================================================
# DECISION CONTEXT
# =====================================================

class DecisionContext(BaseModel):
    """Immutable bundle of every input used to generate recommendations for one HCP."""

    model_config = ConfigDict(frozen=True)

    hcp: HCPProfile
    recent_contacts: Tuple[ContactRecord, ...] = ()
    recent_prescriptions: Tuple[Prescription, ...] = ()
    signals: Tuple[ExternalSignal, ...] = ()
    products: Tuple[Product, ...] = ()
    approved_content: Tuple[ApprovedContent, ...] = ()
    configuration: Dict[str, Any] = Field(default_factory=dict)
    assembled_at: datetime = Field(default_factory=utc_now)


# =====================================================
# RAW MODEL OUTPUT
# =====================================================

class RawRecommendation(BaseModel):
    """A candidate action between model-response parsing and persistence.

    Validation here is the schema check: a candidate that fails it is dropped.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=True, validate_default=True)

    action_type: ActionType
    channel: Channel
    ideal_moment: Optional[datetime] = None
    message: str = Field(min_length=1)
    rationale: str = ""
    products: List[str] = Field(default_factory=list)
    score: float = Field(ge=0, le=100)
    reasons: List[str] = Field(default_factory=list)
    restrictions: List[str] = Field(default_factory=list)
    origin: Origin = Origin.MODEL

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("ideal_moment", mode="before")
    @classmethod
    def parse_moment(cls, v):
        # Models answer "YYYY-MM-DD HH:MM"; fromisoformat accepts it directly
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            try:
                return datetime.fromisoformat(v.replace("Z", "+00:00"))
            except ValueError:
                # Unparseable moment is not a schema failure; the invoker schedules a default
                return None
        return v

    @field_validator("ideal_moment")
    @classmethod
    def moment_utc(cls, v):
        return ensure_utc(v)

    @field_validator("products", "reasons", "restrictions", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return [] if v is None else v


# =====================================================
# PERSISTED ENTITY
# =====================================================

class Recommendation(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    recommendation_id: str
    hcp_id: str
    action_type: ActionType
    priority: int = Field(ge=1, le=10)
    channel: Channel
    ideal_moment: Optional[datetime] = None
    message: str
    rationale: str = ""
    products: List[str] = Field(default_factory=list)
    approved_content_ids: List[str] = Field(default_factory=list)
    restrictions: List[str] = Field(default_factory=list)
    reasons: List[str] = Field(default_factory=list)
    origin: Origin = Origin.MODEL
    score: float = Field(ge=0, le=100)
    state: RecommendationState = RecommendationState.PENDING
    status_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    executed_at: Optional[datetime] = None
    outcome: Optional[RecommendationOutcome] = None

    @field_validator("ideal_moment", "created_at", "executed_at")
    @classmethod
    def _utc(cls, v):
        return ensure_utc(v)


class RecommendationFilters(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    hcp_id: Optional[str] = None
    action_type: Optional[ActionType] = None
    channel: Optional[Channel] = None
    priority_min: Optional[int] = Field(default=None, ge=1, le=10)
    priority_max: Optional[int] = Field(default=None, ge=1, le=10)
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    state: Optional[RecommendationState] = None

    @field_validator("created_from", "created_to")
    @classmethod
    def _utc(cls, v):
        return ensure_utc(v)

    @model_validator(mode="after")
    def check_ranges(self):
        if self.priority_min is not None and self.priority_max is not None and self.priority_min > self.priority_max:
            raise ValueError("priority_min must not exceed priority_max")
        if self.created_from and self.created_to and self.created_from > self.created_to:
            raise ValueError("created_from must not be after created_to")
        return self


# =====================================================
# RESULTS
# =====================================================

class ComplianceResult(BaseModel):
    approved: bool
    violations: List[ViolationKind] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    model_config = ConfigDict(use_enum_values=True, validate_default=True)


class BulkResult(BaseModel):
    successes: int = 0
    failures: int = 0
    recommendations: List[Recommendation] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)  # hcp_id -> error kind


class ProductRanking(BaseModel):
    product_id: str
    prescriptions: int


class HCPRanking(BaseModel):
    hcp_id: str
    name: str
    engagement: float


class DashboardStats(BaseModel):
    active_hcps: int
    pending_recommendations: int
    contacts_this_month: int
    attributed_prescriptions: int
    prescription_value: float
    success_rate: float
    top_products: List[ProductRanking] = Field(default_factory=list)
    top_hcps: List[HCPRanking] = Field(default_factory=list)


class RecommendationStats(BaseModel):
    total: int
    by_state: Dict[str, int] = Field(default_factory=dict)
    by_action_type: Dict[str, int] = Field(default_factory=dict)
    by_channel: Dict[str, int] = Field(default_factory=dict)
    success_rate: float = 0.0
    average_score: float = 0.0
