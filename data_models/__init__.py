from .base import Base
from .dbo_recommendation import RecommendationRecord, OutcomeStatistic
from .hcp import HCPProfile, EngagementMetrics, ContactRecord, ContactOutcome, Prescription, Product, ApprovedContent, ExternalSignal
from .recommendation import (
    ActionType, Channel, RecommendationState, RecommendationOutcome, Origin, ViolationKind,
    DecisionContext, RawRecommendation, Recommendation, RecommendationFilters,
    ComplianceResult, BulkResult, DashboardStats, RecommendationStats,
)
