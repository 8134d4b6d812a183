"""
Pydantic schemas for the Product Match Engine
"""

from enum import Enum
from typing import List, Dict, Optional, Any
from pydantic import BaseModel, Field, field_validator
from datetime import datetime


# =============================================================================
# ENUMS
# =============================================================================

class CompanySizeTier(str, Enum):
    """Canonical company size bucket"""
    STARTUP = "startup"
    SMB = "smb"
    MID_MARKET = "mid-market"
    ENTERPRISE = "enterprise"


class PricingModel(str, Enum):
    """How a product is sold"""
    SUBSCRIPTION = "subscription"
    ONE_TIME = "one-time"
    FREEMIUM = "freemium"
    CUSTOM = "custom"


class ReasoningEffort(str, Enum):
    """How hard the reasoning collaborator should think"""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Relevance(str, Enum):
    """Relevance / likelihood level reported by the reasoning collaborator"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MatchTier(str, Enum):
    """Coarse fit tier derived from match_score"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MatchOutcomeStatus(str, Enum):
    """Which path produced a match outcome"""
    AI_ENHANCED = "AI_ENHANCED"
    RULE_BASED_FALLBACK = "RULE_BASED_FALLBACK"


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


# =============================================================================
# INPUT SCHEMAS
# =============================================================================

class ValueProposition(BaseModel):
    """A single product value proposition"""
    title: str
    description: str = ""
    metrics: Optional[str] = None


class Product(BaseModel):
    """Sales offering profile owned by the calling application"""
    id: str
    name: str = ""
    description: Optional[str] = None
    category: Optional[str] = None
    pricing_model: PricingModel = PricingModel.SUBSCRIPTION
    features: List[str] = Field(default_factory=list)
    target_industries: List[str] = Field(default_factory=list)
    target_company_sizes: List[CompanySizeTier] = Field(default_factory=list)
    target_titles: List[str] = Field(default_factory=list)
    target_departments: List[str] = Field(default_factory=list)
    value_propositions: List[ValueProposition] = Field(default_factory=list)
    pain_points_addressed: List[str] = Field(default_factory=list)
    competitive_advantages: List[str] = Field(default_factory=list)
    use_cases: List[str] = Field(default_factory=list)

    class Config:
        extra = "allow"


class Contact(BaseModel):
    """CRM contact record (read-only input)"""
    id: str
    name: Optional[str] = None
    company: Optional[str] = None
    email: Optional[str] = None
    industry: Optional[str] = None
    company_size: Optional[str] = None
    title: Optional[str] = None
    department: Optional[str] = None
    status: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    class Config:
        extra = "allow"

    @field_validator(
        "name", "company", "email", "industry", "company_size",
        "title", "department", "status",
        mode="before",
    )
    @classmethod
    def _strip_blank(cls, value):
        return _blank_to_none(value)


# =============================================================================
# STAGE RESULT SCHEMAS
# =============================================================================

class MatchReason(BaseModel):
    """Human-readable explanation for part of a score"""
    category: str
    reason: str
    score_contribution: int = 0


class FactorScore(BaseModel):
    """Result from a single factor scorer"""
    factor: str
    score: int
    max_score: int
    reasons: List[MatchReason] = Field(default_factory=list)


class MatchCalculation(BaseModel):
    """Pure rule-based result from Stage 2: Match Composer"""
    match_score: int
    match_reasons: List[MatchReason] = Field(default_factory=list)
    industry_score: int = 0
    company_size_score: int = 0
    title_score: int = 0
    tags_score: int = 0
    status_score: int = 0
    recommended_approach: str = ""
    why_buy_reasons: List[str] = Field(default_factory=list)
    objections_anticipated: List[str] = Field(default_factory=list)


class TalkingPoint(BaseModel):
    """Conversation angle suggested by the reasoning collaborator"""
    topic: str = ""
    content: str
    relevance: Relevance = Relevance.MEDIUM
    source: Optional[str] = None


class Objection(BaseModel):
    """Objection anticipated by the reasoning collaborator"""
    objection: str
    response: str = ""
    likelihood: Relevance = Relevance.MEDIUM


class SemanticAnalysis(BaseModel):
    """Result from Stage 3: Reasoning Collaborator"""
    semantic_score: int = Field(50, ge=0, le=100)
    ai_confidence: int = Field(50, ge=0, le=100)
    ai_reasoning: str = ""
    talking_points: List[TalkingPoint] = Field(default_factory=list)
    anticipated_objections: List[Objection] = Field(default_factory=list)
    predicted_conversion: int = Field(25, ge=0, le=100)
    optimal_outreach_time: str = ""
    competitive_positioning: str = ""
    personalization_insights: List[str] = Field(default_factory=list)
    processing_time_ms: float = 0


class EnrichmentSource(BaseModel):
    """Web page cited by a research answer"""
    url: str
    title: str = ""
    domain: str = ""


class EnrichmentResult(BaseModel):
    """One web-research finding about a contact's company"""
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    sources: List[EnrichmentSource] = Field(default_factory=list)
    expires_at: datetime


class MatchOutcome(BaseModel):
    """
    Result from Stage 4: AI Blend.

    Either AI_ENHANCED (rule score blended with the semantic score) or
    RULE_BASED_FALLBACK (reasoning collaborator failed, rule result as-is).
    """
    status: MatchOutcomeStatus
    calculation: MatchCalculation
    rule_based_score: int
    combined_score: int
    ai_score: Optional[int] = None
    match_reasons: List[MatchReason] = Field(default_factory=list)
    analysis: Optional[SemanticAnalysis] = None
    fallback_reason: Optional[str] = None

    @property
    def match_score(self) -> int:
        return self.combined_score

    @property
    def is_fallback(self) -> bool:
        return self.status == MatchOutcomeStatus.RULE_BASED_FALLBACK


# =============================================================================
# PERSISTED OUTPUT SCHEMA
# =============================================================================

class MatchResult(BaseModel):
    """Match record keyed uniquely by (product_id, contact_id)"""
    product_id: str
    contact_id: str
    user_id: Optional[str] = None

    match_score: int
    match_reasons: List[MatchReason] = Field(default_factory=list)
    industry_score: int = 0
    company_size_score: int = 0
    title_score: int = 0
    tags_score: int = 0
    status_score: int = 0
    recommended_approach: str = ""
    why_buy_reasons: List[str] = Field(default_factory=list)
    objections_anticipated: List[str] = Field(default_factory=list)

    # AI fields (only when the reasoning collaborator contributed)
    ai_confidence: Optional[int] = None
    ai_reasoning: Optional[str] = None
    ai_talking_points: List[TalkingPoint] = Field(default_factory=list)
    ai_objections: List[Objection] = Field(default_factory=list)
    predicted_conversion: Optional[int] = None
    optimal_outreach_time: Optional[str] = None
    ai_processed_at: Optional[datetime] = None

    # enrichment type -> {"data", "sources", "fetched_at"}
    ai_enrichment_data: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    calculated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def key(self) -> tuple:
        return (self.product_id, self.contact_id)

    @classmethod
    def from_calculation(
        cls,
        product_id: str,
        contact_id: str,
        calculation: MatchCalculation,
        calculated_at: datetime,
        user_id: Optional[str] = None,
    ) -> "MatchResult":
        return cls(
            product_id=product_id,
            contact_id=contact_id,
            user_id=user_id,
            calculated_at=calculated_at,
            **calculation.model_dump(),
        )

    @classmethod
    def from_outcome(
        cls,
        product_id: str,
        contact_id: str,
        outcome: MatchOutcome,
        calculated_at: datetime,
        user_id: Optional[str] = None,
    ) -> "MatchResult":
        """Build a record from a blend outcome; fallbacks carry no AI fields"""
        if outcome.is_fallback or outcome.analysis is None:
            return cls.from_calculation(
                product_id, contact_id, outcome.calculation, calculated_at, user_id
            )

        data: Dict[str, Any] = outcome.calculation.model_dump()
        data["match_score"] = outcome.combined_score
        data["match_reasons"] = outcome.match_reasons
        analysis = outcome.analysis
        return cls(
            product_id=product_id,
            contact_id=contact_id,
            user_id=user_id,
            ai_confidence=analysis.ai_confidence,
            ai_reasoning=analysis.ai_reasoning,
            ai_talking_points=analysis.talking_points,
            ai_objections=analysis.anticipated_objections,
            predicted_conversion=analysis.predicted_conversion,
            optimal_outreach_time=analysis.optimal_outreach_time,
            ai_processed_at=calculated_at,
            calculated_at=calculated_at,
            **data,
        )


class BatchMatchResult(BaseModel):
    """Result from batch matching"""
    product_id: str
    processed: int
    saved: int
    chunks: int
    failed_chunks: int = 0
    ai_enhanced: int = 0
    processing_time_ms: float = 0
    results: List[MatchResult] = Field(default_factory=list)


# =============================================================================
# API REQUEST SCHEMAS
# =============================================================================

class MatchRequest(BaseModel):
    """Request to score a single product/contact pair"""
    product: Product
    contact: Contact
    user_id: Optional[str] = None
    use_ai: bool = False
    reasoning_effort: ReasoningEffort = ReasoningEffort.MEDIUM


class BatchMatchRequest(BaseModel):
    """Request to score many contacts against one product"""
    product: Product
    contacts: List[Contact]
    user_id: Optional[str] = None
    use_ai: bool = False
    reasoning_effort: ReasoningEffort = ReasoningEffort.LOW
    chunk_size: Optional[int] = Field(None, ge=1)
