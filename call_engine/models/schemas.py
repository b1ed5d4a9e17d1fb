"""
Pydantic schemas for the Call Scoring Engine

Attributes are snake_case in Python; the wire format (AI responses, streamed
events and the final AnalysisResult) is camelCase.
"""

import math
from enum import Enum
from typing import Any, List, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def coerce_bool(value: Any) -> bool:
    """Interpret loosely typed JSON booleans ("true", "yes", 1, null)"""
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "y", "1")
    return bool(value)


def coerce_str_list(value: Any) -> List[str]:
    """Turn null, a bare string or a mixed list into a list of strings"""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None and str(item).strip()]
    return []


def coerce_choice(value: Any, allowed, default: str) -> str:
    """Map a free-text value onto one of the allowed choices"""
    text = str(value or "").strip().lower()
    return text if text in allowed else default


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def coerce_score(value: Any) -> float:
    """Parse a 0-10 score, raising ValueError for anything non-numeric"""
    if isinstance(value, bool) or value is None:
        raise ValueError("score must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"score must be a number, got {value!r}")
    if not math.isfinite(number):
        raise ValueError("score must be finite")
    return clamp(number, 0, 10)


class CamelModel(BaseModel):
    """Base model serializing to camelCase and accepting either case on input"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# ENUMS
# =============================================================================

class CallClassification(str, Enum):
    """Triage disposition of a call"""
    VALID_SALES = "valid_sales"
    IVR_ONLY = "ivr_only"
    SPAM = "spam"
    INCOMPLETE = "incomplete"
    WRONG_NUMBER = "wrong_number"


class CallDirection(str, Enum):
    """Who initiated the call"""
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    FOLLOW_UP = "follow-up"
    UNKNOWN = "unknown"


class Urgency(str, Enum):
    """How soon the caller needs the product"""
    IMMEDIATE = "immediate"
    NEAR_TERM = "near-term"
    EXPLORING = "exploring"
    UNKNOWN = "unknown"


class Trend(str, Enum):
    """Direction of a rep's scores over time"""
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


LEAD_TIMELINES = ("immediate", "near-term", "1-3months", "vague", "none")
SERVICE_FITS = ("perfect", "good", "decent", "poor", "mismatch")
RECOMMENDED_ACTIONS = (
    "priority-1hr",
    "follow-24hr",
    "nurture-48-72hr",
    "email-only",
    "no-follow-up",
)
CLOSING_OUTCOMES = ("appointment", "follow-up", "disposition", "none")


# =============================================================================
# BRONZE LAYER
# =============================================================================

class BronzeCall(CamelModel):
    """One normalized spreadsheet row"""
    model_config = ConfigDict(frozen=True)

    id: str
    raw_agent_name: str = ""
    raw_agent_number: str = ""
    call_status: str = ""
    start_time: str = ""
    duration_seconds: int = Field(default=0, ge=0)
    tracking_number: str = ""
    source: str = ""
    transcript: str = ""
    recording_url: Optional[str] = None
    sentiment: Optional[str] = None
    number_name: str = ""
    medium: str = ""
    campaign: str = ""
    note: str = ""
    attribution: str = ""


# =============================================================================
# SILVER LAYER
# =============================================================================

class TriageResult(CamelModel):
    """Analyzability classification of one call"""
    model_config = ConfigDict(frozen=True)

    classification: CallClassification
    confidence: float = Field(ge=0, le=1)
    reason: str = ""

    @computed_field(alias="shouldAnalyze")
    @property
    def should_analyze(self) -> bool:
        return self.classification == CallClassification.VALID_SALES


class ExtractedRep(CamelModel):
    name: Optional[str] = None
    introduced_properly: bool = False
    intro_pattern: Optional[str] = None


class ExtractedCaller(CamelModel):
    name: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None


class ExtractedCallContext(CamelModel):
    type: CallDirection = CallDirection.UNKNOWN
    need_summary: str = ""
    product_interest: List[str] = Field(default_factory=list)
    urgency: Urgency = Urgency.UNKNOWN


class Extraction(CamelModel):
    """Structured fields pulled from a transcript"""
    rep: ExtractedRep = Field(default_factory=ExtractedRep)
    caller: ExtractedCaller = Field(default_factory=ExtractedCaller)
    call_context: ExtractedCallContext = Field(default_factory=ExtractedCallContext)


class ExtractionValidation(CamelModel):
    """Deterministic post-check of an extraction"""
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    issues: List[str] = Field(default_factory=list)
    confidence: float = Field(ge=0, le=1)
    needs_review: bool


class SilverCall(CamelModel):
    """A Bronze call with its triage, extraction and validation"""
    bronze: BronzeCall
    triage: TriageResult
    rep: ExtractedRep = Field(default_factory=ExtractedRep)
    caller: ExtractedCaller = Field(default_factory=ExtractedCaller)
    call_context: ExtractedCallContext = Field(default_factory=ExtractedCallContext)
    validation: ExtractionValidation
    extracted_at: datetime = Field(default_factory=utc_now)
    extraction_model: str = ""


class ExtractionStats(CamelModel):
    """File-level statistics for the Silver stage"""
    total_calls: int = 0
    valid_sales: int = 0
    ivr_only: int = 0
    spam: int = 0
    incomplete: int = 0
    wrong_number: int = 0
    extraction_success_rate: int = 0
    unique_reps: List[str] = Field(default_factory=list)
    avg_confidence: float = 0
    needs_review: int = 0


class ExtractionResult(CamelModel):
    calls: List[SilverCall] = Field(default_factory=list)
    stats: ExtractionStats = Field(default_factory=ExtractionStats)


# =============================================================================
# GOLD LAYER - SCORE CATEGORIES
# =============================================================================

class CategoryScore(CamelModel):
    """A single rep performance category scored 0-10"""
    score: float = 0
    notes: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, v):
        return coerce_score(v)

    @field_validator("notes", mode="before")
    @classmethod
    def _text(cls, v):
        return "" if v is None else str(v)


class CallContextScore(CategoryScore):
    type: CallDirection = CallDirection.UNKNOWN

    @field_validator("type", mode="before")
    @classmethod
    def _direction(cls, v):
        return coerce_choice(v, [d.value for d in CallDirection], CallDirection.UNKNOWN.value)


class InformationGatheringScore(CategoryScore):
    business_type: bool = False
    decision_maker: bool = False
    timeline: bool = False
    budget_intent: bool = False
    load_details: bool = False

    @field_validator(
        "business_type", "decision_maker", "timeline", "budget_intent", "load_details",
        mode="before",
    )
    @classmethod
    def _flags(cls, v):
        return coerce_bool(v)


class ToneProfessionalismScore(CategoryScore):
    filler_words: bool = False
    unprofessional_language: bool = False

    @field_validator("filler_words", "unprofessional_language", mode="before")
    @classmethod
    def _flags(cls, v):
        return coerce_bool(v)


class ListeningRatioScore(CategoryScore):
    estimated_ratio: str = ""

    @field_validator("estimated_ratio", mode="before")
    @classmethod
    def _ratio(cls, v):
        return "" if v is None else str(v)


class ObjectionHandlingScore(CategoryScore):
    objections_raised: List[str] = Field(default_factory=list)

    @field_validator("objections_raised", mode="before")
    @classmethod
    def _list(cls, v):
        return coerce_str_list(v)


class NextStepsScore(CategoryScore):
    steps_set: List[str] = Field(default_factory=list)

    @field_validator("steps_set", mode="before")
    @classmethod
    def _list(cls, v):
        return coerce_str_list(v)


class CallClosingScore(CategoryScore):
    outcome: str = "none"

    @field_validator("outcome", mode="before")
    @classmethod
    def _outcome(cls, v):
        return coerce_choice(v, CLOSING_OUTCOMES, "none")


class LeadQuality(CamelModel):
    """How promising the caller is, independent of the rep"""
    score: float = 0
    timeline: str = "none"
    has_authority: bool = False
    need_identified: bool = False
    service_fit: str = "decent"
    red_flags: List[str] = Field(default_factory=list)
    recommended_action: str = "nurture-48-72hr"
    notes: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, v):
        try:
            return coerce_score(v)
        except ValueError:
            return 0

    @field_validator("timeline", mode="before")
    @classmethod
    def _timeline(cls, v):
        return coerce_choice(v, LEAD_TIMELINES, "none")

    @field_validator("service_fit", mode="before")
    @classmethod
    def _fit(cls, v):
        return coerce_choice(v, SERVICE_FITS, "decent")

    @field_validator("recommended_action", mode="before")
    @classmethod
    def _action(cls, v):
        return coerce_choice(v, RECOMMENDED_ACTIONS, "nurture-48-72hr")

    @field_validator("has_authority", "need_identified", mode="before")
    @classmethod
    def _flags(cls, v):
        return coerce_bool(v)

    @field_validator("red_flags", mode="before")
    @classmethod
    def _list(cls, v):
        return coerce_str_list(v)

    @field_validator("notes", mode="before")
    @classmethod
    def _text(cls, v):
        return "" if v is None else str(v)


class RepInfo(CamelModel):
    name: Optional[str] = None
    introduced_properly: bool = False

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v):
        return None if v is None else str(v)

    @field_validator("introduced_properly", mode="before")
    @classmethod
    def _bool(cls, v):
        return coerce_bool(v)


class CallerInfo(CamelModel):
    name: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    phone: Optional[str] = None
    need_summary: str = ""

    @field_validator("name", "company", "location", "phone", mode="before")
    @classmethod
    def _text(cls, v):
        return None if v is None else str(v)

    @field_validator("need_summary", mode="before")
    @classmethod
    def _summary(cls, v):
        return "" if v is None else str(v)


class CallScore(CamelModel):
    """AI assessment of one call plus the deterministic overall score"""
    rep_info: RepInfo = Field(default_factory=RepInfo)
    caller_info: CallerInfo = Field(default_factory=CallerInfo)
    lead_quality: LeadQuality = Field(default_factory=LeadQuality)

    # Absent categories stay None and are left out of the overall score
    call_context: Optional[CallContextScore] = None
    objective_clarity: Optional[CategoryScore] = None
    information_gathering: Optional[InformationGatheringScore] = None
    information_quality: Optional[CategoryScore] = None
    tone_professionalism: Optional[ToneProfessionalismScore] = None
    listening_ratio: Optional[ListeningRatioScore] = None
    conversation_guidance: Optional[CategoryScore] = None
    objection_handling: Optional[ObjectionHandlingScore] = None
    next_steps: Optional[NextStepsScore] = None
    call_closing: Optional[CallClosingScore] = None

    overall_score: float = 0
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    coaching_insights: List[str] = Field(default_factory=list)
    internal_alerts: List[str] = Field(default_factory=list)

    @field_validator(
        "strengths", "weaknesses", "coaching_insights", "internal_alerts",
        mode="before",
    )
    @classmethod
    def _lists(cls, v):
        return coerce_str_list(v)

    @field_validator("overall_score", mode="before")
    @classmethod
    def _overall(cls, v):
        # Recomputed by the scorer; an unusable value from the AI is not an error
        try:
            return coerce_score(v)
        except ValueError:
            return 0


# =============================================================================
# GOLD LAYER - RESULTS
# =============================================================================

class CallRecord(CamelModel):
    """Display-oriented flattening of a Silver call"""
    id: str
    rep_name: str
    call_date: str = ""
    call_duration: str = "0:00"
    duration_seconds: int = 0
    customer_name: Optional[str] = None
    phone_number: str = ""
    transcript: str = ""
    notes: Optional[str] = None
    outcome: str = ""
    direction: str = CallDirection.UNKNOWN.value
    source: str = ""
    recording_url: Optional[str] = None
    caller_company: Optional[str] = None
    caller_location: Optional[str] = None
    caller_phone: Optional[str] = None
    need_summary: Optional[str] = None


class AnalyzedCall(CamelModel):
    record: CallRecord
    score: CallScore
    ai_model: str
    analyzed_at: datetime = Field(default_factory=utc_now)


class RepSummary(CamelModel):
    """Per-rep rollup of scored calls"""
    rep_name: str
    total_calls: int
    average_score: float
    average_lead_score: float
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    coaching_insights: List[str] = Field(default_factory=list)
    call_scores: List[float] = Field(default_factory=list)
    lead_scores: List[float] = Field(default_factory=list)
    trend: Trend = Trend.STABLE
    qualified_leads: int = 0


class OverallStats(CamelModel):
    """Fleet-wide statistics"""
    total_calls: int = 0
    average_score: float = 0
    average_lead_score: float = 0
    top_performer: str = "N/A"
    needs_improvement: str = "N/A"
    qualified_leads: int = 0
    red_flag_calls: int = 0
    total_in_file: int = 0
    ivr_calls: int = 0
    spam_calls: int = 0
    failed_calls: int = 0


class AnalysisResult(CamelModel):
    """Top-level output handed to display and export collaborators"""
    calls: List[AnalyzedCall] = Field(default_factory=list)
    rep_summaries: List[RepSummary] = Field(default_factory=list)
    overall_stats: OverallStats = Field(default_factory=OverallStats)
