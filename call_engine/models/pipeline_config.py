"""
Pipeline Configuration Models
"""

from typing import FrozenSet, Iterable, Optional
from pydantic import BaseModel, Field, field_validator

from ..config.settings import (
    PIPELINE_DEFAULTS,
    DEFAULT_SCORE_WEIGHTS,
    INVALID_REP_NAMES,
    KNOWN_REPS,
)


class TriageSettings(BaseModel):
    """Heuristic gates and AI budget for triage"""
    min_transcript_chars: int = PIPELINE_DEFAULTS["min_transcript_chars"]
    transcript_chars: int = PIPELINE_DEFAULTS["triage_transcript_chars"]
    max_tokens: int = PIPELINE_DEFAULTS["triage_max_tokens"]


class ExtractionSettings(BaseModel):
    """Transcript reduction and validation thresholds for extraction"""
    reduce_threshold: int = PIPELINE_DEFAULTS["extraction_reduce_threshold"]
    keep_chars: int = PIPELINE_DEFAULTS["extraction_keep_chars"]
    max_tokens: int = PIPELINE_DEFAULTS["extraction_max_tokens"]
    short_transcript_chars: int = PIPELINE_DEFAULTS["short_transcript_chars"]
    review_confidence_threshold: float = PIPELINE_DEFAULTS["review_confidence_threshold"]


class ScoringSettings(BaseModel):
    """Transcript reduction and AI budget for performance scoring"""
    reduce_threshold: int = PIPELINE_DEFAULTS["scoring_reduce_threshold"]
    keep_chars: int = PIPELINE_DEFAULTS["scoring_keep_chars"]
    max_tokens: int = PIPELINE_DEFAULTS["scoring_max_tokens"]


class ScoreWeights(BaseModel):
    """Weights for each rep performance category (sum to 1.0)"""
    call_context: float = DEFAULT_SCORE_WEIGHTS["call_context"]
    objective_clarity: float = DEFAULT_SCORE_WEIGHTS["objective_clarity"]
    information_gathering: float = DEFAULT_SCORE_WEIGHTS["information_gathering"]
    information_quality: float = DEFAULT_SCORE_WEIGHTS["information_quality"]
    tone_professionalism: float = DEFAULT_SCORE_WEIGHTS["tone_professionalism"]
    listening_ratio: float = DEFAULT_SCORE_WEIGHTS["listening_ratio"]
    conversation_guidance: float = DEFAULT_SCORE_WEIGHTS["conversation_guidance"]
    objection_handling: float = DEFAULT_SCORE_WEIGHTS["objection_handling"]
    next_steps: float = DEFAULT_SCORE_WEIGHTS["next_steps"]
    call_closing: float = DEFAULT_SCORE_WEIGHTS["call_closing"]


class SummarySettings(BaseModel):
    """Thresholds for rep rollups"""
    qualified_lead_threshold: float = PIPELINE_DEFAULTS["qualified_lead_threshold"]
    trend_min_calls: int = PIPELINE_DEFAULTS["trend_min_calls"]
    trend_threshold: float = PIPELINE_DEFAULTS["trend_threshold"]


class PipelineConfig(BaseModel):
    """Complete pipeline configuration for one analysis run"""
    batch_size: int = Field(default=PIPELINE_DEFAULTS["batch_size"], ge=1)
    min_call_duration: int = PIPELINE_DEFAULTS["min_call_duration"]

    triage: TriageSettings = Field(default_factory=TriageSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    weights: ScoreWeights = Field(default_factory=ScoreWeights)
    summary: SummarySettings = Field(default_factory=SummarySettings)

    # Lowercase rep name lists, checked by membership only
    known_reps: FrozenSet[str] = KNOWN_REPS
    invalid_rep_names: FrozenSet[str] = INVALID_REP_NAMES

    @field_validator("known_reps", "invalid_rep_names", mode="before")
    @classmethod
    def _lowercase_names(cls, v):
        return frozenset(str(name).strip().lower() for name in (v or ()))


def create_default_pipeline_config(
    known_reps: Optional[Iterable[str]] = None,
    batch_size: Optional[int] = None,
    min_call_duration: Optional[int] = None,
) -> PipelineConfig:
    """
    Factory function to create a pipeline config with sensible defaults
    """
    config = PipelineConfig()

    if known_reps is not None:
        config = config.model_copy(update={
            "known_reps": frozenset(name.strip().lower() for name in known_reps),
        })

    if batch_size is not None:
        config.batch_size = batch_size

    if min_call_duration is not None:
        config.min_call_duration = min_call_duration

    return config
