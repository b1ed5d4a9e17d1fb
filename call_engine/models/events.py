"""
Progress events streamed while a pipeline run is in flight
"""

from typing import List, Literal, Optional
from pydantic import Field

from .schemas import (
    CamelModel,
    AnalyzedCall,
    AnalysisResult,
    CallClassification,
    ExtractionResult,
    ExtractionStats,
)


class PipelineEvent(CamelModel):
    """Base event; ``type`` names the event on the wire"""
    type: str

    def to_sse(self) -> str:
        """Render as one server-sent-events frame"""
        return f"data: {self.model_dump_json(by_alias=True)}\n\n"


class StatusEvent(PipelineEvent):
    type: Literal["status"] = "status"
    phase: str
    message: str


class BronzeCompleteEvent(PipelineEvent):
    type: Literal["bronze_complete"] = "bronze_complete"
    count: int
    skipped_short_calls: int = 0


class ExtractedCallSummary(CamelModel):
    """Compact view of a Silver call for progress displays"""
    id: str
    classification: CallClassification
    rep_name: Optional[str] = None
    caller_name: Optional[str] = None
    need_summary: str = ""
    confidence: float = 0


class ExtractProgressEvent(PipelineEvent):
    type: Literal["extract_progress"] = "extract_progress"
    processed: int
    total: int
    call: ExtractedCallSummary


class SilverCompleteEvent(PipelineEvent):
    type: Literal["silver_complete"] = "silver_complete"
    total_calls: int
    valid_sales: int
    skipped: int
    unique_reps: List[str] = Field(default_factory=list)


class ExtractCompleteEvent(PipelineEvent):
    type: Literal["extract_complete"] = "extract_complete"
    stats: ExtractionStats
    message: str = ""


class StartEvent(PipelineEvent):
    type: Literal["start"] = "start"
    total_calls: int


class CallCompleteEvent(PipelineEvent):
    type: Literal["call_complete"] = "call_complete"
    call: AnalyzedCall
    processed: int
    total: int


class CallErrorEvent(PipelineEvent):
    type: Literal["call_error"] = "call_error"
    error: str
    call_id: Optional[str] = None
    processed: int
    total: int


class CompleteEvent(PipelineEvent):
    type: Literal["complete"] = "complete"
    result: AnalysisResult
    partial: bool = False


class ExtractionCompleteEvent(PipelineEvent):
    """Terminal event of an extraction-only run"""
    type: Literal["complete"] = "complete"
    result: ExtractionResult


class ErrorEvent(PipelineEvent):
    type: Literal["error"] = "error"
    message: str
    code: str = "internal_error"
    details: Optional[str] = None
