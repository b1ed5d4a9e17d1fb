"""
Builders and fakes shared by the test modules.

``FakeLLM`` stands in for ``LLMClient``: it routes each prompt to a scripted
handler by recognizing which stage built it, and records every prompt under
a lock so it can be driven from the batch thread pools.
"""

import io
import json
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence

import pandas as pd

from call_engine.models.schemas import (
    AnalyzedCall,
    BronzeCall,
    CallClassification,
    CallRecord,
    CallScore,
    ExtractedCallContext,
    ExtractedCaller,
    ExtractedRep,
    ExtractionValidation,
    LeadQuality,
    SilverCall,
    TriageResult,
)


SALES_TRANSCRIPT = (
    "Agent: Thank you for calling Nationwide Haul, this is Brian, how can I help you today?\n"
    "Caller: Hi Brian, my name is Dana Smith with Smith Hauling out of Dallas, Texas. "
    "I'm looking for a 14 foot dump trailer, we need it in the next two weeks.\n"
    "Agent: Great, are you the owner of the business? What kind of loads are you hauling?\n"
    "Caller: Yes I'm the owner. Mostly gravel and demolition debris.\n"
    "Agent: Perfect. Let me send over a quote and schedule a follow-up call Thursday."
)

IVR_TRANSCRIPT = "Thank you for calling, for a full list of inventory visit www.example.com"


def triage_json(classification: str = "valid_sales", confidence: float = 0.9, reason: str = "Sales call") -> str:
    return json.dumps({"classification": classification, "confidence": confidence, "reason": reason})


def extraction_json(
    rep_name: Optional[str] = "Brian",
    caller_name: Optional[str] = "Dana Smith",
    location: Optional[str] = "Dallas, TX",
    phone: Optional[str] = None,
    call_type: str = "inbound",
    need_summary: str = "Needs a 14 foot dump trailer within two weeks",
    urgency: str = "immediate",
) -> str:
    return json.dumps({
        "rep": {"name": rep_name, "introducedProperly": True, "introPattern": "this is Brian"},
        "caller": {
            "name": caller_name,
            "company": "Smith Hauling",
            "location": location,
            "phone": phone,
            "role": "owner",
        },
        "callContext": {
            "type": call_type,
            "needSummary": need_summary,
            "productInterest": ["dump trailer"],
            "urgency": urgency,
        },
    })


def score_payload(category_score: float = 8, lead_score: float = 7, **overrides: Any) -> Dict[str, Any]:
    """A complete AI scoring payload with every category at ``category_score``"""
    payload = {
        "repInfo": {"name": "Somebody", "introducedProperly": True},
        "callerInfo": {"name": "AI Caller", "company": "AI Co", "location": "Austin, TX",
                       "phone": "5551234567", "needSummary": "AI summary"},
        "leadQuality": {
            "score": lead_score,
            "timeline": "near-term",
            "hasAuthority": True,
            "needIdentified": True,
            "serviceFit": "good",
            "redFlags": [],
            "recommendedAction": "follow-24hr",
            "notes": "Owner with a near-term need",
        },
        "callContext": {"type": "inbound", "score": category_score, "notes": ""},
        "objectiveClarity": {"score": category_score, "notes": ""},
        "informationGathering": {
            "businessType": True, "decisionMaker": True, "timeline": True,
            "budgetIntent": False, "loadDetails": True,
            "score": category_score, "notes": "",
        },
        "informationQuality": {"score": category_score, "notes": ""},
        "toneProfessionalism": {"score": category_score, "fillerWords": False,
                                "unprofessionalLanguage": False, "notes": ""},
        "listeningRatio": {"score": category_score, "estimatedRatio": "60/40", "notes": ""},
        "conversationGuidance": {"score": category_score, "notes": ""},
        "objectionHandling": {"score": category_score, "objectionsRaised": [], "notes": ""},
        "nextSteps": {"score": category_score, "stepsSet": ["Send quote"], "notes": ""},
        "callClosing": {"outcome": "follow-up", "score": category_score, "notes": ""},
        "strengths": ["Clear introduction"],
        "weaknesses": ["Did not ask about budget"],
        "coachingInsights": ["Ask about budget earlier"],
        "internalAlerts": [],
    }
    payload.update(overrides)
    return payload


def score_json(category_score: float = 8, lead_score: float = 7, **overrides: Any) -> str:
    return json.dumps(score_payload(category_score, lead_score, **overrides))


class FakeLLM:
    """
    Thread-safe scripted stand-in for ``LLMClient``.

    Handlers take the prompt and return response text or raise. Missing
    handlers raise, so an unexpected AI call fails loudly.
    """

    def __init__(
        self,
        triage: Optional[Callable[[str], str]] = None,
        extraction: Optional[Callable[[str], str]] = None,
        scoring: Optional[Callable[[str], str]] = None,
        model: str = "fake-model",
    ):
        self.handlers = {"triage": triage, "extraction": extraction, "scoring": scoring}
        self.model = model
        self.prompts: List[str] = []
        self.calls: Dict[str, int] = {"triage": 0, "extraction": 0, "scoring": 0}
        self._lock = threading.Lock()

    @staticmethod
    def kind_of(prompt: str) -> str:
        if prompt.startswith("Classify this call transcript"):
            return "triage"
        if prompt.startswith("Extract contact information"):
            return "extraction"
        return "scoring"

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.prompts)

    def call(self, prompt: str, max_tokens: int) -> str:
        kind = self.kind_of(prompt)
        with self._lock:
            self.prompts.append(prompt)
            self.calls[kind] += 1
        handler = self.handlers[kind]
        if handler is None:
            raise AssertionError(f"Unexpected {kind} call")
        return handler(prompt)


def always(text: str) -> Callable[[str], str]:
    return lambda prompt: text


def failing(message: str = "provider unavailable") -> Callable[[str], str]:
    def handler(prompt: str) -> str:
        raise RuntimeError(message)
    return handler


def sales_llm(scoring: Optional[Callable[[str], str]] = None) -> FakeLLM:
    """Every call is a valid sales call by Brian; scoring defaults to all 8s"""
    return FakeLLM(
        triage=always(triage_json()),
        extraction=always(extraction_json()),
        scoring=scoring or always(score_json()),
    )


# =============================================================================
# Model builders
# =============================================================================

def make_bronze(
    call_id: str = "bronze-1",
    transcript: str = SALES_TRANSCRIPT,
    duration_seconds: int = 120,
    start_time: str = "2024-01-15 09:30",
    raw_agent_name: str = "Brian Jones",
) -> BronzeCall:
    return BronzeCall(
        id=call_id,
        raw_agent_name=raw_agent_name,
        call_status="Answered",
        start_time=start_time,
        duration_seconds=duration_seconds,
        tracking_number="5550001111",
        source="Google Ads",
        transcript=transcript,
    )


def make_silver(
    call_id: str = "bronze-1",
    rep_name: Optional[str] = "Brian",
    classification: CallClassification = CallClassification.VALID_SALES,
    transcript: str = SALES_TRANSCRIPT,
    start_time: str = "2024-01-15 09:30",
) -> SilverCall:
    return SilverCall(
        bronze=make_bronze(call_id, transcript=transcript, start_time=start_time),
        triage=TriageResult(classification=classification, confidence=0.9, reason=""),
        rep=ExtractedRep(name=rep_name, introduced_properly=True),
        caller=ExtractedCaller(name="Dana Smith", company="Smith Hauling", location="Dallas, TX"),
        call_context=ExtractedCallContext(type="inbound", need_summary="Needs a dump trailer"),
        validation=ExtractionValidation(is_valid=True, issues=[], confidence=1.0, needs_review=False),
        extraction_model="fake-model",
    )


def make_analyzed(
    rep_name: str,
    overall_score: float,
    lead_score: float = 5,
    call_date: str = "2024-01-15 09:30",
    strengths: Sequence[str] = (),
    weaknesses: Sequence[str] = (),
    coaching_insights: Sequence[str] = (),
    red_flags: Sequence[str] = (),
    score_rep_name: Optional[str] = None,
) -> AnalyzedCall:
    score = CallScore(
        lead_quality=LeadQuality(score=lead_score, red_flags=list(red_flags)),
        overall_score=overall_score,
        strengths=list(strengths),
        weaknesses=list(weaknesses),
        coaching_insights=list(coaching_insights),
    )
    score.rep_info.name = score_rep_name
    return AnalyzedCall(
        record=CallRecord(id=f"{rep_name}-{call_date}", rep_name=rep_name, call_date=call_date),
        score=score,
        ai_model="claude",
    )


# =============================================================================
# Spreadsheet builders
# =============================================================================

def call_row(
    transcript: str = SALES_TRANSCRIPT,
    duration: Any = 120,
    start_time: Any = "2024-01-15 09:30:00",
    agent: str = "Brian Jones",
    **extra: Any,
) -> Dict[str, Any]:
    row = {
        "Agent Name": agent,
        "Call Status": "Answered",
        "Start Time": start_time,
        "Duration (seconds)": duration,
        "Tracking Number": "5550001111",
        "Source": "Google Ads",
        "Full Transcription": transcript,
    }
    row.update(extra)
    return row


def build_xlsx(rows: Sequence[Dict[str, Any]], sheet_name: str = "Calls",
               extra_sheets: Optional[Dict[str, Sequence[Dict[str, Any]]]] = None) -> bytes:
    """Write rows to an in-memory workbook; ``extra_sheets`` are written first"""
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for name, sheet_rows in (extra_sheets or {}).items():
            pd.DataFrame(list(sheet_rows)).to_excel(writer, sheet_name=name, index=False)
        pd.DataFrame(list(rows)).to_excel(writer, sheet_name=sheet_name, index=False)
    return buffer.getvalue()


def build_csv(rows: Sequence[Dict[str, Any]]) -> bytes:
    return pd.DataFrame(list(rows)).to_csv(index=False).encode("utf-8")
