"""
Stage 2: Triage Classifier
==========================
Decides whether a call is worth the cost of extraction and scoring.

Cheap heuristics run first:
- Very short transcripts are "incomplete"
- Canned IVR greetings with no caller turn are "ivr_only"

Everything else gets one closed-category AI classification. When that call
fails the stage errs on the side of analyzing the call.
"""

import logging
import math
import re
from typing import Optional

from ..models.schemas import TriageResult, CallClassification, clamp
from ..models.pipeline_config import TriageSettings
from ..config.settings import IVR_PATTERNS, CALLER_TURN_PATTERN
from ..llm_client import parse_json_response

logger = logging.getLogger(__name__)

TRIAGE_PROMPT = """Classify this call transcript into one of these categories:

CATEGORIES:
- valid_sales: A real sales conversation between a human agent and potential customer
- ivr_only: Only automated messages, no human agent interaction
- spam: Robocall, telemarketer, or clearly irrelevant call
- incomplete: Call too short or dropped before meaningful conversation
- wrong_number: Caller reached wrong number, no sales opportunity

TRANSCRIPT:
{transcript}

Return ONLY valid JSON:
{{
  "classification": "valid_sales|ivr_only|spam|incomplete|wrong_number",
  "confidence": 0.0-1.0,
  "reason": "Brief explanation"
}}"""


class TriageStage:
    """
    Stage 2: Classify a transcript's analyzability.
    """

    def __init__(self, llm, settings: Optional[TriageSettings] = None):
        """
        Args:
            llm: Client exposing ``call(prompt, max_tokens) -> str``
            settings: Triage thresholds (defaults if not provided)
        """
        self.llm = llm
        self.settings = settings or TriageSettings()
        self.ivr_patterns = [re.compile(p, re.IGNORECASE) for p in IVR_PATTERNS]
        self.caller_turn = re.compile(CALLER_TURN_PATTERN, re.IGNORECASE)

    def process(self, transcript: Optional[str]) -> TriageResult:
        """
        Classify one transcript.

        Args:
            transcript: Raw transcript text (may be empty)

        Returns:
            TriageResult; never raises
        """
        transcript = transcript or ""

        if len(transcript.strip()) < self.settings.min_transcript_chars:
            return TriageResult(
                classification=CallClassification.INCOMPLETE,
                confidence=0.95,
                reason="Transcript too short for meaningful analysis",
            )

        if self.is_ivr_only(transcript):
            return TriageResult(
                classification=CallClassification.IVR_ONLY,
                confidence=0.9,
                reason="Only automated IVR message detected, no customer interaction",
            )

        prompt = TRIAGE_PROMPT.format(
            transcript=transcript[: self.settings.transcript_chars]
        )

        try:
            response = self.llm.call(prompt, self.settings.max_tokens)
            return self._parse_response(response)
        except Exception as e:
            logger.warning(f"Triage failed, defaulting to analysis: {e}")
            return TriageResult(
                classification=CallClassification.VALID_SALES,
                confidence=0.5,
                reason=f"Triage failed, defaulting to analysis ({str(e)[:80]})",
            )

    def is_ivr_only(self, transcript: str) -> bool:
        """IVR phrasing present and no turn attributed to a human caller"""
        has_ivr = any(p.search(transcript) for p in self.ivr_patterns)
        return has_ivr and not self.caller_turn.search(transcript)

    def _parse_response(self, response: str) -> TriageResult:
        """Validate the model's classification payload"""
        data = parse_json_response(response)

        # Raises ValueError for anything outside the closed category set
        classification = CallClassification(str(data.get("classification", "")).strip().lower())

        try:
            confidence = float(data.get("confidence", 0.5))
        except (TypeError, ValueError):
            confidence = 0.5
        if not math.isfinite(confidence):
            confidence = 0.5

        return TriageResult(
            classification=classification,
            confidence=clamp(confidence, 0.0, 1.0),
            reason=str(data.get("reason") or ""),
        )
