"""
Stage 4: Performance Scoring (Gold)
===================================
One AI assessment per analyzable call, followed by a deterministic weighted
aggregation of the rep performance categories.

Categories (weight):
- callContext (5%), informationGathering (15%)
- objectiveClarity, informationQuality, toneProfessionalism, listeningRatio,
  conversationGuidance, objectionHandling, nextSteps, callClosing (10% each)

Categories missing from the AI response drop out of both numerator and
denominator, so the overall score is always on the 0-10 scale.
"""

import logging
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from ..models.schemas import CallScore, RepInfo, CallerInfo, SilverCall, coerce_score
from ..models.pipeline_config import ScoringSettings, ScoreWeights
from ..llm_client import parse_json_response
from ..exceptions import LLMResponseError
from .stage3_extraction import reduce_transcript

logger = logging.getLogger(__name__)

SCORE_CATEGORIES = {
    "callContext": "call_context",
    "objectiveClarity": "objective_clarity",
    "informationGathering": "information_gathering",
    "informationQuality": "information_quality",
    "toneProfessionalism": "tone_professionalism",
    "listeningRatio": "listening_ratio",
    "conversationGuidance": "conversation_guidance",
    "objectionHandling": "objection_handling",
    "nextSteps": "next_steps",
    "callClosing": "call_closing",
}

SCORING_PROMPT = """You are analyzing a sales call for NWH (Nationwide Haul - trucking/trailer company).
The contact info has already been extracted. Focus on SCORING and COACHING INSIGHTS.

## PRE-EXTRACTED DATA
Rep: {rep_name}
Caller: {caller_name}
Company: {caller_company}
Location: {caller_location}
Need: {need_summary}
Urgency: {urgency}
Products: {products}

## TRANSCRIPT
{transcript}

## SCORING INSTRUCTIONS

### LEAD QUALITY (1-10)
Based on the pre-extracted data and transcript:
- 9-10: Decision maker, immediate need, perfect fit, complete info
- 7-8: Has authority, near-term need, good fit
- 5-6: Some influence, 1-3 month timeline, decent fit
- 3-4: Limited authority, vague timeline, poor fit
- 1-2: No authority, no need, mismatch

### REP PERFORMANCE (1-10 each)
Score each category with specific evidence:
1. callContext - Identify call type (inbound/outbound/follow-up) and initial context
2. objectiveClarity - Did rep establish purpose early?
3. informationGathering - Did rep identify business type, decision maker, timeline, budget, load details?
4. informationQuality - Completeness of info collected
5. toneProfessionalism - Professional tone, no filler words?
6. listeningRatio - Good balance (aim for 60/40 customer/rep)?
7. conversationGuidance - Steered conversation productively?
8. objectionHandling - Addressed concerns well?
9. nextSteps - Clear follow-up actions set?
10. callClosing - Proper close (appointment, follow-up, disposition)?

Return ONLY valid JSON:
{{
  "repInfo": {{"name": "{rep_name}", "introducedProperly": true/false}},
  "callerInfo": {{
    "name": "{caller_name}",
    "company": "{caller_company}",
    "location": "{caller_location}",
    "phone": null,
    "needSummary": "{need_summary}"
  }},
  "leadQuality": {{
    "score": N,
    "timeline": "immediate|near-term|1-3months|vague|none",
    "hasAuthority": true/false,
    "needIdentified": true/false,
    "serviceFit": "perfect|good|decent|poor|mismatch",
    "redFlags": [],
    "recommendedAction": "priority-1hr|follow-24hr|nurture-48-72hr|email-only|no-follow-up",
    "notes": "Brief explanation"
  }},
  "callContext": {{"type": "inbound|outbound|follow-up|unknown", "score": N, "notes": ""}},
  "objectiveClarity": {{"score": N, "notes": ""}},
  "informationGathering": {{
    "businessType": true/false,
    "decisionMaker": true/false,
    "timeline": true/false,
    "budgetIntent": true/false,
    "loadDetails": true/false,
    "score": N,
    "notes": ""
  }},
  "informationQuality": {{"score": N, "notes": ""}},
  "toneProfessionalism": {{"score": N, "fillerWords": true/false, "unprofessionalLanguage": true/false, "notes": ""}},
  "listeningRatio": {{"score": N, "estimatedRatio": "X/Y", "notes": ""}},
  "conversationGuidance": {{"score": N, "notes": ""}},
  "objectionHandling": {{"score": N, "objectionsRaised": [], "notes": ""}},
  "nextSteps": {{"score": N, "stepsSet": [], "notes": ""}},
  "callClosing": {{"outcome": "appointment|follow-up|disposition|none", "score": N, "notes": ""}},
  "strengths": ["Be specific - quote from transcript"],
  "weaknesses": ["Be specific - reference actual moments"],
  "coachingInsights": ["Actionable tip 1", "Actionable tip 2", "Actionable tip 3"],
  "internalAlerts": []
}}"""


def round_half_up(value: float, digits: int = 1) -> float:
    """Round with ties going up (2.25 -> 2.3), unlike banker's round()"""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def calculate_overall_score(score: CallScore, weights: Optional[ScoreWeights] = None) -> float:
    """
    Weighted average of the rep performance categories present on ``score``.

    Returns:
        Score on the 0-10 scale rounded to one decimal, 0 when no category
        is present
    """
    weights = weights or ScoreWeights()
    total_score = 0.0
    total_weight = 0.0

    for field in SCORE_CATEGORIES.values():
        category = getattr(score, field)
        if category is None:
            continue
        weight = getattr(weights, field)
        total_score += category.score * weight
        total_weight += weight

    if total_weight <= 0:
        return 0
    return round_half_up(total_score / total_weight, 1)


class PerformanceScoringStage:
    """
    Stage 4: Score rep performance and lead quality for one Silver call.
    """

    def __init__(
        self,
        llm,
        settings: Optional[ScoringSettings] = None,
        weights: Optional[ScoreWeights] = None,
    ):
        """
        Args:
            llm: Client exposing ``call(prompt, max_tokens) -> str``
            settings: Transcript reduction and token budget
            weights: Category weights for the overall score
        """
        self.llm = llm
        self.settings = settings or ScoringSettings()
        self.weights = weights or ScoreWeights()

    def process(self, silver: SilverCall) -> CallScore:
        """
        Score one call.

        Raises:
            LLMResponseError: empty, unparseable or non-object AI response
            Exception: transport failures from the provider SDK
        """
        start_time = time.time()

        response = self.llm.call(self.build_prompt(silver), self.settings.max_tokens)
        data = parse_json_response(response)

        score = self._to_call_score(data)
        score = self._preserve_extracted(score, silver)
        score.overall_score = calculate_overall_score(score, self.weights)

        logger.debug(
            f"Scored {silver.bronze.id}: {score.overall_score} "
            f"in {(time.time() - start_time) * 1000:.0f}ms"
        )
        return score

    def build_prompt(self, silver: SilverCall) -> str:
        """Embed the Silver fields and the reduced transcript"""
        context = silver.call_context
        transcript = reduce_transcript(
            silver.bronze.transcript or "",
            self.settings.reduce_threshold,
            self.settings.keep_chars,
        )
        return SCORING_PROMPT.format(
            rep_name=silver.rep.name or "Unknown",
            caller_name=silver.caller.name or "Unknown",
            caller_company=silver.caller.company or "Not mentioned",
            caller_location=silver.caller.location or "Not mentioned",
            need_summary=context.need_summary or "Not identified",
            urgency=context.urgency.value,
            products=", ".join(context.product_interest) or "Not specified",
            transcript=transcript,
        )

    def _to_call_score(self, data: Dict[str, Any]) -> CallScore:
        """Validate the AI payload, dropping malformed categories"""
        payload = {
            key: value for key, value in data.items()
            if key not in SCORE_CATEGORIES
        }

        for key in SCORE_CATEGORIES:
            category = data.get(key)
            if not isinstance(category, dict):
                continue
            try:
                coerce_score(category.get("score"))
            except ValueError:
                logger.debug(f"Dropping category {key}: unusable score {category.get('score')!r}")
                continue
            payload[key] = category

        for key in ("repInfo", "callerInfo", "leadQuality"):
            if not isinstance(payload.get(key), dict):
                payload.pop(key, None)

        try:
            return CallScore.model_validate(payload)
        except ValueError as e:
            raise LLMResponseError("Model returned an invalid score payload", details=str(e)[:200])

    @staticmethod
    def _preserve_extracted(score: CallScore, silver: SilverCall) -> CallScore:
        """Silver fields win; the AI's values only fill gaps"""
        ai_rep = score.rep_info
        ai_caller = score.caller_info

        score.rep_info = RepInfo(
            name=silver.rep.name or ai_rep.name or None,
            introduced_properly=silver.rep.introduced_properly or ai_rep.introduced_properly,
        )
        score.caller_info = CallerInfo(
            name=silver.caller.name or ai_caller.name or None,
            company=silver.caller.company or ai_caller.company or None,
            location=silver.caller.location or ai_caller.location or None,
            phone=silver.caller.phone or ai_caller.phone or None,
            need_summary=silver.call_context.need_summary or ai_caller.need_summary or "",
        )
        return score
