"""
Stage 5: Summaries
==================
Pure rollups over scored calls: per-rep summaries, fleet statistics and the
Silver-stage extraction statistics. No AI calls.
"""

from collections import Counter, OrderedDict
from typing import Iterable, List, Optional, Sequence

from ..models.schemas import (
    AnalyzedCall,
    CallClassification,
    CallRecord,
    ExtractionStats,
    OverallStats,
    RepSummary,
    SilverCall,
    Trend,
)
from ..models.pipeline_config import SummarySettings
from .stage4_scoring import round_half_up


def format_duration(seconds: int) -> str:
    """125 -> "2:05" """
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes}:{secs:02d}"


def silver_to_call_record(silver: SilverCall) -> CallRecord:
    """Flatten a Silver call into the display record"""
    bronze = silver.bronze
    return CallRecord(
        id=bronze.id,
        rep_name=silver.rep.name or bronze.raw_agent_name or "Unknown",
        call_date=bronze.start_time,
        call_duration=format_duration(bronze.duration_seconds),
        duration_seconds=bronze.duration_seconds,
        customer_name=silver.caller.name or None,
        phone_number=bronze.tracking_number,
        transcript=bronze.transcript,
        notes=bronze.note or None,
        outcome=bronze.call_status,
        direction=silver.call_context.type.value,
        source=bronze.source,
        recording_url=bronze.recording_url or None,
        caller_company=silver.caller.company or None,
        caller_location=silver.caller.location or None,
        caller_phone=silver.caller.phone or None,
        need_summary=silver.call_context.need_summary or None,
    )


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0


def _top(items: Iterable[str], n: int) -> List[str]:
    """Most frequent items; ties keep first-seen order"""
    return [item for item, _ in Counter(items).most_common(n)]


def compute_trend(scores: Sequence[float], settings: Optional[SummarySettings] = None) -> Trend:
    """
    Compare the second half of a chronological score series to the first.

    Fewer than ``trend_min_calls`` scores is always stable.
    """
    settings = settings or SummarySettings()
    if len(scores) < settings.trend_min_calls:
        return Trend.STABLE

    mid = len(scores) // 2
    delta = _mean(scores[mid:]) - _mean(scores[:mid])
    if delta > settings.trend_threshold:
        return Trend.IMPROVING
    if delta < -settings.trend_threshold:
        return Trend.DECLINING
    return Trend.STABLE


def rep_name_for(call: AnalyzedCall) -> str:
    return call.score.rep_info.name or call.record.rep_name


def build_rep_summaries(
    calls: Sequence[AnalyzedCall],
    settings: Optional[SummarySettings] = None,
) -> List[RepSummary]:
    """
    Group scored calls by rep and roll them up.

    Returns:
        RepSummary list sorted by average score, best first
    """
    settings = settings or SummarySettings()

    groups: "OrderedDict[str, List[AnalyzedCall]]" = OrderedDict()
    for call in calls:
        groups.setdefault(rep_name_for(call), []).append(call)

    summaries = []
    for rep_name, rep_calls in groups.items():
        scores = [c.score.overall_score for c in rep_calls]
        lead_scores = [c.score.lead_quality.score for c in rep_calls]

        # Stable: calls with equal or blank dates keep arrival order
        chronological = sorted(rep_calls, key=lambda c: c.record.call_date)
        trend = compute_trend([c.score.overall_score for c in chronological], settings)

        summaries.append(RepSummary(
            rep_name=rep_name,
            total_calls=len(rep_calls),
            average_score=round_half_up(_mean(scores), 1),
            average_lead_score=round_half_up(_mean(lead_scores), 1),
            strengths=_top((s for c in rep_calls for s in c.score.strengths), 3),
            weaknesses=_top((w for c in rep_calls for w in c.score.weaknesses), 3),
            coaching_insights=_top((i for c in rep_calls for i in c.score.coaching_insights), 5),
            call_scores=scores,
            lead_scores=lead_scores,
            trend=trend,
            qualified_leads=sum(1 for s in lead_scores if s >= settings.qualified_lead_threshold),
        ))

    return sorted(summaries, key=lambda s: s.average_score, reverse=True)


def build_overall_stats(
    calls: Sequence[AnalyzedCall],
    summaries: Sequence[RepSummary],
    silver_calls: Sequence[SilverCall] = (),
    failed_calls: int = 0,
    settings: Optional[SummarySettings] = None,
) -> OverallStats:
    """Fleet-wide statistics over the scored calls and the whole file"""
    settings = settings or SummarySettings()
    scores = [c.score.overall_score for c in calls]
    lead_scores = [c.score.lead_quality.score for c in calls]
    classifications = Counter(s.triage.classification for s in silver_calls)

    return OverallStats(
        total_calls=len(calls),
        average_score=round_half_up(_mean(scores), 1),
        average_lead_score=round_half_up(_mean(lead_scores), 1),
        top_performer=summaries[0].rep_name if summaries else "N/A",
        needs_improvement=summaries[-1].rep_name if summaries else "N/A",
        qualified_leads=sum(1 for s in lead_scores if s >= settings.qualified_lead_threshold),
        red_flag_calls=sum(1 for c in calls if c.score.lead_quality.red_flags),
        total_in_file=len(silver_calls),
        ivr_calls=classifications[CallClassification.IVR_ONLY],
        spam_calls=(
            classifications[CallClassification.SPAM]
            + classifications[CallClassification.WRONG_NUMBER]
        ),
        failed_calls=failed_calls,
    )


def build_extraction_stats(silver_calls: Sequence[SilverCall]) -> ExtractionStats:
    """Classification counts and extraction quality for a Silver run"""
    classifications = Counter(s.triage.classification for s in silver_calls)
    rep_names = [s.rep.name for s in silver_calls if s.rep.name]
    analyzable = sum(1 for s in silver_calls if s.triage.should_analyze)

    success_rate = 0
    if analyzable:
        success_rate = int(round_half_up(len(rep_names) / analyzable * 100, 0))

    avg_confidence = 0
    if silver_calls:
        avg_confidence = round_half_up(
            _mean([s.validation.confidence for s in silver_calls]), 2
        )

    return ExtractionStats(
        total_calls=len(silver_calls),
        valid_sales=classifications[CallClassification.VALID_SALES],
        ivr_only=classifications[CallClassification.IVR_ONLY],
        spam=classifications[CallClassification.SPAM],
        incomplete=classifications[CallClassification.INCOMPLETE],
        wrong_number=classifications[CallClassification.WRONG_NUMBER],
        extraction_success_rate=success_rate,
        unique_reps=sorted(set(rep_names)),
        avg_confidence=avg_confidence,
        needs_review=sum(1 for s in silver_calls if s.validation.needs_review),
    )
