"""
Call Scoring Engine - Main Orchestrator
=======================================
Orchestrates the Bronze -> Silver -> Gold pipeline:
  Stage 1: Spreadsheet Parser -> Stage 2: Triage ->
  Stage 3: Extraction + Validation -> Stage 4: Performance Scoring ->
  Stage 5: Summaries

Key properties:
- Triage heuristics and the short-call filter keep AI calls off junk rows
- AI calls fan out in fixed-size batches; batches run one after another
- One failing call never aborts a batch
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from concurrent.futures import ThreadPoolExecutor, as_completed

from .models.schemas import (
    AnalysisResult,
    AnalyzedCall,
    BronzeCall,
    CallClassification,
    Extraction,
    ExtractionResult,
    SilverCall,
    TriageResult,
)
from .models.events import (
    BronzeCompleteEvent,
    CallCompleteEvent,
    CallErrorEvent,
    CompleteEvent,
    ErrorEvent,
    ExtractCompleteEvent,
    ExtractedCallSummary,
    ExtractionCompleteEvent,
    ExtractProgressEvent,
    PipelineEvent,
    SilverCompleteEvent,
    StartEvent,
    StatusEvent,
)
from .models.pipeline_config import PipelineConfig, create_default_pipeline_config
from .exceptions import (
    CallEngineError,
    NoCallsFoundError,
    NoValidSalesCallsError,
    ScoringFailedError,
)
from .llm_client import LLMClient
from .stages.stage1_parser import SpreadsheetParserStage
from .stages.stage2_triage import TriageStage
from .stages.stage3_extraction import ExtractionStage, validate_extraction
from .stages.stage4_scoring import PerformanceScoringStage
from .stages.stage5_summary import (
    build_extraction_stats,
    build_overall_stats,
    build_rep_summaries,
    silver_to_call_record,
)

logger = logging.getLogger(__name__)

Emit = Callable[[PipelineEvent], None]
ProgressCallback = Callable[[int, int, SilverCall], None]


def filter_short_calls(
    calls: Sequence[BronzeCall], min_duration: int
) -> Tuple[List[BronzeCall], int]:
    """Drop hang-ups shorter than ``min_duration`` seconds"""
    kept = [c for c in calls if c.duration_seconds >= min_duration]
    return kept, len(calls) - len(kept)


def _batches(items: Sequence, size: int):
    for i in range(0, len(items), size):
        yield items[i:i + size]


class CallAnalysisEngine:
    """
    Main Call Scoring Engine that orchestrates all five stages.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        provider: str = "claude",
        config: Optional[PipelineConfig] = None,
        extraction_llm=None,
        analysis_llm=None,
    ):
        """
        Initialize the engine for one run.

        Args:
            api_key: Provider credential, passed through to the LLM clients
            provider: "claude", "openai" or "openrouter"
            config: Pipeline configuration (uses defaults if not provided)
            extraction_llm: Client for triage and extraction (built from
                ``provider`` and ``api_key`` when omitted)
            analysis_llm: Client for scoring (same default)
        """
        self.provider = provider
        self.config = config or create_default_pipeline_config()

        self.extraction_llm = extraction_llm or LLMClient(provider, api_key, tier="extraction")
        self.analysis_llm = analysis_llm or LLMClient(provider, api_key, tier="analysis")

        # Initialize stages
        self.stage1 = SpreadsheetParserStage()
        self.stage2 = TriageStage(self.extraction_llm, self.config.triage)
        self.stage3 = ExtractionStage(self.extraction_llm, self.config.extraction)
        self.stage4 = PerformanceScoringStage(
            self.analysis_llm, self.config.scoring, self.config.weights
        )

        # Track statistics
        self.stats = self._empty_stats()

    # =========================================================================
    # Bronze
    # =========================================================================

    def parse(self, data: bytes) -> Tuple[List[BronzeCall], int]:
        """
        Parse a spreadsheet and apply the short-call policy.

        Returns:
            (calls long enough to analyze, number of short calls skipped)
        """
        calls = self.stage1.process(data)
        kept, skipped = filter_short_calls(calls, self.config.min_call_duration)
        self.stats["bronze_parsed"] += len(calls)
        self.stats["short_calls_skipped"] += skipped
        if skipped:
            logger.info(f"Skipped {skipped} calls under {self.config.min_call_duration}s")
        return kept, skipped

    # =========================================================================
    # Silver
    # =========================================================================

    def process_bronze_call(self, bronze: BronzeCall) -> SilverCall:
        """Triage, then extract and validate one call"""
        triage = self.stage2.process(bronze.transcript)

        extraction = Extraction()
        if triage.should_analyze:
            extraction = self.stage3.process(bronze.transcript)

        return self._assemble_silver(bronze, triage, extraction)

    def extract_batch(
        self,
        bronze_calls: Sequence[BronzeCall],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[SilverCall]:
        """
        Run the Silver stage over many calls.

        Args:
            bronze_calls: Calls to triage and extract
            on_progress: Called as ``(processed, total, silver)`` after each
                call, from this thread, in completion order

        Returns:
            SilverCall list in input order
        """
        start_time = time.time()
        total = len(bronze_calls)
        results: List[Optional[SilverCall]] = [None] * total
        processed = 0

        for offset, batch in zip(
            range(0, total, self.config.batch_size),
            _batches(bronze_calls, self.config.batch_size),
        ):
            with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                futures = {
                    executor.submit(self.process_bronze_call, bronze): offset + i
                    for i, bronze in enumerate(batch)
                }
                for future in as_completed(futures):
                    index = futures[future]
                    try:
                        silver = future.result()
                    except Exception as e:
                        logger.error(f"Silver processing failed for {bronze_calls[index].id}: {e}")
                        silver = self._create_fallback_silver(bronze_calls[index], e)

                    results[index] = silver
                    processed += 1
                    if on_progress:
                        on_progress(processed, total, silver)

        silver_calls = [s for s in results if s is not None]
        self.stats["silver_processed"] += len(silver_calls)
        self.stats["silver_valid_sales"] += sum(1 for s in silver_calls if s.triage.should_analyze)
        self.stats["total_processing_time_ms"] += (time.time() - start_time) * 1000
        logger.info(f"Silver stage complete: {len(silver_calls)} calls")
        return silver_calls

    # =========================================================================
    # Gold
    # =========================================================================

    def score_call(self, silver: SilverCall) -> AnalyzedCall:
        """Score one Silver call and attach its display record"""
        score = self.stage4.process(silver)
        return AnalyzedCall(
            record=silver_to_call_record(silver),
            score=score,
            ai_model=getattr(self.analysis_llm, "model", self.provider),
        )

    def score_batch(
        self,
        silver_calls: Sequence[SilverCall],
        on_event: Optional[Emit] = None,
    ) -> List[AnalyzedCall]:
        """
        Run the Gold stage over the analyzable Silver calls.

        Each batch settles completely before the next starts. Successes and
        failures are reported through ``on_event`` as they complete.

        Returns:
            Successfully scored calls; failures are excluded

        Raises:
            ScoringFailedError: there was work to do and every call failed
        """
        start_time = time.time()
        to_score = [s for s in silver_calls if s.triage.should_analyze]
        total = len(to_score)
        analyzed: List[AnalyzedCall] = []
        processed = 0
        failed = 0

        for batch in _batches(to_score, self.config.batch_size):
            with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                futures = {
                    executor.submit(self.score_call, silver): silver
                    for silver in batch
                }
                for future in as_completed(futures):
                    silver = futures[future]
                    processed += 1
                    try:
                        call = future.result()
                    except Exception as e:
                        failed += 1
                        logger.error(f"Error analyzing call {silver.bronze.id}: {e}")
                        if on_event:
                            on_event(CallErrorEvent(
                                error=str(e) or type(e).__name__,
                                call_id=silver.bronze.id,
                                processed=processed,
                                total=total,
                            ))
                        continue

                    analyzed.append(call)
                    if on_event:
                        on_event(CallCompleteEvent(call=call, processed=processed, total=total))

        self.stats["gold_scored"] += len(analyzed)
        self.stats["gold_failed"] += failed
        self.stats["total_processing_time_ms"] += (time.time() - start_time) * 1000

        if total and not analyzed:
            raise ScoringFailedError(
                "Failed to analyze any calls. Please check your API key.",
                failed=failed,
            )
        return analyzed

    # =========================================================================
    # Full runs
    # =========================================================================

    def analyze(self, data: bytes, emit: Emit) -> AnalysisResult:
        """
        Full Bronze -> Gold run, emitting progress events along the way.

        Raises:
            CallEngineError subclasses for terminal pipeline conditions
        """
        emit(StatusEvent(phase="bronze", message="Parsing spreadsheet..."))
        bronze_calls, skipped = self.parse(data)
        if not bronze_calls:
            raise NoCallsFoundError(
                "No calls found in file (or all calls were under "
                f"{self.config.min_call_duration} seconds)"
            )
        emit(BronzeCompleteEvent(count=len(bronze_calls), skipped_short_calls=skipped))

        emit(StatusEvent(
            phase="silver",
            message=f"Extracting contact info from {len(bronze_calls)} calls...",
        ))
        silver_calls = self.extract_batch(bronze_calls, self._progress_emitter(emit))

        valid_sales = [s for s in silver_calls if s.triage.should_analyze]
        emit(SilverCompleteEvent(
            total_calls=len(silver_calls),
            valid_sales=len(valid_sales),
            skipped=len(silver_calls) - len(valid_sales),
            unique_reps=list(dict.fromkeys(s.rep.name for s in silver_calls if s.rep.name)),
        ))
        if not valid_sales:
            raise NoValidSalesCallsError("No valid sales calls found to analyze")

        emit(StatusEvent(
            phase="gold",
            message=f"Analyzing {len(valid_sales)} sales calls with {self.provider}...",
        ))
        emit(StartEvent(total_calls=len(valid_sales)))
        analyzed = self.score_batch(valid_sales, emit)

        failed = len(valid_sales) - len(analyzed)
        summaries = build_rep_summaries(analyzed, self.config.summary)
        result = AnalysisResult(
            calls=analyzed,
            rep_summaries=summaries,
            overall_stats=build_overall_stats(
                analyzed, summaries, silver_calls, failed, self.config.summary
            ),
        )
        emit(CompleteEvent(result=result, partial=failed > 0))
        return result

    def extract(self, data: bytes, emit: Emit) -> ExtractionResult:
        """Bronze -> Silver only, for reviewing extraction quality"""
        emit(StatusEvent(phase="bronze", message="Parsing spreadsheet..."))
        bronze_calls, skipped = self.parse(data)
        if not bronze_calls:
            raise NoCallsFoundError("No calls found in file")
        emit(BronzeCompleteEvent(count=len(bronze_calls), skipped_short_calls=skipped))

        emit(StatusEvent(phase="silver", message="Extracting contact information..."))
        silver_calls = self.extract_batch(bronze_calls, self._progress_emitter(emit))

        stats = build_extraction_stats(silver_calls)
        emit(ExtractCompleteEvent(
            stats=stats,
            message=(
                f"Extraction complete: {stats.valid_sales} valid sales calls, "
                f"{len(stats.unique_reps)} reps identified"
            ),
        ))

        result = ExtractionResult(calls=silver_calls, stats=stats)
        emit(ExtractionCompleteEvent(result=result))
        return result

    def run_analysis(self, data: bytes, emit: Emit) -> Optional[AnalysisResult]:
        """``analyze`` that reports every failure as one final error event"""
        return self._run(self.analyze, data, emit, "Failed to analyze calls")

    def run_extraction(self, data: bytes, emit: Emit) -> Optional[ExtractionResult]:
        """``extract`` that reports every failure as one final error event"""
        return self._run(self.extract, data, emit, "Extraction failed")

    def get_stats(self) -> Dict[str, Any]:
        """Get engine statistics"""
        stats = self.stats.copy()
        if stats["silver_processed"] > 0:
            stats["valid_sales_rate"] = round(
                stats["silver_valid_sales"] / stats["silver_processed"] * 100, 1
            )
        attempted = stats["gold_scored"] + stats["gold_failed"]
        if attempted > 0:
            stats["scoring_failure_rate"] = round(stats["gold_failed"] / attempted * 100, 1)
        stats["total_processing_time_ms"] = round(stats["total_processing_time_ms"], 2)
        return stats

    def reset_stats(self):
        """Reset engine statistics"""
        self.stats = self._empty_stats()

    # =========================================================================
    # Helper Methods
    # =========================================================================

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            "bronze_parsed": 0,
            "short_calls_skipped": 0,
            "silver_processed": 0,
            "silver_valid_sales": 0,
            "gold_scored": 0,
            "gold_failed": 0,
            "total_processing_time_ms": 0,
        }

    def _run(self, pipeline, data: bytes, emit: Emit, failure_message: str):
        try:
            return pipeline(data, emit)
        except CallEngineError as e:
            logger.warning(f"Pipeline stopped ({e.code}): {e.message}")
            emit(ErrorEvent(message=e.message, code=e.code, details=e.details))
        except Exception as e:
            logger.exception("Unexpected pipeline failure")
            emit(ErrorEvent(message=failure_message, code="internal_error", details=str(e)[:500]))
        return None

    def _progress_emitter(self, emit: Emit) -> ProgressCallback:
        def on_progress(processed: int, total: int, silver: SilverCall):
            emit(ExtractProgressEvent(
                processed=processed,
                total=total,
                call=ExtractedCallSummary(
                    id=silver.bronze.id,
                    classification=silver.triage.classification,
                    rep_name=silver.rep.name,
                    caller_name=silver.caller.name,
                    need_summary=silver.call_context.need_summary,
                    confidence=silver.validation.confidence,
                ),
            ))
        return on_progress

    def _assemble_silver(
        self, bronze: BronzeCall, triage: TriageResult, extraction: Extraction
    ) -> SilverCall:
        validated, validation = validate_extraction(
            extraction,
            bronze.transcript,
            known_reps=self.config.known_reps,
            invalid_rep_names=self.config.invalid_rep_names,
            settings=self.config.extraction,
        )
        return SilverCall(
            bronze=bronze,
            triage=triage,
            rep=validated.rep,
            caller=validated.caller,
            call_context=validated.call_context,
            validation=validation,
            extraction_model=getattr(self.extraction_llm, "model", self.provider),
        )

    def _create_fallback_silver(self, bronze: BronzeCall, error: Exception) -> SilverCall:
        """Default Silver record for a call whose chain raised unexpectedly"""
        triage = TriageResult(
            classification=CallClassification.VALID_SALES,
            confidence=0.5,
            reason=f"Triage failed, defaulting to analysis ({str(error)[:80]})",
        )
        return self._assemble_silver(bronze, triage, Extraction())


# =============================================================================
# Convenience Functions
# =============================================================================

def create_engine(
    api_key: str,
    provider: str = "claude",
    known_reps: Optional[List[str]] = None,
    batch_size: Optional[int] = None,
) -> CallAnalysisEngine:
    """
    Factory function to create an engine for one request.

    Args:
        api_key: Provider credential
        provider: "claude", "openai" or "openrouter"
        known_reps: Override the rep allowlist
        batch_size: Override the AI fan-out per batch

    Returns:
        Configured CallAnalysisEngine instance
    """
    config = create_default_pipeline_config(known_reps=known_reps, batch_size=batch_size)
    return CallAnalysisEngine(api_key=api_key, provider=provider, config=config)
