# Pipeline stages module
from .stage1_parser import SpreadsheetParserStage
from .stage2_triage import TriageStage
from .stage3_extraction import ExtractionStage, validate_extraction
from .stage4_scoring import PerformanceScoringStage, calculate_overall_score
from .stage5_summary import build_rep_summaries, build_overall_stats, build_extraction_stats
