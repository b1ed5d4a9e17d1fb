"""
Configuration settings for the Call Scoring Engine
"""

import os

# =============================================================================
# LLM CONFIGURATION
# =============================================================================

LLM_CONFIG = {
    "provider": os.getenv("LLM_PROVIDER", "claude"),  # claude, openai, openrouter
    "base_url": os.getenv("LLM_BASE_URL", "https://openrouter.ai/api/v1"),
    "temperature": 0.2,
    "max_retries": int(os.getenv("LLM_MAX_RETRIES", "2")),
    # OpenRouter specific headers
    "site_url": os.getenv("OPENROUTER_SITE_URL", "http://localhost:8000"),
    "app_name": os.getenv("OPENROUTER_APP_NAME", "Call Scoring Engine"),
}

# Triage and extraction run on the cheap tier, scoring on the analysis tier.
MODEL_CATALOG = {
    "claude": {
        "extraction": os.getenv("CLAUDE_EXTRACTION_MODEL", "claude-3-5-haiku-20241022"),
        "analysis": os.getenv("CLAUDE_ANALYSIS_MODEL", "claude-opus-4-5-20251101"),
    },
    "openai": {
        "extraction": os.getenv("OPENAI_EXTRACTION_MODEL", "gpt-4.1-mini"),
        "analysis": os.getenv("OPENAI_ANALYSIS_MODEL", "gpt-4.1"),
    },
    "openrouter": {
        "extraction": os.getenv("OPENROUTER_EXTRACTION_MODEL", "openai/gpt-4.1-mini"),
        "analysis": os.getenv("OPENROUTER_ANALYSIS_MODEL", "openai/gpt-4.1"),
    },
}

# Upper bound for one streamed request, enforced by the transport
ANALYSIS_TIMEOUT_SECONDS = int(os.getenv("ANALYSIS_TIMEOUT_SECONDS", "300"))

# =============================================================================
# PIPELINE DEFAULTS
# =============================================================================

PIPELINE_DEFAULTS = {
    "batch_size": 10,
    "min_call_duration": 5,
    # Triage
    "min_transcript_chars": 50,
    "triage_transcript_chars": 2000,
    "triage_max_tokens": 200,
    # Extraction
    "extraction_reduce_threshold": 6000,
    "extraction_keep_chars": 2500,
    "extraction_max_tokens": 500,
    "short_transcript_chars": 200,
    "review_confidence_threshold": 0.7,
    # Scoring
    "scoring_reduce_threshold": 8000,
    "scoring_keep_chars": 3000,
    "scoring_max_tokens": 2000,
    # Summaries
    "qualified_lead_threshold": 7,
    "trend_min_calls": 4,
    "trend_threshold": 0.5,
}

# =============================================================================
# DEFAULT SCORING WEIGHTS
# =============================================================================

DEFAULT_SCORE_WEIGHTS = {
    "call_context": 0.05,
    "objective_clarity": 0.10,
    "information_gathering": 0.15,
    "information_quality": 0.10,
    "tone_professionalism": 0.10,
    "listening_ratio": 0.10,
    "conversation_guidance": 0.10,
    "objection_handling": 0.10,
    "next_steps": 0.10,
    "call_closing": 0.10,
}

# =============================================================================
# EXTRACTION VALIDATION PENALTIES
# =============================================================================

VALIDATION_PENALTIES = {
    "NO_REP_NAME": 0.2,
    "INVALID_REP_NAME": 0.3,
    "UNKNOWN_REP_NAME": 0.1,
    "MISSING_NEED_SUMMARY": 0.1,
    "SHORT_TRANSCRIPT": 0.2,
    "LOCATION_FORMAT": 0.05,
    "INVALID_PHONE_FORMAT": 0.05,
}

# =============================================================================
# TRIAGE PATTERNS
# =============================================================================

IVR_PATTERNS = [
    r"thank you for calling.*for a full list of inventory",
    r"please visit www\.",
    r"press \d for",
    r"leave a message after the",
]

CALLER_TURN_PATTERN = r"Caller:"

# =============================================================================
# REP NAME LISTS
# =============================================================================

# Tokens the extractor tends to mistake for a first name
INVALID_REP_NAMES = frozenset({
    "thank", "hello", "hi", "hey", "good", "morning", "afternoon", "evening",
    "nationwide", "hall", "haul", "truck", "trailer", "sales", "this", "the",
    "call", "calling", "can", "may", "for", "recorded", "quality", "insurance",
    "yes", "no", "sir", "maam", "okay", "ok", "well", "so", "um", "uh",
})

KNOWN_REPS = frozenset({
    # NH Sales
    "jake", "matt", "vanessa", "brian", "pablo",
    # Service & Repair
    "dustin", "rocco", "sean", "erika", "katrina",
    # Road Ready Insurance
    "nikita", "sladana", "jennine", "adam", "rossy", "herb", "luis",
    # Legacy
    "mark", "paul", "michelle", "audrey", "jessica", "tyler", "george",
    "joshua", "victor", "justin", "james", "larry", "jose", "hans", "cruz", "carolina",
})

# =============================================================================
# SPREADSHEET COLUMNS
# =============================================================================

PREFERRED_SHEET = "Calls"

COLUMN_MAP = {
    "raw_agent_name": "Agent Name",
    "raw_agent_number": "Agent Number",
    "call_status": "Call Status",
    "start_time": "Start Time",
    "duration_seconds": "Duration (seconds)",
    "tracking_number": "Tracking Number",
    "source": "Source",
    "transcript": "Full Transcription",
    "recording_url": "Recording Url",
    "sentiment": "Sentiment",
    "number_name": "Number Name",
    "medium": "Medium",
    "campaign": "Campaign",
    "note": "Note",
    "attribution": "Reported Attribution",
}
