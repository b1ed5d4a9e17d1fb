"""
Exceptions raised by the Call Scoring Engine.

Each terminal condition of a pipeline run has its own type and a stable
``code`` so the transport can report it as a distinct error event.
"""

from typing import Optional


class CallEngineError(Exception):
    """Base class for pipeline errors carrying a human-readable message"""

    code = "internal_error"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class SpreadsheetParseError(CallEngineError):
    """The uploaded bytes could not be read as a spreadsheet or CSV"""

    code = "invalid_file"


class NoCallsFoundError(CallEngineError):
    """Nothing left to process after parsing and the duration filter"""

    code = "no_calls"


class NoValidSalesCallsError(CallEngineError):
    """Triage found no calls worth scoring"""

    code = "no_valid_sales"


class ScoringFailedError(CallEngineError):
    """Every call submitted for scoring failed"""

    code = "scoring_failed"

    def __init__(self, message: str, failed: int = 0, details: Optional[str] = None):
        super().__init__(message, details)
        self.failed = failed


class LLMResponseError(CallEngineError):
    """The provider returned an empty or non-JSON response"""

    code = "llm_response"
