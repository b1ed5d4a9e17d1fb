"""
Stage 3: Contact Extraction + Validation
========================================
Pulls rep, caller and call-context fields out of a transcript with one AI
call, then checks the result with deterministic rules.

Extraction never raises: a failed AI call yields an empty extraction.
Validation is pure and assigns a confidence score with fixed penalties.
"""

import logging
import re
from typing import AbstractSet, Any, Optional, Tuple

from ..models.schemas import (
    Extraction,
    ExtractedRep,
    ExtractedCaller,
    ExtractedCallContext,
    ExtractionValidation,
    CallDirection,
    Urgency,
    coerce_bool,
    coerce_choice,
    coerce_str_list,
    clamp,
)
from ..models.pipeline_config import ExtractionSettings
from ..config.settings import INVALID_REP_NAMES, KNOWN_REPS, VALIDATION_PENALTIES
from ..llm_client import parse_json_response

logger = logging.getLogger(__name__)

ELISION_MARKER = "\n\n[...middle of conversation...]\n\n"
LOCATION_PATTERN = re.compile(r"^[A-Za-z\s]+,\s*[A-Z]{2}$")
VALID_PHONE_DIGITS = (10, 11)

EXTRACTION_PROMPT = """Extract contact information from this sales call transcript for a trucking/trailer company.

TRANSCRIPT:
{transcript}

INSTRUCTIONS:
1. REP NAME: Look for patterns like "Nationwide, [name]", "This is [name] with Nationwide", "My name is [name]"
   - The company is "Nationwide Haul" or "Nationwide Hall" (speech-to-text variations)
   - Extract ONLY the first name of the sales rep

2. CALLER INFO: Extract if mentioned during the call
   - Name: Full name if given
   - Company: Business name if mentioned
   - Location: City, State
   - Phone: If caller provides their callback number
   - Role: Their job title or role (owner, manager, driver, etc.)

3. CALL CONTEXT:
   - Type: inbound (customer called in), outbound (rep called out), follow-up
   - Need: What are they looking for? (5-15 word summary)
   - Products: What specific products? (dump trailer, reefer, flatbed, etc.)
   - Urgency: How soon do they need it?

Return ONLY valid JSON:
{{
  "rep": {{
    "name": "First name or null",
    "introducedProperly": true/false,
    "introPattern": "Exact intro phrase or null"
  }},
  "caller": {{
    "name": "Full name or null",
    "company": "Company name or null",
    "location": "City, State or null",
    "phone": "Phone number or null",
    "role": "Role/title or null"
  }},
  "callContext": {{
    "type": "inbound|outbound|follow-up|unknown",
    "needSummary": "Brief summary of what they want",
    "productInterest": ["product1", "product2"],
    "urgency": "immediate|near-term|exploring|unknown"
  }}
}}"""


def reduce_transcript(transcript: str, threshold: int, keep_chars: int) -> str:
    """Keep the opening and closing of long transcripts, eliding the middle"""
    if len(transcript) <= threshold:
        return transcript
    return f"{transcript[:keep_chars]}{ELISION_MARKER}{transcript[-keep_chars:]}"


def normalize_rep_name(name: Optional[str]) -> Optional[str]:
    """"bRIAN " -> "Brian"; blank -> None"""
    if not name or not str(name).strip():
        return None
    name = str(name).strip()
    return name[0].upper() + name[1:].lower()


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none", "unknown", "n/a"):
        return None
    return text


def _section(data: dict, key: str) -> dict:
    section = data.get(key)
    return section if isinstance(section, dict) else {}


class ExtractionStage:
    """
    Stage 3: Extract structured identity and context fields from a transcript.
    """

    def __init__(self, llm, settings: Optional[ExtractionSettings] = None):
        """
        Args:
            llm: Client exposing ``call(prompt, max_tokens) -> str``
            settings: Reduction thresholds and token budget
        """
        self.llm = llm
        self.settings = settings or ExtractionSettings()

    def process(self, transcript: Optional[str]) -> Extraction:
        """
        Extract rep, caller and call context.

        Returns:
            Extraction; all-default on any failure
        """
        payload = reduce_transcript(
            transcript or "",
            self.settings.reduce_threshold,
            self.settings.keep_chars,
        )
        prompt = EXTRACTION_PROMPT.format(transcript=payload)

        try:
            response = self.llm.call(prompt, self.settings.max_tokens)
            return self._parse_response(response)
        except Exception as e:
            logger.warning(f"Extraction failed, returning empty extraction: {e}")
            return Extraction()

    def _parse_response(self, response: str) -> Extraction:
        """Fill an Extraction from the untrusted JSON payload"""
        data = parse_json_response(response)
        rep = _section(data, "rep")
        caller = _section(data, "caller")
        context = _section(data, "callContext") or _section(data, "call_context")

        return Extraction(
            rep=ExtractedRep(
                name=normalize_rep_name(_optional_text(rep.get("name"))),
                introduced_properly=coerce_bool(rep.get("introducedProperly")),
                intro_pattern=_optional_text(rep.get("introPattern")),
            ),
            caller=ExtractedCaller(
                name=_optional_text(caller.get("name")),
                company=_optional_text(caller.get("company")),
                location=_optional_text(caller.get("location")),
                phone=_optional_text(caller.get("phone")),
                role=_optional_text(caller.get("role")),
            ),
            call_context=ExtractedCallContext(
                type=coerce_choice(
                    context.get("type"),
                    [d.value for d in CallDirection],
                    CallDirection.UNKNOWN.value,
                ),
                need_summary=_optional_text(context.get("needSummary")) or "",
                product_interest=coerce_str_list(context.get("productInterest")),
                urgency=coerce_choice(
                    context.get("urgency"),
                    [u.value for u in Urgency],
                    Urgency.UNKNOWN.value,
                ),
            ),
        )


# =============================================================================
# Validation
# =============================================================================

def validate_extraction(
    extraction: Extraction,
    transcript: Optional[str],
    known_reps: AbstractSet[str] = KNOWN_REPS,
    invalid_rep_names: AbstractSet[str] = INVALID_REP_NAMES,
    settings: Optional[ExtractionSettings] = None,
) -> Tuple[Extraction, ExtractionValidation]:
    """
    Check an extraction against fixed rules.

    Each rule appends an issue code and subtracts its penalty from a starting
    confidence of 1.0. An INVALID_REP_NAME clears the rep name in the
    returned extraction; the input is left untouched.

    Args:
        extraction: Output of ExtractionStage
        transcript: The transcript the extraction came from
        known_reps: Lowercase allowlist of rep first names
        invalid_rep_names: Lowercase stoplist of non-name tokens
        settings: Transcript length and review thresholds

    Returns:
        (validated extraction, validation result)
    """
    settings = settings or ExtractionSettings()
    transcript = transcript or ""
    issues = []
    rep = extraction.rep

    if not rep.name:
        issues.append("NO_REP_NAME")
    else:
        rep_name = rep.name.strip().lower()
        if rep_name in invalid_rep_names:
            issues.append("INVALID_REP_NAME")
            rep = rep.model_copy(update={"name": None})
        elif rep_name not in known_reps:
            # Possibly a real new hire, keep the name but flag it
            issues.append("UNKNOWN_REP_NAME")

    context = extraction.call_context
    if context.type == CallDirection.INBOUND and len(context.need_summary or "") < 5:
        issues.append("MISSING_NEED_SUMMARY")

    if len(transcript) < settings.short_transcript_chars:
        issues.append("SHORT_TRANSCRIPT")

    location = extraction.caller.location
    if location and not LOCATION_PATTERN.match(location.strip()):
        issues.append("LOCATION_FORMAT")

    phone = extraction.caller.phone
    if phone and len(re.sub(r"\D", "", phone)) not in VALID_PHONE_DIGITS:
        issues.append("INVALID_PHONE_FORMAT")

    confidence = 1.0 - sum(VALIDATION_PENALTIES[issue] for issue in issues)
    confidence = round(clamp(confidence, 0.0, 1.0), 2)

    validation = ExtractionValidation(
        is_valid=not issues,
        issues=issues,
        confidence=confidence,
        needs_review=(
            confidence < settings.review_confidence_threshold
            or "UNKNOWN_REP_NAME" in issues
        ),
    )

    validated = extraction.model_copy(update={"rep": rep}) if rep is not extraction.rep else extraction
    return validated, validation
