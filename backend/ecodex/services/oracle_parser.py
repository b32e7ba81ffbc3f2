"""
EcoDex Backend - Oracle Response Parser
=========================================

What:  Turns the oracle's free-form reply into a validated SpeciesDescription.
Why:   Models wrap JSON in prose or markdown fences ("Here's what I found:
       ```json {...} ```"). The reply must be reduced to one JSON object
       before schema validation.
How:   Scan for balanced {...} spans (string-aware, so braces inside quoted
       values don't count), try json.loads on each in order, validate the
       first object with Pydantic.
Who:   DiscoveryPipeline, right after the oracle call.

Every failure raises MalformedOracleResponseError carrying the raw reply.
"""

import json
import logging
from typing import Iterator, Optional

from pydantic import ValidationError

from ecodex.exceptions import MalformedOracleResponseError
from ecodex.schemas.discovery import SpeciesDescription

logger = logging.getLogger(__name__)


def _span_end(text: str, start: int) -> Optional[int]:
    """Index of the brace closing the one at `start`, or None if it never closes."""
    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def _balanced_spans(text: str) -> Iterator[str]:
    """
    Yield each balanced {...} substring, ordered by where it opens.

    Braces inside JSON string literals are ignored, including escaped quotes.
    A `{` that never closes is skipped and the scan resumes at the next one,
    so a stray brace in leading prose does not hide the object after it.
    """
    for start, ch in enumerate(text):
        if ch != "{":
            continue
        end = _span_end(text, start)
        if end is not None:
            yield text[start:end + 1]


def extract_json_object(text: str) -> Optional[dict]:
    """
    Return the first balanced span that decodes to a JSON object.

    Returns None if the text has no {...} span at all.

    Raises:
        MalformedOracleResponseError: Spans exist but none is valid JSON.
    """
    found_span = False
    last_error = None
    for span in _balanced_spans(text):
        found_span = True
        try:
            value = json.loads(span)
        except json.JSONDecodeError as e:
            last_error = e
            continue
        if isinstance(value, dict):
            return value

    if not found_span:
        return None

    raise MalformedOracleResponseError(
        message="The species identification service returned invalid JSON",
        raw_response=text,
        context={"reason": str(last_error) if last_error else "no JSON object"},
    )


def parse_species_description(raw: str) -> SpeciesDescription:
    """
    Extract and validate the species description in an oracle reply.

    Raises:
        MalformedOracleResponseError: No JSON object, invalid JSON, or the
            object is missing required fields / has the wrong types.
    """
    raw = raw or ""
    data = extract_json_object(raw)
    if data is None:
        logger.warning("Oracle reply contained no JSON object (%d chars)", len(raw))
        raise MalformedOracleResponseError(
            message="The species identification service did not return a species description",
            raw_response=raw,
            context={"reason": "no JSON object"},
        )

    try:
        description = SpeciesDescription.model_validate(data)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        logger.warning("Oracle reply failed schema validation: %s", ", ".join(fields))
        raise MalformedOracleResponseError(
            message="The species identification service returned an incomplete species description",
            raw_response=raw,
            context={"reason": "schema validation failed", "fields": fields},
        ) from e

    logger.info(
        "Parsed species description: %s (%s, %s)",
        description.scientific_name,
        description.type,
        description.conservation_status or "no status",
    )
    return description
