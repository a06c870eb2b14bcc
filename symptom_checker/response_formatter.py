"""
Response Formatter Module
=========================
Turns the free-text answer of the LLM into a structured AnalysisRecord
with four sections: possible conditions, common symptoms, remedies and
precautions.

The parser is heuristic. It looks for section headers line by line and
collects bulleted or numbered items under the most recent header. It
never raises: unusable input produces a degraded default record whose
``error`` field says why.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from symptom_checker.models import (
    STATUS_DEGRADED,
    AnalysisRecord,
    Conditions,
    NamedItem,
)

logger = logging.getLogger(__name__)

SECTION_POSSIBLE_CONDITIONS = "possible_conditions"
SECTION_COMMON_SYMPTOMS = "common_symptoms"
SECTION_REMEDIES = "remedies"
SECTION_PRECAUTIONS = "precautions"

# Optional markdown heading / bold prefix in front of a header keyword.
_HEADER_PREFIX = r"^[#\s]*(?:\*\*?(?!\s))?\s*"

# Up to three qualifier words, e.g. "Differential Diagnosis" or
# "Over-the-counter Medications".
_QUALIFIER = r"(?:[\w'-]+\s+){1,3}"

SECTION_KEYWORDS: list[tuple[str, str]] = [
    (SECTION_POSSIBLE_CONDITIONS, r"(?:possible\s+conditions?|diagnosis|diseases?)"),
    (SECTION_COMMON_SYMPTOMS, r"(?:common\s+)?(?:symptoms?|signs)"),
    (SECTION_REMEDIES, r"(?:remedies|remedy|treatments?|medications?)"),
    (SECTION_PRECAUTIONS, r"(?:precautions?|warnings?|prevention|when\s+to\s+see)"),
]

# Checked in order; the first header pattern that matches wins.
SECTION_HEADERS: list[tuple[str, re.Pattern]] = [
    (section, re.compile(_HEADER_PREFIX + keywords, re.I))
    for section, keywords in SECTION_KEYWORDS
]

# Only tried on header-shaped lines that are not bullets or sentences.
QUALIFIED_HEADERS: list[tuple[str, re.Pattern]] = [
    (section, re.compile(_HEADER_PREFIX + _QUALIFIER + keywords + r"\b[^.!?]*$", re.I))
    for section, keywords in SECTION_KEYWORDS
]

HEADER_SHAPE_PATTERN = re.compile(r"^#|:\**\s*$|^\*\*[^*]+\*\*\s*$")
BULLET_PATTERN = re.compile(r"^\s*(?:[-•]|\*(?=\s)|\d+\.)")

LIST_ITEM_PATTERN = re.compile(r"^\s*(?:[-•*]|\d+\.)\s*(.+)")
BOLD_PATTERN = re.compile(r"\*\*(.*?)\*\*")
PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")

INVALID_RESPONSE_ERROR = "Invalid AI response received"
INVALID_RESPONSE_SUMMARY = "Unable to process the medical information."
PARSE_FAILURE_ERROR = "Failed to parse AI response"
PARSE_FAILURE_SUMMARY = "There was an error processing the medical information."


def default_record(error: str, summary: str) -> AnalysisRecord:
    """Empty record tagged as degraded."""
    return AnalysisRecord(summary=summary, status=STATUS_DEGRADED, error=error)


def strip_bold(text: str) -> str:
    """Replace the first ``**x**`` with ``x``."""
    return BOLD_PATTERN.sub(r"\1", text, count=1)


def _detect_section(line: str) -> Optional[str]:
    for section, pattern in SECTION_HEADERS:
        if pattern.match(line):
            return section

    if BULLET_PATTERN.match(line) or not HEADER_SHAPE_PATTERN.search(line):
        return None
    for section, pattern in QUALIFIED_HEADERS:
        if pattern.match(line):
            return section
    return None


def _parse_list_item(line: str) -> Optional[NamedItem]:
    match = LIST_ITEM_PATTERN.match(line)
    if not match:
        return None

    name_part, _, desc_part = match.group(1).partition(":")
    # A line such as "**Migraine**: ..." loses its first asterisk to the
    # bullet pattern, so stray markers are trimmed after the substitution.
    name = strip_bold(name_part.strip()).strip("* ").strip()
    if not name:
        return None
    return NamedItem(name=name, description=desc_part.strip())


def _append(record: AnalysisRecord, section: str, item: NamedItem) -> None:
    if section in (SECTION_POSSIBLE_CONDITIONS, SECTION_COMMON_SYMPTOMS):
        getattr(record.conditions, section).append(item)
    else:
        getattr(record, section).append(item)


def format_response(raw_text: Any) -> AnalysisRecord:
    """Parse one LLM answer into an AnalysisRecord.

    Args:
        raw_text: The raw assistant message. Anything that is not a
            non-blank string yields the degraded default record.

    Returns:
        The parsed record. Never raises.
    """
    if not isinstance(raw_text, str) or not raw_text.strip():
        logger.warning("Invalid AI response received (%s).", type(raw_text).__name__)
        return default_record(INVALID_RESPONSE_ERROR, INVALID_RESPONSE_SUMMARY)

    try:
        text = raw_text.replace("\r\n", "\n")
        record = AnalysisRecord()

        paragraphs = [p.strip() for p in PARAGRAPH_SPLIT.split(text) if p.strip()]
        if paragraphs:
            record.summary = strip_bold(paragraphs[0])
            record.description = paragraphs[1] if len(paragraphs) > 1 else ""

        current_section: Optional[str] = None
        for line in text.split("\n"):
            line = line.strip()
            if not line:
                continue

            section = _detect_section(line)
            if section:
                current_section = section
                continue

            if current_section is None:
                continue

            item = _parse_list_item(line)
            if item is not None:
                _append(record, current_section, item)

        logger.info(
            "Formatted response: %d conditions, %d symptoms, %d remedies, %d precautions.",
            len(record.conditions.possible_conditions),
            len(record.conditions.common_symptoms),
            len(record.remedies),
            len(record.precautions),
        )
        return record

    except Exception as exc:
        logger.error("Error in format_response: %s", exc)
        return default_record(PARSE_FAILURE_ERROR, PARSE_FAILURE_SUMMARY)


# ---------------------------------------------------------------------------
# Structured input supplied directly by the client
# ---------------------------------------------------------------------------

def _to_items(values: Any) -> list[NamedItem]:
    """Accept strings or ``{name, description}`` dicts; drop nameless entries."""
    items: list[NamedItem] = []
    if not isinstance(values, list):
        return items
    for value in values:
        if isinstance(value, str):
            name, description = value.strip(), ""
        elif isinstance(value, dict):
            name = str(value.get("name") or "").strip()
            description = str(value.get("description") or "").strip()
        else:
            continue
        if name:
            items.append(NamedItem(name=name, description=description))
    return items


def build_record_from_structured(payload: dict) -> AnalysisRecord:
    """Build a record from structured data, skipping the LLM.

    Args:
        payload: Request body with a ``conditions`` object and/or a
            top-level ``possible_conditions`` array. Optional ``summary``,
            ``description``, ``remedies`` and ``precautions`` keys are
            carried over as well.
    """
    conditions = payload.get("conditions") or {}
    if not isinstance(conditions, dict):
        conditions = {}

    possible = _to_items(conditions.get("possible_conditions"))
    possible += _to_items(payload.get("possible_conditions"))

    return AnalysisRecord(
        summary=str(payload.get("summary") or ""),
        description=str(payload.get("description") or ""),
        conditions=Conditions(
            common_symptoms=_to_items(conditions.get("common_symptoms")),
            possible_conditions=possible,
        ),
        remedies=_to_items(payload.get("remedies")),
        precautions=_to_items(payload.get("precautions")),
    )
