"""
Data Models
===========
Typed records shared by the symptom analysis pipeline: the structured
analysis parsed from the LLM reply, the drug records resolved per
condition, and the Indian generic alternatives found in the catalog.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

STATUS_PARSED = "parsed"
STATUS_DEGRADED = "degraded"

UNKNOWN = "Unknown"


class NamedItem(BaseModel):
    """One bullet from an analysis section."""

    name: str = Field(..., min_length=1)
    description: str = ""


class Conditions(BaseModel):
    common_symptoms: list[NamedItem] = Field(default_factory=list)
    possible_conditions: list[NamedItem] = Field(default_factory=list)


class AnalysisRecord(BaseModel):
    """Structured analysis built from one LLM answer.

    ``status`` tells a clean parse apart from the degraded default that is
    returned when the text could not be processed; ``error`` carries the
    reason in the degraded case. ``offline`` marks a canned analysis used
    while the LLM was unavailable.
    """

    summary: str = ""
    description: str = ""
    conditions: Conditions = Field(default_factory=Conditions)
    remedies: list[NamedItem] = Field(default_factory=list)
    precautions: list[NamedItem] = Field(default_factory=list)
    status: str = STATUS_PARSED
    offline: bool = False
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.status == STATUS_DEGRADED

    def condition_names(self) -> list[str]:
        """Names used to look up drugs, possible conditions first."""
        items = self.conditions.possible_conditions or self.conditions.common_symptoms
        return [item.name for item in items]


class DrugSource(str, Enum):
    OPENFDA = "openfda"
    FALLBACK = "fallback"


class DrugRecord(BaseModel):
    name: str
    generic: str = UNKNOWN
    manufacturer: str = UNKNOWN
    usage: str = ""
    source: DrugSource = DrugSource.OPENFDA


class IndianAlternative(BaseModel):
    drug_code: Optional[int] = None
    generic_name: str
    unit_size: Optional[str] = None
    mrp: Optional[float] = Field(default=None, ge=0)


class DrugAlternatives(BaseModel):
    original_generic: str
    original_manufacturer: str
    indian_alternatives: list[IndianAlternative] = Field(default_factory=list)
