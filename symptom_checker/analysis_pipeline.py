"""
Analysis Pipeline Module
========================
End-to-end symptom analysis:

  symptoms ──► SymptomAnalyzer (LLM) ──► format_response ──► condition names
           ──► DrugResolver (cache → OpenFDA → fallback table, per condition)
           ──► dedupe_drugs ──► categorize ──► AlternativeMatcher
           ──► enriched payload

Structured input supplied by the client skips the LLM step.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv

from symptom_checker.alternative_matcher import AlternativeMatcher
from symptom_checker.drug_cache import DrugCache
from symptom_checker.drug_categorizer import categorize, dedupe_drugs
from symptom_checker.drug_resolver import DrugResolver
from symptom_checker.medicine_catalog import MedicineCatalog
from symptom_checker.models import AnalysisRecord, DrugAlternatives, DrugRecord
from symptom_checker.response_formatter import build_record_from_structured, format_response
from symptom_checker.symptom_analyzer import SymptomAnalyzer

load_dotenv()
logger = logging.getLogger(__name__)


def alternatives_stats(
    drugs: list[DrugRecord],
    alternatives: dict[str, DrugAlternatives],
) -> dict:
    """Coverage figures shown next to the alternatives list."""
    with_alternatives = len(alternatives)
    total = sum(len(a.indian_alternatives) for a in alternatives.values())
    coverage = round(with_alternatives / len(drugs) * 100) if drugs else 0
    return {
        "drugsWithAlternatives": with_alternatives,
        "totalAlternatives": total,
        "coverage": coverage,
    }


def has_structured_data(payload: dict) -> bool:
    conditions = payload.get("conditions")
    possible = payload.get("possible_conditions")
    return bool(
        (isinstance(conditions, dict) and conditions)
        or (isinstance(possible, list) and possible)
    )


class SymptomPipeline:
    """Runs one analysis request from symptoms to enriched payload.

    Attributes:
        analyzer: LLM client.
        resolver: Condition -> drug resolver (owns the shared DrugCache).
        matcher: Indian alternative matcher.
    """

    def __init__(
        self,
        analyzer: Optional[SymptomAnalyzer] = None,
        resolver: Optional[DrugResolver] = None,
        matcher: Optional[AlternativeMatcher] = None,
    ) -> None:
        workers = int(os.getenv("PIPELINE_MAX_WORKERS", "1") or 1)
        self.analyzer = analyzer or SymptomAnalyzer()
        self.resolver = resolver or DrugResolver(cache=DrugCache.from_env(), max_workers=workers)
        self.matcher = matcher or AlternativeMatcher(MedicineCatalog(), max_workers=workers)

    def build_record(self, symptoms: Optional[str], payload: dict) -> AnalysisRecord:
        if has_structured_data(payload):
            logger.info("Structured data supplied, skipping LLM analysis.")
            return build_record_from_structured(payload)

        reply = self.analyzer.analyze(symptoms or "")
        record = format_response(reply.text)
        record.offline = reply.offline
        return record

    def analyze(self, symptoms: Optional[str] = None, payload: Optional[dict] = None) -> dict:
        """Analyze symptoms (or structured data) and enrich with drugs.

        Args:
            symptoms: Free-text symptom description.
            payload: The full request body; structured ``conditions`` /
                ``possible_conditions`` in it bypass the LLM.

        Returns:
            The record as a dict plus matchedDrugs, drugsByCondition,
            indianAlternatives and alternativesStats.
        """
        payload = payload or {}
        record = self.build_record(symptoms, payload)
        conditions = record.condition_names()
        logger.info("Resolving drugs for %d condition(s): %s", len(conditions), conditions)

        drugs = dedupe_drugs(self.resolver.resolve_many(conditions))
        by_condition = categorize(drugs, conditions)
        alternatives = self.matcher.find_alternatives(drugs)
        stats = alternatives_stats(drugs, alternatives)

        logger.info(
            "Analysis complete: %d drugs, %d with alternatives (%d%% coverage).",
            len(drugs),
            stats["drugsWithAlternatives"],
            stats["coverage"],
        )

        result = record.model_dump(mode="json", exclude_none=True)
        result["matchedDrugs"] = [d.model_dump(mode="json") for d in drugs]
        result["drugsByCondition"] = {
            name: [d.model_dump(mode="json") for d in items]
            for name, items in by_condition.items()
        }
        result["indianAlternatives"] = {
            name: alt.model_dump(mode="json") for name, alt in alternatives.items()
        }
        result["alternativesStats"] = stats
        return result
