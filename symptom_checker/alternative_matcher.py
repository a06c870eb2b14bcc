"""
Alternative Matcher Module
==========================
Matches drugs found on OpenFDA against the local catalog of Indian
generic medicines.

A generic name such as "Ibuprofen 200 mg and Famotidine 26.6 mg Tablet"
is reduced to its salient components ({"ibuprofen", "famotidine"}) and
the catalog is searched for products containing ANY of them. Short
tokens (3 characters or fewer) are dropped so that unit fragments and
stems do not match half the catalog.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from symptom_checker.medicine_catalog import MedicineCatalog
from symptom_checker.models import UNKNOWN, DrugAlternatives, DrugRecord, IndianAlternative

logger = logging.getLogger(__name__)

RECONCILE_LIMIT = 5
SEARCH_LIMIT = 10
MIN_COMPONENT_LENGTH = 4

_STRENGTH_PATTERN = re.compile(r"\d+\s*(?:mg|ml|mcg)|\d+%", re.I)
_FORM_PATTERN = re.compile(
    r"\b(?:tablet|capsule|injection|solution|suspension|syrup)s?\b", re.I
)
_CONNECTOR_PATTERN = re.compile(r"\b(?:and|with|plus)\b|[+,()]", re.I)


def extract_components(generic_name: Optional[str]) -> set[str]:
    """Reduce a generic name to the lower-cased tokens worth searching for.

    >>> extract_components("Paracetamol 500mg Tablet")
    {'paracetamol'}
    """
    if not generic_name or generic_name.strip() == UNKNOWN:
        return set()

    sanitized = _STRENGTH_PATTERN.sub(" ", generic_name)
    sanitized = _FORM_PATTERN.sub(" ", sanitized)
    sanitized = _CONNECTOR_PATTERN.sub(" ", sanitized)

    return {
        token
        for token in sanitized.lower().split()
        if len(token) >= MIN_COMPONENT_LENGTH
    }


class AlternativeMatcher:
    """Finds Indian generic alternatives in the MedicineCatalog.

    Attributes:
        catalog: The catalog to query.
        max_workers: Threads used for per-drug lookups (1 = sequential).
    """

    def __init__(self, catalog: MedicineCatalog, max_workers: int = 1) -> None:
        self.catalog = catalog
        self.max_workers = max(1, max_workers)

    def find_alternatives(
        self,
        drugs: list[DrugRecord],
        limit: int = RECONCILE_LIMIT,
    ) -> dict[str, DrugAlternatives]:
        """Map each drug name to its catalog alternatives.

        Drugs with an unknown generic, with no extractable components, or
        with no catalog match are left out of the result.
        """
        if not self.catalog.is_available():
            logger.error("Medicine catalog not available when searching for Indian alternatives.")
            return {}

        unique: dict[str, DrugRecord] = {}
        for drug in drugs:
            unique.setdefault(drug.name, drug)
        candidates = list(unique.values())
        logger.info("Searching for Indian alternatives for %d drugs.", len(candidates))

        if self.max_workers > 1 and len(candidates) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                found = list(pool.map(lambda d: self._alternatives_for(d, limit), candidates))
        else:
            found = [self._alternatives_for(d, limit) for d in candidates]

        results: dict[str, DrugAlternatives] = {}
        for drug, alternatives in zip(candidates, found):
            if alternatives:
                results[drug.name] = DrugAlternatives(
                    original_generic=drug.generic,
                    original_manufacturer=drug.manufacturer,
                    indian_alternatives=alternatives,
                )
        return results

    def _alternatives_for(self, drug: DrugRecord, limit: int) -> list[IndianAlternative]:
        generic = (drug.generic or "").strip()
        if not generic or generic == UNKNOWN:
            return []

        components = extract_components(generic)
        if not components:
            logger.info("No components extracted from: %s", generic)
            return []

        try:
            alternatives = self.catalog.find_by_any_component(sorted(components), limit)
        except sqlite3.Error as exc:
            logger.error("Catalog query failed for %s: %s", generic, exc)
            return []

        logger.info("Found %d alternatives for %s", len(alternatives), generic)
        return alternatives

    def search_by_generic(
        self,
        generic_name: str,
        limit: int = SEARCH_LIMIT,
    ) -> list[IndianAlternative]:
        """Ad-hoc catalog search for one generic name.

        Uses component matching when components can be extracted, and a
        plain substring match on the raw input otherwise.
        """
        if not self.catalog.is_available():
            logger.error("Medicine catalog not available when searching for %s.", generic_name)
            return []

        try:
            components = extract_components(generic_name)
            if components:
                return self.catalog.find_by_any_component(sorted(components), limit)
            return self.catalog.find_by_substring(generic_name, limit)
        except sqlite3.Error as exc:
            logger.error("Error searching Indian medicines for %s: %s", generic_name, exc)
            return []
