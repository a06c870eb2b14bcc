"""
Drug Categorizer Module
=======================
Files each matched drug under the condition that justified including it.
"""

from __future__ import annotations

import logging
from typing import Iterable

from symptom_checker.models import DrugRecord

logger = logging.getLogger(__name__)

GENERAL_TREATMENTS = "General Treatments"


def dedupe_drugs(drugs: Iterable[DrugRecord]) -> list[DrugRecord]:
    """Drop repeated drug names (case-sensitive), keeping the first one."""
    seen: set[str] = set()
    unique: list[DrugRecord] = []
    for drug in drugs:
        if drug.name in seen:
            continue
        seen.add(drug.name)
        unique.append(drug)
    return unique


def categorize(
    drugs: list[DrugRecord],
    conditions: Iterable[str],
) -> dict[str, list[DrugRecord]]:
    """Partition drugs by condition.

    A drug goes to the first condition (in the order given) whose name
    appears in its usage text, case-insensitively. Drugs that match no
    condition go to "General Treatments". Empty buckets are dropped.
    """
    buckets: dict[str, list[DrugRecord]] = {}
    for name in conditions:
        if name and name not in buckets:
            buckets[name] = []
    buckets.setdefault(GENERAL_TREATMENTS, [])

    condition_names = [name for name in buckets if name != GENERAL_TREATMENTS]
    lowered = [name.lower() for name in condition_names]

    for drug in drugs:
        usage = (drug.usage or "").lower()
        target = next(
            (name for name, low in zip(condition_names, lowered) if low in usage),
            GENERAL_TREATMENTS,
        )
        buckets[target].append(drug)

    categorized = {name: items for name, items in buckets.items() if items}
    logger.info(
        "Categorized %d drugs into %d categories.", len(drugs), len(categorized)
    )
    return categorized
