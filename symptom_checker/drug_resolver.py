"""
Drug Resolver Module
====================
Finds drugs for a condition using the OpenFDA drug label API.

Lookup order for one condition:
  1. DrugCache (normalized condition key)
  2. OpenFDA label search on ``indications_and_usage``
  3. Static fallback table of common over-the-counter drugs

OpenFDA answers 404 when a search has no matches, so every 4xx is treated
as an empty result and cached. Server errors and network failures are
logged and yield an empty list that is not cached.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional

import requests
from dotenv import load_dotenv

from symptom_checker.drug_cache import DrugCache
from symptom_checker.models import UNKNOWN, DrugRecord, DrugSource

load_dotenv()
logger = logging.getLogger(__name__)

OPENFDA_LABEL_URL = "https://api.fda.gov/drug/label.json"
OPENFDA_RESULT_LIMIT = 5
DEFAULT_TIMEOUT_SECONDS = 10
MAX_USAGE_CHARS = 300

# Last-resort condition when nothing at all could be resolved.
DEFAULT_CONDITION = "headache"

_TYLENOL = {
    "name": "Tylenol",
    "generic": "Acetaminophen",
    "manufacturer": "Johnson & Johnson",
    "usage": "Temporarily relieves minor aches and pains due to headache, "
             "muscular aches, backache, the common cold and toothache, and "
             "temporarily reduces fever.",
}
_ADVIL = {
    "name": "Advil",
    "generic": "Ibuprofen",
    "manufacturer": "Pfizer",
    "usage": "Temporarily relieves minor aches and pains due to headache, "
             "toothache, backache, menstrual cramps, muscular aches and minor "
             "pain of arthritis, and temporarily reduces fever.",
}
_ALEVE = {
    "name": "Aleve",
    "generic": "Naproxen Sodium",
    "manufacturer": "Bayer",
    "usage": "Temporarily relieves minor aches and pains due to arthritis, "
             "muscular aches, backache, menstrual cramps, headache and toothache.",
}

FALLBACK_DRUGS: dict[str, list[dict]] = {
    "headache": [_TYLENOL, _ADVIL],
    "fever": [_TYLENOL, _ADVIL],
    "cold": [
        {
            "name": "Sudafed",
            "generic": "Pseudoephedrine Hydrochloride",
            "manufacturer": "Johnson & Johnson",
            "usage": "Temporarily relieves nasal congestion due to the common "
                     "cold, hay fever or other upper respiratory allergies.",
        },
        {
            "name": "Mucinex",
            "generic": "Guaifenesin",
            "manufacturer": "Reckitt Benckiser",
            "usage": "Helps loosen phlegm and thin bronchial secretions to make "
                     "coughs more productive during a cold.",
        },
    ],
    "allergies": [
        {
            "name": "Claritin",
            "generic": "Loratadine",
            "manufacturer": "Bayer",
            "usage": "Temporarily relieves symptoms of hay fever or other upper "
                     "respiratory allergies: runny nose, sneezing, itchy, watery eyes.",
        },
        {
            "name": "Zyrtec",
            "generic": "Cetirizine Hydrochloride",
            "manufacturer": "Johnson & Johnson",
            "usage": "Temporarily relieves symptoms due to hay fever or other "
                     "upper respiratory allergies.",
        },
    ],
    "pain": [_TYLENOL, _ADVIL, _ALEVE],
}


def _first(values: object) -> str:
    """First element of an OpenFDA list field, or Unknown."""
    if isinstance(values, list) and values and values[0]:
        return str(values[0])
    return UNKNOWN


def drug_from_label(row: dict) -> DrugRecord:
    """Map one OpenFDA label result to a DrugRecord."""
    openfda = row.get("openfda")
    if not isinstance(openfda, dict):
        openfda = {}
    usage = _first(row.get("indications_and_usage"))
    return DrugRecord(
        name=_first(openfda.get("brand_name")),
        generic=_first(openfda.get("generic_name")),
        manufacturer=_first(openfda.get("manufacturer_name")),
        usage=usage[:MAX_USAGE_CHARS],
        source=DrugSource.OPENFDA,
    )


def fallback_drugs(condition: str) -> list[DrugRecord]:
    """Look up the static fallback table.

    Exact (case-insensitive) match first, then a substring match in either
    direction, e.g. "tension headache" -> "headache".
    """
    key = (condition or "").strip().lower()
    if not key:
        return []

    rows = FALLBACK_DRUGS.get(key)
    if rows is None:
        rows = next(
            (v for k, v in FALLBACK_DRUGS.items() if k in key or key in k),
            [],
        )
    return [DrugRecord(source=DrugSource.FALLBACK, **row) for row in rows]


class DrugResolver:
    """Resolves conditions to drug records via cache, OpenFDA and fallback.

    Attributes:
        cache: Injected DrugCache shared across requests.
        url: OpenFDA label endpoint.
        timeout: Request timeout in seconds.
        max_workers: Threads used by resolve_many (1 = sequential).
    """

    def __init__(
        self,
        cache: Optional[DrugCache] = None,
        session: Optional[requests.Session] = None,
        max_workers: int = 1,
    ) -> None:
        self.cache = cache if cache is not None else DrugCache.from_env()
        self.session = session or requests.Session()
        self.url: str = os.getenv("OPENFDA_URL", OPENFDA_LABEL_URL)
        self.api_key: str = os.getenv("OPENFDA_API_KEY", "")
        self.timeout: float = float(os.getenv("OPENFDA_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))
        self.max_workers = max(1, max_workers)

    # ------------------------------------------------------------------
    # Single condition
    # ------------------------------------------------------------------

    def resolve(self, condition: str) -> list[DrugRecord]:
        """Return OpenFDA drugs for a condition, using the cache first."""
        cached = self.cache.get(condition)
        if cached is not None:
            logger.info("Drug cache hit for '%s' (%d drugs).", condition, len(cached))
            return cached

        drugs = self._query_openfda(condition)
        if drugs is not None:
            self.cache.put(condition, drugs)
            return drugs
        return []

    def _query_openfda(self, condition: str) -> Optional[list[DrugRecord]]:
        """One label search. None means the lookup failed and must not be cached."""
        params = {
            "search": f"indications_and_usage:{condition.strip()}",
            "limit": OPENFDA_RESULT_LIMIT,
        }
        if self.api_key and self.api_key != "your-key":
            params["api_key"] = self.api_key

        try:
            response = self.session.get(self.url, params=params, timeout=self.timeout)
            if 400 <= response.status_code < 500:
                logger.info(
                    "OpenFDA returned %d for '%s', treating as no results.",
                    response.status_code,
                    condition,
                )
                return []
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("OpenFDA lookup failed for '%s': %s", condition, exc)
            return None

        results = data.get("results", []) if isinstance(data, dict) else None
        if not isinstance(results, list):
            logger.error("Unexpected OpenFDA response body for '%s'.", condition)
            return None

        drugs = [drug_from_label(row) for row in results if isinstance(row, dict)]
        logger.info("OpenFDA found %d drugs for '%s'.", len(drugs), condition)
        return drugs

    def resolve_with_fallback(self, condition: str) -> list[DrugRecord]:
        drugs = self.resolve(condition)
        if drugs:
            return drugs

        drugs = fallback_drugs(condition)
        if drugs:
            logger.info("Using %d fallback drugs for '%s'.", len(drugs), condition)
        return drugs

    # ------------------------------------------------------------------
    # Many conditions
    # ------------------------------------------------------------------

    def resolve_many(self, conditions: Iterable[str]) -> list[DrugRecord]:
        """Resolve every condition and concatenate the results in input order.

        When nothing at all is found, the fallback drugs for
        DEFAULT_CONDITION are returned so callers always get at least one
        drug.
        """
        names = [c for c in conditions if c and c.strip()]

        if self.max_workers > 1 and len(names) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                per_condition = list(pool.map(self.resolve_with_fallback, names))
        else:
            per_condition = [self.resolve_with_fallback(name) for name in names]

        drugs = [drug for group in per_condition for drug in group]
        if not drugs:
            logger.warning(
                "No drugs found for %d condition(s); using '%s' fallback.",
                len(names),
                DEFAULT_CONDITION,
            )
            drugs = fallback_drugs(DEFAULT_CONDITION)
        return drugs
