"""
Pipeline Tests
==============
Drug categorization, the LLM analyzer fallback and the end-to-end
analysis pipeline with OpenFDA and the LLM mocked out.

Run with: python -m pytest tests/test_pipeline.py -v
"""

from __future__ import annotations

import os
import sys
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from symptom_checker.alternative_matcher import AlternativeMatcher
from symptom_checker.analysis_pipeline import SymptomPipeline, alternatives_stats
from symptom_checker.drug_cache import DrugCache
from symptom_checker.drug_categorizer import GENERAL_TREATMENTS, categorize, dedupe_drugs
from symptom_checker.drug_resolver import DrugResolver
from symptom_checker.medicine_catalog import MedicineCatalog
from symptom_checker.models import DrugAlternatives, DrugRecord, IndianAlternative
from symptom_checker.response_formatter import format_response
from symptom_checker.symptom_analyzer import NO_ANALYSIS, AnalyzerReply, SymptomAnalyzer


def _drug(name: str, usage: str = "", generic: str = "Unknown") -> DrugRecord:
    return DrugRecord(name=name, usage=usage, generic=generic)


class TestDedupe(unittest.TestCase):

    def test_same_name_collapsed(self):
        drugs = [_drug("Tylenol", "a"), _drug("Tylenol", "b")]
        unique = dedupe_drugs(drugs)
        self.assertEqual(len(unique), 1)
        self.assertEqual(unique[0].usage, "a")

    def test_case_sensitive(self):
        self.assertEqual(len(dedupe_drugs([_drug("Tylenol"), _drug("TYLENOL")])), 2)


class TestCategorize(unittest.TestCase):

    def setUp(self):
        self.drugs = [
            _drug("Tylenol", "Relieves HEADACHE and fever."),
            _drug("Sudafed", "Relieves congestion from the common cold."),
            _drug("Lipitor", "Lowers cholesterol."),
            _drug("Advil", "For fever and headache."),
        ]
        self.conditions = ["Headache", "Fever", "Cold", "Asthma"]

    def test_first_match_wins(self):
        result = categorize(self.drugs, self.conditions)
        self.assertEqual([d.name for d in result["Headache"]], ["Tylenol", "Advil"])
        self.assertNotIn("Fever", result)

    def test_unmatched_go_to_general(self):
        result = categorize(self.drugs, self.conditions)
        self.assertEqual([d.name for d in result[GENERAL_TREATMENTS]], ["Lipitor"])

    def test_empty_buckets_removed(self):
        result = categorize(self.drugs, self.conditions)
        self.assertEqual(list(result), ["Headache", "Cold", GENERAL_TREATMENTS])
        self.assertTrue(all(result.values()))

    def test_partition(self):
        result = categorize(self.drugs, self.conditions)
        placed = [d for items in result.values() for d in items]
        self.assertEqual(len(placed), len(self.drugs))
        self.assertEqual({id(d) for d in placed}, {id(d) for d in self.drugs})

    def test_no_conditions(self):
        result = categorize(self.drugs, [])
        self.assertEqual(list(result), [GENERAL_TREATMENTS])

    def test_categorizing_twice_is_stable(self):
        record = format_response("Possible Conditions:\n- Headache\n- Cold")
        first = categorize(self.drugs, record.condition_names())
        second = categorize([d for items in first.values() for d in items], record.condition_names())
        self.assertEqual(
            {k: [d.name for d in v] for k, v in first.items()},
            {k: [d.name for d in v] for k, v in second.items()},
        )


class TestAlternativesStats(unittest.TestCase):

    def test_coverage(self):
        drugs = [_drug("A"), _drug("B"), _drug("C")]
        alternatives = {
            "A": DrugAlternatives(
                original_generic="x",
                original_manufacturer="y",
                indian_alternatives=[IndianAlternative(generic_name="p"), IndianAlternative(generic_name="q")],
            ),
        }
        self.assertEqual(
            alternatives_stats(drugs, alternatives),
            {"drugsWithAlternatives": 1, "totalAlternatives": 2, "coverage": 33},
        )

    def test_no_drugs(self):
        self.assertEqual(alternatives_stats([], {})["coverage"], 0)


class TestSymptomAnalyzer(unittest.TestCase):
    """LLM client with the SDK call mocked."""

    def _configured(self) -> SymptomAnalyzer:
        with patch.dict(os.environ, {"LLM_API_KEY": ""}):
            analyzer = SymptomAnalyzer()
        analyzer.client = MagicMock()
        analyzer._initialized = True
        return analyzer

    def test_unconfigured_uses_offline_analysis(self):
        with patch.dict(os.environ, {"LLM_API_KEY": ""}):
            analyzer = SymptomAnalyzer()
        self.assertFalse(analyzer.configured)
        reply = analyzer.analyze("sneezing and itchy eyes")
        self.assertTrue(reply.offline)
        record = format_response(reply.text)
        self.assertFalse(record.degraded)
        self.assertIn("Allergies", record.condition_names())
        self.assertTrue(record.remedies)
        self.assertTrue(record.precautions)

    def test_request_shape(self):
        analyzer = self._configured()
        analyzer.client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="Remedies:\n- Rest"))],
            usage=None,
        )
        self.assertEqual(analyzer.analyze("tired"), AnalyzerReply("Remedies:\n- Rest", offline=False))

        kwargs = analyzer.client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["temperature"], 0.7)
        self.assertEqual(kwargs["max_tokens"], 800)
        self.assertEqual(kwargs["messages"][0]["role"], "user")
        self.assertIn("tired", kwargs["messages"][0]["content"])

    def test_empty_content(self):
        analyzer = self._configured()
        analyzer.client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=None))],
            usage=None,
        )
        self.assertEqual(analyzer.analyze("tired").text, NO_ANALYSIS)

    def test_upstream_failure_degrades_to_offline(self):
        analyzer = self._configured()
        analyzer.client.chat.completions.create.side_effect = TimeoutError("timed out")
        reply = analyzer.analyze("fever and chills")
        self.assertTrue(reply.offline)
        self.assertIn("Fever", format_response(reply.text).condition_names())


class TestSymptomPipeline(unittest.TestCase):
    """End to end with fake LLM text, mocked OpenFDA and a temp catalog."""

    LLM_TEXT = (
        "**You likely have a migraine.**\n\n"
        "Migraines are common.\n\n"
        "Possible Conditions:\n"
        "- Migraine: severe headache\n"
        "- Dehydration: not enough fluids\n"
        "Remedies:\n"
        "- Ibuprofen: pain relief\n"
    )

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        catalog = MedicineCatalog(db_path=str(Path(self._tmp.name) / "c.db"), seed_demo=False)
        catalog.bulk_import([
            {"Sr_No": "1", "Drug_Code": "11", "Generic_Name": "Ibuprofen Tablets IP 400 mg", "Unit_Size": "10's", "MRP": "6.6"},
            {"Sr_No": "2", "Drug_Code": "12", "Generic_Name": "Sumatriptan Tablets 50 mg", "Unit_Size": "4's", "MRP": "40"},
        ])

        self.analyzer = MagicMock(spec=SymptomAnalyzer)
        self.analyzer.analyze.return_value = AnalyzerReply(self.LLM_TEXT)

        self.session = MagicMock()
        self.session.get.side_effect = self._fake_openfda
        resolver = DrugResolver(cache=DrugCache(), session=self.session)
        resolver.api_key = ""

        self.pipeline = SymptomPipeline(
            analyzer=self.analyzer,
            resolver=resolver,
            matcher=AlternativeMatcher(catalog),
        )

    def tearDown(self):
        self._tmp.cleanup()

    @staticmethod
    def _fake_openfda(url, params, timeout):
        response = MagicMock()
        if params["search"].endswith("Migraine"):
            response.status_code = 200
            response.json.return_value = {"results": [
                {
                    "openfda": {"brand_name": ["Imitrex"], "generic_name": ["SUMATRIPTAN"], "manufacturer_name": ["GSK"]},
                    "indications_and_usage": ["Acute treatment of migraine with or without aura."],
                },
                {
                    "openfda": {"brand_name": ["Imitrex"], "generic_name": ["SUMATRIPTAN"], "manufacturer_name": ["GSK"]},
                    "indications_and_usage": ["Duplicate label."],
                },
            ]}
        else:
            response.status_code = 404
        return response

    def test_full_payload(self):
        result = self.pipeline.analyze(symptoms="bad headache")

        self.analyzer.analyze.assert_called_once_with("bad headache")
        self.assertEqual(result["summary"], "You likely have a migraine.")
        self.assertEqual(result["status"], "parsed")
        self.assertNotIn("error", result)
        self.assertFalse(result["offline"])
        self.assertEqual(
            result["conditions"]["possible_conditions"][0],
            {"name": "Migraine", "description": "severe headache"},
        )

        names = [d["name"] for d in result["matchedDrugs"]]
        self.assertEqual(names.count("Imitrex"), 1)
        self.assertEqual(result["matchedDrugs"][0]["source"], "openfda")

        self.assertEqual([d["name"] for d in result["drugsByCondition"]["Migraine"]], ["Imitrex"])
        self.assertIn("Imitrex", result["indianAlternatives"])
        alt = result["indianAlternatives"]["Imitrex"]
        self.assertEqual(alt["original_generic"], "SUMATRIPTAN")
        self.assertEqual(alt["indian_alternatives"][0]["drug_code"], 12)

        stats = result["alternativesStats"]
        self.assertEqual(stats["drugsWithAlternatives"], 1)
        self.assertEqual(stats["totalAlternatives"], 1)

    def test_unresolvable_conditions_fall_back_to_headache_drugs(self):
        self.analyzer.analyze.return_value = AnalyzerReply("Possible Conditions:\n- Xyzzy syndrome")
        result = self.pipeline.analyze(symptoms="odd")
        self.assertTrue(result["matchedDrugs"])
        self.assertTrue(all(d["source"] == "fallback" for d in result["matchedDrugs"]))

    def test_structured_input_skips_llm(self):
        result = self.pipeline.analyze(payload={"possible_conditions": ["Migraine"]})
        self.analyzer.analyze.assert_not_called()
        self.assertEqual([d["name"] for d in result["matchedDrugs"]], ["Imitrex"])

    def test_degraded_parse_still_returns_drugs(self):
        self.analyzer.analyze.return_value = AnalyzerReply("")
        result = self.pipeline.analyze(symptoms="anything")
        self.assertEqual(result["status"], "degraded")
        self.assertIn("error", result)
        self.assertTrue(result["matchedDrugs"])

    def test_offline_reply_is_flagged(self):
        self.analyzer.analyze.return_value = AnalyzerReply(self.LLM_TEXT, offline=True)
        result = self.pipeline.analyze(symptoms="bad headache")
        self.assertTrue(result["offline"])
        self.assertEqual(result["status"], "parsed")

    def test_second_request_uses_cache(self):
        self.pipeline.analyze(symptoms="bad headache")
        calls = self.session.get.call_count
        self.pipeline.analyze(symptoms="bad headache")
        self.assertEqual(self.session.get.call_count, calls)


if __name__ == "__main__":
    unittest.main(verbosity=2)
