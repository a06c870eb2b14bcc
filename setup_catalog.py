"""
Setup Script — Import Indian Medicine Catalog
==============================================
One-time setup script that loads the published Indian generic medicine
product list into the local catalog used for alternative matching.

Run with: python setup_catalog.py path/to/products.csv [--replace]

This script:
  1. Reads the CSV (columns: Sr_No, Drug_Code, Generic_Name, Unit_Size, MRP)
  2. Inserts the rows into the catalog's products table
  3. Verifies the table (count, sample rows)
  4. Runs sample component searches for a few common generics
"""

from __future__ import annotations

import argparse
import csv
import logging
import sys
from pathlib import Path

# Ensure project root is on the path
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from symptom_checker.alternative_matcher import AlternativeMatcher, extract_components
from symptom_checker.medicine_catalog import MedicineCatalog

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("setup_catalog")

SAMPLE_GENERICS = ["NAPROXEN", "AZITHROMYCIN", "AMOXICILLIN", "POVIDONE-IODINE"]


def read_products(csv_path: Path) -> list[dict]:
    with csv_path.open(newline="", encoding="utf-8-sig") as fh:
        return list(csv.DictReader(fh))


def verify_catalog(catalog: MedicineCatalog) -> bool:
    """Log catalog contents and sample searches. Returns False if empty."""
    report = catalog.verify()
    logger.info("Available tables: %s", report["tables"])
    logger.info("Found %d products in catalog.", report["count"])
    for sample in report["samples"]:
        logger.info("  Sample: %s", sample)

    if report["count"] == 0:
        return False

    matcher = AlternativeMatcher(catalog)
    for generic in SAMPLE_GENERICS:
        components = sorted(extract_components(generic))
        results = matcher.search_by_generic(generic, limit=5)
        logger.info(
            "Search for %s (terms: %s) → %d result(s)",
            generic,
            ", ".join(components) or "-",
            len(results),
        )
        if results:
            logger.info("  First result: %s", results[0].model_dump())
    return True


def main(argv: list[str] | None = None) -> None:
    """Import the product CSV (if given) and verify the catalog."""
    parser = argparse.ArgumentParser(description="Import the Indian medicine catalog.")
    parser.add_argument("csv_path", nargs="?", help="Product list CSV to import.")
    parser.add_argument("--db", help="Catalog database path (default: CATALOG_DB_PATH).")
    parser.add_argument("--replace", action="store_true", help="Delete existing products first.")
    args = parser.parse_args(argv)

    logger.info("=" * 60)
    logger.info("  AI-FLEX — Medicine Catalog Setup")
    logger.info("=" * 60)

    catalog = MedicineCatalog(db_path=args.db, seed_demo=False)

    if args.csv_path:
        csv_path = Path(args.csv_path)
        if not csv_path.exists():
            logger.error("CSV not found: %s", csv_path)
            sys.exit(1)
        rows = read_products(csv_path)
        logger.info("Read %d rows from %s.", len(rows), csv_path)
        imported = catalog.bulk_import(rows, replace=args.replace)
        logger.info("✅ Imported %d products.", imported)
    else:
        logger.info("No CSV given — verifying existing catalog only.")

    if not verify_catalog(catalog):
        logger.error("Catalog is empty. Import a product list first.")
        sys.exit(1)

    logger.info("=" * 60)
    logger.info("  CATALOG READY: %s", catalog.db_path)
    logger.info("=" * 60)


if __name__ == "__main__":
    main()
