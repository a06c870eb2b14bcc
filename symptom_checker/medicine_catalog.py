"""
Medicine Catalog Module
=======================
Local catalog of Indian generic medicines (Jan Aushadhi style product
list) used to suggest cheaper alternatives to the drugs found on OpenFDA.

Schema:
  products — sr_no, drug_code, generic_name (indexed), unit_size, mrp

The pipeline only reads from the catalog. Rows are written by the bulk
import in setup_catalog.py, or by the demo seed when the table is empty.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from pathlib import Path
from typing import Iterable, Optional

from dotenv import load_dotenv

from symptom_checker.models import IndianAlternative

load_dotenv()
logger = logging.getLogger(__name__)

DB_PATH = Path(__file__).parent.parent / "data" / "medicine_catalog.db"

PRODUCTS_TABLE = "products"

# Simulated rows so the demo works before a real product list is imported.
_DEMO_PRODUCTS: list[tuple] = [
    (1, 1, "Paracetamol Tablets IP 500 mg", "10's", 8.5),
    (2, 2, "Paracetamol Tablets IP 650 mg", "15's", 14.0),
    (3, 3, "Paracetamol Oral Suspension IP 125 mg/5 ml", "60 ml", 11.0),
    (4, 4, "Ibuprofen Tablets IP 400 mg", "10's", 6.6),
    (5, 5, "Ibuprofen and Paracetamol Tablets IP", "10's", 7.9),
    (6, 6, "Naproxen Tablets IP 250 mg", "10's", 12.2),
    (7, 7, "Aspirin Gastro-resistant Tablets IP 75 mg", "14's", 3.2),
    (8, 8, "Cetirizine Dihydrochloride Tablets IP 10 mg", "10's", 2.9),
    (9, 9, "Loratadine Tablets IP 10 mg", "10's", 8.0),
    (10, 10, "Pseudoephedrine Hydrochloride Tablets 60 mg", "10's", 15.0),
    (11, 11, "Guaifenesin Syrup 100 mg/5 ml", "100 ml", 28.0),
    (12, 12, "Diphenhydramine Hydrochloride Syrup", "100 ml", 22.5),
    (13, 13, "Azithromycin Tablets IP 500 mg", "3's", 21.0),
    (14, 14, "Amoxycillin Capsules IP 500 mg", "10's", 24.0),
    (15, 15, "Povidone-Iodine Solution IP 5% w/v", "100 ml", 30.0),
    (16, 16, "Omeprazole Capsules IP 20 mg", "10's", 5.5),
    (17, 17, "Ranitidine Tablets IP 150 mg", "10's", 4.1),
    (18, 18, "Dextromethorphan Hydrobromide Syrup", "100 ml", 26.0),
]


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_alternative(row: sqlite3.Row) -> IndianAlternative:
    return IndianAlternative(
        drug_code=row["drug_code"] if row["drug_code"] is not None else row["sr_no"],
        generic_name=row["generic_name"],
        unit_size=row["unit_size"],
        mrp=row["mrp"],
    )


class MedicineCatalog:
    """SQLite-backed catalog of Indian generic medicines.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: Optional[str] = None, seed_demo: bool = True) -> None:
        """Open (and if needed create) the catalog.

        Args:
            db_path: Optional custom database path. Defaults to
                CATALOG_DB_PATH or data/medicine_catalog.db.
            seed_demo: Insert simulated products when the table is empty.
        """
        env_path = os.getenv("CATALOG_DB_PATH", "")
        self.db_path = Path(db_path or env_path or DB_PATH)
        self._available = False
        self._create_table(seed_demo)

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _create_table(self, seed_demo: bool) -> None:
        """Create the products table and its index if they don't exist."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._get_connection() as conn:
                conn.executescript(
                    f"""
                    CREATE TABLE IF NOT EXISTS {PRODUCTS_TABLE} (
                        sr_no        INTEGER,
                        drug_code    INTEGER,
                        generic_name TEXT NOT NULL,
                        unit_size    TEXT,
                        mrp          REAL
                    );
                    CREATE INDEX IF NOT EXISTS idx_products_generic_name
                        ON {PRODUCTS_TABLE} (generic_name);
                    """
                )
                if seed_demo:
                    self._seed_demo_products(conn)
            self._available = True
            logger.info("Medicine catalog ready at %s.", self.db_path)
        except (sqlite3.Error, OSError) as exc:
            logger.error("Failed to open medicine catalog at %s: %s", self.db_path, exc)

    def _seed_demo_products(self, conn: sqlite3.Connection) -> None:
        existing = conn.execute(f"SELECT COUNT(*) FROM {PRODUCTS_TABLE}").fetchone()[0]
        if existing > 0:
            return
        conn.executemany(
            f"INSERT INTO {PRODUCTS_TABLE} VALUES (?,?,?,?,?)", _DEMO_PRODUCTS
        )
        logger.info("Seeded %d demo products into the catalog.", len(_DEMO_PRODUCTS))

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def is_available(self) -> bool:
        """True when the catalog can be queried right now."""
        if not self._available:
            return False
        try:
            conn = self._get_connection()
            conn.execute("SELECT 1").fetchone()
            conn.close()
            return True
        except sqlite3.Error as exc:
            logger.error("Medicine catalog unavailable: %s", exc)
            return False

    def count(self) -> int:
        conn = self._get_connection()
        try:
            return conn.execute(f"SELECT COUNT(*) FROM {PRODUCTS_TABLE}").fetchone()[0]
        finally:
            conn.close()

    def verify(self, sample_size: int = 2) -> dict:
        """Check the products table and return its count and a few samples."""
        conn = self._get_connection()
        try:
            tables = [
                r["name"]
                for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            ]
            if PRODUCTS_TABLE not in tables:
                logger.warning("Warning: %s table not found in catalog.", PRODUCTS_TABLE)
                return {"tables": tables, "count": 0, "samples": []}

            count = conn.execute(f"SELECT COUNT(*) FROM {PRODUCTS_TABLE}").fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM {PRODUCTS_TABLE} LIMIT ?", (sample_size,)
            ).fetchall()
            return {"tables": tables, "count": count, "samples": [dict(r) for r in rows]}
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_any_component(
        self, components: Iterable[str], limit: int
    ) -> list[IndianAlternative]:
        """Products whose generic name contains ANY of the components.

        Matching is a case-insensitive substring test, OR-ed across
        components.
        """
        terms = [c for c in components if c]
        if not terms:
            return []

        where = " OR ".join(["LOWER(generic_name) LIKE ? ESCAPE '\\'"] * len(terms))
        params = [f"%{_escape_like(t.lower())}%" for t in terms]
        return self._select(where, params, limit)

    def find_by_substring(self, text: str, limit: int) -> list[IndianAlternative]:
        """Products whose generic name contains the whole text."""
        if not text or not text.strip():
            return []
        return self._select(
            "LOWER(generic_name) LIKE ? ESCAPE '\\'",
            [f"%{_escape_like(text.strip().lower())}%"],
            limit,
        )

    def _select(self, where: str, params: list, limit: int) -> list[IndianAlternative]:
        conn = self._get_connection()
        try:
            rows = conn.execute(
                f"SELECT * FROM {PRODUCTS_TABLE} WHERE {where} ORDER BY rowid LIMIT ?",
                (*params, limit),
            ).fetchall()
        finally:
            conn.close()
        return [_row_to_alternative(r) for r in rows]

    # ------------------------------------------------------------------
    # Bulk import
    # ------------------------------------------------------------------

    def bulk_import(self, rows: Iterable[dict], replace: bool = False) -> int:
        """Insert catalog rows.

        Args:
            rows: Dicts with Sr_No, Drug_Code, Generic_Name, Unit_Size, MRP
                keys (the column names of the published product list).
            replace: Delete existing products first.

        Returns:
            Number of rows inserted. Rows without a generic name are skipped.
        """
        records = []
        for row in rows:
            generic = (row.get("Generic_Name") or "").strip()
            if not generic:
                continue
            records.append(
                (
                    _to_int(row.get("Sr_No")),
                    _to_int(row.get("Drug_Code")),
                    generic,
                    (row.get("Unit_Size") or "").strip() or None,
                    _to_float(row.get("MRP")),
                )
            )

        with self._get_connection() as conn:
            if replace:
                conn.execute(f"DELETE FROM {PRODUCTS_TABLE}")
            conn.executemany(
                f"INSERT INTO {PRODUCTS_TABLE} VALUES (?,?,?,?,?)", records
            )
        logger.info("Imported %d products into %s.", len(records), self.db_path)
        return len(records)


def _to_int(value) -> Optional[int]:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _to_float(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number >= 0 else None
