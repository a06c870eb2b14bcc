"""
AI-Flex — Symptom Checker API Server
====================================
FastAPI backend for the symptom-checking chat client. Analyzes symptoms
with an LLM, matches drugs on OpenFDA and suggests Indian generic
alternatives from the local medicine catalog.

Run:
    pip install -e .
    python server.py

Then open: http://localhost:5000/docs
"""
from __future__ import annotations

import logging
import os
import sys
import traceback
from pathlib import Path
from typing import Any, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

# ── path setup ────────────────────────────────────────────────────────────────
ROOT = Path(__file__).parent
sys.path.insert(0, str(ROOT))

from symptom_checker.analysis_pipeline import SymptomPipeline, has_structured_data

load_dotenv()
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MIN_GENERIC_NAME_LENGTH = 3

# ── init ──────────────────────────────────────────────────────────────────────
pipeline = SymptomPipeline()

app = FastAPI(title="AI-Flex Symptom Checker", version="1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class AnalyzeRequest(BaseModel):
    """Body of POST /api/symptoms/analyze. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    symptoms: Optional[str] = None
    conditions: Optional[dict[str, Any]] = None
    possible_conditions: Optional[list[Any]] = None


def _debug_enabled() -> bool:
    return os.getenv("DEBUG", "").lower() in ("1", "true", "yes")


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s: %s", request.url.path, exc)
    body: dict[str, Any] = {"error": "Failed to analyze symptoms."}
    if _debug_enabled():
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content=body)


# ── API endpoints ─────────────────────────────────────────────────────────────

@app.post("/api/symptoms/analyze")
def api_analyze(body: AnalyzeRequest):
    """Analyze symptoms (or structured conditions) and attach drug data."""
    payload = body.model_dump(exclude_none=True)
    symptoms = (body.symptoms or "").strip()

    if not symptoms and not has_structured_data(payload):
        raise HTTPException(400, "Please provide symptoms or structured condition data.")

    return pipeline.analyze(symptoms=symptoms or None, payload=payload)


@app.get("/api/symptoms/indian-alternatives/{generic_name}")
def api_indian_alternatives(generic_name: str):
    """Direct catalog lookup for one generic name."""
    query = generic_name.strip()
    if len(query) < MIN_GENERIC_NAME_LENGTH:
        raise HTTPException(
            400,
            f"Generic name must be at least {MIN_GENERIC_NAME_LENGTH} characters long.",
        )

    alternatives = pipeline.matcher.search_by_generic(query)
    return {
        "query": query,
        "alternatives": [a.model_dump(mode="json") for a in alternatives],
        "count": len(alternatives),
    }


@app.get("/api/health")
def api_health():
    """Service status for monitoring."""
    catalog = pipeline.matcher.catalog
    available = catalog.is_available()
    return {
        "status": "ok",
        "llm_configured": pipeline.analyzer.configured,
        "catalog_available": available,
        "catalog_products": catalog.count() if available else 0,
        "drug_cache_entries": len(pipeline.resolver.cache),
    }


@app.get("/")
def root():
    return {"service": "AI-Flex Symptom Checker", "docs": "/docs"}


# ── Entry point ───────────────────────────────────────────────────────────────
if __name__ == "__main__":
    port = int(os.getenv("PORT", "5000"))
    print("\n" + "═" * 58)
    print("  💊  AI-Flex — Symptom Checker API")
    print("═" * 58)
    print(f"  ➜  API:        http://localhost:{port}/api/symptoms")
    print(f"  ➜  API docs:   http://localhost:{port}/docs")
    print(f"  ➜  Catalog:    {pipeline.matcher.catalog.db_path}")
    print("═" * 58 + "\n")
    uvicorn.run(app, host="0.0.0.0", port=port, reload=False, log_level="warning")
