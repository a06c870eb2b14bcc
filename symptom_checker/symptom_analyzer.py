"""
Symptom Analyzer Module
=======================
Sends the patient's symptom description to a hosted LLM (any
OpenAI-compatible chat completion endpoint, Together AI by default) and
returns the raw free-text analysis.

When the LLM is not configured, or the call fails or times out, a canned
offline analysis is returned instead so the rest of the pipeline can
still produce drugs and alternatives.
"""

from __future__ import annotations

import logging
import os
from typing import NamedTuple, Optional

from dotenv import load_dotenv

load_dotenv()
logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.together.xyz/v1"
DEFAULT_MODEL = "meta-llama/Llama-3.3-70B-Instruct-Turbo-Free"
DEFAULT_TIMEOUT_SECONDS = 30.0

TEMPERATURE = 0.7
MAX_TOKENS = 800

NO_ANALYSIS = "No analysis available."

PROMPT_TEMPLATE = (
    "Analyze symptoms: {symptoms}. "
    "Provide possible conditions, symptoms, remedies, and precautions."
)


class AnalyzerReply(NamedTuple):
    """LLM text plus whether it came from the offline fallback."""

    text: str
    offline: bool = False


class SymptomAnalyzer:
    """LLM client producing free-text symptom analyses.

    Attributes:
        client: OpenAI SDK client pointed at the configured base URL.
        model: Chat model name.
        timeout: Request timeout in seconds.
    """

    def __init__(self) -> None:
        self.client = None
        self.model: str = os.getenv("LLM_MODEL", DEFAULT_MODEL)
        self.base_url: str = os.getenv("LLM_BASE_URL", DEFAULT_BASE_URL)
        self.timeout: float = float(os.getenv("LLM_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))
        self._initialized = False
        self._init_client()

    def _init_client(self) -> None:
        key = os.getenv("LLM_API_KEY", "")
        if not key or key == "your-key":
            logger.warning(
                "LLM credentials not configured. "
                "Using offline symptom analysis for demo."
            )
            return

        try:
            from openai import OpenAI

            self.client = OpenAI(
                api_key=key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
            self._initialized = True
            logger.info("LLM client initialized (model=%s).", self.model)
        except Exception as exc:
            logger.error("Failed to init LLM client: %s", exc)

    @property
    def configured(self) -> bool:
        return self._initialized

    def analyze(self, symptoms: str) -> AnalyzerReply:
        """Return the raw LLM analysis for a symptom description.

        Args:
            symptoms: Free-text (or voice-transcribed) symptoms.

        Returns:
            An AnalyzerReply with the first choice's message content, or
            the offline analysis (``offline=True``) when the LLM is
            unavailable.
        """
        if not self._initialized:
            return AnalyzerReply(self._mock_analysis(symptoms), offline=True)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "user", "content": PROMPT_TEMPLATE.format(symptoms=symptoms)},
                ],
                temperature=TEMPERATURE,
                max_tokens=MAX_TOKENS,
            )

            usage = getattr(response, "usage", None)
            if usage:
                logger.info(
                    "analyze — tokens used: prompt=%d completion=%d total=%d",
                    usage.prompt_tokens,
                    usage.completion_tokens,
                    usage.total_tokens,
                )

            content: Optional[str] = None
            if response.choices:
                content = response.choices[0].message.content
            logger.info("Raw AI response received (%d chars).", len(content or ""))
            return AnalyzerReply(content or NO_ANALYSIS)

        except Exception as exc:
            logger.error("Symptom analysis error: %s", exc)
            return AnalyzerReply(self._mock_analysis(symptoms), offline=True)

    # ------------------------------------------------------------------
    # Offline fallback
    # ------------------------------------------------------------------

    def _mock_analysis(self, symptoms: str) -> str:
        """Canned analysis keyed on a few common complaints."""
        text = (symptoms or "").lower()

        if any(kw in text for kw in ["sneez", "itch", "allerg", "hay fever"]):
            conditions = [
                ("Allergies", "seasonal or environmental allergic reaction"),
                ("Common Cold", "viral infection of the upper airways"),
            ]
            remedies = [
                ("Antihistamines", "reduce sneezing and itching"),
                ("Saline nasal rinse", "clears allergens from the nose"),
            ]
        elif any(kw in text for kw in ["cough", "runny nose", "congest", "cold", "sore throat"]):
            conditions = [
                ("Common Cold", "viral infection of the nose and throat"),
                ("Fever", "may accompany viral infections"),
            ]
            remedies = [
                ("Rest and fluids", "help the body recover"),
                ("Decongestants", "relieve nasal congestion"),
            ]
        elif any(kw in text for kw in ["fever", "temperature", "chills"]):
            conditions = [
                ("Fever", "raised body temperature, often from infection"),
                ("Viral Infection", "most fevers are caused by viruses"),
            ]
            remedies = [
                ("Paracetamol", "reduces fever"),
                ("Hydration", "replace fluids lost through sweating"),
            ]
        elif any(kw in text for kw in ["back", "joint", "muscle", "pain", "ache"]):
            conditions = [
                ("Muscle Strain", "overuse or minor injury of muscles"),
                ("Pain", "general musculoskeletal pain"),
            ]
            remedies = [
                ("Ibuprofen", "relieves pain and inflammation"),
                ("Warm compress", "relaxes tense muscles"),
            ]
        else:
            conditions = [
                ("Tension Headache", "stress or posture related headache"),
                ("Migraine", "recurring headache, often one-sided"),
            ]
            remedies = [
                ("Paracetamol", "relieves mild to moderate pain"),
                ("Rest in a dark room", "reduces sensitivity to light"),
            ]

        lines = [
            f"**Based on the symptoms described ({symptoms or 'not specified'}), "
            f"here is a general overview.**",
            "",
            "This is an offline analysis and not a diagnosis. "
            "Please consult a doctor for medical advice.",
            "",
            "Possible Conditions:",
        ]
        lines += [f"- {name}: {desc}" for name, desc in conditions]
        lines += ["", "Remedies:"]
        lines += [f"- {name}: {desc}" for name, desc in remedies]
        lines += [
            "",
            "Precautions:",
            "- See a doctor: if symptoms persist for more than three days",
            "- Emergency care: if symptoms are sudden or severe",
        ]
        return "\n".join(lines)
