# hotelguard/assistant.py
"""
Narrow contract to the multimodal model that classifies inspection photos,
answers questions over the log and drafts training modules. Every call
degrades to a fixed fallback when the model is unavailable or returns
something unusable.
"""
import json
import logging
import random
import re
import string
import time
from datetime import date
from typing import Any, Dict, List, Optional, Protocol

from hotelguard.schemas import FaultCategory, PhotoAnalysis, RiskLevel, TrainingModule

log = logging.getLogger("assistant")

FALLBACK_ANALYSIS = {
    "riskLevel": RiskLevel.LOW.value,
    "category": FaultCategory.HYGIENE.value,
    "faultDescription": "Automated analysis failed. Manual review recommended.",
    "remediationSteps": ["Perform manual audit", "Check server connection"],
}
QUERY_ERROR = "System error: Unable to process query."
QUERY_EMPTY = "I could not retrieve that information from the logs."

PHOTO_PROMPT = (
    "Act as a 5-Star Hotel Safety Auditor. "
    "Perform risk stratification, categorize faults, "
    "and provide hyper-specific remediation steps. "
    "Assign a risk level (HIGH, MEDIUM, LOW). "
    "Categorize the fault (Hygiene, Equipment, Infrastructure, Cross-Contamination, Storage). "
    "Describe the fault technically. "
    "Suggest 3 specific corrective steps (e.g., exact chemicals, repair methods). "
    "Response MUST be valid JSON."
)

_JSON_RE = re.compile(r"\{[\s\S]*\}|\[[\s\S]*\]")


class AssistantBackend(Protocol):
    def analyze_photo(self, image_base64: str, prompt: str) -> str: ...

    def answer(self, prompt: str) -> str: ...

    def generate_modules(self, prompt: str) -> str: ...


class UnconfiguredBackend:
    """Used until a model client is wired in; every call fails over to the fallbacks."""

    def _fail(self, *args: Any) -> str:
        raise RuntimeError("No AI backend configured")

    analyze_photo = _fail
    answer = _fail
    generate_modules = _fail


def extract_json(text: str) -> str:
    """First JSON object or array found in model output, or the text unchanged."""
    match = _JSON_RE.search(text)
    return match.group(0) if match else text


def _normalize_risk(value: Any) -> Any:
    if isinstance(value, str):
        for level in RiskLevel:
            if value.strip().lower() == level.value.lower():
                return level.value
    return value


def _short_id(prefix: str) -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


def display_date(day: Optional[date] = None) -> str:
    return (day or date.today()).strftime("%d/%m/%Y")


def build_query_context(records: List[Dict[str, Any]]) -> str:
    return "\n".join(
        f"[{r.get('inspectionDate')}] {r.get('propertyName')} ({r.get('location')}): "
        f"{r.get('riskLevel')} Risk - {r.get('faultDescription')}"
        for r in records
    )


def recent_failures(records: List[Dict[str, Any]], limit: int = 10) -> List[str]:
    failing = (RiskLevel.HIGH.value, RiskLevel.MEDIUM.value)
    return [
        f"{r.get('category')}: {r.get('faultDescription')}"
        for r in records
        if r.get("riskLevel") in failing
    ][:limit]


class InspectionAssistant:
    def __init__(self, backend: Optional[AssistantBackend] = None):
        self.backend = backend or UnconfiguredBackend()

    def analyze_photo(self, image_base64: str) -> PhotoAnalysis:
        try:
            raw = json.loads(extract_json(self.backend.analyze_photo(image_base64, PHOTO_PROMPT) or "{}"))
            raw["riskLevel"] = _normalize_risk(raw.get("riskLevel"))
            return PhotoAnalysis.model_validate(raw)
        except Exception:
            log.exception("Photo analysis failed, using fallback classification")
        return PhotoAnalysis.model_validate(FALLBACK_ANALYSIS)

    def query(self, question: str, records: List[Dict[str, Any]]) -> str:
        prompt = (
            "System Instruction: You are the HotelGuard Auditor Assistant.\n"
            "Analyze the provided audit logs and answer the user's question.\n"
            "Answer in a professional, data-driven format (with bolding and bullet points).\n"
            "If the question can't be answered, clearly say so.\n\n"
            f"Audit Logs:\n{build_query_context(records)}\n\n"
            f"User Question: {question}"
        )
        try:
            answer = self.backend.answer(prompt)
        except Exception:
            log.exception("Assistant query failed")
            return QUERY_ERROR
        return answer or QUERY_EMPTY

    def training_modules(self, records: List[Dict[str, Any]], property_name: str) -> List[TrainingModule]:
        failures = recent_failures(records)
        if not failures:
            return []
        prompt = (
            f"Based on these recent audit failures at {property_name}: {json.dumps(failures)}, "
            "generate 3 targeted training modules to address these specific risks. "
            "Include Priority (Urgent/Routine)."
        )
        try:
            raw = json.loads(extract_json(self.backend.generate_modules(prompt) or "[]"))
            return [
                TrainingModule.model_validate({
                    **m,
                    "id": _short_id("tm"),
                    "lastUpdated": display_date(),
                    "relatedIncidentsCount": len(failures),
                })
                for m in raw
            ]
        except Exception:
            log.exception("Training module generation failed")
            return []


assistant = InspectionAssistant()
