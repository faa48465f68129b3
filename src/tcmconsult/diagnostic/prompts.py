"""Prompt construction and output parsing for the base TCM diagnosis."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from tcmconsult.diagnostic.schema import DiagnosisReport
from tcmconsult.parsing import clean_model_response, extract_json_object
from tcmconsult.safety.schema import RecommendationSet

if TYPE_CHECKING:
    from tcmconsult.diagnostic.schema import DiagnosticRequest

logger = structlog.get_logger()

LANGUAGE_NAMES = {"en": "English", "zh": "Simplified Chinese", "ms": "Bahasa Malaysia"}

DIAGNOSIS_PROMPT_TEMPLATE = """You are an experienced Traditional Chinese Medicine (TCM) practitioner.
Review the consultation below and give a TCM assessment.

Patient: {patient_line}
Medical history: {history_line}
Attachments: {attachment_line}

Consultation transcript:
{transcript}

Respond in {language} with JSON only:
{{
  "diagnosis": "primary TCM pattern diagnosis",
  "constitution": "constitution type",
  "analysis": "reasoning linking symptoms to the pattern",
  "recommendations": {{
    "dietary": ["..."],
    "herbal": ["..."],
    "lifestyle": ["..."],
    "acupressure": ["..."]
  }}
}}

Flag any symptom that needs urgent in-person medical care in "analysis".
"""


def _patient_line(request: DiagnosticRequest) -> str:
    info = request.basic_info
    parts = []
    if info.age is not None:
        parts.append(f"age {info.age}")
    if info.gender:
        parts.append(info.gender)
    return ", ".join(parts) or "not provided"


def _history_line(request: DiagnosticRequest) -> str:
    history = request.medical_history
    if history is None:
        return "not provided"
    return (
        f"conditions: {', '.join(history.conditions) or 'none'}; "
        f"medications: {', '.join(history.current_medications) or 'none'}; "
        f"allergies: {', '.join(history.allergies) or 'none'}; "
        f"pregnancy status: {history.pregnancy_status}"
    )


def build_diagnosis_prompt(request: DiagnosticRequest) -> str:
    attachments = [a.name for a in (*request.images, *request.files)]
    transcript = "\n".join(f"{m.role}: {m.content}" for m in request.messages) or "(no messages)"
    return DIAGNOSIS_PROMPT_TEMPLATE.format(
        patient_line=_patient_line(request),
        history_line=_history_line(request),
        attachment_line=", ".join(attachments) or "none",
        transcript=transcript,
        language=LANGUAGE_NAMES.get(request.language, "English"),
    )


def _string_list(raw: object) -> list[str]:
    if isinstance(raw, str):
        return [raw] if raw.strip() else []
    if isinstance(raw, list):
        return [str(item) for item in raw if str(item).strip()]
    return []


def parse_diagnosis(raw_text: str) -> DiagnosisReport:
    """Parse model output into a report.

    Unparseable output is kept verbatim as the diagnosis with no
    recommendations, so downstream stages still have something to show.
    """
    data = extract_json_object(raw_text)
    if data is None:
        logger.warning("diagnosis_unparseable", preview=raw_text[:120])
        return DiagnosisReport(diagnosis=clean_model_response(raw_text), parsed=False)

    recs = data.get("recommendations")
    recs = recs if isinstance(recs, dict) else {}
    return DiagnosisReport(
        diagnosis=str(data.get("diagnosis", "")),
        constitution=str(data.get("constitution", "")),
        analysis=str(data.get("analysis", "")),
        recommendations=RecommendationSet(
            dietary=_string_list(recs.get("dietary")),
            herbal=_string_list(recs.get("herbal")),
            lifestyle=_string_list(recs.get("lifestyle")),
            acupressure=_string_list(recs.get("acupressure")),
        ),
    )
