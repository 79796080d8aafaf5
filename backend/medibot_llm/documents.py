from __future__ import annotations

import logging

from pydantic import ValidationError

from medibot_core.errors import BoundaryFailure, BoundaryTimeout
from medibot_core.models import DOCUMENT_DISCLAIMER, BoundaryResult, DocumentAnalysisOutput, DocumentAnalysisRequest

from .providers import complete_text, extract_json_object

logger = logging.getLogger(__name__)

EMPTY_SUMMARY_TEXT = "Could not analyze the document. Please try again."

_TYPE_INSTRUCTIONS = {
    "prescription": (
        "Identify medication names, dosages, frequencies, and any other relevant instructions. "
        "Summarize this information clearly."
    ),
    "lab_report": (
        "Identify test names, their values, units, and reference ranges if provided. Highlight any values that "
        "appear outside of typical reference ranges (if available). Summarize this information."
    ),
}


def build_document_prompt(request: DocumentAnalysisRequest) -> tuple[str, str]:
    if request.language:
        language_rule = (
            f"Respond in {request.language}. If mixed-language input (e.g. Hinglish for 'hi') is common for that "
            "language, understand and respond to it appropriately."
        )
    else:
        language_rule = "Respond in English."
    system_prompt = "\n".join(
        [
            "You are an AI assistant. Your task is to analyze the provided medical document content.",
            language_rule,
            _TYPE_INSTRUCTIONS[request.document_type],
            "Your summary should be objective and stick to the information present in the document. Do NOT "
            "provide any medical interpretation, diagnosis, advice, or treatment recommendations.",
            f"Always set disclaimer to: \"{DOCUMENT_DISCLAIMER}\"",
            "Return JSON only with keys: summary (string), disclaimer (string).",
        ]
    )
    lines = [f"Document Type: {request.document_type}"]
    if request.document_data_uri:
        lines.append("Document Content: see the attached upload.")
    else:
        lines.append("Document Content (from pasted text):")
        lines.append(request.document_text or "")
    return system_prompt, "\n".join(lines)


def analyze_document(request: DocumentAnalysisRequest) -> BoundaryResult[DocumentAnalysisOutput]:
    system_prompt, user_text = build_document_prompt(request)
    source = "image" if request.document_data_uri else "text"
    logger.info("document analysis request type=%s source=%s", request.document_type, source)
    try:
        raw = complete_text(
            system_prompt=system_prompt,
            user_text=user_text,
            attachment=request.document_data_uri,
            purpose="document",
        )
    except BoundaryTimeout as exc:
        return BoundaryResult.timeout(exc.message)
    except BoundaryFailure as exc:
        return BoundaryResult.failure(exc.message)

    payload = extract_json_object(raw)
    if payload is None:
        return BoundaryResult.malformed("Document analysis reply was not a JSON object.")
    if payload.get("summary") is None:
        payload["summary"] = ""
    try:
        output = DocumentAnalysisOutput.model_validate(payload)
    except ValidationError as exc:
        return BoundaryResult.malformed(f"Document analysis reply failed validation ({exc.error_count()} errors).")
    return BoundaryResult.success(
        DocumentAnalysisOutput(
            summary=output.summary.strip() or EMPTY_SUMMARY_TEXT,
            disclaimer=DOCUMENT_DISCLAIMER,
        )
    )
