from .documents import EMPTY_SUMMARY_TEXT, analyze_document
from .providers import chat_provider_candidates, complete_text, extract_json_object
from .triage import GENERAL_MEDICINE_LINK_QUERY, post_process_triage, triage_symptoms

__all__ = [
    "EMPTY_SUMMARY_TEXT",
    "GENERAL_MEDICINE_LINK_QUERY",
    "analyze_document",
    "chat_provider_candidates",
    "complete_text",
    "extract_json_object",
    "post_process_triage",
    "triage_symptoms",
]
