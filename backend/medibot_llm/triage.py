from __future__ import annotations

import logging
import os
from urllib.parse import unquote

from pydantic import ValidationError

from medibot_core.errors import BoundaryFailure, BoundaryTimeout
from medibot_core.models import BoundaryResult, DoctorPageRecommendation, TriageRequest, TriageResult

from .providers import complete_text, extract_json_object, preview

logger = logging.getLogger(__name__)

GENERAL_MEDICINE_LINK_QUERY = "specialization=General%20Medicine"
DEFAULT_RECOMMENDATION_INTRO = "Please see our doctors page for more options."
DEFAULT_RECOMMENDATION_BUTTON = "View Doctors on Page"
_GENERAL_PRACTICE_MARKERS = ("general practitioner", "medicine doctor", "general practice")

_OUTPUT_CONTRACT = (
    "Return JSON only, with exactly these keys: potentialCauses (string), homeRemedies (string), "
    "shouldSeeDoctor (boolean), isDeveloperInfoResponse (boolean), isListingAllDoctorsResponse (boolean), "
    "doctorPageRecommendation (object with introText, buttonText, linkQuery; or null)."
)


def developer_name() -> str:
    return (os.getenv("MEDIBOT_DEVELOPER_NAME") or "the MediBot team").strip()


def build_triage_prompt(request: TriageRequest) -> tuple[str, str]:
    if request.language:
        language_rule = (
            f"Respond in {request.language}. If {request.language} is 'hi' (Hindi) and the user's query is "
            "Hinglish, try to respond in Hinglish."
        )
    else:
        language_rule = "Respond in English."

    system_prompt = "\n".join(
        [
            "You are an AI Health Assistant. Your primary function is to assist with health-related queries.",
            "Respond in a friendly, conversational, and empathetic tone.",
            "Your responses for potentialCauses and homeRemedies should be conversational and easy to understand.",
            language_rule,
            "",
            "If the user asks who developed you or who made you:",
            f"- potentialCauses: \"I was thoughtfully designed and developed by {developer_name()}! "
            "My main purpose is to assist with your health questions.\" (in the requested language)",
            "- homeRemedies: \"\", shouldSeeDoctor: false, isDeveloperInfoResponse: true, "
            "isListingAllDoctorsResponse: false, doctorPageRecommendation: null",
            "",
            "Else if the user asks to list or show all doctors on the panel:",
            "- potentialCauses: \"Okay, I can help with that. Here's information about the doctors on our panel:\"",
            "- homeRemedies: \"\", shouldSeeDoctor: false, isDeveloperInfoResponse: false, "
            "isListingAllDoctorsResponse: true",
            "- doctorPageRecommendation: introText \"You can find all empaneled doctors on our dedicated page.\", "
            "buttonText \"View All Doctors on Page\", linkQuery \"\"",
            "",
            "Else if the input is clearly not health-related (e.g. 'why is the sky blue', 'hello', 'how are you'):",
            "- potentialCauses: \"I am a health assistant and can only help with health-related questions. "
            "For general knowledge questions, please use a search engine.\"",
            "- homeRemedies: \"\", shouldSeeDoctor: false, isDeveloperInfoResponse: false, "
            "isListingAllDoctorsResponse: false, doctorPageRecommendation: null",
            "",
            "Else (symptoms or a health question, including requests for a type of doctor):",
            "- potentialCauses: a conversational explanation of potential issues based on the input and history.",
            "- homeRemedies: one conversational paragraph of safe home remedies (no medicine). Gentle exercises, "
            "yoga poses, breathing techniques or common Ayurvedic practices are fine when safe, each with simple "
            "instructions on how to perform it. Use an empty string when nothing safe applies.",
            "- shouldSeeDoctor: true ONLY for urgent or severe symptoms (chest pain, difficulty breathing, severe "
            "bleeding, stroke signs, sudden loss of vision, suicidal thoughts). False for a simple headache, "
            "cough or mild fever.",
            "- isDeveloperInfoResponse: false, isListingAllDoctorsResponse: false",
            "- doctorPageRecommendation: pick the relevant specialization (use \"General Medicine\" for a general "
            "practitioner or medicine doctor). introText is a conversational lead-in such as \"For these "
            "symptoms, you might consider consulting a Neurologist.\"; buttonText such as \"View Recommended "
            "Neurologists\"; linkQuery \"specialization=<Specialization>\" or \"\". Never name individual doctors.",
            "",
            _OUTPUT_CONTRACT,
        ]
    )

    lines: list[str] = []
    if request.chat_history:
        lines.append("Recent conversation history for context:")
        lines.extend(f"- {message.role}: {message.content}" for message in request.chat_history)
        lines.append("")
    lines.append(f"User's current input: {request.symptoms}")
    return system_prompt, "\n".join(lines)


def post_process_triage(result: TriageResult) -> TriageResult:
    recommendation = result.doctor_page_recommendation
    if result.is_informational:
        recommendation = None
    if recommendation is not None:
        link_query = recommendation.link_query
        if link_query and "=" in link_query:
            specialization = unquote(link_query.split("=", 1)[1]).lower()
            if any(marker in specialization for marker in _GENERAL_PRACTICE_MARKERS):
                link_query = GENERAL_MEDICINE_LINK_QUERY
        recommendation = DoctorPageRecommendation(
            intro_text=recommendation.intro_text or DEFAULT_RECOMMENDATION_INTRO,
            button_text=recommendation.button_text or DEFAULT_RECOMMENDATION_BUTTON,
            link_query=link_query,
        )
    return result.model_copy(update={"doctor_page_recommendation": recommendation})


def triage_symptoms(request: TriageRequest) -> BoundaryResult[TriageResult]:
    system_prompt, user_text = build_triage_prompt(request)
    logger.info(
        "triage request lang=%s history=%d symptoms=%r",
        request.language or "en",
        len(request.chat_history),
        preview(request.symptoms),
    )
    try:
        raw = complete_text(system_prompt=system_prompt, user_text=user_text, purpose="triage")
    except BoundaryTimeout as exc:
        return BoundaryResult.timeout(exc.message)
    except BoundaryFailure as exc:
        return BoundaryResult.failure(exc.message)

    payload = extract_json_object(raw)
    if payload is None:
        logger.warning("triage reply was not a JSON object: %r", preview(raw))
        return BoundaryResult.malformed("Triage reply was not a JSON object.")
    try:
        result = TriageResult.model_validate(payload)
    except ValidationError as exc:
        logger.warning("triage reply failed validation: %s", exc.error_count())
        return BoundaryResult.malformed(f"Triage reply failed validation ({exc.error_count()} errors).")
    return BoundaryResult.success(post_process_triage(result))
