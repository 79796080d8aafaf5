from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from medibot_core import DOCUMENT_DISCLAIMER, DocumentAnalysisRequest, HistoryMessage, TriageRequest
from medibot_llm import analyze_document, chat_provider_candidates, extract_json_object, triage_symptoms
from medibot_llm import providers
from medibot_llm.triage import build_triage_prompt

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture(autouse=True)
def _clean_provider_env(monkeypatch):
    for key in ("ANTHROPIC_API_KEY", "OPENROUTER_API_KEY", "OPENAI_API_KEY", "MEDIBOT_CHAT_PROVIDER"):
        monkeypatch.delenv(key, raising=False)


def _install_transport(monkeypatch, handler: Handler) -> list[httpx.Request]:
    seen: list[httpx.Request] = []
    real_client = httpx.Client

    def _recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    def _client(*args: Any, **kwargs: Any) -> httpx.Client:
        kwargs["transport"] = httpx.MockTransport(_recording)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(providers.httpx, "Client", _client)
    return seen


def _openai_reply(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def _triage_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "potentialCauses": "Possibly a common cold.",
        "homeRemedies": "Gargle with warm salt water.",
        "shouldSeeDoctor": False,
        "isDeveloperInfoResponse": False,
        "isListingAllDoctorsResponse": False,
        "doctorPageRecommendation": {
            "introText": "You might consider consulting a General Practitioner.",
            "buttonText": "View Recommended General Practitioners",
            "linkQuery": "specialization=General%20Practitioner",
        },
    }
    payload.update(overrides)
    return payload


def test_provider_candidates_follow_preference(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "a-key")
    monkeypatch.setenv("OPENAI_API_KEY", "o-key")
    assert [c["provider"] for c in chat_provider_candidates()] == ["anthropic", "openai"]

    monkeypatch.setenv("MEDIBOT_CHAT_PROVIDER", "openai")
    assert [c["provider"] for c in chat_provider_candidates()] == ["openai", "anthropic"]


def test_extract_json_object_tolerates_surrounding_text():
    assert extract_json_object('```json\n{"summary": "ok"}\n```') == {"summary": "ok"}
    assert extract_json_object("no json here") is None
    assert extract_json_object("") is None


def test_triage_without_provider_is_a_failure():
    result = triage_symptoms(TriageRequest(symptoms="cough"))
    assert result.outcome == "failure"
    assert "No LLM provider" in result.error


def test_triage_success_is_validated_and_post_processed(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "o-key")
    seen = _install_transport(
        monkeypatch,
        lambda request: _openai_reply("Here you go:\n" + json.dumps(_triage_payload())),
    )

    request = TriageRequest(
        symptoms="runny nose",
        language="hi",
        chat_history=[HistoryMessage(role="user", content="hello")],
    )
    result = triage_symptoms(request)

    assert result.outcome == "success"
    recommendation = result.value.doctor_page_recommendation
    assert recommendation.link_query == "specialization=General%20Medicine"
    body = json.loads(seen[0].content)
    assert body["messages"][0]["role"] == "system"
    assert "Respond in hi." in body["messages"][0]["content"]
    assert "- user: hello" in body["messages"][1]["content"]
    assert seen[0].headers["Authorization"] == "Bearer o-key"


def test_missing_recommendation_fields_get_defaults(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "o-key")
    payload = _triage_payload(doctorPageRecommendation={"introText": "", "buttonText": ""})
    _install_transport(monkeypatch, lambda request: _openai_reply(json.dumps(payload)))

    result = triage_symptoms(TriageRequest(symptoms="back pain"))

    recommendation = result.value.doctor_page_recommendation
    assert recommendation.intro_text == "Please see our doctors page for more options."
    assert recommendation.button_text == "View Doctors on Page"


def test_developer_info_reply_drops_recommendation(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "o-key")
    payload = _triage_payload(potentialCauses="I was built by the MediBot team!", isDeveloperInfoResponse=True)
    _install_transport(monkeypatch, lambda request: _openai_reply(json.dumps(payload)))

    result = triage_symptoms(TriageRequest(symptoms="who made you"))

    assert result.value.is_developer_info_response is True
    assert result.value.doctor_page_recommendation is None


@pytest.mark.parametrize(
    "content",
    [
        "I cannot answer in JSON today.",
        json.dumps({"potentialCauses": "missing the urgent flag"}),
    ],
)
def test_malformed_triage_reply(monkeypatch, content):
    monkeypatch.setenv("OPENAI_API_KEY", "o-key")
    _install_transport(monkeypatch, lambda request: _openai_reply(content))

    result = triage_symptoms(TriageRequest(symptoms="cough"))

    assert result.outcome == "malformed"
    assert result.value is None


def test_timeout_stops_the_provider_chain(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "a-key")
    monkeypatch.setenv("OPENAI_API_KEY", "o-key")
    monkeypatch.setenv("MEDIBOT_LLM_TIMEOUT_SECONDS", "0.5")

    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    seen = _install_transport(monkeypatch, _handler)

    result = triage_symptoms(TriageRequest(symptoms="cough"))

    assert result.outcome == "timeout"
    assert len(seen) == 1


def test_provider_error_falls_through_to_next_provider(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "a-key")
    monkeypatch.setenv("OPENAI_API_KEY", "o-key")

    def _handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/messages"):
            return httpx.Response(529, json={"error": {"message": "overloaded"}})
        return _openai_reply(json.dumps(_triage_payload()))

    seen = _install_transport(monkeypatch, _handler)

    result = triage_symptoms(TriageRequest(symptoms="cough"))

    assert result.outcome == "success"
    assert [request.url.path for request in seen] == ["/v1/messages", "/v1/chat/completions"]


def test_all_providers_failing_reports_last_error(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "o-key")
    _install_transport(monkeypatch, lambda request: httpx.Response(401, json={"error": {"message": "bad key"}}))

    result = triage_symptoms(TriageRequest(symptoms="cough"))

    assert result.outcome == "failure"
    assert result.error == "bad key"


def test_triage_prompt_includes_history_and_language_rule():
    system_prompt, user_text = build_triage_prompt(
        TriageRequest(symptoms="fever", chat_history=[HistoryMessage(role="assistant", content="Hi!")])
    )
    assert "Respond in English." in system_prompt
    assert "doctorPageRecommendation" in system_prompt
    assert user_text.endswith("User's current input: fever")
    assert "- assistant: Hi!" in user_text


def test_document_analysis_forces_disclaimer(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "o-key")
    reply = json.dumps({"summary": "Amoxicillin 500mg three times daily.", "disclaimer": "whatever"})
    _install_transport(monkeypatch, lambda request: _openai_reply(reply))

    result = analyze_document(DocumentAnalysisRequest(document_type="prescription", document_text="Amox 500 TDS"))

    assert result.outcome == "success"
    assert result.value.summary == "Amoxicillin 500mg three times daily."
    assert result.value.disclaimer == DOCUMENT_DISCLAIMER


def test_document_analysis_empty_summary_gets_fallback(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "o-key")
    _install_transport(monkeypatch, lambda request: _openai_reply(json.dumps({"summary": ""})))

    result = analyze_document(DocumentAnalysisRequest(document_type="lab_report", document_text="Hb 10"))

    assert result.value.summary == "Could not analyze the document. Please try again."


def test_document_image_is_sent_as_image_part(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "o-key")
    seen = _install_transport(monkeypatch, lambda request: _openai_reply(json.dumps({"summary": "ok"})))
    data_uri = "data:image/png;base64,aGVsbG8="

    analyze_document(DocumentAnalysisRequest(document_type="lab_report", document_data_uri=data_uri))

    user_content = json.loads(seen[0].content)["messages"][1]["content"]
    assert user_content[0]["type"] == "text"
    assert user_content[1] == {"type": "image_url", "image_url": {"url": data_uri}}


def test_document_image_for_anthropic_uses_base64_source(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "a-key")
    seen = _install_transport(
        monkeypatch,
        lambda request: httpx.Response(200, json={"content": [{"type": "text", "text": '{"summary": "ok"}'}]}),
    )

    result = analyze_document(
        DocumentAnalysisRequest(document_type="lab_report", document_data_uri="data:image/jpeg;base64,aGVsbG8=")
    )

    assert result.outcome == "success"
    part = json.loads(seen[0].content)["messages"][0]["content"][0]
    assert part == {"type": "image", "source": {"type": "base64", "media_type": "image/jpeg", "data": "aGVsbG8="}}
    assert seen[0].headers["x-api-key"] == "a-key"


def test_document_request_requires_exactly_one_content_field():
    with pytest.raises(ValueError):
        DocumentAnalysisRequest(document_type="lab_report")
    with pytest.raises(ValueError):
        DocumentAnalysisRequest(
            document_type="lab_report",
            document_text="text",
            document_data_uri="data:image/png;base64,aGVsbG8=",
        )
