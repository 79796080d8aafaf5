from __future__ import annotations

import pytest

from boundary_fakes import ScriptedBoundary, triage_result
from medibot_core import (
    EMERGENCY_SYSTEM_TEXT,
    GREETING_TEXT,
    NON_HEALTH_QUERY_TEXT,
    TURN_ERROR_TEXT,
    BoundaryResult,
    ConversationTurn,
    EmptyInput,
    TurnStateError,
    build_history_window,
    format_turn_for_history,
)
from medibot_core.models import DocumentAnalysisResult


def test_log_starts_with_greeting(make_controller):
    controller = make_controller()
    log = controller.log
    assert len(log) == 1
    assert log[0].turn_id == "initial"
    assert log[0].text == GREETING_TEXT


def test_whitespace_turn_is_rejected_without_boundary_call(make_controller):
    triage = ScriptedBoundary()
    controller = make_controller(triage)

    with pytest.raises(EmptyInput):
        controller.submit_turn("   ", "typed", "en-US")

    assert len(controller.log) == 1
    assert triage.requests == []


def test_begin_turn_appends_user_turn_and_pending_placeholder(make_controller):
    controller = make_controller()
    pending = controller.begin_turn("I have a headache", "typed", "en-US")

    log = controller.log
    assert [turn.sender for turn in log] == ["ai", "user", "ai"]
    assert log[-1].is_pending is True
    assert log[-1].turn_id == pending.placeholder_id
    assert controller.is_busy is True
    assert pending.request.language == "en"
    assert pending.request.symptoms == "I have a headache"


def test_successful_turn_replaces_placeholder_in_place(make_controller, notifications):
    triage = ScriptedBoundary(BoundaryResult.success(triage_result()))
    controller = make_controller(triage)

    outcome = controller.submit_turn("I have a headache", "typed", "en-US")

    log = controller.log
    assert len(log) == 3
    assert log[-1] is outcome.turn
    assert outcome.turn.is_pending is False
    assert outcome.turn.triage_result.potential_causes == "This could be a tension headache."
    assert outcome.failed is False
    assert controller.is_busy is False
    assert notifications.drain() == []


def test_history_window_holds_most_recent_six_oldest_first(make_controller):
    triage = ScriptedBoundary()
    controller = make_controller(triage, greeting=None)
    for index in range(4):
        triage.queue(BoundaryResult.success(triage_result(potentialCauses=f"cause {index}")))
        controller.submit_turn(f"symptom {index}", "typed", "en-US")
    # eight eligible turns so far: four user turns and four replies
    triage.queue(BoundaryResult.success(triage_result()))
    controller.submit_turn("symptom 4", "typed", "en-US")

    history = triage.requests[-1].chat_history
    assert len(history) == 6
    assert [message.role for message in history] == ["user", "assistant"] * 3
    assert history[0].content == "symptom 1"
    assert history[-1].content.startswith("Potential causes: cause 3.")


def test_history_window_drops_empty_and_system_turns():
    turns = [
        ConversationTurn(turn_id="a", sender="ai", text="Hello"),
        ConversationTurn(turn_id="b", sender="user", text="chest pain"),
        ConversationTurn(turn_id="c", sender="ai", triage_result=triage_result(shouldSeeDoctor=True)),
        ConversationTurn(turn_id="d", sender="system", text=EMERGENCY_SYSTEM_TEXT),
        ConversationTurn(turn_id="e", sender="ai", is_pending=True),
        ConversationTurn(turn_id="f", sender="ai", text=""),
    ]

    history = build_history_window(turns, limit=6)

    assert [message.content for message in history][:2] == ["Hello", "chest pain"]
    assert len(history) == 3
    assert history[2].role == "assistant"


def test_empty_turn_inside_window_is_dropped_not_backfilled():
    turns = [ConversationTurn(turn_id="0", sender="user", text="msg 0")]
    for index in range(1, 7):
        sender = "ai" if index % 2 else "user"
        text = "" if index == 3 else f"msg {index}"
        turns.append(ConversationTurn(turn_id=str(index), sender=sender, text=text))
    turns.insert(4, ConversationTurn(turn_id="sys", sender="system", text=EMERGENCY_SYSTEM_TEXT))

    history = build_history_window(turns, limit=6)

    assert [message.content for message in history] == ["msg 1", "msg 2", "msg 4", "msg 5", "msg 6"]


def test_history_serialization_priority():
    developer = triage_result(
        potentialCauses="I was designed and developed by the MediBot team!",
        isDeveloperInfoResponse=True,
        doctorPageRecommendation=None,
    )
    refusal = triage_result(potentialCauses=NON_HEALTH_QUERY_TEXT, doctorPageRecommendation=None)
    analysis = DocumentAnalysisResult(analysis_type="lab_report", summary="Glucose 180", disclaimer="Not advice")

    assert format_turn_for_history(ConversationTurn(turn_id="1", sender="ai", text="plain")) == "plain"
    assert format_turn_for_history(ConversationTurn(turn_id="2", sender="ai", triage_result=developer)) == (
        "I was designed and developed by the MediBot team!"
    )
    assert format_turn_for_history(ConversationTurn(turn_id="3", sender="ai", triage_result=refusal)) == (
        NON_HEALTH_QUERY_TEXT
    )
    assert format_turn_for_history(ConversationTurn(turn_id="4", sender="ai", triage_result=triage_result())) == (
        "Potential causes: This could be a tension headache.. "
        "Home remedies: Rest in a quiet, dark room and drink water.. "
        "Doctor suggestion: For these symptoms, you might consider consulting a Neurologist.."
    )
    assert format_turn_for_history(ConversationTurn(turn_id="5", sender="ai", analysis_result=analysis)) == (
        "Analyzed lab_report: Glucose 180. Disclaimer: Not advice"
    )


def test_urgent_result_emits_one_emergency_and_one_system_turn(make_controller, notifications):
    triage = ScriptedBoundary(BoundaryResult.success(triage_result(shouldSeeDoctor=True)))
    controller = make_controller(triage, emergency_number="911")

    outcome = controller.submit_turn("crushing chest pain", "typed", "en-US")

    log = controller.log
    assert [turn.sender for turn in log] == ["ai", "user", "ai", "system"]
    assert log[2] is outcome.turn
    assert log[3].text == EMERGENCY_SYSTEM_TEXT
    assert outcome.emergency is True

    emitted = notifications.drain()
    assert len(emitted) == 1
    assert emitted[0].kind == "emergency"
    assert emitted[0].details == {"symptoms": "crushing chest pain", "contact_number": "911"}


def test_informational_reply_becomes_plain_text(make_controller):
    triage = ScriptedBoundary(
        BoundaryResult.success(triage_result(potentialCauses=NON_HEALTH_QUERY_TEXT, homeRemedies="ignored"))
    )
    controller = make_controller(triage)

    outcome = controller.submit_turn("why is the sky blue", "typed", "en-US")

    assert outcome.turn.text == NON_HEALTH_QUERY_TEXT
    assert outcome.turn.triage_result.home_remedies == ""
    assert outcome.turn.triage_result.doctor_page_recommendation is None


@pytest.mark.parametrize(
    "result",
    [
        BoundaryResult.failure("provider unreachable"),
        BoundaryResult.malformed("missing potentialCauses"),
        BoundaryResult.timeout(),
        RuntimeError("boom"),
    ],
)
def test_failed_turn_is_replaced_by_apology(make_controller, notifications, result):
    triage = ScriptedBoundary(result)
    controller = make_controller(triage)
    pending = controller.begin_turn("I feel dizzy", "typed", "en-US")
    length_before = len(controller.log)

    outcome = controller.resolve_turn(pending.placeholder_id, controller.call_boundary(pending))

    assert len(controller.log) == length_before
    assert controller.log[-1].text == TURN_ERROR_TEXT
    assert controller.log[-1].is_error is True
    assert outcome.failed is True
    toasts = notifications.drain()
    assert [(toast.title, toast.description) for toast in toasts] == [("AI Error", "Could not get response.")]


def test_resolutions_are_keyed_by_placeholder_id(make_controller):
    controller = make_controller()
    first = controller.begin_turn("first question", "typed", "en-US")
    second = controller.begin_turn("second question", "typed", "en-US")

    controller.resolve_turn(second.placeholder_id, BoundaryResult.success(triage_result(potentialCauses="two")))
    assert controller.is_busy is True
    controller.resolve_turn(first.placeholder_id, BoundaryResult.success(triage_result(potentialCauses="one")))

    replies = [turn.triage_result.potential_causes for turn in controller.log if turn.triage_result]
    assert replies == ["one", "two"]
    assert controller.is_busy is False


def test_resolving_twice_is_rejected(make_controller):
    controller = make_controller()
    pending = controller.begin_turn("question", "typed", "en-US")
    controller.resolve_turn(pending.placeholder_id, BoundaryResult.success(triage_result()))

    with pytest.raises(TurnStateError):
        controller.resolve_turn(pending.placeholder_id, BoundaryResult.success(triage_result()))


def test_document_analysis_requires_content(make_controller):
    analyze = ScriptedBoundary()
    controller = make_controller(analyze=analyze)

    with pytest.raises(EmptyInput):
        controller.submit_document_analysis(document_type="lab_report", language="en-US", document_text="  ")
    assert len(controller.log) == 1
    assert analyze.requests == []


def test_document_analysis_success(make_controller, document_output):
    analyze = ScriptedBoundary(document_output())
    controller = make_controller(analyze=analyze)

    pending = controller.begin_document_analysis(
        document_type="lab_report", language="en-US", document_text="Hb 10.2"
    )
    assert controller.log[-1].text == "Analyzing lab report from pasted text..."

    outcome = controller.resolve_turn(pending.placeholder_id, controller.call_boundary(pending))

    assert outcome.turn.text == "Here is the analysis of your lab report:"
    assert outcome.turn.analysis_result.summary == "Hemoglobin 10.2 g/dL (low)."
    assert analyze.requests[0].document_text == "Hb 10.2"
    assert analyze.requests[0].document_data_uri is None


def test_uploaded_image_takes_precedence_over_text(make_controller, document_output):
    analyze = ScriptedBoundary(document_output())
    controller = make_controller(analyze=analyze)

    pending = controller.begin_document_analysis(
        document_type="prescription",
        language="hi-IN",
        document_text="ignored",
        document_data_uri="data:image/png;base64,aGVsbG8=",
    )

    assert controller.log[-1].text == "Analyzing prescription from uploaded file..."
    assert pending.request.document_text is None
    assert pending.request.language == "hi"


def test_document_analysis_failure(make_controller, notifications):
    controller = make_controller(analyze=ScriptedBoundary(BoundaryResult.failure("down")))

    outcome = controller.submit_document_analysis(
        document_type="lab_report", language="en-US", document_text="Hb 10.2"
    )

    assert outcome.turn.text == "Sorry, error analyzing lab report."
    assert [toast.title for toast in notifications.drain()] == ["AI Analysis Error"]


def test_spoken_turns_are_spoken_and_typed_turns_are_not(make_controller, synthesis):
    triage = ScriptedBoundary(
        BoundaryResult.success(triage_result()),
        BoundaryResult.success(triage_result()),
    )
    controller = make_controller(triage)

    controller.submit_turn("typed question", "typed", "en-US")
    assert synthesis.drain() == []

    controller.submit_turn("spoken question", "spoken", "en-US")
    speak = [command for command in synthesis.drain() if command["action"] == "speak"]
    assert len(speak) == 1
    assert speak[0]["text"].startswith("Potential issues: This could be a tension headache.")


def test_document_analysis_inherits_last_input_modality(make_controller, synthesis, document_output):
    triage = ScriptedBoundary(BoundaryResult.success(triage_result()))
    analyze = ScriptedBoundary(BoundaryResult.failure("down"))
    controller = make_controller(triage, analyze)
    controller.submit_turn("spoken question", "spoken", "en-US")
    synthesis.drain()

    outcome = controller.submit_document_analysis(
        document_type="lab_report", language="en-US", document_text="Hb 10.2"
    )

    assert outcome.modality == "spoken"
    speak = [command for command in synthesis.drain() if command["action"] == "speak"]
    assert speak[0]["text"] == "Sorry, error analyzing lab report."
