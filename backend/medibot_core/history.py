from __future__ import annotations

from typing import Iterable

from .models import ConversationTurn, HistoryMessage


MAX_CHAT_HISTORY_FOR_AI = 6


def format_turn_for_history(turn: ConversationTurn) -> str:
    if turn.sender == "system" or turn.is_pending:
        return ""
    if turn.text.strip():
        return turn.text
    triage = turn.triage_result
    if triage is not None:
        if triage.is_developer_info_response and triage.potential_causes:
            return triage.potential_causes
        if triage.is_non_health_refusal:
            return triage.potential_causes
        content = ""
        if triage.potential_causes:
            content += f"Potential causes: {triage.potential_causes}. "
        if triage.home_remedies:
            content += f"Home remedies: {triage.home_remedies}. "
        recommendation = triage.doctor_page_recommendation
        if recommendation is not None and recommendation.intro_text:
            content += f"Doctor suggestion: {recommendation.intro_text}."
        return content.strip()
    analysis = turn.analysis_result
    if analysis is not None:
        return f"Analyzed {analysis.analysis_type}: {analysis.summary}. Disclaimer: {analysis.disclaimer}".strip()
    return ""


def build_history_window(
    turns: Iterable[ConversationTurn],
    *,
    limit: int = MAX_CHAT_HISTORY_FOR_AI,
) -> list[HistoryMessage]:
    """Return the most recent finished user/ai turns as chat history, oldest first.

    The window is cut to the last ``limit`` eligible turns before turns with
    empty serialized content are dropped, so it may hold fewer messages.
    """
    if limit <= 0:
        return []
    eligible = [turn for turn in turns if turn.sender in {"user", "ai"} and not turn.is_pending]
    messages: list[HistoryMessage] = []
    for turn in eligible[-limit:]:
        content = format_turn_for_history(turn).strip()
        if not content:
            continue
        role = "user" if turn.sender == "user" else "assistant"
        messages.append(HistoryMessage(role=role, content=content))
    return messages
