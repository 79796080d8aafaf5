from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from .errors import EmptyInput, TurnStateError
from .history import MAX_CHAT_HISTORY_FOR_AI, build_history_window
from .hooks import Notification, NotificationHub
from .models import (
    DOCUMENT_TYPES,
    INPUT_MODALITIES,
    BoundaryResult,
    ConversationTurn,
    DocumentAnalysisOutput,
    DocumentAnalysisRequest,
    DocumentAnalysisResult,
    TriageRequest,
    TriageResult,
)

logger = logging.getLogger(__name__)

GREETING_TEXT = (
    "Hello! I'm MediBot. How can I help you with your health concerns today? "
    "You can also ask me to analyze a prescription or lab report by pasting text or uploading an image."
)
TURN_ERROR_TEXT = "I'm sorry, I encountered an error. Please try again."
EMERGENCY_SYSTEM_TEXT = (
    "Your symptoms may require medical attention. Consider contacting emergency services if it's critical."
)

TriageBoundary = Callable[[TriageRequest], BoundaryResult[TriageResult]]
AnalysisBoundary = Callable[[DocumentAnalysisRequest], BoundaryResult[DocumentAnalysisOutput]]
TurnSpeaker = Callable[[ConversationTurn, str], None]


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


def primary_language(language: str | None) -> str | None:
    cleaned = (language or "").strip()
    if not cleaned:
        return None
    return cleaned.split("-")[0].lower()


def document_type_label(document_type: str) -> str:
    return document_type.replace("_", " ")


@dataclass
class PendingTurn:
    placeholder_id: str
    kind: str
    modality: str
    language: str
    input_text: str
    request: TriageRequest | DocumentAnalysisRequest
    document_type: str | None = None


@dataclass
class TurnOutcome:
    turn: ConversationTurn
    placeholder_id: str
    modality: str
    language: str
    failed: bool = False
    emergency: bool = False
    system_turn: ConversationTurn | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "turn": self.turn.as_dict(),
            "placeholder_id": self.placeholder_id,
            "modality": self.modality,
            "failed": self.failed,
            "emergency": self.emergency,
            "system_turn": self.system_turn.as_dict() if self.system_turn else None,
        }


TurnResolvedListener = Callable[[TurnOutcome], None]


class ConversationTurnController:
    """Owns the conversation log and every turn's lifecycle.

    A submission appends a pending placeholder right away and resolves it
    later by id, so resolutions never depend on log positions.
    """

    def __init__(
        self,
        *,
        triage: TriageBoundary,
        analyze_document: AnalysisBoundary,
        notifications: NotificationHub,
        speak_turn: TurnSpeaker | None = None,
        emergency_number: str = "112",
        history_limit: int = MAX_CHAT_HISTORY_FOR_AI,
        greeting: str | None = GREETING_TEXT,
    ) -> None:
        self._triage = triage
        self._analyze_document = analyze_document
        self._notifications = notifications
        self._speak_turn = speak_turn
        self._emergency_number = emergency_number
        self._history_limit = history_limit
        self._log: list[ConversationTurn] = []
        self._pending: dict[str, PendingTurn] = {}
        self._listeners: list[TurnResolvedListener] = []
        self._last_input_modality = "typed"
        if greeting:
            self._log.append(ConversationTurn(turn_id="initial", sender="ai", text=greeting))

    @property
    def log(self) -> list[ConversationTurn]:
        return list(self._log)

    @property
    def is_busy(self) -> bool:
        return bool(self._pending)

    @property
    def last_input_modality(self) -> str:
        return self._last_input_modality

    def add_resolved_listener(self, listener: TurnResolvedListener) -> None:
        self._listeners.append(listener)

    def begin_turn(self, text: str, modality: str, language: str) -> PendingTurn:
        if not (text or "").strip():
            raise EmptyInput("Message is empty.")
        if modality not in INPUT_MODALITIES:
            raise ValueError(f"Unknown input modality: {modality}")

        history = build_history_window(self._log, limit=self._history_limit)
        user_turn = ConversationTurn(
            turn_id=_new_id("user"),
            sender="user",
            text=text,
            input_modality=modality,
            history_window=history,
        )
        placeholder = ConversationTurn(
            turn_id=_new_id("ai-loading"),
            sender="ai",
            input_modality=modality,
            is_pending=True,
        )
        self._log.extend([user_turn, placeholder])
        self._last_input_modality = modality

        request = TriageRequest(symptoms=text, language=primary_language(language), chat_history=history)
        pending = PendingTurn(
            placeholder_id=placeholder.turn_id,
            kind="triage",
            modality=modality,
            language=language,
            input_text=text,
            request=request,
        )
        self._pending[placeholder.turn_id] = pending
        return pending

    def begin_document_analysis(
        self,
        *,
        document_type: str,
        language: str,
        document_text: str | None = None,
        document_data_uri: str | None = None,
    ) -> PendingTurn:
        if document_type not in DOCUMENT_TYPES:
            raise ValueError(f"Unknown document type: {document_type}")
        data_uri = (document_data_uri or "").strip() or None
        # An uploaded image takes precedence over pasted text.
        text = None if data_uri else ((document_text or "").strip() or None)
        if not data_uri and not text:
            raise EmptyInput("Provide document text or an image to analyze.")

        modality = self._last_input_modality
        source = "uploaded file" if data_uri else "pasted text"
        placeholder = ConversationTurn(
            turn_id=_new_id("ai-loading-analysis"),
            sender="ai",
            text=f"Analyzing {document_type_label(document_type)} from {source}...",
            input_modality=modality,
            is_pending=True,
        )
        self._log.append(placeholder)
        request = DocumentAnalysisRequest(
            document_data_uri=data_uri,
            document_text=text,
            document_type=document_type,
            language=primary_language(language),
        )
        pending = PendingTurn(
            placeholder_id=placeholder.turn_id,
            kind="analysis",
            modality=modality,
            language=language,
            input_text=text or "",
            request=request,
            document_type=document_type,
        )
        self._pending[placeholder.turn_id] = pending
        return pending

    def call_boundary(self, pending: PendingTurn) -> BoundaryResult[Any]:
        boundary: Callable[[Any], BoundaryResult[Any]]
        boundary = self._triage if pending.kind == "triage" else self._analyze_document
        try:
            return boundary(pending.request)
        except Exception as exc:
            logger.exception("%s boundary raised for %s", pending.kind, pending.placeholder_id)
            return BoundaryResult.failure(str(exc) or exc.__class__.__name__)

    def resolve_turn(self, placeholder_id: str, result: BoundaryResult[Any]) -> TurnOutcome:
        pending = self._pending.pop(placeholder_id, None)
        if pending is None:
            raise TurnStateError(f"No pending turn with id {placeholder_id}.")
        index = self._index_of(placeholder_id)
        if pending.kind == "triage":
            outcome = self._resolve_triage(index, pending, result)
        else:
            outcome = self._resolve_analysis(index, pending, result)
        logger.info(
            "turn %s resolved outcome=%s failed=%s emergency=%s",
            placeholder_id,
            result.outcome,
            outcome.failed,
            outcome.emergency,
        )

        if pending.modality == "spoken" and self._speak_turn is not None:
            self._speak_turn(outcome.turn, pending.language)
        for listener in self._listeners:
            listener(outcome)
        return outcome

    def submit_turn(self, text: str, modality: str, language: str) -> TurnOutcome:
        pending = self.begin_turn(text, modality, language)
        return self.resolve_turn(pending.placeholder_id, self.call_boundary(pending))

    def submit_document_analysis(
        self,
        *,
        document_type: str,
        language: str,
        document_text: str | None = None,
        document_data_uri: str | None = None,
    ) -> TurnOutcome:
        pending = self.begin_document_analysis(
            document_type=document_type,
            language=language,
            document_text=document_text,
            document_data_uri=document_data_uri,
        )
        return self.resolve_turn(pending.placeholder_id, self.call_boundary(pending))

    def _index_of(self, turn_id: str) -> int:
        for index, turn in enumerate(self._log):
            if turn.turn_id == turn_id:
                return index
        raise TurnStateError(f"Turn {turn_id} is not in the conversation log.")

    def _resolve_triage(self, index: int, pending: PendingTurn, result: BoundaryResult[Any]) -> TurnOutcome:
        if not result.ok:
            logger.warning("triage boundary %s: %s", result.outcome, result.error)
            turn = self._replace_with_error(index, pending, TURN_ERROR_TEXT)
            self._notifications.toast("AI Error", "Could not get response.", variant="destructive")
            return TurnOutcome(
                turn=turn,
                placeholder_id=pending.placeholder_id,
                modality=pending.modality,
                language=pending.language,
                failed=True,
            )

        triage: TriageResult = result.value
        if triage.is_informational:
            text = triage.potential_causes
            triage = triage.model_copy(
                update={"home_remedies": "", "should_see_doctor": False, "doctor_page_recommendation": None}
            )
        else:
            text = ""
        turn = ConversationTurn(
            turn_id=_new_id("ai"),
            sender="ai",
            text=text,
            input_modality=pending.modality,
            triage_result=triage,
        )
        self._log[index] = turn
        outcome = TurnOutcome(
            turn=turn,
            placeholder_id=pending.placeholder_id,
            modality=pending.modality,
            language=pending.language,
        )

        if triage.should_see_doctor:
            system_turn = ConversationTurn(
                turn_id=_new_id("system-emergency"),
                sender="system",
                text=EMERGENCY_SYSTEM_TEXT,
                input_modality=pending.modality,
            )
            self._log.insert(index + 1, system_turn)
            self._notifications.emit(
                Notification(
                    kind="emergency",
                    title="Emergency Assistance",
                    description=(
                        "If you are experiencing a medical emergency, please seek immediate help."
                    ),
                    variant="destructive",
                    details={"symptoms": pending.input_text, "contact_number": self._emergency_number},
                )
            )
            outcome.emergency = True
            outcome.system_turn = system_turn
        return outcome

    def _resolve_analysis(self, index: int, pending: PendingTurn, result: BoundaryResult[Any]) -> TurnOutcome:
        label = document_type_label(pending.document_type or "")
        if not result.ok:
            logger.warning("document boundary %s: %s", result.outcome, result.error)
            turn = self._replace_with_error(index, pending, f"Sorry, error analyzing {label}.")
            self._notifications.toast("AI Analysis Error", variant="destructive")
            return TurnOutcome(
                turn=turn,
                placeholder_id=pending.placeholder_id,
                modality=pending.modality,
                language=pending.language,
                failed=True,
            )

        output: DocumentAnalysisOutput = result.value
        turn = ConversationTurn(
            turn_id=_new_id("ai-analysis"),
            sender="ai",
            text=f"Here is the analysis of your {label}:",
            input_modality=pending.modality,
            analysis_result=DocumentAnalysisResult(
                analysis_type=pending.document_type or "",
                summary=output.summary,
                disclaimer=output.disclaimer,
            ),
        )
        self._log[index] = turn
        return TurnOutcome(
            turn=turn,
            placeholder_id=pending.placeholder_id,
            modality=pending.modality,
            language=pending.language,
        )

    def _replace_with_error(self, index: int, pending: PendingTurn, text: str) -> ConversationTurn:
        turn = ConversationTurn(
            turn_id=_new_id("ai-error"),
            sender="ai",
            text=text,
            input_modality=pending.modality,
            is_error=True,
        )
        self._log[index] = turn
        return turn
