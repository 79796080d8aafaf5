from __future__ import annotations

import logging
from typing import Any, Callable

from medibot_core.errors import DialogStateError, NoSpeechCaptured, PermissionDenied, UnsupportedCapability
from medibot_core.hooks import NotificationHub
from medibot_core.models import ConversationTurn
from medibot_core.turn_controller import ConversationTurnController, PendingTurn, TurnOutcome, document_type_label

from .capture import RecognitionEvent, TranscriptCaptureSession
from .devices import RecognitionDevice
from .speech_output import SpeechOutputController

logger = logging.getLogger(__name__)

DIALOG_STATES = {"closed", "listening", "error", "ready_to_send", "awaiting_response", "idle_ready"}

STATUS_LISTENING = "Listening... Speak now. Click Send when done."
STATUS_RESPONDING = "AI is responding..."
STATUS_IDLE = "Click microphone or Send to submit."


class VoiceDialog:
    """Voice-conversation overlay.

    Owns the transient capture session and tracks which pending turn the
    overlay is waiting on. Turn resolutions are delivered through the turn
    controller's resolved listeners and matched by placeholder id.
    """

    _TRANSITIONS = {
        "closed": {"listening", "error"},
        "listening": {"error", "ready_to_send", "idle_ready", "awaiting_response", "closed"},
        "error": {"listening", "error", "awaiting_response", "closed"},
        "ready_to_send": {"listening", "error", "awaiting_response", "closed"},
        "awaiting_response": {"idle_ready", "closed"},
        "idle_ready": {"listening", "error", "awaiting_response", "closed"},
    }

    def __init__(
        self,
        *,
        controller: ConversationTurnController,
        speech: SpeechOutputController,
        notifications: NotificationHub,
        recognition_device: RecognitionDevice | None,
        session_factory: Callable[[RecognitionDevice | None], TranscriptCaptureSession] = TranscriptCaptureSession,
    ) -> None:
        self._controller = controller
        self._speech = speech
        self._notifications = notifications
        self._device = recognition_device
        self._session_factory = session_factory
        self._capture: TranscriptCaptureSession | None = None
        self._awaiting_id: str | None = None
        self.state = "closed"
        self.language = "en-US"
        self.user_transcript: str | None = None
        self.ai_response: ConversationTurn | None = None
        self.lifecycle: list[str] = ["closed"]
        controller.add_resolved_listener(self._on_turn_resolved)

    @property
    def is_open(self) -> bool:
        return self.state != "closed"

    @property
    def capture(self) -> TranscriptCaptureSession | None:
        return self._capture

    @property
    def awaiting_turn_id(self) -> str | None:
        return self._awaiting_id

    @property
    def can_start_listening(self) -> bool:
        if self.state not in {"error", "ready_to_send", "idle_ready"}:
            return False
        return not self._speech.is_speaking

    @property
    def can_send(self) -> bool:
        if self.state == "listening":
            return self._capture is not None and self._capture.has_transcript
        if self.state == "ready_to_send":
            return not self._speech.is_speaking
        return False

    @property
    def status_text(self) -> str:
        if self.state == "error" and self._capture is not None and self._capture.error_reason:
            return self._capture.error_reason
        if self.state == "listening":
            return STATUS_LISTENING
        if self.state == "awaiting_response" or (self._speech.is_speaking and self.user_transcript):
            return STATUS_RESPONDING
        return STATUS_IDLE

    def open(self, language: str) -> str:
        if self.is_open:
            raise DialogStateError("Voice dialog is already open.")
        self.language = language
        self.user_transcript = None
        self.ai_response = None
        self._start_capture()
        return self.state

    def listen(self) -> str:
        if not self.can_start_listening:
            raise DialogStateError(f"Cannot start listening while {self.state}.")
        self._start_capture()
        return self.state

    def handle_recognition(self, event: RecognitionEvent) -> str:
        if self._capture is None or self.state != "listening":
            logger.debug("ignoring %s recognition event while %s", event.type, self.state)
            return self.state
        self._capture.handle(event)
        if self._capture.state == "error":
            self._transition("error")
            self._notifications.toast("Speech Error", self._capture.error_reason or "", variant="destructive")
        elif self._capture.state == "idle":
            self._transition("ready_to_send" if self._capture.has_transcript else "idle_ready")
        return self.state

    def send(self) -> PendingTurn:
        if self.state == "awaiting_response":
            raise DialogStateError("A voice turn is already awaiting a response.")
        if not self.can_send:
            if self.state in {"listening", "ready_to_send", "idle_ready"} and not self._has_transcript():
                self._discard_empty_capture()
                raise NoSpeechCaptured("No speech detected. Please say something to send.")
            raise DialogStateError(f"Cannot send while {self.state}.")
        if self._capture is None:
            raise DialogStateError("No capture session is open.")
        try:
            transcript = self._capture.submit()
        except NoSpeechCaptured:
            self._discard_empty_capture()
            raise
        pending = self._controller.begin_turn(transcript, "spoken", self.language)
        self.await_turn(pending, transcript)
        return pending

    def await_turn(self, pending: PendingTurn, transcript: str) -> None:
        self._transition("awaiting_response")
        self._awaiting_id = pending.placeholder_id
        self.user_transcript = transcript
        self.ai_response = None

    def await_document_analysis(self, pending: PendingTurn) -> bool:
        """Show an analysis started while the overlay is open, like a spoken turn.

        Returns False when the overlay is closed or already waiting on a turn.
        """
        if not self.is_open or self.state == "awaiting_response":
            return False
        if self._capture is not None:
            self._capture.close()
        label = document_type_label(pending.document_type or "document")
        self.await_turn(pending, f"Analyzing {label}...")
        return True

    def close(self) -> str:
        if self._capture is not None:
            self._capture.close()
        self._capture = None
        self._speech.cancel()
        self._awaiting_id = None
        self.user_transcript = None
        self.ai_response = None
        if self.state != "closed":
            self._transition("closed")
        return self.state

    def view(self) -> dict[str, Any]:
        capture = self._capture
        return {
            "state": self.state,
            "is_open": self.is_open,
            "status": self.status_text,
            "language": self.language,
            "user_transcript": self.user_transcript,
            "ai_response": self.ai_response.as_dict() if self.ai_response else None,
            "live_transcript": capture.displayed_transcript if capture and capture.is_listening else "",
            "error": capture.error_reason if capture and capture.state == "error" else None,
            "permission_denied": bool(capture and capture.permission_denied),
            "is_speaking": self._speech.is_speaking,
            "can_send": self.can_send,
            "can_start_listening": self.can_start_listening,
        }

    def _start_capture(self) -> None:
        if self._capture is not None:
            self._capture.close()
        self._capture = self._session_factory(self._device)
        try:
            self._capture.open(self.language)
        except UnsupportedCapability as exc:
            self._transition("error")
            self._notifications.toast(
                "Voice Input Not Supported", "Your browser does not support speech recognition.", variant="destructive"
            )
            logger.info("voice capture unavailable: %s", exc.message)
            return
        except PermissionDenied as exc:
            self._transition("error")
            self._notifications.toast("Microphone Error", exc.message, variant="destructive")
            return
        self._transition("listening")

    def _has_transcript(self) -> bool:
        return self._capture is not None and self._capture.has_transcript

    def _discard_empty_capture(self) -> None:
        if self._capture is not None:
            self._capture.close()
        if self.state == "listening":
            self._transition("idle_ready")
        self._notifications.toast("No Speech Detected", "Please say something to send.")

    def _on_turn_resolved(self, outcome: TurnOutcome) -> None:
        if self.state != "awaiting_response" or outcome.placeholder_id != self._awaiting_id:
            return
        self._awaiting_id = None
        self.ai_response = outcome.turn
        self._transition("idle_ready")

    def _transition(self, next_state: str) -> None:
        if next_state not in DIALOG_STATES:
            raise DialogStateError(f"Unknown dialog state: {next_state}")
        allowed = self._TRANSITIONS.get(self.state, set())
        if next_state not in allowed:
            raise DialogStateError(f"Invalid transition: {self.state} -> {next_state}")
        self.state = next_state
        self.lifecycle.append(next_state)
