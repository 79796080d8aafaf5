from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from medibot_core.errors import NoSpeechCaptured, PermissionDenied, UnsupportedCapability

from .devices import RecognitionDevice

logger = logging.getLogger(__name__)

CAPTURE_STATES = {"idle", "listening", "error"}
RECOGNITION_EVENT_TYPES = {"start", "result", "error", "end"}

UNSUPPORTED_REASON = "Speech recognition is not supported in this browser."
_PERMISSION_ERROR_CODES = {"not-allowed", "service-not-allowed"}
_ERROR_REASONS = {
    "no-speech": "No speech detected. Please try speaking again.",
    "audio-capture": "Microphone error. Check permissions.",
    "not-allowed": "Microphone access denied. Enable permissions.",
    "service-not-allowed": "Microphone access denied. Enable permissions.",
}
_GENERIC_ERROR_REASON = "An error occurred during speech recognition."


@dataclass(frozen=True)
class RecognitionEvent:
    type: str
    is_final: bool = False
    text: str = ""
    error: str | None = None

    def __post_init__(self) -> None:
        if self.type not in RECOGNITION_EVENT_TYPES:
            raise ValueError(f"Unknown recognition event type: {self.type}")

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "RecognitionEvent":
        return cls(
            type=str(raw.get("type") or ""),
            is_final=bool(raw.get("is_final", False)),
            text=str(raw.get("text") or ""),
            error=raw.get("error"),
        )


def recognition_error_reason(code: str | None) -> str:
    return _ERROR_REASONS.get((code or "").strip().lower(), _GENERIC_ERROR_REASON)


class TranscriptCaptureSession:
    """One continuous speech-to-text capture.

    Recognition callbacks arrive as ``RecognitionEvent`` objects and ``handle``
    is the only entry point that mutates capture state. Final segments are
    appended, interim text is replaced wholesale, and nothing is trimmed until
    ``submit``.
    """

    def __init__(self, device: RecognitionDevice | None) -> None:
        self._device = device
        self.state = "idle"
        self.language: str | None = None
        self.final_text = ""
        self.interim_text = ""
        self.error_reason: str | None = None
        self.permission_denied = False

    @property
    def is_listening(self) -> bool:
        return self.state == "listening"

    @property
    def has_transcript(self) -> bool:
        return bool(self.final_text.strip() or self.interim_text.strip())

    @property
    def displayed_transcript(self) -> str:
        return self.final_text + self.interim_text

    def open(self, language: str) -> None:
        self._clear_buffers()
        self.error_reason = None
        self.permission_denied = False
        self.language = language
        if self._device is None or not getattr(self._device, "available", False):
            self._fail(UNSUPPORTED_REASON)
            raise UnsupportedCapability(UNSUPPORTED_REASON)
        try:
            self._device.start(self, language)
        except PermissionDenied as exc:
            self.permission_denied = True
            self._fail(exc.message)
            raise
        self.state = "listening"

    def handle(self, event: RecognitionEvent) -> None:
        if event.type == "start":
            if self.state == "error":
                return
            self.state = "listening"
            self.error_reason = None
            self.interim_text = ""
        elif event.type == "result":
            self.on_update(event.is_final, event.text)
        elif event.type == "error":
            if self.state != "listening":
                return
            code = (event.error or "").strip().lower()
            logger.info("speech recognition error: %s", code or "unknown")
            self.permission_denied = code in _PERMISSION_ERROR_CODES
            self._stop_device()
            self._fail(recognition_error_reason(code))
        elif event.type == "end":
            if self.state == "listening":
                self._stop_device()
                self.state = "idle"

    def on_update(self, is_final: bool, text: str) -> None:
        if self.state != "listening":
            logger.debug("dropping recognition result outside of an open capture")
            return
        if is_final:
            self.final_text += text
        else:
            self.interim_text = text

    def submit(self) -> str:
        transcript = self.final_text.strip() or self.interim_text.strip()
        self._stop_device()
        self._clear_buffers()
        if self.state == "listening":
            self.state = "idle"
        if not transcript:
            raise NoSpeechCaptured("No speech detected. Please say something to send.")
        return transcript

    def close(self) -> None:
        self._stop_device()
        self._clear_buffers()
        self.state = "idle"
        self.error_reason = None

    def on_superseded(self) -> None:
        self._clear_buffers()
        if self.state == "listening":
            self.state = "idle"

    def _fail(self, reason: str) -> None:
        self.state = "error"
        self.error_reason = reason

    def _stop_device(self) -> None:
        if self._device is not None and self.state == "listening":
            self._device.stop(self)

    def _clear_buffers(self) -> None:
        self.final_text = ""
        self.interim_text = ""
