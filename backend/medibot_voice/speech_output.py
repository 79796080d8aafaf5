from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from medibot_core.models import ConversationTurn

from .devices import SynthesisDevice, Utterance, Voice

logger = logging.getLogger(__name__)

SPEECH_STATES = {"idle", "speaking"}
SPEECH_EVENT_TYPES = {"start", "end", "error"}

StateListener = Callable[[str, str], None]


@dataclass(frozen=True)
class SpeechEvent:
    type: str
    utterance_id: str

    def __post_init__(self) -> None:
        if self.type not in SPEECH_EVENT_TYPES:
            raise ValueError(f"Unknown speech event type: {self.type}")


def select_voice(voices: Sequence[Voice], language: str) -> Voice | None:
    """Pick the closest installed voice for a BCP 47 language tag.

    Order: exact tag (default voice first), same primary language (default
    first), default English voice, any default voice, first voice.
    """
    if not voices:
        return None
    target = language.strip()
    prefix = target.split("-")[0].lower()

    def first(predicate: Callable[[Voice], bool]) -> Voice | None:
        return next((voice for voice in voices if predicate(voice)), None)

    candidates = [
        lambda v: v.lang == target and v.default,
        lambda v: v.lang == target,
        lambda v: v.lang.lower().startswith(prefix + "-") and v.default,
        lambda v: v.lang.lower().startswith(prefix + "-"),
        lambda v: v.lang.lower().startswith("en") and v.default,
        lambda v: v.default,
    ]
    for predicate in candidates:
        voice = first(predicate)
        if voice is not None:
            return voice
    return voices[0]


def utterance_text_for(turn: ConversationTurn) -> str:
    text = turn.text or ""
    triage = turn.triage_result
    if triage is not None:
        if triage.is_informational:
            if not turn.text:
                text += triage.potential_causes
        else:
            if triage.potential_causes:
                separator = " " if turn.text else ""
                text += f"{separator}Potential issues: {triage.potential_causes} "
            if triage.home_remedies:
                text += f"For home remedies: {triage.home_remedies} "
            recommendation = triage.doctor_page_recommendation
            if recommendation is not None and recommendation.intro_text:
                text += f"{recommendation.intro_text} "
    analysis = turn.analysis_result
    if analysis is not None and analysis.summary:
        text += (
            f" Here's a summary of the document: {analysis.summary}. "
            f"Please remember, {analysis.disclaimer}"
        )
    return text.strip()


class SpeechOutputController:
    def __init__(
        self,
        device: SynthesisDevice | None,
        *,
        enabled: bool = True,
        default_language: str = "en-US",
    ) -> None:
        self._device = device
        self._enabled = enabled
        self._default_language = default_language
        self._state = "idle"
        self._active: Utterance | None = None
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_speaking(self) -> bool:
        return self._state == "speaking"

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def active_utterance(self) -> Utterance | None:
        return self._active

    def add_state_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def speak(self, text: str, language: str | None = None) -> Utterance | None:
        if not self._enabled or not (text or "").strip():
            return None
        if self._device is None or not getattr(self._device, "available", False):
            return None
        self.cancel()

        lang = (language or "").strip() or self._default_language
        voice = select_voice(self._device.voices(), lang)
        if voice is None:
            logger.info("no speech synthesis voices installed; skipping utterance")
            return None
        utterance = Utterance(utterance_id=uuid.uuid4().hex, text=text, lang=lang, voice=voice)
        self._active = utterance
        self._device.speak(utterance)
        return utterance

    def speak_turn(self, turn: ConversationTurn, language: str | None = None) -> Utterance | None:
        return self.speak(utterance_text_for(turn), language)

    def cancel(self) -> None:
        if self._active is None:
            return
        self._active = None
        if self._device is not None:
            self._device.cancel()
        self._transition("idle")

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        if not enabled:
            self.cancel()

    def handle(self, event: SpeechEvent) -> None:
        if event.type == "start":
            self.on_utterance_start(event.utterance_id)
        elif event.type == "error":
            self.on_utterance_error(event.utterance_id)
        else:
            self.on_utterance_end(event.utterance_id)

    def on_utterance_start(self, utterance_id: str) -> None:
        if self._active is None or self._active.utterance_id != utterance_id:
            return
        self._transition("speaking")

    def on_utterance_end(self, utterance_id: str) -> None:
        if self._active is None or self._active.utterance_id != utterance_id:
            return
        self._active = None
        self._transition("idle")

    def on_utterance_error(self, utterance_id: str) -> None:
        if self._active is not None and self._active.utterance_id == utterance_id:
            logger.info("speech synthesis failed for utterance %s", utterance_id)
        self.on_utterance_end(utterance_id)

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self._state,
            "enabled": self._enabled,
            "utterance_id": self._active.utterance_id if self._active else None,
        }

    def _transition(self, next_state: str) -> None:
        previous = self._state
        if previous == next_state:
            return
        self._state = next_state
        for listener in self._listeners:
            listener(previous, next_state)
