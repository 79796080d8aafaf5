from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from medibot_core.errors import PermissionDenied


@dataclass(frozen=True)
class Voice:
    name: str
    lang: str
    default: bool = False

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Voice":
        return cls(
            name=str(raw.get("name") or "").strip(),
            lang=str(raw.get("lang") or "").strip(),
            default=bool(raw.get("default", False)),
        )


@dataclass(frozen=True)
class Utterance:
    utterance_id: str
    text: str
    lang: str
    voice: Voice | None = None


class RecognitionOwner(Protocol):
    def on_superseded(self) -> None: ...


class RecognitionDevice(Protocol):
    available: bool

    def start(self, owner: RecognitionOwner, language: str) -> None: ...

    def stop(self, owner: RecognitionOwner) -> None: ...


class SynthesisDevice(Protocol):
    available: bool

    def voices(self) -> list[Voice]: ...

    def speak(self, utterance: Utterance) -> None: ...

    def cancel(self) -> None: ...


class RelayRecognitionDevice:
    """Speech-to-text device backed by the client's recognizer.

    Start/stop become commands for the client to run; results come back as
    recognition events. At most one owner holds the device at a time.
    """

    def __init__(self, *, available: bool = True, microphone_permission: str = "prompt") -> None:
        self.available = available
        self.microphone_permission = microphone_permission
        self.active_owner: RecognitionOwner | None = None
        self._commands: list[dict[str, Any]] = []

    def start(self, owner: RecognitionOwner, language: str) -> None:
        previous = self.active_owner
        if previous is not None and previous is not owner:
            self.active_owner = None
            self._commands.append({"target": "recognition", "action": "stop"})
            previous.on_superseded()
        if self.microphone_permission == "denied":
            raise PermissionDenied("Microphone access denied. Enable permissions.")
        self.active_owner = owner
        self._commands.append(
            {
                "target": "recognition",
                "action": "start",
                "language": language,
                "continuous": True,
                "interim_results": True,
            }
        )

    def stop(self, owner: RecognitionOwner) -> None:
        if self.active_owner is not owner:
            return
        self.active_owner = None
        self._commands.append({"target": "recognition", "action": "stop"})

    def drain(self) -> list[dict[str, Any]]:
        pending = self._commands
        self._commands = []
        return pending


class RelaySynthesisDevice:
    """Text-to-speech device backed by the client's synthesizer and voice catalog."""

    def __init__(self, *, available: bool = True, voices: list[Voice] | None = None) -> None:
        self.available = available
        self._voices = list(voices or [])
        self._commands: list[dict[str, Any]] = []

    def voices(self) -> list[Voice]:
        return list(self._voices)

    def set_voices(self, voices: list[Voice]) -> None:
        self._voices = list(voices)

    def speak(self, utterance: Utterance) -> None:
        self._commands.append(
            {
                "target": "synthesis",
                "action": "speak",
                "utterance_id": utterance.utterance_id,
                "text": utterance.text,
                "lang": utterance.lang,
                "voice": utterance.voice.name if utterance.voice else None,
            }
        )

    def cancel(self) -> None:
        self._commands.append({"target": "synthesis", "action": "cancel"})

    def drain(self) -> list[dict[str, Any]]:
        pending = self._commands
        self._commands = []
        return pending
