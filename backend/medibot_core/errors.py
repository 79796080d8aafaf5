from __future__ import annotations


class MediBotError(Exception):
    code = "medibot_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class EmptyInput(MediBotError):
    code = "empty_input"


class UnsupportedCapability(MediBotError):
    code = "unsupported_capability"


class PermissionDenied(MediBotError):
    code = "permission_denied"


class NoSpeechCaptured(MediBotError):
    code = "no_speech_captured"


class BoundaryFailure(MediBotError):
    code = "boundary_failure"


class BoundaryTimeout(BoundaryFailure):
    code = "boundary_timeout"


class TurnStateError(MediBotError):
    code = "turn_state_error"


class DialogStateError(MediBotError):
    code = "dialog_state_error"
