from .capture import RecognitionEvent, TranscriptCaptureSession, recognition_error_reason
from .devices import RelayRecognitionDevice, RelaySynthesisDevice, Utterance, Voice
from .dialog import VoiceDialog
from .speech_output import SpeechEvent, SpeechOutputController, select_voice, utterance_text_for

__all__ = [
    "RecognitionEvent",
    "RelayRecognitionDevice",
    "RelaySynthesisDevice",
    "SpeechEvent",
    "SpeechOutputController",
    "TranscriptCaptureSession",
    "Utterance",
    "Voice",
    "VoiceDialog",
    "recognition_error_reason",
    "select_voice",
    "utterance_text_for",
]
