from .errors import (
    BoundaryFailure,
    BoundaryTimeout,
    DialogStateError,
    EmptyInput,
    MediBotError,
    NoSpeechCaptured,
    PermissionDenied,
    TurnStateError,
    UnsupportedCapability,
)
from .history import MAX_CHAT_HISTORY_FOR_AI, build_history_window, format_turn_for_history
from .hooks import Notification, NotificationHub
from .models import (
    DOCUMENT_DISCLAIMER,
    NON_HEALTH_QUERY_TEXT,
    BoundaryResult,
    ConversationTurn,
    DocumentAnalysisOutput,
    DocumentAnalysisRequest,
    DocumentAnalysisResult,
    DoctorPageRecommendation,
    HistoryMessage,
    TriageRequest,
    TriageResult,
)
from .turn_controller import (
    EMERGENCY_SYSTEM_TEXT,
    GREETING_TEXT,
    TURN_ERROR_TEXT,
    ConversationTurnController,
    PendingTurn,
    TurnOutcome,
)

__all__ = [
    "DOCUMENT_DISCLAIMER",
    "EMERGENCY_SYSTEM_TEXT",
    "GREETING_TEXT",
    "MAX_CHAT_HISTORY_FOR_AI",
    "NON_HEALTH_QUERY_TEXT",
    "TURN_ERROR_TEXT",
    "BoundaryFailure",
    "BoundaryResult",
    "BoundaryTimeout",
    "ConversationTurn",
    "ConversationTurnController",
    "DialogStateError",
    "DoctorPageRecommendation",
    "DocumentAnalysisOutput",
    "DocumentAnalysisRequest",
    "DocumentAnalysisResult",
    "EmptyInput",
    "HistoryMessage",
    "MediBotError",
    "NoSpeechCaptured",
    "Notification",
    "NotificationHub",
    "PendingTurn",
    "PermissionDenied",
    "TriageRequest",
    "TriageResult",
    "TurnOutcome",
    "TurnStateError",
    "UnsupportedCapability",
    "build_history_window",
    "format_turn_for_history",
]
